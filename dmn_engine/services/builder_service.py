"""
Model builder: compile validated definitions into an immutable EvaluationGraph.

- One node per input data, decision, BKM and decision service; edges run
  from a requirement to the artifact that requires it.
- Every reference must resolve; dependency cycles are rejected.
- Every FEEL text is compiled here, once. Evaluation never parses.
- Each invocable gets its evaluation order precomputed: the dependencies
  that must be evaluated (or bound as functions) in the caller's scope, in
  topological order. Decision services additionally get their internal plan.
"""

import logging
from collections import ChainMap
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Optional

import networkx as nx

from dmn_engine.errors import (
    BuildError,
    DependencyCycleError,
    ExpressionError,
    InvocableNotFoundError,
    UnresolvedReferenceError,
)
from dmn_engine.models.definitions import (
    BoxedContext,
    BusinessKnowledgeModel,
    Decision,
    DecisionService,
    DecisionTable,
    Definitions,
    Invocation,
    LiteralExpression,
)
from dmn_engine.services.decision_table_service import CompiledDecisionTable
from dmn_engine.services.feel_service import FeelEngine, FeelFunction, Scope, get_default_engine
from dmn_engine.services.type_service import FeelType, TypeResolver
from dmn_engine.services.validation_service import validate

logger = logging.getLogger(__name__)

CompiledBody = Callable[[Scope], Any]

INPUT_DATA = "input data"


class InvocableKind(str, Enum):
    DECISION = "decision"
    BUSINESS_KNOWLEDGE_MODEL = "business knowledge model"
    DECISION_SERVICE = "decision service"


# -----------------------------------------------------------------------------
# Graph nodes
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class Invocable:
    """Compiled, immutable form of a decision, BKM or decision service."""

    namespace: str
    name: str
    kind: InvocableKind
    output_type: FeelType
    # Names visible to the body: direct requirements (decisions and BKMs) or parameters
    requirements: tuple[str, ...] = ()
    body: Optional[CompiledBody] = None
    # BKM parameters; decision service input data followed by input decisions
    parameters: tuple[tuple[str, FeelType], ...] = ()
    # Invocables to evaluate or bind in the caller's scope, in order
    closure: tuple[str, ...] = ()
    # Input data values the closure reads from the input context
    inputs: tuple[str, ...] = ()
    output_decisions: tuple[str, ...] = ()
    input_decisions: tuple[str, ...] = ()
    input_data: tuple[str, ...] = ()
    # Decision service only: encapsulated/output decisions and BKMs in order
    internal_plan: tuple[str, ...] = ()

    @property
    def key(self) -> tuple[str, str]:
        return (self.namespace, self.name)


@dataclass(frozen=True)
class EvaluationGraph:
    """All invocables of one model keyed by (namespace, name). Read-only."""

    name: str
    namespace: str
    invocables: Mapping[tuple[str, str], Invocable]
    input_types: Mapping[str, FeelType]
    dependency_graph: nx.DiGraph = field(repr=False, compare=False)

    def get(self, namespace: str, name: str) -> Invocable:
        invocable = self.invocables.get((namespace, name))
        if invocable is None:
            raise InvocableNotFoundError(namespace, name)
        return invocable

    def lookup(self, name: str) -> Invocable:
        return self.get(self.namespace, name)

    def names(self) -> list[str]:
        return sorted(name for _, name in self.invocables)

    def dependencies(self, name: str) -> list[str]:
        """Direct requirements of an artifact (input data included)."""
        return sorted(self.dependency_graph.predecessors(name))


# -----------------------------------------------------------------------------
# Boxed expression compilation
# -----------------------------------------------------------------------------


def compile_boxed(expression: Any, engine: FeelEngine, names: list[str], owner: str, functions: set[str]) -> CompiledBody:
    """Compile a boxed expression into a callable over a scope."""
    if isinstance(expression, LiteralExpression):
        try:
            return engine.compile_expression(expression.text, names)
        except ExpressionError as e:
            raise BuildError(f"'{owner}': {e.message}") from e

    if isinstance(expression, DecisionTable):
        table = CompiledDecisionTable(expression, engine=engine, names=names, label=f"decision table of '{owner}'")
        return table.evaluate

    if isinstance(expression, BoxedContext):
        return _compile_context(expression, engine, names, owner, functions)

    if isinstance(expression, Invocation):
        if expression.callee not in functions:
            raise UnresolvedReferenceError(owner, "knowledge", expression.callee)
        callee = expression.callee
        bindings = [
            (binding.name, compile_boxed(binding.value, engine, names, owner, functions))
            for binding in expression.bindings
        ]

        def invoke(scope: Scope) -> Any:
            function = scope.get(callee)
            if not isinstance(function, FeelFunction):
                raise ExpressionError(f"'{callee}' is not bound to a function")
            return function.invoke([], {name: value(scope) for name, value in bindings})

        return invoke

    raise BuildError(f"'{owner}': unsupported boxed expression {type(expression).__name__}")


def _compile_context(
    context: BoxedContext, engine: FeelEngine, names: list[str], owner: str, functions: set[str]
) -> CompiledBody:
    entries: list[tuple[Optional[str], CompiledBody]] = []
    visible = list(names)
    for entry in context.entries:
        entries.append((entry.name, compile_boxed(entry.value, engine, visible, owner, functions)))
        if entry.name:
            visible.append(entry.name)
    if sum(1 for name, _ in entries if name is None) > 1:
        raise BuildError(f"'{owner}': a boxed context has at most one result entry")

    def evaluate(scope: Scope) -> Any:
        local: dict[str, Any] = {}
        chained = ChainMap(local, scope)
        result: Any = None
        has_result = False
        for name, value in entries:
            if name is None:
                result = value(chained)
                has_result = True
            else:
                local[name] = value(chained)
        return result if has_result else dict(local)

    return evaluate


# -----------------------------------------------------------------------------
# Builder
# -----------------------------------------------------------------------------


class _Builder:
    def __init__(self, definitions: Definitions, engine: FeelEngine):
        self.definitions = definitions
        self.engine = engine
        self.types = TypeResolver(definitions, engine)
        self.namespace = definitions.namespace
        self.inputs = {item.name: item for item in definitions.input_data}
        self.decisions = {d.name: d for d in definitions.decisions}
        self.bkms = {b.name: b for b in definitions.business_knowledge_models}
        self.services = {s.name: s for s in definitions.decision_services}
        self.graph = nx.DiGraph()

    # names and references

    def check_unique_names(self) -> None:
        seen: dict[str, str] = {}
        groups = [
            (INPUT_DATA, self.definitions.input_data),
            (InvocableKind.DECISION.value, self.definitions.decisions),
            (InvocableKind.BUSINESS_KNOWLEDGE_MODEL.value, self.definitions.business_knowledge_models),
            (InvocableKind.DECISION_SERVICE.value, self.definitions.decision_services),
        ]
        for kind, artifacts in groups:
            for artifact in artifacts:
                if artifact.name in seen:
                    raise BuildError(
                        f"duplicate name '{artifact.name}' ({seen[artifact.name]} and {kind})"
                    )
                seen[artifact.name] = kind

    def require(self, owner: str, kind: str, reference: str, table: Mapping[str, Any]) -> None:
        if reference not in table:
            raise UnresolvedReferenceError(owner, kind, reference)
        self.graph.add_edge(reference, owner)

    def require_knowledge(self, owner: str, reference: str) -> None:
        if reference not in self.bkms and reference not in self.services:
            raise UnresolvedReferenceError(owner, "knowledge", reference)
        self.graph.add_edge(reference, owner)

    def add_nodes(self) -> None:
        for name in self.inputs:
            self.graph.add_node(name, kind=INPUT_DATA)
        for name in self.decisions:
            self.graph.add_node(name, kind=InvocableKind.DECISION)
        for name in self.bkms:
            self.graph.add_node(name, kind=InvocableKind.BUSINESS_KNOWLEDGE_MODEL)
        for name in self.services:
            self.graph.add_node(name, kind=InvocableKind.DECISION_SERVICE)

    def add_edges(self) -> None:
        for decision in self.decisions.values():
            for name in decision.required_decisions:
                self.require(decision.name, "decision", name, self.decisions)
            for name in decision.required_inputs:
                self.require(decision.name, INPUT_DATA, name, self.inputs)
            for name in decision.required_knowledge:
                self.require_knowledge(decision.name, name)
        for bkm in self.bkms.values():
            for name in bkm.required_knowledge:
                self.require_knowledge(bkm.name, name)
        for service in self.services.values():
            for name in [*service.output_decisions, *service.encapsulated_decisions, *service.input_decisions]:
                self.require(service.name, "decision", name, self.decisions)
            for name in service.input_data:
                self.require(service.name, INPUT_DATA, name, self.inputs)

    def check_acyclic(self) -> None:
        try:
            cycle = nx.find_cycle(self.graph)
        except nx.NetworkXNoCycle:
            return
        path = [edge[0] for edge in cycle] + [cycle[0][0]]
        raise DependencyCycleError(path)

    # ordering

    def scope_graph(self) -> nx.DiGraph:
        """
        Dependency graph as seen from a caller's scope: a decision service is
        called as a function, so its own requirements are not part of it.
        """
        scoped = self.graph.copy()
        scoped.remove_edges_from(
            [(source, target) for source, target in self.graph.edges if target in self.services]
        )
        return scoped

    def ordered(self, graph: nx.DiGraph, names: Iterable[str]) -> tuple[str, ...]:
        return tuple(nx.lexicographical_topological_sort(graph.subgraph(names)))

    def split(self, graph: nx.DiGraph, names: set[str]) -> tuple[tuple[str, ...], tuple[str, ...]]:
        """Return (invocables in evaluation order, input data names)."""
        inputs = tuple(sorted(name for name in names if name in self.inputs))
        invocables = {name for name in names if name not in self.inputs}
        return self.ordered(graph, invocables), inputs

    # compilation

    def body_names(self, decision: Decision) -> list[str]:
        return [*decision.required_inputs, *decision.required_decisions, *decision.required_knowledge]

    def compile_decision(self, decision: Decision, scoped: nx.DiGraph) -> Invocable:
        names = self.body_names(decision)
        body = None
        if decision.expression is not None:
            body = compile_boxed(decision.expression, self.engine, names, decision.name, set(decision.required_knowledge))
        closure, inputs = self.split(scoped, nx.ancestors(scoped, decision.name))
        return Invocable(
            namespace=self.namespace,
            name=decision.name,
            kind=InvocableKind.DECISION,
            output_type=self.types.resolve(decision.type_ref),
            requirements=tuple(names),
            body=body,
            closure=closure,
            inputs=inputs,
        )

    def compile_bkm(self, bkm: BusinessKnowledgeModel, scoped: nx.DiGraph) -> Invocable:
        parameters = [p.name for p in bkm.encapsulated_logic.parameters]
        names = [*parameters, *bkm.required_knowledge]
        body = compile_boxed(bkm.encapsulated_logic.body, self.engine, names, bkm.name, set(bkm.required_knowledge))
        closure, _ = self.split(scoped, nx.ancestors(scoped, bkm.name))
        return Invocable(
            namespace=self.namespace,
            name=bkm.name,
            kind=InvocableKind.BUSINESS_KNOWLEDGE_MODEL,
            output_type=self.types.resolve(bkm.type_ref),
            requirements=tuple(names),
            body=body,
            parameters=tuple((p.name, self.types.resolve(p.type_ref)) for p in bkm.encapsulated_logic.parameters),
            closure=closure,
        )

    def compile_service(self, service: DecisionService, scoped: nx.DiGraph) -> Invocable:
        # Internal plan: closure of the outputs, stopping at input decisions
        internal = scoped.copy()
        internal.remove_nodes_from(service.input_decisions)
        planned: set[str] = set()
        for output in service.output_decisions:
            if output in service.input_decisions:
                raise BuildError(f"decision service '{service.name}': '{output}' is both an input and an output decision")
            planned |= nx.ancestors(internal, output) | {output}

        allowed = set(service.output_decisions) | set(service.encapsulated_decisions)
        for name in sorted(planned):
            if name in self.decisions and name not in allowed:
                raise BuildError(
                    f"decision service '{service.name}' needs decision '{name}' "
                    f"which is neither encapsulated nor an input decision"
                )
            if name in self.inputs and name not in service.input_data:
                raise BuildError(
                    f"decision service '{service.name}' needs input data '{name}' which is not a service input"
                )
        internal_plan, _ = self.split(internal, planned)

        # Outer closure: what the caller evaluates to supply the input decisions
        outer: set[str] = set(service.input_data)
        for name in service.input_decisions:
            outer |= nx.ancestors(scoped, name) | {name}
        closure, inputs = self.split(scoped, outer)

        parameters = [(name, self.types.resolve(self.inputs[name].type_ref)) for name in service.input_data]
        parameters += [(name, self.types.resolve(self.decisions[name].type_ref)) for name in service.input_decisions]
        return Invocable(
            namespace=self.namespace,
            name=service.name,
            kind=InvocableKind.DECISION_SERVICE,
            output_type=self.types.resolve(service.type_ref),
            parameters=tuple(parameters),
            closure=closure,
            inputs=inputs,
            output_decisions=tuple(service.output_decisions),
            input_decisions=tuple(service.input_decisions),
            input_data=tuple(service.input_data),
            internal_plan=internal_plan,
        )

    def build(self) -> EvaluationGraph:
        self.check_unique_names()
        self.add_nodes()
        self.add_edges()
        self.check_acyclic()
        scoped = self.scope_graph()

        invocables: dict[tuple[str, str], Invocable] = {}
        for decision in self.definitions.decisions:
            invocable = self.compile_decision(decision, scoped)
            invocables[invocable.key] = invocable
        for bkm in self.definitions.business_knowledge_models:
            invocable = self.compile_bkm(bkm, scoped)
            invocables[invocable.key] = invocable
        for service in self.definitions.decision_services:
            invocable = self.compile_service(service, scoped)
            invocables[invocable.key] = invocable

        input_types = {name: self.types.resolve(item.type_ref) for name, item in self.inputs.items()}
        return EvaluationGraph(
            name=self.definitions.name,
            namespace=self.namespace,
            invocables=MappingProxyType(invocables),
            input_types=MappingProxyType(input_types),
            dependency_graph=nx.freeze(self.graph),
        )


def build(definitions: Definitions, engine: Optional[FeelEngine] = None) -> EvaluationGraph:
    """
    Validate and compile definitions.
    Raises ModelValidationError or BuildError; never returns a partial graph.
    """
    validate(definitions)
    graph = _Builder(definitions, engine or get_default_engine()).build()
    logger.debug(
        "Built model %s (%s): %d invocables",
        definitions.name,
        definitions.namespace,
        len(graph.invocables),
    )
    return graph
