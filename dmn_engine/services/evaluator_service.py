"""
Model evaluator: orchestrates dependency-ordered evaluation of compiled models.

- ModelEvaluator holds the loaded EvaluationGraphs keyed by namespace. Loading
  builds a graph and publishes it with a copy-on-write swap under a lock, so
  in-flight requests keep the snapshot they started with.
- Each request gets a fresh context: input data seeded (coerced to declared
  types, missing ones null), the precomputed closure evaluated in order,
  then the target.
- BKMs and decision services are bound as FEEL functions; a decision service
  runs its internal plan in an isolated scope holding only its inputs.
"""

import logging
import os
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from dmn_engine.errors import DmnError, EvaluationError, InvocableNotFoundError
from dmn_engine.models.definitions import Definitions, load_definitions
from dmn_engine.services.builder_service import EvaluationGraph, Invocable, InvocableKind, build
from dmn_engine.services.feel_service import FeelEngine, FeelFunction, get_default_engine, to_feel
from dmn_engine.services.type_service import coerce
from dmn_engine.utils.logging import log_evaluation, log_model_load

logger = logging.getLogger(__name__)

STRICT_TYPES = os.getenv("DMN_STRICT_TYPES", "0").lower() in ("1", "true", "yes")


# -----------------------------------------------------------------------------
# Request
# -----------------------------------------------------------------------------


class _Request:
    """State of one evaluation request; never shared between requests."""

    def __init__(self, graph: EvaluationGraph, strict: bool):
        self.graph = graph
        self.strict = strict
        self._functions: dict[str, FeelFunction] = {}

    def run(self, target: Invocable, supplied: Mapping[str, Any]) -> Any:
        if target.kind is InvocableKind.BUSINESS_KNOWLEDGE_MODEL:
            arguments = {name: supplied.get(name) for name, _ in target.parameters}
            logger.debug("%s: evaluating target BKM", target.name)
            return self.function(target).invoke([], arguments)

        logger.debug("%s: resolving %d dependencies", target.name, len(target.closure))
        scope: dict[str, Any] = {
            name: coerce(supplied.get(name), self.graph.input_types[name], self.strict, label=f"input '{name}'")
            for name in target.inputs
        }
        steps = target.closure
        if target.kind is InvocableKind.DECISION_SERVICE:
            steps = self._service_steps(target, supplied, scope)

        for i, name in enumerate(steps, 1):
            logger.debug("%s: evaluating %s (%d of %d)", target.name, name, i, len(steps))
            self.step(self.graph.lookup(name), scope)

        logger.debug("%s: evaluating target", target.name)
        if target.kind is InvocableKind.DECISION:
            result = self.decide(target, scope)
        elif target.kind is InvocableKind.DECISION_SERVICE:
            result = self.serve(target, {name: scope.get(name) for name, _ in target.parameters})
        else:
            raise EvaluationError(f"unsupported invocable kind {target.kind!r}", target.name)
        logger.debug("%s: done", target.name)
        return result

    def _service_steps(self, target: Invocable, supplied: Mapping[str, Any], scope: dict[str, Any]) -> tuple[str, ...]:
        """Bind caller-supplied input decisions; return the steps still needed."""
        needed: set[str] = set()
        for name in target.input_decisions:
            if name in supplied:
                decision = self.graph.lookup(name)
                scope[name] = coerce(supplied[name], decision.output_type, self.strict, label=f"input decision '{name}'")
            else:
                needed |= set(self.graph.lookup(name).closure) | {name}
        return tuple(name for name in target.closure if name in needed)

    # steps

    def step(self, invocable: Invocable, scope: dict[str, Any]) -> None:
        if invocable.kind is InvocableKind.DECISION:
            scope[invocable.name] = self.decide(invocable, scope)
        elif invocable.kind in (InvocableKind.BUSINESS_KNOWLEDGE_MODEL, InvocableKind.DECISION_SERVICE):
            scope[invocable.name] = self.function(invocable)
        else:
            raise EvaluationError(f"unsupported invocable kind {invocable.kind!r}", invocable.name)

    def decide(self, decision: Invocable, scope: Mapping[str, Any]) -> Any:
        local = {name: scope.get(name) for name in decision.requirements}
        try:
            value = decision.body(local) if decision.body is not None else None
            return coerce(value, decision.output_type, self.strict, label=f"result of decision '{decision.name}'")
        except EvaluationError as e:
            raise e.attach_invocable(decision.name)

    def function(self, invocable: Invocable) -> FeelFunction:
        cached = self._functions.get(invocable.name)
        if cached is not None:
            return cached
        parameters = [name for name, _ in invocable.parameters]
        if invocable.kind is InvocableKind.BUSINESS_KNOWLEDGE_MODEL:
            function = FeelFunction(invocable.name, parameters, lambda bound: self.call(invocable, bound))
        elif invocable.kind is InvocableKind.DECISION_SERVICE:
            function = FeelFunction(invocable.name, parameters, lambda bound: self.serve(invocable, bound))
        else:
            raise EvaluationError(f"'{invocable.name}' is not a function", invocable.name)
        self._functions[invocable.name] = function
        return function

    def bind(self, invocable: Invocable, arguments: Mapping[str, Any]) -> dict[str, Any]:
        scope = {
            name: coerce(arguments.get(name), feel_type, self.strict, label=f"parameter '{name}' of '{invocable.name}'")
            for name, feel_type in invocable.parameters
        }
        if invocable.kind is InvocableKind.BUSINESS_KNOWLEDGE_MODEL:
            for name in invocable.closure:
                scope[name] = self.function(self.graph.lookup(name))
        return scope

    def call(self, bkm: Invocable, arguments: Mapping[str, Any]) -> Any:
        try:
            scope = self.bind(bkm, arguments)
            value = bkm.body(scope)
            return coerce(value, bkm.output_type, self.strict, label=f"result of '{bkm.name}'")
        except EvaluationError as e:
            raise e.attach_invocable(bkm.name)

    def serve(self, service: Invocable, arguments: Mapping[str, Any]) -> Any:
        try:
            scope = self.bind(service, arguments)
        except EvaluationError as e:
            raise e.attach_invocable(service.name)
        for name in service.internal_plan:
            self.step(self.graph.lookup(name), scope)
        if len(service.output_decisions) == 1:
            result = scope[service.output_decisions[0]]
        else:
            result = {name: scope[name] for name in service.output_decisions}
        try:
            return coerce(result, service.output_type, self.strict, label=f"result of '{service.name}'")
        except EvaluationError as e:
            raise e.attach_invocable(service.name)


# -----------------------------------------------------------------------------
# Evaluator / workspace
# -----------------------------------------------------------------------------


@dataclass
class LoadReport:
    """Outcome of loading a directory of model files."""

    loaded: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)


class ModelEvaluator:
    """Registry of compiled models and entry point for evaluation requests."""

    def __init__(self, engine: Optional[FeelEngine] = None, strict_types: bool = STRICT_TYPES):
        self._engine = engine or get_default_engine()
        self._strict = strict_types
        self._lock = threading.Lock()
        self._graphs: dict[str, EvaluationGraph] = {}

    @property
    def strict_types(self) -> bool:
        return self._strict

    # loading

    def compile(self, definitions: Definitions) -> EvaluationGraph:
        """Build a graph without publishing it; logs the outcome."""
        start = time.perf_counter()
        try:
            graph = build(definitions, self._engine)
        except DmnError as e:
            log_model_load(
                logger,
                model=definitions.name,
                namespace=definitions.namespace,
                duration_sec=time.perf_counter() - start,
                success=False,
                error=str(e),
            )
            raise
        log_model_load(
            logger,
            model=definitions.name,
            namespace=definitions.namespace,
            invocables=len(graph.invocables),
            duration_sec=time.perf_counter() - start,
        )
        return graph

    def load(self, definitions: Definitions) -> EvaluationGraph:
        """Build and publish a model, replacing any model with the same namespace."""
        graph = self.compile(definitions)
        self._publish({graph.namespace: graph})
        return graph

    def _publish(self, graphs: dict[str, EvaluationGraph], replace_all: bool = False) -> None:
        with self._lock:
            current = {} if replace_all else dict(self._graphs)
            for graph in graphs.values():
                clash = next(
                    (g for g in current.values() if g.name == graph.name and g.namespace != graph.namespace),
                    None,
                )
                if clash is not None and clash.namespace not in graphs:
                    raise DmnError(
                        f"model name '{graph.name}' is already used by namespace '{clash.namespace}'"
                    )
            current.update(graphs)
            self._graphs = current

    def unload(self, namespace: str) -> bool:
        with self._lock:
            if namespace not in self._graphs:
                return False
            graphs = dict(self._graphs)
            del graphs[namespace]
            self._graphs = graphs
        logger.info("Unloaded model namespace %s", namespace)
        return True

    def load_file(self, path: Union[str, Path]) -> EvaluationGraph:
        return self.load(load_definitions(path))

    def load_directory(self, directory: Union[str, Path], replace: bool = False) -> LoadReport:
        """
        Load every *.json model in a directory. Files that fail are reported
        and skipped; with replace=True the loaded set replaces all models in
        one swap.
        """
        report = LoadReport()
        graphs: dict[str, EvaluationGraph] = {}
        for path in sorted(Path(directory).glob("*.json")):
            try:
                definitions = load_definitions(path)
                graph = self.compile(definitions)
            except (DmnError, ValueError, OSError) as e:
                logger.warning("Skipping model file %s: %s", path.name, e)
                report.errors[path.name] = str(e)
                continue
            graphs[graph.namespace] = graph
            report.loaded.append(graph.name)
        self._publish(graphs, replace_all=replace)
        return report

    # lookup

    def graphs(self) -> list[EvaluationGraph]:
        snapshot = self._graphs
        return sorted(snapshot.values(), key=lambda g: g.name)

    def invocables(self) -> list[dict[str, str]]:
        """Every loaded invocable with its kind and evaluation path."""
        return [
            {
                "model": graph.name,
                "namespace": graph.namespace,
                "name": invocable.name,
                "kind": invocable.kind.value,
                "path": f"{graph.name}/{invocable.name}",
            }
            for graph in self.graphs()
            for invocable in sorted(graph.invocables.values(), key=lambda i: i.name)
        ]

    def resolve_path(self, path: str) -> tuple[str, str]:
        """Map '<model name>/<invocable name>' to (namespace, name)."""
        model, sep, name = path.partition("/")
        if not sep or not model or not name:
            raise InvocableNotFoundError(model, path)
        for graph in self._graphs.values():
            if graph.name == model:
                return graph.namespace, name
        raise InvocableNotFoundError(model, name)

    # evaluation

    def evaluate_invocable(
        self,
        namespace: str,
        name: str,
        input_context: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Evaluate one invocable of a loaded model against named input values."""
        graph = self._graphs.get(namespace)
        if graph is None:
            raise InvocableNotFoundError(namespace, name)
        target = graph.get(namespace, name)
        supplied = to_feel(dict(input_context or {}))
        start = time.perf_counter()
        try:
            result = _Request(graph, self._strict).run(target, supplied)
        except EvaluationError as e:
            log_evaluation(
                logger,
                namespace=namespace,
                invocable=name,
                dependencies=len(target.closure),
                duration_sec=time.perf_counter() - start,
                success=False,
                error=str(e),
            )
            raise
        log_evaluation(
            logger,
            namespace=namespace,
            invocable=name,
            dependencies=len(target.closure),
            duration_sec=time.perf_counter() - start,
        )
        return result

    def evaluate(self, path: str, input_context: Optional[Mapping[str, Any]] = None) -> Any:
        namespace, name = self.resolve_path(path)
        return self.evaluate_invocable(namespace, name, input_context)


def evaluate_invocable(
    definitions: Definitions,
    name: str,
    input_context: Optional[Mapping[str, Any]] = None,
    strict_types: bool = STRICT_TYPES,
) -> Any:
    """One-shot helper: build the definitions and evaluate a single invocable."""
    evaluator = ModelEvaluator(strict_types=strict_types)
    evaluator.load(definitions)
    return evaluator.evaluate_invocable(definitions.namespace, name, input_context)
