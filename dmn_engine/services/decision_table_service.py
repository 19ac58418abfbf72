"""
Decision table evaluation.

A table is compiled once (every FEEL text parsed, arities checked) into a
CompiledDecisionTable; evaluating it against a scope matches the rules in
table order and resolves the hit policy:

- UNIQUE, ANY, PRIORITY, FIRST: single result, default output or null
  when nothing matches
- RULE ORDER, OUTPUT ORDER: list of results
- COLLECT: list, or SUM / MIN / MAX / COUNT of the matched outputs

Output entries are evaluated only for matched rules.
"""

import logging
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping, NamedTuple, Optional

from dmn_engine.errors import (
    BuildError,
    DmnTypeError,
    EvaluationError,
    ExpressionError,
    HitPolicyError,
)
from dmn_engine.models.definitions import Aggregation, DecisionTable, HitPolicy
from dmn_engine.services.feel_service import (
    FEEL_DECIMAL,
    CompiledExpression,
    CompiledUnaryTests,
    FeelEngine,
    Scope,
    feel_equal,
    get_default_engine,
    is_number,
    to_feel,
)

logger = logging.getLogger(__name__)


class _InputColumn(NamedTuple):
    text: str
    expression: CompiledExpression
    allowed: Optional[CompiledUnaryTests]


class _OutputColumn(NamedTuple):
    name: Optional[str]
    priorities: list[Any]
    default: Optional[CompiledExpression]


class _CompiledRule(NamedTuple):
    index: int
    tests: list[CompiledUnaryTests]
    outputs: list[CompiledExpression]


# -----------------------------------------------------------------------------
# Compilation
# -----------------------------------------------------------------------------


class CompiledDecisionTable:
    """Decision table with all expressions compiled; immutable and reusable."""

    def __init__(
        self,
        table: DecisionTable,
        engine: Optional[FeelEngine] = None,
        names: Iterable[str] = (),
        label: str = "decision table",
    ):
        self.label = label
        self.hit_policy = table.hit_policy
        self.aggregation = table.aggregation
        engine = engine or get_default_engine()
        names = list(names)
        self._check_shape(table)

        self._inputs = [
            _InputColumn(
                text=clause.input_expression,
                expression=self._compile(
                    engine.compile_expression, clause.input_expression, names, f"input clause {i}"
                ),
                allowed=self._compile(
                    engine.compile_unary_tests, clause.input_values, names, f"input values of clause {i}"
                )
                if clause.input_values
                else None,
            )
            for i, clause in enumerate(table.inputs, 1)
        ]
        self._outputs = [
            _OutputColumn(
                name=clause.name,
                priorities=self._output_values(engine, clause.output_values, names, i),
                default=self._compile(
                    engine.compile_expression,
                    clause.default_output_entry,
                    names,
                    f"default output entry of clause {i}",
                )
                if clause.default_output_entry
                else None,
            )
            for i, clause in enumerate(table.outputs, 1)
        ]
        self._rules = [
            _CompiledRule(
                index=r,
                tests=[
                    self._compile(engine.compile_unary_tests, entry, names, f"rule {r} input entry {c}")
                    for c, entry in enumerate(rule.input_entries, 1)
                ],
                outputs=[
                    self._compile(engine.compile_expression, entry, names, f"rule {r} output entry {c}")
                    for c, entry in enumerate(rule.output_entries, 1)
                ],
            )
            for r, rule in enumerate(table.rules, 1)
        ]
        if self.hit_policy in (HitPolicy.PRIORITY, HitPolicy.OUTPUT_ORDER) and not any(
            column.priorities for column in self._outputs
        ):
            raise BuildError(f"{label}: {self.hit_policy.value} hit policy requires output values")

    def _check_shape(self, table: DecisionTable) -> None:
        for r, rule in enumerate(table.rules, 1):
            if len(rule.input_entries) != len(table.inputs):
                raise BuildError(
                    f"{self.label}: rule {r} has {len(rule.input_entries)} input entries, "
                    f"expected {len(table.inputs)}"
                )
            if len(rule.output_entries) != len(table.outputs):
                raise BuildError(
                    f"{self.label}: rule {r} has {len(rule.output_entries)} output entries, "
                    f"expected {len(table.outputs)}"
                )
        if len(table.outputs) > 1 and not all(clause.name for clause in table.outputs):
            raise BuildError(f"{self.label}: every output clause of a compound table needs a name")
        if table.aggregation is not None and table.hit_policy is not HitPolicy.COLLECT:
            raise BuildError(f"{self.label}: aggregation is only allowed with the COLLECT hit policy")
        if table.aggregation not in (None, Aggregation.LIST) and len(table.outputs) > 1:
            raise BuildError(f"{self.label}: {table.aggregation.value} needs a single output clause")

    def _compile(self, compile_fn: Callable[..., Any], text: str, names: list[str], where: str) -> Any:
        try:
            return compile_fn(text, names)
        except ExpressionError as e:
            raise BuildError(f"{self.label}: {where}: {e.message}") from e

    def _output_values(
        self, engine: FeelEngine, text: Optional[str], names: list[str], clause: int
    ) -> list[Any]:
        if not text:
            return []
        compiled = self._compile(engine.compile_expression, f"[{text}]", names, f"output values of clause {clause}")
        try:
            return compiled({})
        except EvaluationError as e:
            raise BuildError(f"{self.label}: output values of clause {clause}: {e.message}") from e

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def evaluate(self, scope: Scope) -> Any:
        values = []
        for c, column in enumerate(self._inputs, 1):
            try:
                value = column.expression(scope)
                allowed = column.allowed is None or column.allowed(value, scope)
            except EvaluationError as e:
                raise ExpressionError(f"{self.label}: input clause {c} ('{column.text}'): {e.message}") from e
            if not allowed:
                logger.warning("%s: value %r of input clause %d is not an allowed value", self.label, value, c)
                return None
            values.append(value)

        matched = [rule for rule in self._rules if self._matches(rule, values, scope)]
        logger.debug("%s: matched rules %s", self.label, [rule.index for rule in matched])
        return self._resolve(matched, scope)

    def _matches(self, rule: _CompiledRule, values: list[Any], scope: Scope) -> bool:
        for c, (test, value) in enumerate(zip(rule.tests, values), 1):
            try:
                if not test(value, scope):
                    return False
            except EvaluationError as e:
                raise ExpressionError(f"{self.label}: rule {rule.index} input entry {c}: {e.message}") from e
        return True

    def _rule_outputs(self, rule: _CompiledRule, scope: Scope) -> Any:
        results = []
        for c, expression in enumerate(rule.outputs, 1):
            try:
                results.append(expression(scope))
            except EvaluationError as e:
                raise ExpressionError(f"{self.label}: rule {rule.index} output entry {c}: {e.message}") from e
        if len(self._outputs) == 1:
            return results[0]
        return {column.name: value for column, value in zip(self._outputs, results)}

    def _default(self, scope: Scope) -> Any:
        if not any(column.default for column in self._outputs):
            return None
        defaults = []
        for c, column in enumerate(self._outputs, 1):
            try:
                defaults.append(column.default(scope) if column.default else None)
            except EvaluationError as e:
                raise ExpressionError(f"{self.label}: default output entry {c}: {e.message}") from e
        if len(self._outputs) == 1:
            return defaults[0]
        return {column.name: value for column, value in zip(self._outputs, defaults)}

    def _rank(self, output: Any) -> tuple[int, ...]:
        """Priority of an output: lower is higher priority, clause by clause."""
        rank = []
        for column in self._outputs:
            if not column.priorities:
                rank.append(0)
                continue
            value = output if len(self._outputs) == 1 else output.get(column.name)
            position = next(
                (i for i, candidate in enumerate(column.priorities) if feel_equal(value, candidate) is True),
                len(column.priorities),
            )
            rank.append(position)
        return tuple(rank)

    def _resolve(self, matched: list[_CompiledRule], scope: Scope) -> Any:
        policy = self.hit_policy
        indices = [rule.index for rule in matched]

        if policy is HitPolicy.UNIQUE:
            if len(matched) > 1:
                raise HitPolicyError(f"{self.label}: UNIQUE hit policy but rules {indices} match")
            return self._rule_outputs(matched[0], scope) if matched else self._default(scope)

        if policy is HitPolicy.FIRST:
            return self._rule_outputs(matched[0], scope) if matched else self._default(scope)

        if policy is HitPolicy.ANY:
            if not matched:
                return self._default(scope)
            results = [self._rule_outputs(rule, scope) for rule in matched]
            if any(feel_equal(results[0], other) is not True for other in results[1:]):
                raise HitPolicyError(f"{self.label}: ANY hit policy but rules {indices} produce different outputs")
            return results[0]

        if policy is HitPolicy.PRIORITY:
            if not matched:
                return self._default(scope)
            results = [self._rule_outputs(rule, scope) for rule in matched]
            ranks = [self._rank(result) for result in results]
            best = min(ranks)
            top = [result for result, rank in zip(results, ranks) if rank == best]
            if any(feel_equal(top[0], other) is not True for other in top[1:]):
                raise HitPolicyError(
                    f"{self.label}: PRIORITY hit policy but several rules share the highest priority"
                )
            return top[0]

        if policy is HitPolicy.RULE_ORDER:
            return [self._rule_outputs(rule, scope) for rule in matched]

        if policy is HitPolicy.OUTPUT_ORDER:
            results = [self._rule_outputs(rule, scope) for rule in matched]
            return sorted(results, key=self._rank)

        if policy is HitPolicy.COLLECT:
            return self._collect(matched, scope)

        raise EvaluationError(f"{self.label}: unsupported hit policy {policy!r}")

    def _collect(self, matched: list[_CompiledRule], scope: Scope) -> Any:
        aggregation = self.aggregation or Aggregation.LIST
        if aggregation is Aggregation.COUNT:
            return Decimal(len(matched))
        results = [self._rule_outputs(rule, scope) for rule in matched]
        if aggregation is Aggregation.LIST:
            return results
        if not results:
            return None
        for value in results:
            if not is_number(value):
                raise DmnTypeError(
                    f"{self.label}: COLLECT {aggregation.value} requires numeric outputs, got {value!r}"
                )
        numbers = [Decimal(v) if not isinstance(v, Decimal) else v for v in results]
        if aggregation is Aggregation.SUM:
            total = Decimal(0)
            for number in numbers:
                total = FEEL_DECIMAL.add(total, number)
            return total
        if aggregation is Aggregation.MIN:
            return min(numbers)
        if aggregation is Aggregation.MAX:
            return max(numbers)
        raise EvaluationError(f"{self.label}: unsupported aggregation {aggregation!r}")


# -----------------------------------------------------------------------------
# Standalone entry point
# -----------------------------------------------------------------------------


def build_decision_table_evaluator(
    table: DecisionTable,
    engine: Optional[FeelEngine] = None,
    names: Iterable[str] = (),
) -> Callable[[Mapping[str, Any]], Any]:
    """
    Compile a decision table outside of any model.
    Returns a reusable callable evaluating the table against a context of
    plain Python values (normalised to FEEL values first).
    """
    context_names = list(names)
    compiled = CompiledDecisionTable(table, engine=engine, names=context_names)

    def evaluate(context: Mapping[str, Any]) -> Any:
        return compiled.evaluate(to_feel(dict(context)))

    return evaluate
