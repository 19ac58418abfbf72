"""
Exception classes for the DMN engine.

Every error carries a human-readable message and a short machine code
(e.g. item_definitions_cycle, unresolved_reference) so the HTTP layer can
report it without inspecting the class.
"""

from typing import Optional


class DmnError(Exception):
    """Base exception for model validation, building and evaluation."""

    code = "dmn_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


# -----------------------------------------------------------------------------
# Model acceptance
# -----------------------------------------------------------------------------


class ModelValidationError(DmnError):
    """The definitions were rejected before building."""

    code = "validation_error"


class ItemDefinitionCycleError(ModelValidationError):
    """Item definitions reference each other in a cycle."""

    code = "item_definitions_cycle"

    def __init__(self):
        super().__init__("item definitions form a cycle")


# -----------------------------------------------------------------------------
# Model compilation
# -----------------------------------------------------------------------------


class BuildError(DmnError):
    """The definitions could not be compiled into an evaluation graph."""

    code = "build_error"


class UnresolvedReferenceError(BuildError):
    """A requirement or invocation names an artifact that does not exist."""

    code = "unresolved_reference"

    def __init__(self, owner: str, kind: str, reference: str):
        self.owner = owner
        self.kind = kind
        self.reference = reference
        super().__init__(f"'{owner}' requires {kind} '{reference}' which is not defined")


class DependencyCycleError(BuildError):
    """Decisions, BKMs or decision services depend on each other recursively."""

    code = "dependency_cycle"

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(f"invocables form a dependency cycle: {' -> '.join(cycle)}")


class UnknownTypeReferenceError(BuildError):
    """A type_ref names neither a FEEL type nor an item definition."""

    code = "unknown_type_reference"

    def __init__(self, type_ref: str):
        self.type_ref = type_ref
        super().__init__(f"unknown type reference '{type_ref}'")


# -----------------------------------------------------------------------------
# Lookup
# -----------------------------------------------------------------------------


class InvocableNotFoundError(DmnError, LookupError):
    """The requested namespace, model or invocable is not loaded."""

    code = "invocable_not_found"

    def __init__(self, namespace: str, name: str):
        self.namespace = namespace
        self.name = name
        super().__init__(f"no such invocable '{name}' in namespace '{namespace}'")


# -----------------------------------------------------------------------------
# Evaluation
# -----------------------------------------------------------------------------


class EvaluationError(DmnError):
    """A request failed while evaluating an invocable.

    ``invocable`` is the name of the innermost invocable that failed; it is
    set once, when the error first leaves that invocable.
    """

    code = "evaluation_error"

    def __init__(self, message: str, invocable: Optional[str] = None):
        self.detail = message
        self.invocable = invocable
        super().__init__(self._compose())

    def _compose(self) -> str:
        if self.invocable:
            return f"evaluation of '{self.invocable}' failed: {self.detail}"
        return self.detail

    def attach_invocable(self, name: str) -> "EvaluationError":
        if self.invocable is None:
            self.invocable = name
            self.message = self._compose()
            self.args = (self.message,)
        return self


class DmnTypeError(EvaluationError):
    """A value does not match its declared type, or an aggregator got non-numbers."""

    code = "type_error"


class HitPolicyError(EvaluationError):
    """The matched rules cannot be combined under the table's hit policy."""

    code = "hit_policy_error"


class ExpressionError(EvaluationError):
    """The FEEL engine failed to compile or evaluate an expression."""

    code = "expression_error"


# -----------------------------------------------------------------------------
# Request boundary
# -----------------------------------------------------------------------------


class MissingAttributeError(DmnError):
    """A required request attribute is absent."""

    code = "missing_attribute"

    def __init__(self, attribute: str):
        self.attribute = attribute
        super().__init__(f"missing attribute: {attribute}")
