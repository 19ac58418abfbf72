"""DMN engine services (FEEL, types, validation, building, evaluation, TCK)."""

from dmn_engine.services.builder_service import (
    EvaluationGraph,
    Invocable,
    InvocableKind,
    build,
)
from dmn_engine.services.decision_table_service import (
    CompiledDecisionTable,
    build_decision_table_evaluator,
)
from dmn_engine.services.evaluator_service import (
    LoadReport,
    ModelEvaluator,
    evaluate_invocable,
)
from dmn_engine.services.feel_service import (
    FeelEngine,
    FeelFunction,
    SimpleFeelEngine,
    get_default_engine,
)
from dmn_engine.services.type_service import (
    TypeResolver,
    coerce,
    conforms,
)
from dmn_engine.services.validation_service import (
    ValidationIssue,
    validate,
    validate_definitions,
)

__all__ = [
    "EvaluationGraph",
    "Invocable",
    "InvocableKind",
    "build",
    "CompiledDecisionTable",
    "build_decision_table_evaluator",
    "LoadReport",
    "ModelEvaluator",
    "evaluate_invocable",
    "FeelEngine",
    "FeelFunction",
    "SimpleFeelEngine",
    "get_default_engine",
    "TypeResolver",
    "coerce",
    "conforms",
    "ValidationIssue",
    "validate",
    "validate_definitions",
]
