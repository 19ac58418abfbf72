"""
DMN engine data models.

These models define the canonical definitions tree consumed by validation,
model building and evaluation. For the wire contract of the evaluation
endpoint, see shared.schemas.
"""

from dmn_engine.models.definitions import (
    Aggregation,
    Binding,
    BoxedContext,
    BoxedExpression,
    BusinessKnowledgeModel,
    ContextEntry,
    Decision,
    DecisionService,
    DecisionTable,
    Definitions,
    FunctionDefinition,
    HitPolicy,
    InputClause,
    InputData,
    Invocation,
    ItemDefinition,
    LiteralExpression,
    OutputClause,
    Parameter,
    Rule,
    TestCase,
    get_definitions_json_schema,
    load_definitions,
)

__all__ = [
    "Aggregation",
    "Binding",
    "BoxedContext",
    "BoxedExpression",
    "BusinessKnowledgeModel",
    "ContextEntry",
    "Decision",
    "DecisionService",
    "DecisionTable",
    "Definitions",
    "FunctionDefinition",
    "HitPolicy",
    "InputClause",
    "InputData",
    "Invocation",
    "ItemDefinition",
    "LiteralExpression",
    "OutputClause",
    "Parameter",
    "Rule",
    "TestCase",
    "get_definitions_json_schema",
    "load_definitions",
]
