"""
DMN definitions data model.

The in-memory definitions tree handed to the validator and the model builder:
item definitions, input data, decisions, business knowledge models (BKMs),
decision services and the boxed expressions that form their bodies.
All models are Pydantic v2, so a JSON document matching the schema is a
loadable model file.
"""

import json
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------


class HitPolicy(str, Enum):
    """How the matched rules of a decision table combine into a result."""

    UNIQUE = "UNIQUE"
    ANY = "ANY"
    PRIORITY = "PRIORITY"
    FIRST = "FIRST"
    RULE_ORDER = "RULE ORDER"
    OUTPUT_ORDER = "OUTPUT ORDER"
    COLLECT = "COLLECT"


class Aggregation(str, Enum):
    """Aggregator applied to the outputs of a COLLECT table."""

    LIST = "LIST"
    SUM = "SUM"
    MIN = "MIN"
    MAX = "MAX"
    COUNT = "COUNT"


# -----------------------------------------------------------------------------
# Item definitions
# -----------------------------------------------------------------------------


class ItemDefinition(BaseModel):
    """Named type declaration; structural when it has components."""

    name: str = Field(..., description="Type name, unique within its defining scope")
    type_ref: Optional[str] = Field(
        None,
        description="Name of a FEEL type or of another item definition",
    )
    item_components: list["ItemDefinition"] = Field(
        default_factory=list,
        description="Nested component definitions (structural decomposition)",
    )
    is_collection: bool = Field(False, description="Values are lists of the base type")
    allowed_values: Optional[str] = Field(
        None,
        description="FEEL unary tests restricting the allowed values (e.g. '\"low\",\"high\"')",
    )

    model_config = {"extra": "forbid"}


ItemDefinition.model_rebuild()


class InputData(BaseModel):
    """A model input bound from the caller's input context."""

    name: str = Field(..., description="Variable name of the input")
    type_ref: Optional[str] = Field(None, description="Declared type of the input")

    model_config = {"extra": "forbid"}


# -----------------------------------------------------------------------------
# Boxed expressions
# -----------------------------------------------------------------------------


class LiteralExpression(BaseModel):
    """A FEEL expression in textual form."""

    kind: Literal["literal"] = "literal"
    text: str = Field(..., description="FEEL expression text")

    model_config = {"extra": "forbid"}


class InputClause(BaseModel):
    """Decision table input column."""

    input_expression: str = Field(..., description="FEEL expression producing the column value")
    input_values: Optional[str] = Field(
        None,
        description="FEEL unary tests the input value must satisfy",
    )

    model_config = {"extra": "forbid"}


class OutputClause(BaseModel):
    """Decision table output column."""

    name: Optional[str] = Field(
        None,
        description="Component name; required when the table has several outputs",
    )
    output_values: Optional[str] = Field(
        None,
        description="Comma separated output values in decreasing priority",
    )
    default_output_entry: Optional[str] = Field(
        None,
        description="FEEL expression used when no rule matches (single hit policies)",
    )

    model_config = {"extra": "forbid"}


class Rule(BaseModel):
    """One row of a decision table."""

    input_entries: list[str] = Field(
        default_factory=list,
        description="Unary tests, one per input clause; '-' matches anything",
    )
    output_entries: list[str] = Field(
        default_factory=list,
        description="FEEL expressions, one per output clause",
    )
    annotation: Optional[str] = Field(None, description="Free-text rule annotation")

    model_config = {"extra": "forbid"}


class DecisionTable(BaseModel):
    """Rule table with a hit policy."""

    kind: Literal["decision_table"] = "decision_table"
    hit_policy: HitPolicy = Field(HitPolicy.UNIQUE, description="Hit policy")
    aggregation: Optional[Aggregation] = Field(
        None,
        description="Aggregator for COLLECT tables (defaults to LIST)",
    )
    inputs: list[InputClause] = Field(default_factory=list, description="Input clauses")
    outputs: list[OutputClause] = Field(..., min_length=1, description="Output clauses")
    rules: list[Rule] = Field(default_factory=list, description="Rules in table order")

    model_config = {"extra": "forbid"}


class ContextEntry(BaseModel):
    """Entry of a boxed context; an entry without a name is the final result."""

    name: Optional[str] = Field(None, description="Entry name, None for the result entry")
    value: "BoxedExpression" = Field(..., description="Entry value expression")

    model_config = {"extra": "forbid"}


class BoxedContext(BaseModel):
    """Boxed context: entries evaluated in order, each visible to the next."""

    kind: Literal["context"] = "context"
    entries: list[ContextEntry] = Field(default_factory=list)

    model_config = {"extra": "forbid"}


class Binding(BaseModel):
    """Parameter binding of a boxed invocation."""

    name: str = Field(..., description="Parameter name of the callee")
    value: "BoxedExpression" = Field(..., description="Argument expression")

    model_config = {"extra": "forbid"}


class Invocation(BaseModel):
    """Boxed invocation of a BKM or decision service."""

    kind: Literal["invocation"] = "invocation"
    callee: str = Field(..., description="Name of the invoked BKM or decision service")
    bindings: list[Binding] = Field(default_factory=list)

    model_config = {"extra": "forbid"}


BoxedExpression = Annotated[
    Union[LiteralExpression, DecisionTable, BoxedContext, Invocation],
    Field(discriminator="kind"),
]

ContextEntry.model_rebuild()
Binding.model_rebuild()
BoxedContext.model_rebuild()
Invocation.model_rebuild()


class Parameter(BaseModel):
    """Formal parameter of a BKM."""

    name: str
    type_ref: Optional[str] = None

    model_config = {"extra": "forbid"}


class FunctionDefinition(BaseModel):
    """Encapsulated logic of a BKM."""

    parameters: list[Parameter] = Field(default_factory=list)
    body: BoxedExpression = Field(..., description="Function body")

    model_config = {"extra": "forbid"}


# -----------------------------------------------------------------------------
# Invocables
# -----------------------------------------------------------------------------


class Decision(BaseModel):
    """A decision: a named boxed expression over its requirements."""

    name: str = Field(..., description="Decision (and variable) name")
    type_ref: Optional[str] = Field(None, description="Declared output type")
    description: Optional[str] = None
    required_decisions: list[str] = Field(default_factory=list, description="Information requirements on decisions")
    required_inputs: list[str] = Field(default_factory=list, description="Information requirements on input data")
    required_knowledge: list[str] = Field(
        default_factory=list,
        description="Knowledge requirements on BKMs or decision services",
    )
    expression: Optional[BoxedExpression] = Field(None, description="Decision logic")

    model_config = {"extra": "forbid"}


class BusinessKnowledgeModel(BaseModel):
    """Reusable function invoked by decisions and other BKMs."""

    name: str = Field(..., description="BKM (and function) name")
    type_ref: Optional[str] = Field(None, description="Declared result type")
    description: Optional[str] = None
    required_knowledge: list[str] = Field(default_factory=list)
    encapsulated_logic: FunctionDefinition

    model_config = {"extra": "forbid"}


class DecisionService(BaseModel):
    """Invocable wrapping a sub-graph of decisions behind declared outputs."""

    name: str = Field(..., description="Decision service name")
    type_ref: Optional[str] = Field(None, description="Declared result type")
    description: Optional[str] = None
    output_decisions: list[str] = Field(..., min_length=1)
    encapsulated_decisions: list[str] = Field(default_factory=list)
    input_decisions: list[str] = Field(default_factory=list)
    input_data: list[str] = Field(default_factory=list)

    model_config = {"extra": "forbid"}


class Definitions(BaseModel):
    """Complete decision model."""

    name: str = Field(..., description="Model name, used in invocable paths")
    namespace: str = Field(..., description="Model namespace")
    item_definitions: list[ItemDefinition] = Field(default_factory=list)
    input_data: list[InputData] = Field(default_factory=list)
    decisions: list[Decision] = Field(default_factory=list)
    business_knowledge_models: list[BusinessKnowledgeModel] = Field(default_factory=list)
    decision_services: list[DecisionService] = Field(default_factory=list)

    model_config = {"extra": "forbid"}


# -----------------------------------------------------------------------------
# TestCase (TCK-style)
# -----------------------------------------------------------------------------


class TestCase(BaseModel):
    """A single conformance case: invoke an artifact, compare the result."""

    __test__ = False

    id: str = Field(..., description="Unique test case ID")
    invocable: str = Field(..., description="Name of the invocable under test")
    input_values: dict[str, Any] = Field(default_factory=dict)
    expected: Any = Field(None, description="Expected result value")
    expected_error: Optional[str] = Field(
        None,
        description="Expected error code instead of a value",
    )

    model_config = {"extra": "allow"}


# -----------------------------------------------------------------------------
# JSON Schema (versioned, for validation and docs)
# -----------------------------------------------------------------------------

SCHEMA_VERSION = "1.0.0"


def get_definitions_json_schema() -> dict[str, Any]:
    """
    Return the JSON schema of a model file.
    Root is Definitions; $defs include all nested types.
    """
    schema = Definitions.model_json_schema()
    return {
        "$schema": "https://json-schema.org/draft/2020-12/schema",
        "title": "DMN Engine Definitions Schema",
        "description": "Decision model definitions evaluated by the DMN engine",
        "version": SCHEMA_VERSION,
        **{k: v for k, v in schema.items() if k not in ("$schema", "title", "description")},
    }


def load_definitions(path: Union[str, Path]) -> Definitions:
    """Read a JSON model file into a Definitions tree."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return Definitions.model_validate(data)
