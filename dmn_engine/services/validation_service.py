"""
Structural validation of decision model definitions.

- validate: rejects definitions whose item definitions form a cycle
  (through direct self-reference, nested components or type_ref chains).
- validate_definitions: runs validation and a trial build, returning issue
  records for the validate endpoint instead of raising.
"""

import logging
import time
from typing import Optional

import networkx as nx
from pydantic import BaseModel, Field

from dmn_engine.errors import DmnError, ItemDefinitionCycleError
from dmn_engine.models.definitions import Definitions, ItemDefinition
from dmn_engine.utils.logging import log_validation_result

logger = logging.getLogger(__name__)

COMPONENT_REFERENCE = "component reference"
TYPE_REFERENCE = "type reference"


# -----------------------------------------------------------------------------
# ValidationIssue
# -----------------------------------------------------------------------------


class ValidationIssue(BaseModel):
    """A single validation issue."""

    code: str = Field(..., description="Error code (e.g. item_definitions_cycle, unresolved_reference)")
    message: str = Field(..., description="Human-readable message")
    artifact: Optional[str] = Field(None, description="Relevant artifact name if applicable")


# -----------------------------------------------------------------------------
# Item definition graph
# -----------------------------------------------------------------------------


def build_item_definition_graph(definitions: Definitions) -> nx.DiGraph:
    """
    One node per item definition (nested ones qualified with a dotted path)
    and per type_ref target; edges for component and type references.
    Forward references create the target node on first sight.
    """
    graph = nx.DiGraph()

    def register(name: str, item: ItemDefinition) -> None:
        graph.add_node(name)
        if item.type_ref:
            graph.add_edge(name, item.type_ref, kind=TYPE_REFERENCE)
        for component in item.item_components:
            component_name = f"{name}.{component.name}"
            graph.add_edge(name, component_name, kind=COMPONENT_REFERENCE)
            register(component_name, component)

    for item_definition in definitions.item_definitions:
        register(item_definition.name, item_definition)
    return graph


def validate(definitions: Definitions) -> Definitions:
    """Return the definitions unchanged, or raise ItemDefinitionCycleError."""
    start = time.perf_counter()
    graph = build_item_definition_graph(definitions)
    acyclic = nx.is_directed_acyclic_graph(graph)
    log_validation_result(
        logger,
        model=definitions.name,
        item_definitions=graph.number_of_nodes(),
        cycle_found=not acyclic,
        duration_sec=time.perf_counter() - start,
    )
    if not acyclic:
        raise ItemDefinitionCycleError()
    return definitions


# -----------------------------------------------------------------------------
# Issue collection
# -----------------------------------------------------------------------------


def validate_definitions(definitions: Definitions) -> list[ValidationIssue]:
    """
    Check: item definitions are acyclic, and the model compiles (references
    resolve, no dependency cycles, FEEL texts parse, type references exist).
    """
    from dmn_engine.services.builder_service import build

    try:
        build(definitions)
    except DmnError as e:
        artifact = getattr(e, "owner", None) or getattr(e, "invocable", None)
        return [ValidationIssue(code=e.code, message=e.message, artifact=artifact)]
    return []
