"""
Item definition / type resolver.

Resolves type_ref strings to FEEL types: primitive tags, lists, structural
types built from item definition components, and types constrained by
allowed values. Values are coerced against a resolved type with DMN
semantics: a non-conforming value becomes null (or raises in strict mode).
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from dmn_engine.errors import DmnTypeError, UnknownTypeReferenceError
from dmn_engine.models.definitions import Definitions, ItemDefinition
from dmn_engine.services.feel_service import (
    CompiledUnaryTests,
    FeelEngine,
    get_default_engine,
    kind_of,
)

logger = logging.getLogger(__name__)

PRIMITIVE_KINDS = {
    "string": "string",
    "number": "number",
    "boolean": "boolean",
    "date": "date",
    "time": "time",
    "date and time": "date and time",
    "dateTime": "date and time",
    "days and time duration": "duration",
    "dayTimeDuration": "duration",
    "years and months duration": "duration",
    "yearMonthDuration": "duration",
    "context": "context",
}


# -----------------------------------------------------------------------------
# Types
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class AnyType:
    def __str__(self) -> str:
        return "Any"


@dataclass(frozen=True)
class PrimitiveType:
    tag: str

    def __str__(self) -> str:
        return self.tag


@dataclass(frozen=True)
class ListType:
    item: "FeelType"

    def __str__(self) -> str:
        return f"list<{self.item}>"


@dataclass(frozen=True)
class StructuralType:
    name: str
    components: tuple[tuple[str, "FeelType"], ...]

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class ConstrainedType:
    base: "FeelType"
    allowed_values: str
    tests: CompiledUnaryTests

    def __str__(self) -> str:
        return f"{self.base}[{self.allowed_values}]"


FeelType = Union[AnyType, PrimitiveType, ListType, StructuralType, ConstrainedType]

ANY = AnyType()


# -----------------------------------------------------------------------------
# Resolver
# -----------------------------------------------------------------------------


class TypeResolver:
    """Resolves type references against the item definitions of one model.

    Assumes the item definitions were validated acyclic.
    """

    def __init__(self, definitions: Definitions, engine: Optional[FeelEngine] = None):
        self._engine = engine or get_default_engine()
        self._items = {item.name: item for item in definitions.item_definitions}
        self._cache: dict[str, FeelType] = {}

    def resolve(self, type_ref: Optional[str]) -> FeelType:
        if not type_ref:
            return ANY
        name = type_ref.strip()
        if name.startswith("feel:"):
            name = name[len("feel:"):]
        if name == "Any":
            return ANY
        if name in PRIMITIVE_KINDS:
            return PrimitiveType(name)
        if name in self._cache:
            return self._cache[name]
        item = self._items.get(name)
        if item is None:
            raise UnknownTypeReferenceError(type_ref)
        resolved = self.resolve_item(item)
        self._cache[name] = resolved
        return resolved

    def resolve_item(self, item: ItemDefinition, qualified_name: Optional[str] = None) -> FeelType:
        name = qualified_name or item.name
        if item.item_components:
            base: FeelType = StructuralType(
                name=name,
                components=tuple(
                    (component.name, self.resolve_item(component, f"{name}.{component.name}"))
                    for component in item.item_components
                ),
            )
        else:
            base = self.resolve(item.type_ref)
        if item.allowed_values:
            base = ConstrainedType(
                base=base,
                allowed_values=item.allowed_values,
                tests=self._engine.compile_unary_tests(item.allowed_values),
            )
        if item.is_collection:
            base = ListType(base)
        return base


# -----------------------------------------------------------------------------
# Conformance
# -----------------------------------------------------------------------------


def conforms(value: Any, feel_type: FeelType) -> bool:
    """True when value is an instance of feel_type; null conforms to every type."""
    if value is None or isinstance(feel_type, AnyType):
        return True
    if isinstance(feel_type, PrimitiveType):
        return kind_of(value) == PRIMITIVE_KINDS[feel_type.tag]
    if isinstance(feel_type, ListType):
        return isinstance(value, list) and all(conforms(v, feel_type.item) for v in value)
    if isinstance(feel_type, StructuralType):
        if not isinstance(value, dict):
            return False
        return all(conforms(value.get(name), component) for name, component in feel_type.components)
    if isinstance(feel_type, ConstrainedType):
        return conforms(value, feel_type.base) and feel_type.tests(value, {})
    raise TypeError(f"unknown FEEL type {feel_type!r}")


def coerce(value: Any, feel_type: FeelType, strict: bool = False, label: str = "value") -> Any:
    """Return value converted to feel_type, or null when it does not conform.

    Applies the DMN singleton-list conversions before the conformance check.
    With strict=True a mismatch raises DmnTypeError instead.
    """
    if isinstance(feel_type, ListType) and value is not None and not isinstance(value, list):
        value = [value]
    elif not isinstance(feel_type, (ListType, AnyType)) and isinstance(value, list) and len(value) == 1:
        value = value[0]
    if conforms(value, feel_type):
        return value
    if strict:
        raise DmnTypeError(f"{label} {value!r} does not conform to type {feel_type}")
    logger.warning("%s %r does not conform to type %s, using null", label, value, feel_type)
    return None
