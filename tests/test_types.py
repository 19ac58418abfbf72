"""Tests for type resolution and value coercion."""

from decimal import Decimal

import pytest

from dmn_engine.errors import DmnTypeError, UnknownTypeReferenceError
from dmn_engine.models.definitions import Definitions, ItemDefinition
from dmn_engine.services.type_service import (
    ANY,
    ConstrainedType,
    ListType,
    PrimitiveType,
    StructuralType,
    TypeResolver,
    coerce,
    conforms,
)


@pytest.fixture
def resolver() -> TypeResolver:
    definitions = Definitions(
        name="Types",
        namespace="https://example.com/dmn/types",
        item_definitions=[
            ItemDefinition(name="tAmount", type_ref="number"),
            ItemDefinition(name="tAmounts", type_ref="tAmount", is_collection=True),
            ItemDefinition(name="tLevel", type_ref="string", allowed_values='"LOW","HIGH"'),
            ItemDefinition(
                name="tApplicant",
                item_components=[
                    ItemDefinition(name="Name", type_ref="string"),
                    ItemDefinition(name="Age", type_ref="tAmount"),
                ],
            ),
        ],
    )
    return TypeResolver(definitions)


def test_primitives_and_any(resolver):
    assert resolver.resolve("number") == PrimitiveType("number")
    assert resolver.resolve("feel:string") == PrimitiveType("string")
    assert resolver.resolve("days and time duration") == PrimitiveType("days and time duration")
    assert resolver.resolve(None) is ANY
    assert resolver.resolve("Any") is ANY


def test_item_definitions(resolver):
    assert resolver.resolve("tAmount") == PrimitiveType("number")
    assert resolver.resolve("tAmounts") == ListType(PrimitiveType("number"))
    applicant = resolver.resolve("tApplicant")
    assert isinstance(applicant, StructuralType)
    assert applicant.components == (("Name", PrimitiveType("string")), ("Age", PrimitiveType("number")))
    assert isinstance(resolver.resolve("tLevel"), ConstrainedType)


def test_unknown_type_reference(resolver):
    with pytest.raises(UnknownTypeReferenceError) as exc:
        resolver.resolve("tMissing")
    assert exc.value.code == "unknown_type_reference"


def test_conformance(resolver):
    assert conforms(Decimal(3), resolver.resolve("tAmount"))
    assert not conforms("3", resolver.resolve("tAmount"))
    assert conforms(None, resolver.resolve("tAmount"))
    assert conforms([Decimal(1), Decimal(2)], resolver.resolve("tAmounts"))
    assert conforms({"Name": "Ann", "Age": Decimal(30)}, resolver.resolve("tApplicant"))
    assert not conforms({"Name": "Ann", "Age": "thirty"}, resolver.resolve("tApplicant"))
    assert conforms("LOW", resolver.resolve("tLevel"))
    assert not conforms("MEDIUM", resolver.resolve("tLevel"))


def test_coerce_mismatch_is_null(resolver):
    assert coerce("abc", resolver.resolve("number")) is None
    assert coerce("MEDIUM", resolver.resolve("tLevel")) is None
    assert coerce(Decimal(5), resolver.resolve("number")) == Decimal(5)


def test_coerce_strict_raises(resolver):
    with pytest.raises(DmnTypeError):
        coerce("abc", resolver.resolve("number"), strict=True)


def test_coerce_singleton_lists(resolver):
    assert coerce(Decimal(1), resolver.resolve("tAmounts")) == [Decimal(1)]
    assert coerce([Decimal(1)], resolver.resolve("number")) == Decimal(1)
    assert coerce([Decimal(1)], ANY) == [Decimal(1)]
