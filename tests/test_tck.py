"""Tests for the TCK value conversions and evaluation boundary."""

import datetime
from decimal import Decimal

import pytest

from dmn_engine.errors import DmnTypeError
from dmn_engine.services.tck_service import (
    do_evaluate_tck,
    format_duration,
    value_from_dto,
    value_to_dto,
)
from shared.schemas.tck import (
    ComponentDto,
    InputNodeDto,
    ListDto,
    SimpleDto,
    TckEvaluateParams,
    ValueDto,
)


def _simple(xsd_type, text):
    return ValueDto(simple=SimpleDto(type=xsd_type, text=text))


def _inputs(**values):
    return [InputNodeDto(name=name, value=_simple("xsd:decimal", str(v))) for name, v in values.items()]


LOAN_INPUTS = [
    InputNodeDto(name="Applicant Age", value=_simple("xsd:decimal", "30")),
    InputNodeDto(name="Monthly Income", value=_simple("xsd:decimal", "3000")),
    InputNodeDto(name="Requested Amount", value=_simple("xsd:decimal", "12000")),
    InputNodeDto(name="Credit Score", value=_simple("xsd:decimal", "720")),
]


# -----------------------------------------------------------------------------
# DTO -> value
# -----------------------------------------------------------------------------


def test_simple_values():
    assert value_from_dto(_simple("xsd:decimal", "12.50")) == Decimal("12.50")
    assert value_from_dto(_simple("xsd:string", "foo")) == "foo"
    assert value_from_dto(_simple("xsd:boolean", "true")) is True
    assert value_from_dto(_simple("xsd:date", "2024-02-29")) == datetime.date(2024, 2, 29)
    assert value_from_dto(_simple("xsd:time", "10:30:00")) == datetime.time(10, 30)
    assert value_from_dto(_simple("xsd:duration", "P1DT2H")) == datetime.timedelta(days=1, hours=2)
    assert value_from_dto(_simple(None, "untyped")) == "untyped"


def test_nil_and_absent_values():
    assert value_from_dto(None) is None
    assert value_from_dto(ValueDto()) is None
    assert value_from_dto(ValueDto(simple=SimpleDto(type="xsd:decimal", is_nil=True))) is None
    assert value_from_dto(ValueDto(list=ListDto(is_nil=True))) is None


def test_structured_values():
    dto = ValueDto(
        components=[
            ComponentDto(name="Name", value=_simple("xsd:string", "Ann")),
            ComponentDto(name="Scores", value=ValueDto(list=ListDto(items=[_simple("xsd:decimal", "1")]))),
            ComponentDto(name="Missing", is_nil=True),
        ]
    )
    assert value_from_dto(dto) == {"Name": "Ann", "Scores": [Decimal(1)], "Missing": None}


def test_invalid_simple_value():
    with pytest.raises(DmnTypeError):
        value_from_dto(_simple("xsd:decimal", "twelve"))
    with pytest.raises(DmnTypeError):
        value_from_dto(_simple("xsd:boolean", "yes"))
    with pytest.raises(DmnTypeError):
        value_from_dto(_simple("xsd:base64Binary", "AAAA"))


def test_is_nil_alias():
    simple = SimpleDto.model_validate({"type": "xsd:string", "isNil": True})
    assert simple.is_nil is True


# -----------------------------------------------------------------------------
# Value -> DTO
# -----------------------------------------------------------------------------


def test_value_to_dto():
    assert value_to_dto(None).simple.is_nil is True
    assert value_to_dto(True).simple.text == "true"
    assert value_to_dto(Decimal("1.50")).simple.text == "1.5"
    assert value_to_dto("foo bar").simple.type == "xsd:string"
    assert value_to_dto(datetime.date(2024, 1, 2)).simple.text == "2024-01-02"

    listed = value_to_dto([Decimal(1), None])
    assert [item.simple.text for item in listed.list.items] == ["1", None]

    context = value_to_dto({"Status": "APPROVED", "Reason": None})
    assert [(c.name, c.is_nil) for c in context.components] == [("Status", False), ("Reason", True)]


def test_value_to_dto_rejects_functions():
    with pytest.raises(DmnTypeError):
        value_to_dto(object())


def test_format_duration():
    assert format_duration(datetime.timedelta(days=1, hours=2)) == "P1DT2H"
    assert format_duration(datetime.timedelta(minutes=90)) == "PT1H30M"
    assert format_duration(datetime.timedelta(days=-2)) == "-P2D"
    assert format_duration(datetime.timedelta(0)) == "PT0S"


# -----------------------------------------------------------------------------
# Evaluation boundary
# -----------------------------------------------------------------------------


def test_evaluate_literal_decision(evaluator):
    result = do_evaluate_tck(evaluator, TckEvaluateParams(invocable="compatibility/Decision1", input=[]))
    assert result.errors is None
    assert result.data.value.simple.text == "foo bar"
    assert result.data.value.simple.type == "xsd:string"


def test_evaluate_loan_decision(evaluator):
    result = do_evaluate_tck(evaluator, TckEvaluateParams(invocable="Loan Approval/Loan Decision", input=LOAN_INPUTS))
    assert result.data.value.simple.text == "APPROVED"


def test_evaluate_service_with_several_outputs(evaluator):
    params = TckEvaluateParams(invocable="Loan Approval/Affordability Service", input=LOAN_INPUTS)
    components = {c.name: c.value.simple.text for c in do_evaluate_tck(evaluator, params).data.value.components}
    assert components == {"Monthly Installment": "1000", "Affordability": "true"}


def test_missing_invocable_reported_first(evaluator):
    result = do_evaluate_tck(evaluator, TckEvaluateParams())
    assert result.data is None
    assert [e.detail for e in result.errors] == ["missing attribute: invocable"]


def test_missing_input(evaluator):
    result = do_evaluate_tck(evaluator, TckEvaluateParams(invocable="compatibility/Decision1"))
    assert [e.detail for e in result.errors] == ["missing attribute: input"]


def test_unknown_invocable_is_an_error(evaluator):
    result = do_evaluate_tck(evaluator, TckEvaluateParams(invocable="Loan Approval/Interest Rate", input=[]))
    assert result.data is None
    assert len(result.errors) == 1
    assert "Interest Rate" in result.errors[0].detail


def test_nil_input_evaluates_to_nil(evaluator):
    params = TckEvaluateParams(
        invocable="Age Classification/Age Category",
        input=[InputNodeDto(name="Age", value=ValueDto(simple=SimpleDto(is_nil=True)))],
    )
    assert do_evaluate_tck(evaluator, params).data.value.simple.is_nil is True


def test_bkm_without_arguments_is_nil(evaluator):
    result = do_evaluate_tck(evaluator, TckEvaluateParams(invocable="Loan Approval/Installment", input=_inputs()))
    assert result.errors is None
    assert result.data.value.simple.is_nil is True
