"""
TCK-compatible evaluation boundary.

Converts typed TCK value DTOs to FEEL values and back, and evaluates an
invocable addressed by path. Errors never escape: they become the errors
list of the result, as TCK runners expect.
"""

import datetime
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from dmn_engine.errors import DmnError, DmnTypeError, MissingAttributeError
from dmn_engine.services.evaluator_service import ModelEvaluator
from dmn_engine.services.feel_service import format_number, is_number, parse_duration
from shared.schemas.tck import (
    ComponentDto,
    InputNodeDto,
    ListDto,
    OutputNodeDto,
    SimpleDto,
    TckErrorDto,
    TckEvaluateParams,
    TckResultDto,
    ValueDto,
)

logger = logging.getLogger(__name__)

_NUMERIC_TYPES = {"xsd:decimal", "xsd:double", "xsd:float", "xsd:integer", "xsd:int", "xsd:long", "xsd:short"}


# -----------------------------------------------------------------------------
# DTO -> value
# -----------------------------------------------------------------------------


def _simple_value(simple: SimpleDto) -> Any:
    if simple.is_nil or simple.text is None:
        return None
    xsd_type = simple.type or "xsd:string"
    text = simple.text
    try:
        if xsd_type in _NUMERIC_TYPES:
            return Decimal(text)
        if xsd_type == "xsd:string":
            return text
        if xsd_type == "xsd:boolean":
            if text not in ("true", "false"):
                raise ValueError(f"invalid boolean '{text}'")
            return text == "true"
        if xsd_type == "xsd:date":
            return datetime.date.fromisoformat(text)
        if xsd_type == "xsd:time":
            return datetime.time.fromisoformat(text)
        if xsd_type == "xsd:dateTime":
            return datetime.datetime.fromisoformat(text)
        if xsd_type == "xsd:duration":
            return parse_duration(text)
    except (ValueError, InvalidOperation) as e:
        raise DmnTypeError(f"invalid {xsd_type} value '{text}'") from e
    raise DmnTypeError(f"unsupported value type '{xsd_type}'")


def value_from_dto(dto: Optional[ValueDto]) -> Any:
    """Convert a TCK value DTO into a FEEL value; absent or nil is null."""
    if dto is None:
        return None
    if dto.simple is not None:
        return _simple_value(dto.simple)
    if dto.components is not None:
        return {
            component.name: None if component.is_nil else value_from_dto(component.value)
            for component in dto.components
            if component.name is not None
        }
    if dto.list is not None:
        if dto.list.is_nil:
            return None
        return [value_from_dto(item) for item in dto.list.items]
    return None


def context_from_inputs(inputs: list[InputNodeDto]) -> dict[str, Any]:
    return {node.name: value_from_dto(node.value) for node in inputs}


# -----------------------------------------------------------------------------
# Value -> DTO
# -----------------------------------------------------------------------------


def format_duration(delta: datetime.timedelta) -> str:
    """ISO 8601 days and time duration, e.g. P1DT2H30M."""
    total = delta.total_seconds()
    sign = "-" if total < 0 else ""
    seconds = Decimal(str(abs(total)))
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)
    text = f"{sign}P"
    if days:
        text += f"{int(days)}D"
    time_part = ""
    if hours:
        time_part += f"{int(hours)}H"
    if minutes:
        time_part += f"{int(minutes)}M"
    if seconds:
        time_part += f"{format_number(seconds)}S"
    if time_part:
        text += f"T{time_part}"
    elif not days:
        text += "T0S"
    return text


def _simple(xsd_type: str, text: str) -> ValueDto:
    return ValueDto(simple=SimpleDto(type=xsd_type, text=text))


def value_to_dto(value: Any) -> ValueDto:
    """Convert a FEEL value to a TCK value DTO; raises DmnTypeError for functions and ranges."""
    if value is None:
        return ValueDto(simple=SimpleDto(is_nil=True))
    if isinstance(value, bool):
        return _simple("xsd:boolean", "true" if value else "false")
    if is_number(value):
        return _simple("xsd:decimal", format_number(Decimal(value) if not isinstance(value, Decimal) else value))
    if isinstance(value, str):
        return _simple("xsd:string", value)
    if isinstance(value, datetime.datetime):
        return _simple("xsd:dateTime", value.isoformat())
    if isinstance(value, datetime.date):
        return _simple("xsd:date", value.isoformat())
    if isinstance(value, datetime.time):
        return _simple("xsd:time", value.isoformat())
    if isinstance(value, datetime.timedelta):
        return _simple("xsd:duration", format_duration(value))
    if isinstance(value, list):
        return ValueDto(list=ListDto(items=[value_to_dto(item) for item in value]))
    if isinstance(value, dict):
        return ValueDto(
            components=[
                ComponentDto(name=name, value=value_to_dto(item), is_nil=item is None)
                for name, item in value.items()
            ]
        )
    raise DmnTypeError(f"value {value!r} has no TCK representation")


# -----------------------------------------------------------------------------
# Evaluation
# -----------------------------------------------------------------------------


def evaluate_tck(evaluator: ModelEvaluator, params: TckEvaluateParams) -> OutputNodeDto:
    """Evaluate params.invocable with params.input; raises DmnError."""
    if params.invocable is None:
        raise MissingAttributeError("invocable")
    if params.input is None:
        raise MissingAttributeError("input")
    context = context_from_inputs(params.input)
    result = evaluator.evaluate(params.invocable, context)
    try:
        return OutputNodeDto(value=value_to_dto(result))
    except DmnTypeError:
        logger.info("Result of %s has no TCK representation", params.invocable)
        return OutputNodeDto(value=None)


def do_evaluate_tck(evaluator: ModelEvaluator, params: TckEvaluateParams) -> TckResultDto:
    """Evaluate and wrap the outcome: data on success, a single error otherwise."""
    try:
        return TckResultDto(data=evaluate_tck(evaluator, params))
    except DmnError as e:
        logger.info("TCK evaluation of %s failed: %s", params.invocable, e)
        return TckResultDto(errors=[TckErrorDto(detail=str(e))])
