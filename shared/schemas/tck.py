"""
TCK evaluation request/response JSON schema and Pydantic models.

Used by the evaluation endpoint and by clients running the DMN TCK runner.
Values travel as typed DTOs: a simple value carries its XML Schema type and
text, a structured value its components, a collection its items.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SimpleDto(BaseModel):
    """Simple (scalar) value in textual form."""

    model_config = ConfigDict(populate_by_name=True)

    type: Optional[str] = Field(None, description="XML Schema type (e.g. xsd:decimal, xsd:string)")
    text: Optional[str] = Field(None, description="Value text")
    is_nil: bool = Field(False, alias="isNil", description="True for a null value")


class ComponentDto(BaseModel):
    """Named component of a structured value."""

    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(None, description="Component name")
    value: Optional["ValueDto"] = Field(None, description="Component value")
    is_nil: bool = Field(False, alias="isNil", description="True for a null component")


class ListDto(BaseModel):
    """Collection value."""

    model_config = ConfigDict(populate_by_name=True)

    items: list["ValueDto"] = Field(default_factory=list, description="Collection items")
    is_nil: bool = Field(False, alias="isNil", description="True for a null collection")


class ValueDto(BaseModel):
    """Typed value; exactly one of simple / components / list is set (none for null)."""

    simple: Optional[SimpleDto] = None
    components: Optional[list[ComponentDto]] = None
    list: Optional[ListDto] = None


ComponentDto.model_rebuild()
ListDto.model_rebuild()


class InputNodeDto(BaseModel):
    """Named input value of an evaluation request."""

    name: str = Field(..., description="Input data or input decision name")
    value: Optional[ValueDto] = Field(None, description="Input value (absent for null)")


class TckEvaluateParams(BaseModel):
    """Evaluation request: both attributes are checked explicitly by the handler."""

    invocable: Optional[str] = Field(None, description="Invocable path '<model name>/<invocable name>'")
    input: Optional[list[InputNodeDto]] = Field(None, description="Input values")


class OutputNodeDto(BaseModel):
    """Evaluation result; value is absent when the result has no DTO form (e.g. a function)."""

    value: Optional[ValueDto] = None


class TckErrorDto(BaseModel):
    detail: str = Field(..., description="Error message")


class TckResultDto(BaseModel):
    """Either data or a non-empty errors list; the absent one is None."""

    data: Optional[OutputNodeDto] = None
    errors: Optional[list[TckErrorDto]] = Field(None, description="Errors of a failed evaluation")
