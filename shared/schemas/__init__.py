"""Shared schemas and types for the DMN engine (server and TCK client contract)."""

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

__all__ = [
    "ComponentDto",
    "InputNodeDto",
    "ListDto",
    "OutputNodeDto",
    "SimpleDto",
    "TckErrorDto",
    "TckEvaluateParams",
    "TckResultDto",
    "ValueDto",
]
