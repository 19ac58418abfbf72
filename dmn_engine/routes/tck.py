"""
TCK evaluation API: evaluate an invocable with typed input values.

The request and response format is compatible with the DMN TCK runner;
failures are reported in the errors list with HTTP 200.
"""

from fastapi import APIRouter, Depends

from dmn_engine.services.evaluator_service import ModelEvaluator
from dmn_engine.services.tck_service import do_evaluate_tck
from dmn_engine.workspace import get_evaluator
from shared.schemas.tck import TckEvaluateParams, TckResultDto

router = APIRouter()


@router.post("", response_model=TckResultDto, response_model_exclude_none=True)
def post_tck_evaluate(params: TckEvaluateParams, evaluator: ModelEvaluator = Depends(get_evaluator)):
    """Evaluate params.invocable ('<model name>/<invocable name>') with params.input."""
    return do_evaluate_tck(evaluator, params)
