"""Health endpoint."""

from fastapi import APIRouter, Depends

from dmn_engine.services.evaluator_service import ModelEvaluator
from dmn_engine.services.monitoring_service import get_health
from dmn_engine.workspace import get_evaluator

router = APIRouter(tags=["monitoring"])


@router.get("/health", summary="Health check")
def health(evaluator: ModelEvaluator = Depends(get_evaluator)):
    """
    Health check for load balancers and orchestration.
    Reports the loaded models; an empty workspace is still healthy.
    """
    return get_health(evaluator)
