"""
Model workspace API: list loaded models, reload from disk, validate a model
document and publish the model JSON schema.
"""

from fastapi import APIRouter, Depends

from dmn_engine.models.definitions import Definitions, get_definitions_json_schema
from dmn_engine.services.evaluator_service import ModelEvaluator
from dmn_engine.services.validation_service import validate_definitions
from dmn_engine.workspace import get_evaluator, load_models

router = APIRouter()


@router.get("", summary="List loaded models and invocables")
def list_models(evaluator: ModelEvaluator = Depends(get_evaluator)):
    return {
        "models": [
            {"name": graph.name, "namespace": graph.namespace, "invocables": len(graph.invocables)}
            for graph in evaluator.graphs()
        ],
        "invocables": evaluator.invocables(),
    }


@router.post("/reload", summary="Reload all models from the models directory")
def reload_models(evaluator: ModelEvaluator = Depends(get_evaluator)):
    """
    Rebuild every model file and swap the whole set in at once.
    Files that fail to build are skipped and reported.
    """
    report = load_models(evaluator)
    return {"loaded": report.loaded, "errors": report.errors}


@router.post("/validate", summary="Validate a model document without loading it")
def validate_model(definitions: Definitions):
    issues = validate_definitions(definitions)
    return {
        "valid": not issues,
        "issues": [issue.model_dump() for issue in issues],
    }


@router.get("/schema", summary="JSON schema of model documents")
def models_schema():
    return get_definitions_json_schema()
