"""
Process-wide model workspace for the DMN engine API.

A single ModelEvaluator holds every loaded model. Models are read from
DMN_MODELS_DIR at startup and on reload.
"""

import os
from pathlib import Path
from typing import Optional

from dmn_engine.services.evaluator_service import LoadReport, ModelEvaluator

# Default: models/ in the project root
MODELS_DIR = Path(os.getenv("DMN_MODELS_DIR", str(Path(__file__).resolve().parent.parent / "models")))

evaluator = ModelEvaluator()


def get_evaluator() -> ModelEvaluator:
    """Dependency: the shared evaluator (override in tests)."""
    return evaluator


def load_models(target: ModelEvaluator = evaluator, models_dir: Optional[Path] = None) -> LoadReport:
    """Replace the loaded models with the contents of models_dir (default MODELS_DIR)."""
    models_dir = Path(models_dir or MODELS_DIR)
    if not models_dir.is_dir():
        return LoadReport(errors={str(models_dir): "models directory does not exist"})
    return target.load_directory(models_dir, replace=True)
