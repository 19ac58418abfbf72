"""
Pytest fixtures for DMN engine tests.

Fixture models live in tests/fixtures/ as JSON model documents. Each test
gets its own ModelEvaluator so loads and reloads never leak between tests.
"""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from dmn_engine.main import app
from dmn_engine.models.definitions import Definitions, load_definitions
from dmn_engine.services.evaluator_service import LoadReport, ModelEvaluator
from dmn_engine.workspace import get_evaluator

FIXTURES_DIR = Path(__file__).resolve().parent / "fixtures"

MODEL_FILES = ("age_classification.json", "compatibility.json", "loan_approval.json")


def load_fixture(name: str) -> Definitions:
    return load_definitions(FIXTURES_DIR / name)


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def loan_definitions() -> Definitions:
    return load_fixture("loan_approval.json")


@pytest.fixture
def evaluator() -> ModelEvaluator:
    """Fresh evaluator with every valid fixture model loaded."""
    model_evaluator = ModelEvaluator(strict_types=False)
    for name in MODEL_FILES:
        model_evaluator.load(load_fixture(name))
    return model_evaluator


@pytest.fixture
def client(evaluator, monkeypatch):
    """FastAPI TestClient wired to the test evaluator."""
    # Keep the process-wide workspace and logging configuration untouched
    monkeypatch.setattr("dmn_engine.main.configure_logging", lambda: None)
    monkeypatch.setattr("dmn_engine.main.load_models", lambda target: LoadReport())

    app.dependency_overrides[get_evaluator] = lambda: evaluator
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
