"""
DMN engine FastAPI application entrypoint.

Run with: uvicorn dmn_engine.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dmn_engine.routes import api_router
from dmn_engine.utils.logging import configure_logging
from dmn_engine.workspace import MODELS_DIR, evaluator, load_models

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging and load the model directory on startup."""
    configure_logging()
    report = load_models(evaluator)
    logger.info(
        "Loaded %d model(s) from %s, %d failed",
        len(report.loaded),
        MODELS_DIR,
        len(report.errors),
    )
    yield


app = FastAPI(
    title="DMN Engine API",
    description="""Evaluation of DMN decision models with FEEL expressions.

## Evaluation
`POST /api/tck` evaluates an invocable addressed as `<model name>/<invocable name>`
with typed input values, in the DMN TCK request/response format.

## Models
Model documents (JSON, see `GET /api/models/schema`) are loaded from `DMN_MODELS_DIR`
at startup and on `POST /api/models/reload`.
""",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS for local frontend dev (Vite default port 5173)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.get("/")
def root():
    return {"service": "DMN Engine", "docs": "/docs", "api": "/api"}
