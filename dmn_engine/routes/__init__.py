"""API routes for the DMN engine."""

from fastapi import APIRouter

from dmn_engine.routes import models, monitoring, tck

api_router = APIRouter(prefix="/api", tags=["api"])

api_router.include_router(monitoring.router)
api_router.include_router(tck.router, prefix="/tck", tags=["tck"])
api_router.include_router(models.router, prefix="/models", tags=["models"])
