"""
Health reporting for the DMN engine.

- Health check: loaded models, invocable count, strict typing mode
- Used by the /api/health endpoint
"""

import logging
from typing import Any

from dmn_engine.services.evaluator_service import ModelEvaluator

logger = logging.getLogger(__name__)


def get_health(evaluator: ModelEvaluator) -> dict[str, Any]:
    """Return health status for /api/health."""
    graphs = evaluator.graphs()
    return {
        "status": "healthy",
        "checks": {
            "models": {
                "status": "loaded" if graphs else "empty",
                "count": len(graphs),
                "names": [graph.name for graph in graphs],
            },
            "invocables": {"count": sum(len(graph.invocables) for graph in graphs)},
            "strict_types": evaluator.strict_types,
        },
    }
