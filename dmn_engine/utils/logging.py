"""
Structured logging for the DMN engine.

- Configurable level (DEBUG, INFO, WARN, ERROR)
- Optional file handler writing to the logs/ directory
- Console handler for development
- Helpers for model loading, evaluation requests and validation results
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

# Default: project root / logs
LOG_DIR = Path(os.getenv("DMN_LOG_DIR", str(Path(__file__).resolve().parent.parent.parent / "logs")))
LOG_LEVEL = os.getenv("DMN_LOG_LEVEL", "INFO").upper()
LOG_TO_FILE = os.getenv("DMN_LOG_TO_FILE", "0").lower() in ("1", "true", "yes")


def configure_logging(
    level: str = LOG_LEVEL,
    log_dir: Optional[Path] = None,
    log_to_file: bool = LOG_TO_FILE,
    log_to_console: bool = True,
) -> None:
    """Configure root and engine loggers. Call once at app startup."""
    level_value = getattr(logging, level, logging.INFO)

    root = logging.getLogger()
    root.setLevel(level_value)
    # Avoid duplicate handlers when reloading
    for h in list(root.handlers):
        root.removeHandler(h)

    if log_to_file:
        log_dir = log_dir or LOG_DIR
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / "dmn_engine.log", encoding="utf-8")
        file_handler.setLevel(level_value)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        )
        root.addHandler(file_handler)
    if log_to_console:
        console = logging.StreamHandler(sys.stdout)
        console.setLevel(level_value)
        console.setFormatter(logging.Formatter("%(levelname)s | %(name)s | %(message)s"))
        root.addHandler(console)

    logging.getLogger("dmn_engine").setLevel(level_value)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def log_model_load(
    logger: logging.Logger,
    model: str,
    namespace: str,
    invocables: int = 0,
    duration_sec: Optional[float] = None,
    success: bool = True,
    error: Optional[str] = None,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """Log building and publishing (or rejecting) a model."""
    payload = {
        "event": "model_load",
        "model": model,
        "namespace": namespace,
        "invocables": invocables,
        "duration_sec": duration_sec,
        "success": success,
        "error": error,
        "ts": _now(),
    }
    if extra:
        payload.update(extra)
    if success:
        logger.info("Model: %s", json.dumps(payload, default=str))
    else:
        logger.warning("Model: %s", json.dumps(payload, default=str))


def log_evaluation(
    logger: logging.Logger,
    namespace: str,
    invocable: str,
    dependencies: int = 0,
    duration_sec: Optional[float] = None,
    success: bool = True,
    error: Optional[str] = None,
) -> None:
    """Log one evaluation request."""
    payload = {
        "event": "evaluation",
        "namespace": namespace,
        "invocable": invocable,
        "dependencies": dependencies,
        "duration_sec": duration_sec,
        "success": success,
        "error": error,
    }
    if success:
        logger.debug("Evaluation: %s", json.dumps(payload, default=str))
    else:
        logger.info("Evaluation: %s", json.dumps(payload, default=str))


def log_validation_result(
    logger: logging.Logger,
    model: str,
    item_definitions: int,
    cycle_found: bool,
    duration_sec: Optional[float] = None,
) -> None:
    """Log item definition validation result."""
    payload = {
        "event": "validation",
        "model": model,
        "item_definitions": item_definitions,
        "cycle_found": cycle_found,
        "duration_sec": duration_sec,
        "ts": _now(),
    }
    level = logging.WARNING if cycle_found else logging.DEBUG
    logger.log(level, "Validation: %s", json.dumps(payload, default=str))
