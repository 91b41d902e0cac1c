import logging
import sys
from pathlib import Path
from typing import Any, Optional

from config import Config

_initialized = False

# Module-level logger shared by the whole service; configured by setup_logging().
logger = logging.getLogger("survey_api")


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter merging contextual fields into every record."""

    def process(self, msg, kwargs):
        context = dict(self.extra)
        context.update(kwargs.pop("extra", {}))
        kwargs["extra"] = context
        return msg, kwargs


def get_logger(component: Optional[str] = None, **context: Any) -> ContextLogger:
    """Return a logger tagged with a component name and optional context."""
    ctx = {k: v for k, v in context.items() if v is not None}
    if component:
        ctx["component"] = component
    return ContextLogger(logger, ctx)


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Configure the service logger once.

    Idempotent: later calls return the configured logger without
    attaching duplicate handlers.
    """
    global _initialized
    if _initialized and logger.handlers:
        return logger

    level = logging.getLevelName(level or Config.LOG_LEVEL)
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(formatter)
    logger.addHandler(console)

    # File handler is best-effort
    try:
        logs_dir = Path(Config.LOG_DIR)
        logs_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(str(logs_dir / "server.log"))
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError as e:  # pragma: no cover - filesystem issues
        logger.error(f"Failed to create log file handler: {e}")

    _initialized = True
    return logger
