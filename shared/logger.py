import json
import logging
import sys
from typing import Any, Dict, Optional

logger = logging.getLogger("site_deploy")
logger.setLevel(logging.INFO)


class StructuredLogger:
    """Structured logging, one JSON object per line."""

    @staticmethod
    def configure(level: str = "INFO", stream: Optional[Any] = None) -> None:
        """Send log lines to stderr for command-line runs. Safe to call repeatedly."""
        logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))
        for existing in [h for h in logger.handlers if getattr(h, "_site_deploy", False)]:
            logger.removeHandler(existing)

        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(logging.Formatter("%(message)s"))
        handler._site_deploy = True
        logger.addHandler(handler)
        logger.propagate = False

    @staticmethod
    def _dump(log_data: Dict[str, Any]) -> str:
        return json.dumps(log_data, default=str)

    @staticmethod
    def info(message: str, **kwargs) -> None:
        """Log info level with structured data."""
        log_data = {"level": "INFO", "message": message, **kwargs}
        logger.info(StructuredLogger._dump(log_data))

    @staticmethod
    def error(message: str, exception: Exception = None, **kwargs) -> None:
        """Log error level with exception details."""
        log_data = {
            "level": "ERROR",
            "message": message,
            **kwargs,
        }
        if exception:
            log_data["exception"] = str(exception)
            log_data["exception_type"] = type(exception).__name__

        logger.error(StructuredLogger._dump(log_data))

    @staticmethod
    def warning(message: str, **kwargs) -> None:
        """Log warning level with structured data."""
        log_data = {"level": "WARNING", "message": message, **kwargs}
        logger.warning(StructuredLogger._dump(log_data))

    @staticmethod
    def debug(message: str, **kwargs) -> None:
        """Log debug level with structured data."""
        log_data = {"level": "DEBUG", "message": message, **kwargs}
        logger.debug(StructuredLogger._dump(log_data))
