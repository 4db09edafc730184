"""
Structured logging for squadlink flows.

Every component receives a FlowLogger. Messages carry a LogCategory tag
(informational, signature, detail, highlight, spotlight, error) as a bound
loguru extra field instead of formatting baked into each call site.
"""

import logging
import sys
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from loguru import logger


class LogCategory(Enum):
    NORMAL = "normal"
    SIGNATURE = "signature"
    DETAILS = "details"
    HIGHLIGHT = "highlight"
    SPOTLIGHT = "spotlight"
    ERROR = "error"


class InterceptHandler(logging.Handler):
    """Intercept standard logging and redirect to loguru."""
    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def _console_format(record) -> str:
    category = record["extra"].get("category", LogCategory.NORMAL.value)
    prefix = "{extra[label_prefix]}" if record["extra"].get("label_prefix") else ""
    if category == LogCategory.HIGHLIGHT.value:
        return "<bold>" + prefix + "{message}</bold>\n{exception}"
    if category == LogCategory.SPOTLIGHT.value:
        return "<green><bold>" + prefix + "{message}</bold></green>\n{exception}"
    if category == LogCategory.SIGNATURE.value:
        return "<cyan>" + prefix + "{message}</cyan>\n{exception}"
    if category == LogCategory.DETAILS.value:
        return "<dim>" + prefix + "</dim>{message}\n{exception}"
    return "{time:HH:mm:ss} | <level>{level}</level> | " + prefix + "{message}\n{exception}"


def setup_logging(level: str = "INFO", log_dir: str = "logs"):
    """Configure structured logging with loguru."""
    Path(log_dir).mkdir(parents=True, exist_ok=True)
    logger.remove()  # Remove default handler
    logger.add(
        str(Path(log_dir) / "squadlink_{time}.log"),
        rotation="1 day",
        retention="14 days",
        level=level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message} | {extra}",
        serialize=True,  # JSON formatting for structured logs
    )

    logger.add(sys.stdout, level=level, format=_console_format, colorize=True)

    # httpx (used by solana-py) logs through the standard library
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)


class FlowLogger:
    """
    Category-tagged logging facade handed to every component.

    Args:
        component: Name bound to every record emitted by this logger
    """

    def __init__(self, component: Optional[str] = None):
        self.component = component
        self._logger = logger.bind(component=component) if component else logger

    def child(self, component: str) -> "FlowLogger":
        return FlowLogger(component)

    def log(
        self,
        message: Any,
        category: LogCategory = LogCategory.NORMAL,
        label: Optional[str] = None,
        **metadata: Any,
    ):
        level = "ERROR" if category == LogCategory.ERROR else "INFO"
        self._logger.bind(
            category=category.value,
            label=label,
            label_prefix=f"{label} " if label else "",
            **metadata,
        ).log(level, str(message))

    def info(self, message: Any, label: Optional[str] = None, **metadata: Any):
        self.log(message, LogCategory.NORMAL, label, **metadata)

    def signature(self, signature: Any, label: Optional[str] = None, **metadata: Any):
        self.log(signature, LogCategory.SIGNATURE, label, **metadata)

    def details(self, message: Any, label: Optional[str] = None, **metadata: Any):
        self.log(message, LogCategory.DETAILS, label, **metadata)

    def highlight(self, message: Any, label: Optional[str] = None, **metadata: Any):
        self.log(message, LogCategory.HIGHLIGHT, label, **metadata)

    def spotlight(self, message: Any, label: Optional[str] = None, **metadata: Any):
        self.log(message, LogCategory.SPOTLIGHT, label, **metadata)

    def error(self, message: Any, label: Optional[str] = None, **metadata: Any):
        self.log(message, LogCategory.ERROR, label, **metadata)
