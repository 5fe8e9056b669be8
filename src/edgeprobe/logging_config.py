from __future__ import annotations

import logging
import re
import sys
from pathlib import Path
from typing import List, Optional

SIMPLE_FORMAT = "%(levelname)s - %(message)s"
DETAILED_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
)

# Chatty transport loggers kept at WARNING so per-candidate probing stays readable.
QUIET_LOGGERS = ("aiohttp", "httpx", "httpcore", "hpack", "asyncio")


class SensitiveDataFilter(logging.Filter):
    """Mask upload bearer tokens and credential assignments in log records."""

    BEARER_RE = re.compile(r"(?i)bearer\s+[a-z0-9._~+/=\-]{8,}")
    CREDENTIAL_RE = re.compile(r"(?i)(?:token|password|secret)\s*[=:]\s*[^\s&,]{8,}")

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        message = self.BEARER_RE.sub("Bearer [MASKED_TOKEN]", message)
        message = self.CREDENTIAL_RE.sub("[MASKED_CREDENTIAL]", message)
        record.msg = message
        record.args = None
        return True


class ColoredFormatter(logging.Formatter):
    """Formatter that colours the level name on a terminal."""

    COLOURS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        colour = self.COLOURS.get(record.levelno, "")
        if colour and sys.stdout.isatty():
            record.levelname = f"{colour}{record.levelname}{self.RESET}"
        return super().format(record)


def _resolve_level(level: str) -> int:
    """Convert a level name to its logging constant, defaulting to INFO."""
    value = getattr(logging, level.upper(), None)
    return value if isinstance(value, int) else logging.INFO


def _build_handlers(fmt: str, colour_output: bool, log_file: Optional[str | Path]) -> List[logging.Handler]:
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ColoredFormatter(fmt) if colour_output else logging.Formatter(fmt))
    handlers: List[logging.Handler] = [console_handler]

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(fmt))
        handlers.append(file_handler)
    return handlers


def setup_logging(
    level: str = "INFO",
    mask_sensitive: bool = True,
    *,
    log_file: Optional[str | Path] = None,
    format_style: str = "simple",
    use_color: Optional[bool] = None,
) -> None:
    """
    Configure the root logger for a CLI run.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        mask_sensitive: Attach ``SensitiveDataFilter`` to every handler.
        log_file: Optional log file path; None disables file logging.
        format_style: "detailed" includes module/line, "simple" prints message.
        use_color: Force colour output. Defaults to auto-detect (TTY only).
    """
    log_level_value = _resolve_level(level)
    fmt = DETAILED_FORMAT if format_style == "detailed" else SIMPLE_FORMAT
    colour_output = use_color if use_color is not None else sys.stdout.isatty()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level_value)
    root_logger.handlers.clear()

    for handler in _build_handlers(fmt, colour_output, log_file):
        handler.setLevel(log_level_value)
        if mask_sensitive:
            handler.addFilter(SensitiveDataFilter())
        root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
