"""
Logging for SpecHarvest.

Everything logs under the ``specharvest`` logger tree. The terminal gets
Rich output prefixed with the brand and transport of the record; the
optional log file gets one JSON object per line carrying the same
context as fields. Every handler redacts proxy API keys from the
message before writing it.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable

from rich.markup import escape

try:
    import orjson

    def json_dumps(obj: Any) -> str:
        return orjson.dumps(obj, default=str).decode("utf-8")
except ImportError:
    import json

    def json_dumps(obj: Any) -> str:
        return json.dumps(obj, default=str)

if TYPE_CHECKING:
    from rich.console import Console


ROOT_LOGGER = "specharvest"

# Record attributes treated as context
CONTEXT_FIELDS = ("group", "run_id", "item_id", "transport", "url")

LEVEL_STYLES = {
    logging.DEBUG: "dim",
    logging.WARNING: "yellow",
    logging.ERROR: "red",
    logging.CRITICAL: "bold red",
}

PLAIN_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """Context fields present on a record."""
    return {key: getattr(record, key) for key in CONTEXT_FIELDS if getattr(record, key, None) is not None}


# =============================================================================
# Filters and Formatters
# =============================================================================


class KeyRedactionFilter(logging.Filter):
    """Replaces known API keys in log messages with their masked form."""

    def __init__(self, secrets: Iterable[str]):
        super().__init__()
        from specharvest.core.fetch.keys import mask_key

        # Longest first so a key containing another is replaced whole
        ordered = sorted({secret for secret in secrets if secret}, key=len, reverse=True)
        self.replacements = [(secret, mask_key(secret)) for secret in ordered]

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.replacements:
            return True

        message = record.getMessage()
        redacted = message
        for secret, masked in self.replacements:
            redacted = redacted.replace(secret, masked)

        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


class JsonLinesFormatter(logging.Formatter):
    """One JSON object per record, context fields flattened in."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **record_context(record),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json_dumps(entry)


class ConsoleHandler(logging.Handler):
    """Rich terminal output: ``[brand] <transport> message``."""

    def __init__(self, console: "Console | None" = None, level: int = logging.INFO):
        super().__init__(level)
        if console is None:
            from rich.console import Console

            console = Console(stderr=True)
        self.console = console

    def emit(self, record: logging.LogRecord) -> None:
        try:
            context = record_context(record)
            prefix = ""
            if "group" in context:
                prefix += f"[cyan]{escape('[' + str(context['group']) + ']')}[/cyan] "
            if "transport" in context:
                prefix += f"[magenta]<{context['transport']}>[/magenta] "

            style = LEVEL_STYLES.get(record.levelno)
            message = escape(self.format(record))
            if style:
                message = f"[{style}]{message}[/{style}]"

            self.console.print(prefix + message, highlight=False, markup=True)
            if record.exc_info:
                self.console.print_exception()
        except Exception:
            self.handleError(record)


# =============================================================================
# Setup
# =============================================================================


def setup_logging(
    level: str = "INFO",
    log_file: Path | str | None = None,
    json_format: bool = True,
    rich_console: bool = True,
    secrets: Iterable[str] = (),
) -> logging.Logger:
    """Configure the ``specharvest`` logger tree.

    Args:
        level: Console log level name
        log_file: JSON-lines (or plain) log file; None disables file logging
        json_format: Write the file as JSON lines
        rich_console: Use Rich for the terminal, else a plain stderr stream
        secrets: Values to redact from every message (proxy API keys)

    Returns:
        The ``specharvest`` logger
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG if log_file else numeric_level)
    logger.handlers.clear()
    redaction = KeyRedactionFilter(secrets)

    console_handler: logging.Handler
    if rich_console:
        console_handler = ConsoleHandler(level=numeric_level)
        console_handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
    console_handler.addFilter(redaction)
    logger.addHandler(console_handler)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            JsonLinesFormatter() if json_format else logging.Formatter(PLAIN_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
        )
        file_handler.addFilter(redaction)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    """Logger under the ``specharvest`` tree."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}" if name else ROOT_LOGGER)


# =============================================================================
# Context Binding
# =============================================================================


class ContextualLogger(logging.LoggerAdapter):
    """Adapter stamping bound context (run id, brand, ...) on every record.

    Usage:
        log = get_contextual_logger("runner", run_id=7)
        brand_log = log.bind(group="Samsung")
        brand_log.info("Listing phones")
    """

    def __init__(self, logger: logging.Logger, **context: Any):
        super().__init__(logger, {key: value for key, value in context.items() if value is not None})

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs

    def bind(self, **context: Any) -> "ContextualLogger":
        """New adapter with extra context layered over this one."""
        return ContextualLogger(self.logger, **{**self.extra, **context})


def get_contextual_logger(name: str | None = None, **context: Any) -> ContextualLogger:
    return ContextualLogger(get_logger(name), **context)
