"""
JSON logging for the watch bot.

Records are pushed onto a queue by the event loop and written by a
background listener, so a slow disk never stalls voice handling. Each line
is one JSON object; guild/channel/user context passed through ``extra=``
(see ``utils.log_context``) becomes top-level keys.
"""

import atexit
import json
import logging
import logging.handlers
import queue
from pathlib import Path

_listener: logging.handlers.QueueListener | None = None

CONTEXT_FIELDS = ("guild_id", "user_id", "channel_id", "command_name", "action", "state")
LEVEL_NAMES = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class CustomJsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            {key: getattr(record, key) for key in CONTEXT_FIELDS if hasattr(record, key)}
        )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def resolve_level(level_name: str | None, *, verbose: bool = False) -> int:
    """VERBOSE=1 forces DEBUG; unknown names fall back to INFO."""
    if verbose:
        return logging.DEBUG
    name = (level_name or "INFO").upper()
    if name not in LEVEL_NAMES:
        logging.getLogger(__name__).warning("Unknown log level %r, using INFO", name)
        return logging.INFO
    return logging.getLevelName(name)


def setup_logging(
    log_file: str = "logs/bot.log",
    *,
    level_name: str | None = "INFO",
    verbose: bool = False,
) -> None:
    """
    Route the root logger through a queue to a daily-rotated JSON file and
    stderr. Safe to call again; the previous listener is replaced.
    """
    global _listener

    level = resolve_level(level_name, verbose=verbose)
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    if _listener is not None:
        _listener.stop()

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = CustomJsonFormatter(datefmt="%Y-%m-%d %H:%M:%S")
    file_handler = logging.handlers.TimedRotatingFileHandler(
        log_path, when="midnight", backupCount=14, utc=True, encoding="utf-8"
    )
    console_handler = logging.StreamHandler()
    for handler in (file_handler, console_handler):
        handler.setFormatter(formatter)
        handler.setLevel(level)

    records: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=1000)
    root.addHandler(logging.handlers.QueueHandler(records))
    root.setLevel(level)

    _listener = logging.handlers.QueueListener(
        records, file_handler, console_handler, respect_handler_level=True
    )
    _listener.start()

    # Gateway and voice websocket chatter is only useful when debugging
    logging.getLogger("discord").setLevel(logging.DEBUG if verbose else logging.WARNING)


@atexit.register
def _stop_listener() -> None:
    global _listener
    if _listener is not None:
        _listener.stop()
        _listener = None


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
