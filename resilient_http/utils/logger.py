"""structlog wiring for the command line and embedding applications.

The client takes its logger as a constructor argument, so nothing here is
required for it to work. Events are flat: an event name plus keyword
fields, never positional format arguments.
"""

import logging
import sys
from pathlib import Path
from typing import Any

import structlog

# Processors applied to structlog events and to stdlib records bound for the file
_PRE_CHAIN: list[structlog.types.Processor] = [
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
]


def _console_renderer(json_logs: bool) -> list[structlog.types.Processor]:
    if json_logs:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [
        structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )
    ]


def _file_handler(path: Path, level: int) -> logging.Handler:
    """JSON lines sink for `path`, one event per line."""
    handler = logging.FileHandler(path)
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            foreign_pre_chain=_PRE_CHAIN,
        )
    )
    return handler


def setup_logging(
    log_level: str = "INFO",
    log_dir: Path | None = None,
    json_logs: bool = False,
    app_name: str = "resilient_http",
) -> None:
    """Route structlog events to stdout and, optionally, a JSON log file.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ...)
        log_dir: Directory holding <app_name>.log. None logs to stdout only.
        json_logs: Render stdout as JSON lines instead of console text
        app_name: Log file name stem
    """
    level = getattr(logging, log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    # urllib3 logs every new connection at DEBUG
    logging.getLogger("urllib3").setLevel(max(level, logging.INFO))

    structlog.configure(
        processors=_PRE_CHAIN + _console_renderer(json_logs),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if log_dir:
        log_dir.mkdir(parents=True, exist_ok=True)
        logging.getLogger().addHandler(_file_handler(log_dir / f"{app_name}.log", level))


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, bound to `initial_context` when given."""
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger
