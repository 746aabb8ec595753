"""structlog setup shared by the library and the CLI.

Library modules log through ``get_logger(__name__)`` with event-style names
(``fork_nodes_merged``, ``replicas_synced``) and keyword context. Nothing is
printed until `configure_logging` runs; the CLI calls it once per invocation.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, TextIO

import structlog
from structlog.types import Processor


class _StderrProxy:
    """File-like proxy that always delegates to the current sys.stderr.

    structlog's PrintLoggerFactory captures the file object at creation
    time and caches the logger. CliRunner and capsys swap sys.stderr, so
    the proxy reads it at write time instead.
    """

    def write(self, s: str) -> int:
        return sys.stderr.write(s)

    def flush(self) -> None:
        sys.stderr.flush()

    def isatty(self) -> bool:
        return sys.stderr.isatty()


_stderr_proxy: TextIO = _StderrProxy()  # type: ignore[assignment]


def _processors(json_logs: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_logs:
        processors.extend([structlog.processors.format_exc_info, structlog.processors.JSONRenderer()])
    else:
        processors.extend(
            [
                structlog.dev.set_exc_info,
                structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
            ]
        )
    return processors


def configure_logging(verbose: bool = False, json_logs: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    structlog.contextvars.clear_contextvars()
    structlog.configure(
        processors=_processors(json_logs),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=_stderr_proxy),
        cache_logger_on_first_use=False,
    )


def bind_command(command: str) -> None:
    """Tag every log line of this invocation with the CLI command name."""
    structlog.contextvars.bind_contextvars(command=command)


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)


__all__ = ["bind_command", "configure_logging", "get_logger"]
