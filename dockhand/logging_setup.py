"""Logging setup for the CLI: Rich console handler on the root logger."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_CONFIGURED = False


def configure_logging(level: str = "INFO", *, console: Console | None = None) -> None:
    """Install a ``RichHandler`` on the root logger (idempotent)."""
    global _CONFIGURED
    if _CONFIGURED:
        logging.getLogger().setLevel(level.upper())
        return

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level.upper())

    handler = RichHandler(
        console=console or Console(stderr=True),
        rich_tracebacks=True,
        markup=False,
        show_time=True,
        show_path=False,
        log_time_format="%H:%M:%S",
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)

    _CONFIGURED = True
