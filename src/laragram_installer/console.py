"""Shared Rich console and the badge-style status lines."""

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

console = Console()


def warn(message: str, out: Console = None) -> None:
    (out or console).print(f"  [black on yellow] WARN [/black on yellow] {escape(message)}\n")


def info(message: str, out: Console = None) -> None:
    (out or console).print(f"  [white on blue] INFO [/white on blue] {message}\n")


def configure_logging(debug: bool = False) -> None:
    """Route log records through Rich; DEBUG with ``--debug``, WARNING otherwise."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=debug, rich_tracebacks=debug)],
        force=True,
    )
