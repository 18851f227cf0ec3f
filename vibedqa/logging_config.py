"""Logging setup: rich console output plus an optional plain log file."""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(verbose: bool = False, log_file: str | None = None) -> None:
    """Configure the root logger once per process.

    Args:
        verbose: DEBUG level when True, INFO otherwise.
        log_file: Optional path; parent directories are created.
    """
    level = logging.DEBUG if verbose else logging.INFO

    handlers: list[logging.Handler] = [
        RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False, markup=False),
    ]

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=handlers,
        force=True,
    )

    for noisy in ("asyncio", "urllib3", "httpx", "google", "grpc"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
