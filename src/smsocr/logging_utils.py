"""Logging setup shared by the command line entry points."""

from __future__ import annotations

import argparse
import logging
import sys

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def add_logging_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-level",
        choices=tuple(LOG_LEVELS),
        default=None,
        help="Set log verbosity explicitly (overrides -v/-q and LOG_LEVEL).",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase log verbosity.")
    parser.add_argument("-q", "--quiet", action="count", default=0, help="Reduce log verbosity (-qq for errors only).")


def resolve_log_level(log_level: str | None = None, verbose: int = 0, quiet: int = 0) -> int:
    if log_level:
        try:
            return LOG_LEVELS[log_level.lower()]
        except KeyError as exc:
            raise ValueError(f"Unknown log level: {log_level}") from exc

    offset = verbose - quiet
    if offset >= 1:
        return logging.DEBUG
    if offset == 0:
        return logging.INFO
    if offset == -1:
        return logging.WARNING
    return logging.ERROR


def configure_logging(log_level: str | None = None, verbose: int = 0, quiet: int = 0) -> int:
    """Configure the root logger and return the active level.

    Progress goes to stderr so that stdout stays a clean JSON document.
    """
    level = resolve_log_level(log_level=log_level, verbose=verbose, quiet=quiet)
    root = logging.getLogger()

    if root.handlers:
        root.setLevel(level)
        for handler in root.handlers:
            handler.setLevel(level)
        return level

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    return level
