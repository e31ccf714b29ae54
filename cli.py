from __future__ import annotations

import argparse
import logging
import sys


class UsageParser(argparse.ArgumentParser):
    """ArgumentParser that exits with status 1 on bad input."""

    def error(self, message: str) -> None:
        self.print_help(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def add_log_level(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: WARNING)",
    )


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
