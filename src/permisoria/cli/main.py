from __future__ import annotations

import argparse
import logging
from pathlib import Path

from rich.console import Console

from permisoria.cli.commands import (
    actors_cmd,
    certificate_cmd,
    documents_cmd,
    init_cmd,
    owners_cmd,
    verification_cmd,
    web_cmd,
)
from permisoria.cli.context import CLIContext
from permisoria.core.config import load_paths, load_settings
from permisoria.core.errors import PermisoriaError
from permisoria.core.logging import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="permisoria",
        description="Permisoria business owner verification CLI",
    )
    parser.add_argument(
        "--project-root",
        type=Path,
        default=Path.cwd(),
        help="Project root to use for .permisoria data (default: current working directory)",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0)

    subparsers = parser.add_subparsers(dest="command", required=True)
    init_cmd.register(subparsers)
    actors_cmd.register(subparsers)
    owners_cmd.register(subparsers)
    documents_cmd.register(subparsers)
    verification_cmd.register(subparsers)
    certificate_cmd.register(subparsers)
    web_cmd.register(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose)
    console = Console()

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 2

    try:
        ctx = CLIContext(paths=load_paths(args.project_root), settings=load_settings(), console=console)
        return handler(args, ctx)
    except PermisoriaError as exc:
        logger.error(str(exc))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
