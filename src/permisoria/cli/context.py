from __future__ import annotations

from dataclasses import dataclass

from rich.console import Console

from permisoria.core.config import AppPaths, AppSettings


@dataclass(slots=True)
class CLIContext:
    """Shared state handed to every command handler."""

    paths: AppPaths
    settings: AppSettings
    console: Console
