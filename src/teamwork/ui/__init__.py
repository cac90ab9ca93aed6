"""UI package exports for the command-line router."""

from teamwork.ui.cli import CLIError, build_parser, main, run_cli

__all__ = [
    "CLIError",
    "build_parser",
    "main",
    "run_cli",
]
