"""archgroup CLI error handling.

Provides structured error handling with Rich-formatted output and
consistent exit codes for the CLI application.

Exit codes:
    0 - Success
    1 - General error
    2 - Configuration error
    3 - Node or save not found
"""

from __future__ import annotations

import sys
from contextlib import contextmanager
from typing import Generator

from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel

from archgroup.exceptions import ArchGroupError, BatchInterruptedError, NotFoundError

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_SUCCESS = 0
EXIT_GENERAL_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_NOT_FOUND = 3

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class CLIError(Exception):
    """Base exception for CLI errors.

    Parameters
    ----------
    message:
        Human-readable error description.
    exit_code:
        Process exit code (default :data:`EXIT_GENERAL_ERROR`).
    """

    def __init__(self, message: str, exit_code: int = EXIT_GENERAL_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code


class ConfigError(CLIError):
    """Raised when configuration loading or validation fails."""

    def __init__(self, message: str) -> None:
        super().__init__(message, exit_code=EXIT_CONFIG_ERROR)


def exit_code_for(exc: ArchGroupError) -> int:
    """Map a core error to the process exit code."""
    if isinstance(exc, NotFoundError):
        return EXIT_NOT_FOUND
    return EXIT_GENERAL_ERROR


# ---------------------------------------------------------------------------
# Error handler context manager
# ---------------------------------------------------------------------------

_stderr = Console(stderr=True)


def _panel(out: Console, message: str, title: str) -> None:
    out.print(
        Panel(
            f"[bold red]{message}[/bold red]",
            title=f"[red]{title}[/red]",
            border_style="red",
        )
    )


@contextmanager
def error_handler(console: Console | None = None) -> Generator[None, None, None]:
    """Context manager that catches exceptions and prints a Rich error panel.

    Core errors are titled with their error code; an interrupted batch also
    reports how many members are still pending.

    Parameters
    ----------
    console:
        Rich console to use for output. Defaults to stderr console.

    Raises
    ------
    SystemExit
        Always raised when an exception is caught, with the appropriate
        exit code.
    """
    out = console or _stderr
    try:
        yield
    except CLIError as exc:
        _panel(out, exc.message, "Error")
        sys.exit(exc.exit_code)
    except BatchInterruptedError as exc:
        _panel(
            out,
            f"{exc.message}\nPending members: {exc.result.pending}\n"
            "Re-run the same command to finish the batch.",
            exc.code.value,
        )
        sys.exit(EXIT_GENERAL_ERROR)
    except ArchGroupError as exc:
        _panel(out, exc.message, exc.code.value)
        sys.exit(exit_code_for(exc))
    except ValidationError as exc:
        _panel(out, str(exc), "Invalid configuration")
        sys.exit(EXIT_CONFIG_ERROR)
    except KeyboardInterrupt:
        out.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(130)
    except Exception as exc:
        _panel(out, str(exc), "Unexpected Error")
        sys.exit(EXIT_GENERAL_ERROR)
