"""archgroup CLI – command-line interface built with Typer and Rich.

- :data:`app` – The main Typer application
- :func:`setup_logging` – Logging infrastructure
- :class:`CLIError` – Structured error handling
"""

from archgroup.cli.app import app
from archgroup.cli.errors import CLIError, ConfigError, error_handler
from archgroup.cli.logging_setup import setup_logging

__all__ = [
    "CLIError",
    "ConfigError",
    "app",
    "error_handler",
    "setup_logging",
]
