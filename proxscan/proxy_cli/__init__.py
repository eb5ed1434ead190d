"""Command line interface for proxscan"""

from .cli import main_cli, setup_logging, RichProgressReporter
from .cli_exceptions import CLIErrorHandler, ProxyCLIError

__all__ = ['main_cli', 'setup_logging', 'RichProgressReporter', 'CLIErrorHandler', 'ProxyCLIError']
