"""Proxy CLI Exception Hierarchy - Centralized exception handling for CLI components

User-facing errors carry an error code, a context dictionary and the process
exit code they map to. ``CLIErrorHandler`` logs them and prints them with an
actionable suggestion.
"""

import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from rich.console import Console
from rich.markup import escape

from ..proxy_core.exceptions import ConfigurationError as CoreConfigurationError
from ..proxy_core.exceptions import InputError, OutputError, ProxScanError

EXIT_OK = 0
EXIT_INPUT_ERROR = 1
EXIT_INTERRUPTED = 130


class ProxyCLIError(Exception):
    """Base exception for all CLI-related errors"""

    exit_code = EXIT_INPUT_ERROR

    def __init__(self, message: str, error_code: Optional[str] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/reporting"""
        return {
            'error_type': self.__class__.__name__,
            'error_code': self.error_code,
            'message': self.message,
            'context': self.context,
            'timestamp': self.timestamp.isoformat()
        }


class ConfigurationError(ProxyCLIError):
    """Configuration-related errors"""

    def __init__(self, message: str, config_file: Optional[str] = None):
        context = {}
        if config_file:
            context['config_file'] = config_file
        super().__init__(message, "CONFIG_ERROR", context)


class ValidationError(ProxyCLIError):
    """Input validation errors"""

    def __init__(self, message: str, field: Optional[str] = None,
                 value: Optional[Any] = None):
        context = {}
        if field:
            context['field'] = field
        if value is not None:
            context['value'] = str(value)
        super().__init__(message, "VALIDATION_ERROR", context)


class ExportError(ProxyCLIError):
    """Report could not be written; the scan results are still shown"""

    exit_code = EXIT_OK

    def __init__(self, message: str, file_path: Optional[str] = None):
        context = {}
        if file_path:
            context['file_path'] = file_path
        super().__init__(message, "EXPORT_ERROR", context)


def from_core_error(error: ProxScanError) -> ProxyCLIError:
    """Translate a library error into its CLI counterpart"""
    if isinstance(error, CoreConfigurationError):
        return ConfigurationError(str(error))
    if isinstance(error, InputError):
        return ValidationError(str(error))
    if isinstance(error, OutputError):
        return ExportError(str(error), file_path=error.path)
    return ProxyCLIError(str(error))


class CLIErrorHandler:
    """Centralized error handling for CLI operations"""

    def __init__(self, logger: Optional[logging.Logger] = None, console: Optional[Console] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.console = console or Console(stderr=True)

    def handle_error(self, error: Exception, context: Optional[Dict[str, Any]] = None) -> int:
        """Log and print an error; returns the exit code it maps to"""
        if isinstance(error, ProxScanError):
            error = from_core_error(error)

        if isinstance(error, ProxyCLIError):
            error_data = error.to_dict()
            if context:
                error_data['context'].update(context)

            self.logger.error(f"CLI Error: {error.message}", extra={'error_data': error_data})
            self._print_user_error(error)
            return error.exit_code

        self.logger.error(
            f"Unexpected error: {error}",
            extra={
                'error_type': type(error).__name__,
                'traceback': traceback.format_exc(),
                'context': context or {}
            }
        )
        self.console.print(f"[red]✗ An unexpected error occurred: {escape(str(error))}[/red]")
        return EXIT_INPUT_ERROR

    def _print_user_error(self, error: ProxyCLIError) -> None:
        """Print user-friendly error message with actionable suggestions"""
        self.console.print(f"[red]✗ Error: {escape(error.message)}[/red]", highlight=False)

        suggestion = self._get_error_suggestion(error)
        if suggestion:
            self.console.print(f"[yellow]Suggestion: {escape(suggestion)}[/yellow]", highlight=False)

    def _get_error_suggestion(self, error: ProxyCLIError) -> Optional[str]:
        """Get actionable suggestion based on error type and context"""
        if isinstance(error, ConfigurationError):
            if 'config_file' in error.context:
                return f"Check configuration file syntax: {error.context['config_file']}"
            return "Run 'proxscan --help' to see all configuration options"

        if isinstance(error, ExportError):
            if 'file_path' in error.context:
                return f"Check that the directory of {error.context['file_path']} exists and is writable"
            return "Choose a different output path with -o"

        if isinstance(error, ValidationError):
            if error.context.get('field') == 'source':
                return "Pass exactly one of --subnet or --input"
            return "Check input format and try again"

        return "Run 'proxscan --help' for usage information"
