"""
proxscan - CLI Entry Point

Runs the click command and turns anything that escapes it into an exit code.
"""

import sys

from .cli_exceptions import EXIT_INPUT_ERROR, EXIT_INTERRUPTED, CLIErrorHandler, ProxyCLIError


def main():
    """Main entry point - runs the CLI interface"""
    from .cli import main_cli

    try:
        main_cli(standalone_mode=True)
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        sys.exit(EXIT_INTERRUPTED)
    except Exception as e:
        CLIErrorHandler().handle_error(ProxyCLIError(f"Application failed: {e}"))
        sys.exit(EXIT_INPUT_ERROR)


if __name__ == '__main__':
    main()
