"""
proxscan command line interface

Discovers open HTTP proxies on a subnet (or checks a list of addresses),
ranks the working ones by response time and shows where they are.
"""

import asyncio
import logging
import sys
import threading
from logging.handlers import RotatingFileHandler
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
)
from rich.table import Table

from .. import __version__
from ..discovery.targets import TargetEnumerator
from ..proxy_core.config import ConfigManager, ScanConfig
from ..proxy_core.constants import (
    DEFAULT_LOG_FORMAT, DEFAULT_PORT, LOG_FILE_BACKUP_COUNT, LOG_FILE_MAX_BYTES, NOISY_LOGGERS
)
from ..proxy_core.exceptions import ProxScanError
from ..proxy_engine.aggregator import ResultSnapshot
from ..proxy_engine.exporters import ExportManager
from ..proxy_engine.pipeline import PipelineReport, run_pipeline
from ..proxy_engine.progress import EventKind, ProgressEvent, ProgressReporter, Stage
from .cli_exceptions import (
    EXIT_INTERRUPTED, EXIT_OK, CLIErrorHandler, ProxyCLIError, ValidationError
)

logger = logging.getLogger(__name__)


# ===============================================================================
# LOGGING
# ===============================================================================

def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> logging.Logger:
    """Configure root logging for a CLI run"""
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Remove existing handlers to avoid duplication
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(fmt=DEFAULT_LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = RotatingFileHandler(
            log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUP_COUNT, encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Set third-party loggers to WARNING to reduce noise
    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    return root_logger


# ===============================================================================
# PROGRESS RENDERING
# ===============================================================================

class RichProgressReporter(ProgressReporter):
    """Renders pipeline events with a rich progress display.

    A bar is shown when the number of candidates is known up front (address
    lists); subnet scans get a spinner with running counters. In verbose mode
    every notable event is also printed as a line above the display.
    """

    def __init__(self, console: Console, verbose: bool = False, show_bar: bool = True):
        self.console = console
        self.verbose = verbose
        self.show_bar = show_bar
        self._lock = threading.Lock()
        self._task_id = None
        self.found = 0
        self.working = 0
        self.checked = 0

        columns = [SpinnerColumn(), TextColumn("[progress.description]{task.description}")]
        if show_bar:
            columns += [BarColumn(bar_width=40), MofNCompleteColumn()]
        columns.append(TimeElapsedColumn())
        self.progress = Progress(*columns, console=console, transient=True)

    def start(self, total: Optional[int] = None) -> None:
        self.progress.start()
        self._task_id = self.progress.add_task(
            "Testing proxies" if self.show_bar else "Scanning",
            total=total if self.show_bar else None
        )

    def on_event(self, event: ProgressEvent) -> None:
        with self._lock:
            if event.stage is Stage.SCAN:
                self.checked += 1
                if event.kind is EventKind.OPEN:
                    self.found += 1
            elif event.stage is Stage.VALIDATE and event.kind is EventKind.SUCCESS:
                self.working += 1
            description = self._describe()

        if self.verbose:
            self._print_event(event)

        if self._task_id is None:
            return
        advance = 1 if (self.show_bar and event.completes_candidate) else 0
        self.progress.update(self._task_id, advance=advance, description=description)

    def _describe(self) -> str:
        if self.show_bar:
            return f"Testing proxies ({self.working} working)"
        return f"Scanning: {self.checked} probed, {self.found} open, {self.working} working"

    def _print_event(self, event: ProgressEvent):
        target = escape(str(event.candidate)) if event.candidate else ""
        detail = escape(event.detail)
        line = None
        if event.stage is Stage.SCAN and event.kind is EventKind.OPEN:
            line = f"[cyan]FOUND[/cyan]   {target}"
        elif event.stage is Stage.VALIDATE and event.kind is EventKind.SUCCESS:
            line = f"[green]SUCCESS[/green] {target} ({detail})"
        elif event.stage is Stage.VALIDATE and event.kind is EventKind.FAILURE:
            line = f"[red]FAIL[/red]    {target} ({detail})"
        elif event.stage is Stage.ENRICH:
            line = f"[blue]GEO[/blue]     {target} -> {detail}"
        elif event.stage is Stage.ENUMERATE:
            line = f"[yellow]SKIP[/yellow]    {detail}"
        if line:
            self.progress.console.print(line, highlight=False)

    def finish(self, message: str = "") -> None:
        self.progress.stop()


# ===============================================================================
# RESULT DISPLAY
# ===============================================================================

def display_results(console: Console, snapshot: ResultSnapshot):
    """Display the ranked proxies in a table"""
    if not snapshot:
        console.print("[yellow]No working HTTP proxies were found.[/yellow]")
        return

    table = Table(title="Working HTTP Proxies")
    table.add_column("Rank", justify="right", style="bold")
    table.add_column("IP Address", style="cyan")
    table.add_column("Response Time", justify="right", style="green")
    table.add_column("Location", style="blue")

    for rank, record in snapshot.rows():
        table.add_row(
            str(rank),
            str(record.address),
            f"{round(record.latency_ms)} ms",
            escape(record.location_display) or "[dim]Unknown[/dim]",
        )

    console.print(table)


def display_summary(console: Console, report: PipelineReport, config: ScanConfig):
    """Display run statistics"""
    stats = report.stats
    table = Table(title="Run Summary", show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value")

    table.add_row("Port", str(config.port))
    table.add_row("Candidates", str(stats.enumerated))
    if stats.skipped_entries:
        table.add_row("Skipped entries", str(stats.skipped_entries))
    if stats.scan is not None:
        table.add_row("Probed", str(stats.scan.scanned))
        table.add_row("Open ports", str(stats.scan.open))
        table.add_row("Closed / unreachable", f"{stats.scan.closed} / {stats.scan.unreachable_total}")
    table.add_row("Validated", str(stats.validation.total))
    table.add_row("Working proxies", str(stats.validation.successful))
    for reason, count in sorted(stats.validation.failures.items(), key=lambda item: item[0].value):
        table.add_row(f"  failed: {reason.value}", str(count))
    table.add_row("Located", str(stats.enriched))
    if stats.degraded:
        table.add_row("Location unknown", str(stats.degraded))
    table.add_row("Duration", f"{report.duration:.2f}s")
    if report.cancelled:
        table.add_row("Status", "[yellow]cancelled (partial results)[/yellow]")

    console.print(table)


# ===============================================================================
# COMMAND
# ===============================================================================

@click.command(context_settings={'help_option_names': ['-h', '--help']})
@click.option('--subnet', metavar='CIDR', help='Subnet to scan, e.g. 192.168.1.0/24')
@click.option('-i', '--input', 'input_file', type=click.Path(dir_okay=False),
              help="CSV file with an 'IP Address' column (skips the port scan)")
@click.option('-p', '--port', type=click.IntRange(1, 65535), default=None,
              help=f'Proxy port to probe [default: {DEFAULT_PORT}]')
@click.option('-o', '--output', type=click.Path(dir_okay=False),
              help='Write results to a file (.json for JSON, otherwise CSV)')
@click.option('-v', '--verbose', is_flag=True, help='Print every discovery and test result')
@click.option('-c', '--config', 'config_path', type=click.Path(dir_okay=False),
              help='YAML configuration file')
@click.option('--scan-timeout', type=click.IntRange(min=1), help='TCP connect timeout in milliseconds')
@click.option('--test-timeout', type=click.FloatRange(min=0, min_open=True),
              help='Proxy test request timeout in seconds')
@click.option('--scan-workers', type=click.IntRange(min=1), help='Port scan threads [default: CPU count]')
@click.option('--max-validations', type=click.IntRange(min=1), help='Concurrent proxy tests')
@click.option('--max-lookups', type=click.IntRange(min=1), help='Concurrent geolocation lookups')
@click.option('--geo-rate', type=click.FloatRange(min=0), help='Geolocation requests per second (0 = unlimited)')
@click.option('--test-url', help='URL requested through each proxy')
@click.option('--geoip-db', type=click.Path(dir_okay=False), help='Local GeoLite2/GeoIP2 City database')
@click.option('--no-geo', is_flag=True, help='Skip geolocation')
@click.option('--log-file', type=click.Path(dir_okay=False), help='Also write debug logs to this file')
@click.version_option(__version__, prog_name='proxscan')
@click.pass_context
def main_cli(ctx, subnet, input_file, port, output, verbose, config_path, scan_timeout, test_timeout,
             scan_workers, max_validations, max_lookups, geo_rate, test_url, geoip_db, no_geo, log_file):
    """Find working HTTP proxies on a subnet or in an address list."""
    setup_logging(verbose, log_file)
    console = Console()
    error_handler = CLIErrorHandler(logger)

    try:
        if bool(subnet) == bool(input_file):
            raise ValidationError("Exactly one of --subnet or --input is required", field='source')

        overrides = {
            'port': port,
            'scan_timeout_ms': scan_timeout,
            'test_timeout': test_timeout,
            'scan_workers': scan_workers,
            'max_concurrent_validations': max_validations,
            'max_concurrent_lookups': max_lookups,
            'geo_rate_limit': geo_rate,
            'test_url': test_url,
            'geoip_db_path': geoip_db,
            'enable_geolocation': False if no_geo else None,
        }
        config = ConfigManager(config_path, cli_overrides=overrides).get_config()

        if subnet:
            enumerator = TargetEnumerator.from_subnet(subnet, config.port)
        else:
            enumerator = TargetEnumerator.from_file(input_file, config.port)
    except (ProxScanError, ProxyCLIError) as e:
        ctx.exit(error_handler.handle_error(e))

    console.print(f"[bold]proxscan[/bold] {escape(enumerator.description)}, port {config.port}")
    reporter = RichProgressReporter(console, verbose=verbose, show_bar=enumerator.skip_scan)

    try:
        report = asyncio.run(run_pipeline(config, enumerator, reporter, install_signal_handlers=True))
    except ProxScanError as e:
        reporter.finish()
        ctx.exit(error_handler.handle_error(e))
    except KeyboardInterrupt:
        reporter.finish()
        console.print("\n[yellow]Interrupted by user[/yellow]")
        ctx.exit(EXIT_INTERRUPTED)

    if report.cancelled:
        console.print("[yellow]Scan cancelled, showing partial results[/yellow]")

    display_results(console, report.snapshot)
    display_summary(console, report, config)

    if output and report.snapshot:
        try:
            result = ExportManager().export(report.snapshot, output)
            console.print(f"[green]Saved {result.proxy_count} proxies to {escape(result.file_path)}[/green]")
        except ProxScanError as e:
            error_handler.handle_error(e)

    ctx.exit(EXIT_OK)
