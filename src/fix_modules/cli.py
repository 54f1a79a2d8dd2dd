"""
Command-line interface for the submodule fixer.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
import os
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .sync_orchestrator import SyncOrchestrator
from .models import FixModulesError, SetupError, SubmoduleResult, SyncReport
from . import __version__ as PACKAGE_VERSION


console = Console()
err_console = Console(stderr=True)
logger = logging.getLogger(__name__)


def _print_version(ctx, param, value):
    """Eager option callback to print version and exit."""
    if not value or ctx.resilient_parsing:
        return
    click.echo(f"git-fix-modules {PACKAGE_VERSION}")
    ctx.exit()


def _default_log_path() -> Path:
    """Determine default log file path (~/.fix-modules/fix-modules.log)."""
    env_path = os.environ.get("FIX_MODULES_LOG")
    if env_path:
        p = Path(env_path).expanduser()
        p.parent.mkdir(parents=True, exist_ok=True)
        return p
    base = Path.home() / ".fix-modules"
    base.mkdir(parents=True, exist_ok=True)
    return base / "fix-modules.log"


class SafeConsoleFilter(logging.Filter):
    """Sanitize record messages for console by replacing unencodable characters.

    This runs before handler emission and is effective with RichHandler which may
    bypass standard formatters for message text.
    """

    def __init__(self, encoding: Optional[str] = None):
        super().__init__()
        self.encoding = encoding or getattr(sys.stderr, "encoding", None) or "utf-8"

    def filter(self, record: logging.LogRecord) -> bool:  # always keep the record
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        try:
            message.encode(self.encoding, errors="strict")
        except (UnicodeError, LookupError):
            safe = message.encode(self.encoding, errors="replace").decode(self.encoding, errors="replace")
            # Replace the message and clear args to avoid double formatting
            record.msg = safe
            record.args = ()
        return True


def setup_logging(verbose: bool = False, console_level: Optional[str] = None, log_file: Optional[Path] = None) -> Path:
    """Setup logging with a per-run file and a stable, rotated aggregate.

    Console logging is disabled by default; enable it via --verbose or --log-level.
    Returns the aggregate log path.
    """
    provided = Path(log_file) if log_file else _default_log_path()
    if provided.exists() and provided.is_dir():
        base_dir = provided
        base_stem = "fix-modules"
        aggregate_path = base_dir / f"{base_stem}.log"
    else:
        base_dir = provided.parent
        base_stem = provided.stem or "fix-modules"
        aggregate_path = provided
    base_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    per_run_path = base_dir / f"{base_stem}-{timestamp}.log"

    root = logging.getLogger()
    # Clear existing handlers to avoid duplication in tests / repeated invocations
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.DEBUG)

    file_fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    run_file_handler = logging.FileHandler(str(per_run_path), encoding="utf-8")
    run_file_handler.setLevel(logging.DEBUG)
    run_file_handler.setFormatter(file_fmt)
    root.addHandler(run_file_handler)

    aggregate_handler = RotatingFileHandler(
        str(aggregate_path), maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    aggregate_handler.setLevel(logging.DEBUG)
    aggregate_handler.setFormatter(file_fmt)
    root.addHandler(aggregate_handler)

    if verbose or console_level:
        level_map = {
            "debug": logging.DEBUG,
            "info": logging.INFO,
            "warning": logging.WARNING,
            "error": logging.ERROR,
        }
        ch_level = level_map.get((console_level or "info").lower(), logging.INFO)
        console_handler = RichHandler(console=err_console, rich_tracebacks=True)
        console_handler.setLevel(ch_level)
        enc = getattr(err_console.file, "encoding", None) or "utf-8"
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        console_handler.addFilter(SafeConsoleFilter(encoding=enc))
        root.addHandler(console_handler)

    # git itself is chatty at debug level through GitPython
    logging.getLogger("git").setLevel(logging.INFO)
    return aggregate_path


@click.command()
@click.option(
    "--version",
    "-V",
    is_flag=True,
    callback=_print_version,
    expose_value=False,
    is_eager=True,
    help="Show version and exit.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose console logging (INFO)")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Console log level. By default, console logging is disabled.",
)
@click.option(
    "--repo-path",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Any path inside the superproject (defaults to current directory)",
)
def cli(verbose: bool, log_level: Optional[str], repo_path: Optional[Path]) -> None:
    """Bring git submodules back in sync without fetching.

    A more helpful 'git submodule update --init': submodule objects are taken
    from the superproject, origin URLs keep pointing upstream, and submodule
    conflicts left by a superproject merge are resolved where possible.
    """
    log_path = setup_logging(verbose, console_level=log_level)
    logger.debug(f"CLI init: cwd={Path.cwd()} repo_path={repo_path} log={log_path}")

    try:
        orchestrator = SyncOrchestrator(repo_path.resolve() if repo_path else None)
        report = orchestrator.run()
    except SetupError as e:
        err_console.print(f"\n❌ **Setup Error:** {e}", style="bold red")
        err_console.print(f"[dim]Details in {log_path}[/dim]")
        logger.debug("Run aborted during setup", exc_info=True)
        sys.exit(1)
    except FixModulesError as e:
        err_console.print(f"\n❌ **Error:** {e}", style="bold red")
        logger.debug("Run aborted", exc_info=True)
        sys.exit(1)

    _display_report(report)
    for result in report.diagnostics:
        err_console.print(result.diagnostic, highlight=False, markup=False)


def _describe_actions(result: SubmoduleResult) -> str:
    actions = []
    if result.checked_out_ours is not None:
        actions.append("checkout ours" + ("" if result.checked_out_ours else " (failed)"))
    if result.merged_theirs is not None:
        actions.append("merge theirs" + ("" if result.merged_theirs else " (failed)"))
    if result.marked_resolved:
        actions.append("marked resolved")
    if result.renamed_branch:
        actions.append(f"moved branch to {result.renamed_branch}")
    return ", ".join(actions) or "-"


def _display_report(report: SyncReport) -> None:
    """Display the per-submodule outcome of a run."""
    if not report.results:
        console.print("No submodules found.", style="yellow")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Submodule", style="cyan")
    table.add_column("Target", style="green")
    table.add_column("Head", style="yellow")
    table.add_column("Actions", style="dim")
    table.add_column("Status", style="blue")

    for result in report.results:
        table.add_row(
            result.path,
            result.target[:12],
            result.head[:12] if result.head else "?",
            _describe_actions(result),
            "✅ In sync" if result.in_sync else "⚠️ Needs attention",
        )

    console.print(table)


def main() -> None:
    """Main entry point for the CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        err_console.print("\n\n🚫 **Operation cancelled by user**", style="bold yellow")
        # Debug stack trace for cancellation context
        logger.debug("Top-level cancellation (KeyboardInterrupt)", exc_info=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
