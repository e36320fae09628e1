"""Command-line interface for SEO AutoFix.

Usage:
    seo-autofix scan [--module broken_links|image_seo] [--yes]
    seo-autofix status <scan_id>
    seo-autofix results <scan_id> [--filter F] [--search S] [--page N] [--per-page N]
    seo-autofix suggest <entry_id> <new_url>
    seo-autofix delete <entry_id>... [--yes]
    seo-autofix occurrences <scan_id> <url>
    seo-autofix fix <entry_id>... [--yes]
    seo-autofix sessions <scan_id>
    seo-autofix revert <fix_session_id> [--yes]
    seo-autofix export <scan_id> <path> [--filter F]
    seo-autofix serve [--host H] [--port P]
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from .client import ScanServiceClient
from .client.envelope import Err
from .config import get_settings
from .models import PER_PAGE_CHOICES, ErrorType, ResultFilter, ScanModule
from .orchestrator import ScanOrchestrator
from .view import ConsoleView

console = Console()
logger = logging.getLogger(__name__)


class CliError(Exception):
    """Error reported to the user with a non-zero exit status."""
    pass


def positive_int(value: str) -> int:
    """argparse type for page numbers and other 1-based counts."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be 1 or more, got {number}")
    return number


def setup_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    settings = get_settings()
    parser = argparse.ArgumentParser(
        prog="seo-autofix",
        description="SEO AutoFix - batch scans of broken links and image SEO",
    )
    parser.add_argument(
        "--module", "-M", choices=[m.value for m in ScanModule], default=settings.module,
        help=f"Admin module to drive (default: {settings.module})"
    )
    parser.add_argument("--url", default=settings.ajax_url, help="admin-ajax.php URL")
    parser.add_argument("--nonce", default=settings.nonce, help="Request nonce")
    parser.add_argument(
        "--yes", "-y", action="store_true",
        help="Answer yes to every confirmation"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # scan command
    scan_parser = subparsers.add_parser("scan", help="Run a scan to completion")
    scan_parser.add_argument(
        "--per-page", type=int, choices=PER_PAGE_CHOICES, default=settings.per_page,
        help="Rows per results page"
    )

    # status command
    status_parser = subparsers.add_parser("status", help="Show scan progress")
    status_parser.add_argument("scan_id", help="Scan ID")

    # results command
    results_parser = subparsers.add_parser("results", help="List scan results")
    results_parser.add_argument("scan_id", help="Scan ID")
    results_parser.add_argument(
        "--filter", "-f", choices=[f.value for f in ResultFilter], default="all",
        help="Link type filter (default: all)"
    )
    results_parser.add_argument("--search", "-s", default="", help="Search text")
    results_parser.add_argument("--page", "-p", type=positive_int, default=1, help="Page number")
    results_parser.add_argument(
        "--per-page", type=int, choices=PER_PAGE_CHOICES, default=settings.per_page,
        help="Rows per page"
    )
    results_parser.add_argument(
        "--error-type", choices=[e.value for e in ErrorType], default="all",
        help="HTTP error class filter"
    )
    results_parser.add_argument("--location", default="all", help="Link location filter")

    # suggest command
    suggest_parser = subparsers.add_parser("suggest", help="Set the replacement URL of an entry")
    suggest_parser.add_argument("entry_id", type=int, help="Entry ID")
    suggest_parser.add_argument("new_url", help="Replacement URL")

    # delete command
    delete_parser = subparsers.add_parser("delete", help="Delete one or more entries")
    delete_parser.add_argument("entry_ids", type=int, nargs="+", help="Entry IDs")

    # occurrences command
    occurrences_parser = subparsers.add_parser(
        "occurrences", help="List every page where a URL was found"
    )
    occurrences_parser.add_argument("scan_id", help="Scan ID")
    occurrences_parser.add_argument("url", help="Original URL")

    # fix command
    fix_parser = subparsers.add_parser("fix", help="Apply fixes to entries")
    fix_parser.add_argument("entry_ids", type=int, nargs="*", help="Entry IDs")

    # sessions command
    sessions_parser = subparsers.add_parser("sessions", help="List the fix sessions of a scan")
    sessions_parser.add_argument("scan_id", help="Scan ID")

    # revert command
    revert_parser = subparsers.add_parser("revert", help="Revert a fix session")
    revert_parser.add_argument("fix_session_id", help="Fix session ID")

    # export command
    export_parser = subparsers.add_parser("export", help="Export results to CSV")
    export_parser.add_argument("scan_id", help="Scan ID")
    export_parser.add_argument("path", help="Output file")
    export_parser.add_argument(
        "--filter", "-f", choices=[f.value for f in ResultFilter], default="all",
        help="Link type filter (default: all)"
    )

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Start the scan service")
    serve_parser.add_argument("--host", default=settings.api_host, help="Interface to bind")
    serve_parser.add_argument(
        "--port", "-p", type=int, default=settings.api_port,
        help=f"Port to listen on (default: {settings.api_port})"
    )

    return parser


def build_orchestrator(args, client: ScanServiceClient, per_page: Optional[int] = None) -> ScanOrchestrator:
    settings = get_settings()
    return ScanOrchestrator(
        client,
        ConsoleView(console=console, auto_confirm=args.yes),
        module=args.module,
        per_page=per_page or settings.per_page,
        batch_delay=settings.batch_delay,
        completion_delay=settings.completion_delay,
        batch_timeout=settings.batch_timeout,
    )


def open_client(args) -> ScanServiceClient:
    return ScanServiceClient(
        args.url,
        args.nonce,
        module=args.module,
        timeout=get_settings().request_timeout,
    )


def _check(result):
    if isinstance(result, Err):
        raise CliError(result.message)
    return result


# =============================================================================
# Commands
# =============================================================================


async def cmd_scan(args):
    """Handle scan command."""
    async with open_client(args) as client:
        orchestrator = build_orchestrator(args, client, args.per_page)
        _check(await orchestrator.start_scan())
        console.print(f"[bold]Scan ID:[/bold] {orchestrator.scan_id}")
        try:
            await orchestrator.wait()
        except asyncio.CancelledError:
            await orchestrator.aclose()
            raise
        if orchestrator.last_error:
            raise CliError(orchestrator.last_error)


async def cmd_status(args):
    """Handle status command."""
    async with open_client(args) as client:
        snapshot = _check(await client.get_progress(args.scan_id)).value

    if snapshot.status == "not_found":
        raise CliError(f"Scan not found: {args.scan_id}")

    console.print(f"[bold]Scan:[/bold] {args.scan_id}")
    console.print(f"[bold]Status:[/bold] {snapshot.status}")
    console.print(
        f"[bold]Progress:[/bold] {snapshot.progress}% "
        f"({snapshot.pages_processed}/{snapshot.total_pages} pages)"
    )
    console.print(f"[bold]Findings:[/bold] {snapshot.broken_count}")


async def cmd_results(args):
    """Handle results command."""
    async with open_client(args) as client:
        orchestrator = build_orchestrator(args, client, args.per_page)
        state = orchestrator.view_state
        state.set_filter(args.filter)
        state.set_search(args.search)
        state.set_error_type(args.error_type)
        state.set_location(args.location)
        state.go_to_page(args.page)
        orchestrator.scan_id = args.scan_id
        _check(await orchestrator.load_results())


async def cmd_suggest(args):
    """Handle suggest command."""
    async with open_client(args) as client:
        orchestrator = build_orchestrator(args, client)
        _check(await orchestrator.update_suggestion(args.entry_id, args.new_url))
    console.print(f"[green]Entry {args.entry_id} now points to {args.new_url}[/green]")


async def cmd_delete(args):
    """Handle delete command."""
    async with open_client(args) as client:
        orchestrator = build_orchestrator(args, client)
        if len(args.entry_ids) == 1:
            entry_id = args.entry_ids[0]
            _check(await orchestrator.delete_entry(entry_id))
            console.print(f"[green]Entry {entry_id} deleted[/green]")
        else:
            _check(await orchestrator.bulk_delete(args.entry_ids))


async def cmd_occurrences(args):
    """Handle occurrences command."""
    async with open_client(args) as client:
        orchestrator = build_orchestrator(args, client)
        orchestrator.scan_id = args.scan_id
        _check(await orchestrator.show_occurrences(args.url))


async def cmd_fix(args):
    """Handle fix command."""
    async with open_client(args) as client:
        orchestrator = build_orchestrator(args, client)
        summary = _check(await orchestrator.apply_fixes(args.entry_ids)).value
    for message in summary.messages:
        console.print(f"  {escape(message)}")
    if summary.fix_session_id:
        console.print(f"[bold]Fix session:[/bold] {summary.fix_session_id}")


async def cmd_sessions(args):
    """Handle sessions command."""
    async with open_client(args) as client:
        orchestrator = build_orchestrator(args, client)
        orchestrator.scan_id = args.scan_id
        _check(await orchestrator.show_fix_sessions())


async def cmd_revert(args):
    """Handle revert command."""
    async with open_client(args) as client:
        orchestrator = build_orchestrator(args, client)
        summary = _check(await orchestrator.revert_fixes(args.fix_session_id)).value
    for message in summary.messages:
        console.print(f"  {escape(message)}")


async def cmd_export(args):
    """Handle export command."""
    async with open_client(args) as client:
        orchestrator = build_orchestrator(args, client)
        orchestrator.scan_id = args.scan_id
        orchestrator.view_state.set_filter(args.filter)
        _check(await orchestrator.export_csv(args.path))


def cmd_serve(args):
    """Handle serve command."""
    from .service import run_server

    console.print(f"[bold]Starting scan service on {args.host}:{args.port}...[/bold]")
    run_server(host=args.host, port=args.port)


def main():
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging(args.verbose)

    if args.command == "serve":
        cmd_serve(args)
        return

    commands = {
        "scan": cmd_scan,
        "status": cmd_status,
        "results": cmd_results,
        "suggest": cmd_suggest,
        "delete": cmd_delete,
        "occurrences": cmd_occurrences,
        "fix": cmd_fix,
        "sessions": cmd_sessions,
        "revert": cmd_revert,
        "export": cmd_export,
    }

    cmd_func = commands.get(args.command)
    if cmd_func is None:
        parser.print_help()
        sys.exit(1)

    logger.debug(f"Running {args.command} against {args.url} ({args.module})")
    try:
        asyncio.run(cmd_func(args))
    except CliError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
