"""Terminal rendering of the admin screens using rich."""

import logging
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, TaskID, TextColumn
from rich.prompt import Confirm
from rich.table import Table

from ..models import FixSessionList, OccurrenceList, ResultPage, ScanSession
from .base import ResultsView
from .formatting import (
    link_text_display,
    link_type_label,
    page_title,
    pagination_window,
    status_label,
)

logger = logging.getLogger(__name__)

LEVEL_STYLES = {
    "info": "cyan",
    "success": "green",
    "warning": "yellow",
    "error": "red",
}


class ConsoleView(ResultsView):
    """Rich console view for the scan screens."""

    def __init__(self, console: Optional[Console] = None, auto_confirm: bool = False):
        """Initialize the view.

        Args:
            console: Console to draw on (defaults to stdout)
            auto_confirm: Answer yes to every confirmation (non-interactive runs)
        """
        self.console = console or Console()
        self.auto_confirm = auto_confirm
        self.page: Optional[ResultPage] = None
        self._progress: Optional[Progress] = None
        self._task: Optional[TaskID] = None

    def notify(self, message: str, level: str = "info") -> None:
        style = LEVEL_STYLES.get(level, "white")
        self.console.print(f"[{style}]{escape(message)}[/{style}]")

    def confirm(self, message: str) -> bool:
        if self.auto_confirm:
            return True
        return Confirm.ask(message, console=self.console)

    def set_start_enabled(self, enabled: bool, label: str = "") -> None:
        if label:
            self.console.print(f"[dim]{label}[/dim]")

    def show_progress(self) -> None:
        if self._progress is not None:
            return
        self._progress = Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            TextColumn("[dim]{task.fields[tested]}/{task.fields[total_pages]} pages[/dim]"),
            console=self.console,
        )
        self._progress.start()
        self._task = self._progress.add_task("Scanning...", total=100, tested=0, total_pages=0)

    def update_progress(self, session: ScanSession) -> None:
        if self._progress is None:
            self.show_progress()
        self._progress.update(
            self._task,
            completed=session.progress,
            tested=session.pages_processed,
            total_pages=session.total_pages,
        )

    def show_scan_complete(self, message: str) -> None:
        if self._progress is not None:
            self._progress.update(self._task, description=message, completed=100)
        else:
            self.notify(message, "success")

    def hide_progress(self) -> None:
        if self._progress is None:
            return
        self._progress.stop()
        self._progress = None
        self._task = None

    def render_results(self, page: ResultPage) -> None:
        self.page = page

        if page.stats is not None:
            self.console.print(
                f"[bold]All:[/bold] {page.stats.total}  "
                f"[bold]Internal:[/bold] {page.stats.internal}  "
                f"[bold]External:[/bold] {page.stats.external}  "
                f"[bold]4xx:[/bold] {page.stats.client_errors}  "
                f"[bold]5xx:[/bold] {page.stats.server_errors}"
            )

        if page.total == 0:
            self.console.print("[dim]No issues found.[/dim]")
            return

        table = Table(title="Scan Results")
        table.add_column("#", style="dim", justify="right")
        table.add_column("ID", style="cyan", justify="right")
        table.add_column("Page")
        table.add_column("Link")
        table.add_column("Type")
        table.add_column("Status")
        table.add_column("Suggestion")
        table.add_column("Action")

        for index, record in enumerate(page.results, start=page.offset + 1):
            table.add_row(
                str(index),
                str(record.id),
                page_title(record),
                f"{link_text_display(record)}\n{record.original_url}",
                link_type_label(record),
                status_label(record),
                record.replacement_url or "-",
                "[green]Fixed[/green]" if record.is_fixed else "Fix",
            )

        self.console.print(table)

        if page.pages > 1:
            buttons = [
                f"[bold reverse] {item} [/bold reverse]" if item == page.current_page else str(item)
                for item in pagination_window(page.current_page, page.pages)
            ]
            self.console.print(f"Page: {' '.join(buttons)}  (showing {page.per_page} entries)")

    def update_row(self, entry_id: int, suggested_url: str) -> None:
        if self.page is not None:
            for record in self.page.results:
                if record.id == entry_id:
                    record.user_modified_url = suggested_url
        self.console.print(f"[green]#{entry_id} suggestion:[/green] {suggested_url}")

    def remove_row(self, entry_id: int) -> None:
        if self.page is not None:
            self.page.results = [r for r in self.page.results if r.id != entry_id]
        self.console.print(f"[dim]#{entry_id} removed[/dim]")

    def render_occurrences(self, occurrences: OccurrenceList) -> None:
        if occurrences.total == 0:
            self.console.print(f"[dim]No occurrences of {escape(occurrences.original_url)}[/dim]")
            return

        table = Table(title=f"Occurrences of {escape(occurrences.original_url)}")
        table.add_column("ID", style="cyan", justify="right")
        table.add_column("Page")
        table.add_column("Link")
        table.add_column("Location")
        table.add_column("Suggestion")

        for record in occurrences.occurrences:
            table.add_row(
                str(record.id),
                f"{page_title(record)}\n[dim]{record.found_on_url or ''}[/dim]",
                link_text_display(record),
                record.location,
                record.replacement_url or "-",
            )
        self.console.print(table)

    def render_fix_sessions(self, sessions: FixSessionList) -> None:
        if sessions.total == 0:
            self.console.print("[dim]No fixes applied yet.[/dim]")
            return

        table = Table(title="Fix Sessions")
        table.add_column("Session", style="cyan")
        table.add_column("Applied")
        table.add_column("Entries", justify="right")
        table.add_column("Status")

        for session in sessions.sessions:
            table.add_row(
                session.fix_session_id,
                session.applied_at.strftime("%Y-%m-%d %H:%M"),
                str(session.entries_fixed),
                "[yellow]Reverted[/yellow]" if session.is_reverted else "[green]Applied[/green]",
            )
        self.console.print(table)
