"""Base results view interface.

Views render whatever the orchestrator hands them and own no scanning logic.
"""

from abc import ABC, abstractmethod

from ..models import FixSessionList, OccurrenceList, ResultPage, ScanSession


class ResultsView(ABC):
    """Rendering surface driven by the scan orchestrator.

    Implementations must not call back into the orchestrator from these
    methods; user input arrives through the orchestrator's commands.
    """

    @abstractmethod
    def notify(self, message: str, level: str = "info") -> None:
        """Show a message to the user (level: info, success, warning, error)."""

    @abstractmethod
    def confirm(self, message: str) -> bool:
        """Ask the user to confirm a destructive or long-running action."""

    @abstractmethod
    def set_start_enabled(self, enabled: bool, label: str = "") -> None:
        """Enable or disable the start-scan control."""

    @abstractmethod
    def show_progress(self) -> None:
        """Show the progress UI for a scan that is starting."""

    @abstractmethod
    def update_progress(self, session: ScanSession) -> None:
        """Redraw the progress UI from the latest session snapshot."""

    @abstractmethod
    def show_scan_complete(self, message: str) -> None:
        """Show the completion message inside the progress UI."""

    @abstractmethod
    def hide_progress(self) -> None:
        """Hide the progress UI."""

    @abstractmethod
    def render_results(self, page: ResultPage) -> None:
        """Replace the displayed results with a fresh page."""

    @abstractmethod
    def update_row(self, entry_id: int, suggested_url: str) -> None:
        """Show a new suggestion for one row without reloading the page."""

    @abstractmethod
    def remove_row(self, entry_id: int) -> None:
        """Remove one row from the displayed page."""

    @abstractmethod
    def render_occurrences(self, occurrences: OccurrenceList) -> None:
        """Show every page where one URL was found."""

    @abstractmethod
    def render_fix_sessions(self, sessions: FixSessionList) -> None:
        """Show the fix sessions of the open scan."""
