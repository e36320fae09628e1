"""Pydantic models for SEO AutoFix.

Defines the wire payloads exchanged with the scan service (scan sessions,
batch progress, result pages, fix summaries) and the findings fed into a scan.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ScanModule(str, Enum):
    """Admin screens that share the batch-scan protocol."""
    BROKEN_LINKS = "broken_links"
    IMAGE_SEO = "image_seo"

    @property
    def action_prefix(self) -> str:
        return f"seoautofix_{self.value}"

    def action(self, operation: str) -> str:
        """Build the admin-ajax action name for an operation."""
        return f"{self.action_prefix}_{operation}"


class LinkType(str, Enum):
    INTERNAL = "internal"
    EXTERNAL = "external"


class ResultFilter(str, Enum):
    """Link-type filter applied to result pages."""
    ALL = "all"
    INTERNAL = "internal"
    EXTERNAL = "external"


class ErrorType(str, Enum):
    """HTTP error class filter applied to result pages."""
    ALL = "all"
    CLIENT_ERROR = "4xx"
    SERVER_ERROR = "5xx"


class ScanState(str, Enum):
    """States of the client-side scan orchestrator."""
    IDLE = "idle"
    STARTING = "starting"
    POLLING = "polling"
    COMPLETING = "completing"
    ERROR = "error"


PER_PAGE_CHOICES = (10, 25, 50, 100)


def progress_percent(pages_processed: int, total_pages: int) -> int:
    """Integer completion percentage clamped to [0, 100].

    Returns 0 while the total is unknown (zero or negative).
    """
    if total_pages <= 0:
        return 0
    percent = (pages_processed * 100) // total_pages
    return max(0, min(100, percent))


# =============================================================================
# Scan lifecycle payloads
# =============================================================================


class ScanStarted(BaseModel):
    """Response of start_scan."""
    scan_id: str
    message: Optional[str] = None

    @field_validator("scan_id", mode="before")
    @classmethod
    def _coerce_scan_id(cls, value):
        if isinstance(value, int):
            return str(value)
        return value


class BatchProgress(BaseModel):
    """Response of process_batch."""
    pages_processed: int = Field(0, ge=0)
    total_pages: int = Field(0, ge=0)
    completed: bool = False
    broken_count: Optional[int] = None

    @property
    def progress(self) -> int:
        return progress_percent(self.pages_processed, self.total_pages)


class ScanSession(BaseModel):
    """Client-side snapshot of a server-owned scan session.

    Replaced wholesale from each batch response; never edited field by field.
    """
    scan_id: str
    pages_processed: int = 0
    total_pages: int = 0
    completed: bool = False

    @property
    def progress(self) -> int:
        return progress_percent(self.pages_processed, self.total_pages)

    def advance(self, batch: BatchProgress) -> "ScanSession":
        """Return the session as described by a newer batch response.

        The processed count never goes backwards; the total is always taken
        from the newest response since the service may revise it.
        """
        return ScanSession(
            scan_id=self.scan_id,
            pages_processed=max(self.pages_processed, batch.pages_processed),
            total_pages=batch.total_pages,
            completed=self.completed or batch.completed,
        )


class ScanRecord(BaseModel):
    """Server-side scan row."""
    scan_id: str
    module: str
    status: str = "in_progress"
    total_pages: int = 0
    pages_processed: int = 0
    broken_count: int = 0
    started_at: datetime
    completed_at: Optional[datetime] = None

    @property
    def completed(self) -> bool:
        return self.status == "completed"


class ProgressSnapshot(BaseModel):
    """Response of get_progress."""
    status: str
    progress: int = 0
    total_pages: int = 0
    pages_processed: int = 0
    broken_count: int = 0


# =============================================================================
# Results
# =============================================================================


class ResultRecord(BaseModel):
    """One finding produced by a scan (a broken link or an image)."""
    id: int
    link_type: LinkType = LinkType.EXTERNAL
    original_url: str
    suggested_url: Optional[str] = None
    user_modified_url: Optional[str] = None
    is_fixed: bool = False
    fixed_url: Optional[str] = None
    reason: str = ""
    status_code: int = 404
    found_on_url: Optional[str] = None
    found_on_page_title: Optional[str] = None
    anchor_text: Optional[str] = None
    location: str = "content"

    class Config:
        use_enum_values = True

    @field_validator("status_code", mode="before")
    @classmethod
    def _default_status_code(cls, value):
        return value or 404

    @field_validator("reason", mode="before")
    @classmethod
    def _empty_reason(cls, value):
        return value or ""

    @property
    def effective_suggestion(self) -> Optional[str]:
        """User edit wins over the server suggestion."""
        return self.user_modified_url or self.suggested_url

    @property
    def replacement_url(self) -> Optional[str]:
        """The URL a fixed row was fixed with, else the effective suggestion."""
        if self.is_fixed and self.fixed_url:
            return self.fixed_url
        return self.effective_suggestion

    @property
    def status(self) -> str:
        return "fixed" if self.is_fixed else "unfixed"

    @property
    def error_class(self) -> str:
        return "5xx" if self.status_code >= 500 else "4xx"


class ResultStats(BaseModel):
    """Per-scan counters shown next to the filters."""
    total: int = 0
    internal: int = 0
    external: int = 0
    client_errors: int = Field(0, alias="4xx")
    server_errors: int = Field(0, alias="5xx")

    class Config:
        populate_by_name = True


class ResultPage(BaseModel):
    """Response of get_results."""
    results: list[ResultRecord] = Field(default_factory=list)
    total: int = 0
    current_page: int = 1
    per_page: int = 25
    pages: int = 0
    stats: Optional[ResultStats] = None

    @property
    def offset(self) -> int:
        """Serial number offset of the first row on this page."""
        return (self.current_page - 1) * self.per_page


class FixSummary(BaseModel):
    """Response of apply_fixes. Partial failure is normal.

    fix_session_id names the batch of fixes so it can be reverted; it is
    None when nothing was fixed.
    """
    fixed_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    messages: list[str] = Field(default_factory=list)
    fix_session_id: Optional[str] = None


class FixSession(BaseModel):
    """One apply_fixes call as recorded in the fix history."""
    fix_session_id: str
    scan_id: str
    entries_fixed: int = 0
    is_reverted: bool = False
    applied_at: datetime
    reverted_at: Optional[datetime] = None


class FixSessionList(BaseModel):
    """Response of get_fix_sessions."""
    sessions: list[FixSession] = Field(default_factory=list)
    total: int = 0


class RevertSummary(BaseModel):
    """Response of revert_fixes."""
    fix_session_id: str
    reverted_count: int = 0
    messages: list[str] = Field(default_factory=list)


class OccurrenceList(BaseModel):
    """Response of get_occurrences: every page where one URL was found."""
    original_url: str
    occurrences: list[ResultRecord] = Field(default_factory=list)
    total: int = 0


class EditOutcome(BaseModel):
    """Response of update_suggestion and delete_entry."""
    message: Optional[str] = None


class BulkDeleteOutcome(BaseModel):
    """Response of bulk_delete."""
    deleted_count: int = 0
    message: Optional[str] = None


# =============================================================================
# Findings fed into a scan
# =============================================================================


class Finding(BaseModel):
    """A finding reported by an external checker for one page."""
    original_url: str
    link_type: LinkType = LinkType.EXTERNAL
    status_code: int = 404
    suggested_url: Optional[str] = None
    reason: str = ""
    anchor_text: Optional[str] = None
    location: str = "content"

    class Config:
        use_enum_values = True


class SourcePage(BaseModel):
    """A page of the site together with the findings on it."""
    url: str
    title: Optional[str] = None
    findings: list[Finding] = Field(default_factory=list)
