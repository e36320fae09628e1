"""Reference scan service.

Owns server-side scan sessions for one module: walks the pages of a findings
source in batches, stores their findings, and serves the result listing,
point edits, fixes and their reverts, and the exports the admin screens call.
"""

import logging
import time
import uuid
from datetime import datetime
from typing import Callable, Iterable, Optional, Union

from ..export import results_to_csv
from ..models import (
    BulkDeleteOutcome,
    ErrorType,
    FixSessionList,
    FixSummary,
    OccurrenceList,
    ProgressSnapshot,
    ResultFilter,
    ResultPage,
    RevertSummary,
    ScanModule,
    ScanRecord,
    progress_percent,
)
from ..slack import notify_scan_completed, notify_scan_failed, notify_scan_started
from ..storage import SQLiteStore
from .findings_source import FindingsSource

logger = logging.getLogger(__name__)


class ScanServiceError(Exception):
    """A request the service refuses; the message is shown to the user."""
    pass


def new_scan_id() -> str:
    return f"scan_{uuid.uuid4().hex[:13]}_{int(time.time())}"


def new_fix_session_id() -> str:
    return f"session_{uuid.uuid4().hex[:13]}"


class ScanService:
    """Batch scan service for one admin module."""

    def __init__(
        self,
        module: Union[ScanModule, str],
        store: SQLiteStore,
        source: FindingsSource,
        batch_size: int = 5,
    ):
        self.module = ScanModule(module)
        self.store = store
        self.source = source
        self.batch_size = batch_size

    # =========================================================================
    # Scan lifecycle
    # =========================================================================

    def start_scan(self, background=None) -> dict:
        """Create a new scan session positioned at the first page.

        Args:
            background: Optional task queue (FastAPI BackgroundTasks) that
                notifications are handed to instead of being sent inline
        """
        scan_id = new_scan_id()
        total_pages = self.source.count_pages()
        self.store.create_scan(scan_id, self.module.value, total_pages=total_pages)

        logger.info(f"Created scan {scan_id} ({self.module.value}, {total_pages} pages)")
        self._notify(background, notify_scan_started, self.module.value, scan_id, total_pages)
        return {"scan_id": scan_id, "message": "Scan started"}

    def process_batch(self, scan_id: str, batch_size: Optional[int] = None, background=None) -> dict:
        """Process the next batch of pages of a scan.

        A completed scan is returned unchanged, so repeated calls after
        completion are harmless.
        """
        scan = self._get_scan(scan_id)
        if scan.completed:
            logger.debug(f"Scan {scan_id} already completed")
            return self._batch_payload(scan)

        batch_size = batch_size or self.batch_size
        cursor = scan.pages_processed
        started = time.monotonic()

        try:
            pages = self.source.pages(cursor, batch_size)
            for page in pages:
                stored = self.store.add_page_findings(scan_id, page)
                logger.debug(f"Scan {scan_id}: {page.url} -> {stored} findings")
            total_pages = self.source.count_pages()
        except Exception as e:
            logger.exception(f"Batch failed for scan {scan_id}")
            self._notify(background, notify_scan_failed, self.module.value, scan_id, str(e))
            raise

        pages_processed = cursor + len(pages)
        # The source may shrink mid-scan; progress must still reach 100%
        total_pages = max(total_pages, pages_processed)
        completed = pages_processed >= total_pages
        broken_count = self.store.count_results(scan_id)

        fields = {
            "pages_processed": pages_processed,
            "total_pages": total_pages,
            "broken_count": broken_count,
        }
        if completed:
            fields["status"] = "completed"
            fields["completed_at"] = datetime.utcnow()
        self.store.update_scan(scan_id, **fields)

        logger.info(
            f"Scan {scan_id}: processed {len(pages)} pages in "
            f"{time.monotonic() - started:.2f}s ({pages_processed}/{total_pages})"
        )

        scan = self._get_scan(scan_id)
        if completed:
            duration = int((scan.completed_at - scan.started_at).total_seconds())
            self._notify(
                background,
                notify_scan_completed,
                self.module.value,
                scan_id,
                pages_processed,
                broken_count,
                duration,
            )
        return self._batch_payload(scan)

    def _notify(self, background, notifier: Callable, *args) -> None:
        # Webhook calls block, so inside a request they run after the response
        if background is not None:
            background.add_task(notifier, *args)
        else:
            notifier(*args)

    def get_progress(self, scan_id: str) -> dict:
        scan = self.store.get_scan(scan_id)
        if scan is None or scan.module != self.module.value:
            return ProgressSnapshot(status="not_found").model_dump()

        return ProgressSnapshot(
            status=scan.status,
            progress=progress_percent(scan.pages_processed, scan.total_pages),
            total_pages=scan.total_pages,
            pages_processed=scan.pages_processed,
            broken_count=scan.broken_count,
        ).model_dump()

    def _get_scan(self, scan_id: str) -> ScanRecord:
        scan = self.store.get_scan(scan_id) if scan_id else None
        if scan is None or scan.module != self.module.value:
            raise ScanServiceError("Scan not found")
        return scan

    def _batch_payload(self, scan: ScanRecord) -> dict:
        return {
            "pages_processed": scan.pages_processed,
            "total_pages": scan.total_pages,
            "completed": scan.completed,
            "progress": progress_percent(scan.pages_processed, scan.total_pages),
            "broken_count": scan.broken_count,
        }

    # =========================================================================
    # Results
    # =========================================================================

    def get_results(
        self,
        scan_id: str,
        filter: str = ResultFilter.ALL.value,
        search: str = "",
        page: int = 1,
        per_page: int = 25,
        error_type: str = ErrorType.ALL.value,
        location: str = "all",
    ) -> dict:
        """Get one page of a scan's results."""
        self._get_scan(scan_id)
        self._validate_filter(filter)
        if error_type not in {e.value for e in ErrorType}:
            raise ScanServiceError("Invalid parameters")
        if page < 1 or per_page < 1:
            raise ScanServiceError("Invalid parameters")

        result_page: ResultPage = self.store.get_results(
            scan_id,
            filter=filter,
            search=(search or "").strip(),
            page=page,
            per_page=per_page,
            error_type=error_type,
            location=location or "all",
        )
        return result_page.model_dump(by_alias=True)

    def export_csv(self, scan_id: str, filter: str = ResultFilter.ALL.value) -> str:
        self._get_scan(scan_id)
        self._validate_filter(filter)
        return results_to_csv(self.store.iter_results(scan_id, filter))

    def _validate_filter(self, filter: str) -> None:
        if filter not in {f.value for f in ResultFilter}:
            raise ScanServiceError("Invalid parameters")

    # =========================================================================
    # Point edits
    # =========================================================================

    def update_suggestion(self, entry_id: Optional[int], new_url: Optional[str]) -> dict:
        """Store a user-edited replacement URL for one entry."""
        new_url = (new_url or "").strip()
        if not entry_id or not new_url:
            raise ScanServiceError("Invalid parameters")

        if not self.store.update_suggestion(entry_id, new_url, module=self.module.value):
            raise ScanServiceError("Entry not found")

        logger.info(f"Entry {entry_id} suggestion set to {new_url}")
        return {"message": "URL updated successfully"}

    def delete_entry(self, entry_id: Optional[int]) -> dict:
        """Soft-delete one entry."""
        if not entry_id:
            raise ScanServiceError("Invalid parameters")

        if not self.store.delete_entry(entry_id, module=self.module.value):
            raise ScanServiceError("Entry not found")

        logger.info(f"Entry {entry_id} deleted")
        return {"message": "Entry deleted successfully"}

    def bulk_delete(self, entry_ids: Iterable[int]) -> dict:
        """Soft-delete several entries; ids that are gone are ignored."""
        ids = list(entry_ids)
        if not ids:
            raise ScanServiceError("No entries selected")

        deleted_count = self.store.delete_entries(ids, module=self.module.value)
        logger.info(f"Bulk delete: {deleted_count} of {len(ids)} entries deleted")
        return BulkDeleteOutcome(
            deleted_count=deleted_count,
            message=f"Deleted {deleted_count} link(s)",
        ).model_dump()

    def get_occurrences(self, scan_id: str, original_url: Optional[str]) -> dict:
        """Every page of a scan where the same URL was found."""
        original_url = (original_url or "").strip()
        if not scan_id or not original_url:
            raise ScanServiceError("Missing parameters")
        self._get_scan(scan_id)

        occurrences = self.store.get_occurrences(scan_id, original_url)
        return OccurrenceList(
            original_url=original_url,
            occurrences=occurrences,
            total=len(occurrences),
        ).model_dump()

    # =========================================================================
    # Fixes
    # =========================================================================

    def apply_fixes(self, entry_ids: Iterable[int]) -> dict:
        """Mark the selected entries fixed with their effective suggestion.

        Every id is attempted; one failure does not stop the rest. The fixes
        made by one call share a fix session that revert_fixes can undo.
        """
        ids = list(entry_ids)
        if not ids:
            raise ScanServiceError("No entries selected")

        fix_session_id = new_fix_session_id()
        summary = FixSummary()
        for entry_id in ids:
            entry = self.store.get_entry(entry_id, module=self.module.value)
            if entry is None:
                summary.failed_count += 1
                summary.messages.append(f"Entry #{entry_id} not found")
                continue

            if entry.is_fixed:
                summary.skipped_count += 1
                summary.messages.append(f"Already fixed: {entry.original_url}")
                continue

            replacement = entry.effective_suggestion
            if not replacement:
                summary.failed_count += 1
                summary.messages.append(f"No replacement URL for: {entry.original_url}")
                continue

            if self.store.mark_as_fixed(
                entry_id, replacement, module=self.module.value, fix_session_id=fix_session_id
            ):
                summary.fixed_count += 1
                summary.messages.append(f"Fixed: {entry.original_url} -> {replacement}")
            else:
                summary.failed_count += 1
                summary.messages.append(f"Failed to fix: {entry.original_url}")

        if summary.fixed_count:
            summary.fix_session_id = fix_session_id

        logger.info(
            f"Applied fixes: {summary.fixed_count} fixed, {summary.failed_count} failed, "
            f"{summary.skipped_count} skipped"
        )
        return summary.model_dump()

    def revert_fixes(self, fix_session_id: Optional[str]) -> dict:
        """Undo every fix made by one apply_fixes call."""
        if not fix_session_id:
            raise ScanServiceError("Session ID required")

        session = self.store.get_fix_session(fix_session_id, module=self.module.value)
        if session is None:
            raise ScanServiceError("Fix session not found")
        if session.is_reverted:
            raise ScanServiceError("This session has already been reverted")

        reverted = self.store.revert_fix_session(fix_session_id)
        logger.info(f"Reverted fix session {fix_session_id}: {len(reverted)} entries")
        return RevertSummary(
            fix_session_id=fix_session_id,
            reverted_count=len(reverted),
            messages=[f"Reverted: {entry.original_url}" for entry in reverted],
        ).model_dump()

    def get_fix_sessions(self, scan_id: str) -> dict:
        """Fix sessions of a scan, newest first."""
        self._get_scan(scan_id)
        sessions = self.store.get_fix_sessions(scan_id)
        return FixSessionList(sessions=sessions, total=len(sessions)).model_dump(mode="json")
