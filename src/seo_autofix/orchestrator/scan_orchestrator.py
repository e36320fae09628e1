"""Client-side scan orchestrator.

Drives a server-side scan to completion one batch at a time:

    IDLE -> STARTING -> POLLING -> COMPLETING -> IDLE

Any failure while starting or polling surfaces the error and unwinds straight
back to IDLE. Only one request is ever in flight, and batch N+1 is requested
only after batch N's response has been handled.
"""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Iterable, Optional, Union

from .. import messages
from ..client.envelope import GUARD, TRANSPORT, Err, Ok, Result
from ..models import ScanModule, ScanSession, ScanState
from ..view.base import ResultsView
from .view_state import ClientViewState

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


class ScanOrchestrator:
    """Owns one admin screen's scan session and view state."""

    def __init__(
        self,
        client,
        view: ResultsView,
        module: Union[ScanModule, str, None] = None,
        per_page: int = 25,
        batch_delay: float = 0.5,
        completion_delay: float = 1.5,
        batch_timeout: Optional[float] = 60.0,
        sleep: SleepFunc = asyncio.sleep,
    ):
        """Initialize the orchestrator.

        Args:
            client: Scan service client (see ScanServiceClient)
            view: View that renders progress and results
            module: Module whose confirmation text is shown; defaults to the client's
            per_page: Initial page size for result listings
            batch_delay: Pause between batch requests, in seconds
            completion_delay: How long "scan complete" stays up before the final fetch
            batch_timeout: Upper bound on one process_batch call; None waits forever
            sleep: Delay function, injectable so tests run without real waiting
        """
        self.client = client
        self.view = view
        self.module = ScanModule(module or getattr(client, "module", ScanModule.BROKEN_LINKS))
        self.batch_delay = batch_delay
        self.completion_delay = completion_delay
        self.batch_timeout = batch_timeout
        self.sleep = sleep

        self.view_state = ClientViewState(per_page=per_page)
        self.state = ScanState.IDLE
        self.scan_id: Optional[str] = None
        self.session: Optional[ScanSession] = None
        self.last_error: Optional[str] = None

        self._task: Optional[asyncio.Task] = None
        self._delay: Optional[asyncio.Future] = None
        self._stop_requested = False

    @property
    def is_scanning(self) -> bool:
        return self.state in (ScanState.STARTING, ScanState.POLLING)

    # =========================================================================
    # Scan lifecycle
    # =========================================================================

    async def start_scan(self) -> Result:
        """Start a new scan and begin polling it in the background.

        Returns:
            Ok(ScanSession) once polling has started, Err otherwise
        """
        if self.state != ScanState.IDLE:
            self.view.notify(messages.SCAN_IN_PROGRESS, "warning")
            return Err(messages.SCAN_IN_PROGRESS, GUARD)

        if not self.view.confirm(messages.CONFIRM_SCAN[self.module.value]):
            logger.debug("Scan start declined by user")
            return Err(messages.CANCELLED, GUARD)

        self.state = ScanState.STARTING
        self._stop_requested = False
        self.last_error = None
        self.view.set_start_enabled(False, messages.STARTING_SCAN)
        self.view.show_progress()

        result = await self.client.start_scan()
        if isinstance(result, Err):
            self._fail(result.message)
            return result

        self.scan_id = result.value.scan_id
        self.session = ScanSession(scan_id=self.scan_id)
        self.view_state.page = 1
        self.state = ScanState.POLLING
        logger.info(f"Scan {self.scan_id} started ({self.module.value})")

        self._task = asyncio.create_task(self._poll(), name=f"scan-{self.scan_id}")
        return Ok(self.session)

    async def process_next_batch(self, scan_id: str) -> Result:
        """Ask the service to process one more batch of the given session."""
        if self.session is None or self.session.scan_id != scan_id:
            return Err(messages.NO_SCAN_OPEN, GUARD)
        if self.session.completed:
            return Err(messages.SCAN_ALREADY_COMPLETED, GUARD)

        call = self.client.process_batch(scan_id)
        if self.batch_timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self.batch_timeout)
        except asyncio.TimeoutError:
            logger.error(f"Batch for scan {scan_id} timed out after {self.batch_timeout}s")
            return Err(messages.BATCH_TIMEOUT, TRANSPORT)

    def stop(self) -> bool:
        """Stop scheduling further batches.

        The in-flight request, if any, is allowed to finish first; a pause
        between batches is cut short.
        """
        if self.state != ScanState.POLLING:
            return False
        self._stop_requested = True
        if self._delay is not None and not self._delay.done():
            self._delay.cancel()
        logger.info(f"Stop requested for scan {self.scan_id}")
        return True

    async def wait(self) -> None:
        """Wait for the current scan task, if any, to finish."""
        if self._task is not None:
            await self._task

    async def aclose(self) -> None:
        """Cancel the scan task (e.g. when the screen is closed)."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _poll(self) -> None:
        try:
            while True:
                result = await self.process_next_batch(self.scan_id)
                if isinstance(result, Err):
                    self._fail(result.message)
                    return

                batch = result.value
                if batch.pages_processed < self.session.pages_processed:
                    logger.warning(
                        f"Scan {self.scan_id} reported {batch.pages_processed} pages "
                        f"after {self.session.pages_processed}; keeping the higher count"
                    )
                self.session = self.session.advance(batch)
                logger.info(
                    f"Scan {self.scan_id}: {self.session.pages_processed}/"
                    f"{self.session.total_pages} pages ({self.session.progress}%)"
                )
                self.view.update_progress(self.session)

                if self.session.completed:
                    await self._complete()
                    return

                # Partial results appear while the scan is still running
                await self.load_results()

                if self._stop_requested:
                    self._unwind(messages.SCAN_STOPPED, "warning")
                    return
                await self._pause(self.batch_delay)
                if self._stop_requested:
                    self._unwind(messages.SCAN_STOPPED, "warning")
                    return
        except asyncio.CancelledError:
            logger.info(f"Scan {self.scan_id} polling cancelled")
            self._unwind()
            raise
        except Exception:
            logger.exception(f"Unexpected error while polling scan {self.scan_id}")
            self._fail(messages.ERROR)

    async def _pause(self, seconds: float) -> None:
        # stop() cancels the pause so a stop takes effect without waiting it out
        self._delay = asyncio.ensure_future(self.sleep(seconds))
        try:
            await self._delay
        except asyncio.CancelledError:
            if not (self._stop_requested and self._delay.cancelled()):
                raise
        finally:
            self._delay = None

    async def _complete(self) -> None:
        self.state = ScanState.COMPLETING
        logger.info(f"Scan {self.scan_id} completed")
        self.view.show_scan_complete(messages.SCAN_COMPLETE)

        await self.sleep(self.completion_delay)
        self.view.hide_progress()
        await self.load_results()

        self.state = ScanState.IDLE
        self.view.set_start_enabled(True)

    def _fail(self, message: str) -> None:
        self.state = ScanState.ERROR
        self.last_error = message
        logger.error(f"Scan {self.scan_id or '(new)'} failed: {message}")
        self._unwind(message, "error")

    def _unwind(self, message: Optional[str] = None, level: str = "info") -> None:
        if message:
            self.view.notify(message, level)
        self._stop_requested = False
        self.view.hide_progress()
        self.view.set_start_enabled(True)
        self.state = ScanState.IDLE

    # =========================================================================
    # Results listing
    # =========================================================================

    async def open_scan(self, scan_id: str) -> Result:
        """Show the results of an existing scan without scanning."""
        self.scan_id = scan_id
        self.view_state.page = 1
        return await self.load_results()

    async def load_results(self) -> Result:
        """Fetch and render the current page of results."""
        if not self.scan_id:
            return Err(messages.NO_SCAN_OPEN, GUARD)

        result = await self.client.get_results(self.scan_id, **self.view_state.query())
        if isinstance(result, Err):
            self.view.notify(result.message, "error")
            return result

        self.view.render_results(result.value)
        return result

    async def set_filter(self, value: str) -> Optional[Result]:
        self.view_state.set_filter(value)
        return await self._reload()

    async def set_search(self, value: str) -> Optional[Result]:
        self.view_state.set_search(value)
        return await self._reload()

    async def set_per_page(self, value: int) -> Optional[Result]:
        self.view_state.set_per_page(value)
        return await self._reload()

    async def set_error_type(self, value: str) -> Optional[Result]:
        self.view_state.set_error_type(value)
        return await self._reload()

    async def set_location(self, value: str) -> Optional[Result]:
        self.view_state.set_location(value)
        return await self._reload()

    async def go_to_page(self, page: int) -> Optional[Result]:
        self.view_state.go_to_page(page)
        return await self._reload()

    async def _reload(self) -> Optional[Result]:
        # Nothing to list until a scan is open
        if not self.scan_id:
            return None
        return await self.load_results()

    # =========================================================================
    # Point edits
    # =========================================================================

    async def update_suggestion(self, entry_id: int, new_url: str) -> Result:
        """Save a user-edited replacement URL for one entry."""
        result = await self.client.update_suggestion(entry_id, new_url)
        if isinstance(result, Err):
            self.view.notify(result.message, "error")
            return result

        self.view.update_row(entry_id, new_url)
        return result

    async def delete_entry(self, entry_id: int) -> Result:
        """Delete one entry after confirmation, then reload to refresh counts."""
        if not self.view.confirm(messages.CONFIRM_DELETE):
            return Err(messages.CANCELLED, GUARD)

        result = await self.client.delete_entry(entry_id)
        if isinstance(result, Err):
            self.view.notify(result.message, "error")
            return result

        self.view.remove_row(entry_id)
        await self.load_results()
        return result

    async def bulk_delete(self, entry_ids: Iterable[int]) -> Result:
        """Delete the selected entries after confirmation, then reload."""
        ids = list(entry_ids)
        if not ids:
            self.view.notify(messages.SELECT_TO_DELETE, "warning")
            return Err(messages.SELECT_TO_DELETE, GUARD)

        if not self.view.confirm(messages.confirm_bulk_delete(len(ids))):
            return Err(messages.CANCELLED, GUARD)

        result = await self.client.bulk_delete(ids)
        if isinstance(result, Err):
            self.view.notify(result.message, "error")
            return result

        self.view.notify(messages.deleted_summary(result.value.deleted_count), "success")
        await self._reload()
        return result

    async def show_occurrences(self, original_url: str) -> Result:
        """List every page of the open scan where one URL was found."""
        if not self.scan_id:
            return Err(messages.NO_SCAN_OPEN, GUARD)

        result = await self.client.get_occurrences(self.scan_id, original_url)
        if isinstance(result, Err):
            self.view.notify(result.message, "error")
            return result

        self.view.render_occurrences(result.value)
        return result

    async def apply_fixes(self, entry_ids: Iterable[int]) -> Result:
        """Apply the suggested replacements for the selected entries."""
        ids = list(entry_ids)
        if not ids:
            self.view.notify(messages.SELECT_AT_LEAST_ONE, "warning")
            return Err(messages.SELECT_AT_LEAST_ONE, GUARD)

        if not self.view.confirm(messages.CONFIRM_APPLY_FIXES):
            return Err(messages.CANCELLED, GUARD)

        result = await self.client.apply_fixes(ids)
        if isinstance(result, Err):
            self.view.notify(result.message, "error")
            return result

        summary = result.value
        level = "success" if summary.failed_count == 0 else "warning"
        self.view.notify(messages.fix_summary(summary.fixed_count, summary.failed_count), level)
        await self.load_results()
        return result

    async def revert_fixes(self, fix_session_id: str) -> Result:
        """Undo one fix session after confirmation, then reload."""
        if not fix_session_id:
            self.view.notify(messages.NO_SESSION_SELECTED, "warning")
            return Err(messages.NO_SESSION_SELECTED, GUARD)

        if not self.view.confirm(messages.CONFIRM_REVERT):
            return Err(messages.CANCELLED, GUARD)

        result = await self.client.revert_fixes(fix_session_id)
        if isinstance(result, Err):
            self.view.notify(result.message, "error")
            return result

        self.view.notify(messages.revert_summary(result.value.reverted_count), "success")
        await self._reload()
        return result

    async def show_fix_sessions(self) -> Result:
        """List the fix sessions of the open scan."""
        if not self.scan_id:
            return Err(messages.NO_SCAN_OPEN, GUARD)

        result = await self.client.get_fix_sessions(self.scan_id)
        if isinstance(result, Err):
            self.view.notify(result.message, "error")
            return result

        self.view.render_fix_sessions(result.value)
        return result

    async def export_csv(self, path: Union[str, Path]) -> Result:
        """Download the open scan's results for the current filter to a file."""
        if not self.scan_id:
            self.view.notify(messages.NO_SCAN_TO_EXPORT, "warning")
            return Err(messages.NO_SCAN_TO_EXPORT, GUARD)

        result = await self.client.export_csv(self.scan_id, self.view_state.filter)
        if isinstance(result, Err):
            self.view.notify(result.message, "error")
            return result

        path = Path(path)
        path.write_text(result.value, encoding="utf-8")
        self.view.notify(f"Exported results to {path}", "success")
        return Ok(path)
