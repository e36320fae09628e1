"""Async client for the admin-ajax scan service.

All operations go to a single endpoint and are told apart by an ``action``
field. Each call carries the anti-forgery ``nonce`` handed out by the hosting
admin page; the client never inspects it.
"""

import logging
from typing import Optional, Union

import httpx

from .. import messages
from ..models import (
    BatchProgress,
    BulkDeleteOutcome,
    EditOutcome,
    ErrorType,
    FixSessionList,
    FixSummary,
    OccurrenceList,
    ProgressSnapshot,
    ResultFilter,
    ResultPage,
    RevertSummary,
    ScanModule,
    ScanStarted,
)
from .envelope import SERVICE, TRANSPORT, Err, Ok, Result, decode_envelope, failure_message

logger = logging.getLogger(__name__)


class ScanServiceClient:
    """Client for one module's scan endpoints."""

    def __init__(
        self,
        ajax_url: str,
        nonce: str,
        module: Union[ScanModule, str] = ScanModule.BROKEN_LINKS,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the client.

        Args:
            ajax_url: Full URL of admin-ajax.php
            nonce: Opaque anti-forgery token sent with every call
            module: Which admin screen's actions to call
            timeout: Per-request timeout in seconds
            client: Pre-built httpx client (tests pass one with a mock transport)
        """
        self.ajax_url = ajax_url
        self.nonce = nonce
        self.module = ScanModule(module)
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def aclose(self):
        await self._client.aclose()

    async def __aenter__(self) -> "ScanServiceClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def _send(self, operation: str, method: str, fields: dict) -> Union[httpx.Response, Err]:
        data = {"action": self.module.action(operation), "nonce": self.nonce}
        data.update(fields)

        logger.debug(f"{method} {data['action']}")
        try:
            if method == "GET":
                response = await self._client.get(self.ajax_url, params=data)
            else:
                response = await self._client.post(self.ajax_url, data=data)
        except httpx.TimeoutException as e:
            logger.error(f"{data['action']} timed out: {e}")
            return Err(messages.ERROR, TRANSPORT)
        except httpx.HTTPError as e:
            logger.error(f"{data['action']} failed: {e}")
            return Err(messages.ERROR, TRANSPORT)

        if response.is_error:
            # The service still answers with an error envelope for rejected requests
            try:
                payload = response.json()
            except ValueError:
                payload = None
            if isinstance(payload, dict) and payload.get("success") is False:
                return Err(failure_message(payload.get("data")), SERVICE)
            logger.error(f"{data['action']} returned HTTP {response.status_code}")
            return Err(messages.ERROR, TRANSPORT)

        return response

    async def _call(
        self,
        operation: str,
        fields: dict,
        model=None,
        method: str = "POST",
        default_message: str = messages.ERROR,
    ) -> Result:
        response = await self._send(operation, method, fields)
        if isinstance(response, Err):
            return response

        try:
            payload = response.json()
        except ValueError:
            logger.warning(f"Non-JSON response for {operation}: {response.text[:200]}")
            return Err(messages.ERROR, SERVICE)

        return decode_envelope(payload, model, default_message)

    async def start_scan(self) -> Result:
        """Ask the service to allocate a new scan session."""
        return await self._call("start_scan", {}, ScanStarted)

    async def process_batch(self, scan_id: str) -> Result:
        """Advance the server-side scan cursor by one batch."""
        return await self._call("process_batch", {"scan_id": scan_id}, BatchProgress)

    async def get_progress(self, scan_id: str) -> Result:
        return await self._call("get_progress", {"scan_id": scan_id}, ProgressSnapshot, method="GET")

    async def get_results(
        self,
        scan_id: str,
        filter: Union[ResultFilter, str] = ResultFilter.ALL,
        search: str = "",
        page: int = 1,
        per_page: int = 25,
        error_type: Union[ErrorType, str] = ErrorType.ALL,
        location: str = "all",
    ) -> Result:
        """Fetch one page of results (read-only)."""
        fields = {
            "scan_id": scan_id,
            "filter": ResultFilter(filter).value,
            "search": search,
            "page": page,
            "per_page": per_page,
            "error_type": ErrorType(error_type).value,
            "location": location,
        }
        return await self._call("get_results", fields, ResultPage, method="GET")

    async def update_suggestion(self, entry_id: int, new_url: str) -> Result:
        return await self._call(
            "update_suggestion",
            {"id": entry_id, "new_url": new_url},
            EditOutcome,
            default_message=messages.UPDATE_FAILED,
        )

    async def delete_entry(self, entry_id: int) -> Result:
        return await self._call(
            "delete_entry", {"id": entry_id}, EditOutcome, default_message=messages.DELETE_FAILED
        )

    async def bulk_delete(self, entry_ids: list[int]) -> Result:
        return await self._call(
            "bulk_delete",
            {"ids[]": list(entry_ids)},
            BulkDeleteOutcome,
            default_message=messages.BULK_DELETE_FAILED,
        )

    async def get_occurrences(self, scan_id: str, original_url: str) -> Result:
        """Fetch every page of a scan where one URL was found (read-only)."""
        return await self._call(
            "get_occurrences",
            {"scan_id": scan_id, "original_url": original_url},
            OccurrenceList,
            method="GET",
        )

    async def apply_fixes(self, entry_ids: list[int]) -> Result:
        return await self._call(
            "apply_fixes",
            {"ids[]": list(entry_ids)},
            FixSummary,
            default_message=messages.APPLY_FAILED,
        )

    async def revert_fixes(self, fix_session_id: str) -> Result:
        """Undo every fix made by one apply_fixes call."""
        return await self._call(
            "revert_fixes",
            {"fix_session_id": fix_session_id},
            RevertSummary,
            default_message=messages.REVERT_FAILED,
        )

    async def get_fix_sessions(self, scan_id: str) -> Result:
        return await self._call(
            "get_fix_sessions", {"scan_id": scan_id}, FixSessionList, method="GET"
        )

    async def export_csv(self, scan_id: str, filter: Union[ResultFilter, str] = ResultFilter.ALL) -> Result:
        """Download results as CSV text."""
        response = await self._send(
            "export_csv", "GET", {"scan_id": scan_id, "filter": ResultFilter(filter).value}
        )
        if isinstance(response, Err):
            return response

        if "json" in response.headers.get("content-type", ""):
            # Errors come back as an envelope instead of a file
            return decode_envelope(response.json())
        return Ok(response.text)
