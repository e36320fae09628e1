"""SQLite storage for scan sessions and their results.

Provides persistent storage for:
- Scan sessions (cursor, totals, status)
- Result rows (findings plus user edits, fixed and deleted flags)
- Fix history (which rows each fix session changed, for reverting)
"""

import math
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..config import ensure_data_dir, get_settings
from ..models import (
    ErrorType,
    FixSession,
    ResultFilter,
    ResultPage,
    ResultRecord,
    ResultStats,
    ScanRecord,
    SourcePage,
)

# Columns callers may change through update_scan
SCAN_UPDATE_FIELDS = {"status", "total_pages", "pages_processed", "broken_count", "completed_at"}


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SQLiteStore:
    """SQLite-based storage for scan sessions and results."""

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize storage.

        Args:
            db_path: Path to SQLite database file. Defaults to config value.
        """
        self.db_path = Path(db_path or get_settings().database_path)
        ensure_data_dir(self.db_path)
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        """Get database connection."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        """Initialize database schema."""
        conn = self._get_conn()
        try:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS scans (
                    scan_id TEXT PRIMARY KEY,
                    module TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'in_progress',
                    total_pages INTEGER DEFAULT 0,
                    pages_processed INTEGER DEFAULT 0,
                    broken_count INTEGER DEFAULT 0,
                    started_at TEXT NOT NULL,
                    completed_at TEXT
                );

                CREATE TABLE IF NOT EXISTS scan_results (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    scan_id TEXT NOT NULL,
                    found_on_url TEXT,
                    found_on_page_title TEXT,
                    original_url TEXT NOT NULL,
                    link_type TEXT NOT NULL DEFAULT 'external',
                    status_code INTEGER DEFAULT 404,
                    suggested_url TEXT,
                    user_modified_url TEXT,
                    reason TEXT,
                    anchor_text TEXT,
                    location TEXT DEFAULT 'content',
                    is_fixed INTEGER DEFAULT 0,
                    fixed_url TEXT,
                    is_deleted INTEGER DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT,
                    FOREIGN KEY (scan_id) REFERENCES scans(scan_id)
                );

                CREATE INDEX IF NOT EXISTS idx_results_scan_id ON scan_results(scan_id);
                CREATE INDEX IF NOT EXISTS idx_results_link_type ON scan_results(link_type);
                CREATE INDEX IF NOT EXISTS idx_scans_module ON scans(module);

                CREATE TABLE IF NOT EXISTS fix_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    fix_session_id TEXT NOT NULL,
                    scan_id TEXT NOT NULL,
                    entry_id INTEGER NOT NULL,
                    fixed_url TEXT,
                    applied_at TEXT NOT NULL,
                    is_reverted INTEGER DEFAULT 0,
                    reverted_at TEXT,
                    FOREIGN KEY (scan_id) REFERENCES scans(scan_id),
                    FOREIGN KEY (entry_id) REFERENCES scan_results(id)
                );

                CREATE INDEX IF NOT EXISTS idx_history_session ON fix_history(fix_session_id);
                CREATE INDEX IF NOT EXISTS idx_history_scan_id ON fix_history(scan_id);
            """)
            conn.commit()
        finally:
            conn.close()

    # =========================================================================
    # Scans
    # =========================================================================

    def create_scan(self, scan_id: str, module: str, total_pages: int = 0) -> ScanRecord:
        """Create a new scan record."""
        conn = self._get_conn()
        now = datetime.utcnow().isoformat()
        try:
            conn.execute(
                "INSERT INTO scans (scan_id, module, status, total_pages, started_at) VALUES (?, ?, ?, ?, ?)",
                (scan_id, module, "in_progress", total_pages, now),
            )
            conn.commit()
            return ScanRecord(
                scan_id=scan_id,
                module=module,
                total_pages=total_pages,
                started_at=datetime.fromisoformat(now),
            )
        finally:
            conn.close()

    def update_scan(self, scan_id: str, **fields) -> bool:
        """Update whitelisted scan columns."""
        updates = {k: v for k, v in fields.items() if k in SCAN_UPDATE_FIELDS}
        if not updates:
            return False

        if isinstance(updates.get("completed_at"), datetime):
            updates["completed_at"] = updates["completed_at"].isoformat()

        conn = self._get_conn()
        try:
            cursor = conn.execute(
                f"UPDATE scans SET {', '.join(f'{k} = ?' for k in updates)} WHERE scan_id = ?",
                [*updates.values(), scan_id],
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def get_scan(self, scan_id: str) -> Optional[ScanRecord]:
        """Get a scan by ID."""
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM scans WHERE scan_id = ?", (scan_id,)
            ).fetchone()
            return self._scan_from_row(row) if row else None
        finally:
            conn.close()

    def list_scans(self, module: Optional[str] = None, limit: int = 10) -> list[ScanRecord]:
        """List recent scans, newest first."""
        conn = self._get_conn()
        try:
            if module:
                rows = conn.execute(
                    "SELECT * FROM scans WHERE module = ? ORDER BY started_at DESC LIMIT ?",
                    (module, limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM scans ORDER BY started_at DESC LIMIT ?", (limit,)
                ).fetchall()
            return [self._scan_from_row(row) for row in rows]
        finally:
            conn.close()

    def get_latest_scan_id(self, module: Optional[str] = None) -> Optional[str]:
        scans = self.list_scans(module=module, limit=1)
        return scans[0].scan_id if scans else None

    def _scan_from_row(self, row: sqlite3.Row) -> ScanRecord:
        return ScanRecord(
            scan_id=row["scan_id"],
            module=row["module"],
            status=row["status"],
            total_pages=row["total_pages"] or 0,
            pages_processed=row["pages_processed"] or 0,
            broken_count=row["broken_count"] or 0,
            started_at=datetime.fromisoformat(row["started_at"]),
            completed_at=datetime.fromisoformat(row["completed_at"]) if row["completed_at"] else None,
        )

    # =========================================================================
    # Results
    # =========================================================================

    def add_page_findings(self, scan_id: str, page: SourcePage) -> int:
        """Store every finding on one page. Returns the number stored."""
        conn = self._get_conn()
        now = datetime.utcnow().isoformat()
        try:
            for finding in page.findings:
                conn.execute(
                    """INSERT INTO scan_results
                       (scan_id, found_on_url, found_on_page_title, original_url, link_type,
                        status_code, suggested_url, reason, anchor_text, location, created_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        scan_id,
                        page.url,
                        page.title or "",
                        finding.original_url,
                        finding.link_type,
                        finding.status_code,
                        finding.suggested_url,
                        finding.reason,
                        finding.anchor_text or "",
                        finding.location,
                        now,
                    ),
                )
            conn.commit()
            return len(page.findings)
        finally:
            conn.close()

    def _where(
        self,
        scan_id: str,
        filter: str = ResultFilter.ALL.value,
        search: str = "",
        error_type: str = ErrorType.ALL.value,
        location: str = "all",
    ) -> tuple[str, list]:
        clauses = ["scan_id = ?", "is_deleted = 0"]
        params: list = [scan_id]

        if filter == ResultFilter.INTERNAL.value:
            clauses.append("link_type = 'internal'")
        elif filter == ResultFilter.EXTERNAL.value:
            clauses.append("link_type = 'external'")

        if error_type == ErrorType.CLIENT_ERROR.value:
            clauses.append("status_code >= 400 AND status_code < 500")
        elif error_type == ErrorType.SERVER_ERROR.value:
            clauses.append("status_code >= 500 AND status_code < 600")

        if location and location != "all":
            clauses.append("location = ?")
            params.append(location)

        if search:
            clauses.append(
                "(original_url LIKE ? ESCAPE '\\' OR COALESCE(user_modified_url, suggested_url, '') "
                "LIKE ? ESCAPE '\\' OR reason LIKE ? ESCAPE '\\')"
            )
            term = f"%{_escape_like(search)}%"
            params.extend([term, term, term])

        return "WHERE " + " AND ".join(clauses), params

    def get_results(
        self,
        scan_id: str,
        filter: str = ResultFilter.ALL.value,
        search: str = "",
        page: int = 1,
        per_page: int = 25,
        error_type: str = ErrorType.ALL.value,
        location: str = "all",
    ) -> ResultPage:
        """Get one page of results, ordered by id."""
        where, params = self._where(scan_id, filter, search, error_type, location)
        conn = self._get_conn()
        try:
            total = conn.execute(
                f"SELECT COUNT(*) FROM scan_results {where}", params
            ).fetchone()[0]

            rows = conn.execute(
                f"SELECT * FROM scan_results {where} ORDER BY id ASC LIMIT ? OFFSET ?",
                [*params, per_page, (page - 1) * per_page],
            ).fetchall()
        finally:
            conn.close()

        return ResultPage(
            results=[self._result_from_row(row) for row in rows],
            total=total,
            pages=math.ceil(total / per_page),
            current_page=page,
            per_page=per_page,
            stats=self.get_stats(scan_id),
        )

    def iter_results(self, scan_id: str, filter: str = ResultFilter.ALL.value) -> list[ResultRecord]:
        """All non-deleted results of a scan for a filter."""
        where, params = self._where(scan_id, filter)
        conn = self._get_conn()
        try:
            rows = conn.execute(
                f"SELECT * FROM scan_results {where} ORDER BY id ASC", params
            ).fetchall()
            return [self._result_from_row(row) for row in rows]
        finally:
            conn.close()

    def get_stats(self, scan_id: str) -> ResultStats:
        """Counts by link type and error class for a scan."""
        conn = self._get_conn()
        try:
            row = conn.execute(
                """SELECT
                       COUNT(*) AS total,
                       SUM(CASE WHEN link_type = 'internal' THEN 1 ELSE 0 END) AS internal,
                       SUM(CASE WHEN link_type = 'external' THEN 1 ELSE 0 END) AS external,
                       SUM(CASE WHEN status_code >= 400 AND status_code < 500 THEN 1 ELSE 0 END) AS client_errors,
                       SUM(CASE WHEN status_code >= 500 AND status_code < 600 THEN 1 ELSE 0 END) AS server_errors
                   FROM scan_results WHERE scan_id = ? AND is_deleted = 0""",
                (scan_id,),
            ).fetchone()
        finally:
            conn.close()

        return ResultStats(
            total=row["total"] or 0,
            internal=row["internal"] or 0,
            external=row["external"] or 0,
            client_errors=row["client_errors"] or 0,
            server_errors=row["server_errors"] or 0,
        )

    def count_results(self, scan_id: str) -> int:
        return self.get_stats(scan_id).total

    def get_entry(
        self, entry_id: int, module: Optional[str] = None, include_deleted: bool = False
    ) -> Optional[ResultRecord]:
        """Get a single result row by ID.

        With a module, rows belonging to another module's scans are not found.
        """
        query = "SELECT r.* FROM scan_results r JOIN scans s ON s.scan_id = r.scan_id WHERE r.id = ?"
        params: list = [entry_id]
        if module:
            query += " AND s.module = ?"
            params.append(module)
        if not include_deleted:
            query += " AND r.is_deleted = 0"

        conn = self._get_conn()
        try:
            row = conn.execute(query, params).fetchone()
            return self._result_from_row(row) if row else None
        finally:
            conn.close()

    def get_occurrences(self, scan_id: str, original_url: str) -> list[ResultRecord]:
        """Every live row of a scan pointing at the same URL, by page title."""
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """SELECT * FROM scan_results
                   WHERE scan_id = ? AND original_url = ? AND is_deleted = 0
                   ORDER BY found_on_page_title ASC, id ASC""",
                (scan_id, original_url),
            ).fetchall()
            return [self._result_from_row(row) for row in rows]
        finally:
            conn.close()

    def _entry_scope(self, module: Optional[str]) -> tuple[str, list]:
        if not module:
            return "", []
        return " AND scan_id IN (SELECT scan_id FROM scans WHERE module = ?)", [module]

    def _update_entry(self, entry_id: int, values: dict, module: Optional[str] = None) -> bool:
        scope, scope_params = self._entry_scope(module)
        assignments = ", ".join(f"{column} = ?" for column in values)
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                f"UPDATE scan_results SET {assignments}, updated_at = ? "
                f"WHERE id = ? AND is_deleted = 0{scope}",
                [*values.values(), datetime.utcnow().isoformat(), entry_id, *scope_params],
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def update_suggestion(self, entry_id: int, new_url: str, module: Optional[str] = None) -> bool:
        """Store a user-edited replacement URL."""
        return self._update_entry(entry_id, {"user_modified_url": new_url}, module)

    def delete_entry(self, entry_id: int, module: Optional[str] = None) -> bool:
        """Soft-delete a result row."""
        return self._update_entry(entry_id, {"is_deleted": 1}, module)

    def delete_entries(self, entry_ids: list[int], module: Optional[str] = None) -> int:
        """Soft-delete several result rows. Returns how many were deleted."""
        if not entry_ids:
            return 0

        scope, scope_params = self._entry_scope(module)
        placeholders = ", ".join("?" for _ in entry_ids)
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                f"UPDATE scan_results SET is_deleted = 1, updated_at = ? "
                f"WHERE id IN ({placeholders}) AND is_deleted = 0{scope}",
                [datetime.utcnow().isoformat(), *entry_ids, *scope_params],
            )
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    def mark_as_fixed(
        self,
        entry_id: int,
        fixed_url: str,
        module: Optional[str] = None,
        fix_session_id: Optional[str] = None,
    ) -> bool:
        """Flag a row fixed with the URL it was fixed with.

        With a fix session, the fix is also recorded in the history so the
        session can be reverted.
        """
        scope, scope_params = self._entry_scope(module)
        now = datetime.utcnow().isoformat()
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                f"UPDATE scan_results SET is_fixed = 1, fixed_url = ?, updated_at = ? "
                f"WHERE id = ? AND is_deleted = 0 AND is_fixed = 0{scope}",
                [fixed_url, now, entry_id, *scope_params],
            )
            if cursor.rowcount and fix_session_id:
                conn.execute(
                    """INSERT INTO fix_history (fix_session_id, scan_id, entry_id, fixed_url, applied_at)
                       SELECT ?, scan_id, id, ?, ? FROM scan_results WHERE id = ?""",
                    (fix_session_id, fixed_url, now, entry_id),
                )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    # =========================================================================
    # Fix history
    # =========================================================================

    _SESSION_COLUMNS = """h.fix_session_id AS fix_session_id,
                          h.scan_id AS scan_id,
                          COUNT(*) AS entries_fixed,
                          MAX(h.is_reverted) AS is_reverted,
                          MIN(h.applied_at) AS applied_at,
                          MAX(h.reverted_at) AS reverted_at"""

    def get_fix_session(self, fix_session_id: str, module: Optional[str] = None) -> Optional[FixSession]:
        """Get one fix session, optionally only if it belongs to a module."""
        query = (
            f"SELECT {self._SESSION_COLUMNS} FROM fix_history h "
            "JOIN scans s ON s.scan_id = h.scan_id WHERE h.fix_session_id = ?"
        )
        params: list = [fix_session_id]
        if module:
            query += " AND s.module = ?"
            params.append(module)
        query += " GROUP BY h.fix_session_id, h.scan_id"

        conn = self._get_conn()
        try:
            row = conn.execute(query, params).fetchone()
            return self._session_from_row(row) if row else None
        finally:
            conn.close()

    def get_fix_sessions(self, scan_id: str) -> list[FixSession]:
        """Fix sessions of a scan, newest first."""
        conn = self._get_conn()
        try:
            rows = conn.execute(
                f"""SELECT {self._SESSION_COLUMNS} FROM fix_history h
                    WHERE h.scan_id = ?
                    GROUP BY h.fix_session_id, h.scan_id
                    ORDER BY applied_at DESC, MAX(h.id) DESC""",
                (scan_id,),
            ).fetchall()
            return [self._session_from_row(row) for row in rows]
        finally:
            conn.close()

    def revert_fix_session(self, fix_session_id: str) -> list[ResultRecord]:
        """Unflag every row a session fixed and mark the session reverted.

        Returns the rows that were unflagged.
        """
        now = datetime.utcnow().isoformat()
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """SELECT * FROM scan_results
                   WHERE is_fixed = 1
                     AND id IN (SELECT entry_id FROM fix_history
                                WHERE fix_session_id = ? AND is_reverted = 0)
                   ORDER BY id ASC""",
                (fix_session_id,),
            ).fetchall()
            ids = [row["id"] for row in rows]
            if ids:
                conn.execute(
                    f"""UPDATE scan_results SET is_fixed = 0, fixed_url = NULL, updated_at = ?
                        WHERE id IN ({', '.join('?' for _ in ids)})""",
                    [now, *ids],
                )
            conn.execute(
                "UPDATE fix_history SET is_reverted = 1, reverted_at = ? "
                "WHERE fix_session_id = ? AND is_reverted = 0",
                (now, fix_session_id),
            )
            conn.commit()
        finally:
            conn.close()

        reverted = []
        for row in rows:
            record = self._result_from_row(row)
            record.is_fixed = False
            record.fixed_url = None
            reverted.append(record)
        return reverted

    def _session_from_row(self, row: sqlite3.Row) -> FixSession:
        return FixSession(
            fix_session_id=row["fix_session_id"],
            scan_id=row["scan_id"],
            entries_fixed=row["entries_fixed"] or 0,
            is_reverted=bool(row["is_reverted"]),
            applied_at=datetime.fromisoformat(row["applied_at"]),
            reverted_at=datetime.fromisoformat(row["reverted_at"]) if row["reverted_at"] else None,
        )

    def _result_from_row(self, row: sqlite3.Row) -> ResultRecord:
        return ResultRecord(
            id=row["id"],
            link_type=row["link_type"],
            original_url=row["original_url"],
            suggested_url=row["suggested_url"],
            user_modified_url=row["user_modified_url"],
            is_fixed=bool(row["is_fixed"]),
            fixed_url=row["fixed_url"],
            reason=row["reason"],
            status_code=row["status_code"],
            found_on_url=row["found_on_url"],
            found_on_page_title=row["found_on_page_title"],
            anchor_text=row["anchor_text"],
            location=row["location"],
        )
