"""Tests for the scan service, its store and the admin-ajax endpoint."""

import asyncio
import csv
import io
import json
import re

import pytest
from fastapi import BackgroundTasks
from fastapi.testclient import TestClient

from seo_autofix.models import Finding, SourcePage
from seo_autofix.service import (
    FindingsFileSource,
    FindingsSource,
    ScanService,
    ScanServiceError,
    StaticFindingsSource,
    create_app,
)
from seo_autofix.service import scan_service
from seo_autofix.storage import SQLiteStore

AJAX = "/wp-admin/admin-ajax.php"


def make_pages(internal_pages: int = 6, per_page_findings: int = 5, external: int = 3) -> list[SourcePage]:
    """Site with 5 internal findings on each of the first pages and a few external ones."""
    pages = []
    for p in range(internal_pages):
        pages.append(SourcePage(
            url=f"https://site.test/page-{p}/",
            title=f"Page {p}",
            findings=[
                Finding(
                    original_url=f"https://site.test/missing-{p}-{i}",
                    link_type="internal",
                    suggested_url="https://site.test/" if i % 2 == 0 else None,
                    reason="Page not found",
                    anchor_text=f"Link {i}",
                )
                for i in range(per_page_findings)
            ],
        ))
    pages.append(SourcePage(
        url="https://site.test/links/",
        title="Links",
        findings=[
            Finding(original_url=f"https://other.test/{i}", status_code=500 + i, reason="Server error")
            for i in range(external)
        ],
    ))
    return pages


class GrowingSource(FindingsSource):
    """Source whose page count grows after the first batch."""

    def __init__(self, pages, extra):
        self._pages = list(pages)
        self._extra = list(extra)

    def count_pages(self):
        return len(self._pages)

    def pages(self, offset, limit):
        batch = self._pages[offset:offset + limit]
        self._pages.extend(self._extra)
        self._extra = []
        return batch


class ExplodingSource(FindingsSource):
    """Source that fails as soon as pages are read."""

    def count_pages(self):
        return 3

    def pages(self, offset, limit):
        raise RuntimeError("disk on fire")


class TestSQLiteStore:
    """Tests for SQLiteStore."""

    @pytest.fixture(autouse=True)
    def store(self, tmp_path):
        self.store = SQLiteStore(tmp_path / "data" / "test.db")
        self.store.create_scan("scan_a_1", "broken_links", total_pages=7)
        for page in make_pages():
            self.store.add_page_findings("scan_a_1", page)

    def test_scan_roundtrip(self):
        scan = self.store.get_scan("scan_a_1")
        assert scan.module == "broken_links"
        assert scan.total_pages == 7
        assert not scan.completed
        assert self.store.get_scan("missing") is None

    def test_update_scan_ignores_unknown_columns(self):
        assert self.store.update_scan("scan_a_1", pages_processed=5, module="image_seo")
        scan = self.store.get_scan("scan_a_1")
        assert scan.pages_processed == 5
        assert scan.module == "broken_links"
        assert not self.store.update_scan("scan_a_1", module="image_seo")

    def test_stats(self):
        stats = self.store.get_stats("scan_a_1")
        assert stats.total == 33
        assert stats.internal == 30
        assert stats.external == 3
        assert stats.client_errors == 30
        assert stats.server_errors == 3

    def test_internal_second_page(self):
        page = self.store.get_results("scan_a_1", filter="internal", page=2, per_page=25)
        assert len(page.results) == 5
        assert page.total == 30
        assert page.pages == 2
        assert page.current_page == 2
        assert all(r.link_type == "internal" for r in page.results)

    def test_results_ordered_by_id(self):
        ids = [r.id for r in self.store.get_results("scan_a_1", per_page=100).results]
        assert ids == sorted(ids)

    def test_search_is_substring_match(self):
        page = self.store.get_results("scan_a_1", search="MISSING-2-")
        assert page.total == 5

    def test_search_treats_wildcards_literally(self):
        assert self.store.get_results("scan_a_1", search="%").total == 0
        assert self.store.get_results("scan_a_1", search="missing_").total == 0

    def test_error_type_filter(self):
        assert self.store.get_results("scan_a_1", error_type="5xx").total == 3

    def test_soft_delete(self):
        entry = self.store.get_results("scan_a_1").results[0]
        assert self.store.delete_entry(entry.id)
        assert self.store.get_entry(entry.id) is None
        assert self.store.get_entry(entry.id, include_deleted=True) is not None
        assert self.store.get_stats("scan_a_1").total == 32
        assert not self.store.delete_entry(entry.id)

    def test_suggestion_and_fix(self):
        entry = self.store.get_results("scan_a_1").results[1]
        assert self.store.update_suggestion(entry.id, "https://site.test/new")
        assert self.store.mark_as_fixed(entry.id, "https://site.test/new")
        updated = self.store.get_entry(entry.id)
        assert updated.user_modified_url == "https://site.test/new"
        assert updated.is_fixed
        assert updated.fixed_url == "https://site.test/new"
        assert not self.store.mark_as_fixed(entry.id, "https://site.test/again")

    def test_fixed_url_survives_later_edit(self):
        entry = self.store.get_results("scan_a_1").results[0]
        self.store.mark_as_fixed(entry.id, "https://site.test/")
        self.store.update_suggestion(entry.id, "https://site.test/changed-later")
        updated = self.store.get_entry(entry.id)
        assert updated.fixed_url == "https://site.test/"
        assert updated.replacement_url == "https://site.test/"

    def test_entry_access_scoped_to_module(self):
        entry = self.store.get_results("scan_a_1").results[0]
        assert self.store.get_entry(entry.id, module="image_seo") is None
        assert not self.store.update_suggestion(entry.id, "https://site.test/x", module="image_seo")
        assert not self.store.delete_entry(entry.id, module="image_seo")
        assert not self.store.mark_as_fixed(entry.id, "https://site.test/x", module="image_seo")
        assert self.store.delete_entries([entry.id], module="image_seo") == 0

        unchanged = self.store.get_entry(entry.id, module="broken_links")
        assert unchanged.user_modified_url is None
        assert not unchanged.is_fixed

    def test_delete_entries_counts_live_rows(self):
        ids = [r.id for r in self.store.get_results("scan_a_1").results[:3]]
        self.store.delete_entry(ids[0])
        assert self.store.delete_entries([*ids, 99999]) == 2
        assert self.store.get_stats("scan_a_1").total == 30
        assert self.store.delete_entries([]) == 0

    def test_occurrences_of_url(self):
        self.store.add_page_findings("scan_a_1", SourcePage(
            url="https://site.test/about/",
            title="About",
            findings=[Finding(original_url="https://site.test/missing-0-0", link_type="internal")],
        ))
        occurrences = self.store.get_occurrences("scan_a_1", "https://site.test/missing-0-0")
        assert [r.found_on_page_title for r in occurrences] == ["About", "Page 0"]

        self.store.delete_entry(occurrences[0].id)
        assert len(self.store.get_occurrences("scan_a_1", "https://site.test/missing-0-0")) == 1

    def test_fix_session_history_and_revert(self):
        entries = self.store.get_results("scan_a_1").results[:2]
        for entry in entries:
            self.store.mark_as_fixed(entry.id, "https://site.test/", fix_session_id="session_one")

        session = self.store.get_fix_session("session_one")
        assert session.scan_id == "scan_a_1"
        assert session.entries_fixed == 2
        assert not session.is_reverted
        assert self.store.get_fix_session("session_one", module="image_seo") is None
        assert [s.fix_session_id for s in self.store.get_fix_sessions("scan_a_1")] == ["session_one"]

        reverted = self.store.revert_fix_session("session_one")
        assert sorted(r.id for r in reverted) == sorted(e.id for e in entries)
        for entry in entries:
            restored = self.store.get_entry(entry.id)
            assert not restored.is_fixed
            assert restored.fixed_url is None

        session = self.store.get_fix_session("session_one")
        assert session.is_reverted
        assert session.reverted_at is not None
        assert self.store.revert_fix_session("session_one") == []

    def test_latest_scan(self):
        self.store.create_scan("scan_b_2", "image_seo")
        assert self.store.get_latest_scan_id("broken_links") == "scan_a_1"
        assert len(self.store.list_scans()) == 2


class TestScanService:
    """Tests for ScanService."""

    @pytest.fixture(autouse=True)
    def service(self, tmp_path):
        self.store = SQLiteStore(tmp_path / "test.db")
        self.service = ScanService("broken_links", self.store, StaticFindingsSource(make_pages()))

    def run_scan(self) -> str:
        scan_id = self.service.start_scan()["scan_id"]
        while not self.service.process_batch(scan_id)["completed"]:
            pass
        return scan_id

    def test_scan_id_format(self):
        started = self.service.start_scan()
        assert re.match(r"^scan_[0-9a-f]{13}_\d+$", started["scan_id"])
        assert self.store.get_scan(started["scan_id"]).total_pages == 7

    def test_batches_advance_cursor(self):
        scan_id = self.service.start_scan()["scan_id"]

        first = self.service.process_batch(scan_id)
        assert first["pages_processed"] == 5
        assert first["total_pages"] == 7
        assert first["progress"] == 71
        assert not first["completed"]

        second = self.service.process_batch(scan_id)
        assert second["pages_processed"] == 7
        assert second["completed"]
        assert second["progress"] == 100
        assert second["broken_count"] == 33

    def test_completed_scan_is_idempotent(self):
        scan_id = self.run_scan()
        again = self.service.process_batch(scan_id)
        assert again["completed"]
        assert again["pages_processed"] == 7
        assert self.store.get_stats(scan_id).total == 33

    def test_unknown_scan(self):
        with pytest.raises(ScanServiceError, match="Scan not found"):
            self.service.process_batch("scan_nope_1")

    def test_scan_of_other_module_not_visible(self):
        scan_id = self.run_scan()
        images = ScanService("image_seo", self.store, StaticFindingsSource([]))
        with pytest.raises(ScanServiceError):
            images.get_results(scan_id)
        assert images.get_progress(scan_id)["status"] == "not_found"

    def test_total_revised_mid_scan(self):
        extra = [SourcePage(url=f"https://site.test/new-{i}/") for i in range(3)]
        service = ScanService("broken_links", self.store, GrowingSource(make_pages(), extra))
        scan_id = service.start_scan()["scan_id"]

        first = service.process_batch(scan_id)
        assert first["total_pages"] == 10

        second = service.process_batch(scan_id)
        assert second["pages_processed"] == 10
        assert second["completed"]

    def test_empty_source_completes_at_zero(self):
        service = ScanService("broken_links", self.store, StaticFindingsSource([]))
        scan_id = service.start_scan()["scan_id"]
        result = service.process_batch(scan_id)
        assert result["completed"]
        assert result["progress"] == 0

    def test_get_results_internal_page_two(self):
        scan_id = self.run_scan()
        data = self.service.get_results(scan_id, filter="internal", page=2, per_page=25)
        assert len(data["results"]) == 5
        assert data["pages"] == 2
        assert data["current_page"] == 2
        assert data["stats"]["4xx"] == 30
        assert data["results"][0]["link_type"] == "internal"

    def test_get_results_rejects_bad_parameters(self):
        scan_id = self.run_scan()
        for kwargs in ({"filter": "broken"}, {"page": 0}, {"per_page": 0}, {"error_type": "3xx"}):
            with pytest.raises(ScanServiceError, match="Invalid parameters"):
                self.service.get_results(scan_id, **kwargs)

    def test_update_suggestion(self):
        scan_id = self.run_scan()
        entry_id = self.store.get_results(scan_id).results[0].id

        with pytest.raises(ScanServiceError, match="Invalid parameters"):
            self.service.update_suggestion(entry_id, "  ")
        with pytest.raises(ScanServiceError, match="Entry not found"):
            self.service.update_suggestion(99999, "https://site.test/x")

        self.service.update_suggestion(entry_id, "https://site.test/x")
        assert self.store.get_entry(entry_id).user_modified_url == "https://site.test/x"

    def test_delete_entry(self):
        scan_id = self.run_scan()
        entry_id = self.store.get_results(scan_id).results[0].id
        self.service.delete_entry(entry_id)
        with pytest.raises(ScanServiceError, match="Entry not found"):
            self.service.delete_entry(entry_id)

    def test_apply_fixes_partial(self):
        scan_id = self.run_scan()
        results = self.store.get_results(scan_id, filter="internal").results
        with_suggestion, without_suggestion = results[0], results[1]
        self.store.mark_as_fixed(results[2].id, "https://site.test/")

        summary = self.service.apply_fixes([with_suggestion.id, without_suggestion.id, results[2].id, 99999])

        assert summary["fixed_count"] == 1
        assert summary["failed_count"] == 2
        assert summary["skipped_count"] == 1
        assert any("No replacement URL" in m for m in summary["messages"])
        assert self.store.get_entry(with_suggestion.id).is_fixed

    def test_apply_fixes_uses_user_edit(self):
        scan_id = self.run_scan()
        entry = self.store.get_results(scan_id, filter="internal").results[1]
        self.service.update_suggestion(entry.id, "https://site.test/mine")
        summary = self.service.apply_fixes([entry.id])
        assert summary["fixed_count"] == 1
        assert "https://site.test/mine" in summary["messages"][0]

    def test_apply_fixes_requires_selection(self):
        with pytest.raises(ScanServiceError, match="No entries selected"):
            self.service.apply_fixes([])

    def test_edits_do_not_cross_modules(self):
        scan_id = self.run_scan()
        entry_id = self.store.get_results(scan_id).results[0].id
        images = ScanService("image_seo", self.store, StaticFindingsSource([]))

        with pytest.raises(ScanServiceError, match="Entry not found"):
            images.delete_entry(entry_id)
        with pytest.raises(ScanServiceError, match="Entry not found"):
            images.update_suggestion(entry_id, "https://site.test/x")
        summary = images.apply_fixes([entry_id])
        assert summary["failed_count"] == 1
        assert summary["messages"] == [f"Entry #{entry_id} not found"]
        assert images.bulk_delete([entry_id])["deleted_count"] == 0

        entry = self.store.get_entry(entry_id)
        assert entry is not None
        assert entry.user_modified_url is None
        assert not entry.is_fixed
        assert self.store.get_stats(scan_id).total == 33

    def test_apply_fixes_records_applied_url(self):
        scan_id = self.run_scan()
        entry = self.store.get_results(scan_id, filter="internal").results[0]
        self.service.apply_fixes([entry.id])
        self.service.update_suggestion(entry.id, "https://site.test/later")

        fixed = self.store.get_entry(entry.id)
        assert fixed.fixed_url == "https://site.test/"
        assert fixed.user_modified_url == "https://site.test/later"

    def test_bulk_delete(self):
        scan_id = self.run_scan()
        ids = [r.id for r in self.store.get_results(scan_id).results[:4]]
        outcome = self.service.bulk_delete([*ids, 99999])
        assert outcome == {"deleted_count": 4, "message": "Deleted 4 link(s)"}
        assert self.store.get_stats(scan_id).total == 29

        with pytest.raises(ScanServiceError, match="No entries selected"):
            self.service.bulk_delete([])

    def test_get_occurrences(self):
        pages = make_pages()
        pages.append(SourcePage(
            url="https://site.test/contact/",
            title="Contact",
            findings=[Finding(original_url="https://other.test/1", status_code=501)],
        ))
        service = ScanService("broken_links", self.store, StaticFindingsSource(pages))
        scan_id = service.start_scan()["scan_id"]
        while not service.process_batch(scan_id)["completed"]:
            pass

        data = service.get_occurrences(scan_id, " https://other.test/1 ")
        assert data["total"] == 2
        assert [o["found_on_page_title"] for o in data["occurrences"]] == ["Contact", "Links"]

        with pytest.raises(ScanServiceError, match="Missing parameters"):
            service.get_occurrences(scan_id, "")
        with pytest.raises(ScanServiceError, match="Scan not found"):
            ScanService("image_seo", self.store, StaticFindingsSource([])).get_occurrences(
                scan_id, "https://other.test/1"
            )

    def test_revert_fixes(self):
        scan_id = self.run_scan()
        entries = self.store.get_results(scan_id, filter="internal").results
        fixable = [entries[0].id, entries[2].id]

        summary = self.service.apply_fixes(fixable)
        session_id = summary["fix_session_id"]
        assert re.match(r"^session_[0-9a-f]{13}$", session_id)

        sessions = self.service.get_fix_sessions(scan_id)
        assert sessions["total"] == 1
        assert sessions["sessions"][0]["entries_fixed"] == 2

        reverted = self.service.revert_fixes(session_id)
        assert reverted["reverted_count"] == 2
        assert reverted["fix_session_id"] == session_id
        for entry_id in fixable:
            entry = self.store.get_entry(entry_id)
            assert not entry.is_fixed
            assert entry.fixed_url is None
        assert self.service.get_fix_sessions(scan_id)["sessions"][0]["is_reverted"]

        with pytest.raises(ScanServiceError, match="already been reverted"):
            self.service.revert_fixes(session_id)

        # Reverted entries can be fixed again in a new session
        again = self.service.apply_fixes(fixable)
        assert again["fixed_count"] == 2
        assert again["fix_session_id"] != session_id

    def test_revert_fixes_errors(self):
        scan_id = self.run_scan()
        entry_id = self.store.get_results(scan_id, filter="internal").results[0].id
        session_id = self.service.apply_fixes([entry_id])["fix_session_id"]
        images = ScanService("image_seo", self.store, StaticFindingsSource([]))

        with pytest.raises(ScanServiceError, match="Session ID required"):
            self.service.revert_fixes("")
        with pytest.raises(ScanServiceError, match="Fix session not found"):
            self.service.revert_fixes("session_nope")
        with pytest.raises(ScanServiceError, match="Fix session not found"):
            images.revert_fixes(session_id)
        assert self.store.get_entry(entry_id).is_fixed

    def test_nothing_fixed_has_no_session(self):
        scan_id = self.run_scan()
        without_suggestion = self.store.get_results(scan_id, filter="internal").results[1]
        summary = self.service.apply_fixes([without_suggestion.id])
        assert summary["fix_session_id"] is None
        assert self.service.get_fix_sessions(scan_id)["total"] == 0

    def test_notifications_queued_on_background(self, monkeypatch):
        sent = []
        monkeypatch.setattr(scan_service, "notify_scan_started", lambda *args: sent.append(("started", args)))
        monkeypatch.setattr(scan_service, "notify_scan_completed", lambda *args: sent.append(("completed", args)))
        tasks = BackgroundTasks()

        scan_id = self.service.start_scan(background=tasks)["scan_id"]
        while not self.service.process_batch(scan_id, batch_size=10, background=tasks)["completed"]:
            pass

        assert sent == []
        assert len(tasks.tasks) == 2

        asyncio.run(tasks())

        assert [name for name, _ in sent] == ["started", "completed"]
        assert sent[0][1] == ("broken_links", scan_id, 7)
        assert sent[1][1][:4] == ("broken_links", scan_id, 7, 33)

    def test_notifications_inline_without_background(self, monkeypatch):
        sent = []
        monkeypatch.setattr(scan_service, "notify_scan_started", lambda *args: sent.append(args))
        scan_id = self.service.start_scan()["scan_id"]
        assert sent == [("broken_links", scan_id, 7)]

    def test_failed_batch_notification_is_queued(self, monkeypatch):
        sent = []
        monkeypatch.setattr(scan_service, "notify_scan_failed", lambda *args: sent.append(args))
        service = ScanService("broken_links", self.store, ExplodingSource())
        scan_id = service.start_scan()["scan_id"]
        tasks = BackgroundTasks()

        with pytest.raises(RuntimeError):
            service.process_batch(scan_id, background=tasks)

        assert sent == []
        asyncio.run(tasks())
        assert sent == [("broken_links", scan_id, "disk on fire")]

    def test_export_csv(self):
        scan_id = self.run_scan()
        rows = list(csv.reader(io.StringIO(self.service.export_csv(scan_id, "external"))))
        assert rows[0] == [
            "ID", "Found On", "Page Title", "Original URL", "Link Type",
            "Status Code", "Suggested URL", "Reason", "Fixed",
        ]
        assert len(rows) == 4
        assert rows[1][4] == "external"
        assert rows[1][8] == "No"

    def test_get_progress(self):
        scan_id = self.service.start_scan()["scan_id"]
        self.service.process_batch(scan_id)
        progress = self.service.get_progress(scan_id)
        assert progress["status"] == "in_progress"
        assert progress["pages_processed"] == 5
        assert progress["progress"] == 71
        assert self.service.get_progress("scan_nope_1")["status"] == "not_found"


class TestFindingsFileSource:
    """Tests for FindingsFileSource."""

    def test_reads_pages(self, tmp_path):
        path = tmp_path / "findings.json"
        path.write_text(json.dumps({"pages": [
            {"url": "https://site.test/", "title": "Home",
             "findings": [{"original_url": "https://site.test/gone", "link_type": "internal"}]},
            {"url": "https://site.test/about/"},
        ]}))
        source = FindingsFileSource(path)
        assert source.count_pages() == 2
        assert source.pages(1, 5)[0].url == "https://site.test/about/"
        assert source.pages(0, 1)[0].findings[0].status_code == 404

    def test_missing_file_is_empty(self, tmp_path):
        assert FindingsFileSource(tmp_path / "nope.json").count_pages() == 0

    def test_invalid_file(self, tmp_path):
        path = tmp_path / "findings.json"
        path.write_text("{not json")
        with pytest.raises(ValueError):
            FindingsFileSource(path).count_pages()


class TestAdminAjax:
    """Tests for the admin-ajax endpoint."""

    @pytest.fixture(autouse=True)
    def client(self, tmp_path):
        store = SQLiteStore(tmp_path / "test.db")
        self.service = ScanService("broken_links", store, StaticFindingsSource(make_pages()))
        app = create_app({"broken_links": self.service}, "s3cret")
        self.client = TestClient(app)

    def post(self, operation, **fields):
        data = {"action": f"seoautofix_broken_links_{operation}", "nonce": "s3cret"}
        data.update(fields)
        return self.client.post(AJAX, data=data)

    def get(self, operation, **params):
        query = {"action": f"seoautofix_broken_links_{operation}", "nonce": "s3cret"}
        query.update(params)
        return self.client.get(AJAX, params=query)

    def run_scan(self) -> str:
        scan_id = self.post("start_scan").json()["data"]["scan_id"]
        while not self.post("process_batch", scan_id=scan_id).json()["data"]["completed"]:
            pass
        return scan_id

    def test_bad_nonce(self):
        response = self.client.post(AJAX, data={"action": "seoautofix_broken_links_start_scan", "nonce": "x"})
        assert response.status_code == 403
        assert response.json() == {"success": False, "data": {"message": "Security check failed"}}

    def test_unknown_action(self):
        response = self.client.post(AJAX, data={"action": "seoautofix_broken_links_explode", "nonce": "s3cret"})
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_unconfigured_module(self):
        response = self.client.post(AJAX, data={"action": "seoautofix_image_seo_start_scan", "nonce": "s3cret"})
        assert response.status_code == 400

    def test_scan_and_results(self):
        scan_id = self.run_scan()

        response = self.get("get_results", scan_id=scan_id, filter="internal", page=2, per_page=25)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert len(body["data"]["results"]) == 5
        assert body["data"]["pages"] == 2
        assert body["data"]["current_page"] == 2

    def test_service_error_envelope(self):
        response = self.post("process_batch", scan_id="scan_nope_1")
        assert response.status_code == 200
        assert response.json() == {"success": False, "data": {"message": "Scan not found"}}

    def test_invalid_integer(self):
        scan_id = self.run_scan()
        body = self.get("get_results", scan_id=scan_id, page="two").json()
        assert body["data"]["message"] == "Invalid parameters"

    def test_delete_unknown_entry(self):
        body = self.post("delete_entry", id="7").json()
        assert body == {"success": False, "data": {"message": "Entry not found"}}

    def test_apply_fixes_repeated_ids(self):
        scan_id = self.run_scan()
        ids = [r.id for r in self.service.store.get_results(scan_id, filter="internal").results[:2]]

        body = self.post("apply_fixes", **{"ids[]": [str(i) for i in ids]}).json()

        assert body["success"] is True
        assert body["data"]["fixed_count"] + body["data"]["failed_count"] == 2

    def test_apply_fixes_without_ids(self):
        body = self.post("apply_fixes").json()
        assert body["data"]["message"] == "No entries selected"

    def test_export_is_csv(self):
        scan_id = self.run_scan()
        response = self.get("export_csv", scan_id=scan_id)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.text.startswith("ID,Found On")

    def test_get_progress(self):
        body = self.get("get_progress", scan_id="scan_nope_1").json()
        assert body["data"]["status"] == "not_found"

    def test_health(self):
        assert self.client.get("/health").json() == {"status": "ok", "modules": ["broken_links"]}

    def test_bulk_delete_and_occurrences(self):
        scan_id = self.run_scan()
        ids = [r.id for r in self.service.store.get_results(scan_id, filter="external").results]

        occurrences = self.get("get_occurrences", scan_id=scan_id, original_url="https://other.test/0").json()
        assert occurrences["data"]["total"] == 1
        assert occurrences["data"]["occurrences"][0]["id"] == ids[0]

        body = self.post("bulk_delete", **{"ids[]": [str(i) for i in ids]}).json()
        assert body == {"success": True, "data": {"deleted_count": 3, "message": "Deleted 3 link(s)"}}

        occurrences = self.get("get_occurrences", scan_id=scan_id, original_url="https://other.test/0").json()
        assert occurrences["data"]["total"] == 0

    def test_revert_fixes_and_sessions(self):
        scan_id = self.run_scan()
        entry_id = self.service.store.get_results(scan_id, filter="internal").results[0].id
        fixed = self.post("apply_fixes", **{"ids[]": [str(entry_id)]}).json()
        session_id = fixed["data"]["fix_session_id"]

        sessions = self.get("get_fix_sessions", scan_id=scan_id).json()
        assert sessions["data"]["total"] == 1
        assert sessions["data"]["sessions"][0]["fix_session_id"] == session_id

        body = self.post("revert_fixes", fix_session_id=session_id).json()
        assert body["success"] is True
        assert body["data"]["reverted_count"] == 1

        again = self.post("revert_fixes", fix_session_id=session_id).json()
        assert again == {"success": False, "data": {"message": "This session has already been reverted"}}

    def test_start_scan_notification_runs_in_background(self, monkeypatch):
        sent = []
        monkeypatch.setattr(scan_service, "notify_scan_started", lambda *args: sent.append(args))
        queued = []
        start_scan = self.service.start_scan

        def recording_start_scan(background=None):
            queued.append(background)
            return start_scan(background=background)

        monkeypatch.setattr(self.service, "start_scan", recording_start_scan)

        body = self.post("start_scan").json()

        assert isinstance(queued[0], BackgroundTasks)
        assert sent == [("broken_links", body["data"]["scan_id"], 7)]


class TestSharedStoreAdminAjax:
    """Both modules served over one store."""

    @pytest.fixture(autouse=True)
    def client(self, tmp_path):
        self.store = SQLiteStore(tmp_path / "test.db")
        self.links = ScanService("broken_links", self.store, StaticFindingsSource(make_pages()))
        images = ScanService("image_seo", self.store, StaticFindingsSource([]))
        app = create_app({"broken_links": self.links, "image_seo": images}, "s3cret")
        self.client = TestClient(app)

    def post(self, module, operation, **fields):
        data = {"action": f"seoautofix_{module}_{operation}", "nonce": "s3cret"}
        data.update(fields)
        return self.client.post(AJAX, data=data).json()

    def test_other_module_cannot_touch_entry(self):
        scan_id = self.links.start_scan()["scan_id"]
        self.links.process_batch(scan_id, batch_size=10)
        entry_id = self.store.get_results(scan_id).results[0].id

        for operation, fields in (
            ("delete_entry", {"id": str(entry_id)}),
            ("update_suggestion", {"id": str(entry_id), "new_url": "https://site.test/x"}),
        ):
            body = self.post("image_seo", operation, **fields)
            assert body == {"success": False, "data": {"message": "Entry not found"}}

        fixed = self.post("image_seo", "apply_fixes", **{"ids[]": [str(entry_id)]})
        assert fixed["data"]["fixed_count"] == 0

        entry = self.store.get_entry(entry_id)
        assert entry is not None
        assert not entry.is_fixed
        assert entry.user_modified_url is None

        body = self.post("broken_links", "delete_entry", id=str(entry_id))
        assert body["success"] is True
