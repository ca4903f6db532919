"""
Tests for mirroring remote sheets into the local directory.

A small in-memory server behind httpx.MockTransport answers conditional
GETs; time is a settable clock so backoff windows are exact.
"""

import json

import httpx
import pytest
from sheetflow.config import SheetflowConfig, SyncSettings
from sheetflow.errors import ConfigError
from sheetflow.examples import EXAMPLE_RULES_CSV
from sheetflow.sync import META_FILE, SheetMeta, SheetSync, SyncOutcome


class FakeSheetServer:
    """Serves one rules sheet with an ETag and honours If-None-Match."""

    def __init__(self, body=EXAMPLE_RULES_CSV, etag='"v1"', status=200):
        self.body = body
        self.etag = etag
        self.status = status
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status != 200:
            return httpx.Response(self.status)
        if self.etag and request.headers.get("if-none-match") == self.etag:
            return httpx.Response(304, headers={"etag": self.etag})
        headers = {"last-modified": "Mon, 05 Oct 2026 10:00:00 GMT"}
        if self.etag:
            headers["etag"] = self.etag
        return httpx.Response(200, text=self.body, headers=headers)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_sync(tmp_path, server, clock=None, **sync_settings) -> SheetSync:
    config = SheetflowConfig(
        urls={"rules": "https://sheets.test/rules.csv"},
        local_dir=str(tmp_path),
        sync=SyncSettings(**sync_settings),
    )
    return SheetSync(config, client=server.client(), clock=clock or Clock())


class TestSyncSheet:

    def test_first_fetch_writes_file_and_meta(self, tmp_path):
        server = FakeSheetServer()
        sync = make_sync(tmp_path, server)
        assert sync.sync_sheet("rules") is SyncOutcome.UPDATED
        assert (tmp_path / "rules.csv").read_text(encoding="utf-8") == EXAMPLE_RULES_CSV

        meta = json.loads((tmp_path / META_FILE).read_text(encoding="utf-8"))
        assert meta["rules"]["etag"] == '"v1"'
        assert meta["rules"]["last_modified"] == "Mon, 05 Oct 2026 10:00:00 GMT"
        assert meta["rules"]["fail_count"] == 0

    def test_second_fetch_is_conditional(self, tmp_path):
        server = FakeSheetServer()
        sync = make_sync(tmp_path, server)
        sync.sync_sheet("rules")
        (tmp_path / "rules.csv").write_text("edited locally", encoding="utf-8")

        assert sync.sync_sheet("rules") is SyncOutcome.NOT_MODIFIED
        request = server.requests[-1]
        assert request.headers["if-none-match"] == '"v1"'
        assert request.headers["if-modified-since"] == "Mon, 05 Oct 2026 10:00:00 GMT"
        assert request.headers["cache-control"] == "no-cache"
        # 304 leaves the file alone
        assert (tmp_path / "rules.csv").read_text(encoding="utf-8") == "edited locally"

    def test_validators_survive_restart(self, tmp_path):
        server = FakeSheetServer()
        make_sync(tmp_path, server).sync_sheet("rules")
        assert make_sync(tmp_path, server).sync_sheet("rules") is SyncOutcome.NOT_MODIFIED

    def test_identical_content_not_rewritten(self, tmp_path):
        server = FakeSheetServer(etag=None)
        (tmp_path / "rules.csv").write_text(EXAMPLE_RULES_CSV, encoding="utf-8")
        before = (tmp_path / "rules.csv").stat().st_mtime_ns
        assert make_sync(tmp_path, server).sync_sheet("rules") is SyncOutcome.UNCHANGED
        assert (tmp_path / "rules.csv").stat().st_mtime_ns == before

    def test_changed_content_rewritten(self, tmp_path):
        server = FakeSheetServer(etag=None)
        (tmp_path / "rules.csv").write_text("old", encoding="utf-8")
        assert make_sync(tmp_path, server).sync_sheet("rules") is SyncOutcome.UPDATED
        assert (tmp_path / "rules.csv").read_text(encoding="utf-8") == EXAMPLE_RULES_CSV

    def test_sheet_without_url_skipped(self, tmp_path):
        server = FakeSheetServer()
        assert make_sync(tmp_path, server).sync_sheet("phrases") is SyncOutcome.SKIPPED
        assert server.requests == []


class TestBackoff:

    def test_failure_backs_off(self, tmp_path):
        server = FakeSheetServer(status=500)
        clock = Clock(1000.0)
        sync = make_sync(tmp_path, server, clock, backoff_base=10, backoff_max=25)

        assert sync.sync_sheet("rules") is SyncOutcome.FAILED
        assert sync.meta["rules"].fail_count == 1
        assert sync.meta["rules"].next_attempt_at == 1010.0
        assert not (tmp_path / "rules.csv").exists()

        clock.now = 1005.0
        assert sync.sync_sheet("rules") is SyncOutcome.SKIPPED
        assert len(server.requests) == 1

        clock.now = 1010.0
        assert sync.sync_sheet("rules") is SyncOutcome.FAILED
        assert sync.meta["rules"].next_attempt_at == 1030.0

        clock.now = 1030.0
        sync.sync_sheet("rules")
        # capped at backoff_max
        assert sync.meta["rules"].next_attempt_at == 1055.0

    def test_success_resets_failures(self, tmp_path):
        server = FakeSheetServer(status=503)
        clock = Clock()
        sync = make_sync(tmp_path, server, clock, backoff_base=10)
        sync.sync_sheet("rules")
        server.status = 200
        clock.now += 10
        assert sync.sync_sheet("rules") is SyncOutcome.UPDATED
        assert sync.meta["rules"] == SheetMeta(etag='"v1"', last_modified="Mon, 05 Oct 2026 10:00:00 GMT")

    def test_transport_error_counts_as_failure(self, tmp_path):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        config = SheetflowConfig(urls={"rules": "https://sheets.test/rules.csv"}, local_dir=str(tmp_path))
        sync = SheetSync(config, client=httpx.Client(transport=httpx.MockTransport(handler)), clock=Clock())
        assert sync.sync_sheet("rules") is SyncOutcome.FAILED

    @pytest.mark.parametrize("fail_count, expected", [(0, 0.0), (1, 10.0), (2, 20.0), (3, 40.0), (10, 60.0)])
    def test_backoff_for(self, tmp_path, fail_count, expected):
        sync = make_sync(tmp_path, FakeSheetServer(), backoff_base=10, backoff_max=60)
        assert sync.backoff_for(fail_count) == expected


class TestMeta:

    def test_corrupt_meta_ignored(self, tmp_path):
        (tmp_path / META_FILE).write_text("{broken", encoding="utf-8")
        assert make_sync(tmp_path, FakeSheetServer()).meta == {}

    def test_invalid_entry_dropped(self, tmp_path):
        (tmp_path / META_FILE).write_text(
            json.dumps({"rules": {"fail_count": -4}, "phrases": {"etag": '"x"'}}),
            encoding="utf-8",
        )
        meta = make_sync(tmp_path, FakeSheetServer()).meta
        assert set(meta) == {"phrases"}

    def test_local_dir_required(self):
        with pytest.raises(ConfigError, match="local_dir"):
            SheetSync(SheetflowConfig())


class TestRun:

    def test_once(self, tmp_path):
        sleeps = []
        outcomes = make_sync(tmp_path, FakeSheetServer()).run(once=True, sleep=sleeps.append)
        assert outcomes == {
            "rules": SyncOutcome.UPDATED,
            "questions": SyncOutcome.SKIPPED,
            "phrases": SyncOutcome.SKIPPED,
        }
        assert sleeps == []

    def test_polls_at_interval(self, tmp_path):
        sleeps, rounds = [], []
        sync = make_sync(tmp_path, FakeSheetServer(), interval=42)
        last = sync.run(sleep=sleeps.append, on_round=rounds.append, max_rounds=3)
        assert sleeps == [42, 42]
        assert [r["rules"] for r in rounds] == [
            SyncOutcome.UPDATED, SyncOutcome.NOT_MODIFIED, SyncOutcome.NOT_MODIFIED,
        ]
        assert last == rounds[-1]
