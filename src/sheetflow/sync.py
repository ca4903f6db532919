"""
Sheet sync: mirror the remote sheets into `local_dir`.

The loader's last fallback is `<local_dir>/<name>.csv`; this module keeps
those files current:

    - conditional GET with the stored ETag / Last-Modified
      (If-None-Match / If-Modified-Since); 304 means nothing to do
    - a 200 body equal to the file on disk is not rewritten
    - a failing sheet backs off exponentially (backoff_base * 2**(n-1),
      capped at backoff_max) and is skipped until its next attempt time

Per-sheet state lives in `<local_dir>/.meta.json`:

    {"rules": {"etag": "...", "last_modified": "...",
               "fail_count": 0, "next_attempt_at": 0.0}}
"""

import json
import logging
import os
import time
from enum import Enum
from typing import Callable, Dict, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

from sheetflow.config import SHEET_NAMES, SheetflowConfig
from sheetflow.errors import ConfigError

logger = logging.getLogger(__name__)

META_FILE = ".meta.json"


class SyncOutcome(Enum):
    """What one sync attempt did to one sheet."""
    UPDATED = "updated"
    UNCHANGED = "unchanged"          # 200, same bytes as on disk
    NOT_MODIFIED = "not_modified"    # 304
    SKIPPED = "skipped"              # no URL, or still backing off
    FAILED = "failed"


class SheetMeta(BaseModel):
    """Validators and backoff state of one mirrored sheet."""

    model_config = {"frozen": True}

    etag: Optional[str] = None
    last_modified: Optional[str] = None
    fail_count: int = Field(default=0, ge=0)
    next_attempt_at: float = Field(default=0.0, ge=0)  # epoch seconds


class SheetSync:
    """
    Mirrors remote sheets into the configured local directory.

    Example:
        with SheetSync(load_config("sheetflow.yaml")) as sync:
            sync.run(once=True)

    Raises:
        ConfigError: If the config has no local_dir
    """

    def __init__(
        self,
        config: SheetflowConfig,
        client: Optional[httpx.Client] = None,
        clock: Callable[[], float] = time.time,
    ):
        if not config.local_dir:
            raise ConfigError("Sync needs local_dir (or SHEETFLOW_LOCAL_DIR)")
        self.config = config
        self.clock = clock
        self.meta_path = os.path.join(config.local_dir, META_FILE)
        self._client = client
        self._owns_client = client is None
        self.meta: Dict[str, SheetMeta] = self._load_meta()

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.config.timeout, follow_redirects=True)
        return self._client

    def close(self) -> None:
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "SheetSync":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def local_path(self, name: str) -> str:
        return os.path.join(self.config.local_dir, f"{name}.csv")

    def _load_meta(self) -> Dict[str, SheetMeta]:
        try:
            with open(self.meta_path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable sync meta %s: %s", self.meta_path, e)
            return {}
        if not isinstance(raw, dict):
            logger.warning("Ignoring sync meta %s: not an object", self.meta_path)
            return {}

        meta: Dict[str, SheetMeta] = {}
        for name, entry in raw.items():
            try:
                meta[name] = SheetMeta.model_validate(entry)
            except ValidationError as e:
                logger.warning("Dropping sync meta for %s: %s", name, e)
        return meta

    def _save_meta(self) -> None:
        data = {name: entry.model_dump() for name, entry in self.meta.items()}
        try:
            os.makedirs(self.config.local_dir, exist_ok=True)
            with open(self.meta_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
        except OSError as e:
            logger.warning("Could not write sync meta %s: %s", self.meta_path, e)

    def conditional_headers(self, name: str) -> Dict[str, str]:
        entry = self.meta.get(name, SheetMeta())
        headers = {"Cache-Control": "no-cache"}
        if entry.etag:
            headers["If-None-Match"] = entry.etag
        if entry.last_modified:
            headers["If-Modified-Since"] = entry.last_modified
        return headers

    def backoff_for(self, fail_count: int) -> float:
        """Seconds to wait after the `fail_count`-th consecutive failure."""
        settings = self.config.sync
        if fail_count < 1:
            return 0.0
        return min(settings.backoff_base * 2 ** (fail_count - 1), settings.backoff_max)

    def _mark_success(self, name: str, headers: httpx.Headers) -> None:
        entry = self.meta.get(name, SheetMeta())
        self.meta[name] = entry.model_copy(update={
            "etag": headers.get("etag") or entry.etag,
            "last_modified": headers.get("last-modified") or entry.last_modified,
            "fail_count": 0,
            "next_attempt_at": 0.0,
        })

    def _mark_failure(self, name: str, error: Exception) -> None:
        entry = self.meta.get(name, SheetMeta())
        fail_count = entry.fail_count + 1
        next_attempt_at = self.clock() + self.backoff_for(fail_count)
        self.meta[name] = entry.model_copy(update={
            "fail_count": fail_count,
            "next_attempt_at": next_attempt_at,
        })
        logger.warning(
            "Sync of %s failed (failures=%d, retry after %.0fs): %s",
            name, fail_count, next_attempt_at - self.clock(), error,
        )

    def _write_if_changed(self, name: str, text: str) -> SyncOutcome:
        path = self.local_path(name)
        try:
            with open(path, "r", encoding="utf-8", newline="") as f:
                existing = f.read()
        except (FileNotFoundError, UnicodeDecodeError):
            existing = None
        if existing == text:
            return SyncOutcome.UNCHANGED

        os.makedirs(self.config.local_dir, exist_ok=True)
        tmp = path + ".tmp"
        with open(tmp, "w", encoding="utf-8", newline="") as f:
            f.write(text)
        os.replace(tmp, path)
        return SyncOutcome.UPDATED

    def sync_sheet(self, name: str) -> SyncOutcome:
        """Bring one local sheet up to date with its remote copy."""
        url = self.config.url_for(name)
        if not url:
            return SyncOutcome.SKIPPED

        entry = self.meta.get(name)
        if entry is not None and self.clock() < entry.next_attempt_at:
            logger.info("Skipping %s: backing off for %.0fs", name, entry.next_attempt_at - self.clock())
            return SyncOutcome.SKIPPED

        try:
            response = self.client.get(url, headers=self.conditional_headers(name))
            if response.status_code == 304:
                outcome = SyncOutcome.NOT_MODIFIED
            else:
                response.raise_for_status()
                outcome = self._write_if_changed(name, response.text)
        except (httpx.HTTPError, OSError) as e:
            self._mark_failure(name, e)
            self._save_meta()
            return SyncOutcome.FAILED

        self._mark_success(name, response.headers)
        self._save_meta()
        logger.info("Sync of %s: %s", name, outcome.value)
        return outcome

    def sync_all(self) -> Dict[str, SyncOutcome]:
        return {name: self.sync_sheet(name) for name in SHEET_NAMES}

    def run(
        self,
        once: bool = False,
        interval: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        on_round: Optional[Callable[[Dict[str, SyncOutcome]], None]] = None,
        max_rounds: Optional[int] = None,
    ) -> Dict[str, SyncOutcome]:
        """
        Sync immediately, then every `interval` seconds.

        Args:
            once: Stop after the first round
            interval: Seconds between rounds (config.sync.interval when None)
            sleep: Called between rounds
            on_round: Called with each round's outcomes
            max_rounds: Stop after this many rounds (None polls forever)

        Returns:
            Outcomes of the last round
        """
        if interval is None:
            interval = self.config.sync.interval
        rounds = 0
        while True:
            outcomes = self.sync_all()
            rounds += 1
            if on_round is not None:
                on_round(outcomes)
            if once or (max_rounds is not None and rounds >= max_rounds):
                return outcomes
            sleep(interval)


__all__ = ["SheetSync", "SheetMeta", "SyncOutcome", "META_FILE"]
