"""
Sheet loader: remote -> cache -> local file.

The core never does I/O. This module fetches the three sheets (rules,
questions, phrases), remembers every successful pull in a cache port,
and falls back in order:

    1. remote URL (httpx, retried with tenacity backoff)
    2. last cached copy
    3. local `<name>.csv` (kept current by `sheetflow sync`)

Only when all three fail is SheetLoadError raised.

The questions and phrases sheets may also be published as a JSON object
(body starting with `{`); the rules sheet is always CSV.
"""

import json
import logging
import os
import time
from dataclasses import dataclass
from typing import Dict, Optional, Protocol

import httpx
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from sheetflow.compiler import compile_rules
from sheetflow.config import SheetflowConfig
from sheetflow.errors import SheetError, SheetLoadError
from sheetflow.model import LevelGraph
from sheetflow.sheets import (
    QuestionText,
    is_json_document,
    load_phrases,
    load_question_texts,
    phrases_from_json,
    question_texts_from_json,
)
from sheetflow.sync import SheetSync, SyncOutcome
from sheetflow.table import parse_table

logger = logging.getLogger(__name__)


class CachePort(Protocol):
    """Key/value store for the last good copy of each sheet."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryCache:
    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class FileCache:
    """One JSON file per key under `directory`. Unreadable entries count as misses."""

    def __init__(self, directory: str):
        self.directory = directory

    def _path(self, key: str) -> str:
        return os.path.join(self.directory, f"{key}.json")

    def get(self, key: str) -> Optional[str]:
        try:
            with open(self._path(key), "r", encoding="utf-8") as f:
                value = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable cache entry %s: %s", key, e)
            return None
        if not isinstance(value, str):
            logger.warning("Ignoring cache entry %s: expected text, got %s", key, type(value).__name__)
            return None
        return value

    def set(self, key: str, value: str) -> None:
        try:
            os.makedirs(self.directory, exist_ok=True)
            with open(self._path(key), "w", encoding="utf-8") as f:
                json.dump(value, f)
        except OSError as e:
            logger.warning("Could not write cache entry %s: %s", key, e)


def bust(url: str, stamp: int) -> str:
    """Append a `v=<stamp>` query parameter so intermediaries don't serve a stale sheet."""
    if not url:
        return url
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}v={stamp}"


def cache_key(name: str) -> str:
    return f"cache_{name}_csv"


@dataclass
class LoadedSheets:
    graphs: Optional[Dict[str, LevelGraph]] = None
    texts: Optional[Dict[str, Dict[str, QuestionText]]] = None
    phrases: Optional[Dict[str, str]] = None

    def require_all(self) -> "LoadedSheets":
        """
        Raises:
            SheetLoadError: Naming the first sheet that did not load
        """
        if self.texts is None:
            raise SheetLoadError("Questions sheet not loaded (QUESTIONS_URL).")
        if self.phrases is None:
            raise SheetLoadError("Phrases sheet not loaded (PHRASES_URL).")
        if self.graphs is None:
            raise SheetLoadError("Logic sheet not loaded (LOGIC_URL).")
        return self


class SheetLoader:
    """
    Fetches sheets according to a SheetflowConfig.

    Example:
        loader = SheetLoader(load_config("sheetflow.yaml"))
        sheets = loader.load_all().require_all()
        graph = get_level_graph(sheets.graphs, 1)
    """

    def __init__(
        self,
        config: SheetflowConfig,
        cache: Optional[CachePort] = None,
        client: Optional[httpx.Client] = None,
        stamp: Optional[int] = None,
    ):
        self.config = config
        if cache is None:
            cache = FileCache(config.cache_dir) if config.cache_dir else MemoryCache()
        self.cache = cache
        self._client = client
        self._owns_client = client is None
        # one stamp per loader: a fresh pull on boot, stable URLs afterwards
        self.stamp = stamp if stamp is not None else int(time.time() * 1000)

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.config.timeout, follow_redirects=True)
        return self._client

    def close(self) -> None:
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "SheetLoader":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _fetch_remote(self, url: str) -> str:
        retry = self.config.retry
        for attempt in Retrying(
            stop=stop_after_attempt(retry.max_attempts),
            wait=wait_exponential_jitter(initial=retry.base_delay, max=retry.max_delay),
            retry=retry_if_exception_type(httpx.HTTPError),
            reraise=True,
        ):
            with attempt:
                n = attempt.retry_state.attempt_number
                logger.debug("Fetching %s (attempt %d)", url, n)
                response = self.client.get(url, headers={"Cache-Control": "no-cache"})
                response.raise_for_status()
                return response.text
        raise AssertionError("unreachable")

    def _read_local(self, name: str) -> Optional[str]:
        if not self.config.local_dir:
            return None
        path = os.path.join(self.config.local_dir, f"{name}.csv")
        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Ignoring unreadable local %s sheet: %s", name, e)
            return None

    def fetch_text(self, name: str) -> str:
        """
        Text of one sheet, following the fallback chain.

        Args:
            name: rules, questions or phrases

        Raises:
            SheetLoadError: If remote, cache and local file all failed
        """
        url = self.config.url_for(name)
        if url:
            try:
                text = self._fetch_remote(bust(url, self.stamp))
            except httpx.HTTPError as e:
                logger.warning("Remote %s sheet failed, falling back: %s", name, e)
            else:
                self.cache.set(cache_key(name), text)
                return text

        cached = self.cache.get(cache_key(name))
        if cached is not None:
            logger.info("Using cached %s sheet", name)
            return cached

        local = self._read_local(name)
        if local is not None:
            logger.info("Using local %s sheet", name)
            return local

        raise SheetLoadError(f"No source available for the {name} sheet")

    def load_rules(self) -> Dict[str, LevelGraph]:
        return compile_rules(parse_table(self.fetch_text("rules")))

    def load_questions(self) -> Dict[str, Dict[str, QuestionText]]:
        """Question texts from CSV, or from a JSON object already keyed by level."""
        text = self.fetch_text("questions")
        if is_json_document(text):
            return question_texts_from_json(text)
        return load_question_texts(parse_table(text))

    def load_phrases(self) -> Dict[str, str]:
        text = self.fetch_text("phrases")
        if is_json_document(text):
            return phrases_from_json(text)
        return load_phrases(parse_table(text))

    def load_all(self) -> LoadedSheets:
        """Load every sheet; a sheet with no source is left as None."""
        sheets = LoadedSheets()
        for attr, loader in (
            ("graphs", self.load_rules),
            ("texts", self.load_questions),
            ("phrases", self.load_phrases),
        ):
            try:
                setattr(sheets, attr, loader())
            except (SheetLoadError, SheetError) as e:
                logger.error("%s", e)
        return sheets

    def sync_local(self) -> Dict[str, SyncOutcome]:
        """Mirror every remote sheet into `local_dir` (one round, see SheetSync)."""
        return SheetSync(self.config, client=self.client).sync_all()


__all__ = [
    "CachePort",
    "MemoryCache",
    "FileCache",
    "SheetLoader",
    "LoadedSheets",
    "bust",
    "cache_key",
]
