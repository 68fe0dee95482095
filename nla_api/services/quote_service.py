import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional

import httpx

from nla_api.settings import Settings, settings

logger = logging.getLogger(__name__)

DEFAULT_LAST_UPDATED = datetime(2023, 1, 1, tzinfo=timezone.utc)

DEFAULT_QUOTE = {
    "content": "Whenever I counted on someone, I ended up getting hurt.",
    "anime": {"id": 2, "name": "Hanasaku Iroha"},
    "character": {"id": 5, "name": "Ohana Matsumae"},
}

FALLBACK_QUOTE = {
    "content": "The only way to truly escape the mundane is to constantly seek the extraordinary.",
    "anime": {"id": 1, "name": "Unknown Anime"},
    "character": {"id": 1, "name": "Unknown Character"},
}


@dataclass
class CacheEntry:
    value: dict
    expires_at: datetime
    last_updated: datetime


class QuoteService:
    """Quote of the day, cached in memory and in a JSON file.

    The first request after the entry expires refetches it; concurrent
    requests wait on the lock and reuse the refreshed entry.
    """

    def __init__(
        self,
        cache_path: str | Path,
        source_url: str,
        ttl: timedelta = timedelta(hours=24),
        client: httpx.Client | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.cache_path = Path(cache_path)
        self.source_url = source_url
        self.ttl = ttl
        self.client = client or httpx.Client(timeout=httpx.Timeout(10.0, connect=5.0))
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._entry: Optional[CacheEntry] = None
        self._lock = threading.RLock()

    @classmethod
    def from_settings(cls, current_settings: Settings = settings) -> "QuoteService":
        return cls(
            current_settings.QUOTE_CACHE_PATH,
            current_settings.ANIMECHAN_URL,
            ttl=timedelta(hours=current_settings.QUOTE_TTL_HOURS),
        )

    def get_daily_quote(self) -> dict:
        entry = self._current()
        if not self._is_stale(entry):
            return entry.value

        with self._lock:
            entry = self._current()
            if self._is_stale(entry):
                logger.info("Fetching new daily quote")
                entry = self._refresh(persist_errors=False)
            return entry.value

    def force_refresh(self) -> dict:
        logger.info("Force refreshing daily quote")
        with self._lock:
            return self._refresh(persist_errors=True).value

    def status(self) -> dict:
        entry = self._current()
        needs_update = self._is_stale(entry)
        hours_left = 0.0
        if not needs_update:
            remaining = (entry.expires_at - self.clock()).total_seconds() / 3600
            hours_left = max(0.0, remaining)
        return {
            "needsUpdate": needs_update,
            "lastUpdated": entry.last_updated,
            "hoursUntilNextUpdate": hours_left,
        }

    def _is_stale(self, entry: CacheEntry) -> bool:
        return self.clock() >= entry.expires_at

    def _current(self) -> CacheEntry:
        if self._entry is None:
            with self._lock:
                if self._entry is None:
                    self._entry = self._load()
        return self._entry

    def _entry_for(self, value: dict, last_updated: datetime) -> CacheEntry:
        return CacheEntry(
            value=value, expires_at=last_updated + self.ttl, last_updated=last_updated
        )

    def _load(self) -> CacheEntry:
        try:
            data = json.loads(self.cache_path.read_text(encoding="utf-8"))
            last_updated = datetime.fromisoformat(data["lastUpdated"])
            if last_updated.tzinfo is None:
                last_updated = last_updated.replace(tzinfo=timezone.utc)
            return self._entry_for(data["quote"], last_updated)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Error reading stored quote, using default: {e}")
            return self._entry_for(dict(DEFAULT_QUOTE), DEFAULT_LAST_UPDATED)

    def _fetch(self) -> dict:
        try:
            response = self.client.get(self.source_url)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error fetching new quote: {e}")
            return dict(FALLBACK_QUOTE)

        if isinstance(payload, dict) and payload.get("status") == "success" and payload.get("data"):
            return payload["data"]
        logger.error("Invalid quote API response format")
        return dict(FALLBACK_QUOTE)

    def _refresh(self, persist_errors: bool) -> CacheEntry:
        entry = self._entry_for(self._fetch(), self.clock())
        self._entry = entry
        try:
            self._store(entry)
        except OSError as e:
            logger.error(f"Error storing quote: {e}")
            if persist_errors:
                raise
        return entry

    def _store(self, entry: CacheEntry) -> None:
        self.cache_path.parent.mkdir(parents=True, exist_ok=True)
        data = {"lastUpdated": entry.last_updated.isoformat(), "quote": entry.value}
        self.cache_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        logger.info("Quote stored successfully")
