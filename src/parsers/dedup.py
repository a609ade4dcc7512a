"""Seen-set for discovery events (transaction signatures).

The set is wiped completely once it grows past ``max_entries``. Very old
signatures can therefore be processed a second time after a reset; the
TokenStore insert guard keeps that harmless.
"""

from loguru import logger

DEFAULT_MAX_ENTRIES = 10_000


class Deduplicator:
    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        self._max_entries = max_entries
        self._seen: set[str] = set()

    def __len__(self) -> int:
        return len(self._seen)

    def seen(self, event_id: str) -> bool:
        return event_id in self._seen

    def mark_seen(self, event_id: str) -> None:
        self._seen.add(event_id)
        if len(self._seen) > self._max_entries:
            logger.debug(f"[DEDUP] {len(self._seen)} ids > {self._max_entries}, resetting")
            self._seen = set()
