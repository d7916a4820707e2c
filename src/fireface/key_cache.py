"""Time-cached key set with a lazy, stale-tolerant refresh policy.

KeySetCache holds the most recently fetched KeySet together with the time it
was fetched, and decides on each verification call whether that set may be
used as-is or must be refreshed first.

Refresh policy
--------------
- Pull-based: staleness is checked lazily by `ensure_fresh()`; there is no
  background timer.
- Bounded staleness: a set older than ``min_refresh_interval`` triggers a
  refresh before use.
- Stale-tolerant: once a set has been fetched, a failed refresh is logged and
  the previous set keeps being served. Failed attempts are retried no sooner
  than ``failure_backoff`` seconds later.
- Single-flight: at most one refresh is in flight. Callers that find a refresh
  already running keep using the current set instead of fetching again.
- Forced refresh: `refresh_for_unknown_key()` fetches once more when a token
  names a kid the cache does not know, throttled by a RefreshGate.

Concurrency
-----------
The current ``(key_set, fetched_at)`` pair lives in one immutable CacheEntry.
A refresh builds the new KeySet off to the side and publishes it with a single
reference assignment, so readers never take a lock and never observe a
half-updated set.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Final

import structlog

from .errors import FetchError, ParseError, UnknownKey
from .key_set import KeySet, VerificationKey
from .protocols import Clock, KeyFetcher
from .refresh_gate import RefreshGate

DEFAULT_MIN_REFRESH_INTERVAL: Final[float] = 300.0
"""Five minutes, the refresh interval used by the identity service SDKs."""

DEFAULT_FAILURE_BACKOFF: Final[float] = 30.0


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """A fetched key set and the time it was fetched (Unix seconds)."""

    key_set: KeySet
    fetched_at: float


class KeySetCache:
    """Caches the identity service key set and refreshes it on demand.

    Example:
        ```python
        cache = KeySetCache(JWKSFetcher(), "https://id.example.com/.well-known/jwks.json")
        cache.initialize(timeout=5)

        key_set = cache.ensure_fresh()
        key = cache.key_by_id("k1")
        ```
    """

    def __init__(
        self,
        fetcher: KeyFetcher,
        jwks_url: str,
        min_refresh_interval: float = DEFAULT_MIN_REFRESH_INTERVAL,
        *,
        failure_backoff: float = DEFAULT_FAILURE_BACKOFF,
        fetch_timeout: float | None = None,
        refresh_gate: RefreshGate | None = None,
        clock: Clock | None = None,
        logger: Any = None,
    ) -> None:
        if min_refresh_interval <= 0:
            raise ValueError(
                f"min_refresh_interval must be positive, got {min_refresh_interval}"
            )
        if failure_backoff < 0:
            raise ValueError(f"failure_backoff must not be negative, got {failure_backoff}")

        self._fetcher = fetcher
        self._url = jwks_url
        self._min_interval = min_refresh_interval
        self._failure_backoff = failure_backoff
        self._fetch_timeout = fetch_timeout
        self._clock = clock or time.time
        self._log = (logger or structlog.get_logger(__name__)).bind(jwks_url=jwks_url)
        self._owns_gate = refresh_gate is None
        self._gate = refresh_gate or RefreshGate(clock=self._clock, logger=self._log)

        self._refresh_lock = threading.Lock()
        self._entry: CacheEntry | None = None
        self._retry_after: float = 0.0

    def set_logger(self, logger: Any) -> None:
        """Send cache events, and those of a cache-built RefreshGate, to ``logger``."""
        self._log = logger.bind(jwks_url=self._url)
        if self._owns_gate:
            self._gate.set_logger(self._log)

    @property
    def jwks_url(self) -> str:
        return self._url

    @property
    def entry(self) -> CacheEntry | None:
        return self._entry

    @property
    def min_refresh_interval(self) -> float:
        return self._min_interval

    def initialize(self, timeout: float | None = None) -> KeySet:
        """Fetch the key set synchronously and install it.

        Unlike a background refresh, failures here are raised: a cache with no
        usable keys cannot serve verifications.

        Raises:
            FetchError: The endpoint is unreachable, times out or misbehaves.
            ParseError: The document is not a usable key set.
        """
        with self._refresh_lock:
            key_set = self._fetcher.fetch(
                self._url, timeout=timeout if timeout is not None else self._fetch_timeout
            )
            entry = self._install(key_set, self._clock())

        self._log.info("jwks_initialized", key_count=len(key_set), kids=list(key_set.kids))
        return entry.key_set

    def is_stale(self, now: float | None = None) -> bool:
        entry = self._entry
        if entry is None:
            return True
        now = self._clock() if now is None else now
        return now - entry.fetched_at >= self._min_interval

    def ensure_fresh(self, now: float | None = None) -> KeySet:
        """Return a key set no older than the refresh interval when possible.

        An uninitialized cache performs the initial fetch and raises on
        failure. An initialized cache never raises: if the refresh fails or
        another caller is already refreshing, the current set is returned.
        """
        now = self._clock() if now is None else now
        entry = self._entry

        if entry is None:
            with self._refresh_lock:
                current = self._entry
                if current is None:
                    current = self._install(
                        self._fetcher.fetch(self._url, timeout=self._fetch_timeout), now
                    )
                return current.key_set

        if not self._refresh_due(entry, now):
            return entry.key_set

        if not self._refresh_lock.acquire(blocking=False):
            self._log.debug("jwks_refresh_in_flight")
            return entry.key_set

        try:
            current = self._entry or entry
            if current is not entry and not self._refresh_due(current, now):
                return current.key_set
            return self._refresh(current, now, reason="stale").key_set
        finally:
            self._refresh_lock.release()

    def key_by_id(self, kid: str) -> VerificationKey:
        """Look up ``kid`` in the current key set.

        Raises:
            UnknownKey: No key set has been fetched or it has no such key.
        """
        entry = self._entry
        if entry is None:
            raise UnknownKey("Key set has not been fetched yet", kid=kid)

        key = entry.key_set.get(kid)
        if key is None:
            raise UnknownKey(f"No key with id {kid!r} in key set", kid=kid)
        return key

    def refresh_for_unknown_key(self, kid: str, observed: KeySet) -> KeySet:
        """Force one refresh because ``kid`` was missing from ``observed``.

        Waits behind an in-flight refresh and skips the fetch when the set has
        already been replaced since ``observed`` was read. Otherwise fetches
        only if the RefreshGate allows it.

        Returns:
            The key set to retry the lookup against. On throttling or fetch
            failure this is the unchanged current set.
        """
        with self._refresh_lock:
            current = self._entry
            if current is None:
                raise UnknownKey("Key set has not been fetched yet", kid=kid)
            if current.key_set is not observed:
                return current.key_set

            if not self._gate.allow():
                self._log.info("jwks_forced_refresh_throttled", kid=kid)
                return current.key_set

            return self._refresh(current, self._clock(), reason="unknown_kid", kid=kid).key_set

    def _refresh_due(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.fetched_at >= self._min_interval and now >= self._retry_after

    def _refresh(self, current: CacheEntry, now: float, **context: Any) -> CacheEntry:
        # caller holds _refresh_lock
        try:
            key_set = self._fetcher.fetch(self._url, timeout=self._fetch_timeout)
        except (FetchError, ParseError) as e:
            self._retry_after = now + self._failure_backoff
            self._log.warning(
                "jwks_refresh_failed",
                stage=e.stage,
                error=e.description,
                key_count=len(current.key_set),
                cache_age=round(now - current.fetched_at, 3),
                **context,
            )
            return current

        previous = set(current.key_set.kids)
        entry = self._install(key_set, now)
        self._log.info(
            "jwks_refreshed",
            key_count=len(key_set),
            added=sorted(set(key_set.kids) - previous),
            removed=sorted(previous - set(key_set.kids)),
            **context,
        )
        return entry

    def _install(self, key_set: KeySet, now: float) -> CacheEntry:
        previous = self._entry
        fetched_at = now if previous is None else max(now, previous.fetched_at)
        entry = CacheEntry(key_set=key_set, fetched_at=fetched_at)
        self._entry = entry
        self._retry_after = 0.0
        return entry
