"""Rate limiting for forced JWKS refresh operations.

This module implements RefreshGate, a thread-safe rate limiter that prevents
excessive forced refreshes of the key set. A forced refresh is triggered when
a token names a key id the cache does not know, which is also what an
attacker sending random ``kid`` values would cause. The gate protects against:

1. Outbound request amplification from random-kid traffic
2. Accidental DoS of the identity service during traffic spikes

The gate allows at most one forced refresh per configured interval, rejecting
additional attempts and logging once denials reach the alert threshold.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Final

import structlog

from .protocols import Clock

_DEFAULT_INTERVAL: Final[float] = 60.0
"""Default minimum interval between forced refreshes in seconds."""

_DEFAULT_ALERT_THRESHOLD: Final[int] = 40
"""Default number of denials before alerting (per interval)."""


class RefreshGate:
    """Thread-safe rate limiter for forced JWKS refresh operations.

    Thread Safety:
        All operations are protected by an internal lock.

    Attributes:
        _min_interval: Minimum seconds between allowed refreshes.
        _alert_threshold: Number of denials before alerting.
        _lock: Thread synchronization lock.
        _next_allowed_at: Unix timestamp when next refresh is allowed.
        _retry_attempts: Count of denied attempts since last allow.
    """

    def __init__(
        self,
        min_interval: float = _DEFAULT_INTERVAL,
        alert_threshold: int = _DEFAULT_ALERT_THRESHOLD,
        *,
        clock: Clock | None = None,
        logger: Any = None,
    ) -> None:
        """Initialize the refresh gate.

        Args:
            min_interval: Minimum seconds between allowed refreshes.
            alert_threshold: Number of denied attempts before a warning is logged.
            clock: Time source, defaults to time.time.
            logger: structlog-compatible logger.

        Raises:
            ValueError: If min_interval or alert_threshold are invalid.
        """
        if min_interval <= 0:
            raise ValueError(f"min_interval must be positive, got {min_interval}")
        if alert_threshold < 1:
            raise ValueError(f"alert_threshold must be at least 1, got {alert_threshold}")

        self._min_interval = min_interval
        self._alert_threshold = alert_threshold
        self._clock = clock or time.time
        self._log = logger or structlog.get_logger(__name__)

        self._lock = threading.Lock()
        self._next_allowed_at: float = 0.0
        self._retry_attempts: int = 0

    def set_logger(self, logger: Any) -> None:
        """Route throttling warnings to ``logger``."""
        self._log = logger

    @property
    def denied(self) -> int:
        """Denied attempts since the last allowed refresh."""
        return self._retry_attempts

    def allow(self) -> bool:
        """Check if a forced refresh is allowed now.

        Returns:
            True if refresh is allowed (and interval is reset).
            False if refresh is denied (too soon since last refresh).
        """
        now = self._clock()

        with self._lock:
            if now < self._next_allowed_at:
                self._retry_attempts += 1

                if self._retry_attempts == self._alert_threshold:
                    self._log.warning(
                        "jwks_refresh_throttled",
                        denied=self._retry_attempts,
                        retry_in=round(self._next_allowed_at - now, 3),
                    )

                return False

            self._next_allowed_at = now + self._min_interval
            self._retry_attempts = 0
            return True
