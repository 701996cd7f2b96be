"""
Client-Side Rate Limiter

Bounds repeated auth actions (sign-in, sign-up, password reset) per
sliding time window.

IMPORTANT: This is an advisory throttle, NOT a security control.
The timestamps live in storage the client controls, so anyone can
clear them. There is also no cross-process lock: two tabs or workers
sharing one store can both pass the check. Real brute-force protection
is the identity backend's job.
"""

import json
import math
import time
from typing import Callable, Optional

import structlog

from budget_tracker.config import get_settings
from budget_tracker.models.results import RateLimitDecision
from budget_tracker.ratelimit.store import KeyValueStore


logger = structlog.get_logger(__name__)

TOO_MANY_ATTEMPTS_MESSAGE = "Too many attempts. Please wait before trying again."


def _now_ms() -> int:
    return int(time.time() * 1000)


class RateLimiter:
    """
    Sliding-window attempt counter per action name.

    Timestamps are epoch milliseconds kept as a JSON list under
    "rate_limit_<action>".
    """

    def __init__(
        self,
        store: KeyValueStore,
        max_attempts: Optional[int] = None,
        window_ms: Optional[int] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Initialize the limiter.

        Args:
            store: Where timestamps are kept
            max_attempts: Default attempts per window (settings if None)
            window_ms: Default window length (settings if None)
            clock: Returns the current time in epoch ms (for tests)
        """
        settings = get_settings().app
        self._store = store
        self._max_attempts = (
            max_attempts if max_attempts is not None else settings.rate_limit_max_attempts
        )
        self._window_ms = window_ms if window_ms is not None else settings.rate_limit_window_ms
        self._clock = clock or _now_ms

    @staticmethod
    def key_for(action: str) -> str:
        return f"rate_limit_{action}"

    def _read_attempts(self, key: str) -> list[int]:
        raw = self._store.get_item(key)
        if not raw:
            return []
        try:
            values = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("rate_limit_record_corrupt", key=key)
            return []
        if not isinstance(values, list):
            return []
        # NaN and overflowed floats cannot become timestamps
        return [
            int(v)
            for v in values
            if isinstance(v, (int, float))
            and not isinstance(v, bool)
            and math.isfinite(v)
        ]

    def rate_limit(
        self,
        action: str,
        max_attempts: Optional[int] = None,
        window_ms: Optional[int] = None,
    ) -> RateLimitDecision:
        """
        Record an attempt at action if the window allows it.

        Attempts older than the window are dropped first. If the
        remaining count has reached max_attempts the attempt is denied
        and NOT recorded.
        """
        if max_attempts is None:
            max_attempts = self._max_attempts
        if window_ms is None:
            window_ms = self._window_ms
        key = self.key_for(action)
        now = self._clock()

        recent = [t for t in self._read_attempts(key) if now - t < window_ms]

        if len(recent) >= max_attempts:
            oldest = min(recent) if recent else now
            retry_after = max(0, window_ms - (now - oldest))
            logger.info(
                "rate_limit_denied",
                action=action,
                attempts=len(recent),
                retry_after_ms=retry_after,
            )
            return RateLimitDecision(
                allowed=False,
                error=TOO_MANY_ATTEMPTS_MESSAGE,
                attempts=len(recent),
                retry_after_ms=retry_after,
            )

        recent.append(now)
        self._store.set_item(key, json.dumps(recent))
        return RateLimitDecision(allowed=True, attempts=len(recent))

    def reset(self, action: str) -> None:
        """Forget all attempts for action."""
        self._store.remove_item(self.key_for(action))
