"""Per-session fixed-window rate limiting."""

from __future__ import annotations

import logging
import time
from enum import Enum

from crm_assistant.config import RateLimitPolicy
from crm_assistant.types import RateWindow

logger = logging.getLogger(__name__)


class RateDecision(str, Enum):
    ALLOWED = "allowed"
    DENIED = "denied"


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class FixedWindowRateLimiter:
    """Counts submissions per session and resets the count wholesale.

    Each `(session_id, scope)` key owns its own `RateWindow`. When more than
    `window_length_ms` has passed since the window opened, the next call opens
    a fresh window. A denied call leaves the window untouched.

    Limits are supplied per call, so call sites with different budgets (chat
    queries, form writes) can share one limiter instance.
    """

    def __init__(self) -> None:
        self._windows: dict[tuple[str, str], RateWindow] = {}

    def try_consume(
        self,
        session_id: str,
        max_per_window: int,
        window_length_ms: float,
        *,
        now_ms: float | None = None,
        scope: str = "default",
    ) -> RateDecision:
        if max_per_window < 1 or window_length_ms <= 0:
            raise ValueError("max_per_window and window_length_ms must be positive")

        now = _monotonic_ms() if now_ms is None else now_ms
        key = (session_id, scope)
        window = self._windows.get(key)
        if window is None:
            window = RateWindow(window_start_ms=now)
            self._windows[key] = window
        elif now - window.window_start_ms > window_length_ms:
            window.count = 0
            window.window_start_ms = now

        if window.count < max_per_window:
            window.count += 1
            return RateDecision.ALLOWED

        logger.warning(
            "Rate limit reached for session %s (%s): %d/%d",
            session_id,
            scope,
            window.count,
            max_per_window,
        )
        return RateDecision.DENIED

    def consume(
        self,
        session_id: str,
        policy: RateLimitPolicy,
        *,
        now_ms: float | None = None,
        scope: str = "default",
    ) -> RateDecision:
        return self.try_consume(
            session_id,
            policy.max_per_window,
            policy.window_length_ms,
            now_ms=now_ms,
            scope=scope,
        )

    def window(self, session_id: str, *, scope: str = "default") -> RateWindow | None:
        return self._windows.get((session_id, scope))

    def drop_session(self, session_id: str) -> int:
        """Forget every window owned by `session_id`, across all scopes."""
        keys = [key for key in self._windows if key[0] == session_id]
        for key in keys:
            del self._windows[key]
        return len(keys)

    def __len__(self) -> int:
        return len(self._windows)

    def retry_after_ms(
        self,
        session_id: str,
        window_length_ms: float,
        *,
        now_ms: float | None = None,
        scope: str = "default",
    ) -> int:
        """Milliseconds until the current window for the key expires."""
        window = self._windows.get((session_id, scope))
        if window is None:
            return 0
        now = _monotonic_ms() if now_ms is None else now_ms
        # The window only resets once strictly more than its length has passed.
        remaining = window.window_start_ms + window_length_ms - now
        return max(0, int(remaining) + 1)
