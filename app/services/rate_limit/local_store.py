"""In-process rate-window counters.

Used only when the fast store cannot count for us.  Each instance owns its
own map and sweep task, so tests can build isolated stores.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from app.core.config import settings
from app.models.rate_limit.window import RateWindow
from app.workers.periodic import PeriodicTask

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class LocalWindowStore:
    def __init__(
        self,
        sweep_interval: Optional[float] = None,
        clock_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self._windows: dict[str, RateWindow] = {}
        self._lock = threading.Lock()
        self._clock_ms = clock_ms
        self._sweeper = PeriodicTask(
            "rate-window-sweep",
            sweep_interval if sweep_interval is not None else settings.rate_limit_sweep_interval,
            self.sweep,
        )

    def __len__(self) -> int:
        return len(self._windows)

    def increment_and_get(self, key: str, window_ms: int) -> RateWindow:
        """Count one request against *key* and return a snapshot of its window.

        A window whose ``reset_at_ms`` has been reached is replaced by a fresh
        one before counting.
        """
        with self._lock:
            now = self._clock_ms()
            window = self._windows.get(key)
            if window is None or window.reset_at_ms <= now:
                window = RateWindow(count=0, reset_at_ms=now + window_ms)
                self._windows[key] = window
            window.count += 1
            return RateWindow(count=window.count, reset_at_ms=window.reset_at_ms)

    def sweep(self) -> int:
        """Drop every window whose reset time has passed."""
        with self._lock:
            now = self._clock_ms()
            expired = [k for k, w in self._windows.items() if w.reset_at_ms <= now]
            for key in expired:
                del self._windows[key]
        if expired:
            logger.debug("Swept %d expired rate windows", len(expired))
        return len(expired)

    def start(self) -> None:
        self._sweeper.start()

    async def stop(self) -> None:
        await self._sweeper.stop()
