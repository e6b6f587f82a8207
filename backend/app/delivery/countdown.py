"""Owned per-session countdown with one-shot threshold warnings."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence, Set

logger = logging.getLogger(__name__)

WARNING_THRESHOLDS: Sequence[int] = (300, 120, 60)

Sleep = Callable[[float], Awaitable[None]]


class Countdown:
    """Counts whole seconds down to zero on the running event loop.

    Each threshold warning fires at most once per countdown, including
    across ``stop()``/``start()`` cycles. ``on_expire`` fires once, on the
    tick that reaches zero.
    """

    def __init__(
        self,
        total_seconds: int,
        *,
        on_expire: Callable[[], object],
        on_warning: Optional[Callable[[int], object]] = None,
        on_tick: Optional[Callable[[int], object]] = None,
        thresholds: Sequence[int] = WARNING_THRESHOLDS,
        interval: float = 1.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.remaining = max(int(total_seconds), 0)
        self._on_expire = on_expire
        self._on_warning = on_warning
        self._on_tick = on_tick
        self._thresholds = tuple(sorted(thresholds, reverse=True))
        self._interval = interval
        self._sleep = sleep
        self._fired: Set[int] = set()
        self._task: Optional[asyncio.Task[None]] = None
        self._stopped = True

    @property
    def running(self) -> bool:
        return not self._stopped and self._task is not None and not self._task.done()

    @property
    def expired(self) -> bool:
        return self.remaining <= 0

    @property
    def fired_thresholds(self) -> Set[int]:
        return set(self._fired)

    def start(self) -> None:
        """Begin (or resume) ticking; requires a running event loop."""
        if self.running or self.expired:
            return
        self._stopped = False
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        self._stopped = True
        task = self._task
        self._task = None
        # Expiry callbacks run inside the ticking task; it exits on its own.
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def tick(self) -> None:
        """Advance one second and fire any warnings or expiry that crossing it triggers."""
        if self.expired:
            return
        previous = self.remaining
        self.remaining = previous - 1

        for threshold in self._thresholds:
            if previous > threshold >= self.remaining and threshold not in self._fired:
                self._fired.add(threshold)
                if self._on_warning is not None:
                    self._on_warning(threshold)

        if self._on_tick is not None:
            self._on_tick(self.remaining)

        if self.remaining == 0:
            logger.info("Countdown reached zero")
            self._on_expire()

    async def _run(self) -> None:
        while not self._stopped and not self.expired:
            await self._sleep(self._interval)
            if self._stopped:
                break
            self.tick()


__all__ = ["Countdown", "WARNING_THRESHOLDS"]
