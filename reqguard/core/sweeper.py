"""Periodic background sweep of the protection stores.

This is the only background task of the protection layer. It is owned by
the application lifespan: started once at startup, cancelled at shutdown.

The start guard is per application. Stores are built per app and injected
through ``app.state.protection``, so each app sweeps only its own stores and
two apps in one process run one sweeper each. Within an app, ``start`` is a
no-op while the sweep task is still running.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Protocol, Sequence

logger = logging.getLogger(__name__)


class Sweepable(Protocol):
    def sweep(self) -> int: ...


class PeriodicSweeper:
    """Call ``sweep()`` on every target each ``interval_seconds``.

    ``start`` is idempotent: while a sweep task is running, further calls
    are no-ops. This matters when startup code runs more than once in the
    same process (reloaders, test clients entering the lifespan twice).
    """

    def __init__(self, targets: Sequence[Sweepable], *, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._targets = tuple(targets)
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Schedule the sweep loop on the running event loop.

        Returns:
            True if a new task was started, False if one was already running.
        """
        if self.running:
            return False
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="reqguard-store-sweeper"
        )
        logger.info(
            "sweeper.started",
            extra={"interval_s": self._interval, "targets": len(self._targets)},
        )
        return True

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("sweeper.stopped")

    def sweep_once(self) -> int:
        """Sweep every target now; return the total number of evicted entries.

        A failing target is logged and skipped so the others still run.
        """
        evicted = 0
        for target in self._targets:
            try:
                evicted += target.sweep()
            except Exception:
                logger.exception(
                    "sweeper.target_failed",
                    extra={"target": type(target).__name__},
                )
        return evicted

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self.sweep_once()
