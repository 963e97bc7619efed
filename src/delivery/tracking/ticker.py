# ticker.py
# Repeating timer on the asyncio event loop.
# The callback runs on the loop thread, so it never interleaves with other
# loop callbacks (database listeners included) within one step.

import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class IntervalTimer:
    """
    Call `callback` every `interval_s` seconds until cancelled.

    Args:
        interval_s: Period in seconds.
        callback:   Zero-argument callable.
    """

    def __init__(self, interval_s: float, callback: Callable[[], object]) -> None:
        self.interval_s = interval_s
        self._callback = callback
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """
        Schedule the loop on the running event loop.

        Raises:
            RuntimeError: If called outside a running event loop.
        """
        if self.active:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def cancel(self) -> None:
        """Stop firing. Safe to call repeatedly or before start()."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            try:
                self._callback()
            except Exception:
                logger.exception("Timer callback failed, stopping timer")
                return
