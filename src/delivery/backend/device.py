# device.py
# Device-side collaborators: location services and local notifications.

import asyncio
import logging
from typing import List, Optional, Protocol, Tuple

from ..errors import LocationUnavailableError
from ..tracking.models import Coord

logger = logging.getLogger(__name__)


class LocationService(Protocol):
    async def request_permission(self) -> bool: ...

    async def current_position(self, timeout_s: float) -> Coord: ...


class NotificationService(Protocol):
    async def request_permission(self) -> bool: ...

    async def notify(self, title: str, body: str) -> None: ...


class StaticLocationService:
    """
    Location service that reports a fixed position.

    Args:
        position: Position to report; None behaves like a GPS that never gets a fix.
        granted:  Result of the foreground permission request.
        delay_s:  Artificial fix latency, to exercise the timeout path.
    """

    def __init__(self, position: Optional[Coord], granted: bool = True, delay_s: float = 0.0) -> None:
        self.position = position
        self.granted = granted
        self.delay_s = delay_s

    async def request_permission(self) -> bool:
        return self.granted

    async def current_position(self, timeout_s: float) -> Coord:
        if not self.granted:
            raise LocationUnavailableError("Location permission not granted.")
        try:
            await asyncio.wait_for(asyncio.sleep(self.delay_s), timeout=timeout_s)
        except asyncio.TimeoutError as e:
            raise LocationUnavailableError(f"No position fix within {timeout_s:g}s.") from e
        if self.position is None:
            raise LocationUnavailableError("No position fix available.")
        return self.position


class LogNotifier:
    """Notification service that logs each notification and keeps a record of it."""

    def __init__(self, granted: bool = True) -> None:
        self.granted = granted
        self.permission_requests = 0
        self.sent: List[Tuple[str, str]] = []

    async def request_permission(self) -> bool:
        self.permission_requests += 1
        return self.granted

    async def notify(self, title: str, body: str) -> None:
        logger.info(f"[Notification] {title}: {body}")
        self.sent.append((title, body))
