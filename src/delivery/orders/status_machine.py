# status_machine.py
# Projects the latest pushed order status onto the fixed timeline.
# No local persistence: the view is always derived from the last snapshot.

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Set, Union

from ..errors import BackendError, InvalidTransitionError
from .models import TIMELINE, Order, OrderStatus
from .repository import OrderRepository

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------

@dataclass
class TimelineStep:
    status: OrderStatus
    completed: bool
    reached_at: Optional[str] = None

    @property
    def label(self) -> str:
        return self.status.value


@dataclass
class Timeline:
    current_index: int
    steps: List[TimelineStep] = field(default_factory=list)

    @property
    def recognised(self) -> bool:
        return self.current_index >= 0


@dataclass
class CancelledView:
    reason: str = "No reason provided"


TimelineView = Union[Timeline, CancelledView]


# ---------------------------------------------------------------------------
# Pure mapping
# ---------------------------------------------------------------------------

def status_index(status: Optional[str]) -> int:
    """
    Position of `status` in the timeline: 0..4, or -1 for anything else.

    "Cancelled" is not on the timeline and also maps to -1.
    """
    for index, step in enumerate(TIMELINE):
        if step.value == status:
            return index
    return -1


def build_timeline(order: Order, reported_unknown: Optional[Set[str]] = None) -> TimelineView:
    """
    Render view for one order snapshot.

    An unrecognised status renders every step incomplete and is logged as a
    warning.

    Args:
        order:            Latest order snapshot.
        reported_unknown: Unknown status strings already logged by the caller.
                          Each is warned about once and added here; without
                          it every call warns.
    """
    if order.status == OrderStatus.CANCELLED.value:
        return CancelledView(reason=order.cancellation_reason or "No reason provided")

    current = status_index(order.status)
    if current < 0 and (reported_unknown is None or order.status not in reported_unknown):
        if reported_unknown is not None:
            reported_unknown.add(order.status)
        logger.warning(f"Order {order.id} has unknown status {order.status!r}; rendering no progress")

    steps = [
        TimelineStep(
            status=status,
            completed=index <= current,
            reached_at=order.timestamps.get(status.value),
        )
        for index, status in enumerate(TIMELINE)
    ]
    return Timeline(current_index=current, steps=steps)


# ---------------------------------------------------------------------------
# Listener-driven state machine
# ---------------------------------------------------------------------------

class OrderStatusMachine:
    """
    Keeps the timeline of one order in step with the database listener.

    Usage:
        machine = OrderStatusMachine(OrderRepository(store))
        machine.watch(order_id, render)
        ...
        await machine.cancel(order_id)   # listener pushes the CANCELLED view back
        machine.close()

    Args:
        orders: OrderRepository used for the subscription and the cancel write.
    """

    def __init__(self, orders: OrderRepository) -> None:
        self.orders = orders
        self._order: Optional[Order] = None
        self._view: Optional[TimelineView] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._missing = False
        self._reported_unknown: Set[str] = set()

    # ------------------------------------------------------------------
    # Read-only properties
    # ------------------------------------------------------------------

    @property
    def order(self) -> Optional[Order]:
        return self._order

    @property
    def view(self) -> Optional[TimelineView]:
        return self._view

    @property
    def status(self) -> Optional[str]:
        return self._order.status if self._order else None

    @property
    def not_found(self) -> bool:
        """True when the last snapshot said the order document does not exist."""
        return self._missing

    @property
    def watching(self) -> bool:
        return self._unsubscribe is not None

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def watch(self, order_id: str, handler: Optional[Callable[[Optional[TimelineView]], None]] = None) -> Callable[[], None]:
        """
        Subscribe to `orders/{order_id}`. Replaces any previous subscription.

        Returns:
            Callable that ends the subscription (same as close()).
        """
        self.close()

        def on_snapshot(order: Optional[Order]) -> None:
            view = self.apply(order)
            if handler is not None:
                handler(view)

        self._unsubscribe = self.orders.watch(order_id, on_snapshot)
        return self.close

    def apply(self, order: Optional[Order]) -> Optional[TimelineView]:
        """Process one pushed snapshot. None means the document does not exist."""
        if order is None:
            self._missing = True
            self._order = None
            self._view = None
            return None

        previous = self.status
        self._missing = False
        self._order = order
        self._view = build_timeline(order, self._reported_unknown)
        if previous is not None and previous != order.status:
            logger.info(f"Order {order.id} status changed: {previous} -> {order.status}")
        return self._view

    def close(self) -> None:
        """End the listener subscription. Safe to call repeatedly."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # ------------------------------------------------------------------
    # User action
    # ------------------------------------------------------------------

    async def cancel(self, order_id: str, reason: Optional[str] = None) -> None:
        """
        Write CANCELLED to the backend. Only a PENDING order can be cancelled.

        The local view is not changed here; the listener reflects the write back.

        Raises:
            InvalidTransitionError: If the order is not PENDING.
            BackendError:           If the order cannot be read or written.
        """
        order = self._order if self._order is not None and self._order.id == order_id else None
        if order is None:
            order = await self.orders.get(order_id)
        if order is None:
            raise BackendError(f"Order {order_id} not found.")

        if order.known_status is not OrderStatus.PENDING:
            raise InvalidTransitionError(
                f"Order {order_id} cannot be cancelled from status {order.status!r}."
            )

        extra = {"cancellationReason": reason} if reason else {}
        await self.orders.set_status(order_id, OrderStatus.CANCELLED, **extra)
