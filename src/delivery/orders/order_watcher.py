# order_watcher.py
# Watches every order of one customer and announces status changes.

import logging
from typing import Callable, Dict, List, Optional

from .models import Order
from .repository import OrderRepository

logger = logging.getLogger(__name__)

Announce = Callable[[str, str], None]


class OrderWatcher:
    """
    Emits "Your order #<id> is now <status>." when a known order changes status.

    The first snapshot only records the current statuses; new orders are
    recorded silently as well.

    Args:
        orders:   OrderRepository.
        announce: Called with (title, message) for each change.
    """

    def __init__(self, orders: OrderRepository, announce: Announce) -> None:
        self.orders = orders
        self._announce = announce
        self._statuses: Dict[str, str] = {}
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def statuses(self) -> Dict[str, str]:
        return dict(self._statuses)

    def start(self, customer_id: str) -> None:
        self.stop()
        self._statuses = {}
        self._unsubscribe = self.orders.watch_customer(customer_id, self._on_orders)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_orders(self, orders: List[Order]) -> None:
        for order in orders:
            previous = self._statuses.get(order.id)
            if previous is not None and previous != order.status:
                message = f"Your order #{order.id} is now {order.status}."
                logger.info(message)
                self._announce("Order Update", message)
        self._statuses = {order.id: order.status for order in orders}
