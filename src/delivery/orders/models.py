# models.py
# Order records as read from the `orders` collection.
# The backend owns these documents; this app reads them and writes `status` only.

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

class OrderStatus(Enum):
    PENDING    = "Order Placed"
    PICKED_UP  = "Picked Up"
    PROCESSING = "Order Processing"
    DISPATCHED = "Out for Delivery"
    DELIVERED  = "Delivered"
    CANCELLED  = "Cancelled"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["OrderStatus"]:
        """Enum member for a stored status string, or None if it is not one we know."""
        try:
            return cls(value)
        except ValueError:
            return None


# Linear progression rendered as a timeline; CANCELLED is a side exit from PENDING.
TIMELINE = (
    OrderStatus.PENDING,
    OrderStatus.PICKED_UP,
    OrderStatus.PROCESSING,
    OrderStatus.DISPATCHED,
    OrderStatus.DELIVERED,
)


# ---------------------------------------------------------------------------
# Order parts
# ---------------------------------------------------------------------------

@dataclass
class ServiceLine:
    service_type: str
    quantity: int
    price: float

    @property
    def subtotal(self) -> float:
        return self.quantity * self.price

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "ServiceLine":
        return ServiceLine(
            service_type=d.get("serviceType") or d.get("type") or "",
            quantity=int(d.get("quantity", 0) or 0),
            price=float(d.get("price", 0) or 0),
        )


@dataclass
class Schedule:
    date: Optional[str] = None
    time: Optional[str] = None

    @staticmethod
    def from_dict(d: Optional[Dict[str, Any]]) -> Optional["Schedule"]:
        if not d:
            return None
        return Schedule(date=d.get("date"), time=d.get("time"))


# ---------------------------------------------------------------------------
# Order
# ---------------------------------------------------------------------------

@dataclass
class Order:
    id: str
    status: str
    services: List[ServiceLine] = field(default_factory=list)
    total_price: float = 0.0
    address: Optional[str] = None
    pickup: Optional[Schedule] = None
    dropoff: Optional[Schedule] = None
    created_at: Optional[str] = None
    timestamps: Dict[str, str] = field(default_factory=dict)
    customer_id: Optional[str] = None
    provider_id: Optional[str] = None
    cancellation_reason: Optional[str] = None
    reviewed: bool = False
    order_number: Optional[str] = None

    @property
    def known_status(self) -> Optional[OrderStatus]:
        return OrderStatus.parse(self.status)

    @property
    def display_id(self) -> str:
        """Human order number, or the first 8 characters of the document id."""
        return self.order_number or self.id[:8]

    @staticmethod
    def from_document(doc_id: str, d: Dict[str, Any]) -> "Order":
        return Order(
            id=doc_id,
            status=d.get("status") or "",
            services=[ServiceLine.from_dict(s) for s in d.get("services") or []],
            total_price=float(d.get("totalPrice") or 0),
            address=d.get("address"),
            pickup=Schedule.from_dict(d.get("orderPickup")),
            dropoff=Schedule.from_dict(d.get("orderDropoff")),
            created_at=d.get("createdAt"),
            timestamps=dict(d.get("timestamps") or {}),
            customer_id=d.get("customerId"),
            provider_id=d.get("serviceProviderId"),
            cancellation_reason=d.get("cancellationReason"),
            reviewed=bool(d.get("reviewed", False)),
            order_number=d.get("orderId"),
        )
