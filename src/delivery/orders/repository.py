# repository.py
# Typed access to the `orders` and `serviceProviders` collections.
# Every store failure surfaces as BackendError; nothing here retries.

import logging
from typing import Callable, List, Optional

from ..backend.store import DocumentStore, Unsubscribe
from ..errors import BackendError, InvalidCoordinateError
from ..tracking.geo_utils import validate_coord
from ..tracking.models import Coord
from .models import Order, OrderStatus

logger = logging.getLogger(__name__)

ORDERS = "orders"
PROVIDERS = "serviceProviders"

OrderHandler = Callable[[Optional[Order]], None]


class OrderRepository:
    """
    Args:
        store: DocumentStore implementation.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def get(self, order_id: str) -> Optional[Order]:
        try:
            data = await self.store.get(ORDERS, order_id)
        except BackendError:
            raise
        except Exception as e:
            raise BackendError(f"Could not read order {order_id}: {e}") from e
        return Order.from_document(order_id, data) if data is not None else None

    async def set_status(self, order_id: str, status: OrderStatus, **extra) -> None:
        fields = {"status": status.value}
        fields.update(extra)
        try:
            await self.store.update(ORDERS, order_id, fields)
        except BackendError:
            raise
        except Exception as e:
            raise BackendError(f"Could not update order {order_id}: {e}") from e
        logger.info(f"Order {order_id} status written: {status.value}")

    async def for_provider(self, provider_id: str, status: Optional[OrderStatus] = None) -> List[Order]:
        filters = {"serviceProviderId": provider_id}
        if status is not None:
            filters["status"] = status.value
        try:
            rows = await self.store.query(ORDERS, **filters)
        except Exception as e:
            raise BackendError(f"Could not list orders for provider {provider_id}: {e}") from e
        return [Order.from_document(doc_id, data) for doc_id, data in rows]

    def watch(self, order_id: str, handler: OrderHandler) -> Unsubscribe:
        """Push every new version of the order (None if it does not exist) to `handler`."""
        try:
            return self.store.subscribe(
                ORDERS, order_id,
                lambda data: handler(Order.from_document(order_id, data) if data is not None else None),
            )
        except BackendError:
            raise
        except Exception as e:
            raise BackendError(f"Could not watch order {order_id}: {e}") from e

    def watch_customer(self, customer_id: str, handler: Callable[[List[Order]], None]) -> Unsubscribe:
        """Push the full list of a customer's orders on every change."""
        try:
            return self.store.subscribe_query(
                ORDERS,
                lambda rows: handler([Order.from_document(doc_id, data) for doc_id, data in rows]),
                customerId=customer_id,
            )
        except BackendError:
            raise
        except Exception as e:
            raise BackendError(f"Could not watch orders of customer {customer_id}: {e}") from e


class ProviderRepository:
    """
    Args:
        store: DocumentStore implementation.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def get(self, provider_id: str) -> Optional[dict]:
        try:
            return await self.store.get(PROVIDERS, provider_id)
        except Exception as e:
            raise BackendError(f"Could not read service provider {provider_id}: {e}") from e

    async def location(self, provider_id: str) -> Coord:
        """
        Provider position from `location.coordinates.{latitude,longitude}`.

        Raises:
            BackendError:           If the document cannot be read or does not exist.
            InvalidCoordinateError: If the stored coordinates are missing or invalid.
        """
        if not provider_id:
            raise BackendError("No service provider id provided.")
        data = await self.get(provider_id)
        if data is None:
            raise BackendError(f"Service provider {provider_id} does not exist.")

        coords = (data.get("location") or {}).get("coordinates")
        if not coords:
            raise InvalidCoordinateError(f"No coordinates in service provider {provider_id}.")
        try:
            coord = Coord(float(coords["latitude"]), float(coords["longitude"]))
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidCoordinateError(f"Unreadable coordinates for provider {provider_id}: {e}") from e
        return validate_coord(coord, f"service provider {provider_id} location")

    async def set_rating(self, provider_id: str, rating: float) -> None:
        try:
            await self.store.update(PROVIDERS, provider_id, {"rating": rating})
        except BackendError:
            raise
        except Exception as e:
            raise BackendError(f"Could not update rating for provider {provider_id}: {e}") from e
