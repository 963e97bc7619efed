# main.py
# Entry point: runs one live-tracking session against the in-memory backend.
# The provider is simulated; with no ROUTING_API_KEY the synthetic fallback route is used.
#
# Run from the repository root:  python -m delivery.tracking.main   (with src/ on the path)

import asyncio
import logging

import httpx

from ..backend.device import LogNotifier, StaticLocationService
from ..backend.store import InMemoryDocumentStore
from ..context import AppContext
from ..errors import TrackingError
from ..orders.models import OrderStatus
from ..orders.repository import ORDERS, PROVIDERS
from .models import Coord
from .session import TrackingSession
from .tracking_config import TrackingConfig

# ------------------------------------------------------------------
# Logging setup: configured once here, all modules inherit
# ------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

# ------------------------------------------------------------------
# Config: the demo runs the trip at 20x speed
# ------------------------------------------------------------------
config = TrackingConfig.from_env(
    speed_kmh=800.0,
    tick_interval_s=0.5,
    max_retries=1,
)

# ------------------------------------------------------------------
# Demo data (Gulberg -> Model Town, Lahore)
# ------------------------------------------------------------------
PROVIDER_ID = "provider-1"
ORDER_ID = "order-1"
PROVIDER_POSITION = Coord(31.5204, 74.3587)
CUSTOMER_POSITION = Coord(31.4834, 74.3265)


def seed_store() -> InMemoryDocumentStore:
    store = InMemoryDocumentStore()
    store.put(PROVIDERS, PROVIDER_ID, {
        "name": "Sparkle Laundry",
        "location": {"coordinates": PROVIDER_POSITION.to_dict()},
    })
    store.put(ORDERS, ORDER_ID, {
        "status": OrderStatus.DISPATCHED.value,
        "customerId": "customer-1",
        "serviceProviderId": PROVIDER_ID,
        "totalPrice": 1450,
        "services": [{"serviceType": "Wash & Fold", "quantity": 3, "price": 350}],
    })
    return store


async def run() -> None:
    store = seed_store()
    notifier = LogNotifier()

    async with httpx.AsyncClient() as http:
        context = AppContext(
            store=store,
            location=StaticLocationService(CUSTOMER_POSITION),
            notifications=notifier,
            config=config,
            http=http,
        )
        session = TrackingSession(context, ORDER_ID, PROVIDER_ID, customer_address="Model Town, Lahore")
        try:
            await session.open()
        except TrackingError as e:
            print(f"[Main] {e.title}: {e.message}")
            return

        print("\n--- Tracking Active ---")
        try:
            # Poll the view the way a screen would re-render
            while True:
                view = session.snapshot()
                print(
                    f"  {view.position} -> {view.remaining_km:.2f} km left, "
                    f"ETA {view.eta_label} [{view.order_status}]"
                )
                if view.has_arrived:
                    break
                await asyncio.sleep(config.tick_interval_s)

            await store.update(ORDERS, ORDER_ID, {"status": OrderStatus.DELIVERED.value})
            await asyncio.sleep(0)
            print(f"  Order status now: {session.snapshot().order_status}")
        finally:
            session.close()

    print("\n--- Session complete ---")
    print(f"    Notifications sent: {notifier.sent}")


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
