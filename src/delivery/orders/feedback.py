# feedback.py
# Customer feedback: star ratings and complaints.

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from ..backend.store import DocumentStore
from ..errors import BackendError, ValidationError
from .repository import ORDERS, ProviderRepository

logger = logging.getLogger(__name__)

RATINGS = "ratings"
COMPLAINTS = "complaints"

FEEDBACK_CATEGORIES = (
    "Punctuality",
    "Clean Clothes",
    "Good Pricing",
    "Customer Service",
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def submit_rating(
    store: DocumentStore,
    order_id: str,
    provider_id: str,
    customer_id: str,
    rating: int,
    review: str,
    categories: Iterable[str],
) -> str:
    """
    Store a rating, mark the order reviewed and refresh the provider average.

    Args:
        store:       DocumentStore.
        order_id:    Rated order.
        provider_id: Rated service provider.
        customer_id: Author.
        rating:      Stars, 1..5.
        review:      Free text; must not be blank.
        categories:  At least one of FEEDBACK_CATEGORIES.

    Returns:
        Id of the new rating document.

    Raises:
        ValidationError: On missing stars, blank review or no/unknown category.
        BackendError:    If any write fails.
    """
    selected: List[str] = list(dict.fromkeys(categories))
    if not 1 <= int(rating) <= 5:
        raise ValidationError("Please select a star rating.")
    if not review or not review.strip():
        raise ValidationError("Please write a review.")
    if not selected:
        raise ValidationError("Please select at least one feedback category.")
    unknown = [c for c in selected if c not in FEEDBACK_CATEGORIES]
    if unknown:
        raise ValidationError(f"Unknown feedback categories: {', '.join(unknown)}")

    try:
        rating_id = await store.add(RATINGS, {
            "orderId": order_id,
            "serviceProviderId": provider_id,
            "customerId": customer_id,
            "rating": int(rating),
            "review": review.strip(),
            "categories": selected,
            "createdAt": _now(),
        })
        await store.update(ORDERS, order_id, {"reviewed": True})
    except BackendError:
        raise
    except Exception as e:
        raise BackendError(f"Could not submit rating for order {order_id}: {e}") from e

    await update_provider_rating(store, provider_id)
    return rating_id


async def update_provider_rating(store: DocumentStore, provider_id: str) -> Optional[float]:
    """
    Recompute the provider's average rating, stored with one decimal place.

    Returns:
        The new average, or None if the provider has no ratings.
    """
    try:
        rows = await store.query(RATINGS, serviceProviderId=provider_id)
    except Exception as e:
        raise BackendError(f"Could not read ratings for provider {provider_id}: {e}") from e

    ratings = [float(data.get("rating") or 0) for _, data in rows]
    if not ratings:
        return None
    average = round(sum(ratings) / len(ratings), 1)
    await ProviderRepository(store).set_rating(provider_id, average)
    logger.info(f"Updated rating for provider {provider_id}: {average}")
    return average


async def submit_complaint(
    store: DocumentStore,
    order_id: str,
    provider_id: str,
    customer_id: str,
    description: str,
    image_url: Optional[str] = None,
) -> str:
    """
    File a complaint against an order. New complaints start as "Pending".

    Raises:
        ValidationError: If the description is blank.
        BackendError:    If the write fails.
    """
    if not description or not description.strip():
        raise ValidationError("Please describe the problem.")
    try:
        complaint_id = await store.add(COMPLAINTS, {
            "customerId": customer_id,
            "orderId": order_id,
            "providerId": provider_id,
            "description": description.strip(),
            "imageUrl": image_url,
            "status": "Pending",
            "createdAt": _now(),
        })
    except Exception as e:
        raise BackendError(f"Failed to submit complaint for order {order_id}: {e}") from e
    logger.info(f"Complaint {complaint_id} filed for order {order_id}")
    return complaint_id
