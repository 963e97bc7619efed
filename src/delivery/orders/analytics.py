# analytics.py
# Service provider dashboard figures: revenue from delivered orders and
# review sentiment, computed with pandas.

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

import pandas as pd

from ..backend.store import DocumentStore
from ..errors import BackendError
from .feedback import RATINGS
from .models import Order, OrderStatus
from .repository import OrderRepository

logger = logging.getLogger(__name__)

TIMEFRAMES = ("daily", "weekly", "monthly", "yearly")


@dataclass
class ProviderAnalytics:
    total_revenue: float = 0.0
    order_count: int = 0
    average_revenue: float = 0.0
    revenue: Dict[str, float] = field(default_factory=dict)   # label -> amount, chart order
    reviews: Dict[str, int] = field(default_factory=dict)


def _timestamp(now: Optional[datetime]) -> pd.Timestamp:
    ts = pd.Timestamp(now) if now is not None else pd.Timestamp.now(tz="UTC")
    return ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")


def orders_frame(orders: Iterable[Order], now: Optional[datetime] = None) -> pd.DataFrame:
    """
    One row per order: created_at (UTC) and total_price.

    Orders without a parseable creation date are counted as created now.
    """
    rows = [{"order_id": o.id, "created_at": o.created_at, "total_price": o.total_price} for o in orders]
    df = pd.DataFrame(rows, columns=["order_id", "created_at", "total_price"])
    created = pd.to_datetime(df["created_at"], utc=True, errors="coerce", format="ISO8601")
    df["created_at"] = created.fillna(_timestamp(now))
    df["total_price"] = pd.to_numeric(df["total_price"], errors="coerce").fillna(0.0)
    return df.sort_values("created_at").reset_index(drop=True)


def revenue_summary(orders: List[Order]) -> Dict[str, float]:
    df = orders_frame(orders)
    total = float(df["total_price"].sum())
    count = len(df)
    return {
        "total": total,
        "count": count,
        "average": total / count if count else 0.0,
    }


def revenue_by_timeframe(orders: List[Order], timeframe: str, now: Optional[datetime] = None) -> pd.Series:
    """
    Revenue bucketed for the dashboard chart.

    Args:
        orders:    Delivered orders.
        timeframe: "daily" (last 7 days, weekday labels), "weekly" (last 4 weeks,
                   "Week 1".."Week 4" oldest first), "monthly" (last 6 months,
                   month labels) or "yearly" (last 3 years).
        now:       Reference time; current UTC time if omitted.

    Returns:
        Series indexed by label in chart order, zero-filled.

    Raises:
        ValueError: On an unknown timeframe.
    """
    if timeframe not in TIMEFRAMES:
        raise ValueError(f"Unknown timeframe {timeframe!r}; expected one of {TIMEFRAMES}")

    ref = _timestamp(now)
    df = orders_frame(orders, now=ref)
    created = df["created_at"]
    age_days = (ref - created).dt.total_seconds() / 86400

    if timeframe == "daily":
        labels = [(ref - pd.Timedelta(days=i)).strftime("%a") for i in range(6, -1, -1)]
        mask = (age_days >= 0) & (age_days < 7)
        keys = created.dt.strftime("%a")
    elif timeframe == "weekly":
        labels = [f"Week {i}" for i in range(1, 5)]
        mask = (age_days >= 0) & (age_days < 28)
        weeks_ago = (age_days // 7).clip(upper=3)
        keys = "Week " + (4 - weeks_ago).astype(int).astype(str)
    elif timeframe == "monthly":
        labels = [(ref - pd.DateOffset(months=i)).strftime("%b") for i in range(5, -1, -1)]
        months_ago = (ref.year - created.dt.year) * 12 + (ref.month - created.dt.month)
        mask = (months_ago >= 0) & (months_ago < 6)
        keys = created.dt.strftime("%b")
    else:
        labels = [str(ref.year - i) for i in range(2, -1, -1)]
        years_ago = ref.year - created.dt.year
        mask = (years_ago >= 0) & (years_ago < 3)
        keys = created.dt.year.astype(str)

    selected = df.loc[mask, "total_price"]
    totals = selected.groupby(keys[mask]).sum()
    return totals.reindex(labels, fill_value=0.0).astype(float)


def review_breakdown(ratings: Iterable[float]) -> Dict[str, int]:
    """Split ratings into Positive (>= 4), Neutral (>= 3) and Negative."""
    values = pd.Series(list(ratings), dtype=float).fillna(0.0)
    return {
        "Positive": int((values >= 4).sum()),
        "Neutral": int(((values >= 3) & (values < 4)).sum()),
        "Negative": int((values < 3).sum()),
    }


async def provider_analytics(
    store: DocumentStore,
    provider_id: str,
    timeframe: str = "daily",
    now: Optional[datetime] = None,
) -> ProviderAnalytics:
    """
    Dashboard figures for one provider from delivered orders and its ratings.

    Raises:
        BackendError: If either collection cannot be read.
    """
    delivered = await OrderRepository(store).for_provider(provider_id, OrderStatus.DELIVERED)
    try:
        rating_rows = await store.query(RATINGS, serviceProviderId=provider_id)
    except Exception as e:
        raise BackendError(f"Could not read ratings for provider {provider_id}: {e}") from e

    analytics = ProviderAnalytics()
    if delivered:
        summary = revenue_summary(delivered)
        analytics.total_revenue = summary["total"]
        analytics.order_count = int(summary["count"])
        analytics.average_revenue = summary["average"]
        analytics.revenue = revenue_by_timeframe(delivered, timeframe, now).to_dict()
    if rating_rows:
        analytics.reviews = review_breakdown(data.get("rating") or 0 for _, data in rating_rows)

    logger.info(
        f"Analytics for provider {provider_id}: {analytics.order_count} delivered orders, "
        f"{len(rating_rows)} reviews"
    )
    return analytics
