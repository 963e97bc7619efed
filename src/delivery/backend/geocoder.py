# geocoder.py
# Reverse geocoding (coordinate -> human-readable address) via Nominatim.

import logging
from typing import Optional

import httpx

from ..tracking.models import Coord
from ..tracking.tracking_config import TrackingConfig

logger = logging.getLogger(__name__)


class NominatimGeocoder:
    """
    Thin async client for Nominatim's /reverse endpoint.

    Failures are logged and reported as None.

    Args:
        config: TrackingConfig (base URL and user agent).
        client: Shared httpx.AsyncClient; a short-lived one per call if omitted.
    """

    def __init__(self, config: Optional[TrackingConfig] = None, client: Optional[httpx.AsyncClient] = None) -> None:
        self.config = config or TrackingConfig()
        self._client = client

    async def reverse(self, coord: Coord) -> Optional[str]:
        params = {
            "lat": f"{coord.lat:.6f}",
            "lon": f"{coord.lon:.6f}",
            "format": "json",
        }
        headers = {"User-Agent": self.config.geocoder_user_agent}
        url = f"{self.config.geocoder_base_url}/reverse"

        try:
            if self._client is not None:
                resp = await self._client.get(url, params=params, headers=headers, timeout=10.0)
            else:
                async with httpx.AsyncClient() as client:
                    resp = await client.get(url, params=params, headers=headers, timeout=10.0)

            if resp.status_code >= 400:
                logger.warning(f"Nominatim API error {resp.status_code}: {resp.text[:200]}")
                return None
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Reverse geocoding failed for {coord}: {e}")
            return None

        address = data.get("display_name") if isinstance(data, dict) else None
        return address or None
