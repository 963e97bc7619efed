# tracking_config.py
# All tuneable constants in one place.
# Pass a TrackingConfig instance to every module that needs settings.

import os
from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv

from .models import Coord


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DRIVING_SPEED_KMH: float = 40.0       # km/h, held constant for the whole trip
EARTH_RADIUS_KM: float = 6371.0

# Lahore, used when the provider document has no usable coordinates
FALLBACK_PROVIDER_COORD = Coord(31.5127, 74.3516)


# ---------------------------------------------------------------------------
# Main config
# ---------------------------------------------------------------------------

@dataclass
class TrackingConfig:
    # Simulation
    speed_kmh: float = DRIVING_SPEED_KMH
    tick_interval_s: float = 5.0
    arrival_threshold_km: float = 0.05

    # Routing API
    routing_base_url: str = "https://api.openrouteservice.org"
    routing_profile: str = "driving-car"
    routing_api_key: str = ""
    request_timeout_s: float = 10.0
    max_retries: int = 3
    backoff_base_s: float = 2.0            # 2s, 4s, 8s ...

    # Traffic multiplier drawn once per fetch
    primary_traffic_range: Tuple[float, float] = (0.9, 1.3)
    alternate_traffic_range: Tuple[float, float] = (0.9, 1.2)

    # Synthetic fallback path
    fallback_points: int = 8               # intermediate points between origin and destination
    fallback_max_offset_deg: float = 0.0015
    fallback_detour_factor: float = 1.25

    # Device / location
    location_timeout_s: float = 15.0
    fallback_provider_coord: Coord = FALLBACK_PROVIDER_COORD
    fallback_customer_offset_deg: float = 0.01

    # Reverse geocoding
    geocoder_base_url: str = "https://nominatim.openstreetmap.org"
    geocoder_user_agent: str = "LaundryTracking/1.0"

    # Map framing
    region_padding: float = 2.5
    region_min_delta: float = 0.02

    @property
    def primary_route_url(self) -> str:
        return f"{self.routing_base_url}/v2/directions/{self.routing_profile}/geojson"

    @property
    def alternate_route_url(self) -> str:
        return f"{self.routing_base_url}/v2/directions/{self.routing_profile}/json"

    def backoff_delay(self, retry: int) -> float:
        """Delay in seconds before retry number `retry` (1-based)."""
        return self.backoff_base_s * (2 ** (retry - 1))

    @classmethod
    def from_env(cls, env_file: Optional[str] = None, **overrides) -> "TrackingConfig":
        """
        Build a config from environment variables (and an optional .env file).

        Args:
            env_file:  Path to a .env file; python-dotenv's search is used if omitted.
            overrides: Field values that win over the environment.

        Returns:
            TrackingConfig instance.
        """
        load_dotenv(dotenv_path=env_file)
        values = dict(
            routing_api_key=os.getenv("ROUTING_API_KEY", ""),
            routing_base_url=os.getenv("ROUTING_BASE_URL", cls.routing_base_url),
            routing_profile=os.getenv("ROUTING_PROFILE", cls.routing_profile),
            geocoder_base_url=os.getenv("NOMINATIM_BASE_URL", cls.geocoder_base_url),
            geocoder_user_agent=os.getenv("NOMINATIM_USER_AGENT", cls.geocoder_user_agent),
        )
        speed = os.getenv("TRACKING_SPEED_KMH")
        if speed:
            values["speed_kmh"] = float(speed)
        tick = os.getenv("TRACKING_TICK_INTERVAL_S")
        if tick:
            values["tick_interval_s"] = float(tick)
        values.update(overrides)
        return cls(**values)
