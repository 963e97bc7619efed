# context.py
# Explicit bundle of the collaborators a screen needs.
# Built once at startup and handed to whatever needs the backend or the device.

from dataclasses import dataclass, field
from typing import Optional

import httpx

from .backend.device import LocationService, NotificationService
from .backend.geocoder import NominatimGeocoder
from .backend.store import DocumentStore
from .tracking.tracking_config import TrackingConfig


@dataclass
class AppContext:
    """
    Args:
        store:         Document database.
        location:      Device location service.
        notifications: Local notification service.
        config:        TrackingConfig shared by every module.
        http:          Shared httpx.AsyncClient for the routing API and Nominatim;
                       each request opens its own client if omitted.
        geocoder:      Reverse geocoder; built from `config` and `http` if omitted.
    """
    store: DocumentStore
    location: LocationService
    notifications: NotificationService
    config: TrackingConfig = field(default_factory=TrackingConfig)
    http: Optional[httpx.AsyncClient] = None
    geocoder: Optional[NominatimGeocoder] = None

    def __post_init__(self) -> None:
        if self.geocoder is None:
            self.geocoder = NominatimGeocoder(self.config, client=self.http)
