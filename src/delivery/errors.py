# errors.py
# Exception hierarchy shared by the tracking and order modules.


class DeliveryError(Exception):
    """Base class for every error raised by this package."""


class InvalidCoordinateError(DeliveryError, ValueError):
    """A coordinate is missing, NaN or outside [-90, 90] / [-180, 180]."""


class RouteFetchError(DeliveryError):
    """One routing API attempt failed. Never escapes RouteProvider."""


class TrackingError(DeliveryError):
    """
    Tracking could not be initialised.

    The screen layer shows `message` as a blocking alert and navigates back.
    """

    def __init__(self, message: str, title: str = "Tracking Error") -> None:
        super().__init__(message)
        self.title = title
        self.message = message


class BackendError(DeliveryError):
    """Document database read or write failed. Not retried automatically."""


class LocationUnavailableError(DeliveryError):
    """Device position could not be obtained."""


class InvalidTransitionError(DeliveryError):
    """An order status change that the status machine does not allow."""


class ValidationError(DeliveryError, ValueError):
    """User input rejected before it reaches the backend."""
