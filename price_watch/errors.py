# price_watch/errors.py

"""Exception taxonomy shared by fetchers, notifiers, storage and services."""


class PriceWatchError(Exception):
    """Base class for all price_watch errors."""


class FetchFailure(PriceWatchError):
    """A product page did not yield a price.

    Expected and frequent: timeouts, HTTP errors, CAPTCHA walls and
    pages without a recognisable price all end up here.
    """

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"{reason} ({url})")
        self.url = url
        self.reason = reason


class DeliveryFailure(PriceWatchError):
    """A notification could not be confirmed as delivered."""

    def __init__(self, destination: str, reason: str) -> None:
        super().__init__(f"{reason} (to {destination})")
        self.destination = destination
        self.reason = reason


class DatastoreError(PriceWatchError):
    """A read or write against the datastore failed."""


class InvalidProductURL(PriceWatchError, ValueError):
    """The URL does not contain a recognisable catalog id."""


class ProductUnavailable(PriceWatchError):
    """The product page could be fetched but has no product details."""


class CycleInProgressError(PriceWatchError):
    """A check cycle is already running on this engine."""
