"""Custom exception hierarchy for pydatalayer."""

from __future__ import annotations


class DataLayerError(Exception):
    """Base exception for all pydatalayer errors."""


class DataLayerConfigError(DataLayerError):
    """Invalid or missing configuration."""


class DataLayerValidationError(DataLayerError):
    """A write, cart operation or form save was given an unusable payload."""


class DataLayerPersistenceError(DataLayerError):
    """Durable storage is unavailable, unreadable or full."""

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class DataLayerNetworkError(DataLayerError):
    """HTTP-level failure while fetching remote configuration."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(message)


class DataLayerParseError(DataLayerError):
    """A persisted record or remote payload could not be decoded."""


class ReadOnlyDataLayerError(DataLayerError):
    """Direct assignment to the data layer view was attempted.

    All mutations must go through :meth:`pydatalayer.state.DataLayer.write`
    or the cart operations.
    """


class TriggerRuleError(DataLayerError):
    """A trigger rule entry cannot be evaluated (missing event, bad trigger)."""
