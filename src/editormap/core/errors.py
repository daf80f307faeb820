"""
Error taxonomy shared by the discovery core, the stores and the API layer.

- `InvalidInput`: malformed coordinates, bad radius, unknown sort key. Client error, not retryable.
- `InvalidQuery`: an `InvalidInput` raised while validating a search query.
- `NotFound`: unknown editor on a settings operation. Reported, not retried.
- `StoreUnavailable`: backing store read/write failure. Retryable, and distinct from an empty result.
- `GeocodingError`: geolocation / reverse geocoding collaborator failed (callers degrade to manual entry).
"""

from __future__ import annotations


class DiscoveryError(Exception):
    """Base class for all editormap errors."""

    code = "DISCOVERY_ERROR"
    retryable = False


class InvalidInput(DiscoveryError, ValueError):
    code = "INVALID_INPUT"


class InvalidQuery(InvalidInput):
    code = "INVALID_QUERY"


class NotFound(DiscoveryError, LookupError):
    code = "NOT_FOUND"


class StoreUnavailable(DiscoveryError):
    code = "STORE_UNAVAILABLE"
    retryable = True


class GeocodingError(DiscoveryError):
    code = "GEOCODING_ERROR"
    retryable = True
