"""Error taxonomy shared by the extraction, storage, generation and workflow layers."""

from __future__ import annotations


class TenderPilotError(RuntimeError):
    """Base class for failures that are reported to the user as a plain message."""


class UnsupportedFormat(TenderPilotError):
    """Raised when a file extension is not one of the supported kinds."""


class ExtractionFailed(TenderPilotError):
    """Raised when a supported document cannot be converted to text."""


class EmptyDocument(TenderPilotError):
    """Raised when extraction succeeded but produced no usable text."""


class MissingCredential(TenderPilotError):
    """Raised when a completion is requested without a configured API key."""


class UpstreamError(TenderPilotError):
    """Raised when the generation service call itself fails."""


class EmptyResponse(TenderPilotError):
    """Raised when the generation service returns no text."""


class MalformedResponse(TenderPilotError):
    """Raised when no well-formed question/answer array can be recovered from a reply."""


class StoreError(TenderPilotError):
    """Base class for persistent store failures."""


class StoreUnavailable(StoreError):
    """Raised when the store is used before it has been opened."""


class StoreIOError(StoreError):
    """Raised when the underlying database call fails."""


__all__ = [
    "EmptyDocument",
    "EmptyResponse",
    "ExtractionFailed",
    "MalformedResponse",
    "MissingCredential",
    "StoreError",
    "StoreIOError",
    "StoreUnavailable",
    "TenderPilotError",
    "UnsupportedFormat",
    "UpstreamError",
]
