from __future__ import annotations


class GofiError(Exception):
    """Base class for ingestion failures."""


class TransferError(GofiError, ConnectionError):
    """The stream closed, stalled or failed before the declared payload arrived."""


class DecodeError(GofiError, ValueError):
    """A staged snapshot could not be read as a relational file or a flat list."""


class MergeError(GofiError):
    """The catalog batch failed and was rolled back."""
