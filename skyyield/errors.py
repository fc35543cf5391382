"""Domain errors raised by the commission layer.

Each error carries the HTTP status it maps to; :mod:`skyyield.main` turns them
into the ``{"success": false, "error": ...}`` envelope.
"""
from __future__ import annotations


class CommissionError(Exception):
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class MissingInput(CommissionError):
    """A required field was not supplied."""


class InvalidInput(CommissionError):
    """A field was supplied but is not acceptable (unknown type, bad status)."""


class UnconfiguredStructure(CommissionError):
    """The partner has no commission structure set."""


class NotFound(CommissionError):
    status_code = 404


class StoreFailure(CommissionError):
    status_code = 500
