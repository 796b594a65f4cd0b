"""Typed retailer errors."""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Classification of adapter failures."""
    NOT_FOUND = "not_found"
    RATE_LIMIT = "rate_limit"
    AUTH = "auth"
    NETWORK = "network"
    PARSING = "parsing"
    SERVER_ERROR = "server_error"
    CIRCUIT_OPEN = "circuit_open"


_DEFAULT_RETRYABLE = {
    ErrorKind.NOT_FOUND: False,
    ErrorKind.RATE_LIMIT: True,
    ErrorKind.AUTH: False,
    ErrorKind.NETWORK: True,
    ErrorKind.PARSING: False,
    ErrorKind.SERVER_ERROR: True,
    ErrorKind.CIRCUIT_OPEN: True,
}


class RetailerError(Exception):
    """
    Failure raised by a retailer adapter.

    Args:
        message: Human readable description
        retailer_id: Retailer that produced the error
        kind: Error classification
        status_code: Upstream HTTP status, when one was received
        retryable: Override for the kind's default retryability
    """

    def __init__(
        self,
        message: str,
        retailer_id: str,
        kind: ErrorKind = ErrorKind.SERVER_ERROR,
        status_code: Optional[int] = None,
        retryable: Optional[bool] = None
    ):
        super().__init__(message)
        self.message = message
        self.retailer_id = retailer_id
        self.kind = kind
        self.status_code = status_code
        self.retryable = _DEFAULT_RETRYABLE[kind] if retryable is None else retryable

    def __repr__(self) -> str:
        return (
            f"RetailerError({self.message!r}, retailer_id={self.retailer_id!r}, "
            f"kind={self.kind.value}, status_code={self.status_code})"
        )
