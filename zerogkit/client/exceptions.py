"""Exception types for zerogkit errors."""

from enum import Enum


class ErrorKind(str, Enum):
    """The four failure kinds that escape to callers."""

    CONFIGURATION = "configuration"
    NETWORK = "network"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    VALIDATION = "validation"


class ZeroGError(Exception):
    """Base exception for zerogkit"""

    kind: ErrorKind = ErrorKind.NETWORK

    def __init__(self, message, cause=None, status_code=None):
        self.message = message
        self.cause = cause
        self.status_code = status_code
        super().__init__(self.message)

    def __str__(self):
        if self.status_code is not None:
            return f"{self.message} (Status code: {self.status_code})"
        return self.message


class ConfigurationError(ZeroGError):
    """Raised for bad or missing configuration, or use before initialization"""

    kind = ErrorKind.CONFIGURATION


class NetworkError(ZeroGError):
    """Raised when the node, broker or an inference endpoint fails"""

    kind = ErrorKind.NETWORK

    timed_out = False


class RequestTimeoutError(NetworkError):
    """Raised when an inference request exceeds its deadline"""

    timed_out = True

    def __init__(self, message="Request timed out", timeout=None, **kwargs):
        super().__init__(message, **kwargs)
        self.timeout = timeout


class InsufficientFundsError(ZeroGError):
    """Raised when the ledger balance cannot cover the operation"""

    kind = ErrorKind.INSUFFICIENT_FUNDS


class ValidationError(ZeroGError):
    """Raised when invalid input is provided"""

    kind = ErrorKind.VALIDATION

    def __init__(self, message, field=None, **kwargs):
        super().__init__(message, **kwargs)
        self.field = field
