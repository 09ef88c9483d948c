"""
DataForSEO Errors

Status codes, error classification and the step-error record stored
alongside audit step results.
"""

import enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional


STATUS_CODES = {
    "SUCCESS": 20000,
    "SUCCESS_PARTIAL": 20100,
    "CLIENT_ERROR": 40000,
    "PAYMENT_REQUIRED": 40200,
    "RATE_LIMIT_EXCEEDED": 40202,
    "NOT_FOUND": 40400,
    "INVALID_FIELD": 40501,
    "INVALID_REQUEST": 40001,
    "AUTH_ERROR": 40100,
    "INTERNAL_ERROR": 50000,
}

SUCCESS_CODES = (STATUS_CODES["SUCCESS"], STATUS_CODES["SUCCESS_PARTIAL"])

_STATUS_NAMES = {code: name for name, code in STATUS_CODES.items()}


def describe_status(status_code: Optional[int]) -> str:
    """Readable label for a DataForSEO status code, e.g. "INVALID_FIELD (40501)"."""
    name = _STATUS_NAMES.get(status_code, "UNKNOWN")
    return f"{name} ({status_code})"


class ErrorCategory(str, enum.Enum):
    """How a failed call should be handled."""
    RETRYABLE = "retryable"  # rate limit, timeout, 5xx
    PERMANENT = "permanent"  # auth, invalid input
    QUOTA = "quota"  # account balance, needs user action
    PARTIAL = "partial"  # some tasks failed


class DataForSEOError(Exception):
    """Custom exception for DataForSEO API errors."""
    def __init__(self, message: str, status_code: int = None, response: dict = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response

    @property
    def category(self) -> ErrorCategory:
        return classify_error(self, self.status_code)

    @property
    def retryable(self) -> bool:
        return self.category == ErrorCategory.RETRYABLE

    def is_rate_limit_error(self) -> bool:
        return self.status_code in (STATUS_CODES["RATE_LIMIT_EXCEEDED"], 429)

    def is_payment_error(self) -> bool:
        return self.status_code in (STATUS_CODES["PAYMENT_REQUIRED"], 402)


RATE_LIMIT_PATTERNS = ("rate limit", "too many requests", "429")
QUOTA_PATTERNS = ("payment", "quota", "balance", "insufficient", "402")
AUTH_PATTERNS = ("unauthorized", "authentication", "invalid credentials", "401")
INVALID_PATTERNS = ("invalid", "malformed", "bad request", "not found", "does not exist")
NETWORK_PATTERNS = ("timeout", "timed out", "network", "econnreset", "econnrefused", "socket")
SERVER_PATTERNS = ("500", "502", "503", "504", "internal server", "service unavailable")


def _classify_status(status_code: int) -> Optional[ErrorCategory]:
    if 20000 <= status_code < 30000:
        if status_code == STATUS_CODES["SUCCESS_PARTIAL"]:
            return ErrorCategory.PARTIAL
        return ErrorCategory.RETRYABLE

    if status_code == STATUS_CODES["RATE_LIMIT_EXCEEDED"]:
        return ErrorCategory.RETRYABLE
    if status_code == STATUS_CODES["PAYMENT_REQUIRED"]:
        return ErrorCategory.QUOTA
    if status_code == STATUS_CODES["AUTH_ERROR"]:
        return ErrorCategory.PERMANENT
    if 40000 <= status_code < 40200:
        return ErrorCategory.PERMANENT
    if status_code >= 50000:
        return ErrorCategory.RETRYABLE

    return None


def _error_message(error: Any) -> str:
    if isinstance(error, BaseException):
        return str(error)
    if isinstance(error, dict) and "message" in error:
        return str(error["message"])
    return str(error)


def classify_error(error: Any, status_code: Optional[int] = None) -> ErrorCategory:
    """
    Classify an error to decide whether it is worth retrying.

    The API status code wins when it is known; otherwise the message
    is matched against known patterns. Unknown errors are treated as
    retryable.
    """
    if status_code is not None:
        category = _classify_status(status_code)
        if category is not None:
            return category

    message = _error_message(error).lower()

    if any(p in message for p in RATE_LIMIT_PATTERNS):
        return ErrorCategory.RETRYABLE
    if any(p in message for p in QUOTA_PATTERNS):
        return ErrorCategory.QUOTA
    if any(p in message for p in AUTH_PATTERNS):
        return ErrorCategory.PERMANENT
    if any(p in message for p in INVALID_PATTERNS):
        return ErrorCategory.PERMANENT
    if any(p in message for p in NETWORK_PATTERNS):
        return ErrorCategory.RETRYABLE
    if any(p in message for p in SERVER_PATTERNS):
        return ErrorCategory.RETRYABLE

    return ErrorCategory.RETRYABLE


def create_step_error(error: Any, status_code: Optional[int] = None) -> Dict[str, Any]:
    """Build the JSON-serializable error record saved for a failed audit step."""
    code = status_code
    http_code = None
    if isinstance(error, DataForSEOError):
        code = code if code is not None else error.status_code
    elif isinstance(error, dict):
        code = code if code is not None else error.get("code")
        http_code = error.get("http_code")

    category = classify_error(error, code)

    return {
        "message": _error_message(error),
        "category": category.value,
        "code": code,
        "httpCode": http_code,
        "retryable": category == ErrorCategory.RETRYABLE,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
