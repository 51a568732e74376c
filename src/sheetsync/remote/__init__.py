from .breaker import CircuitBreaker
from .guard import QuotaGuard
from .quota import QuotaWindow
from .retries import (
    RetryLoop,
    RetryPolicy,
    RetryState,
    compute_backoff,
    is_transient,
    should_retry,
)
from .spreadsheets import SpreadsheetAPI, a1_sheet_range
from .transport import AsyncTransport

__all__ = [
    "AsyncTransport",
    "CircuitBreaker",
    "QuotaGuard",
    "QuotaWindow",
    "RetryLoop",
    "RetryPolicy",
    "RetryState",
    "SpreadsheetAPI",
    "a1_sheet_range",
    "compute_backoff",
    "is_transient",
    "should_retry",
]
