"""Typed errors surfaced by the intent pipeline."""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    TIMEOUT = "TIMEOUT"
    MODEL_ERROR = "MODEL_ERROR"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    CONTEXT_INSUFFICIENT = "CONTEXT_INSUFFICIENT"
    CACHE_ERROR = "CACHE_ERROR"
    UNKNOWN = "UNKNOWN"


SUGGESTED_ACTIONS: Dict[ErrorCode, str] = {
    ErrorCode.TIMEOUT: "Try again with a simpler command",
    ErrorCode.MODEL_ERROR: "Please try again in a moment",
    ErrorCode.VALIDATION_FAILED: "Please be more specific",
    ErrorCode.CONTEXT_INSUFFICIENT: "Please provide more context",
    ErrorCode.CACHE_ERROR: "System will retry automatically",
    ErrorCode.UNKNOWN: "Please try again or contact support",
}

RETRYABLE_CODES = frozenset({ErrorCode.TIMEOUT, ErrorCode.MODEL_ERROR, ErrorCode.CACHE_ERROR})


class IntentProcessingError(Exception):
    """Error raised to callers of the intent pipeline.

    Every instance carries a ``retryable`` flag and a human-readable
    ``suggested_action`` so callers never have to inspect raw exceptions.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        retryable: Optional[bool] = None,
        suggested_action: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
    ):
        """Initialize the error.

        Args:
            message: Human-readable error message
            code: Error code
            retryable: Override for the code's default retry policy
            suggested_action: Override for the code's default suggestion
            details: Optional diagnostic details
            correlation_id: Request correlation identifier
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.retryable = code in RETRYABLE_CODES if retryable is None else retryable
        self.suggested_action = suggested_action or SUGGESTED_ACTIONS[code]
        self.details = details or {}
        self.correlation_id = correlation_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "code": self.code.value,
            "retryable": self.retryable,
            "suggested_action": self.suggested_action,
            "correlation_id": self.correlation_id,
        }


class ModelProviderError(Exception):
    """Raised by model providers when a completion call fails."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


__all__ = [
    "ErrorCode",
    "IntentProcessingError",
    "ModelProviderError",
    "RETRYABLE_CODES",
    "SUGGESTED_ACTIONS",
]
