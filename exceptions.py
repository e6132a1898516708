from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Machine-readable failure categories used by the retry policy."""

    CONFIG_ERROR = "CONFIG_ERROR"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    TOKEN_LIMIT = "TOKEN_LIMIT"
    TIMEOUT = "TIMEOUT"
    SCHEMA_VALIDATION = "SCHEMA_VALIDATION"
    NOT_IMPLEMENTED = "NOT_IMPLEMENTED"
    CANCELLED = "CANCELLED"


class LLMError(Exception):
    """Base exception for generation related errors."""

    kind: ErrorKind = ErrorKind.PROVIDER_ERROR

    def __init__(self, message: str = "", *, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class ConfigError(LLMError):
    """Raised when settings are invalid or a provider is misconfigured."""

    kind = ErrorKind.CONFIG_ERROR


class ProviderError(LLMError):
    """Raised when a provider call fails or is rejected."""


class RateLimitError(ProviderError):
    """Raised when the provider or the local limiter refuses a request."""

    kind = ErrorKind.RATE_LIMIT_EXCEEDED


class TokenLimitError(ProviderError):
    """Raised when the request exceeds the allowed token limit."""

    kind = ErrorKind.TOKEN_LIMIT


class GenerationTimeoutError(LLMError, TimeoutError):
    """Raised when a call exceeds its configured time budget."""

    kind = ErrorKind.TIMEOUT


class SchemaValidationError(LLMError):
    """Raised when provider output does not match the requested schema."""

    kind = ErrorKind.SCHEMA_VALIDATION


class ProviderNotImplementedError(LLMError, NotImplementedError):
    """Raised by stub providers that have no backend yet."""

    kind = ErrorKind.NOT_IMPLEMENTED
