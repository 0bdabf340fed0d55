"""Exception taxonomy for the gateway and helpers for client-safe error messages."""

from __future__ import annotations

from typing import Any

INTERNAL_SERVER_ERROR = "Internal server error"


class GatewayError(Exception):
    """Base class for errors raised by the adapter layer."""


class UnknownProviderError(GatewayError):
    """Raised when a provider id has no registered adapter factory."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"Unknown provider: {provider}")


class MissingCredentialsError(GatewayError):
    """Raised when an upstream client cannot be built without an API key."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"API key required for {provider}")


class UnreadableResponseError(GatewayError):
    """Raised when the upstream response body cannot be read at all."""


class ProviderAPIError(GatewayError):
    """Non-2xx response from an upstream provider.

    ``error`` mirrors the JSON body's ``error`` object when the provider sent
    one, so ``extract_error_message`` can prefer the structured message.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: Any = None,
    ):
        self.status_code = status_code
        self.body = body
        self.error = body.get("error") if isinstance(body, dict) else None
        super().__init__(message)


def structured_error_message(error: Any) -> str | None:
    """Return ``error.error.message`` when the error carries one.

    Works for ``ProviderAPIError``, for openai SDK ``APIStatusError``
    instances (whose ``body`` is the decoded JSON) and for plain dicts.
    """
    candidates: list[Any] = []
    if isinstance(error, dict):
        candidates.append(error.get("error"))
    else:
        candidates.append(getattr(error, "error", None))
        body = getattr(error, "body", None)
        if isinstance(body, dict):
            candidates.append(body.get("error", body))

    for candidate in candidates:
        if isinstance(candidate, dict):
            message = candidate.get("message")
        else:
            message = getattr(candidate, "message", None)
        if isinstance(message, str) and message:
            return message
    return None


def default_error_message(error: Any) -> str:
    """Structured provider message, then the exception text, then a static fallback."""
    message = structured_error_message(error)
    if message:
        return message
    if isinstance(error, BaseException) and str(error):
        return str(error)
    return INTERNAL_SERVER_ERROR
