"""Error taxonomy for backend failures.

Every failed call surfaces exactly one ``ApiError`` subclass. Nothing here
retries; callers convert the error into a message for the user.
"""
from __future__ import annotations
from typing import Any

import httpx

NETWORK_MESSAGE = "Could not reach the server. Check that the backend is running."
SESSION_EXPIRED_MESSAGE = "Your session has expired. Please log in again."
FORBIDDEN_MESSAGE = "You do not have permission to perform this action."
NOT_FOUND_MESSAGE = "Resource not found."
SERVER_MESSAGE = "Server error. Please try again later."
GENERIC_MESSAGE = "An unexpected error occurred."


class ApiError(Exception):
    """Base class for every classified backend failure."""

    default_message = GENERIC_MESSAGE

    def __init__(self, message: str | None = None, status: int = 0, data: Any = None):
        self.message = message or self.default_message
        self.status = status
        self.data = data
        super().__init__(self.message)


class NetworkError(ApiError):
    default_message = NETWORK_MESSAGE


class AuthenticationError(ApiError):
    default_message = SESSION_EXPIRED_MESSAGE


class ForbiddenError(ApiError):
    default_message = FORBIDDEN_MESSAGE


class NotFoundError(ApiError):
    default_message = NOT_FOUND_MESSAGE


class ServerError(ApiError):
    default_message = SERVER_MESSAGE


class UnexpectedResponseError(ServerError):
    """A 2xx answer whose body is not JSON or does not have the expected shape."""

    default_message = GENERIC_MESSAGE


class ValidationError(ApiError):
    """4xx other than 401/403/404; the message comes from the response body."""


class FormValidationError(Exception):
    """A form was rejected client-side before any request was sent."""

    def __init__(self, errors: dict[str, str]):
        self.errors = errors
        super().__init__("; ".join(f"{field}: {msg}" for field, msg in errors.items()))


def _body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def body_message(data: Any) -> str | None:
    """Pull a human readable message out of an error payload, if it has one."""
    if isinstance(data, dict):
        for key in ("message", "error"):
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value
    return None


def classify_response(response: httpx.Response, *, authenticated: bool = True) -> ApiError:
    """Map a non-2xx response onto the error taxonomy.

    A 401 on an unauthenticated request (wrong credentials at login) keeps the
    backend's own message instead of the session-expired one.
    """
    status = response.status_code
    data = _body(response)

    if status == 401:
        message = None if authenticated else body_message(data)
        return AuthenticationError(message, status=status, data=data)
    if status == 403:
        return ForbiddenError(status=status, data=data)
    if status == 404:
        return NotFoundError(status=status, data=data)
    if status >= 500:
        return ServerError(status=status, data=data)
    return ValidationError(body_message(data), status=status, data=data)


def network_error(exc: httpx.TransportError) -> NetworkError:
    return NetworkError(data={"reason": str(exc) or exc.__class__.__name__})
