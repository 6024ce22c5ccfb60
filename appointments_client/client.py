"""Async client for the appointments REST backend.

One ``httpx.AsyncClient`` per ``ApiClient``; the bearer token is read from a
provider on every request so a login or logout takes effect immediately.
"""
from __future__ import annotations
import logging
from typing import Any, Awaitable, Callable, TypeVar

import httpx
import pydantic

from . import config
from .errors import ApiError, AuthenticationError, UnexpectedResponseError, classify_response, network_error
from .models import ApiMessage

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=pydantic.BaseModel)

TokenProvider = Callable[[], "str | None"]
UnauthorizedHook = Callable[[AuthenticationError], "Awaitable[None] | None"]


def unwrap(payload: Any) -> Any:
    """Return ``data`` from a ``{success, message, data}`` envelope, or the payload as is."""
    if isinstance(payload, dict) and "success" in payload and "data" in payload:
        return payload["data"] if payload["data"] is not None else payload
    return payload


def parse(model: type[M], payload: Any) -> M:
    """Validate one record, reporting a malformed answer as an ``ApiError``."""
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as exc:
        logger.warning("Unexpected %s payload: %s", model.__name__, exc.error_count())
        raise UnexpectedResponseError(data={"model": model.__name__}) from exc


def parse_list(model: type[M], payload: Any) -> list[M]:
    items = unwrap(payload) or []
    if not isinstance(items, list):
        raise UnexpectedResponseError(data={"model": model.__name__})
    return [parse(model, item) for item in items]


def as_message(payload: Any) -> ApiMessage:
    """Read an endpoint answer that is only a status message."""
    return parse(ApiMessage, payload if isinstance(payload, dict) else {})


def _clean_params(params: dict[str, Any] | None) -> dict[str, Any] | None:
    if params is None:
        return None
    cleaned = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        cleaned[key] = value
    return cleaned


class ApiClient:
    def __init__(
        self,
        base_url: str = config.API_BASE_URL,
        token_provider: TokenProvider | None = None,
        on_unauthorized: UnauthorizedHook | None = None,
        timeout: float = config.HTTP_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._token_provider = token_provider or (lambda: None)
        self._on_unauthorized = on_unauthorized
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            http2=config.HTTP2,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def _headers(self, authenticated: bool) -> dict[str, str]:
        if not authenticated:
            return {}
        token = self._token_provider()
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        authenticated: bool = True,
    ) -> Any:
        """Send one request and return the decoded JSON body (``None`` when empty)."""
        try:
            resp = await self._http.request(
                method,
                path,
                params=_clean_params(params),
                json=json,
                headers=self._headers(authenticated),
            )
        except httpx.TransportError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise network_error(exc) from exc

        if resp.is_success:
            if resp.status_code == 204 or not resp.content:
                return None
            try:
                return resp.json()
            except ValueError as exc:
                logger.warning("%s %s -> %s with a non-JSON body", method, path, resp.status_code)
                raise UnexpectedResponseError(status=resp.status_code, data={"body": resp.text[:200]}) from exc

        error = classify_response(resp, authenticated=authenticated)
        logger.info("%s %s -> %s", method, path, resp.status_code)
        if isinstance(error, AuthenticationError) and authenticated and self._on_unauthorized:
            result = self._on_unauthorized(error)
            if result is not None:
                await result
        raise error

    async def get(self, path: str, **kwargs) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> Any:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs) -> Any:
        return await self.request("PUT", path, **kwargs)

    async def patch(self, path: str, **kwargs) -> Any:
        return await self.request("PATCH", path, **kwargs)

    async def delete(self, path: str, **kwargs) -> Any:
        return await self.request("DELETE", path, **kwargs)


__all__ = ["ApiClient", "ApiError", "as_message", "parse", "parse_list", "unwrap"]
