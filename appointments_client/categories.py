from __future__ import annotations
from typing import Any

from .client import ApiClient, as_message, parse, parse_list, unwrap
from .models import ApiMessage, Category, User


async def list_categories(api: ApiClient) -> list[Category]:
    payload = await api.get("/api/categories")
    return parse_list(Category, payload)


async def get_category(api: ApiClient, category_id: int) -> Category:
    payload = await api.get(f"/api/categories/{category_id}")
    return parse(Category, unwrap(payload))


async def create_category(api: ApiClient, data: dict[str, Any]) -> Category:
    payload = await api.post("/api/categories", json=data)
    return parse(Category, unwrap(payload))


async def update_category(api: ApiClient, category_id: int, data: dict[str, Any]) -> Category:
    payload = await api.put(f"/api/categories/{category_id}", json=data)
    return parse(Category, unwrap(payload))


async def delete_category(api: ApiClient, category_id: int) -> None:
    await api.delete(f"/api/categories/{category_id}")


async def update_durations(api: ApiClient, category_id: int, durations: list[int]) -> Category:
    payload = await api.patch(f"/api/categories/{category_id}/durations", json={"allowedDurations": durations})
    return parse(Category, unwrap(payload))


async def get_durations(api: ApiClient, category_id: int) -> list[int]:
    """Allowed appointment lengths in minutes, as configured by an admin."""
    payload = await api.get(f"/api/categories/{category_id}/durations")
    return [int(minutes) for minutes in unwrap(payload) or []]


async def assign_operators(api: ApiClient, category_id: int, operator_ids: list[int]) -> ApiMessage:
    # the backend reuses its categoryIds request body for this endpoint
    payload = await api.patch(f"/api/categories/{category_id}/operators", json={"categoryIds": operator_ids})
    return as_message(payload)


async def get_operators(api: ApiClient, category_id: int) -> list[User]:
    payload = await api.get(f"/api/categories/{category_id}/operators")
    return parse_list(User, payload)
