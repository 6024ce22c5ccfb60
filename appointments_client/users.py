from __future__ import annotations
from typing import Any

from .client import ApiClient, as_message, parse, parse_list, unwrap
from .models import ApiMessage, Page, Role, User, UserAdminStats, UserAppointmentStats

BASE = "/api/users"


def _user(payload: Any) -> User:
    return parse(User, unwrap(payload))


def _users(payload: Any) -> list[User]:
    return parse_list(User, payload)


async def list_users(api: ApiClient) -> list[User]:
    return _users(await api.get(BASE))


async def get_user(api: ApiClient, user_id: int) -> User:
    return _user(await api.get(f"{BASE}/{user_id}"))


async def me(api: ApiClient) -> User:
    return _user(await api.get(f"{BASE}/me"))


async def create_user(api: ApiClient, data: dict[str, Any]) -> User:
    return _user(await api.post(BASE, json=data))


async def update_user(api: ApiClient, user_id: int, data: dict[str, Any]) -> User:
    return _user(await api.put(f"{BASE}/{user_id}", json=data))


async def delete_user(api: ApiClient, user_id: int) -> None:
    await api.delete(f"{BASE}/{user_id}")


async def update_email(api: ApiClient, user_id: int, new_email: str) -> User:
    return _user(await api.patch(f"{BASE}/{user_id}/email", json={"newEmail": new_email}))


async def update_password(api: ApiClient, user_id: int, current_password: str, new_password: str) -> ApiMessage:
    payload = await api.patch(
        f"{BASE}/{user_id}/password",
        json={"currentPassword": current_password, "newPassword": new_password},
    )
    return as_message(payload)


async def update_notification_preference(api: ApiClient, user_id: int, reminder_hours: int) -> User:
    """Only the reminder lead time, in hours."""
    payload = await api.patch(f"{BASE}/{user_id}/notification-preference", json={"reminderHours": reminder_hours})
    return _user(payload)


async def update_notification_preferences(api: ApiClient, user_id: int, preferences: dict[str, Any]) -> User:
    payload = await api.patch(f"{BASE}/{user_id}/notification-preferences", json=preferences)
    return _user(payload)


async def admin_stats(api: ApiClient) -> UserAdminStats:
    """User counters for the admin dashboard."""
    return parse(UserAdminStats, unwrap(await api.get(f"{BASE}/stats/admin")) or {})


async def list_operators(api: ApiClient) -> list[User]:
    """Active operators."""
    return _users(await api.get(f"{BASE}/operators"))


async def operators_by_category(api: ApiClient, category_id: int) -> list[User]:
    return _users(await api.get(f"{BASE}/operators/by-category/{category_id}"))


async def assign_categories(api: ApiClient, operator_id: int, category_ids: list[int]) -> ApiMessage:
    payload = await api.patch(f"{BASE}/{operator_id}/categories", json={"categoryIds": category_ids})
    return as_message(payload)


async def set_active(api: ApiClient, user_id: int, active: bool) -> ApiMessage:
    payload = await api.patch(f"{BASE}/{user_id}/active-status", params={"active": active})
    return as_message(payload)


async def basic_stats(api: ApiClient, user_id: int) -> UserAppointmentStats:
    return parse(UserAppointmentStats, unwrap(await api.get(f"{BASE}/{user_id}/stats")) or {})


async def change_role(api: ApiClient, user_id: int, role: Role | str) -> User:
    payload = await api.patch(f"{BASE}/{user_id}/change-role", params={"roleName": Role(role).value})
    return _user(payload)


async def create_operator(api: ApiClient, full_name: str, email: str, password: str) -> User:
    payload = await api.post(
        f"{BASE}/create-operator",
        json={"fullName": full_name, "email": email, "password": password},
    )
    return _user(payload)


async def search(
    api: ApiClient,
    filters: dict[str, Any] | None = None,
    page: int = 0,
    size: int = 10,
    sort: tuple[str, str] = ("fullName", "asc"),
) -> Page[User]:
    params = {"page": page, "size": size, "sort": ",".join(sort), **(filters or {})}
    payload = await api.get(f"{BASE}/search", params=params)
    return parse(Page[User], unwrap(payload))
