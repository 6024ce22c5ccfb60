from __future__ import annotations

from .client import ApiClient, parse, parse_list, unwrap
from .models import Notification, UnreadCount

BASE = "/api/notifications"


def _notifications(payload) -> list[Notification]:
    return parse_list(Notification, payload)


async def list_all(api: ApiClient, unread_only: bool = False) -> list[Notification]:
    """Every user's notifications (admin only)."""
    return _notifications(await api.get(BASE, params={"unreadOnly": unread_only}))


async def my_notifications(api: ApiClient, unread_only: bool = False) -> list[Notification]:
    return _notifications(await api.get(f"{BASE}/me", params={"unreadOnly": unread_only}))


async def unread_count(api: ApiClient) -> int:
    payload = await api.get(f"{BASE}/me/unread-count")
    return parse(UnreadCount, unwrap(payload) or {}).count


async def get_notification(api: ApiClient, notification_id: int) -> Notification:
    payload = await api.get(f"{BASE}/{notification_id}")
    return parse(Notification, unwrap(payload))


async def mark_as_read(api: ApiClient, notification_id: int) -> None:
    await api.patch(f"{BASE}/{notification_id}/read", json={})


async def mark_all_as_read(api: ApiClient) -> None:
    await api.patch(f"{BASE}/me/read-all", json={})


async def delete_notification(api: ApiClient, notification_id: int) -> None:
    await api.delete(f"{BASE}/{notification_id}")


async def admin_notifications(api: ApiClient) -> list[Notification]:
    """Notifications the current user received because an admin touched their appointments."""
    return _notifications(await api.get(f"{BASE}/me/admin-notifications"))
