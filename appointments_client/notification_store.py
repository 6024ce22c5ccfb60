"""In-memory notification list and unread counter for the current session.

Mutations call the backend first and then merge the result locally with the
``_merge_*`` functions below. When a mutation fails the store reloads from
the backend and re-raises, so local state never drifts from the server.
"""
from __future__ import annotations
import logging
from typing import Awaitable

from . import config
from . import notifications as notifications_api
from .client import ApiClient
from .errors import ApiError, AuthenticationError
from .models import Notification
from .polling import PollingTask

logger = logging.getLogger(__name__)

FILTER_MODES = ("all", "unread", "read")


def filter_notifications(items: list[Notification], mode: str = "all") -> list[Notification]:
    if mode not in FILTER_MODES:
        raise ValueError(f"unknown notification filter {mode!r}")
    if mode == "unread":
        return [n for n in items if not n.is_read]
    if mode == "read":
        return [n for n in items if n.is_read]
    return list(items)


def _merge_read(items: list[Notification], notification_id: int) -> tuple[list[Notification], bool]:
    """Mark one notification read; the flag says whether it was unread before."""
    was_unread = False
    merged = []
    for n in items:
        if n.id == notification_id:
            was_unread = was_unread or not n.is_read
            n = n.model_copy(update={"is_read": True})
        merged.append(n)
    return merged, was_unread


def _merge_all_read(items: list[Notification]) -> list[Notification]:
    return [n if n.is_read else n.model_copy(update={"is_read": True}) for n in items]


def _merge_delete(items: list[Notification], notification_id: int) -> tuple[list[Notification], bool]:
    removed = [n for n in items if n.id == notification_id]
    return [n for n in items if n.id != notification_id], any(not n.is_read for n in removed)


class NotificationStore:
    def __init__(self, api: ApiClient, interval: float = config.NOTIFICATION_POLL_INTERVAL):
        self.api = api
        self.notifications: list[Notification] = []
        self.unread_count = 0
        self.poller = PollingTask(self.fetch_unread_count, interval, name="notification-poll")

    async def fetch(self) -> list[Notification]:
        self.notifications = await notifications_api.my_notifications(self.api)
        self.unread_count = sum(1 for n in self.notifications if not n.is_read)
        return self.notifications

    async def fetch_unread_count(self) -> int:
        self.unread_count = max(0, await notifications_api.unread_count(self.api))
        return self.unread_count

    async def start(self) -> None:
        try:
            await self.fetch()
        except AuthenticationError:
            return
        except ApiError as exc:
            logger.warning("Initial notification load failed: %s", exc.message)
        self.poller.start()

    async def stop(self) -> None:
        await self.poller.stop()
        self.notifications = []
        self.unread_count = 0

    def filtered(self, mode: str = "all") -> list[Notification]:
        return filter_notifications(self.notifications, mode)

    async def mark_as_read(self, notification_id: int) -> None:
        await self._mutate(notifications_api.mark_as_read(self.api, notification_id))
        self.notifications, was_unread = _merge_read(self.notifications, notification_id)
        if was_unread or not any(n.id == notification_id for n in self.notifications):
            self.unread_count = max(0, self.unread_count - 1)

    async def mark_all_as_read(self) -> None:
        await self._mutate(notifications_api.mark_all_as_read(self.api))
        self.notifications = _merge_all_read(self.notifications)
        self.unread_count = 0

    async def delete(self, notification_id: int) -> None:
        await self._mutate(notifications_api.delete_notification(self.api, notification_id))
        self.notifications, was_unread = _merge_delete(self.notifications, notification_id)
        if was_unread:
            self.unread_count = max(0, self.unread_count - 1)

    async def refresh(self) -> list[Notification]:
        return await self.fetch()

    async def _mutate(self, call: Awaitable[None]) -> None:
        try:
            await call
        except AuthenticationError:
            # session is already torn down; nothing to reload
            raise
        except ApiError:
            await self._reload_quietly()
            raise

    async def _reload_quietly(self) -> None:
        try:
            await self.fetch()
        except ApiError as exc:
            logger.warning("Reload after failed notification update also failed: %s", exc.message)
