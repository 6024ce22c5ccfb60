"""View models: plain dicts built from fetched records, ready to render."""
from __future__ import annotations
from collections import defaultdict
from datetime import datetime
from typing import Any, Iterable

from . import formatters as fmt
from .filters import count_by_status, group_schedules_by_day
from .models import Appointment, Category, Notification, OperatorSchedule, User
from .permissions import NavEntry, appointment_actions


def user_summary(user: User | None) -> dict[str, Any] | None:
    if user is None:
        return None
    return {
        "id": user.id,
        "full_name": user.full_name,
        "email": user.email,
        "role": user.role,
        "active": user.active,
        "initials": fmt.initials(user.full_name),
        "rating": fmt.format_rating(user.average_rating) if user.average_rating else None,
    }


def appointment_row(appointment: Appointment, viewer: User | None, now: datetime | None = None) -> dict[str, Any]:
    category = appointment.category
    return {
        "id": appointment.id,
        "title": appointment.title or (category.name if category else None),
        "description": fmt.truncate_text(appointment.description),
        "date": appointment.date.isoformat(),
        "date_label": fmt.format_date(appointment.date),
        "start_time": fmt.format_time(appointment.start_time),
        "end_time": fmt.format_time(appointment.end_time),
        "duration": fmt.format_duration(appointment.duration_minutes),
        "status": appointment.status.value,
        "status_label": fmt.status_label(appointment.status),
        "attendance_status": appointment.attendance_status.value if appointment.attendance_status else None,
        "category": {"id": category.id, "name": category.name} if category else None,
        "user": user_summary(appointment.user),
        "operator": user_summary(appointment.operator),
        "deleted": appointment.deleted,
        "actions": appointment_actions(viewer, appointment, now),
    }


def appointment_detail(appointment: Appointment, viewer: User | None, now: datetime | None = None) -> dict[str, Any]:
    row = appointment_row(appointment, viewer, now)
    row.update(
        description=appointment.description or "",
        operator_observation=appointment.operator_observation,
        operator_rating=appointment.operator_rating,
        user_observation=appointment.user_observation,
        user_rating=appointment.user_rating,
        admin_observation=appointment.admin_observation,
        completed_at=fmt.format_datetime(appointment.completed_at),
        deleted_at=fmt.format_datetime(appointment.deleted_at),
        created_at=fmt.format_datetime(appointment.created_at),
        updated_at=fmt.format_datetime(appointment.updated_at),
    )
    return row


def appointment_list(appointments: Iterable[Appointment], viewer: User | None, now: datetime | None = None) -> list[dict[str, Any]]:
    return [appointment_row(a, viewer, now) for a in appointments]


def calendar(appointments: list[Appointment], viewer: User | None, now: datetime | None = None) -> dict[str, Any]:
    days: dict[str, list[dict[str, Any]]] = defaultdict(list)
    for appointment in sorted(appointments, key=lambda a: a.starts_at):
        days[appointment.date.isoformat()].append(appointment_row(appointment, viewer, now))
    return {"days": dict(days), "counts": count_by_status(appointments)}


def category_view(category: Category) -> dict[str, Any]:
    return {
        "id": category.id,
        "name": category.name,
        "description": category.description,
        "allowed_durations": [
            {"minutes": m, "label": fmt.format_duration(m)} for m in sorted(category.allowed_durations)
        ],
        "operators": [user_summary(op) for op in category.operators or []],
    }


def notification_view(notification: Notification) -> dict[str, Any]:
    return {
        "id": notification.id,
        "type": notification.type,
        "message": notification.message,
        "is_read": notification.is_read,
        "created_at": fmt.format_datetime(notification.created_at),
        "from_admin": notification.type in ("ADMIN_MODIFICATION", "ADMIN_CANCELLATION"),
    }


def schedule_week(schedules: Iterable[OperatorSchedule]) -> dict[str, list[dict[str, Any]]]:
    return {
        day.value: [
            {
                "id": block.id,
                "start_time": fmt.format_time(block.start_time),
                "end_time": fmt.format_time(block.end_time),
            }
            for block in blocks
        ]
        for day, blocks in group_schedules_by_day(schedules).items()
    }


def nav_view(entries: Iterable[NavEntry]) -> list[dict[str, Any]]:
    return [{"key": e.key, "path": e.path, "label": e.label, "badge": e.badge} for e in entries]
