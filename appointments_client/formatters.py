"""Display helpers for view models. Missing values render as ``-``."""
from __future__ import annotations
from datetime import date, datetime, time

from .models import AppointmentStatus

EMPTY = "-"

STATUS_LABELS = {
    AppointmentStatus.SCHEDULED: "Scheduled",
    AppointmentStatus.IN_PROGRESS: "In progress",
    AppointmentStatus.COMPLETED: "Completed",
    AppointmentStatus.CANCELLED: "Cancelled",
    AppointmentStatus.FAILED: "Failed",
}


def _parse_date(value: date | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(value).date()


def format_date(value: date | str | None) -> str:
    if not value:
        return EMPTY
    try:
        return _parse_date(value).strftime("%d/%m/%Y")
    except ValueError:
        return EMPTY


def format_time(value: time | str | None) -> str:
    """``HH:MM``; seconds are dropped."""
    if not value:
        return EMPTY
    if isinstance(value, time):
        return value.strftime("%H:%M")
    return value[:5] if ":" in value else value


def format_datetime(value: datetime | str | None) -> str:
    if not value:
        return EMPTY
    try:
        parsed = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    except ValueError:
        return EMPTY
    return parsed.strftime("%d/%m/%Y %H:%M")


def format_duration(minutes: int | None) -> str:
    if not minutes:
        return EMPTY
    if minutes < 60:
        return f"{minutes} min"
    hours, mins = divmod(minutes, 60)
    return f"{hours} h" if mins == 0 else f"{hours} h {mins} min"


def format_rating(rating: float | None) -> str:
    if rating is None:
        return "Not rated"
    return f"{rating:.1f}"


def format_percentage(value: float | None) -> str:
    if value is None:
        return "0%"
    return f"{round(value)}%"


def truncate_text(text: str | None, max_length: int = 100) -> str:
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


def initials(full_name: str | None) -> str:
    if not full_name or not full_name.strip():
        return "U"
    names = full_name.split()
    if len(names) == 1:
        return names[0][0].upper()
    return (names[0][0] + names[-1][0]).upper()


def status_label(status: AppointmentStatus | str) -> str:
    try:
        return STATUS_LABELS[AppointmentStatus(status)]
    except ValueError:
        return str(status)


def badge_text(count: int) -> str | None:
    """Unread badge: nothing at zero, capped at ``9+``."""
    if count <= 0:
        return None
    return "9+" if count > 9 else str(count)
