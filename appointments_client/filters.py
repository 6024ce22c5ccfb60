"""In-memory filtering over collections that were fetched once.

Fine for the small lists these views show; anything bigger belongs to the
paginated ``/search`` endpoints.
"""
from __future__ import annotations
from collections import Counter
from dataclasses import dataclass, fields
from datetime import date, datetime
from typing import Callable, Iterable

from .models import (
    Appointment,
    AppointmentStatus,
    AttendanceStatus,
    DayOfWeek,
    OperatorSchedule,
    User,
)

Predicate = Callable[[Appointment], bool]

_OPEN_STATUSES = (AppointmentStatus.SCHEDULED, AppointmentStatus.IN_PROGRESS)


def _contains(needle: str, *haystack: str | None) -> bool:
    return any(needle in value.lower() for value in haystack if value)


def _search_fields(appointment: Appointment) -> tuple[str | None, ...]:
    user, operator, category = appointment.user, appointment.operator, appointment.category
    return (
        appointment.title,
        appointment.description,
        user.full_name if user else None,
        user.email if user else None,
        operator.full_name if operator else None,
        operator.email if operator else None,
        category.name if category else None,
    )


@dataclass(frozen=True)
class AppointmentFilters:
    status: str | None = None
    category_id: int | None = None
    operator_id: int | None = None
    search: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    only_pending: bool = False
    only_rated: bool = False
    only_attended: bool = False
    include_deleted: bool = False

    def predicates(self) -> list[Predicate]:
        checks: list[Predicate] = []
        if self.status and self.status != "all":
            status = AppointmentStatus(self.status)
            checks.append(lambda a: a.status is status)
        if self.category_id is not None:
            checks.append(lambda a: a.category is not None and a.category.id == self.category_id)
        if self.operator_id is not None:
            checks.append(lambda a: a.operator is not None and a.operator.id == self.operator_id)
        if self.search and self.search.strip():
            needle = self.search.strip().lower()
            checks.append(lambda a: _contains(needle, *_search_fields(a)))
        if self.start_date is not None:
            checks.append(lambda a: a.date >= self.start_date)
        if self.end_date is not None:
            checks.append(lambda a: a.date <= self.end_date)
        if self.only_pending:
            checks.append(lambda a: a.status in _OPEN_STATUSES and not a.completed_by_operator)
        if self.only_rated:
            checks.append(lambda a: bool(a.user_rating or a.operator_rating))
        if self.only_attended:
            checks.append(lambda a: a.attendance_status is AttendanceStatus.ATTENDED)
        if not self.include_deleted:
            checks.append(lambda a: not a.deleted)
        return checks

    def apply(self, appointments: Iterable[Appointment]) -> list[Appointment]:
        """Keep the appointments matching every active filter, in their input order."""
        checks = self.predicates()
        return [a for a in appointments if all(check(a) for check in checks)]

    def active_count(self) -> int:
        count = 0
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "status" and value == "all":
                continue
            if value not in (None, "", False):
                count += 1
        return count


def filter_operators(operators: Iterable[User], search: str = "", status: str = "all") -> list[User]:
    if status not in ("all", "active", "inactive"):
        raise ValueError(f"unknown operator status filter {status!r}")
    needle = search.strip().lower()
    result = []
    for op in operators:
        if needle and not _contains(needle, op.full_name, op.email):
            continue
        if status == "active" and not op.active:
            continue
        if status == "inactive" and op.active:
            continue
        result.append(op)
    return result


def pending_ratings(appointments: Iterable[Appointment], user_id: int, now: datetime | None = None) -> list[Appointment]:
    """Attended appointments of ``user_id`` that ended and still have no rating from them."""
    now = now or datetime.now()
    return [
        a for a in appointments
        if a.user is not None and a.user.id == user_id
        and a.status is AppointmentStatus.COMPLETED
        and a.attendance_status is AttendanceStatus.ATTENDED
        and not a.user_rating
        and a.ends_at < now
    ]


def group_schedules_by_day(schedules: Iterable[OperatorSchedule]) -> dict[DayOfWeek, list[OperatorSchedule]]:
    grouped: dict[DayOfWeek, list[OperatorSchedule]] = {day: [] for day in DayOfWeek}
    for schedule in schedules:
        grouped[schedule.day_of_week].append(schedule)
    for blocks in grouped.values():
        blocks.sort(key=lambda s: s.start_time)
    return grouped


def count_by_status(appointments: Iterable[Appointment]) -> dict[str, int]:
    counts = Counter(a.status.value for a in appointments)
    return {status.value: counts.get(status.value, 0) for status in AppointmentStatus}
