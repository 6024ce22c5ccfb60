"""Appointment endpoints, including the availability lookup used by the booking form."""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, time
from typing import Any

from .client import ApiClient, parse, parse_list, unwrap
from .models import (
    Appointment,
    DashboardStats,
    DateRange,
    OperatorStats,
    Page,
    User,
    UserAppointmentStats,
)

BASE = "/api/appointments"


def _iso(value: date | time | str | None) -> str | None:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, time):
        return value.strftime("%H:%M")
    return value.isoformat()


def _appointments(payload: Any) -> list[Appointment]:
    return parse_list(Appointment, payload)


async def list_appointments(api: ApiClient, include_deleted: bool = False) -> list[Appointment]:
    """Appointments visible to the current user (the backend scopes them by role)."""
    payload = await api.get(BASE, params={"includeDeleted": include_deleted})
    return _appointments(payload)


async def upcoming(api: ApiClient) -> list[Appointment]:
    """Appointments in the next seven days."""
    return _appointments(await api.get(f"{BASE}/upcoming"))


async def get_appointment(api: ApiClient, appointment_id: int) -> Appointment:
    payload = await api.get(f"{BASE}/{appointment_id}")
    return parse(Appointment, unwrap(payload))


async def create_appointment(api: ApiClient, data: dict[str, Any]) -> Appointment:
    payload = await api.post(BASE, json=data)
    return parse(Appointment, unwrap(payload))


async def update_appointment(api: ApiClient, appointment_id: int, data: dict[str, Any]) -> Appointment:
    payload = await api.put(f"{BASE}/{appointment_id}", json=data)
    return parse(Appointment, unwrap(payload))


async def update_by_admin(
    api: ApiClient, appointment_id: int, data: dict[str, Any], admin_observation: str
) -> Appointment:
    """Admin edit of someone else's appointment; the observation is sent to its owner."""
    body = {"appointment": data, "adminObservation": admin_observation}
    payload = await api.put(f"{BASE}/{appointment_id}/admin", json=body)
    return parse(Appointment, unwrap(payload))


async def delete_appointment(api: ApiClient, appointment_id: int) -> None:
    """Soft delete."""
    await api.delete(f"{BASE}/{appointment_id}")


async def delete_by_admin(api: ApiClient, appointment_id: int, admin_observation: str) -> None:
    await api.request("DELETE", f"{BASE}/{appointment_id}/admin", json={"adminObservation": admin_observation})


async def complete_appointment(
    api: ApiClient,
    appointment_id: int,
    attended: bool,
    observation: str,
    rating: int | None = None,
) -> Appointment:
    body = {"attended": attended, "operatorObservation": observation, "operatorRating": rating}
    payload = await api.post(f"{BASE}/{appointment_id}/complete", json=body)
    return parse(Appointment, unwrap(payload))


async def cancel_appointment(api: ApiClient, appointment_id: int, observation: str) -> Appointment:
    """Operator cancellation with a mandatory observation."""
    payload = await api.post(f"{BASE}/{appointment_id}/cancel", json={"observation": observation})
    return parse(Appointment, unwrap(payload))


async def rate_operator(
    api: ApiClient, appointment_id: int, rating: int, observation: str | None = None
) -> Appointment:
    payload = await api.patch(
        f"{BASE}/{appointment_id}/rate-operator", json={"rating": rating, "observation": observation}
    )
    return parse(Appointment, unwrap(payload))


async def pending_completion(api: ApiClient) -> list[Appointment]:
    """Past appointments the current operator still has to close."""
    return _appointments(await api.get(f"{BASE}/pending-completion"))


async def available_operators(
    api: ApiClient,
    category_id: int,
    on_date: date | str,
    start_time: time | str,
    duration_minutes: int,
) -> list[User]:
    """Operators of the category free for the whole slot. Overlap checks happen server-side."""
    params = {
        "categoryId": category_id,
        "date": _iso(on_date),
        "startTime": _iso(start_time),
        "durationMinutes": duration_minutes,
    }
    payload = await api.get(f"{BASE}/available-operators", params=params)
    return parse_list(User, payload)


@dataclass
class OperatorChoice:
    operators: list[User] = field(default_factory=list)
    auto_assign: bool = False


async def resolve_operator_choice(
    api: ApiClient,
    category_id: int,
    on_date: date | str,
    start_time: time | str,
    duration_minutes: int,
) -> OperatorChoice:
    """Available operators for a slot; auto-assign becomes the default when there are none."""
    operators = await available_operators(api, category_id, on_date, start_time, duration_minutes)
    return OperatorChoice(operators=operators, auto_assign=not operators)


async def by_operator(api: ApiClient, operator_id: int, include_deleted: bool = False) -> list[Appointment]:
    payload = await api.get(f"{BASE}/operator/{operator_id}", params={"includeDeleted": include_deleted})
    return _appointments(payload)


async def operator_stats(
    api: ApiClient, operator_id: int, start_date: date | None = None, end_date: date | None = None
) -> OperatorStats:
    params = {"startDate": _iso(start_date), "endDate": _iso(end_date)}
    payload = await api.get(f"{BASE}/operator-stats/{operator_id}", params=params)
    return parse(OperatorStats, unwrap(payload))


async def user_stats(
    api: ApiClient, user_id: int, start_date: date | None = None, end_date: date | None = None
) -> UserAppointmentStats:
    params = {"startDate": _iso(start_date), "endDate": _iso(end_date)}
    payload = await api.get(f"{BASE}/user-stats/{user_id}", params=params)
    return parse(UserAppointmentStats, unwrap(payload))


async def search(
    api: ApiClient,
    filters: dict[str, Any] | None = None,
    page: int = 0,
    size: int = 10,
    sort: tuple[str, str] = ("date", "desc"),
) -> Page[Appointment]:
    """Server-side filtered and paginated search."""
    params = {"page": page, "size": size, "sort": ",".join(sort), **(filters or {})}
    payload = await api.get(f"{BASE}/search", params=params)
    return parse(Page[Appointment], unwrap(payload))


async def dashboard_stats(
    api: ApiClient,
    period: DateRange | str = DateRange.LAST_30_DAYS,
    custom_start: date | None = None,
    custom_end: date | None = None,
) -> DashboardStats:
    period = DateRange(period)
    if period is DateRange.CUSTOM and (custom_start is None or custom_end is None):
        raise ValueError("a custom period needs both custom_start and custom_end")
    params = {"period": period.value, "customStart": _iso(custom_start), "customEnd": _iso(custom_end)}
    payload = await api.get(f"{BASE}/dashboard/stats", params=params)
    return parse(DashboardStats, unwrap(payload))
