"""Operator working-hour blocks.

Overlap detection lives in the backend: ``validate_schedule`` only forwards a
draft block and reports what the server answered.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any

from .client import ApiClient, as_message, parse, parse_list, unwrap
from .errors import ValidationError
from .models import DayOfWeek, OperatorSchedule

BASE = "/api/operator-schedules"


@dataclass
class ScheduleValidation:
    valid: bool
    message: str


def _schedules(payload: Any) -> list[OperatorSchedule]:
    return parse_list(OperatorSchedule, payload)


async def my_schedules(api: ApiClient) -> list[OperatorSchedule]:
    return _schedules(await api.get(f"{BASE}/me"))


async def operator_schedules(api: ApiClient, operator_id: int) -> list[OperatorSchedule]:
    return _schedules(await api.get(f"{BASE}/operator/{operator_id}"))


async def create_schedule(api: ApiClient, data: dict[str, Any]) -> OperatorSchedule:
    payload = await api.post(BASE, json=data)
    return parse(OperatorSchedule, unwrap(payload))


async def update_schedule(api: ApiClient, schedule_id: int, data: dict[str, Any]) -> OperatorSchedule:
    payload = await api.put(f"{BASE}/{schedule_id}", json=data)
    return parse(OperatorSchedule, unwrap(payload))


async def delete_schedule(api: ApiClient, schedule_id: int) -> None:
    await api.delete(f"{BASE}/{schedule_id}")


async def validate_schedule(api: ApiClient, data: dict[str, Any]) -> ScheduleValidation:
    """Ask the backend whether a block overlaps the operator's existing ones.

    The backend answers an invalid block either with a 400 or with a 200 whose
    envelope says ``success: false``.
    """
    try:
        payload = await api.post(f"{BASE}/validate", json=data)
    except ValidationError as exc:
        return ScheduleValidation(valid=False, message=exc.message)

    answer = as_message(payload)
    if not answer.success:
        return ScheduleValidation(valid=False, message=answer.message or "This block overlaps an existing one.")
    return ScheduleValidation(valid=True, message=answer.message or "Schedule available.")


async def check_availability(api: ApiClient, operator_id: int, day_of_week: DayOfWeek | str) -> bool:
    """Whether the operator has any working block on that day."""
    day = DayOfWeek(str(day_of_week).upper()) if not isinstance(day_of_week, DayOfWeek) else day_of_week
    payload = await api.get(f"{BASE}/availability/{operator_id}/{day.value}")
    return isinstance(payload, dict) and bool(payload.get("isWorking"))
