"""Client-side form checks, run before anything is sent to the backend.

They mirror a subset of what the backend validates, so a rejected form costs
no request. ``validate_form`` returns field-level messages instead of raising.
"""
from __future__ import annotations
import re
from datetime import date, datetime, time, timedelta
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import FormValidationError
from .models import DayOfWeek, Role

F = TypeVar("F", bound="Form")

REQUIRED = "This field is required."
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_SCHEDULE_HOURS = 12
REMINDER_HOURS = range(1, 7)


def _min_length(value: str, length: int, label: str) -> str:
    if len(value) < length:
        raise ValueError(f"{label} must be at least {length} characters long.")
    return value


def _email(value: str) -> str:
    if not EMAIL_RE.match(value):
        raise ValueError("Enter a valid email address.")
    return value.lower()


def _rating(value: int | None) -> int | None:
    if value is not None and not 1 <= value <= 5:
        raise ValueError("Rating must be between 1 and 5.")
    return value


def _context(info: ValidationInfo) -> dict[str, Any]:
    return info.context or {}


class Form(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")


def _clean(data: dict[str, Any]) -> dict[str, Any]:
    """Blank inputs count as missing."""
    return {k: v for k, v in data.items() if v is not None and not (isinstance(v, str) and not v.strip())}


def _field_errors(exc: PydanticValidationError) -> dict[str, str]:
    errors: dict[str, str] = {}
    for err in exc.errors():
        field = str(err["loc"][0]) if err["loc"] else "__all__"
        if err["type"] == "missing":
            message = REQUIRED
        else:
            message = err["msg"].removeprefix("Value error, ")
        errors.setdefault(field, message)
    return errors


def validate_form(form_cls: type[F], data: dict[str, Any], **context: Any) -> tuple[F | None, dict[str, str]]:
    """Return ``(form, {})`` when valid, otherwise ``(None, {field: message})``."""
    try:
        return form_cls.model_validate(_clean(data), context=context), {}
    except PydanticValidationError as exc:
        return None, _field_errors(exc)


def require_valid(form_cls: type[F], data: dict[str, Any], **context: Any) -> F:
    form, errors = validate_form(form_cls, data, **context)
    if errors:
        raise FormValidationError(errors)
    return form


class LoginForm(Form):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        return _email(value)


class RegisterForm(Form):
    full_name: str
    email: str
    password: str

    @field_validator("full_name")
    @classmethod
    def check_name(cls, value: str) -> str:
        return _min_length(value, 3, "Full name")

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        return _email(value)

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str) -> str:
        return _min_length(value, 6, "Password")


class AppointmentForm(Form):
    """Booking form. Pass ``allowed_durations`` (and optionally ``today``) as validation context."""

    category_id: int
    date: date
    start_time: time
    duration_minutes: int
    auto_assign: bool = False
    operator_id: int | None = Field(default=None, validate_default=True)
    title: str | None = None
    description: str | None = None
    user_id: int | None = None

    @field_validator("date")
    @classmethod
    def not_in_the_past(cls, value: date, info: ValidationInfo) -> date:
        today = _context(info).get("today") or date.today()
        if value < today:
            raise ValueError("The date cannot be in the past.")
        return value

    @field_validator("duration_minutes")
    @classmethod
    def allowed_duration(cls, value: int, info: ValidationInfo) -> int:
        if value <= 0:
            raise ValueError("Duration must be a positive number of minutes.")
        allowed = _context(info).get("allowed_durations")
        if allowed and value not in allowed:
            raise ValueError("Choose one of the durations allowed for this category.")
        return value

    @field_validator("operator_id")
    @classmethod
    def operator_or_auto(cls, value: int | None, info: ValidationInfo) -> int | None:
        if info.data.get("auto_assign"):
            return None
        if value is None:
            raise ValueError("Choose an operator or let the system assign one.")
        return value

    @property
    def end_time(self) -> time:
        return (datetime.combine(self.date, self.start_time) + timedelta(minutes=self.duration_minutes)).time()

    def to_payload(self, category_name: str | None = None) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "categoryId": self.category_id,
            "operatorId": None if self.auto_assign else self.operator_id,
            "title": self.title or category_name or "Appointment",
            "description": self.description or "",
            "date": self.date.isoformat(),
            "startTime": self.start_time.strftime("%H:%M"),
            "endTime": self.end_time.strftime("%H:%M"),
            "durationMinutes": self.duration_minutes,
        }


class CategoryForm(Form):
    name: str
    description: str | None = None
    allowed_durations: list[int] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str:
        return _min_length(value, 3, "Name")

    @field_validator("allowed_durations")
    @classmethod
    def positive_durations(cls, value: list[int]) -> list[int]:
        if any(minutes <= 0 for minutes in value):
            raise ValueError("Durations must be positive numbers of minutes.")
        return sorted(set(value))

    def to_payload(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description, "allowedDurations": self.allowed_durations}


class UserForm(Form):
    """Admin user form. Pass ``editing=True`` as context when updating an existing user."""

    full_name: str
    email: str
    password: str | None = Field(default=None, validate_default=True)
    role: Role | None = None
    active: bool | None = None

    @field_validator("full_name")
    @classmethod
    def check_name(cls, value: str) -> str:
        return _min_length(value, 3, "Full name")

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        return _email(value)

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str | None, info: ValidationInfo) -> str | None:
        if value is None:
            if _context(info).get("editing"):
                return None
            raise ValueError(REQUIRED)
        return _min_length(value, 6, "Password")

    def to_payload(self) -> dict[str, Any]:
        payload = {"fullName": self.full_name, "email": self.email, "password": self.password, "active": self.active}
        if self.role is not None:
            payload["role"] = self.role.value
        return {k: v for k, v in payload.items() if v is not None}


class ScheduleForm(Form):
    day_of_week: DayOfWeek
    start_time: time
    end_time: time

    @field_validator("day_of_week", mode="before")
    @classmethod
    def upper_day(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @field_validator("end_time")
    @classmethod
    def check_span(cls, value: time, info: ValidationInfo) -> time:
        start = info.data.get("start_time")
        if start is None:
            return value
        if value <= start:
            raise ValueError("End time must be after start time.")
        span = datetime.combine(date.min, value) - datetime.combine(date.min, start)
        if span > timedelta(hours=MAX_SCHEDULE_HOURS):
            raise ValueError(f"A working block cannot be longer than {MAX_SCHEDULE_HOURS} hours.")
        return value

    def to_payload(self, operator_id: int | None = None, schedule_id: int | None = None) -> dict[str, Any]:
        payload = {
            "dayOfWeek": self.day_of_week.value,
            "startTime": self.start_time.strftime("%H:%M"),
            "endTime": self.end_time.strftime("%H:%M"),
        }
        if operator_id is not None:
            payload["operatorId"] = operator_id
        if schedule_id is not None:
            # lets the backend skip the block being edited when checking overlaps
            payload["id"] = schedule_id
        return payload


class CompleteAppointmentForm(Form):
    attended: bool = True
    observation: str
    rating: int | None = None

    @field_validator("observation")
    @classmethod
    def check_observation(cls, value: str) -> str:
        return _min_length(value, 10, "Observation")

    @field_validator("rating")
    @classmethod
    def check_rating(cls, value: int | None) -> int | None:
        return _rating(value)


class RateOperatorForm(Form):
    rating: int
    observation: str | None = None

    @field_validator("rating")
    @classmethod
    def check_rating(cls, value: int) -> int:
        return _rating(value)


class ObservationForm(Form):
    """Cancellation by an operator, or an admin edit/delete of someone else's appointment."""

    observation: str


class EmailChangeForm(Form):
    new_email: str

    @field_validator("new_email")
    @classmethod
    def check_email(cls, value: str) -> str:
        return _email(value)


class PasswordChangeForm(Form):
    current_password: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def check_new(cls, value: str, info: ValidationInfo) -> str:
        _min_length(value, 6, "Password")
        if value == info.data.get("current_password"):
            raise ValueError("The new password must be different from the current one.")
        return value


class NotificationPreferencesForm(Form):
    reminder_hours: int | None = None
    email_notifications_enabled: bool | None = None
    in_app_notifications_enabled: bool | None = None
    reminder_day_before_enabled: bool | None = None
    reminder_hours_before_enabled: bool | None = None
    notification_types_enabled: list[str] | None = None

    @field_validator("reminder_hours")
    @classmethod
    def check_hours(cls, value: int | None) -> int | None:
        if value is not None and value not in REMINDER_HOURS:
            raise ValueError("Reminders can be sent between 1 and 6 hours before.")
        return value

    def to_payload(self) -> dict[str, Any]:
        camel = {
            "reminder_hours": "reminderHours",
            "email_notifications_enabled": "emailNotificationsEnabled",
            "in_app_notifications_enabled": "inAppNotificationsEnabled",
            "reminder_day_before_enabled": "reminderDayBeforeEnabled",
            "reminder_hours_before_enabled": "reminderHoursBeforeEnabled",
            "notification_types_enabled": "notificationTypesEnabled",
        }
        return {camel[k]: v for k, v in self.model_dump(exclude_none=True).items()}
