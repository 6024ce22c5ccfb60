from __future__ import annotations
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class Role(str, Enum):
    ADMIN = "ADMIN"
    OPERARIO = "OPERARIO"
    USUARIO = "USUARIO"


class AppointmentStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


class AttendanceStatus(str, Enum):
    PENDING = "PENDING"
    ATTENDED = "ATTENDED"
    NOT_ATTENDED = "NOT_ATTENDED"


class NotificationType(str, Enum):
    SYSTEM = "SYSTEM"
    ADMIN_MODIFICATION = "ADMIN_MODIFICATION"
    ADMIN_CANCELLATION = "ADMIN_CANCELLATION"
    REMINDER_DAY = "REMINDER_DAY"
    REMINDER_HOUR = "REMINDER_HOUR"
    OPERATOR_ASSIGNED = "OPERATOR_ASSIGNED"
    OPERATOR_CHANGED = "OPERATOR_CHANGED"
    COMPLETION_REQUIRED = "COMPLETION_REQUIRED"
    RATING_RECEIVED = "RATING_RECEIVED"


class DayOfWeek(str, Enum):
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"


class DateRange(str, Enum):
    """Predefined periods accepted by the dashboard statistics endpoint."""
    LAST_7_DAYS = "7d"
    LAST_30_DAYS = "30d"
    LAST_6_MONTHS = "6m"
    LAST_YEAR = "1y"
    CUSTOM = "custom"


class ApiModel(BaseModel):
    """Backend records use camelCase keys; unknown keys are kept as extras."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class User(ApiModel):
    id: int
    full_name: str | None = None
    email: str | None = None
    # role is kept as a plain string; unknown roles simply get no capabilities
    role: str | None = None
    active: bool | None = None
    reminder_hours: int | None = None
    average_rating: float | None = None
    total_appointments: int | None = None
    attended_appointments: int | None = None
    failed_appointments: int | None = None
    total_ratings: int | None = None
    email_notifications_enabled: bool | None = None
    in_app_notifications_enabled: bool | None = None
    reminder_day_before_enabled: bool | None = None
    reminder_hours_before_enabled: bool | None = None
    notification_types_enabled: list[str] | None = None
    created_at: datetime | None = None

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, value: Any) -> Any:
        # older endpoints send the role as {"name": "admin"}
        if isinstance(value, dict):
            value = value.get("name")
        return value.strip().upper() if isinstance(value, str) else value


class Category(ApiModel):
    id: int
    name: str
    description: str | None = None
    allowed_durations: list[int] = Field(default_factory=list)
    operators: list[User] | None = None


class Appointment(ApiModel):
    id: int
    title: str | None = None
    description: str | None = None
    date: date
    start_time: time
    end_time: time | None = None
    duration_minutes: int | None = None
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    attendance_status: AttendanceStatus | None = None
    user: User | None = None
    operator: User | None = None
    category: Category | None = None
    operator_observation: str | None = None
    operator_rating: int | None = None
    user_observation: str | None = None
    user_rating: int | None = None
    admin_observation: str | None = None
    completed_by_operator: bool | None = None
    completed_at: datetime | None = None
    deleted: bool = False
    cancelled_by: Any = None
    deleted_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.date, self.start_time)

    @property
    def ends_at(self) -> datetime:
        return datetime.combine(self.date, self.end_time or self.start_time)


class Notification(ApiModel):
    id: int
    type: str = NotificationType.SYSTEM.value
    message: str = ""
    is_read: bool = False
    created_at: datetime | None = None
    related_appointment: Any = None


class OperatorSchedule(ApiModel):
    id: int | None = None
    operator_id: int | None = None
    day_of_week: DayOfWeek
    start_time: time
    end_time: time
    active: bool | None = None


class AuthResult(ApiModel):
    token: str
    user_id: int
    email: str
    full_name: str | None = None
    role: str

    def to_user(self) -> User:
        return User(id=self.user_id, email=self.email, full_name=self.full_name, role=self.role)


class ApiMessage(ApiModel):
    """The backend's ``{success, message, data}`` envelope."""
    success: bool = True
    message: str | None = None
    data: Any = None


class UnreadCount(ApiModel):
    count: int = 0


class DashboardStats(ApiModel):
    total_appointments: int = 0
    scheduled_appointments: int = 0
    completed_appointments: int = 0
    cancelled_appointments: int = 0
    failed_appointments: int = 0
    completion_rate: float | None = None
    attendance_rate: float | None = None
    average_rating: float | None = None
    total_users: int | None = None
    total_operators: int | None = None
    active_users: int | None = None
    appointments_by_category: dict[str, int] = Field(default_factory=dict)
    appointments_by_operator: dict[str, int] = Field(default_factory=dict)
    appointments_by_day: dict[str, int] = Field(default_factory=dict)


class OperatorStats(ApiModel):
    total_appointments: int = 0
    completed_appointments: int = 0
    failed_appointments: int = 0
    average_rating: float = 0.0
    user_failure_rate: float = 0.0


class UserAppointmentStats(ApiModel):
    total_appointments: int = 0
    attended_appointments: int = 0
    failed_appointments: int = 0
    failure_rate: float = 0.0
    average_rating: float = 0.0


class UserAdminStats(ApiModel):
    total_users: int = 0
    regular_users: int = 0
    admins: int = 0


class Page(ApiModel, Generic[T]):
    content: list[T] = Field(default_factory=list)
    total_elements: int = 0
    total_pages: int = 0
    number: int = 0
    size: int = 10
