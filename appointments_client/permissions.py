"""What each role may see and do.

Every view asks ``capabilities()``; nothing else compares role names. These
checks are advisory: the backend remains the authority and answers 403 when
a request is not allowed.
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .formatters import badge_text
from .models import Appointment, AppointmentStatus, AttendanceStatus, Role, User


class Capability(str, Enum):
    VIEW_DASHBOARD = "view_dashboard"
    VIEW_APPOINTMENTS = "view_appointments"
    VIEW_CALENDAR = "view_calendar"
    VIEW_NOTIFICATIONS = "view_notifications"
    VIEW_PROFILE = "view_profile"
    BOOK_APPOINTMENTS = "book_appointments"
    MANAGE_SCHEDULE = "manage_schedule"
    VIEW_STATS = "view_stats"
    MANAGE_CATEGORIES = "manage_categories"
    MANAGE_USERS = "manage_users"
    MANAGE_OPERATORS = "manage_operators"
    MANAGE_ALL_APPOINTMENTS = "manage_all_appointments"
    COMPLETE_APPOINTMENTS = "complete_appointments"
    RATE_OPERATORS = "rate_operators"


_COMMON = frozenset({
    Capability.VIEW_DASHBOARD,
    Capability.VIEW_APPOINTMENTS,
    Capability.VIEW_CALENDAR,
    Capability.VIEW_NOTIFICATIONS,
    Capability.VIEW_PROFILE,
    Capability.BOOK_APPOINTMENTS,
})

_BY_ROLE: dict[Role, frozenset[Capability]] = {
    Role.ADMIN: _COMMON | {
        Capability.VIEW_STATS,
        Capability.MANAGE_CATEGORIES,
        Capability.MANAGE_USERS,
        Capability.MANAGE_OPERATORS,
        Capability.MANAGE_ALL_APPOINTMENTS,
    },
    Role.OPERARIO: _COMMON | {
        Capability.MANAGE_SCHEDULE,
        Capability.VIEW_STATS,
        Capability.COMPLETE_APPOINTMENTS,
    },
    Role.USUARIO: _COMMON | {Capability.RATE_OPERATORS},
}


def as_role(role: Role | str | None) -> Role | None:
    if role is None or isinstance(role, Role):
        return role
    try:
        return Role(role.strip().upper())
    except ValueError:
        return None


def capabilities(role: Role | str | None) -> frozenset[Capability]:
    """All capabilities granted to a role; anonymous and unknown roles get none."""
    resolved = as_role(role)
    return _BY_ROLE.get(resolved, frozenset()) if resolved else frozenset()


def has(role: Role | str | None, capability: Capability) -> bool:
    return capability in capabilities(role)


@dataclass(frozen=True)
class NavEntry:
    key: str
    path: str
    label: str
    requires: Capability
    badge: str | None = None


NAV_ENTRIES = (
    NavEntry("dashboard", "/dashboard", "Dashboard", Capability.VIEW_DASHBOARD),
    NavEntry("appointments", "/appointments", "Appointments", Capability.VIEW_APPOINTMENTS),
    NavEntry("calendar", "/calendar", "Calendar", Capability.VIEW_CALENDAR),
    NavEntry("notifications", "/notifications", "Notifications", Capability.VIEW_NOTIFICATIONS),
    NavEntry("schedule", "/schedule", "Schedule", Capability.MANAGE_SCHEDULE),
    NavEntry("categories", "/categories", "Categories", Capability.MANAGE_CATEGORIES),
    NavEntry("users", "/users", "Users", Capability.MANAGE_USERS),
    NavEntry("operators", "/operators", "Operators", Capability.MANAGE_OPERATORS),
    NavEntry("stats", "/stats", "Stats", Capability.VIEW_STATS),
    NavEntry("profile", "/profile", "Profile", Capability.VIEW_PROFILE),
)

ROUTE_CAPABILITIES = {entry.path: entry.requires for entry in NAV_ENTRIES}
ROUTE_CAPABILITIES["/appointments/create"] = Capability.BOOK_APPOINTMENTS

LOGIN_PATH = "/login"
HOME_PATH = "/dashboard"


def navigation(role: Role | str | None, unread_count: int = 0) -> list[NavEntry]:
    """Navigation entries visible to ``role``, in menu order."""
    granted = capabilities(role)
    entries = []
    for entry in NAV_ENTRIES:
        if entry.requires not in granted:
            continue
        if entry.key == "notifications":
            entry = NavEntry(entry.key, entry.path, entry.label, entry.requires, badge_text(unread_count))
        entries.append(entry)
    return entries


def redirect_for(role: Role | str | None, path: str, authenticated: bool) -> str | None:
    """Where a route guard sends the user, or None when the route is allowed."""
    if not authenticated:
        return LOGIN_PATH
    required = ROUTE_CAPABILITIES.get(path)
    if required is not None and required not in capabilities(role):
        return HOME_PATH
    return None


def can_access(role: Role | str | None, path: str, authenticated: bool = True) -> bool:
    return redirect_for(role, path, authenticated) is None


def _owns(appointment: Appointment, user: User | None) -> bool:
    return user is not None and appointment.user is not None and appointment.user.id == user.id


def _assigned(appointment: Appointment, user: User | None) -> bool:
    return user is not None and appointment.operator is not None and appointment.operator.id == user.id


def can_edit(user: User | None, appointment: Appointment) -> bool:
    if user is None or appointment.deleted:
        return False
    granted = capabilities(user.role)
    if Capability.MANAGE_ALL_APPOINTMENTS in granted:
        return True
    if Capability.COMPLETE_APPOINTMENTS in granted:
        return _assigned(appointment, user)
    return _owns(appointment, user) and appointment.status is AppointmentStatus.SCHEDULED


def can_delete(user: User | None, appointment: Appointment) -> bool:
    if user is None or appointment.deleted:
        return False
    granted = capabilities(user.role)
    if Capability.MANAGE_ALL_APPOINTMENTS in granted:
        return True
    if Capability.COMPLETE_APPOINTMENTS in granted:
        return False
    return _owns(appointment, user) and appointment.status is AppointmentStatus.SCHEDULED


def can_complete(user: User | None, appointment: Appointment, now: datetime | None = None) -> bool:
    """The assigned operator may close an open appointment once it has started."""
    if user is None or not has(user.role, Capability.COMPLETE_APPOINTMENTS):
        return False
    if not _assigned(appointment, user):
        return False
    if appointment.status not in (AppointmentStatus.SCHEDULED, AppointmentStatus.IN_PROGRESS):
        return False
    return appointment.starts_at < (now or datetime.now())


def can_cancel(user: User | None, appointment: Appointment) -> bool:
    if user is None or not has(user.role, Capability.COMPLETE_APPOINTMENTS):
        return False
    return _assigned(appointment, user) and appointment.status is AppointmentStatus.SCHEDULED


def can_rate(user: User | None, appointment: Appointment, now: datetime | None = None) -> bool:
    """The owner may rate the operator of an attended appointment once it has ended."""
    if user is None or not has(user.role, Capability.RATE_OPERATORS):
        return False
    if not _owns(appointment, user):
        return False
    if appointment.status is not AppointmentStatus.COMPLETED:
        return False
    if appointment.attendance_status is not AttendanceStatus.ATTENDED or appointment.user_rating:
        return False
    return appointment.ends_at < (now or datetime.now())


def appointment_actions(user: User | None, appointment: Appointment, now: datetime | None = None) -> dict[str, bool]:
    return {
        "edit": can_edit(user, appointment),
        "delete": can_delete(user, appointment),
        "complete": can_complete(user, appointment, now),
        "cancel": can_cancel(user, appointment),
        "rate": can_rate(user, appointment, now),
    }
