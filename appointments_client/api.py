import logging
from datetime import date, datetime
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse

from . import appointments as appointments_api
from . import categories as categories_api
from . import config
from . import schedules as schedules_api
from . import users as users_api
from . import views
from .context import AppContext
from .errors import (
    ApiError,
    AuthenticationError,
    FormValidationError,
    NetworkError,
    ServerError,
)
from .filters import AppointmentFilters, filter_operators, pending_ratings
from .forms import (
    AppointmentForm,
    CategoryForm,
    CompleteAppointmentForm,
    EmailChangeForm,
    NotificationPreferencesForm,
    ObservationForm,
    PasswordChangeForm,
    RateOperatorForm,
    RegisterForm,
    ScheduleForm,
    UserForm,
    require_valid,
)
from .models import DateRange, Role
from .notification_store import FILTER_MODES
from .permissions import HOME_PATH, LOGIN_PATH, Capability, can_delete, can_edit

logger = logging.getLogger(__name__)

app = FastAPI(title="Appointments Client")


class Redirect(Exception):
    def __init__(self, path: str):
        self.path = path


@app.on_event("startup")
async def start_context() -> None:
    config.configure_logging()
    context = AppContext()
    await context.init()
    app.state.context = context


@app.on_event("shutdown")
async def stop_context() -> None:
    context = getattr(app.state, "context", None)
    if context is not None:
        await context.teardown()


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def require(capability: Capability):
    """Route guard: anonymous users go to the login view, forbidden roles to the dashboard."""

    def guard(ctx: AppContext = Depends(get_context)) -> AppContext:
        if not ctx.is_authenticated:
            raise Redirect(LOGIN_PATH)
        if not ctx.can(capability):
            raise Redirect(HOME_PATH)
        return ctx

    return guard


# Error handling -------------------------------------------------------------

@app.exception_handler(Redirect)
async def redirect_handler(request: Request, exc: Redirect):
    return RedirectResponse(exc.path, status_code=303)


@app.exception_handler(AuthenticationError)
async def session_expired_handler(request: Request, exc: AuthenticationError):
    # the client hook has already cleared the stored session
    return RedirectResponse(LOGIN_PATH, status_code=303)


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    if isinstance(exc, NetworkError):
        status = 503
    elif isinstance(exc, ServerError):
        status = 502
    else:
        status = exc.status or 400
    return JSONResponse({"detail": exc.message}, status_code=status)


@app.exception_handler(FormValidationError)
async def form_error_handler(request: Request, exc: FormValidationError):
    return JSONResponse({"detail": "Please fix the highlighted fields.", "errors": exc.errors}, status_code=422)


# Session ----------------------------------------------------------------------

@app.post("/login")
async def login(payload: dict[str, Any] = Body(...), ctx: AppContext = Depends(get_context)):
    try:
        user = await ctx.login(payload.get("email", ""), payload.get("password", ""))
    except AuthenticationError as exc:
        raise HTTPException(status_code=401, detail=exc.message)
    return {"user": views.user_summary(user), "navigation": views.nav_view(ctx.navigation())}


@app.post("/register", status_code=201)
async def register(payload: dict[str, Any] = Body(...), ctx: AppContext = Depends(get_context)):
    user = await ctx.register(payload.get("full_name", ""), payload.get("email", ""), payload.get("password", ""))
    return {"message": "Account created. Please log in.", "user": views.user_summary(user)}


@app.post("/logout")
async def logout(ctx: AppContext = Depends(get_context)):
    await ctx.logout()
    return RedirectResponse(LOGIN_PATH, status_code=303)


@app.get("/session")
async def session(ctx: AppContext = Depends(get_context)):
    return {
        "state": ctx.state.value,
        "authenticated": ctx.is_authenticated,
        "user": views.user_summary(ctx.user),
    }


@app.get("/navigation")
async def navigation(ctx: AppContext = Depends(require(Capability.VIEW_DASHBOARD))):
    return views.nav_view(ctx.navigation())


@app.get("/dashboard")
async def dashboard(ctx: AppContext = Depends(require(Capability.VIEW_DASHBOARD))):
    """Upcoming appointments plus whatever needs the current user's attention."""
    upcoming = await appointments_api.upcoming(ctx.api)
    body: dict[str, Any] = {
        "user": views.user_summary(ctx.user),
        "unread_notifications": ctx.notifications.unread_count,
        "upcoming": views.appointment_list(upcoming, ctx.user),
    }
    if ctx.can(Capability.COMPLETE_APPOINTMENTS):
        pending = await appointments_api.pending_completion(ctx.api)
        body["pending_completion"] = views.appointment_list(pending, ctx.user)
    if ctx.can(Capability.RATE_OPERATORS):
        mine = await appointments_api.list_appointments(ctx.api)
        body["pending_ratings"] = views.appointment_list(pending_ratings(mine, ctx.user.id), ctx.user)
    if ctx.can(Capability.VIEW_STATS):
        stats = await appointments_api.dashboard_stats(ctx.api)
        body["stats"] = stats.model_dump()
    return body


# Appointments -------------------------------------------------------------------

@app.get("/appointments")
async def list_appointments(
    status: Optional[str] = Query(None, description="Appointment status, or 'all'"),
    category_id: Optional[int] = Query(None),
    operator_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None, description="Free text over title, description, people and category"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    only_pending: bool = Query(False),
    only_rated: bool = Query(False),
    only_attended: bool = Query(False),
    include_deleted: bool = Query(False),
    ctx: AppContext = Depends(require(Capability.VIEW_APPOINTMENTS)),
):
    """Fetch the visible appointments once and filter them in memory."""
    try:
        filters = AppointmentFilters(
            status=status,
            category_id=category_id,
            operator_id=operator_id,
            search=search,
            start_date=start_date,
            end_date=end_date,
            only_pending=only_pending,
            only_rated=only_rated,
            only_attended=only_attended,
            include_deleted=include_deleted,
        )
        filters.predicates()
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Unknown status {status!r}")
    fetched = await appointments_api.list_appointments(ctx.api, include_deleted=include_deleted)
    return {
        "appointments": views.appointment_list(filters.apply(fetched), ctx.user),
        "total": len(fetched),
        "active_filters": filters.active_count(),
    }


@app.get("/appointments/new")
async def appointment_form_options(
    category_id: Optional[int] = Query(None, description="Selected category, to load its durations"),
    ctx: AppContext = Depends(require(Capability.BOOK_APPOINTMENTS)),
):
    """Categories for the booking form, then the durations of the selected one."""
    categories = await categories_api.list_categories(ctx.api)
    durations = await categories_api.get_durations(ctx.api, category_id) if category_id else []
    return {
        "categories": [{"id": c.id, "name": c.name} for c in categories],
        "durations": durations,
    }


@app.get("/appointments/available-operators")
async def available_operators(
    category_id: int = Query(...),
    on_date: date = Query(..., alias="date"),
    start_time: str = Query(..., description="HH:MM"),
    duration_minutes: int = Query(...),
    ctx: AppContext = Depends(require(Capability.BOOK_APPOINTMENTS)),
):
    """Operators free for the slot. With none available, auto-assign is preselected."""
    choice = await appointments_api.resolve_operator_choice(
        ctx.api, category_id, on_date, start_time, duration_minutes
    )
    return {
        "operators": [views.user_summary(op) for op in choice.operators],
        "auto_assign": choice.auto_assign,
    }


@app.get("/appointments/{appointment_id}")
async def appointment_detail(appointment_id: int, ctx: AppContext = Depends(require(Capability.VIEW_APPOINTMENTS))):
    appointment = await appointments_api.get_appointment(ctx.api, appointment_id)
    return views.appointment_detail(appointment, ctx.user)


async def _validated_booking(ctx: AppContext, payload: dict[str, Any]) -> tuple[AppointmentForm, str | None]:
    # presence/format first, so an incomplete form never reaches the backend
    form = require_valid(AppointmentForm, payload)
    category = await categories_api.get_category(ctx.api, form.category_id)
    allowed = category.allowed_durations or await categories_api.get_durations(ctx.api, form.category_id)
    form = require_valid(AppointmentForm, payload, allowed_durations=allowed)
    return form, category.name


@app.post("/appointments", status_code=201)
async def create_appointment(payload: dict[str, Any] = Body(...), ctx: AppContext = Depends(require(Capability.BOOK_APPOINTMENTS))):
    payload = {"user_id": ctx.user.id, **payload}
    form, category_name = await _validated_booking(ctx, payload)
    created = await appointments_api.create_appointment(ctx.api, form.to_payload(category_name))
    logger.info("Created appointment %s", created.id)
    return views.appointment_detail(created, ctx.user)


@app.put("/appointments/{appointment_id}")
async def update_appointment(
    appointment_id: int,
    payload: dict[str, Any] = Body(...),
    ctx: AppContext = Depends(require(Capability.VIEW_APPOINTMENTS)),
):
    """Edit an appointment. Admins editing someone else's appointment must leave an observation."""
    current = await appointments_api.get_appointment(ctx.api, appointment_id)
    if not can_edit(ctx.user, current):
        raise HTTPException(status_code=403, detail="You cannot edit this appointment.")
    owner_id = current.user.id if current.user else ctx.user.id
    form, category_name = await _validated_booking(ctx, {"user_id": owner_id, **payload})
    body = form.to_payload(category_name)

    if ctx.can(Capability.MANAGE_ALL_APPOINTMENTS) and owner_id != ctx.user.id:
        observation = require_valid(ObservationForm, {"observation": payload.get("admin_observation")})
        updated = await appointments_api.update_by_admin(ctx.api, appointment_id, body, observation.observation)
    else:
        updated = await appointments_api.update_appointment(ctx.api, appointment_id, body)
    return views.appointment_detail(updated, ctx.user)


@app.delete("/appointments/{appointment_id}", status_code=204)
async def delete_appointment(
    appointment_id: int,
    observation: Optional[str] = Query(None, description="Required when an admin deletes someone else's appointment"),
    ctx: AppContext = Depends(require(Capability.VIEW_APPOINTMENTS)),
):
    current = await appointments_api.get_appointment(ctx.api, appointment_id)
    if not can_delete(ctx.user, current):
        raise HTTPException(status_code=403, detail="You cannot delete this appointment.")

    owner_id = current.user.id if current.user else None
    if ctx.can(Capability.MANAGE_ALL_APPOINTMENTS) and owner_id != ctx.user.id:
        form = require_valid(ObservationForm, {"observation": observation})
        await appointments_api.delete_by_admin(ctx.api, appointment_id, form.observation)
    else:
        await appointments_api.delete_appointment(ctx.api, appointment_id)
    return None


@app.post("/appointments/{appointment_id}/complete")
async def complete_appointment(
    appointment_id: int,
    payload: dict[str, Any] = Body(...),
    ctx: AppContext = Depends(require(Capability.COMPLETE_APPOINTMENTS)),
):
    form = require_valid(CompleteAppointmentForm, payload)
    done = await appointments_api.complete_appointment(
        ctx.api, appointment_id, form.attended, form.observation, form.rating
    )
    return views.appointment_detail(done, ctx.user)


@app.post("/appointments/{appointment_id}/cancel")
async def cancel_appointment(
    appointment_id: int,
    payload: dict[str, Any] = Body(...),
    ctx: AppContext = Depends(require(Capability.COMPLETE_APPOINTMENTS)),
):
    form = require_valid(ObservationForm, payload)
    cancelled = await appointments_api.cancel_appointment(ctx.api, appointment_id, form.observation)
    return views.appointment_detail(cancelled, ctx.user)


@app.post("/appointments/{appointment_id}/rate")
async def rate_appointment(
    appointment_id: int,
    payload: dict[str, Any] = Body(...),
    ctx: AppContext = Depends(require(Capability.RATE_OPERATORS)),
):
    form = require_valid(RateOperatorForm, payload)
    rated = await appointments_api.rate_operator(ctx.api, appointment_id, form.rating, form.observation)
    return views.appointment_detail(rated, ctx.user)


@app.get("/calendar")
async def calendar(
    status: Optional[str] = Query(None),
    category_id: Optional[int] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    ctx: AppContext = Depends(require(Capability.VIEW_CALENDAR)),
):
    try:
        filters = AppointmentFilters(status=status, category_id=category_id, start_date=start_date, end_date=end_date)
        filters.predicates()
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Unknown status {status!r}")
    fetched = await appointments_api.list_appointments(ctx.api)
    return views.calendar(filters.apply(fetched), ctx.user)


# Categories ---------------------------------------------------------------------

@app.get("/categories")
async def list_categories(ctx: AppContext = Depends(require(Capability.MANAGE_CATEGORIES))):
    return [views.category_view(c) for c in await categories_api.list_categories(ctx.api)]


@app.post("/categories", status_code=201)
async def create_category(payload: dict[str, Any] = Body(...), ctx: AppContext = Depends(require(Capability.MANAGE_CATEGORIES))):
    form = require_valid(CategoryForm, payload)
    return views.category_view(await categories_api.create_category(ctx.api, form.to_payload()))


@app.put("/categories/{category_id}")
async def update_category(
    category_id: int,
    payload: dict[str, Any] = Body(...),
    ctx: AppContext = Depends(require(Capability.MANAGE_CATEGORIES)),
):
    form = require_valid(CategoryForm, payload)
    return views.category_view(await categories_api.update_category(ctx.api, category_id, form.to_payload()))


@app.delete("/categories/{category_id}", status_code=204)
async def delete_category(category_id: int, ctx: AppContext = Depends(require(Capability.MANAGE_CATEGORIES))):
    await categories_api.delete_category(ctx.api, category_id)
    return None


@app.put("/categories/{category_id}/durations")
async def update_durations(
    category_id: int,
    durations: list[int] = Body(..., embed=True),
    ctx: AppContext = Depends(require(Capability.MANAGE_CATEGORIES)),
):
    if any(minutes <= 0 for minutes in durations):
        raise FormValidationError({"durations": "Durations must be positive numbers of minutes."})
    category = await categories_api.update_durations(ctx.api, category_id, sorted(set(durations)))
    return views.category_view(category)


@app.get("/categories/{category_id}/operators")
async def category_operators(category_id: int, ctx: AppContext = Depends(require(Capability.MANAGE_CATEGORIES))):
    return [views.user_summary(op) for op in await categories_api.get_operators(ctx.api, category_id)]


@app.put("/categories/{category_id}/operators")
async def assign_category_operators(
    category_id: int,
    operator_ids: list[int] = Body(..., embed=True),
    ctx: AppContext = Depends(require(Capability.MANAGE_CATEGORIES)),
):
    answer = await categories_api.assign_operators(ctx.api, category_id, operator_ids)
    return {"message": answer.message or "Operators assigned."}


# Users and operators ------------------------------------------------------------

@app.get("/users")
async def list_users(
    search: str = Query(""),
    role: Optional[Role] = Query(None),
    status: str = Query("all", description="all, active or inactive"),
    ctx: AppContext = Depends(require(Capability.MANAGE_USERS)),
):
    if status not in ("all", "active", "inactive"):
        raise HTTPException(status_code=422, detail=f"Unknown status {status!r}")
    users = await users_api.list_users(ctx.api)
    if role is not None:
        users = [u for u in users if u.role == role.value]
    return [views.user_summary(u) for u in filter_operators(users, search, status)]


@app.post("/users", status_code=201)
async def create_user(payload: dict[str, Any] = Body(...), ctx: AppContext = Depends(require(Capability.MANAGE_USERS))):
    form = require_valid(UserForm, payload)
    return views.user_summary(await users_api.create_user(ctx.api, form.to_payload()))


@app.put("/users/{user_id}")
async def update_user(user_id: int, payload: dict[str, Any] = Body(...), ctx: AppContext = Depends(require(Capability.MANAGE_USERS))):
    form = require_valid(UserForm, payload, editing=True)
    return views.user_summary(await users_api.update_user(ctx.api, user_id, form.to_payload()))


@app.delete("/users/{user_id}", status_code=204)
async def delete_user(user_id: int, ctx: AppContext = Depends(require(Capability.MANAGE_USERS))):
    await users_api.delete_user(ctx.api, user_id)
    return None


@app.patch("/users/{user_id}/active")
async def set_user_active(user_id: int, active: bool = Query(...), ctx: AppContext = Depends(require(Capability.MANAGE_USERS))):
    answer = await users_api.set_active(ctx.api, user_id, active)
    return {"message": answer.message, "active": active}


@app.patch("/users/{user_id}/role")
async def change_user_role(user_id: int, role: Role = Query(...), ctx: AppContext = Depends(require(Capability.MANAGE_USERS))):
    return views.user_summary(await users_api.change_role(ctx.api, user_id, role))


@app.get("/operators")
async def list_operators(
    search: str = Query(""),
    status: str = Query("all", description="all, active or inactive"),
    ctx: AppContext = Depends(require(Capability.MANAGE_OPERATORS)),
):
    if status not in ("all", "active", "inactive"):
        raise HTTPException(status_code=422, detail=f"Unknown status {status!r}")
    operators = await users_api.list_operators(ctx.api)
    visible = filter_operators(operators, search, status)
    return {
        "operators": [views.user_summary(op) for op in visible],
        "active": sum(1 for op in operators if op.active),
        "inactive": sum(1 for op in operators if not op.active),
    }


@app.post("/operators", status_code=201)
async def create_operator(payload: dict[str, Any] = Body(...), ctx: AppContext = Depends(require(Capability.MANAGE_OPERATORS))):
    form = require_valid(RegisterForm, payload)
    operator = await users_api.create_operator(ctx.api, form.full_name, form.email, form.password)
    return views.user_summary(operator)


@app.put("/operators/{operator_id}/categories")
async def assign_operator_categories(
    operator_id: int,
    category_ids: list[int] = Body(..., embed=True),
    ctx: AppContext = Depends(require(Capability.MANAGE_OPERATORS)),
):
    answer = await users_api.assign_categories(ctx.api, operator_id, category_ids)
    return {"message": answer.message or "Categories assigned."}


# Operator schedule --------------------------------------------------------------

@app.get("/schedule")
async def my_schedule(ctx: AppContext = Depends(require(Capability.MANAGE_SCHEDULE))):
    return views.schedule_week(await schedules_api.my_schedules(ctx.api))


@app.post("/schedule/validate")
async def validate_schedule(payload: dict[str, Any] = Body(...), ctx: AppContext = Depends(require(Capability.MANAGE_SCHEDULE))):
    """Local checks first, then the backend's overlap check."""
    form = require_valid(ScheduleForm, payload)
    result = await schedules_api.validate_schedule(
        ctx.api, form.to_payload(ctx.user.id, payload.get("id"))
    )
    return {"valid": result.valid, "message": result.message}


async def _checked_schedule(ctx: AppContext, payload: dict[str, Any], schedule_id: int | None = None) -> dict[str, Any]:
    form = require_valid(ScheduleForm, payload)
    body = form.to_payload(ctx.user.id, schedule_id)
    result = await schedules_api.validate_schedule(ctx.api, body)
    if not result.valid:
        raise FormValidationError({"end_time": result.message})
    body.pop("id", None)
    return body


@app.post("/schedule", status_code=201)
async def create_schedule(payload: dict[str, Any] = Body(...), ctx: AppContext = Depends(require(Capability.MANAGE_SCHEDULE))):
    body = await _checked_schedule(ctx, payload)
    created = await schedules_api.create_schedule(ctx.api, body)
    return created.to_payload()


@app.put("/schedule/{schedule_id}")
async def update_schedule(
    schedule_id: int,
    payload: dict[str, Any] = Body(...),
    ctx: AppContext = Depends(require(Capability.MANAGE_SCHEDULE)),
):
    body = await _checked_schedule(ctx, payload, schedule_id)
    updated = await schedules_api.update_schedule(ctx.api, schedule_id, body)
    return updated.to_payload()


@app.delete("/schedule/{schedule_id}", status_code=204)
async def delete_schedule(schedule_id: int, ctx: AppContext = Depends(require(Capability.MANAGE_SCHEDULE))):
    await schedules_api.delete_schedule(ctx.api, schedule_id)
    return None


# Notifications ------------------------------------------------------------------

@app.get("/notifications")
async def list_notifications(
    filter: str = Query("all", description="all, unread or read"),
    ctx: AppContext = Depends(require(Capability.VIEW_NOTIFICATIONS)),
):
    if filter not in FILTER_MODES:
        raise HTTPException(status_code=422, detail=f"Unknown filter {filter!r}")
    await ctx.notifications.refresh()
    return {
        "notifications": [views.notification_view(n) for n in ctx.notifications.filtered(filter)],
        "unread_count": ctx.notifications.unread_count,
    }


@app.get("/notifications/unread-count")
async def unread_count(ctx: AppContext = Depends(require(Capability.VIEW_NOTIFICATIONS))):
    return {"count": await ctx.notifications.fetch_unread_count()}


@app.post("/notifications/read-all")
async def mark_all_read(ctx: AppContext = Depends(require(Capability.VIEW_NOTIFICATIONS))):
    await ctx.notifications.mark_all_as_read()
    return {"unread_count": ctx.notifications.unread_count}


@app.post("/notifications/{notification_id}/read")
async def mark_read(notification_id: int, ctx: AppContext = Depends(require(Capability.VIEW_NOTIFICATIONS))):
    await ctx.notifications.mark_as_read(notification_id)
    return {"unread_count": ctx.notifications.unread_count}


@app.delete("/notifications/{notification_id}")
async def delete_notification(notification_id: int, ctx: AppContext = Depends(require(Capability.VIEW_NOTIFICATIONS))):
    await ctx.notifications.delete(notification_id)
    return {"unread_count": ctx.notifications.unread_count}


# Stats and profile --------------------------------------------------------------

@app.get("/stats")
async def stats(
    period: DateRange = Query(DateRange.LAST_30_DAYS),
    custom_start: Optional[date] = Query(None),
    custom_end: Optional[date] = Query(None),
    ctx: AppContext = Depends(require(Capability.VIEW_STATS)),
):
    """Dashboard statistics for admins; an operator sees their own numbers."""
    if period is DateRange.CUSTOM and (custom_start is None or custom_end is None):
        raise FormValidationError({"custom_start": "Pick both ends of the custom range."})
    if ctx.can(Capability.MANAGE_ALL_APPOINTMENTS):
        result = await appointments_api.dashboard_stats(ctx.api, period, custom_start, custom_end)
    else:
        result = await appointments_api.operator_stats(ctx.api, ctx.user.id, custom_start, custom_end)
    body = {"period": period.value, "stats": result.model_dump(), "generated_at": datetime.now().isoformat()}
    if ctx.can(Capability.MANAGE_USERS):
        body["users"] = (await users_api.admin_stats(ctx.api)).model_dump()
    return body


@app.get("/profile")
async def profile(ctx: AppContext = Depends(require(Capability.VIEW_PROFILE))):
    user = await ctx.refresh_profile()
    body = views.user_summary(user)
    body.update(
        reminder_hours=user.reminder_hours,
        email_notifications_enabled=user.email_notifications_enabled,
        in_app_notifications_enabled=user.in_app_notifications_enabled,
    )
    return body


@app.patch("/profile/email")
async def change_email(payload: dict[str, Any] = Body(...), ctx: AppContext = Depends(require(Capability.VIEW_PROFILE))):
    form = require_valid(EmailChangeForm, payload)
    updated = await users_api.update_email(ctx.api, ctx.user.id, form.new_email)
    ctx.session.update_user(email=updated.email or form.new_email)
    return views.user_summary(ctx.user)


@app.patch("/profile/password")
async def change_password(payload: dict[str, Any] = Body(...), ctx: AppContext = Depends(require(Capability.VIEW_PROFILE))):
    form = require_valid(PasswordChangeForm, payload)
    answer = await users_api.update_password(ctx.api, ctx.user.id, form.current_password, form.new_password)
    return {"message": answer.message or "Password updated."}


@app.patch("/profile/notifications")
async def change_notification_preferences(
    payload: dict[str, Any] = Body(...),
    ctx: AppContext = Depends(require(Capability.VIEW_PROFILE)),
):
    form = require_valid(NotificationPreferencesForm, payload)
    updated = await users_api.update_notification_preferences(ctx.api, ctx.user.id, form.to_payload())
    ctx.session.update_user(reminder_hours=updated.reminder_hours)
    return views.user_summary(ctx.user)
