from datetime import date, time

import pytest

from appointments_client.errors import FormValidationError
from appointments_client.forms import (
    REQUIRED,
    AppointmentForm,
    CategoryForm,
    CompleteAppointmentForm,
    LoginForm,
    NotificationPreferencesForm,
    PasswordChangeForm,
    RegisterForm,
    ScheduleForm,
    UserForm,
    require_valid,
    validate_form,
)
from appointments_client.models import DayOfWeek, Role

TODAY = date(2030, 3, 1)
BOOKING = {
    "category_id": 10,
    "date": "2030-03-04",
    "start_time": "09:00",
    "duration_minutes": 30,
    "operator_id": 7,
    "title": "",
    "user_id": 3,
}


def test_blank_required_fields_are_reported_per_field():
    form, errors = validate_form(LoginForm, {"email": "  ", "password": ""})
    assert form is None
    assert errors == {"email": REQUIRED, "password": REQUIRED}


def test_login_email_format():
    _, errors = validate_form(LoginForm, {"email": "not-an-email", "password": "x"})
    assert errors == {"email": "Enter a valid email address."}


def test_register_lengths():
    _, errors = validate_form(RegisterForm, {"full_name": "Al", "email": "al@example.com", "password": "12345"})
    assert set(errors) == {"full_name", "password"}
    assert errors["password"] == "Password must be at least 6 characters long."


def test_booking_payload():
    form = require_valid(AppointmentForm, BOOKING, today=TODAY, allowed_durations=[30, 60])

    assert form.end_time == time(9, 30)
    assert form.to_payload("Dentistry") == {
        "userId": 3,
        "categoryId": 10,
        "operatorId": 7,
        "title": "Dentistry",
        "description": "",
        "date": "2030-03-04",
        "startTime": "09:00",
        "endTime": "09:30",
        "durationMinutes": 30,
    }


def test_booking_rejects_past_date_and_unlisted_duration():
    data = dict(BOOKING, date="2030-02-28", duration_minutes=45)
    _, errors = validate_form(AppointmentForm, data, today=TODAY, allowed_durations=[30, 60])
    assert errors == {
        "date": "The date cannot be in the past.",
        "duration_minutes": "Choose one of the durations allowed for this category.",
    }


def test_booking_needs_operator_unless_auto_assigned():
    data = {k: v for k, v in BOOKING.items() if k != "operator_id"}
    _, errors = validate_form(AppointmentForm, data, today=TODAY)
    assert "operator_id" in errors

    form = require_valid(AppointmentForm, dict(data, auto_assign=True, operator_id=99), today=TODAY)
    assert form.operator_id is None
    assert form.to_payload()["operatorId"] is None


def test_empty_booking_lists_every_required_field():
    with pytest.raises(FormValidationError) as exc_info:
        require_valid(AppointmentForm, {"category_id": ""})
    assert {"category_id", "date", "start_time", "duration_minutes"} <= set(exc_info.value.errors)
    assert exc_info.value.errors["category_id"] == REQUIRED


def test_category_durations_are_sorted_and_unique():
    form = require_valid(CategoryForm, {"name": "Dentistry", "allowed_durations": [60, 30, 60]})
    assert form.to_payload()["allowedDurations"] == [30, 60]

    _, errors = validate_form(CategoryForm, {"name": "Dentistry", "allowed_durations": [0]})
    assert "allowed_durations" in errors


def test_user_password_optional_only_when_editing():
    data = {"full_name": "Ana Lopez", "email": "ana@example.com", "role": "OPERARIO"}
    _, errors = validate_form(UserForm, data)
    assert errors == {"password": REQUIRED}

    form = require_valid(UserForm, data, editing=True)
    assert form.role is Role.OPERARIO
    assert "password" not in form.to_payload()


def test_schedule_block_rules():
    form = require_valid(ScheduleForm, {"day_of_week": "monday", "start_time": "08:00", "end_time": "12:00"})
    assert form.day_of_week is DayOfWeek.MONDAY
    assert form.to_payload(7, 2) == {
        "dayOfWeek": "MONDAY",
        "startTime": "08:00",
        "endTime": "12:00",
        "operatorId": 7,
        "id": 2,
    }

    _, errors = validate_form(ScheduleForm, {"day_of_week": "MONDAY", "start_time": "12:00", "end_time": "08:00"})
    assert errors == {"end_time": "End time must be after start time."}

    _, errors = validate_form(ScheduleForm, {"day_of_week": "MONDAY", "start_time": "06:00", "end_time": "19:00"})
    assert "end_time" in errors


def test_completion_needs_a_real_observation():
    _, errors = validate_form(CompleteAppointmentForm, {"observation": "ok", "rating": 6})
    assert set(errors) == {"observation", "rating"}

    form = require_valid(CompleteAppointmentForm, {"attended": False, "observation": "Patient did not show up"})
    assert form.attended is False


def test_new_password_must_differ():
    _, errors = validate_form(PasswordChangeForm, {"current_password": "secret1", "new_password": "secret1"})
    assert errors == {"new_password": "The new password must be different from the current one."}


def test_notification_preferences():
    form = require_valid(NotificationPreferencesForm, {"reminder_hours": 2, "email_notifications_enabled": False})
    assert form.to_payload() == {"reminderHours": 2, "emailNotificationsEnabled": False}

    _, errors = validate_form(NotificationPreferencesForm, {"reminder_hours": 12})
    assert "reminder_hours" in errors
