import json, pathlib
from datetime import date, datetime

import pytest

from appointments_client.filters import (
    AppointmentFilters,
    count_by_status,
    filter_operators,
    group_schedules_by_day,
    pending_ratings,
)
from appointments_client.models import Appointment, DayOfWeek, OperatorSchedule, User

FIX = pathlib.Path(__file__).parent / "fixtures"
APPOINTMENTS = [Appointment.model_validate(a) for a in json.loads((FIX / "appointments.json").read_text())]


def _ids(items):
    return [a.id for a in items]


def test_no_filters_hides_only_deleted():
    assert _ids(AppointmentFilters().apply(APPOINTMENTS)) == [1, 2, 3]
    assert _ids(AppointmentFilters(include_deleted=True).apply(APPOINTMENTS)) == [1, 2, 3, 4]
    assert _ids(AppointmentFilters(status="all").apply(APPOINTMENTS)) == [1, 2, 3]


@pytest.mark.parametrize(
    "filters",
    [
        AppointmentFilters(status="SCHEDULED", category_id=10),
        AppointmentFilters(operator_id=7, search="dent"),
        AppointmentFilters(start_date=date(2030, 1, 1), end_date=date(2030, 3, 4), include_deleted=True),
        AppointmentFilters(search="ANA", only_attended=True, only_rated=True),
        AppointmentFilters(only_pending=True, category_id=10, include_deleted=True),
    ],
)
def test_result_is_intersection_of_predicates_and_idempotent(filters):
    result = filters.apply(APPOINTMENTS)

    expected = set(_ids(APPOINTMENTS))
    for check in filters.predicates():
        expected &= {a.id for a in APPOINTMENTS if check(a)}
    assert set(_ids(result)) == expected
    assert _ids(result) == [i for i in _ids(APPOINTMENTS) if i in expected]
    assert filters.apply(result) == result


def test_search_covers_people_and_category():
    assert _ids(AppointmentFilters(search="pedro").apply(APPOINTMENTS)) == [2]
    assert _ids(AppointmentFilters(search="bruno@").apply(APPOINTMENTS)) == [3]
    assert _ids(AppointmentFilters(search="physio").apply(APPOINTMENTS)) == [2]
    assert _ids(AppointmentFilters(search="   ").apply(APPOINTMENTS)) == [1, 2, 3]


def test_unknown_status_is_rejected():
    with pytest.raises(ValueError):
        AppointmentFilters(status="ARCHIVED").apply(APPOINTMENTS)


def test_active_count():
    assert AppointmentFilters().active_count() == 0
    assert AppointmentFilters(status="all", search="").active_count() == 0
    assert AppointmentFilters(status="COMPLETED", operator_id=7, only_rated=True).active_count() == 3


def test_pending_ratings():
    now = datetime(2030, 1, 1)
    assert _ids(pending_ratings(APPOINTMENTS, user_id=3, now=now)) == [2]
    assert pending_ratings(APPOINTMENTS, user_id=4, now=now) == []
    rated = APPOINTMENTS[1].model_copy(update={"user_rating": 4})
    assert pending_ratings([rated], user_id=3, now=now) == []


def test_filter_operators():
    operators = [
        User(id=7, full_name="Olga Operator", email="olga@example.com", active=True),
        User(id=8, full_name="Pedro Diaz", email="pedro@example.com", active=False),
    ]
    assert [u.id for u in filter_operators(operators, "OLGA")] == [7]
    assert [u.id for u in filter_operators(operators, status="inactive")] == [8]
    assert [u.id for u in filter_operators(operators, "example", "active")] == [7]
    with pytest.raises(ValueError):
        filter_operators(operators, status="blocked")


def test_group_schedules_by_day():
    raw = json.loads((FIX / "schedules.json").read_text())
    grouped = group_schedules_by_day(OperatorSchedule.model_validate(s) for s in raw)

    assert list(grouped) == list(DayOfWeek)
    assert [s.id for s in grouped[DayOfWeek.MONDAY]] == [2, 1]
    assert [s.id for s in grouped[DayOfWeek.WEDNESDAY]] == [3]
    assert grouped[DayOfWeek.SUNDAY] == []


def test_count_by_status():
    counts = count_by_status(APPOINTMENTS)
    assert counts["SCHEDULED"] == 2
    assert counts["COMPLETED"] == 1
    assert counts["FAILED"] == 0
