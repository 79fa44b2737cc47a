from __future__ import annotations

from datetime import date

import pytest

from attendance_tracker.core.enums import (
    AttendanceEventType,
    BreakType,
    SessionStatus,
    VerificationStatus,
    WorkMode,
)
from attendance_tracker.core.exceptions import ConflictError, NotFoundError, ValidationError
from attendance_tracker.policies.model import WorkPolicy

from conftest import COMPANY_ID, OFFICE_LAT, OFFICE_LON, USER_ID, at


def test_office_round_trip_inside_radius(svc, office, store, audit):
    result = svc.check_in(USER_ID, COMPANY_ID, work_mode="Office", latitude=OFFICE_LAT, longitude=OFFICE_LON, now=at(9))
    assert result.event.verification_status == VerificationStatus.GEOFENCE_PASSED
    assert result.day.status == SessionStatus.WORKING

    out = svc.check_out(USER_ID, COMPANY_ID, now=at(10, 30))

    assert out.day.status == SessionStatus.CHECKED_OUT
    assert out.day.totals.work_minutes == 90
    assert out.day.totals.overtime_minutes == 0
    assert out.summary == {"workedMinutes": 90, "breakMinutes": 0, "overtime": 0}
    assert out.event.work_mode == WorkMode.OFFICE

    day = store.get_day_for_user(USER_ID, date(2026, 3, 2))
    assert day.is_complete is True
    assert day.total_work_minutes == 90
    assert audit.actions() == ["AttendanceCheckIn", "AttendanceCheckOut"]


def test_remote_check_in_skips_geofence(svc, office):
    result = svc.check_in(USER_ID, COMPANY_ID, work_mode=WorkMode.REMOTE, now=at(9))

    assert result.event.verification_status == VerificationStatus.NONE


def test_second_check_in_while_open_conflicts(svc):
    svc.check_in(USER_ID, COMPANY_ID, work_mode="Remote", now=at(9))

    with pytest.raises(ConflictError):
        svc.check_in(USER_ID, COMPANY_ID, work_mode="Remote", now=at(9, 5))


def test_re_check_in_after_check_out_reopens_day(svc, store):
    svc.check_in(USER_ID, COMPANY_ID, work_mode="Remote", now=at(8))
    svc.check_out(USER_ID, COMPANY_ID, now=at(12))
    svc.check_in(USER_ID, COMPANY_ID, work_mode="Remote", now=at(13))

    day = store.get_day_for_user(USER_ID, date(2026, 3, 2))
    assert day.is_complete is False
    assert len(store.days) == 1

    out = svc.check_out(USER_ID, COMPANY_ID, now=at(17))
    assert out.day.totals.work_minutes == 8 * 60
    assert [e.type for e in out.day.events] == [
        AttendanceEventType.CHECK_IN,
        AttendanceEventType.CHECK_OUT,
        AttendanceEventType.CHECK_IN,
        AttendanceEventType.CHECK_OUT,
    ]


def test_check_out_without_session_conflicts(svc):
    with pytest.raises(ConflictError):
        svc.check_out(USER_ID, COMPANY_ID, now=at(17))

    svc.check_in(USER_ID, COMPANY_ID, work_mode="Remote", now=at(9))
    svc.check_out(USER_ID, COMPANY_ID, now=at(17))
    with pytest.raises(ConflictError):
        svc.check_out(USER_ID, COMPANY_ID, now=at(17, 1))


def test_check_out_closes_open_break_first(svc, store):
    svc.check_in(USER_ID, COMPANY_ID, work_mode="Remote", now=at(9))
    svc.start_break(USER_ID, COMPANY_ID, break_type="Lunch", now=at(12))

    out = svc.check_out(USER_ID, COMPANY_ID, now=at(13))

    assert all(not b.is_open for b in store.breaks.values())
    assert out.day.totals.lunch_minutes == 60
    assert out.day.totals.work_minutes == 180
    assert out.summary["breakMinutes"] == 60


def test_break_flow_and_single_open_break(svc, store, audit):
    svc.check_in(USER_ID, COMPANY_ID, work_mode="Remote", now=at(9))
    started = svc.start_break(USER_ID, COMPANY_ID, break_type=BreakType.BREAK, now=at(10))
    assert started.day.status == SessionStatus.ON_BREAK

    with pytest.raises(ConflictError):
        svc.start_break(USER_ID, COMPANY_ID, break_type="Lunch", now=at(10, 5))

    ended = svc.end_break(USER_ID, COMPANY_ID, started.segment.break_id, now=at(10, 14))
    assert ended.segment.duration_minutes == 14
    assert ended.day.status == SessionStatus.WORKING
    assert store.days[ended.segment.day_id].total_break_minutes == 14
    assert store.days[ended.segment.day_id].is_complete is False

    with pytest.raises(ConflictError):
        svc.end_break(USER_ID, COMPANY_ID, started.segment.break_id, now=at(10, 20))
    assert audit.actions()[-2:] == ["BreakStarted", "BreakEnded"]


def test_break_duration_rounds_to_nearest_minute(svc):
    svc.check_in(USER_ID, COMPANY_ID, work_mode="Remote", now=at(9))
    started = svc.start_break(USER_ID, COMPANY_ID, break_type="Break", now=at(10))

    ended = svc.end_break(USER_ID, COMPANY_ID, started.segment.break_id, now=at(10, 10).replace(second=30))

    assert ended.segment.duration_minutes == 11


def test_break_requires_open_session(svc):
    with pytest.raises(ConflictError):
        svc.start_break(USER_ID, COMPANY_ID, break_type="Break", now=at(9))

    svc.check_in(USER_ID, COMPANY_ID, work_mode="Remote", now=at(9))
    svc.check_out(USER_ID, COMPANY_ID, now=at(10))
    with pytest.raises(ConflictError):
        svc.start_break(USER_ID, COMPANY_ID, break_type="Break", now=at(10, 5))


def test_end_break_of_someone_else_is_not_found(svc):
    svc.check_in(USER_ID, COMPANY_ID, work_mode="Remote", now=at(9))
    started = svc.start_break(USER_ID, COMPANY_ID, break_type="Break", now=at(10))

    with pytest.raises(NotFoundError):
        svc.end_break(USER_ID + 1, COMPANY_ID, started.segment.break_id, now=at(10, 5))
    with pytest.raises(NotFoundError):
        svc.end_break(USER_ID, COMPANY_ID, 999, now=at(10, 5))


@pytest.mark.parametrize(
    "kwargs",
    [
        {"work_mode": "Spaceship"},
        {"work_mode": "Office", "latitude": 91.0, "longitude": 0.0},
        {"work_mode": "Office", "latitude": 10.0, "longitude": -181.0},
        {"work_mode": "Office", "latitude": 10.0},
    ],
)
def test_check_in_rejects_bad_input(svc, store, kwargs):
    with pytest.raises(ValidationError):
        svc.check_in(USER_ID, COMPANY_ID, now=at(9), **kwargs)
    assert store.days == {}


def test_today_view_computes_live_totals(svc):
    svc.check_in(USER_ID, COMPANY_ID, work_mode="Remote", now=at(9))
    b = svc.start_break(USER_ID, COMPANY_ID, break_type="Break", now=at(10))
    svc.end_break(USER_ID, COMPANY_ID, b.segment.break_id, now=at(10, 15))

    view = svc.get_today(USER_ID, COMPANY_ID, now=at(11))

    assert view.status == SessionStatus.WORKING
    assert view.totals.work_minutes == 105
    assert view.totals.break_minutes == 15
    assert view.check_in_time == at(9)
    assert view.policy == WorkPolicy()


def test_today_view_without_attendance(svc, policies):
    policies.work[COMPANY_ID] = WorkPolicy(break_duration_minutes=20)

    view = svc.get_today(USER_ID, COMPANY_ID, now=at(8))

    assert view.status == SessionStatus.NOT_CHECKED_IN
    assert view.day_id is None
    assert view.to_dict()["policy"]["breakDurationMinutes"] == 20


def test_override_recomputes_totals_and_audits(svc, store, audit):
    svc.check_in(USER_ID, COMPANY_ID, work_mode="Remote", now=at(9))
    out = svc.check_out(USER_ID, COMPANY_ID, now=at(17))
    check_in_event = out.day.events[0]

    updated = svc.override_event(
        check_in_event.event_id, actor_id=1, company_id=COMPANY_ID, reason="Badge reader was down", timestamp=at(8)
    )

    assert updated.is_override is True
    assert updated.override_by == 1
    day = store.days[check_in_event.day_id]
    assert day.total_work_minutes == 9 * 60
    assert day.overtime_minutes == 60
    assert day.is_complete is True

    entry = audit.records[-1]
    assert entry.action == "AttendanceOverride"
    assert entry.before["timestamp"] == at(9).isoformat()
    assert entry.after["timestamp"] == at(8).isoformat()
    assert entry.reason == "Badge reader was down"


def test_override_validation(svc):
    with pytest.raises(ValidationError):
        svc.override_event(1, actor_id=1, company_id=COMPANY_ID, reason="  ", timestamp=at(8))
    with pytest.raises(ValidationError):
        svc.override_event(1, actor_id=1, company_id=COMPANY_ID, reason="fix")
    with pytest.raises(NotFoundError):
        svc.override_event(404, actor_id=1, company_id=COMPANY_ID, reason="fix", work_mode="Remote")


def test_history_pages_newest_first(svc):
    for d in (2, 3, 4):
        day = date(2026, 3, d)
        svc.check_in(USER_ID, COMPANY_ID, work_mode="Remote", now=at(9, day=day))
        svc.check_out(USER_ID, COMPANY_ID, now=at(17, day=day))

    page = svc.get_history(USER_ID, date(2026, 3, 1), date(2026, 3, 31), page=1, limit=2)

    assert [r.day.work_date for r in page.days] == [date(2026, 3, 4), date(2026, 3, 3)]
    assert page.total == 3
    assert page.total_pages == 2
    assert page.to_dict()["meta"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2}

    with pytest.raises(ValidationError):
        svc.get_history(USER_ID, date(2026, 3, 31), date(2026, 3, 1))
    with pytest.raises(ValidationError):
        svc.get_history(USER_ID, date(2026, 3, 1), date(2026, 3, 31), page=0)


def test_summary_counts_presence_leave_and_averages(svc, leaves):
    svc.check_in(USER_ID, COMPANY_ID, work_mode="Remote", now=at(9, day=date(2026, 3, 2)))
    svc.check_out(USER_ID, COMPANY_ID, now=at(18, day=date(2026, 3, 2)))
    svc.check_in(USER_ID, COMPANY_ID, work_mode="Remote", now=at(9, 30, day=date(2026, 3, 3)))
    svc.check_out(USER_ID, COMPANY_ID, now=at(17, day=date(2026, 3, 3)))
    leaves.days[USER_ID] = 1

    summary = svc.get_summary(USER_ID, date(2026, 3, 2), date(2026, 3, 6))

    assert summary.total_days == 5
    assert summary.present_days == 2
    assert summary.leave_days == 1
    assert summary.absent_days == 2
    assert summary.total_work_hours == 16.5
    assert summary.total_overtime_hours == 1.0
    assert summary.average_check_in_time == "09:15:00"
    assert summary.average_check_out_time == "17:30:00"


def test_check_out_in_the_same_instant_allows_a_new_check_in(svc):
    svc.check_in(USER_ID, COMPANY_ID, work_mode="Remote", now=at(9))
    out = svc.check_out(USER_ID, COMPANY_ID, now=at(9))
    assert out.day.status == SessionStatus.CHECKED_OUT

    again = svc.check_in(USER_ID, COMPANY_ID, work_mode="Remote", now=at(9))

    assert again.day.status == SessionStatus.WORKING


def test_break_closed_by_check_out_cannot_be_ended_again(svc, store, audit, monkeypatch):
    svc.check_in(USER_ID, COMPANY_ID, work_mode="Remote", now=at(9))
    started = svc.start_break(USER_ID, COMPANY_ID, break_type="Break", now=at(10))
    stale = store.get_break(started.segment.break_id)
    svc.check_out(USER_ID, COMPANY_ID, now=at(10, 10))

    # The end-break request read the break before check-out closed it.
    monkeypatch.setattr(store, "get_break", lambda break_id: stale)
    with pytest.raises(ConflictError):
        svc.end_break(USER_ID, COMPANY_ID, started.segment.break_id, now=at(10, 12))

    assert audit.actions().count("BreakEnded") == 1
    assert store.breaks[started.segment.break_id].duration_minutes == 10


def test_check_in_locations_lists_geotagged_check_ins_of_the_company(svc, store, office):
    other_company_user = USER_ID + 1
    store.users[other_company_user] = (COMPANY_ID + 1, "Minh Le")
    svc.check_in(USER_ID, COMPANY_ID, work_mode="Office", latitude=OFFICE_LAT, longitude=OFFICE_LON, now=at(8))
    svc.check_out(USER_ID, COMPANY_ID, now=at(12))
    svc.check_in(USER_ID, COMPANY_ID, work_mode="Remote", now=at(13))
    svc.check_out(USER_ID, COMPANY_ID, now=at(17))
    svc.check_in(USER_ID, COMPANY_ID, work_mode="Remote", latitude=10.8, longitude=106.6, now=at(8, day=date(2026, 3, 3)))
    svc.check_in(other_company_user, COMPANY_ID + 1, work_mode="Remote", latitude=1.0, longitude=1.0, now=at(9))

    locations = svc.list_check_in_locations(COMPANY_ID, date(2026, 3, 2), date(2026, 3, 3))

    assert [loc.timestamp for loc in locations] == [at(8, day=date(2026, 3, 3)), at(8)]
    assert locations[1].verification_status == VerificationStatus.GEOFENCE_PASSED
    assert locations[1].to_dict()["userName"] == "Lan Tran"
    assert svc.list_check_in_locations(COMPANY_ID, date(2026, 3, 2), date(2026, 3, 2))[0].timestamp == at(8)

    with pytest.raises(ValidationError):
        svc.list_check_in_locations(COMPANY_ID, date(2026, 3, 3), date(2026, 3, 2))
