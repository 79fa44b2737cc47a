from __future__ import annotations

from datetime import datetime

from attendance_tracker.attendance.model import AttendanceEvent, BreakSegment
from attendance_tracker.attendance.totals import (
    calculate_day_totals,
    derive_status,
    live_totals,
    open_session,
    pair_sessions,
)
from attendance_tracker.core.enums import AttendanceEventType, BreakType, SessionStatus, WorkMode
from attendance_tracker.policies.model import WorkPolicy

from conftest import at

_ids = iter(range(1, 10_000))


def check_in(ts: datetime) -> AttendanceEvent:
    return AttendanceEvent(event_id=next(_ids), day_id=1, type=AttendanceEventType.CHECK_IN, timestamp=ts, work_mode=WorkMode.OFFICE)


def check_out(ts: datetime) -> AttendanceEvent:
    return AttendanceEvent(event_id=next(_ids), day_id=1, type=AttendanceEventType.CHECK_OUT, timestamp=ts, work_mode=WorkMode.OFFICE)


def closed_break(start: datetime, end: datetime, break_type: BreakType = BreakType.BREAK) -> BreakSegment:
    return BreakSegment(
        break_id=next(_ids),
        day_id=1,
        type=break_type,
        start_time=start,
        end_time=end,
        duration_minutes=int((end - start).total_seconds() // 60),
    )


def test_overtime_exactly_at_threshold_is_zero():
    events = [check_in(at(9)), check_out(at(18))]
    breaks = [closed_break(at(12), at(13), BreakType.LUNCH)]

    totals = calculate_day_totals(events, breaks, WorkPolicy(overtime_threshold_minutes=480, max_overtime_minutes=240))

    assert totals.work_minutes == 480
    assert totals.lunch_minutes == 60
    assert totals.break_minutes == 0
    assert totals.overtime_minutes == 0


def test_overtime_is_capped_by_policy():
    events = [check_in(at(6)), check_out(at(23))]

    totals = calculate_day_totals(events, [], WorkPolicy(overtime_threshold_minutes=480, max_overtime_minutes=240))

    assert totals.work_minutes == 17 * 60
    assert totals.overtime_minutes == 240


def test_overtime_counts_minutes_past_threshold():
    totals = calculate_day_totals([check_in(at(9)), check_out(at(18, 30))], [], WorkPolicy())

    assert totals.work_minutes == 570
    assert totals.overtime_minutes == 90


def test_multiple_sessions_are_summed_and_breaks_split_by_type():
    events = [check_in(at(8)), check_out(at(12)), check_in(at(13)), check_out(at(17, 30))]
    breaks = [closed_break(at(10), at(10, 15)), closed_break(at(15), at(15, 10))]

    totals = calculate_day_totals(events, breaks, WorkPolicy())

    assert totals.break_minutes == 25
    assert totals.lunch_minutes == 0
    assert totals.work_minutes == 240 + 270 - 25


def test_pairing_uses_each_check_out_once_and_ignores_input_order():
    a_in, a_out = check_in(at(8)), check_out(at(9))
    b_in, b_out = check_in(at(10)), check_out(at(11))
    stray_out = check_out(at(7))
    dangling_in = check_in(at(12))
    events = [dangling_in, b_out, a_in, stray_out, b_in, a_out]

    assert pair_sessions(events) == [(a_in, a_out), (b_in, b_out)]
    # The input list is left untouched.
    assert events[0] is dangling_in and len(events) == 6


def test_work_minutes_never_go_negative():
    events = [check_in(at(9)), check_out(at(9, 10))]
    breaks = [closed_break(at(9), at(9, 40))]

    assert calculate_day_totals(events, breaks, WorkPolicy()).work_minutes == 0


def test_status_follows_latest_check_in():
    first_in, first_out = check_in(at(8)), check_out(at(12))
    assert derive_status([], []) == SessionStatus.NOT_CHECKED_IN
    assert derive_status([first_in], []) == SessionStatus.WORKING
    assert derive_status([first_in, first_out], []) == SessionStatus.CHECKED_OUT

    second_in = check_in(at(13))
    open_lunch = BreakSegment(break_id=99, day_id=1, type=BreakType.LUNCH, start_time=at(14))
    assert open_session([first_in, first_out, second_in]) is second_in
    assert derive_status([first_in, first_out, second_in], [open_lunch]) == SessionStatus.ON_BREAK


def test_live_totals_count_open_session_up_to_now():
    events = [check_in(at(8)), check_out(at(12)), check_in(at(13))]
    breaks = [closed_break(at(14), at(14, 15))]

    totals = live_totals(events, breaks, WorkPolicy(), now=at(15))

    assert totals.work_minutes == 240 + 120 - 15
    assert totals.break_minutes == 15


def test_live_totals_stop_work_at_open_break_start():
    events = [check_in(at(9))]
    breaks = [BreakSegment(break_id=5, day_id=1, type=BreakType.LUNCH, start_time=at(12))]

    totals = live_totals(events, breaks, WorkPolicy(), now=at(12, 40))

    assert totals.work_minutes == 180
    assert totals.lunch_minutes == 40


def test_check_out_in_the_same_instant_still_closes_the_session():
    first_in = check_in(at(9))
    same_instant_out = check_out(at(9))

    events = [same_instant_out, first_in]

    assert open_session(events) is None
    assert derive_status(events, []) == SessionStatus.CHECKED_OUT
    assert pair_sessions(events) == [(first_in, same_instant_out)]
