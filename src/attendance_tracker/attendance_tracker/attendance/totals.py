from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from ..common.datetime_utils import minutes_between
from ..core.enums import AttendanceEventType, BreakType, SessionStatus
from ..policies.model import WorkPolicy
from .model import AttendanceEvent, BreakSegment, DayTotals


def event_order(event: AttendanceEvent) -> Tuple[datetime, int]:
    # Insertion order breaks ties between events stored with the same timestamp.
    return event.timestamp, event.event_id


def latest_check_in(events: Iterable[AttendanceEvent]) -> Optional[AttendanceEvent]:
    check_ins = [e for e in events if e.type == AttendanceEventType.CHECK_IN]
    if not check_ins:
        return None
    return max(check_ins, key=event_order)


def check_out_after(events: Iterable[AttendanceEvent], check_in: AttendanceEvent) -> Optional[AttendanceEvent]:
    start = event_order(check_in)
    later = [e for e in events if e.type == AttendanceEventType.CHECK_OUT and event_order(e) > start]
    return min(later, key=event_order) if later else None


def open_session(events: Sequence[AttendanceEvent]) -> Optional[AttendanceEvent]:
    """The latest check-in if nothing checked it out yet."""
    last = latest_check_in(events)
    if last is None or check_out_after(events, last) is not None:
        return None
    return last


def open_break(breaks: Iterable[BreakSegment]) -> Optional[BreakSegment]:
    return next((b for b in breaks if b.is_open), None)


def derive_status(events: Sequence[AttendanceEvent], breaks: Sequence[BreakSegment]) -> SessionStatus:
    last = latest_check_in(events)
    if last is None:
        return SessionStatus.NOT_CHECKED_IN
    if check_out_after(events, last) is not None:
        return SessionStatus.CHECKED_OUT
    if open_break(breaks) is not None:
        return SessionStatus.ON_BREAK
    return SessionStatus.WORKING


def pair_sessions(events: Iterable[AttendanceEvent]) -> List[Tuple[AttendanceEvent, AttendanceEvent]]:
    """Pair each check-in with the earliest unused check-out after it.

    Walks two sorted lists with one cursor on the check-outs. A check-out the
    cursor skips lies before the current check-in, so it also lies before
    every later one and can never be paired.
    """
    ordered = sorted(events, key=event_order)
    check_ins = [e for e in ordered if e.type == AttendanceEventType.CHECK_IN]
    check_outs = [e for e in ordered if e.type == AttendanceEventType.CHECK_OUT]

    pairs = []
    j = 0
    for ci in check_ins:
        while j < len(check_outs) and event_order(check_outs[j]) <= event_order(ci):
            j += 1
        if j == len(check_outs):
            break
        pairs.append((ci, check_outs[j]))
        j += 1
    return pairs


def gross_minutes(events: Iterable[AttendanceEvent]) -> int:
    return sum(minutes_between(ci.timestamp, co.timestamp) for ci, co in pair_sessions(events))


def break_minutes(breaks: Iterable[BreakSegment], break_type: BreakType) -> int:
    total = sum(b.duration_minutes or 0 for b in breaks if b.type == break_type and not b.is_open)
    return max(0, total)


def overtime_minutes(work_minutes: int, policy: WorkPolicy) -> int:
    if work_minutes <= policy.overtime_threshold_minutes:
        return 0
    return min(work_minutes - policy.overtime_threshold_minutes, policy.max_overtime_minutes)


def calculate_day_totals(
    events: Sequence[AttendanceEvent], breaks: Sequence[BreakSegment], policy: WorkPolicy
) -> DayTotals:
    gross = gross_minutes(events)
    breaks_total = break_minutes(breaks, BreakType.BREAK)
    lunch_total = break_minutes(breaks, BreakType.LUNCH)
    work = max(0, gross - breaks_total - lunch_total)
    return DayTotals(
        work_minutes=work,
        break_minutes=breaks_total,
        lunch_minutes=lunch_total,
        overtime_minutes=overtime_minutes(work, policy),
    )


def live_totals(
    events: Sequence[AttendanceEvent],
    breaks: Sequence[BreakSegment],
    policy: WorkPolicy,
    *,
    now: datetime,
) -> DayTotals:
    """Totals for display while a session is still open. Nothing is persisted.

    Closed sessions count in full. The open session runs up to `now`, or up
    to the start of the open break while on one; the open break itself counts
    as break time up to `now`.
    """
    session = open_session(events)
    if session is None:
        return calculate_day_totals(events, breaks, policy)

    current = open_break(breaks)
    anchor = current.start_time if current is not None else now
    closed_pairs = pair_sessions(events)
    gross = sum(minutes_between(ci.timestamp, co.timestamp) for ci, co in closed_pairs)
    gross += max(0, minutes_between(session.timestamp, anchor))

    breaks_total = break_minutes(breaks, BreakType.BREAK)
    lunch_total = break_minutes(breaks, BreakType.LUNCH)
    work = max(0, gross - breaks_total - lunch_total)

    if current is not None:
        running = max(0, minutes_between(current.start_time, now))
        if current.type == BreakType.LUNCH:
            lunch_total += running
        else:
            breaks_total += running

    return DayTotals(
        work_minutes=work,
        break_minutes=breaks_total,
        lunch_minutes=lunch_total,
        overtime_minutes=overtime_minutes(work, policy),
    )
