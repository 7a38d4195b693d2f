from __future__ import annotations

import logging
from collections import Counter, defaultdict
from collections.abc import Iterator, Mapping, Sequence

from app.schemas.faculty import PreferenceInput
from app.schemas.timetable import (
    AssignmentResult,
    DaySchedule,
    Outcome,
    SlotEntry,
    TimetableSnapshot,
    UnresolvedAssignment,
    parse_time_to_minutes,
)
from app.services.intervals import TimeWindow, day_index, ensure_utc, weekly_window

logger = logging.getLogger(__name__)


class FacultyOccupancy:
    """Per-faculty booked windows (minutes of the week) and booked minutes."""

    def __init__(self) -> None:
        self._windows: dict[str, list[TimeWindow]] = defaultdict(list)
        self.minutes: Counter[str] = Counter()

    def book(self, faculty_id: str, day: str, slot: SlotEntry) -> None:
        self._windows[faculty_id].append(weekly_window(day, slot.start_time, slot.end_time))
        self.minutes[faculty_id] += slot.duration_minutes

    def is_free(self, faculty_id: str, window: TimeWindow) -> bool:
        return not any(booked.overlaps(window) for booked in self._windows.get(faculty_id, []))

    def load_snapshot(self, snapshot: TimetableSnapshot) -> None:
        for day in snapshot.days:
            for slot in day.slots:
                if slot.faculty_id:
                    self.book(slot.faculty_id, day.day, slot)


def iter_cells(days: Sequence[DaySchedule]) -> Iterator[tuple[DaySchedule, SlotEntry]]:
    """Yield (day, slot) pairs in calendar order: day of week, then start time."""
    for day in sorted(days, key=lambda item: day_index(item.day)):
        for slot in sorted(day.slots, key=lambda item: parse_time_to_minutes(item.start_time)):
            yield day, slot


def _preferences_by_subject(
    preferences: Sequence[PreferenceInput],
    academic_period: str | None,
) -> dict[str, list[PreferenceInput]]:
    grouped: dict[str, list[PreferenceInput]] = defaultdict(list)
    seen: set[tuple[str, str]] = set()
    ordered = sorted(preferences, key=lambda item: (ensure_utc(item.submitted_at), item.faculty_id))
    for preference in ordered:
        if academic_period and preference.academic_period and preference.academic_period != academic_period:
            continue
        code = preference.subject_code.strip().upper()
        key = (code, preference.faculty_id)
        if key in seen:
            continue
        seen.add(key)
        grouped[code].append(preference)
    return grouped


def assign_faculty(
    days: Sequence[DaySchedule],
    weekly_hours: Mapping[str, int],
    preferences: Sequence[PreferenceInput],
    existing_published: Sequence[TimetableSnapshot],
    *,
    academic_period: str | None = None,
    timetable_id: str | None = None,
) -> AssignmentResult:
    """Give every occupied cell a faculty member who asked for its subject.

    Candidates already teaching at an overlapping time, in this grid or in
    any other published timetable of the period, are skipped. Among the
    rest the lightest weekly load wins, then the earliest preference. Cells
    nobody can take are returned as unresolved; the rest of the grid is
    still assigned.
    """
    grid = [day.model_copy(deep=True) for day in days]
    known_subjects = {code.strip().upper() for code in weekly_hours}
    by_subject = _preferences_by_subject(preferences, academic_period)

    occupancy = FacultyOccupancy()
    for snapshot in existing_published:
        if timetable_id is not None and snapshot.id == timetable_id:
            continue
        occupancy.load_snapshot(snapshot)
    # Manually assigned cells stay as they are and count as bookings.
    for day, slot in iter_cells(grid):
        if slot.occupied and slot.faculty_id:
            occupancy.book(slot.faculty_id, day.day, slot)

    unresolved: list[UnresolvedAssignment] = []
    for day, slot in iter_cells(grid):
        if not slot.occupied or slot.faculty_id:
            continue
        code = slot.subject_code.strip().upper()
        reason = None
        candidates = by_subject.get(code, [])
        if code not in known_subjects:
            reason = "unknown_subject"
        elif not candidates:
            reason = "no_preference"
        else:
            window = weekly_window(day.day, slot.start_time, slot.end_time)
            survivors = [item for item in candidates if occupancy.is_free(item.faculty_id, window)]
            if survivors:
                chosen = min(
                    survivors,
                    key=lambda item: (occupancy.minutes[item.faculty_id], ensure_utc(item.submitted_at), item.faculty_id),
                )
                slot.faculty_id = chosen.faculty_id
                occupancy.book(chosen.faculty_id, day.day, slot)
                continue
            reason = "all_candidates_busy"
        unresolved.append(
            UnresolvedAssignment(
                day=day.day,
                start_time=slot.start_time,
                end_time=slot.end_time,
                subject_code=slot.subject_code,
                reason=reason,
            )
        )

    if unresolved:
        logger.warning("Faculty assignment left %d cell(s) unresolved", len(unresolved))
        return AssignmentResult(outcome=Outcome.partial, days=grid, unresolved=unresolved)
    return AssignmentResult(outcome=Outcome.ok, days=grid)
