from datetime import datetime, timedelta, timezone

from app.schemas.faculty import PreferenceInput
from app.schemas.timetable import DaySchedule, Outcome, SlotEntry, TimetableSnapshot
from app.services.faculty_assignment import assign_faculty

SUBMITTED = datetime(2026, 1, 10, 9, 0, tzinfo=timezone.utc)


def _pref(faculty_id: str, code: str, *, minutes_later: int = 0, period: str = "2026-S1") -> PreferenceInput:
    return PreferenceInput(
        faculty_id=faculty_id,
        subject_code=code,
        academic_period=period,
        submitted_at=SUBMITTED + timedelta(minutes=minutes_later),
    )


def _grid(*cells: tuple[str, str, str, str]) -> list[DaySchedule]:
    by_day: dict[str, list[SlotEntry]] = {}
    for day, start, end, code in cells:
        by_day.setdefault(day, []).append(SlotEntry(start_time=start, end_time=end, subject_code=code))
    return [DaySchedule(day=day, slots=slots) for day, slots in by_day.items()]


def _assigned(result) -> list[str | None]:
    return [slot.faculty_id for day in result.days for slot in day.slots if slot.subject_code]


def test_lightest_load_wins_then_earliest_preference():
    grid = _grid(("Monday", "09:00", "10:00", "CS101"), ("Monday", "10:00", "11:00", "CS101"))
    preferences = [_pref("f-late", "CS101", minutes_later=30), _pref("f-early", "CS101")]

    result = assign_faculty(grid, {"CS101": 2}, preferences, [], academic_period="2026-S1")

    assert result.outcome == Outcome.ok
    assert _assigned(result) == ["f-early", "f-late"]


def test_candidate_busy_in_published_timetable_is_skipped():
    grid = _grid(("Monday", "09:00", "10:00", "CS101"))
    published = TimetableSnapshot(
        id="other",
        days=[
            DaySchedule(
                day="Monday",
                slots=[SlotEntry(start_time="09:30", end_time="10:30", subject_code="MA101", faculty_id="f1")],
            )
        ],
    )
    preferences = [_pref("f1", "CS101"), _pref("f2", "CS101", minutes_later=5)]

    result = assign_faculty(grid, {"CS101": 1}, preferences, [published])
    assert _assigned(result) == ["f2"]

    only_busy = assign_faculty(grid, {"CS101": 1}, [_pref("f1", "CS101")], [published])
    assert only_busy.outcome == Outcome.partial
    assert only_busy.unresolved[0].reason == "all_candidates_busy"


def test_unresolved_cells_do_not_stop_the_rest_of_the_grid():
    grid = _grid(
        ("Monday", "09:00", "10:00", "CS101"),
        ("Monday", "10:00", "11:00", "PH101"),
        ("Tuesday", "09:00", "10:00", "XX999"),
    )
    result = assign_faculty(grid, {"CS101": 1, "PH101": 1}, [_pref("f1", "CS101")], [])

    assert result.outcome == Outcome.partial
    assert _assigned(result) == ["f1", None, None]
    assert [(item.subject_code, item.reason) for item in result.unresolved] == [
        ("PH101", "no_preference"),
        ("XX999", "unknown_subject"),
    ]


def test_preset_faculty_is_kept_and_blocks_overlapping_cells():
    grid = [
        DaySchedule(
            day="Monday",
            slots=[SlotEntry(start_time="09:00", end_time="10:00", subject_code="CS101", faculty_id="f1")],
        ),
        DaySchedule(
            day="Monday",
            slots=[SlotEntry(start_time="09:00", end_time="10:00", subject_code="CS102")],
        ),
    ]
    result = assign_faculty(grid, {"CS101": 1, "CS102": 1}, [_pref("f1", "CS102")], [])

    assert result.days[0].slots[0].faculty_id == "f1"
    assert result.unresolved[0].reason == "all_candidates_busy"


def test_preferences_for_other_periods_are_ignored():
    grid = _grid(("Monday", "09:00", "10:00", "CS101"))
    preferences = [_pref("f1", "CS101", period="2025-S2")]
    result = assign_faculty(grid, {"CS101": 1}, preferences, [], academic_period="2026-S1")
    assert result.unresolved[0].reason == "no_preference"


def test_input_grid_is_not_mutated():
    grid = _grid(("Monday", "09:00", "10:00", "CS101"))
    assign_faculty(grid, {"CS101": 1}, [_pref("f1", "CS101")], [])
    assert grid[0].slots[0].faculty_id is None
