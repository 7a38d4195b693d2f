import pytest

from app.schemas.timetable import DaySchedule, SlotEntry, TimetableSnapshot
from app.services.conflict_service import ConflictService, check_conflicts


def _snapshot(timetable_id, classroom_id, *slots, day="Monday"):
    return TimetableSnapshot(
        id=timetable_id,
        classroom_id=classroom_id,
        days=[DaySchedule(day=day, slots=list(slots))],
    )


def _slot(start, end, code, faculty_id=None, classroom_id=None):
    return SlotEntry(
        start_time=start,
        end_time=end,
        subject_code=code,
        faculty_id=faculty_id,
        classroom_id=classroom_id,
    )


@pytest.fixture
def resources():
    return {
        "classrooms": {"r1": {"name": "Room 101", "capacity": 60}, "r2": {"name": "Room 102", "capacity": 40}},
        "faculty": {"f1": {"name": "Prof A"}, "f2": {"name": "Prof B"}},
    }


def test_detect_classroom_conflict_across_published_timetables(resources):
    draft = _snapshot("t1", "r1", _slot("09:00", "10:00", "CS101", "f1"))
    published = _snapshot("t2", "r1", _slot("09:30", "10:30", "MA101", "f2"))

    service = ConflictService(draft, [published], resources["classrooms"], resources["faculty"])
    report = service.detect_conflicts()

    assert report.has_conflicts
    conflict = report.conflicts[0]
    assert conflict.resource_type == "classroom"
    assert conflict.resource_id == "r1"
    assert "Room 101" in conflict.description
    assert conflict.cross_timetable
    assert (conflict.first.timetable_id, conflict.second.timetable_id) == ("t1", "t2")
    assert {item.action_type for item in report.suggested_resolutions} == {"change_room", "move_slot"}


def test_detect_faculty_conflict_in_different_rooms(resources):
    draft = _snapshot("t1", "r1", _slot("09:00", "10:00", "CS101", "f1"))
    published = _snapshot("t2", "r2", _slot("09:00", "10:00", "CS102", "f1"))

    conflicts = check_conflicts(draft, [published], faculty_names={"f1": "Prof A"})

    assert len(conflicts) == 1
    assert conflicts[0].resource_type == "faculty"
    assert "Prof A" in conflicts[0].description


def test_overlap_within_one_timetable_is_reported():
    draft = TimetableSnapshot(
        id="t1",
        classroom_id="r1",
        days=[
            DaySchedule(day="Monday", slots=[_slot("09:00", "10:00", "CS101", "f1")]),
            DaySchedule(day="Monday", slots=[_slot("09:00", "10:00", "CS102", "f1")]),
        ],
    )
    conflicts = check_conflicts(draft, [])
    assert [item.resource_type for item in conflicts] == ["classroom", "faculty"]
    assert not conflicts[0].cross_timetable


def test_back_to_back_slots_and_empty_cells_do_not_conflict():
    draft = _snapshot(
        "t1",
        "r1",
        _slot("09:00", "10:00", "CS101", "f1"),
        _slot("10:00", "11:00", "CS102", "f1"),
        _slot("11:00", "12:00", ""),
    )
    published = _snapshot("t2", "r1", _slot("11:00", "12:00", ""))
    assert check_conflicts(draft, [published]) == []


def test_slot_classroom_overrides_timetable_classroom():
    draft = _snapshot("t1", "r1", _slot("09:00", "10:00", "CS101", classroom_id="r2"))
    published = _snapshot("t2", "r1", _slot("09:00", "10:00", "MA101"))
    assert check_conflicts(draft, [published]) == []

    moved = _snapshot("t3", "r2", _slot("09:00", "10:00", "PH101"))
    assert [item.resource_id for item in check_conflicts(draft, [moved])] == ["r2"]


def test_different_days_never_conflict():
    draft = _snapshot("t1", "r1", _slot("09:00", "10:00", "CS101", "f1"), day="Monday")
    published = _snapshot("t2", "r1", _slot("09:00", "10:00", "MA101", "f1"), day="Tuesday")
    assert check_conflicts(draft, [published]) == []


def test_conflicts_are_ordered_by_day_then_time():
    draft = TimetableSnapshot(
        id="t1",
        classroom_id="r1",
        days=[
            DaySchedule(day="Tuesday", slots=[_slot("09:00", "10:00", "CS101")]),
            DaySchedule(day="Monday", slots=[_slot("11:00", "12:00", "CS102"), _slot("09:00", "10:00", "CS103")]),
        ],
    )
    published = TimetableSnapshot(
        id="t2",
        classroom_id="r1",
        days=[
            DaySchedule(day="Monday", slots=[_slot("09:00", "10:00", "X1"), _slot("11:00", "12:00", "X2")]),
            DaySchedule(day="Tuesday", slots=[_slot("09:00", "10:00", "X3")]),
        ],
    )
    conflicts = check_conflicts(draft, [published])
    assert [(item.first.day, item.first.start_time) for item in conflicts] == [
        ("Monday", "09:00"),
        ("Monday", "11:00"),
        ("Tuesday", "09:00"),
    ]


def test_timetable_is_not_compared_with_its_own_published_copy():
    draft = _snapshot("t1", "r1", _slot("09:00", "10:00", "CS101", "f1"))
    assert check_conflicts(draft, [draft]) == []
