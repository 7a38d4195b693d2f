from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

from app.schemas.conflict import Conflict, ConflictReport, ResolutionAction, SlotRef
from app.schemas.timetable import SlotEntry, TimetableSnapshot, parse_time_to_minutes
from app.services.intervals import TimeWindow, day_index, weekly_window


@dataclass(frozen=True)
class Booking:
    timetable_id: Optional[str]
    day: str
    slot: SlotEntry
    window: TimeWindow
    classroom_id: Optional[str]
    faculty_id: Optional[str]

    def ref(self) -> SlotRef:
        return SlotRef(
            timetable_id=self.timetable_id,
            day=self.day,
            start_time=self.slot.start_time,
            end_time=self.slot.end_time,
            subject_code=self.slot.subject_code,
        )


def bookings_for(snapshot: TimetableSnapshot) -> List[Booking]:
    """Occupied slots of a timetable with the classroom and faculty they hold."""
    bookings = []
    for day in snapshot.days:
        for slot in day.slots:
            if not slot.occupied:
                continue
            bookings.append(Booking(
                timetable_id=snapshot.id,
                day=day.day,
                slot=slot,
                window=weekly_window(day.day, slot.start_time, slot.end_time),
                classroom_id=slot.classroom_id or snapshot.classroom_id,
                faculty_id=slot.faculty_id,
            ))
    return bookings


def _conflict(kind: str, resource_id: str, label: str, first: Booking, second: Booking) -> Conflict:
    where = "the same timetable" if first.timetable_id == second.timetable_id else f"timetable {second.timetable_id}"
    return Conflict(
        id=(
            f"{kind}:{resource_id}:{first.day}:{first.slot.start_time}:"
            f"{second.timetable_id or '-'}:{second.slot.start_time}"
        ),
        resource_type=kind,
        resource_id=resource_id,
        description=(
            f"{kind.capitalize()} overlap for {label} on {first.day}: "
            f"{first.slot.subject_code} {first.slot.start_time}-{first.slot.end_time} and "
            f"{second.slot.subject_code} {second.slot.start_time}-{second.slot.end_time} in {where}"
        ),
        first=first.ref(),
        second=second.ref(),
    )


def _collisions(
    first: Booking,
    second: Booking,
    classroom_names: Mapping[str, str],
    faculty_names: Mapping[str, str],
) -> List[Conflict]:
    if not first.window.overlaps(second.window):
        return []
    found = []
    if first.classroom_id and first.classroom_id == second.classroom_id:
        label = classroom_names.get(first.classroom_id, first.classroom_id)
        found.append(_conflict("classroom", first.classroom_id, label, first, second))
    if first.faculty_id and first.faculty_id == second.faculty_id:
        label = faculty_names.get(first.faculty_id, first.faculty_id)
        found.append(_conflict("faculty", first.faculty_id, label, first, second))
    return found


def _sort_key(conflict: Conflict):
    return (
        day_index(conflict.first.day),
        parse_time_to_minutes(conflict.first.start_time),
        conflict.resource_type,
        conflict.resource_id,
        conflict.second.timetable_id or "",
        parse_time_to_minutes(conflict.second.start_time),
    )


def check_conflicts(
    timetable: TimetableSnapshot,
    other_published: Sequence[TimetableSnapshot],
    *,
    classroom_names: Optional[Mapping[str, str]] = None,
    faculty_names: Optional[Mapping[str, str]] = None,
) -> List[Conflict]:
    """Classroom and faculty clashes inside ``timetable`` and against ``other_published``."""
    classroom_names = classroom_names or {}
    faculty_names = faculty_names or {}

    # Bucket by day; windows on different days never overlap.
    own_by_day: Dict[str, List[Booking]] = defaultdict(list)
    for booking in bookings_for(timetable):
        own_by_day[booking.day].append(booking)
    others_by_day: Dict[str, List[Booking]] = defaultdict(list)
    for snapshot in other_published:
        if timetable.id is not None and snapshot.id == timetable.id:
            continue
        for booking in bookings_for(snapshot):
            others_by_day[booking.day].append(booking)

    conflicts: List[Conflict] = []
    for day, own in own_by_day.items():
        n = len(own)
        for i in range(n):
            for j in range(i + 1, n):
                conflicts.extend(_collisions(own[i], own[j], classroom_names, faculty_names))
            for other in others_by_day.get(day, []):
                conflicts.extend(_collisions(own[i], other, classroom_names, faculty_names))

    conflicts.sort(key=_sort_key)
    return conflicts


class ConflictService:
    def __init__(
        self,
        timetable: TimetableSnapshot,
        other_published: Sequence[TimetableSnapshot],
        classroom_map: Dict[str, dict],
        faculty_map: Dict[str, dict],
    ):
        self.timetable = timetable
        self.other_published = list(other_published)
        self.classroom_map = classroom_map
        self.faculty_map = faculty_map

    def detect_conflicts(self) -> ConflictReport:
        conflicts = check_conflicts(
            self.timetable,
            self.other_published,
            classroom_names={key: value.get("name", key) for key, value in self.classroom_map.items()},
            faculty_names={key: value.get("name", key) for key, value in self.faculty_map.items()},
        )
        resolutions: List[ResolutionAction] = []
        for conflict in conflicts:
            resolutions.extend(self.generate_resolutions(conflict))
        return ConflictReport(
            has_conflicts=bool(conflicts),
            conflicts=conflicts,
            suggested_resolutions=resolutions,
        )

    def generate_resolutions(self, conflict: Conflict) -> List[ResolutionAction]:
        resolutions = []
        if conflict.resource_type == "classroom":
            resolutions.append(ResolutionAction(
                action_type="change_room",
                description="Book a free classroom for this slot",
                conflict_id=conflict.id,
                parameters={"current_classroom_id": conflict.resource_id},
            ))
        if conflict.resource_type == "faculty":
            resolutions.append(ResolutionAction(
                action_type="change_faculty",
                description="Assign another faculty member who prefers this subject",
                conflict_id=conflict.id,
                parameters={"current_faculty_id": conflict.resource_id},
            ))
        resolutions.append(ResolutionAction(
            action_type="move_slot",
            description="Move to a different time slot",
            conflict_id=conflict.id,
            parameters={"day": conflict.first.day, "start_time": conflict.first.start_time},
        ))
        return resolutions
