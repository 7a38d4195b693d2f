from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field

from app.core.exceptions import SchedulerError
from app.models.subject import SubjectType
from app.schemas.timetable import (
    DaySchedule,
    GenerationFailure,
    GridResult,
    Outcome,
    SlotEntry,
    SubjectQuota,
    TimeSlot,
    UnmetSubject,
    normalize_day,
    parse_time_to_minutes,
    validate_unique_days,
)
from app.services.intervals import overlaps

logger = logging.getLogger(__name__)

TYPE_PRIORITY = {
    SubjectType.core: 0,
    SubjectType.lab: 1,
    SubjectType.elective: 2,
}


@dataclass
class _WorkingGrid:
    days: list[str]
    slots: list[TimeSlot]
    cells: list[list[SubjectQuota | None]] = field(default_factory=list)
    # contiguous[i] is True when slot i ends exactly when slot i + 1 starts.
    contiguous: list[bool] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.cells = [[None] * len(self.slots) for _ in self.days]
        self.contiguous = [
            self.slots[index].end_time == self.slots[index + 1].start_time
            for index in range(len(self.slots) - 1)
        ]

    def is_free(self, day_index: int, slot_index: int) -> bool:
        return self.cells[day_index][slot_index] is None

    def run_is_free(self, day_index: int, start: int, length: int) -> bool:
        for offset in range(length):
            if not self.is_free(day_index, start + offset):
                return False
            if offset and not self.contiguous[start + offset - 1]:
                return False
        return True

    def clear(self, code: str) -> None:
        for row in self.cells:
            for index, occupant in enumerate(row):
                if occupant is not None and occupant.code == code:
                    row[index] = None

    def to_days(self) -> list[DaySchedule]:
        output: list[DaySchedule] = []
        for day_index, day in enumerate(self.days):
            entries = []
            for slot_index, slot in enumerate(self.slots):
                occupant = self.cells[day_index][slot_index]
                entries.append(
                    SlotEntry(
                        start_time=slot.start_time,
                        end_time=slot.end_time,
                        subject_code=occupant.code if occupant else "",
                        subject_type=occupant.type if occupant else None,
                    )
                )
            output.append(DaySchedule(day=day, slots=entries))
        return output


def priority_order(subjects: Sequence[SubjectQuota]) -> list[SubjectQuota]:
    """Core before lab before elective; declared order breaks ties."""
    indexed = sorted(enumerate(subjects), key=lambda item: (TYPE_PRIORITY[item[1].type], item[0]))
    return [subject for _, subject in indexed]


def fair_share_shortfalls(subjects: Sequence[SubjectQuota], capacity: int) -> list[UnmetSubject]:
    """Hand out ``capacity`` one hour at a time, round-robin in priority order.

    Every subject left short of its quota is reported with the hours it could
    have received and the hours still missing.
    """
    ordered = priority_order(subjects)
    allocated = {subject.code: 0 for subject in ordered}
    remaining = capacity
    progressed = True
    while remaining > 0 and progressed:
        progressed = False
        for subject in ordered:
            if remaining == 0:
                break
            if allocated[subject.code] < subject.weekly_hours:
                allocated[subject.code] += 1
                remaining -= 1
                progressed = True
    return [
        UnmetSubject(
            code=subject.code,
            requested_hours=subject.weekly_hours,
            placeable_hours=allocated[subject.code],
            shortfall=subject.weekly_hours - allocated[subject.code],
        )
        for subject in ordered
        if allocated[subject.code] < subject.weekly_hours
    ]


def _place_units(grid: _WorkingGrid, subject: SubjectQuota) -> bool:
    per_day: Counter[int] = Counter()
    for _ in range(subject.weekly_hours):
        best: tuple[int, int, int] | None = None
        for day_index in range(len(grid.days)):
            for slot_index in range(len(grid.slots)):
                if not grid.is_free(day_index, slot_index):
                    continue
                key = (per_day[day_index], day_index, slot_index)
                if best is None or key < best:
                    best = key
                # First free slot of a day is the best that day can offer.
                break
        if best is None:
            return False
        _, day_index, slot_index = best
        grid.cells[day_index][slot_index] = subject
        per_day[day_index] += 1
    return True


def _place_blocks(grid: _WorkingGrid, subject: SubjectQuota, block_hours: int) -> bool:
    blocks_per_day: Counter[int] = Counter()
    remaining = subject.weekly_hours
    while remaining > 0:
        length = min(block_hours, remaining)
        best: tuple[int, int, int] | None = None
        for day_index in range(len(grid.days)):
            for start in range(len(grid.slots) - length + 1):
                if grid.run_is_free(day_index, start, length):
                    key = (blocks_per_day[day_index], day_index, start)
                    if best is None or key < best:
                        best = key
                    break
        if best is None:
            return False
        _, day_index, start = best
        for offset in range(length):
            grid.cells[day_index][start + offset] = subject
        blocks_per_day[day_index] += 1
        remaining -= length
    return True


def check_time_slots(time_slots: Sequence[TimeSlot]) -> None:
    """Slots must be in start order and must not overlap one another."""
    for previous, current in zip(time_slots, time_slots[1:]):
        previous_start = parse_time_to_minutes(previous.start_time)
        current_start = parse_time_to_minutes(current.start_time)
        out_of_order = current_start <= previous_start
        if out_of_order or overlaps(
            previous_start,
            parse_time_to_minutes(previous.end_time),
            current_start,
            parse_time_to_minutes(current.end_time),
        ):
            raise SchedulerError(
                f"Time slots must be increasing and non-overlapping: "
                f"{previous.start_time}-{previous.end_time} then {current.start_time}-{current.end_time}",
                details={"time_slots": [previous.model_dump(), current.model_dump()]},
            )


def generate_grid(
    subjects: Sequence[SubjectQuota],
    days: Sequence[str],
    time_slots: Sequence[TimeSlot],
) -> GridResult:
    """Place every subject's weekly hours into a day x slot grid.

    Returns a ``fatal`` result with an ``over_capacity`` failure when the
    requested hours cannot fit, without a grid. A lab whose contiguous block
    cannot be placed is dropped from the grid and reported as
    ``no_contiguous_block`` while the remaining subjects are still placed
    (``partial``). Output is a pure function of the input order.
    """
    day_names = [normalize_day(day) for day in days]
    try:
        validate_unique_days(day_names)
    except ValueError as exc:
        raise SchedulerError(str(exc)) from exc
    check_time_slots(time_slots)
    codes = [subject.code for subject in subjects]
    duplicate_codes = sorted({code for code in codes if codes.count(code) > 1})
    if duplicate_codes:
        raise SchedulerError(
            f"Duplicate subject codes: {', '.join(duplicate_codes)}",
            details={"subject_codes": duplicate_codes},
        )

    capacity = len(day_names) * len(time_slots)
    requested = sum(subject.weekly_hours for subject in subjects)
    if requested > capacity:
        unmet = fair_share_shortfalls(subjects, capacity)
        logger.info(
            "Grid generation over capacity: %d hours requested, %d cells available",
            requested,
            capacity,
        )
        return GridResult(
            outcome=Outcome.fatal,
            failures=[
                GenerationFailure(
                    kind="over_capacity",
                    subject_codes=[item.code for item in unmet],
                    unmet=unmet,
                )
            ],
        )

    grid = _WorkingGrid(days=day_names, slots=list(time_slots))
    without_block: list[str] = []
    for subject in priority_order(subjects):
        block_hours = subject.block_hours or 1
        if subject.type == SubjectType.lab and block_hours > 1:
            placed = _place_blocks(grid, subject, block_hours)
        else:
            placed = _place_units(grid, subject)
        if not placed:
            grid.clear(subject.code)
            without_block.append(subject.code)

    if without_block:
        logger.warning("No contiguous block for subject(s): %s", ", ".join(without_block))
        return GridResult(
            outcome=Outcome.partial,
            days=grid.to_days(),
            failures=[GenerationFailure(kind="no_contiguous_block", subject_codes=without_block)],
        )
    logger.info("Generated grid: %d subjects, %d/%d cells used", len(subjects), requested, capacity)
    return GridResult(outcome=Outcome.ok, days=grid.to_days())
