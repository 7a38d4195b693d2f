from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.subject import SubjectType
from app.models.timetable import TimetableStatus
from app.schemas.conflict import Conflict

DAY_ORDER = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
DAY_VALUES = set(DAY_ORDER)

DAY_SHORT_MAP = {
    "Mon": "Monday",
    "Tue": "Tuesday",
    "Wed": "Wednesday",
    "Thu": "Thursday",
    "Fri": "Friday",
    "Sat": "Saturday",
    "Sun": "Sunday",
}

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def parse_time_to_minutes(value: str) -> int:
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM 24-hour format")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def normalize_day(value: str) -> str:
    day = value.strip()
    return DAY_SHORT_MAP.get(day, day)


class Outcome(str, Enum):
    ok = "ok"
    partial = "partial"
    fatal = "fatal"


class TimeSlot(BaseModel):
    start_time: str
    end_time: str

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time_format(cls, value: str) -> str:
        if not TIME_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM 24-hour format")
        return value

    @model_validator(mode="after")
    def validate_order(self) -> "TimeSlot":
        if parse_time_to_minutes(self.end_time) <= parse_time_to_minutes(self.start_time):
            raise ValueError("end_time must be after start_time")
        return self

    @property
    def duration_minutes(self) -> int:
        return parse_time_to_minutes(self.end_time) - parse_time_to_minutes(self.start_time)


class SlotEntry(TimeSlot):
    subject_code: str = Field(default="", max_length=50)
    subject_type: SubjectType | None = None
    faculty_id: str | None = Field(default=None, max_length=36)
    # Overrides the timetable classroom, e.g. when a substitute room was accepted.
    classroom_id: str | None = Field(default=None, max_length=36)

    @property
    def occupied(self) -> bool:
        return bool(self.subject_code)


class DaySchedule(BaseModel):
    day: str
    slots: list[SlotEntry] = Field(default_factory=list, max_length=24)

    @field_validator("day")
    @classmethod
    def validate_day(cls, value: str) -> str:
        day = normalize_day(value)
        if day not in DAY_VALUES:
            raise ValueError("Invalid day value")
        return day


def validate_unique_days(days: list[DaySchedule] | list[str]) -> None:
    names = [item if isinstance(item, str) else item.day for item in days]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ValueError(f"Duplicate day entries: {', '.join(duplicates)}")


class SubjectQuota(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    type: SubjectType = SubjectType.core
    weekly_hours: int = Field(ge=1)
    block_hours: int | None = Field(default=None, ge=1, le=8)


class UnmetSubject(BaseModel):
    code: str
    requested_hours: int
    placeable_hours: int
    shortfall: int


class GenerationFailure(BaseModel):
    kind: Literal["over_capacity", "no_contiguous_block"]
    subject_codes: list[str]
    unmet: list[UnmetSubject] = Field(default_factory=list)


class GridResult(BaseModel):
    outcome: Outcome
    days: list[DaySchedule] | None = None
    failures: list[GenerationFailure] = Field(default_factory=list)


class UnresolvedAssignment(BaseModel):
    day: str
    start_time: str
    end_time: str
    subject_code: str
    reason: Literal["no_preference", "all_candidates_busy", "unknown_subject"]


class AssignmentResult(BaseModel):
    outcome: Outcome
    days: list[DaySchedule]
    unresolved: list[UnresolvedAssignment] = Field(default_factory=list)


class TimetableSnapshot(BaseModel):
    """The slice of a timetable the conflict checker and resolver read."""

    id: str | None = None
    classroom_id: str | None = None
    days: list[DaySchedule] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class TimetableBase(BaseModel):
    year: int = Field(ge=1, le=6)
    semester: int = Field(ge=1, le=12)
    division: str = Field(min_length=1, max_length=20)
    academic_period: str = Field(min_length=1, max_length=20)
    classroom_id: str | None = None


class TimetableCreate(TimetableBase):
    days: list[DaySchedule] = Field(default_factory=list, max_length=7)

    @model_validator(mode="after")
    def validate_days(self) -> "TimetableCreate":
        validate_unique_days(self.days)
        return self


class TimetableUpdate(BaseModel):
    classroom_id: str | None = None
    days: list[DaySchedule] | None = Field(default=None, max_length=7)

    @model_validator(mode="after")
    def validate_days(self) -> "TimetableUpdate":
        if self.days is not None:
            validate_unique_days(self.days)
        return self


class TimetableOut(TimetableBase):
    id: str
    tenant_id: str
    days: list[DaySchedule]
    status: TimetableStatus
    published_at: datetime | None = None
    revision: int
    history: list[dict] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class GenerateTimetableRequest(TimetableBase):
    days: list[str] | None = Field(default=None, max_length=7)
    time_slots: list[TimeSlot] | None = Field(default=None, max_length=24)
    assign_faculty: bool = False
    # Fail with NoContiguousBlockError instead of returning a partial grid.
    require_complete: bool = False

    @field_validator("days")
    @classmethod
    def validate_day_names(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return value
        cleaned = [normalize_day(day) for day in value if day.strip()]
        invalid = [day for day in cleaned if day not in DAY_VALUES]
        if invalid:
            raise ValueError(f"Invalid day value(s): {', '.join(invalid)}")
        validate_unique_days(cleaned)
        return cleaned


class GenerateTimetableResponse(BaseModel):
    outcome: Outcome
    days: list[DaySchedule] | None = None
    failures: list[GenerationFailure] = Field(default_factory=list)
    unresolved: list[UnresolvedAssignment] = Field(default_factory=list)


class AssignFacultyResponse(BaseModel):
    outcome: Outcome
    timetable: TimetableOut
    unresolved: list[UnresolvedAssignment] = Field(default_factory=list)


class PublishResult(BaseModel):
    status: Literal["published", "conflicts_found"]
    timetable: TimetableOut
    conflicts: list[Conflict] = Field(default_factory=list)


class UnpublishRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)
