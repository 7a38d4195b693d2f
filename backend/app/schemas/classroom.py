from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.classroom import ClassroomStatus
from app.schemas.common import reject_explicit_nulls
from app.services.intervals import ensure_utc


class ClassroomBase(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    floor: int = Field(ge=1, le=200)
    capacity: int = Field(ge=1, le=1000)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        name = value.strip()
        if not name:
            raise ValueError("Name cannot be blank")
        return name


class ClassroomCreate(ClassroomBase):
    pass


class ClassroomUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    floor: int | None = Field(default=None, ge=1, le=200)
    capacity: int | None = Field(default=None, ge=1, le=1000)
    status: ClassroomStatus | None = None

    @model_validator(mode="before")
    @classmethod
    def reject_nulls(cls, data):
        return reject_explicit_nulls(data, ("name", "floor", "capacity", "status"))

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str | None) -> str | None:
        if value is None:
            return value
        name = value.strip()
        if not name:
            raise ValueError("Name cannot be blank")
        return name


class ClassroomOut(ClassroomBase):
    id: str
    tenant_id: str
    status: ClassroomStatus

    model_config = {"from_attributes": True}


class UnavailabilityCreate(BaseModel):
    classroom_id: str = Field(min_length=1, max_length=36)
    start_at: datetime
    end_at: datetime | None = None
    reason: str = Field(default="Maintenance", min_length=1, max_length=500)
    substitute_classroom_id: str | None = Field(default=None, max_length=36)

    @model_validator(mode="after")
    def validate_window(self) -> "UnavailabilityCreate":
        if self.end_at is not None and ensure_utc(self.end_at) <= ensure_utc(self.start_at):
            raise ValueError("end_at must be after start_at")
        if self.substitute_classroom_id and self.substitute_classroom_id == self.classroom_id:
            raise ValueError("A classroom cannot substitute for itself")
        return self


class UnavailabilityUpdate(BaseModel):
    # Explicit null clears the end date and makes the window open-ended.
    end_at: datetime | None = None
    reason: str | None = Field(default=None, min_length=1, max_length=500)
    substitute_classroom_id: str | None = Field(default=None, max_length=36)

    @model_validator(mode="before")
    @classmethod
    def reject_nulls(cls, data):
        return reject_explicit_nulls(data, ("reason",))


class UnavailabilityOut(BaseModel):
    id: str
    tenant_id: str
    classroom_id: str
    start_at: datetime
    end_at: datetime | None
    is_open_ended: bool
    reason: str
    substitute_classroom_id: str | None = None
    created_by: str | None = None

    model_config = {"from_attributes": True}


class SubstituteCandidate(BaseModel):
    id: str
    name: str
    floor: int
    capacity: int
    floor_distance: int
    capacity_difference: int
    score: float


class SubstituteSuggestions(BaseModel):
    classroom_id: str
    start_at: datetime
    end_at: datetime | None
    suggestions: list[SubstituteCandidate]


class BlockedClassroomsOut(BaseModel):
    start_at: datetime
    end_at: datetime | None
    classroom_ids: list[str]


class ActiveUnavailability(BaseModel):
    id: str
    reason: str
    start_at: datetime
    end_at: datetime | None
    substitute_classroom_id: str | None = None
    substitute_classroom_name: str | None = None


class OccupancyBooking(BaseModel):
    timetable_id: str
    year: int
    semester: int
    division: str
    day: str
    start_time: str
    end_time: str
    subject_code: str
    faculty_id: str | None = None


class ClassroomOccupancy(BaseModel):
    classroom_id: str
    name: str
    floor: int
    capacity: int
    status: ClassroomStatus
    unavailability: ActiveUnavailability | None = None
    occupied_by: list[OccupancyBooking] = Field(default_factory=list)


class OccupancyReport(BaseModel):
    at: datetime
    academic_period: str
    classrooms: list[ClassroomOccupancy]
