from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class FacultyCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    department: str = Field(min_length=1, max_length=200)


class FacultyOut(FacultyCreate):
    id: str
    tenant_id: str

    model_config = {"from_attributes": True}


class PreferenceSubmit(BaseModel):
    subject_id: str = Field(min_length=1, max_length=36)
    academic_period: str = Field(min_length=1, max_length=20)
    comment: str | None = Field(default=None, max_length=500)
    # Administrators submit on behalf of a faculty member; faculty principals submit for themselves.
    faculty_id: str | None = Field(default=None, max_length=36)


class PreferenceOut(BaseModel):
    id: str
    tenant_id: str
    faculty_id: str
    subject_id: str
    subject_code: str
    academic_period: str
    comment: str | None = None
    submitted_at: datetime

    model_config = {"from_attributes": True}


class PreferenceInput(BaseModel):
    """A faculty preference as consumed by the assignment resolver."""

    faculty_id: str
    subject_code: str
    academic_period: str | None = None
    submitted_at: datetime

    model_config = {"from_attributes": True}
