from pydantic import BaseModel, Field, model_validator

from app.models.subject import SubjectType
from app.schemas.common import reject_explicit_nulls


class SubjectBase(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=200)
    type: SubjectType = SubjectType.core
    total_duration: int = Field(ge=1, le=1000)
    block_hours: int | None = Field(default=None, ge=1, le=8)
    year: int = Field(ge=1, le=6)
    semester: int = Field(ge=1, le=12)
    academic_period: str = Field(min_length=1, max_length=20)

    @model_validator(mode="after")
    def validate_block(self) -> "SubjectBase":
        self.code = self.code.strip().upper()
        if self.block_hours is not None and self.type != SubjectType.lab:
            raise ValueError("Only lab subjects can require a contiguous block")
        return self


class SubjectCreate(SubjectBase):
    pass


class SubjectUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    type: SubjectType | None = None
    total_duration: int | None = Field(default=None, ge=1, le=1000)
    # Explicit null on block_hours drops the contiguous-block requirement.
    block_hours: int | None = Field(default=None, ge=1, le=8)

    @model_validator(mode="before")
    @classmethod
    def reject_nulls(cls, data):
        return reject_explicit_nulls(data, ("name", "type", "total_duration"))


class SubjectOut(SubjectBase):
    id: str
    tenant_id: str
    weekly_hours: int
    archived: bool

    model_config = {"from_attributes": True}
