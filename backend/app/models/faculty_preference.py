import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class FacultyPreference(Base):
    __tablename__ = "faculty_preferences"
    __table_args__ = (
        UniqueConstraint("faculty_id", "subject_id", "academic_period", name="uq_faculty_preference_period"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    faculty_id: Mapped[str] = mapped_column(ForeignKey("faculty.id"), index=True, nullable=False)
    subject_id: Mapped[str] = mapped_column(ForeignKey("subjects.id"), nullable=False)
    subject_code: Mapped[str] = mapped_column(String(50), nullable=False)
    academic_period: Mapped[str] = mapped_column(String(20), index=True, nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
