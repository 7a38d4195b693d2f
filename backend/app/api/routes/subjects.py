from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_roles, resolve_tenant
from app.core.config import get_settings
from app.core.exceptions import ResourceNotFoundError
from app.models.subject import Subject, SubjectType, weekly_hours_for
from app.schemas.principal import Principal, Role
from app.schemas.subject import SubjectCreate, SubjectOut, SubjectUpdate
from app.services.audit import log_activity

router = APIRouter()


def _get_tenant_subject(db: Session, tenant_id: str, subject_id: str) -> Subject:
    subject = db.get(Subject, subject_id)
    if subject is None or subject.tenant_id != tenant_id:
        raise ResourceNotFoundError("Subject", subject_id)
    return subject


@router.get("/", response_model=list[SubjectOut])
def list_subjects(
    academic_period: str | None = Query(default=None, max_length=20),
    year: int | None = Query(default=None, ge=1, le=6),
    semester: int | None = Query(default=None, ge=1, le=12),
    include_archived: bool = False,
    tenant_id: str = Depends(resolve_tenant),
    db: Session = Depends(get_db),
) -> list[SubjectOut]:
    query = select(Subject).where(Subject.tenant_id == tenant_id)
    if academic_period is not None:
        query = query.where(Subject.academic_period == academic_period)
    if year is not None:
        query = query.where(Subject.year == year)
    if semester is not None:
        query = query.where(Subject.semester == semester)
    if not include_archived:
        query = query.where(Subject.archived.is_(False))
    return list(db.execute(query.order_by(Subject.code)).scalars())


@router.post("/", response_model=SubjectOut, status_code=status.HTTP_201_CREATED)
def create_subject(
    payload: SubjectCreate,
    tenant_id: str = Depends(resolve_tenant),
    principal: Principal = Depends(require_roles(Role.admin, Role.super_admin)),
    db: Session = Depends(get_db),
) -> SubjectOut:
    existing = db.execute(
        select(Subject).where(
            Subject.tenant_id == tenant_id,
            Subject.code == payload.code,
            Subject.year == payload.year,
            Subject.semester == payload.semester,
            Subject.academic_period == payload.academic_period,
        )
    ).scalar_one_or_none()
    if existing is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Subject code already exists for this period")

    subject = Subject(
        tenant_id=tenant_id,
        weekly_hours=weekly_hours_for(payload.total_duration, get_settings().term_weeks),
        archived=False,
        **payload.model_dump(),
    )
    db.add(subject)
    db.flush()
    log_activity(
        db,
        principal=principal,
        tenant_id=tenant_id,
        action="subject.create",
        entity_type="subject",
        entity_id=subject.id,
        details={"code": subject.code, "weekly_hours": subject.weekly_hours},
    )
    db.commit()
    db.refresh(subject)
    return subject


@router.put("/{subject_id}", response_model=SubjectOut)
def update_subject(
    subject_id: str,
    payload: SubjectUpdate,
    tenant_id: str = Depends(resolve_tenant),
    principal: Principal = Depends(require_roles(Role.admin, Role.super_admin)),
    db: Session = Depends(get_db),
) -> SubjectOut:
    subject = _get_tenant_subject(db, tenant_id, subject_id)
    data = payload.model_dump(exclude_unset=True)
    subject_type = data.get("type", subject.type)
    block_hours = data.get("block_hours", subject.block_hours)
    if block_hours is not None and subject_type != SubjectType.lab:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only lab subjects can require a contiguous block",
        )

    for key, value in data.items():
        setattr(subject, key, value)
    if "total_duration" in data:
        subject.weekly_hours = weekly_hours_for(subject.total_duration, get_settings().term_weeks)
    log_activity(
        db,
        principal=principal,
        tenant_id=tenant_id,
        action="subject.update",
        entity_type="subject",
        entity_id=subject.id,
        details={"fields": sorted(data)},
    )
    db.commit()
    db.refresh(subject)
    return subject


@router.delete("/{subject_id}")
def archive_subject(
    subject_id: str,
    tenant_id: str = Depends(resolve_tenant),
    principal: Principal = Depends(require_roles(Role.admin, Role.super_admin)),
    db: Session = Depends(get_db),
) -> dict:
    # Preferences and published timetables keep pointing at archived subjects.
    subject = _get_tenant_subject(db, tenant_id, subject_id)
    subject.archived = True
    log_activity(
        db,
        principal=principal,
        tenant_id=tenant_id,
        action="subject.archive",
        entity_type="subject",
        entity_id=subject.id,
        details={"code": subject.code},
    )
    db.commit()
    return {"success": True}
