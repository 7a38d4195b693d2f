from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_roles, resolve_tenant
from app.core.config import get_settings
from app.core.exceptions import ResourceNotFoundError
from app.models.classroom import Classroom, ClassroomStatus
from app.models.classroom_unavailability import ClassroomUnavailability
from app.schemas.classroom import (
    BlockedClassroomsOut,
    ClassroomCreate,
    ClassroomOut,
    ClassroomUpdate,
    OccupancyReport,
    SubstituteSuggestions,
)
from app.schemas.principal import Principal, Role
from app.services.audit import log_activity
from app.services.availability import (
    covering_windows,
    load_blocked_classrooms,
    refresh_classroom_statuses,
    sync_classroom_status,
)
from app.services.intervals import ensure_utc, utc_now
from app.services.occupancy import load_occupancy
from app.services.substitution import suggest_substitutes

router = APIRouter()


def get_tenant_classroom(db: Session, tenant_id: str, classroom_id: str) -> Classroom:
    classroom = db.get(Classroom, classroom_id)
    if classroom is None or classroom.tenant_id != tenant_id:
        raise ResourceNotFoundError("Classroom", classroom_id)
    return classroom


def _check_window(start_at: datetime, end_at: datetime | None) -> None:
    if end_at is not None and ensure_utc(end_at) <= ensure_utc(start_at):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="end_at must be after start_at")


def _ensure_unique_name(db: Session, tenant_id: str, name: str, exclude_id: str | None = None) -> None:
    query = select(Classroom).where(Classroom.tenant_id == tenant_id, Classroom.name == name)
    if exclude_id is not None:
        query = query.where(Classroom.id != exclude_id)
    if db.execute(query).scalar_one_or_none() is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Classroom name already exists")


@router.get("/", response_model=list[ClassroomOut])
def list_classrooms(
    floor: int | None = Query(default=None, ge=1),
    classroom_status: ClassroomStatus | None = Query(default=None, alias="status"),
    tenant_id: str = Depends(resolve_tenant),
    db: Session = Depends(get_db),
) -> list[ClassroomOut]:
    if refresh_classroom_statuses(db, tenant_id):
        db.commit()
    query = select(Classroom).where(Classroom.tenant_id == tenant_id)
    if floor is not None:
        query = query.where(Classroom.floor == floor)
    if classroom_status is not None:
        query = query.where(Classroom.status == classroom_status)
    return list(db.execute(query.order_by(Classroom.floor, Classroom.name)).scalars())


@router.post("/", response_model=ClassroomOut, status_code=status.HTTP_201_CREATED)
def create_classroom(
    payload: ClassroomCreate,
    tenant_id: str = Depends(resolve_tenant),
    principal: Principal = Depends(require_roles(Role.admin, Role.super_admin)),
    db: Session = Depends(get_db),
) -> ClassroomOut:
    _ensure_unique_name(db, tenant_id, payload.name)
    classroom = Classroom(tenant_id=tenant_id, status=ClassroomStatus.available, **payload.model_dump())
    db.add(classroom)
    db.flush()
    log_activity(
        db,
        principal=principal,
        tenant_id=tenant_id,
        action="classroom.create",
        entity_type="classroom",
        entity_id=classroom.id,
        details={"name": classroom.name, "floor": classroom.floor, "capacity": classroom.capacity},
    )
    db.commit()
    db.refresh(classroom)
    return classroom


@router.get("/blocked", response_model=BlockedClassroomsOut)
def get_blocked_classrooms(
    start_at: datetime,
    end_at: datetime | None = None,
    tenant_id: str = Depends(resolve_tenant),
    db: Session = Depends(get_db),
) -> BlockedClassroomsOut:
    _check_window(start_at, end_at)
    blocked = load_blocked_classrooms(db, tenant_id, start_at, end_at)
    db.commit()
    return BlockedClassroomsOut(start_at=start_at, end_at=end_at, classroom_ids=sorted(blocked))


@router.get("/occupancy", response_model=OccupancyReport)
def get_occupancy(
    academic_period: str = Query(min_length=1, max_length=20),
    at: datetime | None = None,
    tenant_id: str = Depends(resolve_tenant),
    db: Session = Depends(get_db),
) -> OccupancyReport:
    instant = ensure_utc(at) if at is not None else utc_now()
    if refresh_classroom_statuses(db, tenant_id):
        db.commit()
    classrooms = load_occupancy(db, tenant_id, academic_period, instant)
    return OccupancyReport(at=instant, academic_period=academic_period, classrooms=classrooms)


@router.get("/{classroom_id}", response_model=ClassroomOut)
def get_classroom(
    classroom_id: str,
    tenant_id: str = Depends(resolve_tenant),
    db: Session = Depends(get_db),
) -> ClassroomOut:
    classroom = get_tenant_classroom(db, tenant_id, classroom_id)
    previous = classroom.status
    if sync_classroom_status(db, classroom) != previous:
        db.commit()
    return classroom


@router.get("/{classroom_id}/suggestions", response_model=SubstituteSuggestions)
def get_substitute_suggestions(
    classroom_id: str,
    start_at: datetime,
    end_at: datetime | None = None,
    tenant_id: str = Depends(resolve_tenant),
    principal: Principal = Depends(require_roles(Role.admin, Role.super_admin)),
    db: Session = Depends(get_db),
) -> SubstituteSuggestions:
    _check_window(start_at, end_at)
    suggestions = suggest_substitutes(
        db,
        tenant_id=tenant_id,
        classroom_id=classroom_id,
        start_at=start_at,
        end_at=end_at,
        limit=get_settings().substitute_suggestion_limit,
    )
    db.commit()
    return SubstituteSuggestions(
        classroom_id=classroom_id,
        start_at=start_at,
        end_at=end_at,
        suggestions=suggestions,
    )


@router.put("/{classroom_id}", response_model=ClassroomOut)
def update_classroom(
    classroom_id: str,
    payload: ClassroomUpdate,
    tenant_id: str = Depends(resolve_tenant),
    principal: Principal = Depends(require_roles(Role.admin, Role.super_admin)),
    db: Session = Depends(get_db),
) -> ClassroomOut:
    classroom = get_tenant_classroom(db, tenant_id, classroom_id)
    data = payload.model_dump(exclude_unset=True)
    if "name" in data:
        _ensure_unique_name(db, tenant_id, data["name"], exclude_id=classroom_id)

    requested_status = data.get("status")
    if requested_status == ClassroomStatus.unavailable:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Mark a classroom unavailable by creating an unavailability window",
        )
    if requested_status == ClassroomStatus.available:
        records = db.execute(
            select(ClassroomUnavailability).where(ClassroomUnavailability.classroom_id == classroom_id)
        ).scalars()
        if covering_windows(records, utc_now()):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Classroom has an active unavailability window",
            )

    for key, value in data.items():
        setattr(classroom, key, value)
    if data:
        log_activity(
            db,
            principal=principal,
            tenant_id=tenant_id,
            action="classroom.update",
            entity_type="classroom",
            entity_id=classroom.id,
            details={key: (value.value if hasattr(value, "value") else value) for key, value in data.items()},
        )
    db.commit()
    db.refresh(classroom)
    return classroom


@router.delete("/{classroom_id}")
def delete_classroom(
    classroom_id: str,
    tenant_id: str = Depends(resolve_tenant),
    principal: Principal = Depends(require_roles(Role.admin, Role.super_admin)),
    db: Session = Depends(get_db),
) -> dict:
    classroom = get_tenant_classroom(db, tenant_id, classroom_id)
    referenced = db.execute(
        select(ClassroomUnavailability.id).where(
            or_(
                ClassroomUnavailability.classroom_id == classroom_id,
                ClassroomUnavailability.substitute_classroom_id == classroom_id,
            )
        ).limit(1)
    ).first()
    if referenced is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Cannot delete classroom with existing unavailability records",
        )
    log_activity(
        db,
        principal=principal,
        tenant_id=tenant_id,
        action="classroom.delete",
        entity_type="classroom",
        entity_id=classroom.id,
        details={"name": classroom.name},
    )
    db.delete(classroom)
    db.commit()
    return {"success": True}
