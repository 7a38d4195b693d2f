import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_roles, resolve_tenant
from app.api.routes.classrooms import get_tenant_classroom
from app.core.exceptions import ResourceNotFoundError, UnavailabilityOverlapError
from app.models.classroom import Classroom, ClassroomStatus
from app.models.classroom_unavailability import ClassroomUnavailability
from app.schemas.classroom import UnavailabilityCreate, UnavailabilityOut, UnavailabilityUpdate
from app.schemas.principal import Principal, Role
from app.services.audit import log_activity
from app.services.availability import find_overlapping_window, load_blocked_classrooms, sync_classroom_status
from app.services.intervals import ensure_utc
from app.services.locks import classroom_lock_key, scheduling_lock

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_tenant_record(db: Session, tenant_id: str, record_id: str) -> ClassroomUnavailability:
    record = db.get(ClassroomUnavailability, record_id)
    if record is None or record.tenant_id != tenant_id:
        raise ResourceNotFoundError("Classroom unavailability", record_id)
    return record


def _validate_substitute(
    db: Session,
    tenant_id: str,
    original: Classroom,
    substitute_id: str,
    record: ClassroomUnavailability | UnavailabilityCreate,
) -> Classroom:
    if substitute_id == original.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A classroom cannot substitute for itself")
    substitute = get_tenant_classroom(db, tenant_id, substitute_id)
    if substitute.capacity < original.capacity:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Substitute classroom {substitute.name} is too small ({substitute.capacity} < {original.capacity})",
        )
    # Loading the blocked set also brings statuses up to date.
    blocked = load_blocked_classrooms(db, tenant_id, record.start_at, record.end_at)
    if substitute.status != ClassroomStatus.available:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Substitute classroom {substitute.name} is {substitute.status.value}",
        )
    if substitute.id in blocked:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Substitute classroom {substitute.name} is unavailable during the requested window",
        )
    return substitute


@router.get("/", response_model=list[UnavailabilityOut])
def list_unavailability(
    classroom_id: str | None = Query(default=None, max_length=36),
    tenant_id: str = Depends(resolve_tenant),
    db: Session = Depends(get_db),
) -> list[UnavailabilityOut]:
    query = select(ClassroomUnavailability).where(ClassroomUnavailability.tenant_id == tenant_id)
    if classroom_id is not None:
        query = query.where(ClassroomUnavailability.classroom_id == classroom_id)
    return list(db.execute(query.order_by(ClassroomUnavailability.start_at)).scalars())


@router.post("/", response_model=UnavailabilityOut, status_code=status.HTTP_201_CREATED)
def create_unavailability(
    payload: UnavailabilityCreate,
    tenant_id: str = Depends(resolve_tenant),
    principal: Principal = Depends(require_roles(Role.admin, Role.super_admin)),
    db: Session = Depends(get_db),
) -> UnavailabilityOut:
    classroom = get_tenant_classroom(db, tenant_id, payload.classroom_id)
    if payload.substitute_classroom_id:
        _validate_substitute(db, tenant_id, classroom, payload.substitute_classroom_id, payload)

    with scheduling_lock(db, classroom_lock_key(classroom.id)):
        existing = find_overlapping_window(db, classroom.id, payload.start_at, payload.end_at)
        if existing is not None:
            raise UnavailabilityOverlapError(classroom.name, existing.id)

        record = ClassroomUnavailability(
            tenant_id=tenant_id,
            classroom_id=classroom.id,
            start_at=ensure_utc(payload.start_at),
            end_at=ensure_utc(payload.end_at) if payload.end_at is not None else None,
            reason=payload.reason,
            substitute_classroom_id=payload.substitute_classroom_id,
            created_by=principal.id,
        )
        db.add(record)
        db.flush()
        sync_classroom_status(db, classroom)
        log_activity(
            db,
            principal=principal,
            tenant_id=tenant_id,
            action="classroom.unavailability.create",
            entity_type="classroom",
            entity_id=classroom.id,
            details={
                "unavailability_id": record.id,
                "start_at": record.start_at.isoformat(),
                "end_at": record.end_at.isoformat() if record.end_at else None,
                "reason": record.reason,
            },
        )
        db.commit()

    db.refresh(record)
    logger.info(
        "Classroom %s unavailable from %s to %s",
        classroom.name,
        record.start_at.isoformat(),
        record.end_at.isoformat() if record.end_at else "further notice",
    )
    return record


@router.put("/{record_id}", response_model=UnavailabilityOut)
def update_unavailability(
    record_id: str,
    payload: UnavailabilityUpdate,
    tenant_id: str = Depends(resolve_tenant),
    principal: Principal = Depends(require_roles(Role.admin, Role.super_admin)),
    db: Session = Depends(get_db),
) -> UnavailabilityOut:
    record = _get_tenant_record(db, tenant_id, record_id)
    classroom = get_tenant_classroom(db, tenant_id, record.classroom_id)
    data = payload.model_dump(exclude_unset=True)

    with scheduling_lock(db, classroom_lock_key(classroom.id)):
        if "end_at" in data:
            end_at = ensure_utc(data["end_at"]) if data["end_at"] is not None else None
            if end_at is not None and end_at <= ensure_utc(record.start_at):
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="end_at must be after start_at")
            existing = find_overlapping_window(db, classroom.id, record.start_at, end_at, exclude_id=record.id)
            if existing is not None:
                raise UnavailabilityOverlapError(classroom.name, existing.id)
            record.end_at = end_at
        if data.get("reason") is not None:
            record.reason = data["reason"]
        if "substitute_classroom_id" in data:
            substitute_id = data["substitute_classroom_id"]
            if substitute_id:
                _validate_substitute(db, tenant_id, classroom, substitute_id, record)
            record.substitute_classroom_id = substitute_id

        sync_classroom_status(db, classroom)
        log_activity(
            db,
            principal=principal,
            tenant_id=tenant_id,
            action="classroom.unavailability.update",
            entity_type="classroom",
            entity_id=classroom.id,
            details={"unavailability_id": record.id, "fields": sorted(data)},
        )
        db.commit()

    db.refresh(record)
    return record


@router.delete("/{record_id}")
def delete_unavailability(
    record_id: str,
    tenant_id: str = Depends(resolve_tenant),
    principal: Principal = Depends(require_roles(Role.admin, Role.super_admin)),
    db: Session = Depends(get_db),
) -> dict:
    record = _get_tenant_record(db, tenant_id, record_id)
    classroom = get_tenant_classroom(db, tenant_id, record.classroom_id)

    with scheduling_lock(db, classroom_lock_key(classroom.id)):
        db.delete(record)
        sync_classroom_status(db, classroom)
        log_activity(
            db,
            principal=principal,
            tenant_id=tenant_id,
            action="classroom.unavailability.delete",
            entity_type="classroom",
            entity_id=classroom.id,
            details={"unavailability_id": record_id},
        )
        db.commit()
    logger.info("Unavailability %s removed from classroom %s", record_id, classroom.name)
    return {"success": True}
