import logging

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.api.deps import get_current_principal, get_db, require_roles, resolve_tenant
from app.core.config import get_settings
from app.core.exceptions import (
    ConflictsFoundError,
    NoContiguousBlockError,
    OverCapacityError,
    ResourceNotFoundError,
    StaleStateError,
)
from app.models.classroom import Classroom
from app.models.faculty_preference import FacultyPreference
from app.models.subject import Subject
from app.models.timetable import Timetable, TimetableStatus
from app.schemas.conflict import ConflictReport
from app.schemas.faculty import PreferenceInput
from app.schemas.principal import Principal, Role
from app.schemas.timetable import (
    AssignFacultyResponse,
    DaySchedule,
    GenerateTimetableRequest,
    GenerateTimetableResponse,
    Outcome,
    SubjectQuota,
    TimeSlot,
    TimetableCreate,
    TimetableOut,
    TimetableUpdate,
    UnpublishRequest,
)
from app.services import lifecycle
from app.services.audit import log_activity
from app.services.faculty_assignment import assign_faculty
from app.services.grid_generator import generate_grid

logger = logging.getLogger(__name__)

router = APIRouter()

READ_ONLY_ROLES = {Role.faculty, Role.student}


def _dump_days(days: list[DaySchedule]) -> list[dict]:
    return [day.model_dump(mode="json") for day in days]


def _ensure_classroom(db: Session, tenant_id: str, classroom_id: str | None) -> None:
    if classroom_id is None:
        return
    classroom = db.get(Classroom, classroom_id)
    if classroom is None or classroom.tenant_id != tenant_id:
        raise ResourceNotFoundError("Classroom", classroom_id)


def _ensure_draft(timetable: Timetable) -> None:
    if timetable.status == TimetableStatus.published:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Published timetables cannot be edited; unpublish first",
        )


def _commit_versioned(db: Session) -> None:
    try:
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise StaleStateError("Timetable was modified concurrently; reload and retry") from exc


def _subject_quotas(
    db: Session,
    tenant_id: str,
    *,
    year: int,
    semester: int,
    academic_period: str,
) -> list[Subject]:
    return list(
        db.execute(
            select(Subject)
            .where(
                Subject.tenant_id == tenant_id,
                Subject.year == year,
                Subject.semester == semester,
                Subject.academic_period == academic_period,
                Subject.archived.is_(False),
            )
            .order_by(Subject.created_at, Subject.code)
        ).scalars()
    )


def _preference_inputs(db: Session, tenant_id: str, academic_period: str) -> list[PreferenceInput]:
    rows = db.execute(
        select(FacultyPreference).where(
            FacultyPreference.tenant_id == tenant_id,
            FacultyPreference.academic_period == academic_period,
        )
    ).scalars()
    return [PreferenceInput.model_validate(row) for row in rows]


@router.post("/generate", response_model=GenerateTimetableResponse)
def generate_timetable(
    payload: GenerateTimetableRequest,
    tenant_id: str = Depends(resolve_tenant),
    principal: Principal = Depends(require_roles(Role.admin, Role.super_admin)),
    db: Session = Depends(get_db),
) -> GenerateTimetableResponse:
    """Build a grid for one division from its subjects; nothing is stored."""
    settings = get_settings()
    subjects = _subject_quotas(
        db,
        tenant_id,
        year=payload.year,
        semester=payload.semester,
        academic_period=payload.academic_period,
    )
    if not subjects:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No active subjects for this period")

    days = payload.days or settings.schedule_days
    time_slots = payload.time_slots or [
        TimeSlot(start_time=item.start_time, end_time=item.end_time) for item in settings.schedule_time_slots
    ]
    quotas = [
        SubjectQuota(code=item.code, type=item.type, weekly_hours=item.weekly_hours, block_hours=item.block_hours)
        for item in subjects
    ]
    result = generate_grid(quotas, days, time_slots)
    if result.outcome == Outcome.fatal:
        unmet = [entry.model_dump() for failure in result.failures for entry in failure.unmet]
        raise OverCapacityError(unmet)
    if result.outcome == Outcome.partial and payload.require_complete:
        codes = [code for failure in result.failures for code in failure.subject_codes]
        raise NoContiguousBlockError(codes)

    grid = result.days or []
    if payload.classroom_id is not None:
        _ensure_classroom(db, tenant_id, payload.classroom_id)

    outcome = result.outcome
    unresolved = []
    if payload.assign_faculty:
        published = lifecycle.load_published(db, tenant_id, payload.academic_period)
        assignment = assign_faculty(
            grid,
            {item.code: item.weekly_hours for item in subjects},
            _preference_inputs(db, tenant_id, payload.academic_period),
            [lifecycle.snapshot_of(item) for item in published],
            academic_period=payload.academic_period,
        )
        grid = assignment.days
        unresolved = assignment.unresolved
        if assignment.outcome == Outcome.partial:
            outcome = Outcome.partial

    logger.info(
        "Generated timetable grid for %s year %s division %s: %s",
        payload.academic_period,
        payload.year,
        payload.division,
        outcome.value,
    )
    return GenerateTimetableResponse(outcome=outcome, days=grid, failures=result.failures, unresolved=unresolved)


@router.post("/", response_model=TimetableOut, status_code=status.HTTP_201_CREATED)
def create_timetable(
    payload: TimetableCreate,
    tenant_id: str = Depends(resolve_tenant),
    principal: Principal = Depends(require_roles(Role.admin, Role.super_admin)),
    db: Session = Depends(get_db),
) -> TimetableOut:
    _ensure_classroom(db, tenant_id, payload.classroom_id)
    timetable = Timetable(
        tenant_id=tenant_id,
        year=payload.year,
        semester=payload.semester,
        division=payload.division,
        academic_period=payload.academic_period,
        classroom_id=payload.classroom_id,
        days=_dump_days(payload.days),
        status=TimetableStatus.draft,
        history=[],
        created_by=principal.id,
    )
    timetable.add_history_entry("Created", principal.id)
    db.add(timetable)
    db.flush()
    log_activity(
        db,
        principal=principal,
        tenant_id=tenant_id,
        action="timetable.create",
        entity_type="timetable",
        entity_id=timetable.id,
        details={"academic_period": timetable.academic_period, "division": timetable.division},
    )
    db.commit()
    db.refresh(timetable)
    return timetable


@router.get("/", response_model=list[TimetableOut])
def list_timetables(
    academic_period: str | None = Query(default=None, max_length=20),
    year: int | None = Query(default=None, ge=1, le=6),
    semester: int | None = Query(default=None, ge=1, le=12),
    division: str | None = Query(default=None, max_length=20),
    timetable_status: TimetableStatus | None = Query(default=None, alias="status"),
    tenant_id: str = Depends(resolve_tenant),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> list[TimetableOut]:
    query = select(Timetable).where(Timetable.tenant_id == tenant_id)
    if principal.role in READ_ONLY_ROLES:
        query = query.where(Timetable.status == TimetableStatus.published)
    elif timetable_status is not None:
        query = query.where(Timetable.status == timetable_status)
    if academic_period is not None:
        query = query.where(Timetable.academic_period == academic_period)
    if year is not None:
        query = query.where(Timetable.year == year)
    if semester is not None:
        query = query.where(Timetable.semester == semester)
    if division is not None:
        query = query.where(Timetable.division == division)
    return list(
        db.execute(query.order_by(Timetable.academic_period, Timetable.year, Timetable.division)).scalars()
    )


@router.get("/{timetable_id}", response_model=TimetableOut)
def get_timetable(
    timetable_id: str,
    tenant_id: str = Depends(resolve_tenant),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> TimetableOut:
    timetable = db.get(Timetable, timetable_id)
    if timetable is None or timetable.tenant_id != tenant_id:
        raise ResourceNotFoundError("Timetable", timetable_id)
    if principal.role in READ_ONLY_ROLES and timetable.status != TimetableStatus.published:
        raise ResourceNotFoundError("Timetable", timetable_id)
    return timetable


@router.put("/{timetable_id}", response_model=TimetableOut)
def update_timetable(
    timetable_id: str,
    payload: TimetableUpdate,
    principal: Principal = Depends(require_roles(Role.admin, Role.super_admin)),
    db: Session = Depends(get_db),
) -> TimetableOut:
    timetable = lifecycle.load_managed_timetable(db, timetable_id, principal)
    _ensure_draft(timetable)
    data = payload.model_dump(exclude_unset=True)
    if "classroom_id" in data:
        _ensure_classroom(db, timetable.tenant_id, payload.classroom_id)
        timetable.classroom_id = payload.classroom_id
    if payload.days is not None:
        timetable.days = _dump_days(payload.days)
    timetable.add_history_entry("Updated", principal.id, {"fields": sorted(data)})
    log_activity(
        db,
        principal=principal,
        tenant_id=timetable.tenant_id,
        action="timetable.update",
        entity_type="timetable",
        entity_id=timetable.id,
        details={"fields": sorted(data)},
    )
    _commit_versioned(db)
    db.refresh(timetable)
    return timetable


@router.post("/{timetable_id}/assign-faculty", response_model=AssignFacultyResponse)
def assign_timetable_faculty(
    timetable_id: str,
    principal: Principal = Depends(require_roles(Role.admin, Role.super_admin)),
    db: Session = Depends(get_db),
) -> AssignFacultyResponse:
    timetable = lifecycle.load_managed_timetable(db, timetable_id, principal)
    _ensure_draft(timetable)
    subjects = _subject_quotas(
        db,
        timetable.tenant_id,
        year=timetable.year,
        semester=timetable.semester,
        academic_period=timetable.academic_period,
    )
    published = lifecycle.load_published(
        db, timetable.tenant_id, timetable.academic_period, exclude_id=timetable.id
    )
    result = assign_faculty(
        lifecycle.snapshot_of(timetable).days,
        {item.code: item.weekly_hours for item in subjects},
        _preference_inputs(db, timetable.tenant_id, timetable.academic_period),
        [lifecycle.snapshot_of(item) for item in published],
        academic_period=timetable.academic_period,
        timetable_id=timetable.id,
    )
    timetable.days = _dump_days(result.days)
    timetable.add_history_entry(
        "Faculty assigned",
        principal.id,
        {"outcome": result.outcome.value, "unresolved": len(result.unresolved)},
    )
    log_activity(
        db,
        principal=principal,
        tenant_id=timetable.tenant_id,
        action="timetable.assign_faculty",
        entity_type="timetable",
        entity_id=timetable.id,
        details={"outcome": result.outcome.value, "unresolved": len(result.unresolved)},
    )
    _commit_versioned(db)
    db.refresh(timetable)
    return AssignFacultyResponse(
        outcome=result.outcome,
        timetable=TimetableOut.model_validate(timetable),
        unresolved=result.unresolved,
    )


@router.post("/{timetable_id}/check-conflicts", response_model=ConflictReport)
def check_timetable_conflicts(
    timetable_id: str,
    principal: Principal = Depends(require_roles(Role.admin, Role.super_admin)),
    db: Session = Depends(get_db),
) -> ConflictReport:
    timetable = lifecycle.load_managed_timetable(db, timetable_id, principal)
    return lifecycle.conflict_report(db, timetable)


@router.post("/{timetable_id}/publish", response_model=TimetableOut)
def publish_timetable(
    timetable_id: str,
    principal: Principal = Depends(require_roles(Role.admin, Role.super_admin)),
    db: Session = Depends(get_db),
) -> TimetableOut:
    result = lifecycle.publish(db, timetable_id, principal)
    if result.status == "conflicts_found":
        raise ConflictsFoundError([item.model_dump(mode="json") for item in result.conflicts])
    return result.timetable


@router.post("/{timetable_id}/unpublish", response_model=TimetableOut)
def unpublish_timetable(
    timetable_id: str,
    payload: UnpublishRequest | None = Body(default=None),
    principal: Principal = Depends(require_roles(Role.admin, Role.super_admin)),
    db: Session = Depends(get_db),
) -> TimetableOut:
    reason = payload.reason if payload is not None else None
    return lifecycle.unpublish(db, timetable_id, principal, reason=reason)
