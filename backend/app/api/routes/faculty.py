from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_roles, resolve_tenant
from app.core.exceptions import PermissionDeniedError, ResourceNotFoundError
from app.models.faculty import Faculty
from app.models.faculty_preference import FacultyPreference
from app.models.subject import Subject
from app.schemas.faculty import FacultyCreate, FacultyOut, PreferenceOut, PreferenceSubmit
from app.schemas.principal import Principal, Role
from app.services.audit import log_activity
from app.services.intervals import utc_now

router = APIRouter()


@router.get("/", response_model=list[FacultyOut])
def list_faculty(
    department: str | None = Query(default=None, max_length=200),
    tenant_id: str = Depends(resolve_tenant),
    principal: Principal = Depends(require_roles(Role.admin, Role.super_admin, Role.faculty)),
    db: Session = Depends(get_db),
) -> list[FacultyOut]:
    query = select(Faculty).where(Faculty.tenant_id == tenant_id)
    if department is not None:
        query = query.where(Faculty.department == department)
    return list(db.execute(query.order_by(Faculty.name)).scalars())


@router.post("/", response_model=FacultyOut, status_code=status.HTTP_201_CREATED)
def create_faculty(
    payload: FacultyCreate,
    tenant_id: str = Depends(resolve_tenant),
    principal: Principal = Depends(require_roles(Role.admin, Role.super_admin)),
    db: Session = Depends(get_db),
) -> FacultyOut:
    email = str(payload.email).strip().lower()
    existing = db.execute(
        select(Faculty).where(Faculty.tenant_id == tenant_id, func.lower(Faculty.email) == email)
    ).scalar_one_or_none()
    if existing is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Faculty email already exists")

    faculty = Faculty(
        tenant_id=tenant_id,
        name=payload.name.strip(),
        email=email,
        department=payload.department.strip(),
    )
    db.add(faculty)
    db.flush()
    log_activity(
        db,
        principal=principal,
        tenant_id=tenant_id,
        action="faculty.create",
        entity_type="faculty",
        entity_id=faculty.id,
        details={"name": faculty.name, "department": faculty.department},
    )
    db.commit()
    db.refresh(faculty)
    return faculty


@router.post("/preferences", response_model=PreferenceOut)
def submit_preference(
    payload: PreferenceSubmit,
    tenant_id: str = Depends(resolve_tenant),
    principal: Principal = Depends(require_roles(Role.admin, Role.super_admin, Role.faculty)),
    db: Session = Depends(get_db),
) -> PreferenceOut:
    """Record that a faculty member wants to teach a subject in a period.

    Faculty principals submit for themselves (the token subject is their
    faculty id). Resubmitting updates the comment but keeps the original
    ``submitted_at``, which is the tiebreaker during assignment.
    """
    if principal.role == Role.faculty:
        if payload.faculty_id and payload.faculty_id != principal.id:
            raise PermissionDeniedError("Faculty can only submit their own preferences")
        faculty_id = principal.id
    else:
        if not payload.faculty_id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="faculty_id is required")
        faculty_id = payload.faculty_id

    faculty = db.get(Faculty, faculty_id)
    if faculty is None or faculty.tenant_id != tenant_id:
        raise ResourceNotFoundError("Faculty", faculty_id)
    subject = db.get(Subject, payload.subject_id)
    if subject is None or subject.tenant_id != tenant_id:
        raise ResourceNotFoundError("Subject", payload.subject_id)
    if subject.archived:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Subject is archived")

    preference = db.execute(
        select(FacultyPreference).where(
            FacultyPreference.faculty_id == faculty.id,
            FacultyPreference.subject_id == subject.id,
            FacultyPreference.academic_period == payload.academic_period,
        )
    ).scalar_one_or_none()
    if preference is None:
        preference = FacultyPreference(
            tenant_id=tenant_id,
            faculty_id=faculty.id,
            subject_id=subject.id,
            subject_code=subject.code,
            academic_period=payload.academic_period,
            comment=payload.comment,
            submitted_at=utc_now(),
        )
        db.add(preference)
        action = "faculty.preference.create"
    else:
        preference.comment = payload.comment
        action = "faculty.preference.update"

    db.flush()
    log_activity(
        db,
        principal=principal,
        tenant_id=tenant_id,
        action=action,
        entity_type="faculty",
        entity_id=faculty.id,
        details={"subject_code": subject.code, "academic_period": payload.academic_period},
    )
    db.commit()
    db.refresh(preference)
    return preference


@router.get("/preferences", response_model=list[PreferenceOut])
def list_preferences(
    academic_period: str | None = Query(default=None, max_length=20),
    faculty_id: str | None = Query(default=None, max_length=36),
    subject_code: str | None = Query(default=None, max_length=50),
    tenant_id: str = Depends(resolve_tenant),
    principal: Principal = Depends(require_roles(Role.admin, Role.super_admin, Role.faculty)),
    db: Session = Depends(get_db),
) -> list[PreferenceOut]:
    query = select(FacultyPreference).where(FacultyPreference.tenant_id == tenant_id)
    if principal.role == Role.faculty:
        query = query.where(FacultyPreference.faculty_id == principal.id)
    elif faculty_id is not None:
        query = query.where(FacultyPreference.faculty_id == faculty_id)
    if academic_period is not None:
        query = query.where(FacultyPreference.academic_period == academic_period)
    if subject_code is not None:
        query = query.where(FacultyPreference.subject_code == subject_code.strip().upper())
    return list(db.execute(query.order_by(FacultyPreference.submitted_at, FacultyPreference.id)).scalars())
