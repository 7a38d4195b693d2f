"""Draft/published state machine for timetables.

Only published timetables take part in conflict and occupancy queries, so
publication re-validates the whole tenant/period under a lock:
reload published set, run the conflict checker, commit. The published set is
fingerprinted by (id, revision) before the check and re-read before commit;
any difference means another writer got in between and the caller must
retry.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import (
    InvalidTransitionError,
    PermissionDeniedError,
    ResourceNotFoundError,
    StaleStateError,
)
from app.models.classroom import Classroom
from app.models.faculty import Faculty
from app.models.timetable import Timetable, TimetableStatus
from app.schemas.conflict import ConflictReport
from app.schemas.principal import Principal
from app.schemas.timetable import PublishResult, TimetableOut, TimetableSnapshot
from app.services.audit import log_activity
from app.services.conflict_service import ConflictService, check_conflicts
from app.services.intervals import utc_now
from app.services.locks import publication_lock_key, scheduling_lock

logger = logging.getLogger(__name__)


def snapshot_of(timetable: Timetable) -> TimetableSnapshot:
    return TimetableSnapshot(id=timetable.id, classroom_id=timetable.classroom_id, days=timetable.days or [])


def load_managed_timetable(db: Session, timetable_id: str, principal: Principal) -> Timetable:
    timetable = db.get(Timetable, timetable_id)
    if timetable is None:
        raise ResourceNotFoundError("Timetable", timetable_id)
    if not principal.can_manage(timetable.tenant_id):
        raise PermissionDeniedError()
    return timetable


def load_published(
    db: Session,
    tenant_id: str,
    academic_period: str,
    *,
    exclude_id: str | None = None,
) -> list[Timetable]:
    query = select(Timetable).where(
        Timetable.tenant_id == tenant_id,
        Timetable.academic_period == academic_period,
        Timetable.status == TimetableStatus.published,
    )
    if exclude_id is not None:
        query = query.where(Timetable.id != exclude_id)
    return list(db.execute(query.order_by(Timetable.id)).scalars())


def published_fingerprint(
    db: Session,
    tenant_id: str,
    academic_period: str,
    *,
    exclude_id: str | None = None,
) -> tuple[tuple[str, int], ...]:
    # Column query: reads the rows from the database, not the identity map.
    query = select(Timetable.id, Timetable.revision).where(
        Timetable.tenant_id == tenant_id,
        Timetable.academic_period == academic_period,
        Timetable.status == TimetableStatus.published,
    )
    if exclude_id is not None:
        query = query.where(Timetable.id != exclude_id)
    return tuple(sorted((row.id, row.revision) for row in db.execute(query)))


def resource_names(db: Session, tenant_id: str) -> tuple[dict[str, dict], dict[str, dict]]:
    classrooms = db.execute(select(Classroom).where(Classroom.tenant_id == tenant_id)).scalars()
    faculty = db.execute(select(Faculty).where(Faculty.tenant_id == tenant_id)).scalars()
    return (
        {item.id: {"name": item.name, "capacity": item.capacity} for item in classrooms},
        {item.id: {"name": item.name} for item in faculty},
    )


def conflict_report(db: Session, timetable: Timetable) -> ConflictReport:
    others = load_published(db, timetable.tenant_id, timetable.academic_period, exclude_id=timetable.id)
    classroom_map, faculty_map = resource_names(db, timetable.tenant_id)
    service = ConflictService(
        snapshot_of(timetable),
        [snapshot_of(item) for item in others],
        classroom_map,
        faculty_map,
    )
    return service.detect_conflicts()


def publish(db: Session, timetable_id: str, principal: Principal) -> PublishResult:
    timetable = load_managed_timetable(db, timetable_id, principal)
    if timetable.status == TimetableStatus.published:
        raise InvalidTransitionError(timetable.status.value, TimetableStatus.published.value)

    tenant_id, period = timetable.tenant_id, timetable.academic_period
    try:
        with scheduling_lock(db, publication_lock_key(tenant_id, period)):
            before = published_fingerprint(db, tenant_id, period, exclude_id=timetable.id)
            others = load_published(db, tenant_id, period, exclude_id=timetable.id)
            classroom_map, faculty_map = resource_names(db, tenant_id)
            conflicts = check_conflicts(
                snapshot_of(timetable),
                [snapshot_of(item) for item in others],
                classroom_names={key: value["name"] for key, value in classroom_map.items()},
                faculty_names={key: value["name"] for key, value in faculty_map.items()},
            )
            if conflicts:
                logger.info(
                    "Publication of timetable %s blocked by %d conflict(s)",
                    timetable.id,
                    len(conflicts),
                )
                result = PublishResult(
                    status="conflicts_found",
                    timetable=TimetableOut.model_validate(timetable),
                    conflicts=conflicts,
                )
                db.rollback()
                return result

            if published_fingerprint(db, tenant_id, period, exclude_id=timetable.id) != before:
                raise StaleStateError()

            timetable.status = TimetableStatus.published
            timetable.published_at = utc_now()
            timetable.add_history_entry("Published", principal.id, {"checked_against": len(others)})
            log_activity(
                db,
                principal=principal,
                tenant_id=tenant_id,
                action="timetable.publish",
                entity_type="timetable",
                entity_id=timetable.id,
                details={"academic_period": period, "division": timetable.division},
            )
            db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise StaleStateError() from exc
    except StaleStateError:
        db.rollback()
        raise

    db.refresh(timetable)
    logger.info("Timetable %s published by %s", timetable.id, principal.id)
    return PublishResult(status="published", timetable=TimetableOut.model_validate(timetable))


def unpublish(db: Session, timetable_id: str, principal: Principal, *, reason: str | None = None) -> Timetable:
    timetable = load_managed_timetable(db, timetable_id, principal)
    if timetable.status != TimetableStatus.published:
        raise InvalidTransitionError(timetable.status.value, TimetableStatus.draft.value)

    try:
        with scheduling_lock(db, publication_lock_key(timetable.tenant_id, timetable.academic_period)):
            timetable.status = TimetableStatus.draft
            timetable.published_at = None
            timetable.add_history_entry("Unpublished", principal.id, {"reason": reason} if reason else {})
            log_activity(
                db,
                principal=principal,
                tenant_id=timetable.tenant_id,
                action="timetable.unpublish",
                entity_type="timetable",
                entity_id=timetable.id,
                details={"reason": reason, "academic_period": timetable.academic_period},
            )
            db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise StaleStateError() from exc

    db.refresh(timetable)
    assigned = sorted(
        {
            slot.get("faculty_id")
            for day in timetable.days or []
            for slot in day.get("slots", [])
            if slot.get("faculty_id")
        }
    )
    logger.warning(
        "Timetable %s (%s year %s division %s) unpublished by %s; removed from the schedules of %d faculty",
        timetable.id,
        timetable.academic_period,
        timetable.year,
        timetable.division,
        principal.id,
        len(assigned),
    )
    return timetable
