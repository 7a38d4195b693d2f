from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.classroom import Classroom, ClassroomStatus
from app.models.classroom_unavailability import ClassroomUnavailability
from app.services.intervals import TimeWindow, datetime_window, ensure_utc, utc_now

logger = logging.getLogger(__name__)


def record_window(record: ClassroomUnavailability) -> TimeWindow:
    return datetime_window(record.start_at, record.end_at)


def covering_windows(
    records: Iterable[ClassroomUnavailability],
    at: datetime,
) -> list[ClassroomUnavailability]:
    instant = ensure_utc(at)
    return [record for record in records if record_window(record).contains(instant)]


def blocked_classrooms(
    classrooms: Iterable[Classroom],
    unavailabilities: Iterable[ClassroomUnavailability],
    window_start: datetime,
    window_end: datetime | None = None,
    *,
    now: datetime | None = None,
) -> set[str]:
    """Ids of classrooms that cannot be used during ``[window_start, window_end)``.

    A room is blocked when one of its unavailability records overlaps the
    window, or when its status says ``unavailable`` even though no record
    covers the current instant. Status and records disagreeing in either
    direction is logged as a data-integrity anomaly.
    """
    query = datetime_window(window_start, window_end)
    current = ensure_utc(now) if now is not None else utc_now()
    records = list(unavailabilities)

    blocked: set[str] = set()
    active_now: set[str] = set()
    for record in records:
        window = record_window(record)
        if window.overlaps(query):
            blocked.add(record.classroom_id)
        if window.contains(current):
            active_now.add(record.classroom_id)

    for classroom in classrooms:
        if classroom.status == ClassroomStatus.unavailable:
            if classroom.id not in active_now:
                logger.warning(
                    "Classroom %s (%s) is marked unavailable without an active unavailability window",
                    classroom.name,
                    classroom.id,
                )
            blocked.add(classroom.id)
        elif classroom.status == ClassroomStatus.available and classroom.id in active_now:
            logger.warning(
                "Classroom %s (%s) is marked available but has an active unavailability window",
                classroom.name,
                classroom.id,
            )
    return blocked


def load_blocked_classrooms(
    db: Session,
    tenant_id: str,
    window_start: datetime,
    window_end: datetime | None = None,
) -> set[str]:
    refresh_classroom_statuses(db, tenant_id)
    classrooms = db.execute(select(Classroom).where(Classroom.tenant_id == tenant_id)).scalars().all()
    records = db.execute(
        select(ClassroomUnavailability).where(ClassroomUnavailability.tenant_id == tenant_id)
    ).scalars().all()
    return blocked_classrooms(classrooms, records, window_start, window_end)


def find_overlapping_window(
    db: Session,
    classroom_id: str,
    start_at: datetime,
    end_at: datetime | None,
    *,
    exclude_id: str | None = None,
) -> ClassroomUnavailability | None:
    query = select(ClassroomUnavailability).where(ClassroomUnavailability.classroom_id == classroom_id)
    if exclude_id is not None:
        query = query.where(ClassroomUnavailability.id != exclude_id)
    candidate = datetime_window(start_at, end_at)
    for record in db.execute(query.order_by(ClassroomUnavailability.start_at)).scalars():
        if record_window(record).overlaps(candidate):
            return record
    return None


def _apply_status(
    classroom: Classroom,
    records: Iterable[ClassroomUnavailability],
    now: datetime,
) -> bool:
    if classroom.status == ClassroomStatus.maintenance:
        return False
    target = ClassroomStatus.unavailable if covering_windows(records, now) else ClassroomStatus.available
    if classroom.status == target:
        return False
    logger.info("Classroom %s status %s -> %s", classroom.name, classroom.status.value, target.value)
    classroom.status = target
    return True


def sync_classroom_status(db: Session, classroom: Classroom, *, now: datetime | None = None) -> ClassroomStatus:
    """Align ``classroom.status`` with the windows covering ``now``.

    Rooms under maintenance are left alone; the maintenance flag is set and
    cleared by operators, not by unavailability windows.
    """
    if classroom.status == ClassroomStatus.maintenance:
        return classroom.status
    db.flush()
    records = db.execute(
        select(ClassroomUnavailability).where(ClassroomUnavailability.classroom_id == classroom.id)
    ).scalars().all()
    _apply_status(classroom, records, now or utc_now())
    return classroom.status


def refresh_classroom_statuses(db: Session, tenant_id: str, *, now: datetime | None = None) -> list[Classroom]:
    """Re-sync every classroom of the tenant against the clock.

    Windows start and end without anyone touching them, so readers call this
    before trusting ``status``. Returns the classrooms whose status changed;
    committing is left to the caller.
    """
    current = ensure_utc(now) if now is not None else utc_now()
    classrooms = db.execute(select(Classroom).where(Classroom.tenant_id == tenant_id)).scalars().all()
    records = db.execute(
        select(ClassroomUnavailability).where(ClassroomUnavailability.tenant_id == tenant_id)
    ).scalars().all()
    by_classroom: dict[str, list[ClassroomUnavailability]] = defaultdict(list)
    for record in records:
        by_classroom[record.classroom_id].append(record)
    return [
        classroom
        for classroom in classrooms
        if _apply_status(classroom, by_classroom.get(classroom.id, []), current)
    ]
