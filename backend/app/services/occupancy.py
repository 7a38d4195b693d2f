from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.classroom import Classroom, ClassroomStatus
from app.models.classroom_unavailability import ClassroomUnavailability
from app.models.timetable import Timetable, TimetableStatus
from app.schemas.classroom import ActiveUnavailability, ClassroomOccupancy, OccupancyBooking
from app.services.availability import covering_windows
from app.services.conflict_service import bookings_for
from app.services.intervals import MINUTES_PER_DAY, ensure_utc
from app.services.lifecycle import snapshot_of

logger = logging.getLogger(__name__)


def minute_of_week(at: datetime) -> int:
    """Minutes since Monday 00:00 UTC, comparable with ``weekly_window`` bounds."""
    instant = ensure_utc(at)
    return instant.weekday() * MINUTES_PER_DAY + instant.hour * 60 + instant.minute


def classroom_occupancy(
    classrooms: Iterable[Classroom],
    unavailabilities: Iterable[ClassroomUnavailability],
    timetables: Iterable[Timetable],
    at: datetime,
) -> list[ClassroomOccupancy]:
    """What each classroom is doing at ``at``.

    ``status`` is the effective one at that instant: maintenance wins,
    otherwise a covering unavailability window makes the room unavailable.
    Bookings come from the given timetables, slot classroom overriding the
    timetable classroom.
    """
    rooms = list(classrooms)
    names = {room.id: room.name for room in rooms}
    windows: dict[str, list[ClassroomUnavailability]] = defaultdict(list)
    for record in unavailabilities:
        windows[record.classroom_id].append(record)

    instant = minute_of_week(at)
    booked: dict[str, list[OccupancyBooking]] = defaultdict(list)
    for timetable in timetables:
        for booking in bookings_for(snapshot_of(timetable)):
            if booking.classroom_id is None or not booking.window.contains(instant):
                continue
            booked[booking.classroom_id].append(
                OccupancyBooking(
                    timetable_id=timetable.id,
                    year=timetable.year,
                    semester=timetable.semester,
                    division=timetable.division,
                    day=booking.day,
                    start_time=booking.slot.start_time,
                    end_time=booking.slot.end_time,
                    subject_code=booking.slot.subject_code,
                    faculty_id=booking.faculty_id,
                )
            )

    report = []
    for room in rooms:
        covering = sorted(
            covering_windows(windows.get(room.id, []), at),
            key=lambda record: ensure_utc(record.start_at),
        )
        active = covering[0] if covering else None
        if room.status == ClassroomStatus.maintenance:
            effective = ClassroomStatus.maintenance
        else:
            effective = ClassroomStatus.unavailable if active else ClassroomStatus.available
        report.append(
            ClassroomOccupancy(
                classroom_id=room.id,
                name=room.name,
                floor=room.floor,
                capacity=room.capacity,
                status=effective,
                unavailability=(
                    ActiveUnavailability(
                        id=active.id,
                        reason=active.reason,
                        start_at=active.start_at,
                        end_at=active.end_at,
                        substitute_classroom_id=active.substitute_classroom_id,
                        substitute_classroom_name=names.get(active.substitute_classroom_id),
                    )
                    if active
                    else None
                ),
                occupied_by=booked.get(room.id, []),
            )
        )
    return report


def load_occupancy(db: Session, tenant_id: str, academic_period: str, at: datetime) -> list[ClassroomOccupancy]:
    classrooms = db.execute(
        select(Classroom).where(Classroom.tenant_id == tenant_id).order_by(Classroom.floor, Classroom.name)
    ).scalars().all()
    records = db.execute(
        select(ClassroomUnavailability).where(ClassroomUnavailability.tenant_id == tenant_id)
    ).scalars().all()
    timetables = db.execute(
        select(Timetable).where(
            Timetable.tenant_id == tenant_id,
            Timetable.academic_period == academic_period,
            Timetable.status == TimetableStatus.published,
        )
    ).scalars().all()
    report = classroom_occupancy(classrooms, records, timetables, at)
    logger.info(
        "Occupancy for %s at %s: %d of %d classroom(s) in use",
        academic_period,
        ensure_utc(at).isoformat(),
        sum(1 for item in report if item.occupied_by),
        len(report),
    )
    return report
