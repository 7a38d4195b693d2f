from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import ResourceNotFoundError
from app.models.classroom import Classroom, ClassroomStatus
from app.schemas.classroom import SubstituteCandidate
from app.services.availability import load_blocked_classrooms

logger = logging.getLogger(__name__)

FLOOR_WEIGHT = 2
CAPACITY_SLACK_DIVISOR = 10
DEFAULT_LIMIT = 5


def substitute_score(original: Classroom, candidate: Classroom) -> float:
    """Lower is better; a floor of distance costs as much as 20 spare seats."""
    floor_distance = abs(candidate.floor - original.floor)
    return FLOOR_WEIGHT * floor_distance + (candidate.capacity - original.capacity) / CAPACITY_SLACK_DIVISOR


def rank_substitutes(
    original: Classroom,
    classrooms: Iterable[Classroom],
    blocked: set[str],
    *,
    limit: int = DEFAULT_LIMIT,
) -> list[SubstituteCandidate]:
    ranked: list[SubstituteCandidate] = []
    for candidate in classrooms:
        if candidate.id == original.id or candidate.id in blocked:
            continue
        if candidate.status != ClassroomStatus.available:
            continue
        if candidate.capacity < original.capacity:
            continue
        ranked.append(
            SubstituteCandidate(
                id=candidate.id,
                name=candidate.name,
                floor=candidate.floor,
                capacity=candidate.capacity,
                floor_distance=abs(candidate.floor - original.floor),
                capacity_difference=candidate.capacity - original.capacity,
                score=substitute_score(original, candidate),
            )
        )
    ranked.sort(key=lambda item: (item.score, item.name))
    return ranked[: max(0, limit)]


def suggest_substitutes(
    db: Session,
    *,
    tenant_id: str,
    classroom_id: str,
    start_at: datetime,
    end_at: datetime | None = None,
    limit: int = DEFAULT_LIMIT,
) -> list[SubstituteCandidate]:
    original = db.get(Classroom, classroom_id)
    if original is None or original.tenant_id != tenant_id:
        raise ResourceNotFoundError("Classroom", classroom_id)
    blocked = load_blocked_classrooms(db, tenant_id, start_at, end_at)
    classrooms = db.execute(select(Classroom).where(Classroom.tenant_id == tenant_id)).scalars().all()
    suggestions = rank_substitutes(original, classrooms, blocked, limit=limit)
    logger.info("Found %d substitute suggestion(s) for classroom %s", len(suggestions), original.name)
    return suggestions
