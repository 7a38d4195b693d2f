import logging

import pytest
from sqlalchemy import select

from app.core.exceptions import InvalidTransitionError, PermissionDeniedError, StaleStateError
from app.models.activity_log import ActivityLog
from app.models.classroom import Classroom
from app.models.timetable import Timetable, TimetableStatus
from app.schemas.principal import Principal, Role
from app.services import lifecycle

ADMIN = Principal(id="admin-1", tenant_id="tenant-a", role=Role.admin)


def _days(start="09:00", end="10:00", code="CS101", faculty_id="f1"):
    return [
        {
            "day": "Monday",
            "slots": [{"start_time": start, "end_time": end, "subject_code": code, "faculty_id": faculty_id}],
        }
    ]


@pytest.fixture
def timetables(db_session):
    db_session.add(Classroom(id="r1", tenant_id="tenant-a", name="Room 101", floor=1, capacity=60))
    first = Timetable(
        tenant_id="tenant-a",
        year=2,
        semester=3,
        division="A",
        academic_period="2026-S1",
        classroom_id="r1",
        days=_days(),
        history=[],
    )
    second = Timetable(
        tenant_id="tenant-a",
        year=2,
        semester=3,
        division="B",
        academic_period="2026-S1",
        classroom_id="r1",
        days=_days(start="09:30", end="10:30", code="MA101", faculty_id="f2"),
        history=[],
    )
    db_session.add_all([first, second])
    db_session.commit()
    return first, second


def test_publish_without_conflicts(db_session, timetables):
    first, _ = timetables
    result = lifecycle.publish(db_session, first.id, ADMIN)

    assert result.status == "published"
    assert result.timetable.status == TimetableStatus.published
    assert result.timetable.published_at is not None
    assert result.timetable.history[-1]["action"] == "Published"
    actions = db_session.execute(select(ActivityLog.action)).scalars().all()
    assert "timetable.publish" in actions


def test_publish_with_conflicts_leaves_draft(db_session, timetables):
    first, second = timetables
    lifecycle.publish(db_session, first.id, ADMIN)

    result = lifecycle.publish(db_session, second.id, ADMIN)

    assert result.status == "conflicts_found"
    assert [item.resource_type for item in result.conflicts] == ["classroom"]
    db_session.expire_all()
    assert db_session.get(Timetable, second.id).status == TimetableStatus.draft


def test_invalid_transitions(db_session, timetables):
    first, second = timetables
    lifecycle.publish(db_session, first.id, ADMIN)

    with pytest.raises(InvalidTransitionError):
        lifecycle.publish(db_session, first.id, ADMIN)
    with pytest.raises(InvalidTransitionError):
        lifecycle.unpublish(db_session, second.id, ADMIN)


def test_other_tenant_cannot_publish(db_session, timetables):
    first, _ = timetables
    outsider = Principal(id="admin-2", tenant_id="tenant-b", role=Role.admin)
    with pytest.raises(PermissionDeniedError):
        lifecycle.publish(db_session, first.id, outsider)

    faculty = Principal(id="f1", tenant_id="tenant-a", role=Role.faculty)
    with pytest.raises(PermissionDeniedError):
        lifecycle.publish(db_session, first.id, faculty)

    super_admin = Principal(id="root", role=Role.super_admin)
    assert lifecycle.publish(db_session, first.id, super_admin).status == "published"


def test_unpublish_is_logged(db_session, timetables, caplog):
    first, _ = timetables
    lifecycle.publish(db_session, first.id, ADMIN)

    with caplog.at_level(logging.WARNING, logger="app.services.lifecycle"):
        timetable = lifecycle.unpublish(db_session, first.id, ADMIN, reason="room change")

    assert timetable.status == TimetableStatus.draft
    assert timetable.published_at is None
    assert timetable.history[-1]["action"] == "Unpublished"
    assert timetable.history[-1]["details"] == {"reason": "room change"}
    assert "unpublished by admin-1" in caplog.text
    actions = db_session.execute(select(ActivityLog.action)).scalars().all()
    assert "timetable.unpublish" in actions


def test_published_set_changing_mid_publication_is_stale(db_session, timetables, monkeypatch):
    first, _ = timetables
    fingerprints = iter([(), (("someone-else", 1),)])
    monkeypatch.setattr(lifecycle, "published_fingerprint", lambda *args, **kwargs: next(fingerprints))

    with pytest.raises(StaleStateError):
        lifecycle.publish(db_session, first.id, ADMIN)
    db_session.expire_all()
    assert db_session.get(Timetable, first.id).status == TimetableStatus.draft


def test_revision_increments_on_each_write(db_session, timetables):
    first, _ = timetables
    assert first.revision == 1
    lifecycle.publish(db_session, first.id, ADMIN)
    assert db_session.get(Timetable, first.id).revision == 2
