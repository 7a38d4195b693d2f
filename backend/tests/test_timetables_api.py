import pytest

from conftest import auth_headers

PERIOD = "2026-S1"
DAYS = ["Monday", "Tuesday", "Wednesday"]
SLOTS = [
    {"start_time": "09:00", "end_time": "10:00"},
    {"start_time": "10:00", "end_time": "11:00"},
    {"start_time": "11:00", "end_time": "12:00"},
]


def _add_subject(client, headers, code, weekly_hours):
    response = client.post(
        "/api/subjects/",
        json={
            "code": code,
            "name": f"Subject {code}",
            "total_duration": weekly_hours * 12,
            "year": 2,
            "semester": 3,
            "academic_period": PERIOD,
        },
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


def _generate(client, headers, division="A", **extra):
    return client.post(
        "/api/timetables/generate",
        json={
            "year": 2,
            "semester": 3,
            "division": division,
            "academic_period": PERIOD,
            "days": DAYS,
            "time_slots": SLOTS,
            **extra,
        },
        headers=headers,
    )


def _create(client, headers, days, division="A", classroom_id=None):
    response = client.post(
        "/api/timetables/",
        json={
            "year": 2,
            "semester": 3,
            "division": division,
            "academic_period": PERIOD,
            "classroom_id": classroom_id,
            "days": days,
        },
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def classroom(client, admin_headers):
    return client.post(
        "/api/classrooms/", json={"name": "Room 101", "floor": 1, "capacity": 60}, headers=admin_headers
    ).json()


def test_generate_fills_nine_cells(client, admin_headers):
    for code, hours in (("MA101", 3), ("PH101", 2), ("CS101", 4)):
        _add_subject(client, admin_headers, code, hours)

    response = _generate(client, admin_headers)
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["outcome"] == "ok"
    codes = [slot["subject_code"] for day in body["days"] for slot in day["slots"]]
    assert sorted(codes) == sorted(["MA101"] * 3 + ["PH101"] * 2 + ["CS101"] * 4)


def test_generate_over_capacity_is_rejected(client, admin_headers):
    for code in ("A1", "B1", "C1"):
        _add_subject(client, admin_headers, code, 5)

    response = _generate(client, admin_headers)
    assert response.status_code == 422
    unmet = response.json()["details"]["unmet_subjects"]
    assert [(item["code"], item["shortfall"]) for item in unmet] == [("A1", 2), ("B1", 2), ("C1", 2)]


def test_generate_without_subjects_is_a_bad_request(client, admin_headers):
    assert _generate(client, admin_headers).status_code == 400


def test_generate_with_faculty_assignment_reports_unresolved(client, admin_headers):
    subject = _add_subject(client, admin_headers, "CS101", 2)
    _add_subject(client, admin_headers, "MA101", 1)
    faculty_id = client.post(
        "/api/faculty/",
        json={"name": "Dr. Rao", "email": "rao@example.edu", "department": "CSE"},
        headers=admin_headers,
    ).json()["id"]
    client.post(
        "/api/faculty/preferences",
        json={"subject_id": subject["id"], "academic_period": PERIOD, "faculty_id": faculty_id},
        headers=admin_headers,
    )

    body = _generate(client, admin_headers, assign_faculty=True).json()
    assert body["outcome"] == "partial"
    assert [(item["subject_code"], item["reason"]) for item in body["unresolved"]] == [("MA101", "no_preference")]
    assigned = {
        slot["faculty_id"] for day in body["days"] for slot in day["slots"] if slot["subject_code"] == "CS101"
    }
    assert assigned == {faculty_id}


def test_publish_flow_and_conflict_gate(client, admin_headers, classroom):
    monday = [{"day": "Monday", "slots": [{"start_time": "09:00", "end_time": "10:00", "subject_code": "CS101"}]}]
    first = _create(client, admin_headers, monday, division="A", classroom_id=classroom["id"])
    second = _create(client, admin_headers, monday, division="B", classroom_id=classroom["id"])
    assert first["status"] == "draft"

    published = client.post(f"/api/timetables/{first['id']}/publish", headers=admin_headers)
    assert published.status_code == 200, published.text
    assert published.json()["status"] == "published"

    report = client.post(f"/api/timetables/{second['id']}/check-conflicts", headers=admin_headers).json()
    assert report["has_conflicts"] is True
    assert report["conflicts"][0]["resource_type"] == "classroom"
    assert {item["action_type"] for item in report["suggested_resolutions"]} == {"change_room", "move_slot"}

    blocked = client.post(f"/api/timetables/{second['id']}/publish", headers=admin_headers)
    assert blocked.status_code == 409
    assert blocked.json()["details"]["conflicts"][0]["resource_id"] == classroom["id"]

    again = client.post(f"/api/timetables/{first['id']}/publish", headers=admin_headers)
    assert again.status_code == 409
    assert again.json()["details"] == {"current": "published", "target": "published"}

    edit_published = client.put(f"/api/timetables/{first['id']}", json={"days": []}, headers=admin_headers)
    assert edit_published.status_code == 409

    unpublished = client.post(
        f"/api/timetables/{first['id']}/unpublish", json={"reason": "Room swap"}, headers=admin_headers
    )
    assert unpublished.status_code == 200
    assert unpublished.json()["status"] == "draft"
    assert client.post(f"/api/timetables/{second['id']}/publish", headers=admin_headers).status_code == 200


def test_students_and_faculty_only_see_published(client, admin_headers):
    draft = _create(client, admin_headers, [])
    live = _create(client, admin_headers, [], division="B")
    client.post(f"/api/timetables/{live['id']}/publish", headers=admin_headers)

    student = auth_headers("student", subject="s-1")
    listed = client.get("/api/timetables/", headers=student).json()
    assert [item["id"] for item in listed] == [live["id"]]
    assert client.get(f"/api/timetables/{draft['id']}", headers=student).status_code == 404

    lecturer = auth_headers("faculty", subject="f-1")
    assert client.get(f"/api/timetables/{live['id']}", headers=lecturer).status_code == 200
    assert client.post(f"/api/timetables/{draft['id']}/publish", headers=lecturer).status_code == 403

    assert len(client.get("/api/timetables/", headers=admin_headers).json()) == 2


def test_other_tenant_admin_cannot_publish(client, admin_headers):
    draft = _create(client, admin_headers, [])
    outsider = auth_headers("admin", tenant_id="tenant-b", subject="admin-2")
    response = client.post(f"/api/timetables/{draft['id']}/publish", headers=outsider)
    assert response.status_code == 403


def test_assign_faculty_to_stored_timetable(client, admin_headers):
    subject = _add_subject(client, admin_headers, "CS101", 1)
    faculty_id = client.post(
        "/api/faculty/",
        json={"name": "Dr. Rao", "email": "rao@example.edu", "department": "CSE"},
        headers=admin_headers,
    ).json()["id"]
    client.post(
        "/api/faculty/preferences",
        json={"subject_id": subject["id"], "academic_period": PERIOD, "faculty_id": faculty_id},
        headers=admin_headers,
    )
    days = [{"day": "Monday", "slots": [{"start_time": "09:00", "end_time": "10:00", "subject_code": "CS101"}]}]
    timetable = _create(client, admin_headers, days)

    response = client.post(f"/api/timetables/{timetable['id']}/assign-faculty", headers=admin_headers)
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["outcome"] == "ok"
    assert body["timetable"]["days"][0]["slots"][0]["faculty_id"] == faculty_id
    assert body["timetable"]["revision"] == timetable["revision"] + 1
    assert body["timetable"]["history"][-1]["action"] == "Faculty assigned"



def test_generate_with_very_large_quota_reports_over_capacity(client, admin_headers):
    _add_subject(client, admin_headers, "MA101", 75)

    response = _generate(client, admin_headers)
    assert response.status_code == 422
    unmet = response.json()["details"]["unmet_subjects"]
    assert [(item["code"], item["requested_hours"], item["shortfall"]) for item in unmet] == [("MA101", 75, 66)]


def test_generate_rejects_overlapping_time_slots(client, admin_headers):
    _add_subject(client, admin_headers, "MA101", 1)
    overlapping = [
        {"start_time": "09:00", "end_time": "10:00"},
        {"start_time": "09:30", "end_time": "10:30"},
    ]

    response = _generate(client, admin_headers, time_slots=overlapping)
    assert response.status_code == 400
    assert "non-overlapping" in response.json()["message"]
