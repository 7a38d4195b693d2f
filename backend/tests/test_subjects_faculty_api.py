from conftest import auth_headers

PERIOD = "2026-S1"


def _subject(code, total_duration, *, subject_type="core", block_hours=None):
    payload = {
        "code": code,
        "name": f"Subject {code}",
        "type": subject_type,
        "total_duration": total_duration,
        "year": 2,
        "semester": 3,
        "academic_period": PERIOD,
    }
    if block_hours is not None:
        payload["block_hours"] = block_hours
    return payload


def test_weekly_hours_derive_from_total_duration(client, admin_headers):
    response = client.post("/api/subjects/", json=_subject("cs101", 40), headers=admin_headers)
    assert response.status_code == 201, response.text
    subject = response.json()
    assert subject["code"] == "CS101"
    assert subject["weekly_hours"] == 4

    updated = client.put(f"/api/subjects/{subject['id']}", json={"total_duration": 24}, headers=admin_headers)
    assert updated.json()["weekly_hours"] == 2

    duplicate = client.post("/api/subjects/", json=_subject("CS101", 12), headers=admin_headers)
    assert duplicate.status_code == 409


def test_only_labs_take_block_hours(client, admin_headers):
    core = client.post("/api/subjects/", json=_subject("MA101", 36, block_hours=2), headers=admin_headers)
    assert core.status_code == 422

    lab = client.post(
        "/api/subjects/", json=_subject("CS191", 24, subject_type="lab", block_hours=2), headers=admin_headers
    )
    assert lab.status_code == 201
    assert lab.json()["block_hours"] == 2

    retyped = client.put(f"/api/subjects/{lab.json()['id']}", json={"type": "core"}, headers=admin_headers)
    assert retyped.status_code == 400


def test_delete_archives_subject(client, admin_headers):
    subject = client.post("/api/subjects/", json=_subject("PH101", 24), headers=admin_headers).json()

    assert client.delete(f"/api/subjects/{subject['id']}", headers=admin_headers).status_code == 200
    assert client.get("/api/subjects/", headers=admin_headers).json() == []
    archived = client.get("/api/subjects/", params={"include_archived": True}, headers=admin_headers).json()
    assert archived[0]["archived"] is True


def test_faculty_preferences_keep_first_submission_time(client, admin_headers):
    subject = client.post("/api/subjects/", json=_subject("CS101", 36), headers=admin_headers).json()
    faculty = client.post(
        "/api/faculty/",
        json={"name": "Dr. Rao", "email": "Rao@Example.edu", "department": "CSE"},
        headers=admin_headers,
    )
    assert faculty.status_code == 201
    faculty_id = faculty.json()["id"]
    assert faculty.json()["email"] == "rao@example.edu"

    duplicate = client.post(
        "/api/faculty/",
        json={"name": "Someone", "email": "rao@example.edu", "department": "CSE"},
        headers=admin_headers,
    )
    assert duplicate.status_code == 409

    lecturer = auth_headers("faculty", subject=faculty_id)
    first = client.post(
        "/api/faculty/preferences",
        json={"subject_id": subject["id"], "academic_period": PERIOD, "comment": "Taught it last year"},
        headers=lecturer,
    )
    assert first.status_code == 200, first.text
    assert first.json()["subject_code"] == "CS101"

    again = client.post(
        "/api/faculty/preferences",
        json={"subject_id": subject["id"], "academic_period": PERIOD, "comment": "Still keen"},
        headers=lecturer,
    )
    assert again.json()["id"] == first.json()["id"]
    assert again.json()["submitted_at"] == first.json()["submitted_at"]
    assert again.json()["comment"] == "Still keen"

    listed = client.get("/api/faculty/preferences", params={"academic_period": PERIOD}, headers=admin_headers)
    assert [item["faculty_id"] for item in listed.json()] == [faculty_id]


def test_faculty_cannot_submit_for_someone_else(client, admin_headers):
    subject = client.post("/api/subjects/", json=_subject("CS101", 36), headers=admin_headers).json()
    lecturer = auth_headers("faculty", subject="f-1")

    response = client.post(
        "/api/faculty/preferences",
        json={"subject_id": subject["id"], "academic_period": PERIOD, "faculty_id": "f-2"},
        headers=lecturer,
    )
    assert response.status_code == 403

    unknown = client.post(
        "/api/faculty/preferences",
        json={"subject_id": subject["id"], "academic_period": PERIOD},
        headers=lecturer,
    )
    assert unknown.status_code == 404


def test_admin_submits_on_behalf_of_faculty(client, admin_headers):
    subject = client.post("/api/subjects/", json=_subject("CS101", 36), headers=admin_headers).json()
    faculty_id = client.post(
        "/api/faculty/",
        json={"name": "Dr. Iyer", "email": "iyer@example.edu", "department": "CSE"},
        headers=admin_headers,
    ).json()["id"]

    missing = client.post(
        "/api/faculty/preferences",
        json={"subject_id": subject["id"], "academic_period": PERIOD},
        headers=admin_headers,
    )
    assert missing.status_code == 400

    response = client.post(
        "/api/faculty/preferences",
        json={"subject_id": subject["id"], "academic_period": PERIOD, "faculty_id": faculty_id},
        headers=admin_headers,
    )
    assert response.status_code == 200


def test_explicit_nulls_are_rejected_on_subject_update(client, admin_headers):
    lab = client.post(
        "/api/subjects/", json=_subject("CS191", 24, subject_type="lab", block_hours=2), headers=admin_headers
    ).json()

    for field in ("name", "type", "total_duration"):
        response = client.put(f"/api/subjects/{lab['id']}", json={field: None}, headers=admin_headers)
        assert response.status_code == 422, field

    cleared = client.put(f"/api/subjects/{lab['id']}", json={"block_hours": None}, headers=admin_headers)
    assert cleared.status_code == 200
    assert cleared.json()["block_hours"] is None
