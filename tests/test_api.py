import uuid

from sqlalchemy.exc import OperationalError

from classkey.database import get_db
from classkey.main import app

from conftest import ADMIN_ID, COURSE_ID, SCHOOL_ID, TEACHER_ID, auth_headers

ADMIN = auth_headers("SCHOOL_ADMIN", ADMIN_ID)
TEACHER = auth_headers("TEACHER", TEACHER_ID)


async def issue(client, payload, headers=ADMIN) -> dict:
    response = await client.post("/api/v1/codes", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_management_requires_a_token(client):
    response = await client.get("/api/v1/codes")
    assert response.status_code == 401


async def test_students_cannot_issue(client):
    response = await client.post(
        "/api/v1/codes",
        json={"kind": "COURSE_ENROLLMENT", "target_id": str(COURSE_ID)},
        headers=auth_headers("STUDENT"),
    )
    assert response.status_code == 403


async def test_admin_invitation_defaults_to_own_school(client):
    data = await issue(client, {"kind": "SCHOOL_INVITATION", "required_email": "alice@greenfield.edu"})

    assert data["scope"]["target_id"] == str(SCHOOL_ID)
    assert data["max_uses"] == 1
    assert "/signup?invite=" in data["redemption_url"]


async def test_teacher_can_only_issue_enrollment_codes(client):
    response = await client.post(
        "/api/v1/codes",
        json={"kind": "TEACHER_JOIN", "required_email": "mr.banda@greenfield.edu"},
        headers=TEACHER,
    )
    assert response.status_code == 403

    data = await issue(client, {"kind": "COURSE_ENROLLMENT", "target_id": str(COURSE_ID), "max_uses": 30}, TEACHER)
    assert data["max_uses"] == 30


async def test_invitation_flow_end_to_end(client):
    issued = await issue(client, {"kind": "SCHOOL_INVITATION", "required_email": "alice@greenfield.edu"})
    body = {"code": issued["code"].lower(), "target_id": str(SCHOOL_ID), "email": "alice@greenfield.edu", "claimed_role": "STUDENT"}

    preview = await client.post("/api/v1/redemptions/validate", json=body)
    assert preview.status_code == 200
    assert preview.json()["data"]["valid"] is True

    redeemed = await client.post("/api/v1/redemptions", json=body)
    assert redeemed.status_code == 200
    assert redeemed.json()["data"]["status"] == "ACCEPTED"

    retry = await client.post("/api/v1/redemptions", json=body)
    assert retry.status_code == 200
    assert retry.json()["data"]["already_redeemed"] is True

    code = await client.get(f"/api/v1/codes/{issued['id']}", headers=ADMIN)
    assert code.json()["data"]["status"] == "ACCEPTED"
    assert code.json()["data"]["current_uses"] == 1


async def test_wrong_email_is_reported_with_error_code(client):
    issued = await issue(client, {"kind": "SCHOOL_INVITATION", "required_email": "alice@greenfield.edu"})

    response = await client.post(
        "/api/v1/redemptions",
        json={"code": issued["code"], "target_id": str(SCHOOL_ID), "email": "bob@greenfield.edu", "claimed_role": "STUDENT"},
    )

    assert response.status_code == 403
    body = response.json()
    assert body["status"] == "error"
    assert body["errors"][0]["code"] == "EMAIL_MISMATCH"
    assert body["retryable"] is False


async def test_unknown_code_is_not_found(client):
    response = await client.post(
        "/api/v1/redemptions",
        json={"code": "ZZZZZZZZ", "target_id": str(COURSE_ID), "email": "carol@greenfield.edu"},
    )
    assert response.status_code == 404
    assert response.json()["errors"][0]["code"] == "NOT_FOUND"


async def test_anonymous_redemption_needs_an_email(client):
    issued = await issue(client, {"kind": "COURSE_ENROLLMENT", "target_id": str(COURSE_ID)}, TEACHER)
    response = await client.post("/api/v1/redemptions", json={"code": issued["code"], "target_id": str(COURSE_ID)})
    assert response.status_code == 422


async def test_signed_in_student_redeems_enrollment_code(client):
    issued = await issue(client, {"kind": "COURSE_ENROLLMENT", "target_id": str(COURSE_ID), "max_uses": 1}, TEACHER)
    student_id = uuid.uuid4()
    body = {"code": issued["code"], "target_id": str(COURSE_ID)}

    # The token role wins over a role claimed in the body
    response = await client.post(
        "/api/v1/redemptions",
        json={**body, "claimed_role": "TEACHER"},
        headers=auth_headers("STUDENT", student_id),
    )
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "EXHAUSTED"

    response = await client.post("/api/v1/redemptions", json=body, headers=auth_headers("STUDENT"))
    assert response.status_code == 409
    assert response.json()["errors"][0]["code"] == "EXHAUSTED"

    log = await client.get(f"/api/v1/codes/{issued['id']}/redemptions", headers=TEACHER)
    entries = log.json()["data"]
    assert len(entries) == 1
    assert entries[0]["redeemer_id"] == str(student_id)


async def test_cancelled_code_is_gone(client):
    issued = await issue(client, {"kind": "COURSE_ENROLLMENT", "target_id": str(COURSE_ID)}, TEACHER)

    cancelled = await client.post(f"/api/v1/codes/{issued['id']}/cancel", headers=TEACHER)
    assert cancelled.status_code == 200
    assert cancelled.json()["data"]["status"] == "CANCELLED"

    response = await client.post(
        "/api/v1/redemptions",
        json={"code": issued["code"], "target_id": str(COURSE_ID), "email": "carol@greenfield.edu", "claimed_role": "STUDENT"},
    )
    assert response.status_code == 410
    assert response.json()["errors"][0]["code"] == "CANCELLED"

    again = await client.post(f"/api/v1/codes/{issued['id']}/cancel", headers=TEACHER)
    assert again.status_code == 409


async def test_teachers_only_manage_their_own_codes(client):
    issued = await issue(client, {"kind": "COURSE_ENROLLMENT", "target_id": str(COURSE_ID)}, TEACHER)
    other_teacher = auth_headers("TEACHER")

    response = await client.patch(f"/api/v1/codes/{issued['id']}", json={"title": "Mine now"}, headers=other_teacher)
    assert response.status_code == 403

    response = await client.patch(f"/api/v1/codes/{issued['id']}", json={"title": "Biology 2B"}, headers=TEACHER)
    assert response.status_code == 200
    assert response.json()["data"]["title"] == "Biology 2B"


async def test_list_is_scoped_to_issuer_for_teachers(client):
    await issue(client, {"kind": "COURSE_ENROLLMENT", "target_id": str(COURSE_ID)}, TEACHER)
    await issue(client, {"kind": "COURSE_ENROLLMENT", "target_id": str(COURSE_ID)}, auth_headers("TEACHER"))
    await issue(client, {"kind": "SCHOOL_INVITATION", "required_email": "alice@greenfield.edu"})

    mine = await client.get("/api/v1/codes", headers=TEACHER)
    assert mine.json()["pagination"]["total_items"] == 1

    everything = await client.get("/api/v1/codes", params={"page_size": 2}, headers=ADMIN)
    body = everything.json()
    assert body["pagination"]["total_items"] == 3
    assert body["pagination"]["total_pages"] == 2
    assert len(body["data"]) == 2


async def test_regenerate_returns_new_string(client):
    issued = await issue(client, {"kind": "SCHOOL_INVITATION", "required_email": "alice@greenfield.edu"})

    response = await client.post(f"/api/v1/codes/{issued['id']}/regenerate", headers=ADMIN)
    assert response.status_code == 200
    assert response.json()["data"]["code"] != issued["code"]


async def test_only_admins_delete(client):
    issued = await issue(client, {"kind": "COURSE_ENROLLMENT", "target_id": str(COURSE_ID)}, TEACHER)

    response = await client.delete(f"/api/v1/codes/{issued['id']}", headers=TEACHER)
    assert response.status_code == 403

    response = await client.delete(f"/api/v1/codes/{issued['id']}", headers=ADMIN)
    assert response.status_code == 200

    response = await client.get(f"/api/v1/codes/{issued['id']}", headers=ADMIN)
    assert response.status_code == 404


async def test_signed_in_redeemer_cannot_borrow_an_email(client):
    issued = await issue(client, {"kind": "SCHOOL_INVITATION", "required_email": "alice@greenfield.edu"})
    body = {"code": issued["code"], "target_id": str(SCHOOL_ID), "email": "alice@greenfield.edu"}

    response = await client.post("/api/v1/redemptions", json=body, headers=auth_headers("STUDENT"))
    assert response.status_code == 403
    assert response.json()["errors"][0]["code"] == "EMAIL_MISMATCH"

    response = await client.post(
        "/api/v1/redemptions",
        json=body,
        headers=auth_headers("STUDENT", email="alice@greenfield.edu"),
    )
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "ACCEPTED"


async def test_store_outage_asks_the_caller_to_retry(client, session_factory):
    async def unreachable(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection refused"))

    async def unreachable_db():
        async with session_factory() as session:
            session.execute = unreachable
            yield session

    app.dependency_overrides[get_db] = unreachable_db

    response = await client.post(
        "/api/v1/redemptions",
        json={"code": "ABC12345", "target_id": str(COURSE_ID), "email": "carol@greenfield.edu"},
    )

    assert response.status_code == 503
    assert response.headers["retry-after"] == "1"
    body = response.json()
    assert body["errors"][0]["code"] == "STORE_UNAVAILABLE"
    assert body["retryable"] is True
