from __future__ import annotations

import os
from typing import Any

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

import app.core.security as security
from app.core.config import get_settings
from app.main import app
from app.services.repository import get_repository
from app.services.store import InMemoryRepository

USERS: dict[str, dict[str, Any]] = {
    "admin-token": {
        "id": "11111111-1111-1111-1111-111111111111",
        "email": "admin@example.com",
        "app_metadata": {"role": "admin"},
        "user_metadata": {"name": "Admin User"},
    },
    "alice-token": {
        "id": "22222222-2222-2222-2222-222222222222",
        "email": "alice@example.com",
        "app_metadata": {"role": "applicant"},
        "user_metadata": {"name": "Alice"},
    },
    "bob-token": {
        "id": "33333333-3333-3333-3333-333333333333",
        "email": "bob@example.com",
        "app_metadata": {},
        "user_metadata": {"full_name": "Bob", "role": "admin"},
    },
}
ALICE_ID = USERS["alice-token"]["id"]

ADMIN = {"Authorization": "Bearer admin-token"}
ALICE = {"Authorization": "Bearer alice-token"}
BOB = {"Authorization": "Bearer bob-token"}


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def api_client(monkeypatch: pytest.MonkeyPatch, repository: InMemoryRepository) -> TestClient:
    os.environ["JT_SUPABASE_URL"] = "https://example.supabase.co"
    os.environ["JT_SUPABASE_ANON_KEY"] = "anon-key"
    get_settings.cache_clear()

    async def _fake_fetch(*, token: str, **_: Any) -> dict[str, Any]:
        user = USERS.get(token)
        if user is None:
            raise security.HTTPException(status_code=401, detail="invalid bearer token")
        return user

    monkeypatch.setattr(security, "_fetch_supabase_user", _fake_fetch)
    app.dependency_overrides[get_repository] = lambda: repository

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
    os.environ.pop("JT_SUPABASE_URL", None)
    os.environ.pop("JT_SUPABASE_ANON_KEY", None)
    os.environ.pop("JT_REALTIME_REQUIRE_AUTH", None)
    get_settings.cache_clear()


def _create_posting(client: TestClient, **overrides: Any) -> dict[str, Any]:
    payload = {"company": "Acme", "role": "Engineer"}
    payload.update(overrides)
    response = client.post("/jobs/opportunity", json=payload, headers=ADMIN)
    assert response.status_code == 201, response.text
    return response.json()


def test_requests_without_bearer_token_are_rejected(api_client: TestClient) -> None:
    assert api_client.get("/jobs/items").status_code == 401
    assert api_client.get("/jobs/items", headers={"Authorization": "Bearer nobody"}).status_code == 401


def test_auth_backend_must_be_configured(api_client: TestClient) -> None:
    os.environ.pop("JT_SUPABASE_URL", None)
    get_settings.cache_clear()

    response = api_client.get("/jobs/items", headers=ALICE)
    assert response.status_code == 503


def test_create_opportunity_is_admin_only(api_client: TestClient) -> None:
    response = api_client.post("/jobs/opportunity", json={"company": "Acme", "role": "Engineer"}, headers=ALICE)
    assert response.status_code == 403

    # user_metadata is user-editable and never grants admin.
    response = api_client.post("/jobs/opportunity", json={"company": "Acme", "role": "Engineer"}, headers=BOB)
    assert response.status_code == 403


def test_create_opportunity_validates_fields(api_client: TestClient) -> None:
    response = api_client.post("/jobs/opportunity", json={"company": "Acme"}, headers=ADMIN)
    assert response.status_code == 400
    assert "role" in response.json()["detail"]


def test_create_opportunity_returns_camel_case_record(api_client: TestClient) -> None:
    body = _create_posting(api_client, notes="Remote friendly")

    assert body["status"] == "Open"
    assert body["isPosting"] is True
    assert body["originalJobPostingId"] is None
    assert body["userId"] == USERS["admin-token"]["id"]
    assert body["notes"] == "Remote friendly"
    assert "postedOrAppliedDate" in body


def test_apply_flow_status_codes(api_client: TestClient) -> None:
    posting = _create_posting(api_client)
    closed = _create_posting(api_client, company="Shut Co", status="Closed")

    response = api_client.post(f"/jobs/opportunity/{posting['id']}/apply", json={"notes": "excited"}, headers=ALICE)
    assert response.status_code == 201
    application = response.json()
    assert application["status"] == "Applied"
    assert application["company"] == "Acme"
    assert application["originalJobPostingId"] == posting["id"]

    duplicate = api_client.post(f"/jobs/opportunity/{posting['id']}/apply", json={}, headers=ALICE)
    assert duplicate.status_code == 400
    assert "already applied" in duplicate.json()["detail"]

    closed_response = api_client.post(f"/jobs/opportunity/{closed['id']}/apply", headers=ALICE)
    assert closed_response.status_code == 400

    missing = api_client.post("/jobs/opportunity/not-a-posting/apply", headers=ALICE)
    assert missing.status_code == 404


def test_item_listing_and_owner_resolution(api_client: TestClient) -> None:
    posting = _create_posting(api_client)
    _create_posting(api_client, company="Shut Co", status="Closed")
    api_client.post(f"/jobs/opportunity/{posting['id']}/apply", json={"notes": "excited"}, headers=ALICE)

    opportunities = api_client.get("/jobs/items", params={"type": "opportunities"}, headers=ALICE).json()
    assert [item["company"] for item in opportunities] == ["Acme"]

    mine = api_client.get("/jobs/items", params={"type": "myApplications"}, headers=ALICE).json()
    assert len(mine) == 1
    assert mine[0]["owner"] == {"id": ALICE_ID, "name": "Alice", "email": "alice@example.com"}

    forbidden = api_client.get("/jobs/items", params={"type": "allApplications"}, headers=ALICE)
    assert forbidden.status_code == 403

    for_posting = api_client.get(
        "/jobs/items",
        params={"type": "applicationsForOpportunity", "originalJobPostingId": posting["id"]},
        headers=ADMIN,
    )
    assert for_posting.status_code == 200
    assert [item["userId"] for item in for_posting.json()] == [ALICE_ID]

    bad_type = api_client.get("/jobs/items", params={"type": "everything"}, headers=ADMIN)
    assert bad_type.status_code == 422


def test_get_item_scoping(api_client: TestClient) -> None:
    posting = _create_posting(api_client)
    application = api_client.post(f"/jobs/opportunity/{posting['id']}/apply", headers=ALICE).json()

    assert api_client.get(f"/jobs/items/{posting['id']}", headers=BOB).status_code == 200
    assert api_client.get(f"/jobs/items/{application['id']}", headers=ALICE).status_code == 200
    assert api_client.get(f"/jobs/items/{application['id']}", headers=BOB).status_code == 401
    assert api_client.get("/jobs/items/missing", headers=ADMIN).status_code == 404


def test_final_status_lock_over_http(api_client: TestClient) -> None:
    posting = _create_posting(api_client)
    application = api_client.post(f"/jobs/opportunity/{posting['id']}/apply", headers=ALICE).json()
    item_url = f"/jobs/items/{application['id']}"

    assert api_client.put(item_url, json={"status": "Rejected"}, headers=ADMIN).status_code == 200

    locked = api_client.put(item_url, json={"status": "Interview"}, headers=ALICE)
    assert locked.status_code == 400
    assert locked.json()["detail"] == "You can't change the status once it is 'Rejected'"

    no_op = api_client.put(item_url, json={"status": "Rejected", "notes": "thanks"}, headers=ALICE)
    assert no_op.status_code == 200
    assert no_op.json()["notes"] == "thanks"

    assert api_client.put(item_url, json={"status": "Interview"}, headers=ADMIN).json()["status"] == "Interview"


def test_applicant_field_restrictions_over_http(api_client: TestClient) -> None:
    posting = _create_posting(api_client)
    application = api_client.post(f"/jobs/opportunity/{posting['id']}/apply", headers=ALICE).json()

    assert api_client.put(f"/jobs/items/{posting['id']}", json={"notes": "x"}, headers=ALICE).status_code == 401
    assert (
        api_client.put(f"/jobs/items/{application['id']}", json={"company": "Elsewhere"}, headers=ALICE).status_code
        == 403
    )
    assert api_client.put("/jobs/items/missing", json={"notes": "x"}, headers=ADMIN).status_code == 404


def test_delete_status_codes(api_client: TestClient, repository: InMemoryRepository) -> None:
    posting = _create_posting(api_client)
    application = api_client.post(f"/jobs/opportunity/{posting['id']}/apply", headers=ALICE).json()

    assert api_client.delete(f"/jobs/items/{posting['id']}", headers=ALICE).status_code == 403
    assert api_client.delete(f"/jobs/items/{application['id']}", headers=BOB).status_code == 401

    response = api_client.delete(f"/jobs/items/{posting['id']}", headers=ADMIN)
    assert response.status_code == 200
    body = response.json()
    assert body["cascade"] is True
    assert set(body["deletedIds"]) == {posting["id"], application["id"]}
    assert repository.records == {}

    assert api_client.delete(f"/jobs/items/{posting['id']}", headers=ADMIN).status_code == 404


def test_realtime_scenario_end_to_end(api_client: TestClient) -> None:
    posting = _create_posting(api_client)
    assert posting["status"] == "Open"

    with api_client.websocket_connect("/ws") as websocket:
        websocket.send_json({"event": "join", "data": ALICE_ID})
        joined = websocket.receive_json()
        assert joined == {
            "event": "roomJoined",
            "data": {"userId": ALICE_ID, "message": "Successfully joined personal room"},
        }

        application = api_client.post(
            f"/jobs/opportunity/{posting['id']}/apply",
            json={"notes": "excited"},
            headers=ALICE,
        ).json()
        assert application["status"] == "Applied"

        response = api_client.put(f"/jobs/items/{application['id']}", json={"status": "Interview"}, headers=ADMIN)
        assert response.status_code == 200

        update = websocket.receive_json()
        assert update["event"] == "jobUpdate"
        assert update["data"]["updatedBy"] == "admin"
        assert update["data"]["jobApplication"]["status"] == "Interview"

        response = api_client.delete(f"/jobs/items/{posting['id']}", headers=ADMIN)
        assert response.status_code == 200

        deleted = websocket.receive_json()
        assert deleted["event"] == "jobUpdate"
        assert deleted["data"]["deleted"] is True
        assert deleted["data"]["jobId"] == application["id"]
        assert deleted["data"]["postingId"] == posting["id"]


def test_realtime_rejects_malformed_frames(api_client: TestClient) -> None:
    with api_client.websocket_connect("/ws") as websocket:
        websocket.send_text("not json")
        assert websocket.receive_json()["event"] == "error"

        websocket.send_json({"event": "subscribe", "data": "x"})
        assert websocket.receive_json()["event"] == "error"

        websocket.send_json({"event": "join", "data": ""})
        assert websocket.receive_json()["event"] == "error"


def test_realtime_auth_requires_matching_identity(api_client: TestClient) -> None:
    os.environ["JT_REALTIME_REQUIRE_AUTH"] = "true"
    get_settings.cache_clear()

    with pytest.raises(WebSocketDisconnect):
        with api_client.websocket_connect("/ws") as websocket:
            websocket.receive_json()

    with api_client.websocket_connect("/ws?token=alice-token") as websocket:
        websocket.send_json({"event": "join", "data": USERS["bob-token"]["id"]})
        assert websocket.receive_json()["event"] == "error"

        websocket.send_json({"event": "join", "data": ALICE_ID})
        assert websocket.receive_json()["event"] == "roomJoined"


def test_role_resolution_ignores_user_metadata() -> None:
    role = security._resolve_human_role({"id": "user-1", "app_metadata": {}, "user_metadata": {"role": "admin"}})
    assert role == "applicant"


def test_role_resolution_supports_app_metadata_roles_array() -> None:
    role = security._resolve_human_role({"id": "admin-1", "app_metadata": {"roles": ["applicant", "admin"]}})
    assert role == "admin"


def test_date_only_posted_date_can_be_listed_and_updated(api_client: TestClient) -> None:
    dated = _create_posting(api_client, postedOrAppliedDate="2024-05-01")
    _create_posting(api_client, company="Globex")

    listed = api_client.get("/jobs/items", params={"type": "opportunities", "sort": "oldest"}, headers=ADMIN)
    assert listed.status_code == 200
    assert [item["company"] for item in listed.json()] == ["Acme", "Globex"]

    response = api_client.put(
        f"/jobs/items/{dated['id']}",
        json={"postedOrAppliedDate": "2024-05-01", "notes": "Remote"},
        headers=ADMIN,
    )
    assert response.status_code == 200
    assert response.json()["postedOrAppliedDate"].startswith("2024-05-01T00:00:00")


def test_realtime_rejects_binary_frames(api_client: TestClient) -> None:
    with api_client.websocket_connect("/ws") as websocket:
        websocket.send_bytes(b"\x00\x01")
        error = websocket.receive_json()
        assert error["event"] == "error"

        websocket.send_json({"event": "join", "data": ALICE_ID})
        assert websocket.receive_json()["event"] == "roomJoined"
