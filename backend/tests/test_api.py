"""End-to-end tests for the me, chat room and stream endpoints."""

from datetime import timedelta
from unittest.mock import patch
from uuid import uuid4

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from starlette.websockets import WebSocketDisconnect

from intranet.core.auth import encode_access_token
from intranet.core.config import settings
from intranet.main import app
from intranet.models.hospital import Hospital
from intranet.services.chat_store import RemoteChatStore, is_temporary_id
from tests.conftest import DEFAULT_HOSPITAL_ID, auth_headers, make_employee


class FakeDriverError(Exception):
    pass


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def alice(db_session):
    return make_employee(db_session, "Alice", position="Charge Nurse")


@pytest.fixture
def bob(db_session):
    return make_employee(db_session, "Bob")


@pytest.fixture
def carol(db_session):
    return make_employee(db_session, "Carol")


def _token(employee):
    return auth_headers(employee.email)["Authorization"][len("Bearer ") :]


def _create_room(client, creator, *members, type="group", name="Ward 3"):
    response = client.post(
        "/v1/chat_rooms",
        json={"name": name, "type": type, "participants": [str(m.id) for m in members]},
        headers=auth_headers(creator.email),
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestRoot:
    def test_root(self, client):
        data = client.get("/").json()
        assert data["status"] == "running"
        assert data["chat_storage"] == "database"

    def test_root_reports_memory_storage(self, client, alice, bob, drop_chat_tables):
        _create_room(client, alice, bob)
        assert client.get("/").json()["chat_storage"] == "memory"

    def test_options_preflight(self, client):
        response = client.options("/v1/chat_rooms", headers={"Origin": "http://localhost:3000"})
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


class TestMeAPI:
    def test_requires_token(self, client):
        assert client.get("/v1/me").status_code == 401

    def test_rejects_malformed_header(self, client):
        response = client.get("/v1/me", headers={"Authorization": "Token abc"})
        assert response.status_code == 401

    def test_rejects_expired_token(self, client):
        token = encode_access_token("u1", "x@hospital.test", expires_in=timedelta(seconds=-10))
        response = client.get("/v1/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Access token has expired"

    def test_rejects_wrong_audience(self, client):
        token = jwt.encode(
            {"sub": "u1", "email": "x@hospital.test", "aud": "someone-else"},
            settings.AUTH_JWT_SECRET,
            algorithm="HS256",
        )
        response = client.get("/v1/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_provisions_on_first_access(self, client):
        response = client.get("/v1/me", headers=auth_headers("new.hire@hospital.test", name="New Hire"))
        assert response.status_code == 200
        data = response.json()
        assert data["employee"]["name"] == "New Hire"
        assert data["employee"]["role"] == "employee"
        assert data["employee"]["hospital_id"] == str(DEFAULT_HOSPITAL_ID)
        assert data["permissions"]["is_admin"] is False

    def test_existing_employee_permissions(self, client, db_session):
        admin = make_employee(db_session, "Admin", role="admin")
        data = client.get("/v1/me", headers=auth_headers(admin.email)).json()
        assert data["employee"]["id"] == str(admin.id)
        assert data["permissions"]["is_admin"] is True
        assert data["permissions"]["is_manager"] is True

    def test_rejects_unverified_email(self, client, db_session):
        admin = make_employee(db_session, "Admin", role="admin", auth_user_id="real-admin")
        response = client.get(
            "/v1/me", headers=auth_headers(admin.email, user_id="real-admin", verified=False)
        )
        assert response.status_code == 401

    def test_rejects_foreign_subject_for_linked_email(self, client, db_session):
        admin = make_employee(db_session, "Admin", role="admin", auth_user_id="real-admin")
        response = client.get("/v1/me", headers=auth_headers(admin.email, user_id="attacker-sub"))
        assert response.status_code == 401
        assert response.json()["detail"] == "Email belongs to a different account"

    def test_no_hospital_conflict(self, client, db_session):
        db_session.query(Hospital).delete()
        db_session.commit()
        response = client.get("/v1/me", headers=auth_headers("orphan@hospital.test"))
        assert response.status_code == 409

    def test_link(self, client):
        response = client.post(
            "/v1/me/link",
            json={
                "name": "Dr Grey",
                "hospital_id": str(DEFAULT_HOSPITAL_ID),
                "role": "manager",
                "position": "Surgeon",
            },
            headers=auth_headers("grey@hospital.test", user_id="auth-grey"),
        )
        assert response.status_code == 200
        data = response.json()
        assert data["employee"]["name"] == "Dr Grey"
        assert data["employee"]["position"] == "Surgeon"
        assert data["permissions"]["is_manager"] is True

    def test_link_unknown_hospital(self, client):
        response = client.post(
            "/v1/me/link",
            json={"name": "Dr Grey", "hospital_id": str(uuid4())},
            headers=auth_headers("grey@hospital.test"),
        )
        assert response.status_code == 404

    def test_link_rejects_unknown_role(self, client):
        response = client.post(
            "/v1/me/link",
            json={"name": "Dr Grey", "hospital_id": str(DEFAULT_HOSPITAL_ID), "role": "god"},
            headers=auth_headers("grey@hospital.test"),
        )
        assert response.status_code == 422


class TestChatRoomAPI:
    def test_create_direct_room(self, client, alice, bob):
        room = _create_room(client, alice, bob, type="direct", name="")
        assert room["name"] == "Bob"
        assert room["type"] == "direct"
        assert room["temporary"] is False
        roles = {p["employee_id"]: p["role"] for p in room["participants"]}
        assert roles == {str(alice.id): "admin", str(bob.id): "member"}

    def test_create_in_degraded_mode(self, client, alice, bob, drop_chat_tables):
        room = _create_room(client, alice, bob, type="direct", name="")
        assert room["temporary"] is True
        assert is_temporary_id(room["id"])

        messages = client.get(
            f"/v1/chat_rooms/{room['id']}/messages", headers=auth_headers(bob.email)
        ).json()
        assert [m["message_type"] for m in messages] == ["system"]
        assert messages[0]["sender_id"] == "system"

    def test_create_validation(self, client, alice, bob, carol):
        response = client.post(
            "/v1/chat_rooms",
            json={"type": "direct", "participants": [str(bob.id), str(carol.id)]},
            headers=auth_headers(alice.email),
        )
        assert response.status_code == 400

        response = client.post(
            "/v1/chat_rooms",
            json={"name": "x" * 51, "participants": [str(bob.id)]},
            headers=auth_headers(alice.email),
        )
        assert response.status_code == 422

    def test_create_storage_failure(self, client, alice, bob):
        error = OperationalError("INSERT", {}, FakeDriverError("connection refused"))
        with patch.object(RemoteChatStore, "create_room", side_effect=error):
            response = client.post(
                "/v1/chat_rooms",
                json={"name": "Ward", "participants": [str(bob.id)]},
                headers=auth_headers(alice.email),
            )
        assert response.status_code == 503

    def test_list_and_get(self, client, alice, bob, carol):
        room = _create_room(client, alice, bob)

        rooms = client.get("/v1/chat_rooms", headers=auth_headers(bob.email)).json()
        assert [r["id"] for r in rooms] == [room["id"]]

        assert client.get(
            f"/v1/chat_rooms/{room['id']}", headers=auth_headers(bob.email)
        ).status_code == 200
        assert client.get(
            f"/v1/chat_rooms/{room['id']}", headers=auth_headers(carol.email)
        ).status_code == 404

    def test_list_includes_participant_details(self, client, alice, bob):
        _create_room(client, alice, bob)

        (room,) = client.get("/v1/chat_rooms", headers=auth_headers(bob.email)).json()

        people = {p["employee_id"]: p["employee"] for p in room["participants"]}
        assert people[str(alice.id)] == {
            "id": str(alice.id),
            "name": "Alice",
            "email": alice.email,
            "position": "Charge Nurse",
        }
        assert people[str(bob.id)]["name"] == "Bob"

    def test_participant_details_in_degraded_mode(self, client, alice, bob, drop_chat_tables):
        room = _create_room(client, alice, bob)

        fetched = client.get(f"/v1/chat_rooms/{room['id']}", headers=auth_headers(bob.email)).json()

        assert {p["employee"]["name"] for p in fetched["participants"]} == {"Alice", "Bob"}

    def test_update_and_deactivate(self, client, alice, bob):
        room = _create_room(client, alice, bob)
        url = f"/v1/chat_rooms/{room['id']}"

        assert client.put(url, json={"name": "Mine"}, headers=auth_headers(bob.email)).status_code == 403
        response = client.put(url, json={"name": "Renamed"}, headers=auth_headers(alice.email))
        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"

        assert client.delete(url, headers=auth_headers(alice.email)).status_code == 204
        assert client.get("/v1/chat_rooms", headers=auth_headers(bob.email)).json() == []

    def test_participant_management(self, client, alice, bob, carol):
        room = _create_room(client, alice, bob)
        base = f"/v1/chat_rooms/{room['id']}/participants"

        response = client.post(
            base, json={"employee_ids": [str(carol.id)]}, headers=auth_headers(alice.email)
        )
        assert response.status_code == 201
        assert [p["employee_id"] for p in response.json()] == [str(carol.id)]

        response = client.put(
            f"{base}/{carol.id}", json={"role": "admin"}, headers=auth_headers(alice.email)
        )
        assert response.json()["role"] == "admin"

        response = client.put(
            f"{base}/{alice.id}", json={"role": "member"}, headers=auth_headers(alice.email)
        )
        assert response.status_code == 403

        response = client.delete(f"{base}/{bob.id}", headers=auth_headers(bob.email))
        assert response.status_code == 200
        assert response.json()["is_active"] is False

    def test_messages_flow(self, client, alice, bob):
        room = _create_room(client, alice, bob)
        base = f"/v1/chat_rooms/{room['id']}"

        response = client.post(
            f"{base}/messages", json={"content": "hello"}, headers=auth_headers(alice.email)
        )
        assert response.status_code == 201
        message = response.json()
        assert message["sender"]["name"] == "Alice"
        assert message["sender"]["position"] == "Charge Nurse"

        bob_view = client.get(base, headers=auth_headers(bob.email)).json()
        assert bob_view["unread_count"] == 1

        read = client.post(f"{base}/read", headers=auth_headers(bob.email)).json()
        assert read == {"room_id": room["id"], "ok": True, "unread_count": 0}

        messages = client.get(f"{base}/messages?limit=10", headers=auth_headers(bob.email)).json()
        assert [m["content"] for m in messages] == ["hello"]

        response = client.put(
            f"{base}/messages/{message['id']}",
            json={"content": "hijack"},
            headers=auth_headers(bob.email),
        )
        assert response.status_code == 403
        response = client.put(
            f"{base}/messages/{message['id']}",
            json={"content": "hello all"},
            headers=auth_headers(alice.email),
        )
        assert response.json()["is_edited"] is True

        response = client.post(
            f"{base}/messages/{message['id']}/reactions",
            json={"reaction": "+1"},
            headers=auth_headers(bob.email),
        )
        assert response.json() == {"message_id": message["id"], "reaction": "+1", "active": True}

    def test_message_errors(self, client, alice, bob, carol):
        room = _create_room(client, alice, bob)
        base = f"/v1/chat_rooms/{room['id']}/messages"

        assert client.post(base, json={"content": " "}, headers=auth_headers(alice.email)).status_code == 400
        assert client.post(base, json={"content": "x"}, headers=auth_headers(carol.email)).status_code == 403
        assert client.get(f"{base}?limit=500", headers=auth_headers(alice.email)).status_code == 422
        assert client.get(base, headers=auth_headers(carol.email)).status_code == 404

    def test_cannot_post_system_message(self, client, alice, bob):
        room = _create_room(client, alice, bob)
        base = f"/v1/chat_rooms/{room['id']}/messages"

        response = client.post(
            base,
            json={"message_type": "system", "content": "Server maintenance at 22:00"},
            headers=auth_headers(bob.email),
        )

        assert response.status_code == 422
        assert client.get(base, headers=auth_headers(bob.email)).json() == []

    def test_send_storage_failure(self, client, alice, bob):
        room = _create_room(client, alice, bob)
        error = OperationalError("INSERT", {}, FakeDriverError("connection refused"))
        with patch.object(RemoteChatStore, "append_message", side_effect=error):
            response = client.post(
                f"/v1/chat_rooms/{room['id']}/messages",
                json={"content": "hello"},
                headers=auth_headers(alice.email),
            )
        assert response.status_code == 503


class TestStream:
    def test_receives_new_message(self, client, alice, bob):
        room = _create_room(client, alice, bob)
        url = f"/v1/chat_rooms/{room['id']}/stream?token={_token(bob)}"

        with client.websocket_connect(url) as ws:
            client.post(
                f"/v1/chat_rooms/{room['id']}/messages",
                json={"content": "hello"},
                headers=auth_headers(alice.email),
            )
            data = ws.receive_json()

        assert data["event"] == "INSERT"
        assert data["message"]["content"] == "hello"
        assert data["message"]["sender"]["name"] == "Alice"

    def test_receives_edit(self, client, alice, bob):
        room = _create_room(client, alice, bob)
        sent = client.post(
            f"/v1/chat_rooms/{room['id']}/messages",
            json={"content": "draft"},
            headers=auth_headers(alice.email),
        ).json()
        url = f"/v1/chat_rooms/{room['id']}/stream?token={_token(bob)}"

        with client.websocket_connect(url) as ws:
            client.put(
                f"/v1/chat_rooms/{room['id']}/messages/{sent['id']}",
                json={"content": "final"},
                headers=auth_headers(alice.email),
            )
            data = ws.receive_json()

        assert data["event"] == "UPDATE"
        assert data["message"]["content"] == "final"

    def test_temporary_room_stream(self, client, alice, bob, drop_chat_tables):
        room = _create_room(client, alice, bob)
        url = f"/v1/chat_rooms/{room['id']}/stream?token={_token(bob)}"

        with client.websocket_connect(url) as ws:
            client.post(
                f"/v1/chat_rooms/{room['id']}/messages",
                json={"content": "offline hello"},
                headers=auth_headers(alice.email),
            )
            data = ws.receive_json()

        assert is_temporary_id(data["message"]["id"])
        assert data["message"]["content"] == "offline hello"

    def test_rejects_missing_token(self, client, alice, bob):
        room = _create_room(client, alice, bob)
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(f"/v1/chat_rooms/{room['id']}/stream"):
                pass
        assert exc_info.value.code == 4401

    def test_rejects_non_member(self, client, alice, bob, carol):
        room = _create_room(client, alice, bob)
        url = f"/v1/chat_rooms/{room['id']}/stream?token={_token(carol)}"
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(url):
                pass
        assert exc_info.value.code == 4404
