"""End-to-end tests for the HTTP endpoints."""
import pytest
from fastapi.testclient import TestClient

from chatcore.main import app


client = TestClient(app)


@pytest.fixture
def as_user(users, auth_headers):
    """Headers for a seeded user by name."""
    def _as(name: str) -> dict:
        return auth_headers(users[name])

    return _as


def _create_room(as_user, users, **overrides):
    body = {"name": "Team", "memberIds": [users["bob"].id]}
    body.update(overrides)
    response = client.post("/rooms", json=body, headers=as_user("alice"))
    assert response.status_code == 201, response.text
    return response.json()


class TestAuthRequired:

    @pytest.mark.parametrize("method,path", [
        ("get", "/conversations"),
        ("post", "/direct"),
        ("get", "/direct/someone"),
        ("post", "/rooms"),
        ("get", "/rooms/some-room/messages"),
        ("post", "/messages/some-message/seen"),
    ])
    def test_missing_token_is_401(self, method, path):
        response = getattr(client, method)(path)
        assert response.status_code == 401
        assert response.json() == {"error": "Access token required"}


class TestDirectEndpoints:

    def test_send_and_read_history(self, users, as_user):
        response = client.post(
            "/direct",
            json={"receiver": users["bob"].id, "content": "hi bob"},
            headers=as_user("alice"),
        )
        assert response.status_code == 201
        sent = response.json()
        assert sent["content"] == "hi bob"
        assert sent["status"] == "sent"
        assert sent["sender"]["username"] == "alice"
        assert sent["receiver"]["username"] == "bob"
        assert sent["chatRoom"] is None

        client.post(
            "/direct",
            json={"receiver": users["alice"].id, "content": "hi alice"},
            headers=as_user("bob"),
        )

        response = client.get(f"/direct/{users['bob'].id}", headers=as_user("alice"))
        assert response.status_code == 200
        history = response.json()["messages"]
        assert [m["content"] for m in history] == ["hi bob", "hi alice"]

    def test_empty_content_is_400(self, users, as_user):
        response = client.post(
            "/direct", json={"receiver": users["bob"].id, "content": "  "}, headers=as_user("alice")
        )
        assert response.status_code == 400
        assert response.json() == {"error": "content required"}

    def test_missing_receiver_is_400(self, as_user):
        response = client.post("/direct", json={"content": "hi"}, headers=as_user("alice"))
        assert response.status_code == 400
        assert "receiver" in response.json()["error"]

    def test_unknown_receiver_is_404(self, as_user):
        response = client.post(
            "/direct", json={"receiver": "ghost", "content": "hi"}, headers=as_user("alice")
        )
        assert response.status_code == 404
        assert response.json() == {"error": "User not found"}

    def test_start_conversation(self, users, as_user):
        response = client.post(
            "/direct/start", json={"userId": users["carol"].id}, headers=as_user("alice")
        )
        assert response.status_code == 200
        thread = response.json()
        assert thread["conversation"]["type"] == "direct"
        assert thread["conversation"]["id"] == users["carol"].id
        assert thread["conversation"]["peer"]["username"] == "carol"
        assert thread["conversation"]["lastMessage"] is None
        assert thread["messages"] == []

        client.post(
            "/direct", json={"receiver": users["carol"].id, "content": "yo"}, headers=as_user("alice")
        )
        thread = client.post(
            "/direct/start", json={"userId": users["carol"].id}, headers=as_user("alice")
        ).json()
        assert thread["conversation"]["lastMessage"]["content"] == "yo"
        assert len(thread["messages"]) == 1


class TestRoomEndpoints:

    def test_member_posts_to_room(self, users, as_user):
        room = _create_room(as_user, users)

        response = client.post(
            f"/rooms/{room['id']}/messages",
            json={"content": "hello @alice"},
            headers=as_user("bob"),
        )

        assert response.status_code == 201
        message = response.json()
        assert message["sender"]["username"] == "bob"
        assert message["chatRoom"] == room["id"]
        assert [m["username"] for m in message["mentions"]] == ["alice"]

        details = client.get(f"/rooms/{room['id']}", headers=as_user("alice")).json()
        assert details["lastMessage"]["id"] == message["id"]
        assert details["lastMessage"]["sender"]["username"] == "bob"

    def test_non_member_cannot_post(self, users, as_user):
        room = _create_room(as_user, users)

        response = client.post(
            f"/rooms/{room['id']}/messages", json={"content": "hi"}, headers=as_user("carol")
        )

        assert response.status_code == 403
        assert response.json() == {"error": "Not a group member"}

    def test_unknown_room_is_404(self, as_user):
        response = client.post("/rooms/missing/messages", json={"content": "hi"}, headers=as_user("alice"))
        assert response.status_code == 404
        assert response.json() == {"error": "Chat room not found"}

    def test_create_room_validation(self, as_user):
        response = client.post("/rooms", json={"name": " "}, headers=as_user("alice"))
        assert response.status_code == 400
        response = client.post(
            "/rooms", json={"name": "Team", "memberIds": ["ghost"]}, headers=as_user("alice")
        )
        assert response.status_code == 400

    def test_join_leave_flow(self, users, as_user):
        room = _create_room(as_user, users)

        joined = client.post(f"/rooms/{room['id']}/join", headers=as_user("carol"))
        assert joined.status_code == 200
        assert len(joined.json()["members"]) == 3

        again = client.post(f"/rooms/{room['id']}/join", headers=as_user("carol"))
        assert again.status_code == 400
        assert again.json() == {"error": "Already a member"}

        left = client.post(f"/rooms/{room['id']}/leave", headers=as_user("carol"))
        assert left.status_code == 200

        last_admin = client.post(f"/rooms/{room['id']}/leave", headers=as_user("alice"))
        assert last_admin.status_code == 400
        assert last_admin.json() == {"error": "Room must keep at least one admin"}

    def test_private_room_join_forbidden(self, users, as_user):
        room = _create_room(as_user, users, isPrivate=True)
        response = client.post(f"/rooms/{room['id']}/join", headers=as_user("carol"))
        assert response.status_code == 403
        assert response.json() == {"error": "Room is private"}

    def test_admin_manages_members(self, users, as_user):
        room = _create_room(as_user, users)
        carol_id = users["carol"].id

        denied = client.post(
            f"/rooms/{room['id']}/add", json={"userId": carol_id}, headers=as_user("bob")
        )
        assert denied.status_code == 403

        added = client.post(
            f"/rooms/{room['id']}/add", json={"userId": carol_id}, headers=as_user("alice")
        )
        assert added.status_code == 200

        promoted = client.post(
            f"/rooms/{room['id']}/role",
            json={"userId": carol_id, "newRole": "admin"},
            headers=as_user("alice"),
        )
        roles = {m["user"]["username"]: m["role"] for m in promoted.json()["members"]}
        assert roles == {"alice": "admin", "bob": "member", "carol": "admin"}

        removed = client.post(
            f"/rooms/{room['id']}/remove", json={"userId": users["bob"].id}, headers=as_user("carol")
        )
        assert removed.status_code == 200
        assert {m["user"]["username"] for m in removed.json()["members"]} == {"alice", "carol"}

    def test_invalid_role_is_400(self, users, as_user):
        room = _create_room(as_user, users)
        response = client.post(
            f"/rooms/{room['id']}/role",
            json={"userId": users["bob"].id, "newRole": "owner"},
            headers=as_user("alice"),
        )
        assert response.status_code == 400

    def test_paginated_history(self, users, as_user):
        room = _create_room(as_user, users)
        for i in range(3):
            client.post(
                f"/rooms/{room['id']}/messages", json={"content": f"m{i}"}, headers=as_user("alice")
            )

        page = client.get(
            f"/rooms/{room['id']}/messages", params={"page": 1, "limit": 2}, headers=as_user("bob")
        ).json()

        assert [m["content"] for m in page["messages"]] == ["m1", "m2"]
        assert page["hasMore"] is True
        assert page["page"] == 1
        assert page["limit"] == 2

        outsider = client.get(f"/rooms/{room['id']}/messages", headers=as_user("carol"))
        assert outsider.status_code == 403


class TestConversationsAndStatus:

    def test_conversations(self, users, as_user):
        room = _create_room(as_user, users)
        client.post(
            "/direct", json={"receiver": users["carol"].id, "content": "psst"}, headers=as_user("alice")
        )

        inbox = client.get("/conversations", headers=as_user("alice")).json()

        assert [c["peer"]["username"] for c in inbox["direct"]] == ["carol"]
        assert inbox["direct"][0]["lastMessage"]["content"] == "psst"
        assert [g["id"] for g in inbox["group"]] == [room["id"]]
        assert inbox["group"][0]["type"] == "group"

    def test_mark_delivered_then_seen(self, users, as_user):
        message = client.post(
            "/direct", json={"receiver": users["bob"].id, "content": "hi"}, headers=as_user("alice")
        ).json()

        delivered = client.post(f"/messages/{message['id']}/delivered", headers=as_user("bob"))
        assert delivered.json()["status"] == "delivered"

        seen = client.post(f"/messages/{message['id']}/seen", headers=as_user("bob"))
        assert seen.json()["status"] == "seen"

        stale = client.post(f"/messages/{message['id']}/delivered", headers=as_user("bob"))
        assert stale.status_code == 200
        assert stale.json()["status"] == "seen"

        forbidden = client.post(f"/messages/{message['id']}/seen", headers=as_user("carol"))
        assert forbidden.status_code == 403
