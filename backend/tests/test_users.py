"""Tests for the user directory and the /users endpoints."""
from datetime import timezone

import pytest

from chatcore.errors import ValidationError


class TestUserDirectory:

    def test_create_and_get(self, directory):
        user = directory.create_user("alice", display_name="Alice A")

        assert directory.get(user.id) == user
        assert directory.exists(user.id)
        assert user.displayName == "Alice A"
        assert directory.get(user.id).createdAt.tzinfo == timezone.utc

    def test_display_name_defaults_to_username(self, directory):
        assert directory.create_user("bob").displayName == "bob"

    def test_usernames_unique_case_insensitively(self, directory):
        directory.create_user("Alice")
        with pytest.raises(ValidationError):
            directory.create_user("alice")

    def test_blank_username_rejected(self, directory):
        with pytest.raises(ValidationError):
            directory.create_user("   ")

    def test_get_by_username_ignores_case(self, directory):
        user = directory.create_user("Alice")
        assert directory.get_by_username("ALICE").id == user.id

    def test_get_many_skips_unknown(self, directory, users):
        found = directory.get_many([users["alice"].id, "ghost"])
        assert list(found) == [users["alice"].id]
        assert directory.get_many([]) == {}

    def test_find_by_usernames(self, directory, users):
        found = directory.find_by_usernames(["BOB", "nobody"])
        assert list(found) == ["bob"]
        assert found["bob"].id == users["bob"].id


class TestSearch:

    @pytest.fixture
    def crowd(self, directory):
        return {
            name: directory.create_user(name)
            for name in ("bo", "bob", "bobby", "abbot", "robert")
        }

    def test_prefix_ranking(self, directory, crowd):
        """Exact match first, then shorter usernames, then alphabetical."""
        result = directory.search_prefix("bob")
        assert [u.username for u in result] == ["bob", "bobby"]

        result = directory.search_prefix("b")
        assert [u.username for u in result] == ["bo", "bob", "bobby"]

    def test_prefix_is_case_insensitive(self, directory, crowd):
        assert [u.username for u in directory.search_prefix("BOB")] == ["bob", "bobby"]

    def test_empty_prefix_matches_everyone_up_to_limit(self, directory, crowd):
        assert len(directory.search_prefix("", limit=3)) == 3

    def test_prefix_restricted_to_ids(self, directory, crowd):
        result = directory.search_prefix("bo", restrict_to=[crowd["bobby"].id])
        assert [u.username for u in result] == ["bobby"]
        assert directory.search_prefix("bo", restrict_to=[]) == []

    def test_substring_search_ranks_prefix_first(self, directory, crowd):
        result = directory.search("bo")
        usernames = [u.username for u in result]
        assert usernames[:3] == ["bo", "bob", "bobby"]
        assert set(usernames[3:]) == {"abbot"}

    def test_search_matches_display_name(self, directory):
        directory.create_user("xz", display_name="Robert Smith")
        assert [u.username for u in directory.search("smith")] == ["xz"]

    def test_empty_query_returns_nothing(self, directory, crowd):
        assert directory.search("  ") == []


class TestUserEndpoints:

    def test_search_requires_auth(self, api_client):
        response = api_client.get("/users/search", params={"query": "a"})
        assert response.status_code == 401
        assert response.json() == {"error": "Access token required"}

    def test_search_returns_presence(self, api_client, users, auth_headers):
        response = api_client.get(
            "/users/search", params={"query": "bo"}, headers=auth_headers(users["alice"])
        )

        assert response.status_code == 200
        found = response.json()["users"]
        assert [u["username"] for u in found] == ["bob"]
        assert found[0]["isOnline"] is False

    def test_mention_suggestions(self, api_client, users, auth_headers):
        response = api_client.get(
            "/users/mentions", params={"prefix": "CA"}, headers=auth_headers(users["alice"])
        )

        assert response.status_code == 200
        assert [u["username"] for u in response.json()["users"]] == ["carol"]

    def test_mention_suggestions_from_cursor(self, api_client, users, auth_headers):
        response = api_client.get(
            "/users/mentions",
            params={"text": "hey @b and more", "cursor": 6},
            headers=auth_headers(users["alice"]),
        )
        assert [u["username"] for u in response.json()["users"]] == ["bob"]

    def test_mention_suggestions_in_room(self, api_client, users, auth_headers, hub):
        room = hub.room_service.create_room(users["alice"].id, "Team", member_ids=[users["bob"].id])

        response = api_client.get(
            "/users/mentions",
            params={"prefix": "", "roomId": room.id},
            headers=auth_headers(users["alice"]),
        )
        assert sorted(u["username"] for u in response.json()["users"]) == ["alice", "bob"]

        response = api_client.get(
            "/users/mentions",
            params={"prefix": "", "roomId": room.id},
            headers=auth_headers(users["carol"]),
        )
        assert response.status_code == 403
        assert response.json() == {"error": "Not a group member"}
