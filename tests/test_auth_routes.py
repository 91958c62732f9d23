"""
tests/test_auth_routes.py -- Integration tests for the auth and users endpoints.

These tests exercise the full stack: FastAPI routing -> identity gate ->
SessionManager -> stores -> response serialization and cookies.

Coverage:
  - signup 201 / 400 missing field / 409 duplicate
  - login 200 with httpOnly cookies / 401 generic failure
  - refresh rotates the cookie; replaying the original refresh token is 401
  - logout always 200 and clears cookies
  - required gate (GET /users/me) vs optional gate (GET /auth/session)
  - password change

Fixtures used (from conftest.py):
  - api_client: function-scoped TestClient with an empty database and cookie jar
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from auth.tokens import mint_token_pair

_SIGNUP = "/api/v1/auth/signup"
_LOGIN = "/api/v1/auth/login"
_REFRESH = "/api/v1/auth/refresh"
_LOGOUT = "/api/v1/auth/logout"
_SESSION = "/api/v1/auth/session"
_ME = "/api/v1/users/me"


def _set_cookie_headers(resp) -> list[str]:
    return [v for k, v in resp.headers.multi_items() if k.lower() == "set-cookie"]


def _signup_and_login(client: TestClient, email: str = "a@x.com", password: str = "p1"):
    client.post(_SIGNUP, json={"email": email, "password": password, "nickname": "A"})
    resp = client.post(_LOGIN, json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return resp


class TestSignup:
    def test_signup_created(self, api_client: TestClient) -> None:
        resp = api_client.post(_SIGNUP, json={"email": "a@x.com", "password": "p1", "nickname": "A"})
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["email"] == "a@x.com"
        assert data["nickname"] == "A"
        assert "password" not in data
        assert "hashed_password" not in data

    def test_register_alias(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/v1/auth/register", json={"email": "b@x.com", "password": "p1", "nickname": "B"})
        assert resp.status_code == 201

    def test_signup_missing_field(self, api_client: TestClient) -> None:
        resp = api_client.post(_SIGNUP, json={"email": "a@x.com", "password": "p1"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"

    def test_signup_malformed_body(self, api_client: TestClient) -> None:
        resp = api_client.post(_SIGNUP, content=b"not json", headers={"Content-Type": "application/json"})
        assert resp.status_code == 400

    def test_signup_duplicate(self, api_client: TestClient) -> None:
        body = {"email": "a@x.com", "password": "p1", "nickname": "A"}
        api_client.post(_SIGNUP, json=body)
        resp = api_client.post(_SIGNUP, json=body)
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "conflict"


class TestLogin:
    def test_login_sets_httponly_cookies(self, api_client: TestClient) -> None:
        resp = _signup_and_login(api_client)
        assert resp.json() == {"message": "Login successful"}
        assert resp.headers["cache-control"] == "no-store"
        headers = _set_cookie_headers(resp)
        access = next(h for h in headers if h.startswith("access_token="))
        refresh = next(h for h in headers if h.startswith("refresh_token="))
        assert "httponly" in access.lower()
        assert "httponly" in refresh.lower()
        assert "path=/api/v1/auth" in refresh.lower()

    def test_login_bad_credentials(self, api_client: TestClient) -> None:
        api_client.post(_SIGNUP, json={"email": "a@x.com", "password": "p1", "nickname": "A"})
        wrong = api_client.post(_LOGIN, json={"email": "a@x.com", "password": "nope"})
        unknown = api_client.post(_LOGIN, json={"email": "z@x.com", "password": "p1"})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()
        assert wrong.json()["error"]["code"] == "bad_credentials"

    def test_login_with_overlong_password_is_bad_credentials(self, api_client: TestClient) -> None:
        api_client.post(_SIGNUP, json={"email": "a@x.com", "password": "p1", "nickname": "A"})
        resp = api_client.post(_LOGIN, json={"email": "a@x.com", "password": "x" * 65})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "bad_credentials"


class TestRefresh:
    def test_signup_login_refresh_replay_scenario(self, api_client: TestClient) -> None:
        """signup -> login -> refresh (new token) -> refresh with the original -> 401."""
        signup = api_client.post(_SIGNUP, json={"email": "a@x.com", "password": "p1", "nickname": "A"})
        assert signup.status_code == 201

        login = api_client.post(_LOGIN, json={"email": "a@x.com", "password": "p1"})
        assert login.status_code == 200
        original = login.cookies.get("refresh_token")
        assert original

        refreshed = api_client.post(_REFRESH)
        assert refreshed.status_code == 200, refreshed.text
        rotated = refreshed.cookies.get("refresh_token")
        assert rotated and rotated != original

        api_client.cookies.clear()
        api_client.cookies.set("refresh_token", original)
        replay = api_client.post(_REFRESH)
        assert replay.status_code == 401
        assert replay.json()["error"]["code"] == "unauthenticated"
        assert not _set_cookie_headers(replay)

    def test_refresh_without_cookie(self, api_client: TestClient) -> None:
        resp = api_client.post(_REFRESH)
        assert resp.status_code == 401

    def test_refresh_with_forged_cookie(self, api_client: TestClient) -> None:
        api_client.cookies.set("refresh_token", "forged.token.value")
        resp = api_client.post(_REFRESH)
        assert resp.status_code == 401

    def test_refreshed_access_token_works(self, api_client: TestClient) -> None:
        _signup_and_login(api_client)
        resp = api_client.post(_REFRESH)
        assert resp.status_code == 200
        new_access = resp.cookies.get("access_token")
        api_client.cookies.clear()
        me = api_client.get(_ME, headers={"Authorization": f"Bearer {new_access}"})
        assert me.status_code == 200
        assert me.json()["email"] == "a@x.com"


class TestLogout:
    def test_logout_clears_and_revokes(self, api_client: TestClient) -> None:
        login = _signup_and_login(api_client)
        refresh_token = login.cookies.get("refresh_token")

        resp = api_client.post(_LOGOUT)
        assert resp.status_code == 200
        cleared = _set_cookie_headers(resp)
        assert any(h.startswith("access_token=") for h in cleared)
        assert any(h.startswith("refresh_token=") for h in cleared)

        api_client.cookies.clear()
        api_client.cookies.set("refresh_token", refresh_token)
        assert api_client.post(_REFRESH).status_code == 401

    def test_logout_twice(self, api_client: TestClient) -> None:
        _signup_and_login(api_client)
        assert api_client.post(_LOGOUT).status_code == 200
        assert api_client.post(_LOGOUT).status_code == 200

    def test_logout_without_session(self, api_client: TestClient) -> None:
        resp = api_client.post(_LOGOUT)
        assert resp.status_code == 200
        assert resp.json() == {"message": "Logged out successfully"}


class TestIdentityGates:
    def test_required_gate_without_session(self, api_client: TestClient) -> None:
        resp = api_client.get(_ME)
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthenticated"

    def test_required_gate_with_corrupted_token(self, api_client: TestClient) -> None:
        api_client.cookies.set("access_token", "corrupted")
        assert api_client.get(_ME).status_code == 401

    def test_optional_gate_without_session(self, api_client: TestClient) -> None:
        resp = api_client.get(_SESSION)
        assert resp.status_code == 200
        assert resp.json() == {"authenticated": False, "user": None}

    def test_optional_gate_with_corrupted_token(self, api_client: TestClient) -> None:
        api_client.cookies.set("access_token", "corrupted")
        resp = api_client.get(_SESSION)
        assert resp.status_code == 200
        assert resp.json()["authenticated"] is False

    def test_gates_with_valid_session(self, api_client: TestClient) -> None:
        _signup_and_login(api_client)
        me = api_client.get(_ME)
        assert me.status_code == 200
        assert me.json()["email"] == "a@x.com"
        assert "hashed_password" not in me.json()

        status = api_client.get(_SESSION)
        assert status.json()["authenticated"] is True
        assert status.json()["user"]["email"] == "a@x.com"

    def test_token_for_unknown_user(self, api_client: TestClient) -> None:
        """A validly signed access token whose subject has no account."""
        headers = {"Authorization": f"Bearer {mint_token_pair(999).access_token}"}
        me = api_client.get(_ME, headers=headers)
        assert me.status_code == 401
        assert me.json()["error"]["code"] == "unauthenticated"

        status = api_client.get(_SESSION, headers=headers)
        assert status.status_code == 200
        assert status.json() == {"authenticated": False, "user": None}

    def test_refresh_token_is_not_accepted_as_access(self, api_client: TestClient) -> None:
        login = _signup_and_login(api_client)
        refresh_token = login.cookies.get("refresh_token")
        api_client.cookies.clear()
        resp = api_client.get(_ME, headers={"Authorization": f"Bearer {refresh_token}"})
        assert resp.status_code == 401


class TestChangePassword:
    def test_change_password(self, api_client: TestClient) -> None:
        _signup_and_login(api_client)
        resp = api_client.patch(
            f"{_ME}/password",
            json={"currentPassword": "p1", "newPassword": "p2"},
        )
        assert resp.status_code == 200, resp.text
        api_client.cookies.clear()
        assert api_client.post(_LOGIN, json={"email": "a@x.com", "password": "p1"}).status_code == 401
        assert api_client.post(_LOGIN, json={"email": "a@x.com", "password": "p2"}).status_code == 200

    def test_change_password_wrong_current(self, api_client: TestClient) -> None:
        _signup_and_login(api_client)
        resp = api_client.patch(f"{_ME}/password", json={"currentPassword": "x", "newPassword": "p2"})
        assert resp.status_code == 401

    def test_change_password_missing_field(self, api_client: TestClient) -> None:
        _signup_and_login(api_client)
        resp = api_client.patch(f"{_ME}/password", json={"currentPassword": "p1"})
        assert resp.status_code == 400

    def test_change_password_requires_auth(self, api_client: TestClient) -> None:
        resp = api_client.patch(f"{_ME}/password", json={"currentPassword": "p1", "newPassword": "p2"})
        assert resp.status_code == 401
