"""
tests/test_user_routes.py -- Integration tests for the /api/v1/users routes.

These tests exercise the full stack: FastAPI routing -> bearer dependency ->
account operations -> UserStore -> classifier-rendered error envelopes.

Coverage:
  - Auth failures: 401 on protected routes without or with a bad token
  - Login: 200 with token; identical 401 body for wrong password and unknown email
  - Signup: token for new account; 403 on confirmation mismatch and duplicates
  - List: unpaged count, paged metadata, 406 on malformed query
  - Get/Update/Delete: 400 malformed id, 404 unknown id, 403 re-auth failure,
    password change, delete of unknown id still 200
  - Responses never include a password field

Fixtures used (from conftest.py):
  - api_client: (client, token, uid) -- seeded user tester@example.com / TEST_PASSWORD
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from tests.helpers import TEST_PASSWORD

ApiClient = tuple[TestClient, str, int]


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _signup(client: TestClient, email: str, username: str, password: str = "pw-123456") -> str:
    resp = client.post(
        "/api/v1/users",
        json={"email": email, "username": username, "password": password, "confirmationPassword": password},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["token"]


class TestAuthRequired:
    """Protected routes reject requests without a valid bearer token."""

    def test_list_without_token(self, api_client: ApiClient) -> None:
        client, _token, _uid = api_client
        resp = client.get("/api/v1/users")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_get_with_garbage_token(self, api_client: ApiClient) -> None:
        client, _token, uid = api_client
        resp = client.get(f"/api/v1/users/{uid}", headers=_auth("garbage"))
        assert resp.status_code == 401

    def test_search_without_token(self, api_client: ApiClient) -> None:
        client, _token, _uid = api_client
        assert client.get("/api/v1/search/users", params={"q": "tester"}).status_code == 401


class TestLoginRoute:
    def test_valid_login(self, api_client: ApiClient) -> None:
        client, _token, _uid = api_client
        resp = client.post("/api/v1/users/login", json={"email": "tester@example.com", "password": TEST_PASSWORD})
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["token"]
        assert body["message"]
        assert resp.headers["Cache-Control"] == "no-store"

    def test_wrong_password_and_unknown_email_share_one_401_body(self, api_client: ApiClient) -> None:
        client, _token, _uid = api_client
        wrong = client.post("/api/v1/users/login", json={"email": "tester@example.com", "password": "nope"})
        unknown = client.post("/api/v1/users/login", json={"email": "ghost@example.com", "password": TEST_PASSWORD})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()

    def test_login_token_authenticates(self, api_client: ApiClient) -> None:
        client, _token, uid = api_client
        resp = client.post("/api/v1/users/login", json={"email": "tester@example.com", "password": TEST_PASSWORD})
        token = resp.json()["token"]
        assert client.get(f"/api/v1/users/{uid}", headers=_auth(token)).status_code == 200


class TestSignupRoute:
    def test_signup_returns_usable_token(self, api_client: ApiClient) -> None:
        client, _token, _uid = api_client
        token = _signup(client, "newbie@example.com", "newbie")
        resp = client.get("/api/v1/search/users", params={"q": "newbie"}, headers=_auth(token))
        assert resp.status_code == 200
        assert resp.json()["matches"] == 1

    def test_confirmation_mismatch(self, api_client: ApiClient) -> None:
        client, _token, _uid = api_client
        resp = client.post(
            "/api/v1/users",
            json={"email": "x@example.com", "username": "xx", "password": "one", "confirmationPassword": "two"},
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "password_confirmation_mismatch"

    def test_malformed_email_is_rejected_with_field_error(self, api_client: ApiClient) -> None:
        client, _token, _uid = api_client
        resp = client.post(
            "/api/v1/users",
            json={"email": "a..b@example.com", "username": "dots", "password": "pw", "confirmationPassword": "pw"},
        )
        assert resp.status_code == 403
        error = resp.json()["error"]
        assert set(error) == {"code", "message", "fields"}
        assert error["code"] == "validation_failure"
        assert error["fields"] == [{"field": "email", "message": "Please provide a valid email address."}]

    def test_duplicate_email_lists_offending_field(self, api_client: ApiClient) -> None:
        client, _token, _uid = api_client
        resp = client.post(
            "/api/v1/users",
            json={"email": "tester@example.com", "username": "fresh", "password": "pw", "confirmationPassword": "pw"},
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["fields"] == [{"field": "email", "message": "email must be unique."}]

    def test_overlong_password_is_rejected_before_hashing(self, api_client: ApiClient) -> None:
        client, _token, _uid = api_client
        long_password = "p" * 73
        resp = client.post(
            "/api/v1/users",
            json={
                "email": "long@example.com",
                "username": "longpw",
                "password": long_password,
                "confirmationPassword": long_password,
            },
        )
        assert resp.status_code == 422
        assert long_password not in resp.text


class TestListRoute:
    def test_unpaged_list_has_count(self, api_client: ApiClient) -> None:
        client, token, _uid = api_client
        resp = client.get("/api/v1/users", headers=_auth(token))
        assert resp.status_code == 200
        body = resp.json()
        assert body["metaData"]["count"] == len(body["users"])
        assert all("password" not in u and "hashedPassword" not in u for u in body["users"])

    def test_paged_list_has_page_metadata(self, api_client: ApiClient) -> None:
        client, token, _uid = api_client
        resp = client.get("/api/v1/users", params={"limit": "1", "offset": "0"}, headers=_auth(token))
        assert resp.status_code == 200
        body = resp.json()
        assert len(body["users"]) == 1
        assert set(body["metaData"]) == {"totalCount", "currentPage", "pageCount", "pageSize"}
        assert body["metaData"]["currentPage"] == 1

    def test_malformed_page_query_is_406(self, api_client: ApiClient) -> None:
        client, token, _uid = api_client
        resp = client.get("/api/v1/users", params={"limit": "ten", "offset": "0"}, headers=_auth(token))
        assert resp.status_code == 406

    def test_out_of_range_offset_is_406(self, api_client: ApiClient) -> None:
        client, token, _uid = api_client
        resp = client.get("/api/v1/users", params={"limit": "10", "offset": str(2**63)}, headers=_auth(token))
        assert resp.status_code == 406
        assert resp.json()["error"]["code"] == "malformed_pagination_query"


class TestSingleUserRoutes:
    def test_get_user_has_no_password(self, api_client: ApiClient) -> None:
        client, token, uid = api_client
        resp = client.get(f"/api/v1/users/{uid}", headers=_auth(token))
        assert resp.status_code == 200
        body = resp.json()
        assert body["email"] == "tester@example.com"
        assert "password" not in body
        assert "hashedPassword" not in body

    def test_malformed_id_is_400(self, api_client: ApiClient) -> None:
        client, token, _uid = api_client
        assert client.get("/api/v1/users/abc", headers=_auth(token)).status_code == 400

    def test_underscored_id_is_400(self, api_client: ApiClient) -> None:
        client, token, _uid = api_client
        resp = client.get("/api/v1/users/0_1", headers=_auth(token))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "malformed_identifier"

    def test_unknown_id_is_404(self, api_client: ApiClient) -> None:
        client, token, _uid = api_client
        assert client.get("/api/v1/users/99999", headers=_auth(token)).status_code == 404

    def test_update_requires_current_password(self, api_client: ApiClient) -> None:
        client, token, uid = api_client
        resp = client.put(f"/api/v1/users/{uid}", json={"password": "wrong", "bio": "x"}, headers=_auth(token))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "reauthentication_failed"

    def test_update_unknown_id_is_404(self, api_client: ApiClient) -> None:
        client, token, _uid = api_client
        resp = client.put("/api/v1/users/99999", json={"password": TEST_PASSWORD}, headers=_auth(token))
        assert resp.status_code == 404

    def test_update_profile(self, api_client: ApiClient) -> None:
        client, token, uid = api_client
        resp = client.put(
            f"/api/v1/users/{uid}",
            json={"password": TEST_PASSWORD, "fullName": "Test Er", "bio": "QA", "role": 1},
            headers=_auth(token),
        )
        assert resp.status_code == 200, resp.text
        user = resp.json()["user"]
        assert user["fullName"] == "Test Er"
        assert user["bio"] == "QA"
        assert user["role"] == 2
        assert "password" not in user

    def test_update_with_invalid_field_lists_errors(self, api_client: ApiClient) -> None:
        client, token, uid = api_client
        resp = client.put(
            f"/api/v1/users/{uid}",
            json={"password": TEST_PASSWORD, "username": "x"},
            headers=_auth(token),
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["fields"][0]["field"] == "username"

    def test_password_change_then_login(self, api_client: ApiClient) -> None:
        client, _token, _uid = api_client
        token = _signup(client, "changer@example.com", "changer", password="old-pass")
        own_id = client.get("/api/v1/search/users", params={"q": "changer"}, headers=_auth(token)).json()["users"][0][
            "id"
        ]
        resp = client.put(
            f"/api/v1/users/{own_id}",
            json={"password": "old-pass", "newPassword": "new-pass", "confirmationPassword": "new-pass"},
            headers=_auth(token),
        )
        assert resp.status_code == 200, resp.text
        assert "Password was also updated." in resp.json()["message"]

        old = client.post("/api/v1/users/login", json={"email": "changer@example.com", "password": "old-pass"})
        new = client.post("/api/v1/users/login", json={"email": "changer@example.com", "password": "new-pass"})
        assert old.status_code == 401
        assert new.status_code == 200

    def test_delete_unknown_id_still_succeeds(self, api_client: ApiClient) -> None:
        client, token, _uid = api_client
        resp = client.delete("/api/v1/users/424242", headers=_auth(token))
        assert resp.status_code == 200
        assert resp.json()["message"]

    def test_delete_removes_user(self, api_client: ApiClient) -> None:
        client, token, _uid = api_client
        doomed_token = _signup(client, "doomed@example.com", "doomed")
        doomed_id = client.get("/api/v1/search/users", params={"q": "doomed"}, headers=_auth(token)).json()["users"][
            0
        ]["id"]
        assert client.delete(f"/api/v1/users/{doomed_id}", headers=_auth(token)).status_code == 200
        assert client.get(f"/api/v1/users/{doomed_id}", headers=_auth(token)).status_code == 404
        # The deleted user's token no longer authenticates.
        assert client.get("/api/v1/users", headers=_auth(doomed_token)).status_code == 401


class TestSearchRoute:
    def test_no_matches_is_404(self, api_client: ApiClient) -> None:
        client, token, _uid = api_client
        resp = client.get("/api/v1/search/users", params={"q": "zzz-no-such"}, headers=_auth(token))
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "no_search_matches"
