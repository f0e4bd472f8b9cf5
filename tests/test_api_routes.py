"""
tests/test_api_routes.py -- Integration tests over the app built by create_app().

These tests exercise the full stack: route discovery over api/routes ->
FastAPI mounting -> guard chain -> handler -> error boundary. Each test gets
a freshly built app (see conftest.make_client).

Coverage:
  - test/1 counts hits, test/2 fails with the 1002 envelope
  - unknown paths and wrong methods answer the 404 envelope
  - register/login/me/revoke happy path and failures
  - login rate limit answers 429 with Retry-After
  - a handler crash yields a 500 with a tracking number, nothing else
  - health reports the mounted routes and the registered users
"""

from __future__ import annotations

import re
import textwrap

from fastapi.testclient import TestClient

from core.constants import API_V0, ErrorCode

PASSWORD = "lovelace-1815"


def _register(client: TestClient, username: str = "ada", password: str = PASSWORD):
    return client.post(API_V0.REGISTER, json={"username": username, "password": password})


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class TestSmokeRoutes:
    def test_test_one_counts_hits(self, api_client: TestClient) -> None:
        first = api_client.get(API_V0.TEST_1)
        second = api_client.get(API_V0.TEST_1)

        assert first.status_code == 200
        assert first.json() == {"test": "successful", "number": 0}
        assert second.json() == {"test": "successful", "number": 1}

    def test_test_two_is_a_rest_error(self, api_client: TestClient) -> None:
        resp = api_client.get(API_V0.TEST_2)
        assert resp.status_code == 400
        assert resp.json() == {"message": "Success!", "code": 1002}

    def test_unknown_path_is_404_envelope(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v0/does-not-exist")
        assert resp.status_code == 404
        assert resp.json() == {"code": "404", "message": "Not found."}

    def test_wrong_method_is_404_envelope(self, api_client: TestClient) -> None:
        resp = api_client.delete(API_V0.TEST_1)
        assert resp.status_code == 404
        assert resp.json() == {"code": "404", "message": "Not found."}
        assert "allow" not in resp.headers

    def test_health(self, api_client: TestClient) -> None:
        resp = api_client.get(API_V0.HEALTH)
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["routes"] == len(api_client.app.state.dispatch_table)
        assert data["users"] == 0
        assert ("GET", API_V0.TEST_1) in api_client.app.state.dispatch_table

    def test_shipped_routes_discover_cleanly(self, api_client: TestClient) -> None:
        assert api_client.app.state.discovery_issues == []
        assert set(API_V0.all().values()) <= {path for _, path in api_client.app.state.dispatch_table}


class TestAuthRoutes:
    def test_register_returns_user_and_working_token(self, api_client: TestClient) -> None:
        resp = _register(api_client)
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["user"]["username"] == "ada"
        assert data["user"]["snowflake"].isdigit()
        assert "secret" not in data["user"]

        me = api_client.get(API_V0.ME, headers=_bearer(data["token"]))
        assert me.status_code == 200
        assert me.json()["snowflake"] == data["user"]["snowflake"]

    def test_register_duplicate_username(self, api_client: TestClient) -> None:
        _register(api_client)
        resp = _register(api_client)
        assert resp.status_code == 409
        assert resp.json()["code"] == ErrorCode.USERNAME_TAKEN

    def test_register_validation(self, api_client: TestClient) -> None:
        resp = api_client.post(API_V0.REGISTER, json={"username": "a b", "password": "short"})
        assert resp.status_code == 400
        body = resp.json()
        assert body["code"] == ErrorCode.VALIDATION_FAILED
        assert set(body["fields"]) == {"username", "password"}

    def test_register_rejects_non_json_body(self, api_client: TestClient) -> None:
        resp = api_client.post(API_V0.REGISTER, content=b"not json", headers={"Content-Type": "application/json"})
        assert resp.status_code == 400
        assert resp.json()["code"] == ErrorCode.VALIDATION_FAILED

    def test_login(self, api_client: TestClient) -> None:
        _register(api_client)
        resp = api_client.post(API_V0.LOGIN, json={"username": "ada", "password": PASSWORD})
        assert resp.status_code == 200
        token = resp.json()["token"]
        assert resp.headers["Cache-Control"] == "no-store"
        assert api_client.get(API_V0.ME, headers=_bearer(token)).status_code == 200

    def test_login_sets_cookie_that_authenticates(self, api_client: TestClient) -> None:
        _register(api_client)
        api_client.post(API_V0.LOGIN, json={"username": "ada", "password": PASSWORD})
        assert api_client.cookies.get("token")
        assert api_client.get(API_V0.ME).json()["username"] == "ada"

    def test_bad_credentials_are_indistinguishable(self, api_client: TestClient) -> None:
        _register(api_client)
        wrong_password = api_client.post(API_V0.LOGIN, json={"username": "ada", "password": "nope"})
        no_such_user = api_client.post(API_V0.LOGIN, json={"username": "bob", "password": "nope"})

        assert wrong_password.status_code == no_such_user.status_code == 401
        assert wrong_password.json() == no_such_user.json()
        assert wrong_password.json()["code"] == ErrorCode.BAD_CREDENTIALS

    def test_me_requires_token(self, api_client: TestClient) -> None:
        resp = api_client.get(API_V0.ME)
        assert resp.status_code == 401
        assert resp.json()["code"] == ErrorCode.UNAUTHORIZED
        assert resp.headers["WWW-Authenticate"] == "Bearer"

    def test_bearer_scheme_is_case_insensitive(self, api_client: TestClient) -> None:
        token = _register(api_client).json()["token"]
        api_client.cookies.clear()

        for scheme in ("bearer", "BEARER"):
            resp = api_client.get(API_V0.ME, headers={"Authorization": f"{scheme} {token}"})
            assert resp.status_code == 200, scheme
            assert resp.json()["username"] == "ada"

    def test_me_rejects_garbage_token(self, api_client: TestClient) -> None:
        resp = api_client.get(API_V0.ME, headers=_bearer("a.b.c"))
        assert resp.status_code == 401

    def test_revoke_invalidates_old_tokens(self, api_client: TestClient) -> None:
        old = _register(api_client).json()["token"]
        resp = api_client.post(API_V0.REVOKE, headers=_bearer(old))
        assert resp.status_code == 200
        new = resp.json()["token"]
        api_client.cookies.clear()

        assert new != old
        assert api_client.get(API_V0.ME, headers=_bearer(old)).status_code == 401
        assert api_client.get(API_V0.ME, headers=_bearer(new)).status_code == 200


def test_login_rate_limit(make_client) -> None:
    client = make_client(login_rate_limit="2/minute")
    body = {"username": "ghost", "password": "nope"}

    assert client.post(API_V0.LOGIN, json=body).status_code == 401
    assert client.post(API_V0.LOGIN, json=body).status_code == 401
    limited = client.post(API_V0.LOGIN, json=body)

    assert limited.status_code == 429
    assert limited.json()["code"] == ErrorCode.RATE_LIMITED
    assert int(limited.headers["Retry-After"]) > 0


def test_handler_crash_is_masked(make_client, tmp_path, caplog) -> None:
    (tmp_path / "crash.py").write_text(
        textwrap.dedent(
            """
            from api.routing import Route

            def explode(request):
                raise RuntimeError("connection string postgres://admin:pw@db")

            routes = Route.define(path="/crash", method="GET", handler=explode)
            """
        )
    )
    client = make_client(routes_dir=tmp_path)
    resp = client.get("/crash")

    assert resp.status_code == 500
    message = resp.json()["message"]
    assert re.fullmatch(r"Internal error occurred\. Tracking number: [0-9a-f]{16}", message)
    assert resp.json()["code"] == 1002
    assert "postgres" not in resp.text

    ref = message.rsplit(" ", 1)[1]
    assert any(ref in record.getMessage() for record in caplog.records if record.name == "stormstarter.errors")


def test_health_counts_registered_users(api_client: TestClient) -> None:
    _register(api_client, "ada")
    _register(api_client, "grace")
    assert api_client.get(API_V0.HEALTH).json()["users"] == 2


def test_custom_routes_dir_still_serves_health(make_client, tmp_path) -> None:
    client = make_client(routes_dir=tmp_path)
    assert client.get(API_V0.HEALTH).json()["routes"] == 1
    assert client.get(API_V0.TEST_1).status_code == 404
