from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from core.guest.settings import GuestSettings
from database import get_db
from models.guest_token import GuestToken
from models.password_reset_code import PasswordResetCode
from services.guest import NoUsernameCapability
from web.deps import get_guest_settings, get_mailer, get_username_capability
from web.main import create_app


@pytest.fixture()
def make_client(db_session: Session, mailer, make_settings) -> Generator[Callable[..., TestClient], None, None]:
    clients = []

    def _factory(**overrides) -> TestClient:
        settings: GuestSettings = make_settings(**overrides)
        app = create_app(settings)

        def _get_db():
            yield db_session

        app.dependency_overrides[get_db] = _get_db
        app.dependency_overrides[get_guest_settings] = lambda: settings
        app.dependency_overrides[get_mailer] = lambda: mailer
        app.dependency_overrides[get_username_capability] = lambda: NoUsernameCapability()
        client = TestClient(app, base_url="https://testserver")
        clients.append(client)
        return client

    yield _factory
    for client in clients:
        client.close()


@pytest.fixture()
def client(make_client) -> TestClient:
    return make_client(registration="open")


def _register_and_confirm(client: TestClient, db_session: Session, email: str = "flow@example.com") -> None:
    response = client.post("/api/guest/register", json={"email": email, "password": "secret1", "name": "Flow"})
    assert response.status_code == 200
    token = db_session.execute(select(GuestToken).where(GuestToken.email == email)).scalars().one()
    confirmed = client.get("/api/guest/confirm", params={"token": token.token})
    assert confirmed.status_code == 200


def test_register_confirm_login_flow(client: TestClient, db_session: Session, mailer) -> None:
    response = client.post(
        "/api/guest/register",
        json={"email": "flow@example.com", "password": "secret1", "name": "Flow"},
        headers={"Origin": "https://app.example.com"},
    )

    body = response.json()
    assert response.status_code == 200
    assert body["status"] == "success"
    assert body["data"]["user"]["email"] == "flow@example.com"
    assert body["data"]["user"]["isActive"] is True
    assert response.headers["access-control-allow-origin"] == "*"
    assert len(mailer.sent) == 1

    token = db_session.execute(select(GuestToken)).scalars().one()
    confirmed = client.get("/api/guest/confirm", params={"token": token.token})
    assert confirmed.json()["message"] == (
        "Thanks for joining Guest library! You can now log in using the password you chose."
    )

    login = client.post("/api/guest/login", json={"email": "flow@example.com", "password": "secret1"})
    data = login.json()["data"]
    assert login.status_code == 200
    assert data["session_token"]["user"]["id"] == body["data"]["user"]["id"]
    assert data["session_token"]["key_identity"]
    assert data["session_token"]["key_credential"]


def test_second_registration_is_a_conflict(client: TestClient, db_session: Session) -> None:
    _register_and_confirm(client, db_session)

    response = client.post("/api/guest/register", json={"email": "flow@example.com", "password": "secret1"})

    assert response.status_code == 400
    assert response.json() == {
        "status": "fail",
        "data": {"user": "Already registered."},
        "code": "guest.already_registered",
    }


def test_session_key_authenticates_me_and_logout_revokes_it(client: TestClient, db_session: Session) -> None:
    _register_and_confirm(client, db_session)
    login = client.post("/api/guest/login", json={"email": "flow@example.com", "password": "secret1"})
    session_token = login.json()["data"]["session_token"]
    client.cookies.clear()
    params = {"key_identity": session_token["key_identity"], "key_credential": session_token["key_credential"]}

    me = client.get("/api/guest/me", params=params)
    assert me.status_code == 200
    assert me.json()["data"]["user"]["email"] == "flow@example.com"

    bearer = client.get(
        "/api/guest/me",
        headers={"Authorization": f"Bearer {session_token['key_identity']}:{session_token['key_credential']}"},
    )
    assert bearer.status_code == 200

    logout = client.post("/api/guest/logout", params=params)
    assert logout.json() == {"status": "success", "data": {"user": None}, "message": "Successfully logout."}

    after = client.get("/api/guest/me", params=params)
    assert after.status_code == 401
    assert after.json()["data"] == {"user": "Unauthorized access."}


def test_login_opens_a_cookie_session(client: TestClient, db_session: Session) -> None:
    _register_and_confirm(client, db_session)

    login = client.post("/api/guest/login", json={"email": "flow@example.com", "password": "secret1"})
    me = client.get("/api/guest/me")

    cookie = login.headers["set-cookie"].lower()
    assert cookie.startswith("guest_session=")
    assert "httponly" in cookie
    assert "secure" in cookie
    assert "samesite=none" in cookie

    assert me.status_code == 200
    assert me.json()["data"]["user"]["name"] == "Flow"


def test_login_failure_is_a_fail_envelope(client: TestClient) -> None:
    response = client.post("/api/guest/login", json={"email": "ghost@example.com", "password": "secret1"})

    assert response.status_code == 400
    assert response.json() == {
        "status": "fail",
        "data": {"user": "Wrong email or password."},
        "code": "guest.credentials_invalid",
    }


def test_login_redirect_stays_on_the_frontend(client: TestClient, db_session: Session) -> None:
    _register_and_confirm(client, db_session)
    credentials = {"email": "flow@example.com", "password": "secret1"}

    local = client.post("/api/guest/login", params={"redirect": "/library"}, json=credentials, follow_redirects=False)
    assert local.status_code == 302
    assert local.headers["location"] == "/library"

    client.cookies.clear()
    remote = client.post(
        "/api/guest/login", params={"redirect": "https://evil.example.com/"}, json=credentials, follow_redirects=False
    )
    assert remote.status_code == 200
    assert "session_token" in remote.json()["data"]


def test_cors_refuses_unknown_origin(make_client) -> None:
    client = make_client(cors_origins=("https://app.example.com",))

    refused = client.post(
        "/api/guest/register", json={"email": "c@example.com"}, headers={"Origin": "https://evil.example.com"}
    )
    assert refused.status_code == 403
    assert refused.json() == {
        "status": "fail",
        "data": {"user": "Access forbidden."},
        "code": "guest.cors_forbidden",
    }
    assert "access-control-allow-origin" not in refused.headers

    allowed = client.get("/api/guest/me", headers={"Origin": "https://app.example.com"})
    assert allowed.status_code == 401
    assert allowed.headers["access-control-allow-origin"] == "https://app.example.com"
    assert allowed.headers["access-control-allow-credentials"] == "true"


def test_preflight_is_answered_for_listed_origins(make_client) -> None:
    client = make_client(cors_origins=("https://app.example.com",))
    preflight = {
        "Access-Control-Request-Method": "POST",
        "Access-Control-Request-Headers": "authorization, content-type",
    }

    allowed = client.options("/api/guest/login", headers={"Origin": "https://app.example.com", **preflight})
    assert allowed.status_code == 200
    assert allowed.headers["access-control-allow-origin"] == "https://app.example.com"
    assert allowed.headers["access-control-allow-credentials"] == "true"
    assert "POST" in allowed.headers["access-control-allow-methods"]

    patch = client.options(
        "/api/guest/me",
        headers={"Origin": "https://app.example.com", "Access-Control-Request-Method": "PATCH"},
    )
    assert patch.status_code == 200

    refused = client.options("/api/guest/login", headers={"Origin": "https://evil.example.com", **preflight})
    assert refused.status_code == 400
    assert "access-control-allow-origin" not in refused.headers


def test_closed_registration_is_forbidden(make_client) -> None:
    client = make_client(registration="closed")

    response = client.post("/api/guest/register", json={"email": "closed@example.com"})

    assert response.status_code == 403
    assert response.json()["data"] == {"user": "Access forbidden."}


def test_invalid_body_types_are_fail_envelopes(client: TestClient) -> None:
    response = client.post("/api/guest/register", json={"email": 5})

    body = response.json()
    assert response.status_code == 400
    assert body["status"] == "fail"
    assert "email" in body["data"]


def test_mail_failure_is_an_error_envelope(client: TestClient, mailer) -> None:
    mailer.result = False

    response = client.post("/api/guest/register", json={"email": "m@example.com", "password": "secret1"})

    assert response.status_code == 500
    assert response.json() == {
        "status": "error",
        "message": "An error occurred when the email was sent.",
        "code": "guest.email_failed",
    }


def test_forgot_password_round_trip(client: TestClient, db_session: Session, mailer) -> None:
    _register_and_confirm(client, db_session)

    requested = client.post("/api/guest/forgot-password", json={"email": "flow@example.com"})
    assert requested.json() == {"status": "success", "data": {"email": "flow@example.com"}}
    code = db_session.execute(select(PasswordResetCode.id)).scalars().one()
    assert code in mailer.sent[-1]["body"]

    redeemed = client.post(
        "/api/guest/forgot-password", json={"email": "flow@example.com", "token": code, "password": "changed1"}
    )
    assert redeemed.status_code == 200

    login = client.post("/api/guest/login", json={"email": "flow@example.com", "password": "changed1"})
    assert login.status_code == 200


def test_forgot_password_unknown_email(client: TestClient) -> None:
    response = client.post("/api/guest/forgot-password", json={"email": "nobody@example.com"})

    assert response.status_code == 400
    assert response.json()["data"] == {"email": "Invalid email."}


def test_patch_me_changes_name(client: TestClient, db_session: Session) -> None:
    _register_and_confirm(client, db_session)
    client.post("/api/guest/login", json={"email": "flow@example.com", "password": "secret1"})

    response = client.patch("/api/guest/me", json={"name": "Renamed"})

    assert response.status_code == 200
    assert response.json()["data"]["user"]["name"] == "Renamed"


def test_session_token_requires_a_user(client: TestClient) -> None:
    response = client.post("/api/guest/session-token")

    assert response.status_code == 401
