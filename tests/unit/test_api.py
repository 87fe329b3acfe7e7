"""
API tests through the FastAPI app (in-memory database, fake Redis)
"""

import json
import runpy
from datetime import datetime, timedelta

import pyotp
import pytest
import uvicorn
from fastapi.testclient import TestClient

from account_service.core import config
from account_service.core.database import get_db
from account_service.main import create_app
from tests.unit.conftest import TEST_PASSWORD, build_settings


STRONG_PASSWORD = "Correct-Horse-Battery-42"


@pytest.fixture
def client(settings, fake_redis, db_session):
    app = create_app(settings, redis=fake_redis)
    app.dependency_overrides[get_db] = lambda: db_session
    return TestClient(app)


def last_email(fake_redis, template):
    """Most recent queued email of a template"""
    for _, message in reversed(fake_redis.published):
        payload = json.loads(message)
        if payload["event_type"] == "email.requested" and payload["data"]["template"] == template:
            return payload["data"]
    raise AssertionError(f"no {template} email queued")


def login(client, email="alice@example.com", password=TEST_PASSWORD, **extra):
    return client.post("/v1/auth/login", json={"email": email, "password": password, **extra})


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


class TestRegistrationFlow:

    def test_register_verify_and_me(self, client, fake_redis):
        response = client.post(
            "/v1/auth/register",
            json={"email": "bob@example.com", "password": STRONG_PASSWORD, "name": "Bob"}
        )
        assert response.status_code == 201
        otp = last_email(fake_redis, "otp")["context"]["otp"]

        blocked = login(client, "bob@example.com", STRONG_PASSWORD)
        assert blocked.status_code == 403
        assert blocked.json()["error"] == "account_not_verified"

        verified = client.post("/v1/auth/verify-otp", json={"email": "bob@example.com", "otp": otp})
        assert verified.status_code == 200
        body = verified.json()
        assert body["token_type"] == "Bearer"
        assert body["account"]["is_verified"] is True

        me = client.get("/v1/auth/me", headers=bearer(body["access_token"]))
        assert me.status_code == 200
        assert me.json()["email"] == "bob@example.com"
        assert me.json()["second_factor_enabled"] is False

    def test_duplicate_email(self, client, account):
        response = client.post(
            "/v1/auth/register",
            json={"email": "alice@example.com", "password": STRONG_PASSWORD, "name": "Alice"}
        )

        assert response.status_code == 409
        assert response.json()["error"] == "email_already_registered"


class TestLogin:

    def test_success(self, client, account):
        response = login(client)

        assert response.status_code == 200
        assert response.json()["account"]["account_id"] == account.account_id

    def test_error_body_has_no_internals(self, client, account):
        unknown = login(client, email="nobody@example.com")
        wrong = login(client, password="wrong-password")

        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json() == {
            "error": "invalid_credentials",
            "message": "Invalid email or password",
        }

    def test_lockout_reports_retry_after(self, client, account):
        for _ in range(5):
            login(client, password="wrong-password")

        response = login(client)

        assert response.status_code == 423
        assert response.json()["error"] == "locked"
        assert 0 < response.json()["retry_after"] <= 1800
        assert response.headers["Retry-After"] == str(response.json()["retry_after"])

    def test_rate_limited(self, settings, fake_redis, db_session, account):
        app = create_app(settings.model_copy(update={"RATELIMIT_LOGIN_ATTEMPTS": 2}), redis=fake_redis)
        app.dependency_overrides[get_db] = lambda: db_session
        client = TestClient(app)

        login(client)
        login(client)
        response = login(client)

        assert response.status_code == 429
        assert response.json()["error"] == "rate_limited"


class TestTokens:

    def test_refresh_and_logout(self, client, account):
        tokens = login(client).json()

        refreshed = client.post("/v1/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]})
        assert refreshed.status_code == 200
        assert refreshed.json()["access_token"]

        logout = client.post("/v1/auth/logout", json={"refresh_token": tokens["refresh_token"]})
        assert logout.json()["sessions_revoked"] == 1
        again = client.post("/v1/auth/logout", json={"refresh_token": tokens["refresh_token"]})
        assert again.status_code == 200
        assert again.json()["sessions_revoked"] == 0

        rejected = client.post("/v1/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]})
        assert rejected.status_code == 401
        assert rejected.json()["error"] == "token_invalid"

    def test_logout_all(self, client, account):
        first = login(client).json()
        second = login(client).json()

        response = client.post("/v1/auth/logout-all", headers=bearer(first["access_token"]))

        assert response.json()["sessions_revoked"] == 2
        for tokens in (first, second):
            refreshed = client.post("/v1/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]})
            assert refreshed.status_code == 401

    def test_missing_bearer(self, client):
        response = client.get("/v1/auth/me")

        assert response.status_code == 401
        assert response.json()["error"] == "token_invalid"

    def test_token_older_than_password_change(self, client, db_session, account):
        tokens = login(client).json()
        account.password_changed_at = datetime.utcnow() + timedelta(seconds=5)
        db_session.commit()

        response = client.get("/v1/auth/me", headers=bearer(tokens["access_token"]))

        assert response.status_code == 401


class TestPasswordReset:

    def test_reset_flow(self, client, fake_redis, account):
        response = client.post("/v1/auth/forgot-password", json={"email": "alice@example.com"})
        unknown = client.post("/v1/auth/forgot-password", json={"email": "nobody@example.com"})
        assert response.json() == unknown.json()
        token = last_email(fake_redis, "password_reset")["context"]["reset_token"]

        reset = client.post("/v1/auth/reset-password", json={"token": token, "new_password": STRONG_PASSWORD})

        assert reset.status_code == 200
        assert login(client).status_code == 401
        assert login(client, password=STRONG_PASSWORD).status_code == 200


class TestSecondFactorFlow:
    """Enrollment, challenged login, trusted device and security overview"""

    def test_full_flow(self, client, account):
        access_token = login(client).json()["access_token"]

        setup = client.post("/v1/2fa/setup", headers=bearer(access_token)).json()
        assert len(setup["recovery_codes"]) == 10
        secret = setup["manual_key"]

        confirmed = client.post(
            "/v1/2fa/verify-setup",
            headers=bearer(access_token),
            json={"code": pyotp.TOTP(secret).now()}
        )
        assert confirmed.json()["recovery_codes_remaining"] == 10

        challenged = login(client).json()
        assert challenged["status"] == "second_factor_required"

        completed = client.post(
            "/v1/auth/verify-2fa",
            json={
                "pending_reference": challenged["pending_reference"],
                "second_factor_code": pyotp.TOTP(secret).now(),
                "trust_device": True,
            }
        )
        assert completed.status_code == 200
        access_token = completed.json()["access_token"]

        trusted = login(client)
        assert "access_token" in trusted.json()

        status = client.get("/v1/2fa/status", headers=bearer(access_token)).json()
        assert status["enabled"] is True
        assert status["trusted_devices_active"] == 1

        devices = client.get("/v1/security/trusted-devices", headers=bearer(access_token)).json()
        assert devices["total"] == 1
        device_id = devices["devices"][0]["device_id"]

        removed = client.request(
            "DELETE",
            f"/v1/security/trusted-devices/{device_id}",
            headers=bearer(access_token),
            json={"password": TEST_PASSWORD}
        )
        assert removed.status_code == 200
        assert login(client).json()["status"] == "second_factor_required"

        history = client.get("/v1/security/login-history", headers=bearer(access_token)).json()
        assert history["events"][0]["failure_reason"] == "second_factor_required"

    def test_setup_twice_after_enable_conflicts(self, client, enrolled):
        account, secret, _ = enrolled
        tokens = login(client, second_factor_code=pyotp.TOTP(secret).now()).json()

        response = client.post("/v1/2fa/setup", headers=bearer(tokens["access_token"]))

        assert response.status_code == 409
        assert response.json()["error"] == "already_enabled"


class TestSecurityOverview:

    def test_overview(self, client, account):
        access_token = login(client).json()["access_token"]

        response = client.get("/v1/security/overview", headers=bearer(access_token))

        assert response.status_code == 200
        body = response.json()
        assert body["score"] == 55
        assert body["grade"] == "D"
        assert body["second_factor"]["enabled"] is False
        assert body["recommendations"][0]["priority"] == "high"

    def test_login_history_filters(self, client, account):
        login(client, password="wrong-password")
        access_token = login(client).json()["access_token"]

        failed = client.get(
            "/v1/security/login-history", params={"success": "false"}, headers=bearer(access_token)
        ).json()
        assert failed["total"] == 1
        assert failed["events"][0]["failure_reason"] == "invalid_password"

        invalid = client.get("/v1/security/login-history", params={"days": 0}, headers=bearer(access_token))
        assert invalid.status_code == 422


class TestClientAddress:
    """Forwarded headers are honoured only from configured proxies"""

    FORWARDED = {"X-Forwarded-For": "198.51.100.20"}

    def recorded_ip(self, client):
        client.post(
            "/v1/auth/login",
            json={"email": "alice@example.com", "password": TEST_PASSWORD},
            headers=self.FORWARDED
        )
        access_token = login(client).json()["access_token"]
        history = client.get("/v1/security/login-history", headers=bearer(access_token)).json()
        return history["events"][-1]["ip_address"]

    def test_untrusted_peer_cannot_spoof(self, client, account):
        assert self.recorded_ip(client) == "testclient"

    def test_trusted_proxy_forwards_client(self, fake_redis, db_session, account):
        app = create_app(build_settings(TRUSTED_PROXIES="testclient"), redis=fake_redis)
        app.dependency_overrides[get_db] = lambda: db_session

        assert self.recorded_ip(TestClient(app)) == "198.51.100.20"


class TestOperationalEndpoints:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["checks"]["redis"] == "healthy"

    def test_metrics(self, client, account):
        login(client)

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "auth_login_attempts_total" in response.text

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"

    def test_module_entry_point_serves_app(self, settings, monkeypatch):
        served = {}

        def fake_run(app, host, port):
            served.update(app=app, host=host, port=port)

        monkeypatch.setattr(config, "get_settings", lambda: settings)
        monkeypatch.setattr(uvicorn, "run", fake_run)

        runpy.run_module("account_service.main", run_name="__main__")

        assert served["app"].title == settings.APP_NAME
        assert (served["host"], served["port"]) == (settings.HOST, settings.PORT)
