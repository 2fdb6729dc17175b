"""
Tests for the OTP endpoints.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from daanbantayan.core.auth import AuthenticationMiddleware
from daanbantayan.core.database import get_db
from daanbantayan.core.exceptions import register_exception_handlers
from daanbantayan.modules.otp.router import router as otp_router
from daanbantayan.modules.otp.service import OtpService
from daanbantayan.modules.users.models import UserRole

REPO = "daanbantayan.modules.otp.service.UserRepository"


@pytest.fixture
def user(make_user):
    return make_user(email="principal@daanbantayan.dev", role=UserRole.ADMIN)


@pytest.fixture
def mailer():
    return AsyncMock()


@pytest.fixture
def client(signer, otp_store, mailer, mock_db, user):
    async def user_loader(user_id: str):
        return user if user_id == str(user.id) else None

    async def override_get_db():
        yield mock_db

    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(otp_router, prefix="/api/otp")

    @app.get("/api/security/settings/overview")
    async def security_settings():
        return {"admin": True}

    app.dependency_overrides[get_db] = override_get_db
    app.state.token_signer = signer
    app.state.otp_service = OtpService(otp_store, signer, mailer=mailer)
    app.add_middleware(AuthenticationMiddleware, user_loader=user_loader)
    return TestClient(app)


def request_code(client, user, mailer) -> tuple[str, str]:
    with patch(REPO) as mock_repo:
        mock_repo.get_by_email = AsyncMock(return_value=user)
        response = client.post("/api/otp", params={"email": user.email})
    return response.cookies["otp_token"], mailer.call_args.args[1]


class TestRequestOtp:
    """POST /api/otp"""

    def test_sets_pending_cookie(self, client, user, signer, mailer):
        with patch(REPO) as mock_repo:
            mock_repo.get_by_email = AsyncMock(return_value=user)

            response = client.post("/api/otp", params={"email": user.email})

        assert response.status_code == 200
        assert response.json() == {"message": "OTP has been sent to your email"}
        claims = signer.verify(response.cookies["otp_token"], expected_type="otp_pending")
        assert claims.subject == str(user.id)
        assert "jwt" not in response.cookies
        set_cookie = response.headers["set-cookie"].lower()
        assert "httponly" in set_cookie
        assert "path=/" in set_cookie
        assert "max-age=300" in set_cookie
        mailer.assert_awaited_once()

    def test_unknown_email_is_404(self, client):
        with patch(REPO) as mock_repo:
            mock_repo.get_by_email = AsyncMock(return_value=None)

            response = client.post("/api/otp", params={"email": "ghost@daanbantayan.dev"})

        assert response.status_code == 404
        assert response.json()["code"] == "USER_NOT_FOUND"

    def test_sixth_request_is_429_with_retry_after(self, client, user):
        with patch(REPO) as mock_repo:
            mock_repo.get_by_email = AsyncMock(return_value=user)
            for _ in range(5):
                assert client.post("/api/otp", params={"email": user.email}).status_code == 200

            response = client.post("/api/otp", params={"email": user.email})

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "900"
        assert response.json()["code"] == "TOO_MANY_REQUESTS"

    def test_invalid_email_is_validation_error(self, client):
        response = client.post("/api/otp", params={"email": "not-an-email"})

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"


class TestPendingTokenGrantsNoSession:
    """Requesting a code for an address must not sign anyone in as its owner."""

    def test_pending_token_as_jwt_cookie_is_401(self, client, user, mailer):
        token, _ = request_code(client, user, mailer)

        response = client.get(
            "/api/security/settings/overview", headers={"Cookie": f"jwt={token}"}
        )

        assert response.status_code == 401

    def test_pending_token_as_bearer_is_401(self, client, user, mailer):
        token, _ = request_code(client, user, mailer)

        response = client.get(
            "/api/security/settings/overview", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 401

    def test_otp_cookie_alone_is_401(self, client, user, mailer):
        token, _ = request_code(client, user, mailer)

        response = client.get(
            "/api/security/settings/overview", headers={"Cookie": f"otp_token={token}"}
        )

        assert response.status_code == 401


class TestVerifyOtp:
    """POST /api/otp/verification"""

    def test_correct_code(self, client, user, mailer):
        token, code = request_code(client, user, mailer)

        response = client.post(
            "/api/otp/verification",
            params={"otp": code},
            headers={"Cookie": f"otp_token={token}"},
        )

        assert response.status_code == 200
        assert response.json() == {"message": "OTP valid"}
        assert "otp_token=" in response.headers["set-cookie"]
        assert "max-age=0" in response.headers["set-cookie"].lower()

    def test_signed_in_client_keeps_bearer_session(self, client, user, mailer, signer):
        token, code = request_code(client, user, mailer)
        session = signer.issue(str(user.id), user.role.value, timedelta(hours=1))

        response = client.post(
            "/api/otp/verification",
            params={"otp": code},
            headers={"Cookie": f"otp_token={token}", "Authorization": f"Bearer {session}"},
        )

        assert response.status_code == 200

    def test_wrong_then_correct_both_fail(self, client, user, mailer):
        token, code = request_code(client, user, mailer)
        wrong = "000000" if code != "000000" else "111111"
        headers = {"Cookie": f"otp_token={token}"}

        first = client.post("/api/otp/verification", params={"otp": wrong}, headers=headers)
        second = client.post("/api/otp/verification", params={"otp": code}, headers=headers)

        assert first.status_code == 400
        assert first.json()["code"] == "OTP_INVALID"
        assert second.status_code == 400

    def test_without_pending_token_is_401(self, client):
        response = client.post("/api/otp/verification", params={"otp": "123456"})

        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHORIZED"

    def test_session_token_is_not_a_pending_token(self, client, user, mailer, signer):
        _, code = request_code(client, user, mailer)
        session = signer.issue(str(user.id), user.role.value, timedelta(hours=1))

        response = client.post(
            "/api/otp/verification",
            params={"otp": code},
            headers={"Cookie": f"jwt={session}"},
        )

        assert response.status_code == 401
