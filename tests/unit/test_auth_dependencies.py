"""Unit tests for auth dependencies and the session endpoints."""

import uuid
from unittest.mock import patch

import pytest
from fastapi.security import HTTPAuthorizationCredentials

from src.bp_common.errors import (
    AdminRequiredError,
    ConfigurationError,
    InvalidSchedulerCredentialError,
)
from src.bp_gateway.auth.dependencies import (
    get_current_user,
    require_admin,
    verify_cron_secret,
)
from src.bp_gateway.user.db_models import UserModel
from src.main import app


def _user(role: str) -> UserModel:
    user = UserModel()
    user.id = uuid.uuid4()
    user.username = "op"
    user.role = role
    user.is_active = True
    return user


def _bearer(value: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=value)


class TestRequireAdmin:
    async def test_admin_passes(self) -> None:
        user = _user("admin")
        assert await require_admin(user) is user

    async def test_investor_rejected(self) -> None:
        with pytest.raises(AdminRequiredError) as exc_info:
            await require_admin(_user("investor"))
        assert exc_info.value.http_status == 403


class TestVerifyCronSecret:
    async def test_matching_secret_passes(self) -> None:
        with patch("src.bp_gateway.auth.dependencies.settings.CRON_SECRET", "s3cret"):
            await verify_cron_secret(_bearer("s3cret"))

    async def test_wrong_secret_rejected(self) -> None:
        with (
            patch("src.bp_gateway.auth.dependencies.settings.CRON_SECRET", "s3cret"),
            pytest.raises(InvalidSchedulerCredentialError),
        ):
            await verify_cron_secret(_bearer("guess"))

    async def test_missing_credential_rejected(self) -> None:
        with (
            patch("src.bp_gateway.auth.dependencies.settings.CRON_SECRET", "s3cret"),
            pytest.raises(InvalidSchedulerCredentialError),
        ):
            await verify_cron_secret(None)

    async def test_unset_secret_is_configuration_error(self) -> None:
        with (
            patch("src.bp_gateway.auth.dependencies.settings.CRON_SECRET", None),
            pytest.raises(ConfigurationError) as exc_info,
        ):
            await verify_cron_secret(_bearer("anything"))
        assert exc_info.value.http_status == 500


class TestSessionEndpoints:
    async def test_me_reports_role(self, client) -> None:
        user = _user("admin")
        user.email = "op@example.com"
        app.dependency_overrides[get_current_user] = lambda: user

        resp = await client.get("/api/v1/auth/me")

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["user_id"] == str(user.id)
        assert data["is_admin"] is True

    async def test_request_id_echoed(self, client) -> None:
        resp = await client.get("/health", headers={"X-Request-ID": "cron-run-42"})
        assert resp.headers["X-Request-ID"] == "cron-run-42"

    async def test_malformed_request_id_replaced(self, client) -> None:
        resp = await client.get("/health", headers={"X-Request-ID": "bad id with spaces"})
        assert resp.headers["X-Request-ID"].startswith("req_")
