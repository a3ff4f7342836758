"""Integration-test fixtures.

Requires a migrated PostgreSQL at settings.DATABASE_URL (alembic upgrade head)
and RUN_INTEGRATION_TESTS=1; otherwise this directory is not collected.

All integration tests share a single event-loop so that the module-level
SQLAlchemy async engine pool (created at import time) remains valid across
the entire test session.
"""

import os
import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text

from src.bp_common.database import engine
from src.bp_gateway.auth.password import hash_password
from src.main import app

collect_ignore_glob = [] if os.environ.get("RUN_INTEGRATION_TESTS") == "1" else ["test_*.py"]

PASSWORD = "TestPass123!"

_INSERT_USER_SQL = text("""
    INSERT INTO users (username, email, password_hash, role)
    VALUES (:username, :email, :password_hash, :role)
    RETURNING id
""")

_INSERT_BALANCE_SQL = text("""
    INSERT INTO user_balances (user_id, deposit_balance, total_balance)
    VALUES (:user_id, :deposit, :deposit)
""")


async def seed_user(role: str = "investor", deposit: int = 0) -> tuple[str, str]:
    """Insert a user with a funded balance row; returns (user_id, username)."""
    username = f"{role}_{uuid.uuid4().hex[:8]}"
    async with engine.begin() as conn:
        user_id = (
            await conn.execute(
                _INSERT_USER_SQL,
                {
                    "username": username,
                    "email": f"{username}@example.com",
                    "password_hash": hash_password(PASSWORD),
                    "role": role,
                },
            )
        ).scalar_one()
        await conn.execute(_INSERT_BALANCE_SQL, {"user_id": user_id, "deposit": deposit})
    return str(user_id), username


async def login(client: AsyncClient, username: str) -> dict[str, str]:
    resp = await client.post(
        "/api/v1/auth/login", json={"username": username, "password": PASSWORD}
    )
    return {"Authorization": f"Bearer {resp.json()['data']['access_token']}"}


@pytest.fixture
def seed():
    return seed_user


@pytest.fixture
def login_as():
    return login


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def client() -> AsyncClient:  # type: ignore[override]
    """Session-scoped async HTTP client — keeps the engine pool alive."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
