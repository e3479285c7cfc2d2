"""Shared fixtures for gateway and session tests.

Gateway tests run against ``httpx.MockTransport`` so every request the
gateway makes can be inspected; session tests mock the gateway itself.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Callable
from unittest.mock import MagicMock
from uuid import UUID

import httpx
import jwt
import pytest

from dosely.config import Settings
from dosely.models.users import User, UserProfile
from dosely.services.supabase import SupabaseGateway

# Canonical test user ID
TEST_USER_ID = UUID("12345678-1234-5678-1234-567812345678")
TEST_EMAIL = "jane@example.com"
SUPABASE_URL = "https://test.supabase.co"

Handler = Callable[[httpx.Request], httpx.Response]


def make_access_token(
    user_id: UUID = TEST_USER_ID, email: str = TEST_EMAIL, expires_in: int = 3600
) -> str:
    exp = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
    claims = {"sub": str(user_id), "email": email, "exp": int(exp.timestamp())}
    return jwt.encode(claims, "test-secret", algorithm="HS256")


def token_response(user_id: UUID = TEST_USER_ID, email: str = TEST_EMAIL) -> dict:
    """A GoTrue password/refresh grant response."""
    return {
        "access_token": make_access_token(user_id, email),
        "token_type": "bearer",
        "expires_in": 3600,
        "refresh_token": "refresh-token-1",
        "user": {"id": str(user_id), "email": email},
    }


def request_json(request: httpx.Request) -> dict:
    return json.loads(request.content)


@pytest.fixture
def settings() -> Settings:
    return Settings(supabase_url=SUPABASE_URL, supabase_anon_key="anon-key")


@pytest.fixture
def make_gateway(settings: Settings) -> Callable[[Handler], tuple[SupabaseGateway, list[httpx.Request]]]:
    """Build a gateway whose HTTP client answers with ``handler``.

    Returns the gateway and the list every request is recorded into.
    """

    def _build(handler: Handler) -> tuple[SupabaseGateway, list[httpx.Request]]:
        seen: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return handler(request)

        client = httpx.AsyncClient(
            transport=httpx.MockTransport(_record), base_url=SUPABASE_URL
        )
        return SupabaseGateway(settings, http_client=client), seen

    return _build


@pytest.fixture
def mock_gateway() -> MagicMock:
    """Gateway double; every coroutine method is an AsyncMock."""
    return MagicMock(spec=SupabaseGateway)


@pytest.fixture
def test_user() -> User:
    return User(id=TEST_USER_ID, email=TEST_EMAIL)


@pytest.fixture
def test_profile() -> UserProfile:
    return UserProfile(
        username="jane",
        email=TEST_EMAIL,
        measurement_unit="imperial",
        current_weight=100.0,
        goal_weight=80.0,
        medication="Wegovy",
    )
