"""Shared fixtures for config, model and app wiring tests."""

from __future__ import annotations

from uuid import UUID

import pytest

from dosely.config import Settings
from dosely.config_loader import AppConfig, load_app_config

# Canonical test user ID
TEST_USER_ID = UUID("12345678-1234-5678-1234-567812345678")
SUPABASE_URL = "https://test.supabase.co"


@pytest.fixture
def settings() -> Settings:
    return Settings(supabase_url=SUPABASE_URL, supabase_anon_key="anon-key")


@pytest.fixture
def app_config() -> AppConfig:
    """Load the real bundled app config for tests."""
    return load_app_config()
