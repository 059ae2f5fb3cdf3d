"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets TESTING so no .env file is loaded, and resets the process-wide rate
limit service between tests so counters never leak across test cases.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

os.environ.setdefault("APP_API_KEY_REQUIRED", "false")
os.environ.setdefault("APP_API_KEYS", "alice:test-api-key-123,bob:test-api-key-456")

from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from rate_governor.core.rate_limit import set_rate_limit_service


@pytest.fixture(autouse=True)
def reset_rate_limit_service():
    set_rate_limit_service(None)
    yield
    set_rate_limit_service(None)


@pytest.fixture
def clock() -> Mock:
    return Mock(return_value=1000.0)


@pytest.fixture
def client() -> TestClient:
    from rate_governor.main import app

    return TestClient(app)
