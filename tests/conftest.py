"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets the testing environment before settings are imported so no .env
file is loaded.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from reqguard.core.app_factory import create_app
from reqguard.core.config import settings
from reqguard.core.state import ProtectionState, build_protection_state
from tests.helpers import FakeClock, add_item_routes


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def protection_state(clock: FakeClock) -> ProtectionState:
    return build_protection_state(settings, clock=clock)


@pytest.fixture
def app(protection_state: ProtectionState) -> FastAPI:
    application = create_app(protection_state=protection_state)
    add_item_routes(application, methods=("GET", "POST", "PUT", "PATCH", "DELETE"))
    return application


@pytest.fixture
def client(app: FastAPI):
    with TestClient(app) as test_client:
        yield test_client
