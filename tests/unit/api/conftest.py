"""Fixtures for API tests."""

import pytest
from fastapi.testclient import TestClient

from stateflow.api.main import create_app


@pytest.fixture
def app(settings, db_engine, definitions, guard_registry):
    return create_app(settings, db_engine=db_engine, definitions=definitions, guards=guard_registry)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
