"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient

from app.data.base import NewProperty
from app.data.property_repository import InMemoryPropertyRepository
from app.main import create_app
from app.services.property_service import PropertyService


@pytest.fixture
def repo() -> InMemoryPropertyRepository:
    """Fresh in-memory store per test."""
    return InMemoryPropertyRepository()


@pytest.fixture
def service(repo: InMemoryPropertyRepository) -> PropertyService:
    return PropertyService(repo)


@pytest.fixture
def client(repo: InMemoryPropertyRepository) -> TestClient:
    """HTTP client over an app wired to the fresh in-memory store."""
    return TestClient(create_app(repo))


@pytest.fixture
def make_property():
    """Build a NewProperty with sensible defaults."""

    def _make(suburb: str = "Bondi", sale_price: float = 100.0, **overrides) -> NewProperty:
        fields = {"address": "1 Test St", "suburb": suburb, "sale_price": sale_price}
        fields.update(overrides)
        return NewProperty(**fields)

    return _make
