import os

# Pas de Redis en tests: le lifespan désactive le rate limiting
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

import pytest
from typing import Generator
from fastapi.testclient import TestClient

from ticketing.app_setup.factory import create_app
from ticketing.config import Settings
from ticketing.context import AppContext
from tests.fakes import FakeCatalog, FakeProvider, FakeRegistrationStore, package, ticket

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "/tests/unit/" in nodeid or nodeid.startswith("tests/unit/"):
            item.add_marker(pytest.mark.unit)
        elif "/tests/integration/" in nodeid or nodeid.startswith("tests/integration/"):
            item.add_marker(pytest.mark.integration)

@pytest.fixture
def settings() -> Settings:
    return Settings(webhook_secret="whsec_test")

@pytest.fixture
def catalog() -> FakeCatalog:
    """Banquet 150 (stock 100), Déjeuner 85 (non suivi), forfait complet 235, forfait seul 180."""
    return FakeCatalog(
        tickets=[
            ticket("t-banquet", "Grand Banquet", "150", available=100),
            ticket("t-lunch", "Déjeuner", "85"),
        ],
        packages=[
            package("p-full", "Forfait Complet", "235", includes=["t-banquet", "t-lunch"]),
            package("p-table", "Table de Loge", "180", available=30),
        ],
    )

@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()

@pytest.fixture
def store() -> FakeRegistrationStore:
    return FakeRegistrationStore()

@pytest.fixture
def ctx(catalog, provider, store, settings) -> AppContext:
    return AppContext(
        catalog=catalog,
        registrations=store,
        payments=provider,
        settings=settings,
        sleep=lambda _s: None,
    )

@pytest.fixture
def app(ctx):
    application = create_app()
    application.state.context = ctx
    return application

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c
