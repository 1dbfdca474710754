"""Shared pytest fixtures."""
import os
import random
import sys
from dataclasses import replace
from datetime import datetime, timezone

import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from colo_configurator.config.settings import Settings
from colo_configurator.data.catalog import Catalog
from colo_configurator.services.quote_service import QuoteService
from colo_configurator.services.storage import InMemoryStorage
from colo_configurator.services.store import Store


START = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock returning Unix seconds; advance() moves it forward."""

    def __init__(self, start: datetime = START):
        self.current = start.timestamp()

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float = 0, days: float = 0):
        self.current += seconds + days * 86400


@pytest.fixture
def settings(tmp_path):
    """Settings with the state file redirected into a temp directory."""
    return replace(Settings.load(), state_file=tmp_path / 'state' / 'store.json')


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture(scope="session")
def catalog():
    return Catalog.load(settings=Settings.load())


@pytest.fixture
def store(storage, settings, clock, rng):
    return Store(storage=storage, settings=settings, clock=clock, rng=rng)


@pytest.fixture
def service(store, catalog, settings):
    return QuoteService(store, catalog, settings=settings)


CABINET_STARTER = {
    'cabinetDimensions': '600mm × 1200mm × 2200mm',
    'circuitType': 'Two Phase Circuit',
    'drawCap': '3kVA',
    'pduCount': '2',
    'pdu': 'PDU:P36E30G',
}

CROSS_CONNECT = {'connectionType': 'Single Mode Fiber', 'connector': 'LC'}


@pytest.fixture
def accepted_quote(service):
    """Accepted quote with a cabinet (per-line-item) and two cross connects (per-quantity)."""
    service.add_product_to_cart('secure-cabinet', CABINET_STARTER)
    service.add_product_to_cart('ethernet-cross-connect', CROSS_CONNECT, qty=2)
    quote = service.generate_quote()
    return service.accept_quote(quote.id)


@pytest.fixture
def client(service):
    """FastAPI TestClient wired to the in-memory service."""
    from fastapi.testclient import TestClient

    from colo_configurator.api.main import app
    from colo_configurator.api.state import get_service

    app.dependency_overrides[get_service] = lambda: service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
