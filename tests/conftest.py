"""Pytest configuration and shared fixtures for TCG Scanner tests."""

import base64
from unittest.mock import AsyncMock, MagicMock

import pytest

from tcg_scanner.core.types import ImagePayload, PriceQuote, RawCandidate
from tcg_scanner.store.db import RecordStore
from tcg_scanner.store.image_cache import ImageCacheStore
from tcg_scanner.store.objects import LocalObjectStore
from tcg_scanner.store.rate_limit import ScanRateLimiter
from tcg_scanner.vision.identify import IdentifyOutcome

JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00\x10JFIF" + b"charizard" * 64
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"pikachu" * 64


class FakeClock:
    """Manually advanced clock for window-based tests."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture(scope="function")
def temp_dirs(tmp_path):
    """Create temporary directories for each test function."""
    cache_dir = tmp_path / "cache"
    objects_dir = tmp_path / "objects"
    cache_dir.mkdir()
    objects_dir.mkdir()
    return {
        'temp_dir': tmp_path,
        'cache_dir': cache_dir,
        'objects_dir': objects_dir,
        'db_path': cache_dir / "scanner.db",
    }


@pytest.fixture(scope="function")
def record_store(temp_dirs):
    return RecordStore(db_path=str(temp_dirs['db_path']), busy_timeout_s=5.0)


@pytest.fixture(scope="function")
def object_store(temp_dirs):
    return LocalObjectStore(root=str(temp_dirs['objects_dir']), base_url="http://cdn.test/card-images")


@pytest.fixture(scope="function")
def image_cache(record_store, object_store):
    return ImageCacheStore(record_store, object_store)


@pytest.fixture(scope="function")
def fake_clock():
    return FakeClock()


@pytest.fixture(scope="function")
def rate_limiter(record_store, fake_clock):
    return ScanRateLimiter(record_store, max_scans=5, window_s=60, clock=fake_clock)


@pytest.fixture(scope="function")
def sample_image():
    return ImagePayload(data=JPEG_BYTES, mime_type="image/jpeg", extension="jpg")


@pytest.fixture(scope="function")
def sample_image_data():
    """The sample JPEG as a data URL, as sent by browsers."""
    return "data:image/jpeg;base64," + base64.b64encode(JPEG_BYTES).decode("ascii")


@pytest.fixture(scope="function")
def charizard_candidate():
    return RawCandidate(
        card_name="Charizard ex",
        game="pokemon",
        set_name="Obsidian Flames",
        card_number="125/197",
        rarity="Double Rare",
        confidence=0.9,
    )


@pytest.fixture(scope="function")
def charizard_quote():
    return PriceQuote(
        low=18.5,
        market=24.99,
        high=45.0,
        image_url="https://images.pokemontcg.io/sv3/125_hires.png",
        product_id="sv3-125",
        source="pokemontcg",
    )


@pytest.fixture(scope="function")
def stub_identifier():
    """Identifier double whose outcome each test sets."""
    identifier = MagicMock()
    identifier.name = "stub"
    identifier.configured = True
    identifier.identify = AsyncMock(return_value=IdentifyOutcome([]))
    return identifier


@pytest.fixture(scope="function")
def stub_pricing():
    pricing = MagicMock()
    pricing.resolve_price = AsyncMock(return_value=PriceQuote())
    return pricing


@pytest.fixture(scope="function")
def orchestrator(record_store, object_store, stub_identifier, stub_pricing, rate_limiter):
    from tcg_scanner.pipeline import ScanOrchestrator
    from tcg_scanner.ui.notifier import ScanNotifier

    return ScanOrchestrator(
        store=record_store,
        objects=object_store,
        identifiers=[stub_identifier],
        pricing=stub_pricing,
        limiter=rate_limiter,
        notifier=ScanNotifier(),
    )


@pytest.fixture(scope="function")
def sample_card_data():
    """Sample pokemontcg.io card payload."""
    return {
        'id': 'sv3-125',
        'name': 'Charizard ex',
        'number': '125',
        'set': {'name': 'Obsidian Flames', 'id': 'sv3'},
        'rarity': 'Double Rare',
        'images': {
            'small': 'https://images.pokemontcg.io/sv3/125.png',
            'large': 'https://images.pokemontcg.io/sv3/125_hires.png',
        },
        'tcgplayer': {
            'updatedAt': '2024/01/15',
            'prices': {
                'holofoil': {'low': 18.5, 'mid': 27.0, 'high': 45.0, 'market': 24.99}
            }
        },
    }


def mock_response(status: int = 200, json_data=None, text: str = ""):
    """aiohttp response double usable as ``async with session.request(...)``."""
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=json_data)
    response.text = AsyncMock(return_value=text)
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=None)
    return response


def mock_session(*responses):
    """ClientSession double returning ``responses`` in order, one per request."""
    session = MagicMock()
    session.request = MagicMock(side_effect=list(responses))
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=None)
    return session


# Configure pytest options
def pytest_configure(config):
    """Configure pytest with custom options."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow running"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers automatically."""
    for item in items:
        # Mark integration tests
        if "integration" in item.name.lower() or "Integration" in str(item.cls):
            item.add_marker(pytest.mark.integration)

        # Mark slow tests
        if any(slow_indicator in item.name.lower() for slow_indicator in ['concurrent', 'backoff']):
            item.add_marker(pytest.mark.slow)

        # Mark unit tests (default)
        if not item.get_closest_marker('integration') and not item.get_closest_marker('slow'):
            item.add_marker(pytest.mark.unit)
