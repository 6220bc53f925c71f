"""
Shared pytest fixtures and configuration for all tests
"""
import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest

# Make the package importable without installing it
sys.path.insert(0, str(Path(__file__).parent.parent))

from kpsearch.core.config import DATA_DIR
from kpsearch.services.catalog_metadata import CatalogMetadata


@pytest.fixture(scope="session")
def catalog_metadata():
    """Vocabulary shipped with the package"""
    return CatalogMetadata.load(DATA_DIR / "catalog_metadata.json")


@pytest.fixture
def mock_openai_client():
    """Mock OpenAI client for testing without API calls"""
    mock = Mock()
    mock.chat = Mock()
    mock.chat.completions = Mock()
    mock.chat.completions.create = AsyncMock()
    return mock


def make_completion(content, total_tokens=42):
    """Shape of an OpenAI chat completion response"""
    message = SimpleNamespace(content=content)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message)],
        usage=SimpleNamespace(total_tokens=total_tokens),
    )


@pytest.fixture
def mock_completion_service():
    """Completion service double; set complete_json / complete_text per test"""
    service = MagicMock()
    service.complete_json = AsyncMock()
    service.complete_text = AsyncMock()
    service.get_usage_stats = Mock(return_value={"total_requests": 0})
    return service


@pytest.fixture
def mock_db_session():
    """Create a mock async database session."""
    session = AsyncMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    return session


def make_product(**overrides):
    """Product row stand-in with sensible defaults"""
    data = {
        "id": 1,
        "title": "Beeldje Hart van Brons",
        "full_title": "Beeldje Hart van Brons - Liefde",
        "description": "Bronzen beeldje met een hart, handgemaakt.",
        "content": None,
        "brand": "Kunstpakket",
        "artist": None,
        "type": "Beeld",
        "price": 65.0,
        "old_price": None,
        "stock": 5,
        "stock_sold": 10,
        "image": "https://cdn.example.com/hart.jpg",
        "url": "https://www.kunstpakket.nl/beeldje-hart.html",
        "is_visible": True,
    }
    data.update(overrides)
    return SimpleNamespace(**data)


@pytest.fixture
def sample_products():
    """A handful of catalog rows in arbitrary order"""
    return [
        make_product(id=1, title="Liefde Eeuwig", price=65.0, stock_sold=10),
        make_product(id=2, title="Hart van Brons", price=72.0, old_price=90.0, stock_sold=25),
        make_product(id=3, title="Klein Hartje", price=35.0, stock_sold=None),
        make_product(id=4, title="Twee Harten", price=49.0, stock_sold=10),
    ]


@pytest.fixture
def product_factory():
    """Build product rows with custom fields"""
    return make_product


@pytest.fixture
def completion_factory():
    """Build OpenAI completion responses"""
    return make_completion
