"""
Pytest configuration and shared fixtures.

This module provides:
- Hypothesis profile configuration
- A deterministic embedding provider and an in-memory store for pipeline tests
- A mocked ChromaDB client
"""

import os
from collections.abc import Generator
from unittest.mock import MagicMock

import pytest
from hypothesis import settings as hypothesis_settings, Verbosity

from tests.fakes import FakeEmbeddingProvider, InMemoryStore

# Configure Hypothesis profiles
hypothesis_settings.register_profile(
    "ci",
    max_examples=100,
    deadline=1000,
    verbosity=Verbosity.normal,
)
hypothesis_settings.register_profile(
    "dev",
    max_examples=20,
    deadline=500,
    verbosity=Verbosity.normal,
)
hypothesis_settings.register_profile(
    "debug",
    max_examples=10,
    deadline=None,
    verbosity=Verbosity.verbose,
)

profile = os.environ.get("HYPOTHESIS_PROFILE", "dev")
hypothesis_settings.load_profile(profile)


@pytest.fixture
def fake_provider() -> FakeEmbeddingProvider:
    """A configured deterministic embedding provider."""
    provider = FakeEmbeddingProvider()
    provider.configure()
    return provider


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def mock_chromadb_client() -> MagicMock:
    """Create a mock ChromaDB client."""
    mock = MagicMock()
    mock_collection = MagicMock()
    mock_collection.name = "handbook"
    mock_collection.metadata = {"hnsw:space": "cosine"}
    mock_collection.count.return_value = 2
    mock_collection.query.return_value = {
        "ids": [["intro.md-0", "intro.md-1"]],
        "documents": [["Document 1 content", "Document 2 content"]],
        "metadatas": [[{"source_id": "intro.md"}, {"source_id": "intro.md"}]],
        "distances": [[0.1, 0.25]],
    }
    mock_collection.get.return_value = {
        "ids": ["intro.md-0", "intro.md-1"],
        "documents": ["Document 1 content", "Document 2 content"],
        "metadatas": [{"source_id": "intro.md"}, {"source_id": "intro.md"}],
    }
    mock.get_collection.return_value = mock_collection
    mock.get_or_create_collection.return_value = mock_collection
    mock.list_collections.return_value = [mock_collection]
    mock.heartbeat.return_value = 1
    return mock


@pytest.fixture
def two_section_markdown() -> bytes:
    """Markdown with one empty and one non-empty section."""
    return b"# Empty Section\n\n# Filled Section\n\nThis section has a body.\n"


@pytest.fixture(autouse=True)
def reset_correlation_id() -> Generator[None, None, None]:
    """Reset the logging correlation ID between tests."""
    from knowledge.utils.logging import clear_correlation_id

    clear_correlation_id()
    yield
    clear_correlation_id()


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "property: Property-based tests")
