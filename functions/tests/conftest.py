"""Pytest configuration and shared fixtures for BuildBid tests."""

import os
import sys
import pytest
from unittest.mock import AsyncMock, MagicMock


# ============================================================================
# Ensure local imports work (models/, services/, config/, validators/)
# ============================================================================
#
# The codebase uses absolute imports like `from models...` / `from services...`.
# This guarantees that `functions/` is importable as the top-level module root.
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)


# ============================================================================
# Firebase Mocks
# ============================================================================

@pytest.fixture
def mock_firestore_client():
    """Mock Firestore client."""
    client = MagicMock()

    # Set up chain: client.collection().document()
    collection_mock = MagicMock()
    document_mock = MagicMock()
    client.collection.return_value = collection_mock
    collection_mock.document.return_value = document_mock

    # Mock async methods
    document_mock.get = AsyncMock(return_value=MagicMock(
        exists=True,
        to_dict=lambda: {"PK": "SOW#sow-001", "SK": "METADATA"}
    ))
    document_mock.set = AsyncMock()
    document_mock.create = AsyncMock()

    return client


@pytest.fixture
def firestore_store(mock_firestore_client):
    """FirestoreDocumentStore with mocked client."""
    from services.document_store import FirestoreDocumentStore

    return FirestoreDocumentStore(db=mock_firestore_client, collection_name="testRecords")


# ============================================================================
# Store & Service Fixtures
# ============================================================================

@pytest.fixture
def memory_store():
    """In-memory store with one approved scope of work, ``sow-001``."""
    from tests.fixtures.mock_quote_data import InMemoryDocumentStore

    store = InMemoryDocumentStore()
    store.add_scope_of_work("sow-001", projectId="proj-001", estimatedCost={"totalCost": 24000})
    return store


@pytest.fixture
def quote_service(memory_store):
    """QuoteService over the in-memory store."""
    from services.quote_service import QuoteService

    return QuoteService(store=memory_store)


# ============================================================================
# Sample Data Fixtures
# ============================================================================

@pytest.fixture
def fixed_now():
    from tests.fixtures.mock_quote_data import FIXED_NOW

    return FIXED_NOW


@pytest.fixture
def make_quote(fixed_now):
    """Factory for draft quotes built from the clean extension payload.

    Keyword arguments override top-level QuoteInput fields (camelCase).
    """
    from datetime import timedelta
    from models.quote import QuoteInput, create_quote
    from tests.fixtures.mock_quote_data import get_quote_input

    def _make(sow_id="sow-001", builder_id="builder-001", **overrides):
        overrides.setdefault("valid_until", fixed_now + timedelta(days=30))
        quote_input = QuoteInput.model_validate(get_quote_input(**overrides))
        return create_quote(sow_id, builder_id, quote_input, now=fixed_now)

    return _make


@pytest.fixture
def sample_quote(make_quote):
    """Clean draft quote for ``sow-001`` by ``builder-001``."""
    return make_quote()
