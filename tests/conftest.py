"""
Shared test configuration and fixtures.

Provides an in-memory record store and a controller bound to the
test record. The controller fixture waits for the initial refresh so
tests start from a settled state.
"""

import logging

import pytest

from private_record_sync import InMemoryRecordStore, RecordSyncController

logger = logging.getLogger(__name__)


@pytest.fixture
def memory_store():
    """Fixture providing an empty in-memory record store."""
    return InMemoryRecordStore()


@pytest.fixture
async def controller(memory_store):
    """Fixture providing a controller for the test record, initial refresh settled."""
    controller = RecordSyncController.create(memory_store, use_test_identifier=True)
    await controller.wait_until_ready()
    yield controller
    await memory_store.close()
