"""
Shared fixtures for the backlog sync tests.

The board fixture mirrors a typical setup: one project list ("Doing"), the
backlog, one work-in-progress list and one done list.
"""

import os
import sys

import pytest

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from backlog_sync.config import SyncConfig
from backlog_sync.services.dispatcher import WebhookDispatcher
from backlog_sync.services.sync_engine import SyncEngine

from fakes import FakeBoard


@pytest.fixture
def config() -> SyncConfig:
    return SyncConfig()


@pytest.fixture
def board() -> FakeBoard:
    fake = FakeBoard("B1")
    fake.add_list("Doing", list_id="doing")
    fake.add_list("Backlog", list_id="backlog")
    fake.add_list("Today's Tasks", list_id="wip")
    fake.add_list("Done Today!", list_id="done")
    return fake


@pytest.fixture
def engine(board: FakeBoard, config: SyncConfig) -> SyncEngine:
    return SyncEngine(board, config)


@pytest.fixture
def dispatcher(engine: SyncEngine) -> WebhookDispatcher:
    return WebhookDispatcher(engine)
