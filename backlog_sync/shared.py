"""
Shared dependencies for FastAPI routers.

This module contains:
- Lazily built singletons (settings, Trello repository, engine)
- FastAPI dependency providers for the dispatcher and reconciler

Tests replace the providers through ``app.dependency_overrides``.
"""

import logging
from typing import Optional

from backlog_sync.config import SyncConfig, load_sync_config, load_trello_settings
from backlog_sync.services.dispatcher import WebhookDispatcher
from backlog_sync.services.list_resolver import ListResolver
from backlog_sync.services.reconciler import BulkReconciler
from backlog_sync.services.sync_engine import SyncEngine
from backlog_sync.services.trello_client import TrelloBoardRepository

logger = logging.getLogger(__name__)


# =============================================================================
# Singletons
# =============================================================================

_sync_config: Optional[SyncConfig] = None
_repository: Optional[TrelloBoardRepository] = None
_engine: Optional[SyncEngine] = None


def get_sync_config() -> SyncConfig:
    global _sync_config
    if _sync_config is None:
        _sync_config = load_sync_config()
    return _sync_config


def get_repository() -> TrelloBoardRepository:
    """
    Get or create the Trello repository singleton.

    Raises:
        MissingCredentialsError: TRELLO_API_KEY or TRELLO_BACKLOG_TOKEN unset
    """
    global _repository
    if _repository is None:
        settings = load_trello_settings()
        settings.require_credentials()
        _repository = TrelloBoardRepository(settings)
        logger.info(f"Trello repository initialised (base_url={settings.base_url})")
    return _repository


def get_engine() -> SyncEngine:
    global _engine
    if _engine is None:
        _engine = SyncEngine(get_repository(), get_sync_config())
    return _engine


async def reset_singletons() -> None:
    """Close the HTTP client and drop every cached object."""
    global _sync_config, _repository, _engine
    if _repository is not None:
        await _repository.aclose()
    _sync_config = None
    _repository = None
    _engine = None


# =============================================================================
# FastAPI Dependencies
# =============================================================================

def get_dispatcher() -> WebhookDispatcher:
    return WebhookDispatcher(get_engine())


def get_reconciler() -> BulkReconciler:
    return BulkReconciler(get_engine())


def get_list_resolver() -> ListResolver:
    return get_engine().resolver
