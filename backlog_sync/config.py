"""
Configuration for Backlog Sync.

Two explicit settings objects are built from the environment and handed to
the components that need them; nothing below the HTTP layer reads
``os.environ`` directly.

- ``TrelloSettings``: credentials and transport limits for the Trello API
- ``SyncConfig``: triage list names per role and verbosity flags
"""

import logging
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from backlog_sync.exceptions import MissingCredentialsError

logger = logging.getLogger(__name__)


# =============================================================================
# Defaults
# =============================================================================

TRELLO_API_BASE = "https://api.trello.com/1"

DEFAULT_BACKLOG_LIST_NAME = "backlog"
DEFAULT_WIP_LIST_NAMES = ["today's tasks"]
DEFAULT_DONE_LIST_NAMES = ["done today!"]


# =============================================================================
# Models
# =============================================================================

class TrelloSettings(BaseModel):
    """Credentials and request limits for the Trello REST API."""
    api_key: str = ""
    token: str = ""
    base_url: str = TRELLO_API_BASE
    timeout_seconds: float = Field(default=15.0, gt=0)
    # Trello allows 100 requests per 10 seconds per token
    max_concurrency: int = Field(default=8, ge=1)
    max_retries: int = Field(default=3, ge=0)

    def require_credentials(self) -> None:
        """Raise MissingCredentialsError unless both key and token are set."""
        missing = []
        if not self.api_key:
            missing.append("TRELLO_API_KEY")
        if not self.token:
            missing.append("TRELLO_BACKLOG_TOKEN")
        if missing:
            raise MissingCredentialsError(service="Trello", required_keys=missing)


class SyncConfig(BaseModel):
    """List-name role mapping used to classify the lists of a board."""
    backlog_list_name: str = DEFAULT_BACKLOG_LIST_NAME
    wip_list_names: List[str] = Field(default_factory=lambda: list(DEFAULT_WIP_LIST_NAMES))
    done_list_names: List[str] = Field(default_factory=lambda: list(DEFAULT_DONE_LIST_NAMES))
    verbose: bool = True
    debug: bool = False

    @property
    def triage_list_names(self) -> List[str]:
        return [self.backlog_list_name, *self.wip_list_names]

    @property
    def all_list_names(self) -> List[str]:
        return [*self.triage_list_names, *self.done_list_names]

    def log_level(self) -> int:
        if self.debug:
            return logging.DEBUG
        if self.verbose:
            return logging.INFO
        return logging.WARNING


# =============================================================================
# Environment Loading
# =============================================================================

def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: List[str]) -> List[str]:
    value = os.getenv(name)
    if value is None:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


def load_env_file(env_path: Optional[Path] = None) -> None:
    """Load a .env file into the process environment if one exists."""
    if env_path is None:
        env_path = Path(__file__).parent.parent / ".env"
    if env_path.exists():
        load_dotenv(dotenv_path=env_path, override=False)
        logger.debug(f"Loaded environment from {env_path}")


def load_trello_settings() -> TrelloSettings:
    """Build TrelloSettings from TRELLO_* environment variables."""
    return TrelloSettings(
        api_key=os.getenv("TRELLO_API_KEY", ""),
        token=os.getenv("TRELLO_BACKLOG_TOKEN", ""),
        base_url=os.getenv("TRELLO_API_BASE", TRELLO_API_BASE),
        timeout_seconds=float(os.getenv("TRELLO_TIMEOUT_SECONDS", "15")),
        max_concurrency=int(os.getenv("TRELLO_MAX_CONCURRENCY", "8")),
        max_retries=int(os.getenv("TRELLO_MAX_RETRIES", "3")),
    )


def load_sync_config() -> SyncConfig:
    """Build SyncConfig from BACKLOG_* environment variables."""
    return SyncConfig(
        backlog_list_name=os.getenv("BACKLOG_LIST_NAME", DEFAULT_BACKLOG_LIST_NAME),
        wip_list_names=_env_list("BACKLOG_WIP_LISTS", DEFAULT_WIP_LIST_NAMES),
        done_list_names=_env_list("BACKLOG_DONE_LISTS", DEFAULT_DONE_LIST_NAMES),
        verbose=_env_bool("BACKLOG_VERBOSE", True),
        debug=_env_bool("BACKLOG_DEBUG", False),
    )
