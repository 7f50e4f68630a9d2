"""
List Resolver - name-based list lookup and role classification.

Triage lists are identified by name only (case-insensitive, surrounding
whitespace ignored). Boards may be missing some of the configured lists;
that is logged, not raised, here. Callers that need a list decide whether
its absence is fatal.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from backlog_sync.config import SyncConfig
from backlog_sync.models import BoardList, ListRole
from backlog_sync.services.repository import BoardRepository

logger = logging.getLogger(__name__)


def normalize_list_name(name: str) -> str:
    return (name or "").strip().casefold()


def role_for_name(config: SyncConfig, name: Optional[str]) -> ListRole:
    """Classify a single list name against the configured role names."""
    normalized = normalize_list_name(name or "")
    if not normalized:
        return ListRole.OTHER
    if normalized == normalize_list_name(config.backlog_list_name):
        return ListRole.BACKLOG
    if normalized in {normalize_list_name(n) for n in config.wip_list_names}:
        return ListRole.WIP
    if normalized in {normalize_list_name(n) for n in config.done_list_names}:
        return ListRole.DONE
    return ListRole.OTHER


@dataclass
class ListRoles:
    """Role classification of the lists on one board."""
    board_id: str
    backlog_id: Optional[str] = None
    wip_ids: List[str] = field(default_factory=list)
    done_ids: List[str] = field(default_factory=list)
    names: Dict[str, str] = field(default_factory=dict)  # list id -> list name

    @property
    def triage_ids(self) -> List[str]:
        """Lists holding active proxies (backlog + wip)."""
        ids = [self.backlog_id] if self.backlog_id else []
        return ids + self.wip_ids

    @property
    def all_ids(self) -> List[str]:
        """Every list that may hold a proxy (triage + done)."""
        return self.triage_ids + self.done_ids

    @property
    def first_done_id(self) -> Optional[str]:
        return self.done_ids[0] if self.done_ids else None

    def role_of(self, list_id: Optional[str]) -> ListRole:
        if list_id is None:
            return ListRole.OTHER
        if list_id == self.backlog_id:
            return ListRole.BACKLOG
        if list_id in self.wip_ids:
            return ListRole.WIP
        if list_id in self.done_ids:
            return ListRole.DONE
        return ListRole.OTHER

    def is_triage(self, list_id: Optional[str]) -> bool:
        return self.role_of(list_id) in (ListRole.BACKLOG, ListRole.WIP)

    def is_managed(self, list_id: Optional[str]) -> bool:
        """True for any list this system places proxies in."""
        return self.role_of(list_id) != ListRole.OTHER


class ListResolver:
    """Resolves configured list names to list ids on a board."""

    def __init__(self, repository: BoardRepository, config: SyncConfig):
        self.repository = repository
        self.config = config

    async def resolve(self, board_id: str, names: List[str]) -> List[BoardList]:
        """
        Match each requested name against the board's lists.

        Names without a match are omitted from the result and logged. The
        result keeps the order of ``names``.
        """
        lists = await self.repository.list_lists(board_id)
        by_name: Dict[str, BoardList] = {}
        for board_list in lists:
            if board_list.closed:
                continue
            by_name.setdefault(normalize_list_name(board_list.name), board_list)

        resolved: List[BoardList] = []
        for name in names:
            match = by_name.get(normalize_list_name(name))
            if match is None:
                logger.warning(f"List '{name}' not found on board {board_id}")
                continue
            resolved.append(match)
        return resolved

    async def classify(self, board_id: str) -> ListRoles:
        """Classify the board's lists into backlog / wip / done."""
        lists = await self.repository.list_lists(board_id)
        roles = ListRoles(board_id=board_id)

        for board_list in lists:
            if board_list.closed:
                continue
            roles.names[board_list.id] = board_list.name
            role = role_for_name(self.config, board_list.name)
            # A second list named like the backlog stays unclassified
            if role == ListRole.BACKLOG and roles.backlog_id is None:
                roles.backlog_id = board_list.id
            elif role == ListRole.WIP:
                roles.wip_ids.append(board_list.id)
            elif role == ListRole.DONE:
                roles.done_ids.append(board_list.id)

        if roles.backlog_id is None:
            logger.warning(
                f"Backlog list '{self.config.backlog_list_name}' not found on board {board_id}"
            )
        if not roles.done_ids:
            logger.debug(f"No done lists found on board {board_id}")
        return roles
