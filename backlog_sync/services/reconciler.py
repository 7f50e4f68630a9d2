"""
Bulk Reconciler - full backlog rebuild
========================================

Deletes every proxy in the backlog and wip lists and recreates one proxy
per incomplete checklist item on the board.

This is a coarse reset, not a merge: it is not incremental, and it must not
run concurrently with itself or with webhook processing. Proxies in done
lists are kept, except those whose checklist item is incomplete again
(they would otherwise duplicate the recreated proxy).

Every managed list is read before anything is deleted; a failed read ends
the rebuild with the board untouched. An item whose old proxy could not be
deleted is not recreated, so a partial failure never leaves two proxies
for one checklist item.
"""

import logging
from typing import List, Set, Tuple

from pydantic import BaseModel, Field

from backlog_sync.exceptions import ListNotFoundError
from backlog_sync.models import Card, CheckItem, ListRole
from backlog_sync.services.fanout import run_all
from backlog_sync.services.sync_engine import SyncEngine, decode_or_skip, raise_read_failure

logger = logging.getLogger(__name__)

Pair = Tuple[str, str]  # (TaskID, CheckItemID)


class RebuildReport(BaseModel):
    """Summary of one rebuild pass."""
    board_id: str
    deleted: List[str] = Field(default_factory=list)
    created: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    scanned_cards: int = 0


class BulkReconciler:
    """Delete-and-rebuild of every proxy on a board."""

    def __init__(self, engine: SyncEngine):
        self.engine = engine
        self.repository = engine.repository
        self.resolver = engine.resolver

    async def _incomplete_items(self, card: Card) -> List[Tuple[Card, CheckItem]]:
        checklists = await self.repository.list_checklists(card.id)
        return [
            (card, item)
            for checklist in checklists
            for item in checklist.checkItems
            if not item.is_complete
        ]

    async def _delete(self, report: RebuildReport, cards: List[Card], label: str) -> Set[Pair]:
        """Delete ``cards``; return the links of the proxies that survived."""
        outcome = await run_all([self.repository.delete_card(card.id) for card in cards], label=label)
        failed = {i for i, _ in outcome.errors}
        survivors: Set[Pair] = set()
        for i, card in enumerate(cards):
            if i not in failed:
                report.deleted.append(card.id)
                continue
            report.failed.append(card.id)
            record = decode_or_skip(card)
            if record is not None:
                survivors.add((record.task_id, record.check_item_id))
        return survivors

    async def rebuild(self, board_id: str) -> RebuildReport:
        """
        Rebuild all proxies on a board.

        Raises:
            ListNotFoundError: The backlog list is missing; raised before
                anything is deleted
            TrelloAPIError: A backlog, wip or done list could not be read;
                raised before anything is deleted
        """
        roles = await self.resolver.classify(board_id)
        if roles.backlog_id is None:
            raise ListNotFoundError(board_id, [self.engine.config.backlog_list_name])

        report = RebuildReport(board_id=board_id)
        logger.info(f"Rebuilding backlog for board {board_id}")

        # 1. Read backlog + wip and every done proxy
        listed = await run_all(
            [self.repository.list_cards(list_id) for list_id in roles.triage_ids],
            label="list triage cards",
        )
        raise_read_failure(listed, "Could not read every triage list")
        to_delete = [card for cards in listed.results for card in cards]

        done_proxies = []
        if roles.done_ids:
            done_proxies = await self.engine.scan_proxies(roles, strict=True, list_ids=roles.done_ids)

        # 2. Collect incomplete items from every non-triage card
        board_cards = await self.repository.list_board_cards(board_id)
        sources = [card for card in board_cards if not roles.is_managed(card.idList)]
        report.scanned_cards = len(sources)

        scanned = await run_all(
            [self._incomplete_items(card) for card in sources],
            label="read checklists",
        )
        for i, _ in scanned.errors:
            report.failed.append(sources[i].id)
        items = [pair for pairs in scanned.results for pair in pairs]
        wanted: Set[Pair] = {(card.id, item.id) for card, item in items}

        # 3. Clear backlog + wip, and done proxies whose item is incomplete again
        survivors = await self._delete(report, to_delete, label="delete triage cards")
        stale = [
            p.card for p in done_proxies
            if p.role == ListRole.DONE and (p.record.task_id, p.record.check_item_id) in wanted
        ]
        survivors |= await self._delete(report, stale, label="delete stale done proxies")

        # 4. Recreate, except where an old proxy is still on the board
        to_create = []
        for card, item in items:
            if (card.id, item.id) in survivors:
                logger.warning(f"Not recreating proxy for task {card.id} item {item.id}: old proxy remains")
                report.skipped.append(item.id)
            else:
                to_create.append((card, item))

        created = await run_all(
            [self.engine.create_from_item(card, item, roles) for card, item in to_create],
            label="create proxies",
        )
        report.created.extend(card.id for card in created.results)
        for i, _ in created.errors:
            report.failed.append(to_create[i][1].id)

        logger.info(
            f"Rebuild of board {board_id} finished: deleted={len(report.deleted)} "
            f"created={len(report.created)} skipped={len(report.skipped)} "
            f"failed={len(report.failed)}"
        )
        return report
