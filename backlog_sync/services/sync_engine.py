"""
Synchronization Engine - proxy cards for checklist items
==========================================================

Keeps exactly one proxy card per incomplete checklist item in the triage
lists, and keeps each proxy's name, description and list consistent with
its source task card.

States of a (task card, checklist item) pair:

    no-proxy  ──create (incomplete)──▶  proxy-in-triage
    proxy-in-triage  ──complete──▶  proxy-in-done
    proxy-in-done  ──incomplete──▶  proxy-in-triage
    any  ──task / item deleted──▶  no-proxy

Proxies are found by a full scan of the triage + done lists, decoding the
Link Record embedded in each description. Every operation is idempotent:
replaying an event leaves the board unchanged, which is what stands in for
the ordering guarantees Trello webhooks do not give.

Completion transitions are keyed off the proxy's current list, never off
the list the source card lives in.
"""

import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Tuple

from backlog_sync.config import SyncConfig
from backlog_sync.exceptions import (
    CardNotFoundError,
    LinkNotFoundError,
    LinkRecordDecodeError,
    ListNotFoundError,
    TrelloAPIError,
)
from backlog_sync.models import (
    Card,
    CheckItem,
    CheckItemState,
    LinkRecord,
    ListRole,
    ProxyCard,
    proxy_card_name,
)
from backlog_sync.services import metadata_codec
from backlog_sync.services.fanout import FanoutResult, run_all
from backlog_sync.services.list_resolver import ListResolver, ListRoles
from backlog_sync.services.repository import BoardRepository

logger = logging.getLogger(__name__)

LEADING_SEGMENT = re.compile(r"^\[[^\]]*\]\s*")


# =============================================================================
# Results
# =============================================================================

@dataclass
class SyncResult:
    """What one engine operation did to the board."""
    operation: str
    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    moved: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped: Optional[str] = None

    @property
    def changed(self) -> bool:
        return bool(self.created or self.updated or self.moved or self.deleted)

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


def rename_task_segment(proxy_name: str, known_names: List[str], new_task_name: str) -> str:
    """
    Replace the ``[task]`` segment of a proxy name exactly once.

    ``known_names`` are candidate previous task names, most trusted first.
    A name that already carries the new segment is returned unchanged, so a
    replayed rename is a no-op.
    """
    new_prefix = f"[{new_task_name}] "
    if proxy_name.startswith(new_prefix):
        return proxy_name

    for old_name in known_names:
        old_prefix = f"[{old_name}] "
        if old_name and proxy_name.startswith(old_prefix):
            return new_prefix + proxy_name[len(old_prefix):]

    match = LEADING_SEGMENT.match(proxy_name)
    if match:
        return new_prefix + proxy_name[match.end():]
    return new_prefix + proxy_name


def raise_read_failure(outcome: FanoutResult, message: str) -> None:
    """Raise the first failure of a fan-out of board reads, if any."""
    if outcome.ok:
        return
    _, first_error = outcome.errors[0]
    if isinstance(first_error, TrelloAPIError):
        raise first_error
    raise TrelloAPIError(
        message=message,
        original_error=first_error if isinstance(first_error, Exception) else None,
    ) from first_error


def decode_or_skip(card: Card) -> Optional[LinkRecord]:
    """Link Record of a card, or None when it has none or it is malformed."""
    try:
        return metadata_codec.decode(card.desc)
    except LinkRecordDecodeError as e:
        logger.error(f"Skipping card {card.id} with malformed link record: {e}")
        return None


class SyncEngine:
    """
    Event-driven reconciliation of proxy cards.

    Provides methods for:
    - Creating a proxy for a new incomplete checklist item
    - Moving proxies between triage and done on completion toggles
    - Propagating task card renames / moves and checklist item renames
    - Deleting proxies when the task card or checklist item goes away
    """

    def __init__(self, repository: BoardRepository, config: Optional[SyncConfig] = None):
        """
        Initialize the SyncEngine.

        Args:
            repository: Board capability used for every read and write
            config: List-name role mapping (defaults to SyncConfig())
        """
        self.repository = repository
        self.config = config or SyncConfig()
        self.resolver = ListResolver(repository, self.config)

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    async def _cards_in_list(self, list_id: str) -> Tuple[str, List[Card]]:
        return list_id, await self.repository.list_cards(list_id)

    async def scan_proxies(
        self,
        roles: ListRoles,
        strict: bool = False,
        list_ids: Optional[List[str]] = None,
    ) -> List[ProxyCard]:
        """
        Decode the Link Record of every card in the triage and done lists.

        Cards without a record are skipped. A card whose record is malformed
        is logged and skipped; it never counts as a match.

        Args:
            roles: Classified lists of the board
            strict: Raise if any list could not be read. Used before creating
                a proxy, where a partial scan could hide an existing one.
            list_ids: Scan only these lists (defaults to every managed list)
        """
        scanned = list_ids if list_ids is not None else roles.all_ids
        outcome = await run_all(
            [self._cards_in_list(list_id) for list_id in scanned],
            label="scan proxy lists",
        )
        if strict:
            raise_read_failure(outcome, "Could not scan every triage list")

        proxies: List[ProxyCard] = []
        for list_id, cards in outcome.results:
            role = roles.role_of(list_id)
            for card in cards:
                record = decode_or_skip(card)
                if record is not None:
                    proxies.append(ProxyCard(card=card, record=record, role=role))
        return proxies

    async def find_proxies(
        self,
        roles: ListRoles,
        task_id: str,
        check_item_id: Optional[str] = None,
        strict: bool = False,
    ) -> List[ProxyCard]:
        """Proxies whose Link Record points at ``task_id`` (and ``check_item_id``)."""
        if not task_id:
            return []
        proxies = await self.scan_proxies(roles, strict=strict)
        matches = [p for p in proxies if p.record.matches(task_id, check_item_id)]
        if check_item_id and len(matches) > 1:
            logger.warning(
                f"{len(matches)} proxies found for task {task_id} item {check_item_id}"
            )
        return matches

    def _require_backlog(self, roles: ListRoles) -> str:
        if roles.backlog_id is None:
            raise ListNotFoundError(roles.board_id, [self.config.backlog_list_name])
        return roles.backlog_id

    def _require_done(self, roles: ListRoles) -> str:
        done_id = roles.first_done_id
        if done_id is None:
            raise ListNotFoundError(roles.board_id, list(self.config.done_list_names))
        return done_id

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    def build_record(self, task: Card, check_item: CheckItem, roles: ListRoles) -> LinkRecord:
        project_name = roles.names.get(task.idList or "", "")
        if not project_name:
            logger.warning(f"List {task.idList} of card {task.id} not found, project name left empty")
        return LinkRecord(
            task_name=task.name,
            task_id=task.id,
            project_name=project_name,
            check_item_id=check_item.id,
        )

    async def create_from_item(
        self,
        task: Card,
        check_item: CheckItem,
        roles: ListRoles,
        position: str = "bottom",
    ) -> Card:
        """Create the proxy card unconditionally. Callers check for duplicates."""
        backlog_id = self._require_backlog(roles)
        record = self.build_record(task, check_item, roles)
        proxy = await self.repository.create_card(
            backlog_id,
            proxy_card_name(task.name, check_item.name),
            metadata_codec.render_description(record),
            pos=position,
        )
        logger.info(f"Created proxy {proxy.id} for task {task.id} item {check_item.id}")
        return proxy

    async def create_proxy(
        self,
        card_id: str,
        check_item: CheckItem,
        board_id: str,
        roles: Optional[ListRoles] = None,
    ) -> SyncResult:
        """
        Create a backlog proxy for a newly observed checklist item.

        No-op when the item is already complete, when the source card is
        itself in a triage or done list, or when a proxy for the pair exists.

        Raises:
            ListNotFoundError: The board has no backlog list
        """
        result = SyncResult(operation="create_proxy")
        if check_item.is_complete:
            result.skipped = "checklist item already complete"
            return result

        roles = roles or await self.resolver.classify(board_id)
        self._require_backlog(roles)

        task = await self.repository.get_card(card_id)
        if roles.is_managed(task.idList):
            result.skipped = "card is in a triage list"
            return result

        existing = await self.find_proxies(roles, task.id, check_item.id, strict=True)
        if existing:
            result.skipped = f"proxy {existing[0].card.id} already exists"
            return result

        proxy = await self.create_from_item(task, check_item, roles)
        result.created.append(proxy.id)
        return result

    # -------------------------------------------------------------------------
    # Completion
    # -------------------------------------------------------------------------

    async def set_check_item_state(
        self,
        card_id: str,
        check_item: CheckItem,
        board_id: str,
    ) -> SyncResult:
        """
        Follow a checklist item's completion toggle with its proxy.

        complete:   proxy in triage → first done list
        incomplete: proxy in done → backlog; no proxy → create one
        """
        result = SyncResult(operation="set_check_item_state")
        roles = await self.resolver.classify(board_id)
        proxies = await self.find_proxies(roles, card_id, check_item.id)

        if check_item.is_complete:
            to_move = [p for p in proxies if p.role in (ListRole.BACKLOG, ListRole.WIP)]
            if not to_move:
                result.skipped = "no proxy in triage" if not proxies else "proxy already done"
                return result
            target = self._require_done(roles)
        else:
            if not proxies:
                logger.info(f"No proxy for incomplete item {check_item.id}, creating one")
                fallback = await self.create_proxy(card_id, check_item, board_id, roles=roles)
                fallback.operation = result.operation
                return fallback
            to_move = [p for p in proxies if p.role == ListRole.DONE]
            if not to_move:
                result.skipped = "proxy already in triage"
                return result
            target = self._require_backlog(roles)

        outcome = await run_all(
            [self.repository.update_card(p.card.id, list_id=target) for p in to_move],
            label=f"move proxies of item {check_item.id}",
        )
        failed = {i for i, _ in outcome.errors}
        for i, proxy in enumerate(to_move):
            (result.failed if i in failed else result.moved).append(proxy.card.id)
        return result

    async def complete_from_proxy_move(
        self,
        proxy_card_id: str,
        board_id: str,
        state: CheckItemState,
    ) -> SyncResult:
        """
        Mirror a proxy moved into (or out of) a done list onto its source item.

        The proxy itself is already where the user put it; this only sets the
        linked checklist item's state. Trello then emits
        ``updateCheckItemStateOnCard``, which finds the proxy already in place.
        Skipped when the proxy is no longer in a list matching ``state``.

        Raises:
            LinkNotFoundError: The proxy has no Link Record, or the linked
                card / checklist item no longer exists
        """
        result = SyncResult(operation="complete_from_proxy_move")
        proxy = await self.repository.get_card(proxy_card_id)

        # A late or replayed move event must not undo a later move of the proxy
        roles = await self.resolver.classify(board_id)
        role = roles.role_of(proxy.idList)
        in_place = role == ListRole.DONE if state == CheckItemState.COMPLETE else roles.is_triage(proxy.idList)
        if not in_place:
            result.skipped = f"proxy is in a {role.value} list"
            return result

        record = metadata_codec.decode(proxy.desc)
        if record is None:
            raise LinkNotFoundError(proxy_card_id)

        dangling = f"Linked task {record.task_id} no longer exists"
        try:
            checklists = await self.repository.list_checklists(record.task_id)
        except CardNotFoundError as e:
            raise LinkNotFoundError(proxy_card_id, reason=dangling, original_error=e) from e
        except TrelloAPIError as e:
            if e.http_status != 404:
                raise
            raise LinkNotFoundError(proxy_card_id, reason=dangling, original_error=e) from e

        item = next(
            (i for cl in checklists for i in cl.checkItems if i.id == record.check_item_id),
            None,
        )
        if item is None:
            raise LinkNotFoundError(
                proxy_card_id, reason=f"Linked checklist item {record.check_item_id} no longer exists"
            )

        if item.state == state:
            result.skipped = f"checklist item already {state.value}"
            return result

        await self.repository.update_check_item(record.task_id, item.id, state=state)
        logger.info(f"Marked item {item.id} on task {record.task_id} {state.value}")
        result.updated.append(record.task_id)
        return result

    # -------------------------------------------------------------------------
    # Renames / moves
    # -------------------------------------------------------------------------

    async def _apply_updates(
        self,
        result: SyncResult,
        updates: List[Tuple[ProxyCard, str, str]],
        label: str,
    ) -> SyncResult:
        changes = [(p, name, desc) for p, name, desc in updates if name != p.card.name or desc != p.card.desc]
        if not changes:
            if not result.skipped:
                result.skipped = "proxies already up to date" if updates else "no proxies found"
            return result

        outcome = await run_all(
            [self.repository.update_card(p.card.id, name=name, desc=desc) for p, name, desc in changes],
            label=label,
        )
        failed = {i for i, _ in outcome.errors}
        for i, (proxy, _, _) in enumerate(changes):
            (result.failed if i in failed else result.updated).append(proxy.card.id)
        return result

    async def rename_check_item(
        self,
        card_id: str,
        check_item: CheckItem,
        board_id: str,
        task_name: Optional[str] = None,
    ) -> SyncResult:
        """Rename the proxy of a renamed checklist item to ``[task] item``."""
        result = SyncResult(operation="rename_check_item")
        roles = await self.resolver.classify(board_id)
        proxies = await self.find_proxies(roles, card_id, check_item.id)
        if not proxies:
            result.skipped = "no proxies found"
            return result

        if task_name is None:
            task_name = (await self.repository.get_card(card_id)).name

        updates = []
        for proxy in proxies:
            record = proxy.record.model_copy(update={"task_name": task_name})
            updates.append((
                proxy,
                proxy_card_name(task_name, check_item.name),
                metadata_codec.render_description(record, proxy.card.desc),
            ))
        return await self._apply_updates(result, updates, label=f"rename item {check_item.id}")

    async def rename_task(self, card: Card, old_name: Optional[str], board_id: str) -> SyncResult:
        """
        Propagate a task card rename to every proxy of that task.

        Only the ``[task]`` segment of each proxy name changes; the
        ``TaskName`` of the Link Record and the details block follow.
        """
        result = SyncResult(operation="rename_task")
        roles = await self.resolver.classify(board_id)
        if roles.is_managed(card.idList):
            result.skipped = "renamed card is in a triage list"
            return result

        proxies = await self.find_proxies(roles, card.id)
        updates = []
        for proxy in proxies:
            known = [proxy.record.task_name]
            if old_name:
                known.append(old_name)
            record = proxy.record.model_copy(update={"task_name": card.name})
            updates.append((
                proxy,
                rename_task_segment(proxy.card.name, known, card.name),
                metadata_codec.render_description(record, proxy.card.desc),
            ))
        return await self._apply_updates(result, updates, label=f"rename task {card.id}")

    async def move_task(
        self,
        card: Card,
        list_after_id: str,
        board_id: str,
        list_after_name: Optional[str] = None,
    ) -> SyncResult:
        """Point every proxy of a moved task card at its new project list."""
        result = SyncResult(operation="move_task")
        roles = await self.resolver.classify(board_id)
        if roles.is_managed(list_after_id):
            result.skipped = "card moved into a triage list"
            return result

        project_name = roles.names.get(list_after_id) or list_after_name or ""
        proxies = await self.find_proxies(roles, card.id)
        updates = []
        for proxy in proxies:
            record = proxy.record.model_copy(update={"project_name": project_name})
            updates.append((
                proxy,
                proxy.card.name,
                metadata_codec.render_description(record, proxy.card.desc),
            ))
        return await self._apply_updates(result, updates, label=f"move task {card.id}")

    # -------------------------------------------------------------------------
    # Deletes
    # -------------------------------------------------------------------------

    async def _delete_all(self, result: SyncResult, proxies: List[ProxyCard], label: str) -> SyncResult:
        if not proxies:
            result.skipped = "no proxies found"
            return result

        outcome = await run_all(
            [self.repository.delete_card(p.card.id) for p in proxies],
            label=label,
        )
        errors = dict(outcome.errors)
        for i, proxy in enumerate(proxies):
            error = errors.get(i)
            if error is None or isinstance(error, CardNotFoundError):
                result.deleted.append(proxy.card.id)
            else:
                result.failed.append(proxy.card.id)
        return result

    async def delete_task(self, card_id: str, board_id: str) -> SyncResult:
        """Delete every proxy of a deleted task card."""
        result = SyncResult(operation="delete_task")
        roles = await self.resolver.classify(board_id)
        proxies = await self.find_proxies(roles, card_id)
        return await self._delete_all(result, proxies, label=f"delete proxies of task {card_id}")

    async def delete_check_item(self, card_id: str, check_item_id: str, board_id: str) -> SyncResult:
        """Delete the proxy of a deleted checklist item."""
        result = SyncResult(operation="delete_check_item")
        roles = await self.resolver.classify(board_id)
        proxies = await self.find_proxies(roles, card_id, check_item_id)
        return await self._delete_all(result, proxies, label=f"delete proxies of item {check_item_id}")
