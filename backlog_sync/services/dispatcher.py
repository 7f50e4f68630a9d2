"""
Webhook Dispatcher - Trello actions to engine operations
==========================================================

Classifies one Trello webhook action at a time and invokes the matching
SyncEngine operation.

Routing:
- createCard                          → informational only
- updateCard + old.name               → rename_task
- updateCard + listBefore/listAfter:
    other → other                     → move_task
    backlog/wip/done → done           → complete_from_proxy_move (complete)
    done → backlog/wip                → complete_from_proxy_move (incomplete)
    anything else                     → logged only
- deleteCard                          → delete_task
- createCheckItem                     → create_proxy
- updateCheckItemStateOnCard          → set_check_item_state
- updateCheckItem + old.state         → set_check_item_state
- updateCheckItem + old.name          → rename_check_item
- deleteCheckItem                     → delete_check_item
- anything else                       → logged only

Classification is pure (list roles come from the list names carried in the
payload); the engine re-checks list ids against the board before writing.
"""

import json
import logging
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional

from pydantic import BaseModel, Field, ValidationError

from backlog_sync.config import SyncConfig
from backlog_sync.exceptions import BacklogSyncError
from backlog_sync.models import Card, CheckItem, CheckItemState, ListRole
from backlog_sync.services.list_resolver import role_for_name
from backlog_sync.services.sync_engine import SyncEngine, SyncResult

logger = logging.getLogger(__name__)

TRIAGE_ROLES = (ListRole.BACKLOG, ListRole.WIP)


class Operation(str, Enum):
    """Engine operation selected for an action."""
    CREATE_PROXY = "create_proxy"
    SET_CHECK_ITEM_STATE = "set_check_item_state"
    RENAME_CHECK_ITEM = "rename_check_item"
    RENAME_TASK = "rename_task"
    MOVE_TASK = "move_task"
    PROXY_COMPLETED = "proxy_completed"
    PROXY_REOPENED = "proxy_reopened"
    DELETE_TASK = "delete_task"
    DELETE_CHECK_ITEM = "delete_check_item"
    INFORMATIONAL = "informational"
    UNHANDLED = "unhandled"


class Route(NamedTuple):
    operation: Operation
    reason: str


class DispatchResult(BaseModel):
    """Outcome of dispatching one webhook payload."""
    action_type: Optional[str] = None
    operation: Operation = Operation.UNHANDLED
    handled: bool = False
    detail: str = ""
    result: Optional[Dict[str, Any]] = None
    error: Optional[Dict[str, Any]] = None

    model_config = {"use_enum_values": True}


# =============================================================================
# Classification
# =============================================================================

def classify_action(action: Dict[str, Any], config: SyncConfig) -> Route:
    """Pick the engine operation for a Trello action."""
    action_type = action.get("type")
    data = action.get("data") or {}
    old = data.get("old") or {}

    if action_type == "createCard":
        return Route(Operation.INFORMATIONAL, "proxies are created per checklist item")

    if action_type == "updateCard":
        if "name" in old:
            return Route(Operation.RENAME_TASK, "card renamed")

        list_before = data.get("listBefore")
        list_after = data.get("listAfter")
        if list_before and list_after:
            before = role_for_name(config, list_before.get("name"))
            after = role_for_name(config, list_after.get("name"))
            if before == ListRole.OTHER and after == ListRole.OTHER:
                return Route(Operation.MOVE_TASK, "task card moved between projects")
            if before in (*TRIAGE_ROLES, ListRole.DONE) and after == ListRole.DONE:
                return Route(Operation.PROXY_COMPLETED, "proxy moved to done")
            if before == ListRole.DONE and after in TRIAGE_ROLES:
                return Route(Operation.PROXY_REOPENED, "proxy moved out of done")
            return Route(Operation.UNHANDLED, f"card moved {before.value} -> {after.value}")

        return Route(Operation.UNHANDLED, "card updated")

    if action_type == "deleteCard":
        return Route(Operation.DELETE_TASK, "card deleted")

    if action_type == "createCheckItem":
        return Route(Operation.CREATE_PROXY, "checklist item created")

    if action_type == "updateCheckItemStateOnCard":
        return Route(Operation.SET_CHECK_ITEM_STATE, "checklist item state changed")

    if action_type == "updateCheckItem":
        if "state" in old:
            return Route(Operation.SET_CHECK_ITEM_STATE, "checklist item state changed")
        if "name" in old:
            return Route(Operation.RENAME_CHECK_ITEM, "checklist item renamed")
        return Route(Operation.UNHANDLED, "checklist item updated")

    if action_type == "deleteCheckItem":
        return Route(Operation.DELETE_CHECK_ITEM, "checklist item deleted")

    return Route(Operation.UNHANDLED, f"unhandled action type: {action_type}")


def board_id_of(payload: Dict[str, Any]) -> Optional[str]:
    """Board id from the action data, the card, or the webhook model."""
    data = (payload.get("action") or {}).get("data") or {}
    board = data.get("board") or {}
    card = data.get("card") or {}
    model = payload.get("model") or {}
    return board.get("id") or card.get("idBoard") or model.get("id")


# =============================================================================
# Dispatcher
# =============================================================================

class WebhookDispatcher:
    """Routes webhook payloads to SyncEngine operations."""

    def __init__(self, engine: SyncEngine, config: Optional[SyncConfig] = None):
        self.engine = engine
        self.config = config or engine.config

    async def dispatch(self, payload: Dict[str, Any]) -> DispatchResult:
        """
        Dispatch one webhook payload.

        Errors raised by the engine are logged and reported in the result; a
        result is always returned so the webhook can be acknowledged.
        """
        action = payload.get("action") if isinstance(payload, dict) else None
        if not action:
            logger.info("Payload without action acknowledged")
            return DispatchResult(detail="no action in payload")

        action_type = action.get("type")
        if self.config.debug:
            logger.debug(f"Webhook action payload: {json.dumps(action, default=str)[:2000]}")

        route = classify_action(action, self.config)
        dispatch = DispatchResult(action_type=action_type, operation=route.operation, detail=route.reason)

        if route.operation in (Operation.INFORMATIONAL, Operation.UNHANDLED):
            logger.info(f"{action_type}: {route.reason}")
            return dispatch

        board_id = board_id_of(payload)
        if not board_id:
            logger.warning(f"{action_type}: no board id in payload, ignoring")
            dispatch.detail = "no board id in payload"
            return dispatch

        try:
            result = await self._run(route.operation, action.get("data") or {}, board_id)
        except ValidationError as e:
            logger.warning(f"{action_type}: malformed action data: {e}")
            dispatch.detail = "malformed action data"
            dispatch.error = {"error": str(e), "category": "validation"}
            return dispatch
        except BacklogSyncError as e:
            logger.error(f"{action_type} -> {route.operation.value} failed: {e}")
            dispatch.error = e.to_dict()
            return dispatch

        dispatch.handled = True
        dispatch.result = result.to_dict()
        if result.skipped:
            logger.info(f"{action_type} -> {route.operation.value}: skipped ({result.skipped})")
        else:
            logger.info(
                f"{action_type} -> {route.operation.value}: created={len(result.created)} "
                f"updated={len(result.updated)} moved={len(result.moved)} "
                f"deleted={len(result.deleted)} failed={len(result.failed)}"
            )
        return dispatch

    async def _run(self, operation: Operation, data: Dict[str, Any], board_id: str) -> SyncResult:
        engine = self.engine
        card = Card.model_validate(data.get("card") or {})

        if operation == Operation.CREATE_PROXY:
            item = CheckItem.model_validate(data.get("checkItem") or {})
            return await engine.create_proxy(card.id, item, board_id)

        if operation == Operation.SET_CHECK_ITEM_STATE:
            item = CheckItem.model_validate(data.get("checkItem") or {})
            return await engine.set_check_item_state(card.id, item, board_id)

        if operation == Operation.RENAME_CHECK_ITEM:
            item = CheckItem.model_validate(data.get("checkItem") or {})
            return await engine.rename_check_item(card.id, item, board_id, task_name=card.name or None)

        if operation == Operation.RENAME_TASK:
            old_name = (data.get("old") or {}).get("name")
            return await engine.rename_task(card, old_name, board_id)

        if operation == Operation.MOVE_TASK:
            list_after = data.get("listAfter") or {}
            return await engine.move_task(card, list_after.get("id"), board_id, list_after.get("name"))

        if operation == Operation.PROXY_COMPLETED:
            return await engine.complete_from_proxy_move(card.id, board_id, CheckItemState.COMPLETE)

        if operation == Operation.PROXY_REOPENED:
            return await engine.complete_from_proxy_move(card.id, board_id, CheckItemState.INCOMPLETE)

        if operation == Operation.DELETE_TASK:
            return await engine.delete_task(card.id, board_id)

        if operation == Operation.DELETE_CHECK_ITEM:
            item = CheckItem.model_validate(data.get("checkItem") or {})
            return await engine.delete_check_item(card.id, item.id, board_id)

        raise ValueError(f"No handler for operation {operation}")
