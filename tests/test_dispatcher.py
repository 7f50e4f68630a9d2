"""
Tests for backlog_sync.services.dispatcher
============================================

Action classification (pure) and end-to-end dispatch of webhook payloads
against the in-memory board.
"""

from typing import Any, Dict, Optional

import pytest

from backlog_sync.config import SyncConfig
from backlog_sync.models import CheckItemState
from backlog_sync.services import metadata_codec
from backlog_sync.services.dispatcher import (
    Operation,
    WebhookDispatcher,
    board_id_of,
    classify_action,
)
from backlog_sync.services.sync_engine import SyncEngine

from fakes import FakeBoard


def _payload(action_type: str, data: Dict[str, Any], board_id: Optional[str] = "B1") -> Dict[str, Any]:
    if board_id:
        data = {"board": {"id": board_id}, **data}
    return {"action": {"type": action_type, "data": data}, "model": {}}


def _check_item(state: str = "incomplete", name: str = "Write tests") -> Dict[str, Any]:
    return {"id": "C1", "name": name, "state": state}


def _task_card() -> Dict[str, Any]:
    return {"id": "T1", "name": "Ship feature"}


def _move(before: str, after: str) -> Dict[str, Any]:
    return {
        "type": "updateCard",
        "data": {
            "card": {"id": "X"},
            "listBefore": {"id": "a", "name": before},
            "listAfter": {"id": "b", "name": after},
        },
    }


# =========================================================================
# classify_action
# =========================================================================

class TestClassifyAction:

    @pytest.mark.parametrize(
        "action,operation",
        [
            ({"type": "createCard", "data": {}}, Operation.INFORMATIONAL),
            ({"type": "updateCard", "data": {"old": {"name": "a"}}}, Operation.RENAME_TASK),
            ({"type": "updateCard", "data": {"old": {"desc": "a"}}}, Operation.UNHANDLED),
            ({"type": "deleteCard", "data": {}}, Operation.DELETE_TASK),
            ({"type": "createCheckItem", "data": {}}, Operation.CREATE_PROXY),
            ({"type": "updateCheckItemStateOnCard", "data": {}}, Operation.SET_CHECK_ITEM_STATE),
            ({"type": "updateCheckItem", "data": {"old": {"state": "incomplete"}}}, Operation.SET_CHECK_ITEM_STATE),
            ({"type": "updateCheckItem", "data": {"old": {"name": "a"}}}, Operation.RENAME_CHECK_ITEM),
            ({"type": "updateCheckItem", "data": {"old": {"pos": 1}}}, Operation.UNHANDLED),
            ({"type": "deleteCheckItem", "data": {}}, Operation.DELETE_CHECK_ITEM),
            ({"type": "addMemberToCard", "data": {}}, Operation.UNHANDLED),
        ],
    )
    def test_action_types(self, action, operation) -> None:
        assert classify_action(action, SyncConfig()).operation == operation

    @pytest.mark.parametrize(
        "before,after,operation",
        [
            ("Doing", "Later", Operation.MOVE_TASK),
            ("Backlog", "Done Today!", Operation.PROXY_COMPLETED),
            ("today's tasks", "done today!", Operation.PROXY_COMPLETED),
            ("Done Today!", "Backlog", Operation.PROXY_REOPENED),
            ("Done Today!", "Today's Tasks", Operation.PROXY_REOPENED),
            ("Backlog", "Today's Tasks", Operation.UNHANDLED),
            ("Doing", "Backlog", Operation.UNHANDLED),
            ("Done Today!", "Doing", Operation.UNHANDLED),
        ],
    )
    def test_list_moves(self, before, after, operation) -> None:
        assert classify_action(_move(before, after), SyncConfig()).operation == operation

    def test_move_between_done_lists_completes(self) -> None:
        config = SyncConfig(done_list_names=["Done Today!", "Done This Week"])
        route = classify_action(_move("Done Today!", "Done This Week"), config)
        assert route.operation == Operation.PROXY_COMPLETED

    def test_board_id_sources(self) -> None:
        assert board_id_of({"action": {"data": {"board": {"id": "B1"}}}}) == "B1"
        assert board_id_of({"action": {"data": {"card": {"idBoard": "B2"}}}}) == "B2"
        assert board_id_of({"action": {"data": {}}, "model": {"id": "B3"}}) == "B3"
        assert board_id_of({"action": {}}) is None


# =========================================================================
# dispatch
# =========================================================================

class TestDispatch:

    @pytest.mark.asyncio
    async def test_create_check_item(self, board: FakeBoard, dispatcher: WebhookDispatcher) -> None:
        board.add_card("doing", "Ship feature", card_id="T1")
        board.add_item("T1", "C1", "Write tests")

        result = await dispatcher.dispatch(
            _payload("createCheckItem", {"card": _task_card(), "checkItem": _check_item()})
        )

        assert result.handled
        assert result.operation == "create_proxy"
        assert len(result.result["created"]) == 1
        assert [c.name for c in board.cards_in("backlog")] == ["[Ship feature] Write tests"]

    @pytest.mark.asyncio
    async def test_replayed_webhooks_are_idempotent(self, board: FakeBoard, dispatcher: WebhookDispatcher) -> None:
        board.add_card("doing", "Ship feature", card_id="T1")
        board.add_item("T1", "C1", "Write tests")
        create = _payload("createCheckItem", {"card": _task_card(), "checkItem": _check_item()})
        complete = _payload("updateCheckItemStateOnCard", {"card": _task_card(), "checkItem": _check_item("complete")})

        for payload in (create, create, complete, complete):
            await dispatcher.dispatch(payload)

        assert board.cards_in("backlog") == []
        assert [c.name for c in board.cards_in("done")] == ["[Ship feature] Write tests"]

    @pytest.mark.asyncio
    async def test_proxy_moved_to_done_completes_item(self, board: FakeBoard, dispatcher: WebhookDispatcher) -> None:
        board.add_card("doing", "Ship feature", card_id="T1")
        board.add_item("T1", "C1", "Write tests")
        created = await dispatcher.engine.create_proxy("T1", board.item("T1", "C1").model_copy(), "B1")
        proxy_id = created.created[0]
        board.cards[proxy_id].idList = "done"

        result = await dispatcher.dispatch(_payload("updateCard", {
            "card": {"id": proxy_id},
            "listBefore": {"id": "backlog", "name": "Backlog"},
            "listAfter": {"id": "done", "name": "Done Today!"},
        }))

        assert result.handled
        assert result.operation == "proxy_completed"
        assert board.item("T1", "C1").state == CheckItemState.COMPLETE

    @pytest.mark.asyncio
    async def test_late_done_move_after_proxy_returned(self, board: FakeBoard, dispatcher: WebhookDispatcher) -> None:
        """A move-to-done event delivered after the proxy went back to the backlog."""
        board.add_card("doing", "Ship feature", card_id="T1")
        board.add_item("T1", "C1", "Write tests")
        created = await dispatcher.engine.create_proxy("T1", board.item("T1", "C1").model_copy(), "B1")
        proxy_id = created.created[0]

        result = await dispatcher.dispatch(_payload("updateCard", {
            "card": {"id": proxy_id},
            "listBefore": {"id": "backlog", "name": "Backlog"},
            "listAfter": {"id": "done", "name": "Done Today!"},
        }))

        assert result.handled
        assert result.result["skipped"] == "proxy is in a backlog list"
        assert board.item("T1", "C1").state == CheckItemState.INCOMPLETE
        assert board.cards[proxy_id].idList == "backlog"

    @pytest.mark.asyncio
    async def test_engine_error_is_reported_not_raised(self, board: FakeBoard, dispatcher: WebhookDispatcher) -> None:
        plain = board.add_card("done", "Hand-made card")

        result = await dispatcher.dispatch(_payload("updateCard", {
            "card": {"id": plain.id},
            "listBefore": {"id": "backlog", "name": "Backlog"},
            "listAfter": {"id": "done", "name": "Done Today!"},
        }))

        assert not result.handled
        assert result.error["category"] == "not_found"

    @pytest.mark.asyncio
    async def test_missing_backlog_is_reported(self) -> None:
        fake = FakeBoard()
        fake.add_list("Doing", list_id="doing")
        fake.add_card("doing", "Ship feature", card_id="T1")
        dispatcher = WebhookDispatcher(SyncEngine(fake, SyncConfig()))

        result = await dispatcher.dispatch(
            _payload("createCheckItem", {"card": _task_card(), "checkItem": _check_item()})
        )

        assert not result.handled
        assert result.error["status_code"] == 404
        assert fake.writes == []

    @pytest.mark.asyncio
    async def test_malformed_data(self, dispatcher: WebhookDispatcher) -> None:
        result = await dispatcher.dispatch(_payload("createCheckItem", {"card": {"name": "no id"}}))
        assert not result.handled
        assert result.detail == "malformed action data"

    @pytest.mark.asyncio
    async def test_payload_without_action(self, dispatcher: WebhookDispatcher) -> None:
        result = await dispatcher.dispatch({"model": {"id": "B1"}})
        assert result.detail == "no action in payload"
        assert not result.handled

    @pytest.mark.asyncio
    async def test_unhandled_action_is_acknowledged(self, board: FakeBoard, dispatcher: WebhookDispatcher) -> None:
        result = await dispatcher.dispatch(_payload("commentCard", {"card": {"id": "T1"}}))
        assert result.operation == "unhandled"
        assert board.writes == []

    @pytest.mark.asyncio
    async def test_missing_board_id(self, dispatcher: WebhookDispatcher) -> None:
        result = await dispatcher.dispatch(_payload("deleteCard", {"card": {"id": "T1"}}, board_id=None))
        assert result.detail == "no board id in payload"

    @pytest.mark.asyncio
    async def test_delete_check_item(self, board: FakeBoard, dispatcher: WebhookDispatcher) -> None:
        board.add_card("doing", "Ship feature", card_id="T1")
        board.add_item("T1", "C1", "Write tests")
        await dispatcher.engine.create_proxy("T1", board.item("T1", "C1").model_copy(), "B1")

        result = await dispatcher.dispatch(
            _payload("deleteCheckItem", {"card": _task_card(), "checkItem": _check_item()})
        )

        assert result.handled
        assert board.cards_in("backlog") == []

    @pytest.mark.asyncio
    async def test_rename_task(self, board: FakeBoard, dispatcher: WebhookDispatcher) -> None:
        board.add_card("doing", "Ship feature", card_id="T1")
        board.add_item("T1", "C1", "Write tests")
        await dispatcher.engine.create_proxy("T1", board.item("T1", "C1").model_copy(), "B1")
        board.cards["T1"].name = "Ship v2"

        result = await dispatcher.dispatch(_payload("updateCard", {
            "card": {"id": "T1", "name": "Ship v2", "idList": "doing"},
            "old": {"name": "Ship feature"},
        }))

        assert result.handled
        assert [c.name for c in board.cards_in("backlog")] == ["[Ship v2] Write tests"]


# =========================================================================
# End-to-end
# =========================================================================

@pytest.mark.asyncio
async def test_ship_feature_scenario(board: FakeBoard, dispatcher: WebhookDispatcher) -> None:
    """Creation event, then a rename of the task card, through the dispatcher."""
    board.add_card("doing", "Ship feature", card_id="T1")
    board.add_item("T1", "C1", "Write tests")
    board.add_card("doing", "Other", card_id="T2")
    board.add_item("T2", "C2", "Unrelated")

    await dispatcher.dispatch(_payload("createCheckItem", {"card": _task_card(), "checkItem": _check_item()}))
    await dispatcher.dispatch(_payload("createCheckItem", {
        "card": {"id": "T2", "name": "Other"},
        "checkItem": {"id": "C2", "name": "Unrelated", "state": "incomplete"},
    }))

    proxies = board.cards_in("backlog")
    assert [c.name for c in proxies] == ["[Ship feature] Write tests", "[Other] Unrelated"]
    record = metadata_codec.decode(proxies[0].desc)
    assert record.model_dump(by_alias=True) == {
        "TaskName": "Ship feature",
        "TaskID": "T1",
        "ProjectName": "Doing",
        "CheckItemID": "C1",
    }
    other_before = proxies[1].model_copy()

    board.cards["T1"].name = "Ship feature v2"
    await dispatcher.dispatch(_payload("updateCard", {
        "card": {"id": "T1", "name": "Ship feature v2", "idList": "doing"},
        "old": {"name": "Ship feature"},
    }))

    renamed = board.cards[proxies[0].id]
    assert renamed.name == "[Ship feature v2] Write tests"
    record = metadata_codec.decode(renamed.desc)
    assert record.task_name == "Ship feature v2"
    assert record.project_name == "Doing"
    assert board.cards[other_before.id] == other_before
