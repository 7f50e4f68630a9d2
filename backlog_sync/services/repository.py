"""Base class for board repositories."""

from abc import ABC, abstractmethod
from typing import List, Optional

from backlog_sync.models import BoardList, Card, CheckItem, CheckItemState, Checklist


class BoardRepository(ABC):
    """
    Capability surface over a task board.

    The synchronization engine only ever talks to the board through this
    interface. ``TrelloBoardRepository`` implements it over HTTP; tests use an
    in-memory fake.

    Failed remote calls raise ``TrelloAPIError``; a missing card raises
    ``CardNotFoundError``.
    """

    @abstractmethod
    async def list_lists(self, board_id: str) -> List[BoardList]:
        """Return every open list on a board."""
        pass

    @abstractmethod
    async def list_cards(self, list_id: str) -> List[Card]:
        """Return the open cards in one list."""
        pass

    @abstractmethod
    async def list_board_cards(self, board_id: str) -> List[Card]:
        """Return every open card on a board."""
        pass

    @abstractmethod
    async def get_card(self, card_id: str) -> Card:
        """Fetch a single card, raising CardNotFoundError if it is gone."""
        pass

    @abstractmethod
    async def create_card(
        self,
        list_id: str,
        name: str,
        desc: str = "",
        pos: str = "bottom",
    ) -> Card:
        """Create a card and return it as stored."""
        pass

    @abstractmethod
    async def update_card(
        self,
        card_id: str,
        name: Optional[str] = None,
        desc: Optional[str] = None,
        list_id: Optional[str] = None,
    ) -> Card:
        """Update any subset of name, description and list."""
        pass

    @abstractmethod
    async def delete_card(self, card_id: str) -> None:
        pass

    @abstractmethod
    async def list_checklists(self, card_id: str) -> List[Checklist]:
        pass

    @abstractmethod
    async def update_check_item(
        self,
        card_id: str,
        check_item_id: str,
        state: Optional[CheckItemState] = None,
        name: Optional[str] = None,
    ) -> CheckItem:
        """Change a checklist item's state and/or name on its card."""
        pass
