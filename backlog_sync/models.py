"""
Board entity models.

Field names follow the Trello REST API (``idList``, ``checkItems``, ...) so
API responses and webhook payloads validate without remapping. Unknown
fields are ignored.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class CheckItemState(str, Enum):
    """Completion state of a checklist item."""
    INCOMPLETE = "incomplete"
    COMPLETE = "complete"


class ListRole(str, Enum):
    """Role of a list on the board, derived from its name."""
    BACKLOG = "backlog"
    WIP = "wip"
    DONE = "done"
    OTHER = "other"


class BoardList(BaseModel):
    id: str
    name: str
    closed: bool = False
    idBoard: Optional[str] = None


class CheckItem(BaseModel):
    id: str
    name: str = ""
    state: CheckItemState = CheckItemState.INCOMPLETE
    idChecklist: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return self.state == CheckItemState.COMPLETE


class Checklist(BaseModel):
    id: str
    name: str = ""
    idCard: Optional[str] = None
    checkItems: List[CheckItem] = Field(default_factory=list)


class Card(BaseModel):
    id: str
    name: str = ""
    desc: str = ""
    idList: Optional[str] = None
    idBoard: Optional[str] = None


class LinkRecord(BaseModel):
    """
    Back-reference from a proxy card to the checklist item it mirrors.

    Serialized with the original key names (``TaskName``, ``TaskID``,
    ``ProjectName``, ``CheckItemID``) inside the proxy's description.
    """
    task_name: str = Field(..., alias="TaskName")
    task_id: str = Field(..., alias="TaskID", min_length=1)
    project_name: str = Field(..., alias="ProjectName")
    check_item_id: str = Field(..., alias="CheckItemID", min_length=1)

    model_config = {"populate_by_name": True}

    def matches(self, task_id: str, check_item_id: Optional[str] = None) -> bool:
        if self.task_id != task_id:
            return False
        return check_item_id is None or self.check_item_id == check_item_id


class ProxyCard(BaseModel):
    """A card in a triage or done list together with its decoded link."""
    card: Card
    record: LinkRecord
    role: ListRole


def proxy_card_name(task_name: str, item_name: str) -> str:
    return f"[{task_name}] {item_name}"
