"""
Trello Board Repository - httpx implementation
================================================

Implements BoardRepository over the Trello REST API.

Transport policy:
1. Every request goes through an asyncio.Semaphore sized to
   ``TrelloSettings.max_concurrency`` so fan-out never floods the API
2. Every request has a timeout (``TrelloSettings.timeout_seconds``)
3. 429, 5xx and transport failures are retried with exponential backoff
   for GET/PUT/DELETE; POST is only retried when the request provably
   never reached Trello (429 or a connect failure)

Requires: TRELLO_API_KEY and TRELLO_BACKLOG_TOKEN
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from backlog_sync.config import TrelloSettings
from backlog_sync.exceptions import CardNotFoundError, TrelloAPIError
from backlog_sync.models import BoardList, Card, CheckItem, CheckItemState, Checklist
from backlog_sync.services.repository import BoardRepository

logger = logging.getLogger(__name__)


# =============================================================================
# Retry Configuration
# =============================================================================

# Exponential backoff intervals (in seconds) between attempts
BACKOFF_INTERVALS = [0.5, 2.0, 5.0]

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
IDEMPOTENT_METHODS = {"GET", "PUT", "DELETE"}

CARD_FIELDS = "name,desc,idList,idBoard"


class TrelloBoardRepository(BoardRepository):
    """
    Board repository backed by the Trello REST API.

    Usage:
        async with TrelloBoardRepository(load_trello_settings()) as repo:
            lists = await repo.list_lists(board_id)
    """

    def __init__(
        self,
        settings: TrelloSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        backoff_intervals: Optional[List[float]] = None,
    ):
        """
        Initialize the repository.

        Args:
            settings: Credentials, base URL and request limits
            transport: Optional httpx transport (tests pass a MockTransport)
            backoff_intervals: Override the retry delays
        """
        self.settings = settings
        self._semaphore = asyncio.Semaphore(settings.max_concurrency)
        self._backoff = backoff_intervals if backoff_intervals is not None else BACKOFF_INTERVALS
        self._client = httpx.AsyncClient(
            base_url=settings.base_url,
            timeout=settings.timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "TrelloBoardRepository":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def get_backoff_seconds(self, retry_count: int, response: Optional[httpx.Response] = None) -> float:
        """
        Delay before the next attempt.

        Honors a numeric Retry-After header on 429 responses when it asks for
        a longer wait than the schedule.
        """
        if not self._backoff:
            return 0.0
        delay = self._backoff[min(retry_count, len(self._backoff) - 1)]
        if response is not None and response.status_code == 429:
            retry_after = response.headers.get("Retry-After", "")
            if retry_after.isdigit():
                delay = max(delay, float(retry_after))
        return delay

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        query = {"key": self.settings.api_key, "token": self.settings.token}
        if params:
            query.update(params)

        idempotent = method in IDEMPOTENT_METHODS
        attempt = 0

        while True:
            try:
                async with self._semaphore:
                    response = await self._client.request(method, path, params=query, json=json)
            except httpx.TransportError as e:
                never_sent = isinstance(e, (httpx.ConnectError, httpx.ConnectTimeout))
                if (idempotent or never_sent) and attempt < self.settings.max_retries:
                    delay = self.get_backoff_seconds(attempt)
                    logger.warning(f"Trello {method} {path} failed ({e!r}), retrying in {delay}s")
                    await asyncio.sleep(delay)
                    attempt += 1
                    continue
                raise TrelloAPIError(
                    message=f"Request failed: {e!r}",
                    method=method,
                    path=path,
                    original_error=e,
                ) from e

            if response.is_success:
                if not response.content:
                    return None
                return response.json()

            status = response.status_code
            retryable = status == 429 or (idempotent and status in RETRYABLE_STATUS_CODES)
            if retryable and attempt < self.settings.max_retries:
                delay = self.get_backoff_seconds(attempt, response)
                logger.warning(f"Trello {method} {path} returned {status}, retrying in {delay}s")
                await asyncio.sleep(delay)
                attempt += 1
                continue

            logger.error(f"Trello {method} {path} returned {status}: {response.text[:200]}")
            raise TrelloAPIError(
                message=f"{method} {path} returned {status}",
                http_status=status,
                method=method,
                path=path,
                context={"detail": response.text[:200]},
            )

    # -------------------------------------------------------------------------
    # Lists
    # -------------------------------------------------------------------------

    async def list_lists(self, board_id: str) -> List[BoardList]:
        data = await self._request("GET", f"/boards/{board_id}/lists", params={"filter": "open"})
        return [BoardList.model_validate(item) for item in data or []]

    # -------------------------------------------------------------------------
    # Cards
    # -------------------------------------------------------------------------

    async def list_cards(self, list_id: str) -> List[Card]:
        data = await self._request("GET", f"/lists/{list_id}/cards", params={"fields": CARD_FIELDS})
        return [Card.model_validate(item) for item in data or []]

    async def list_board_cards(self, board_id: str) -> List[Card]:
        data = await self._request(
            "GET", f"/boards/{board_id}/cards", params={"filter": "open", "fields": CARD_FIELDS}
        )
        return [Card.model_validate(item) for item in data or []]

    async def get_card(self, card_id: str) -> Card:
        try:
            data = await self._request("GET", f"/cards/{card_id}", params={"fields": CARD_FIELDS})
        except TrelloAPIError as e:
            if e.http_status == 404:
                raise CardNotFoundError(card_id, original_error=e) from e
            raise
        return Card.model_validate(data)

    async def create_card(
        self,
        list_id: str,
        name: str,
        desc: str = "",
        pos: str = "bottom",
    ) -> Card:
        data = await self._request(
            "POST",
            "/cards",
            json={"idList": list_id, "name": name, "desc": desc, "pos": pos},
        )
        card = Card.model_validate(data)
        logger.info(f"Created card {card.id}: {card.name}")
        return card

    async def update_card(
        self,
        card_id: str,
        name: Optional[str] = None,
        desc: Optional[str] = None,
        list_id: Optional[str] = None,
    ) -> Card:
        body: Dict[str, Any] = {}
        if name is not None:
            body["name"] = name
        if desc is not None:
            body["desc"] = desc
        if list_id is not None:
            body["idList"] = list_id

        try:
            data = await self._request("PUT", f"/cards/{card_id}", json=body)
        except TrelloAPIError as e:
            if e.http_status == 404:
                raise CardNotFoundError(card_id, original_error=e) from e
            raise
        return Card.model_validate(data)

    async def delete_card(self, card_id: str) -> None:
        try:
            await self._request("DELETE", f"/cards/{card_id}")
        except TrelloAPIError as e:
            if e.http_status == 404:
                raise CardNotFoundError(card_id, original_error=e) from e
            raise
        logger.info(f"Card {card_id} deleted successfully")

    # -------------------------------------------------------------------------
    # Checklists
    # -------------------------------------------------------------------------

    async def list_checklists(self, card_id: str) -> List[Checklist]:
        data = await self._request("GET", f"/cards/{card_id}/checklists")
        return [Checklist.model_validate(item) for item in data or []]

    async def update_check_item(
        self,
        card_id: str,
        check_item_id: str,
        state: Optional[CheckItemState] = None,
        name: Optional[str] = None,
    ) -> CheckItem:
        body: Dict[str, Any] = {}
        if state is not None:
            body["state"] = CheckItemState(state).value
        if name is not None:
            body["name"] = name

        data = await self._request("PUT", f"/cards/{card_id}/checkItem/{check_item_id}", json=body)
        return CheckItem.model_validate(data)
