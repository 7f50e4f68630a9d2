"""
Backlog Router - manual backlog maintenance.

Endpoints:
- POST /backlog/rebuild         - Delete and recreate every proxy on a board
- GET  /backlog/lists/{board_id} - Show which configured triage lists exist

The rebuild endpoint replaces the "Backlog All!" board button: it is the one
synchronous path, so a missing list is reported to the caller (404) before
anything on the board is touched.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from backlog_sync.exceptions import BacklogSyncError
from backlog_sync.models import BoardList
from backlog_sync.services.list_resolver import ListResolver, normalize_list_name
from backlog_sync.services.reconciler import BulkReconciler, RebuildReport
from backlog_sync.shared import get_list_resolver, get_reconciler

logger = logging.getLogger(__name__)

# Create router with /backlog prefix
router = APIRouter(prefix="/backlog", tags=["backlog"])


# =============================================================================
# Request/Response Models
# =============================================================================

class RebuildRequest(BaseModel):
    """Request body for /backlog/rebuild."""
    board_id: str = Field(..., min_length=1, description="Trello board id")


class TriageListsResponse(BaseModel):
    board_id: str
    lists: List[BoardList] = Field(default_factory=list)
    missing: List[str] = Field(default_factory=list)


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/rebuild", response_model=RebuildReport)
async def rebuild_backlog(
    request: RebuildRequest,
    reconciler: BulkReconciler = Depends(get_reconciler),
) -> RebuildReport:
    """
    Rebuild all proxy cards on a board.

    Not safe to run while webhooks are being processed for the same board.
    """
    try:
        return await reconciler.rebuild(request.board_id)
    except BacklogSyncError as e:
        logger.error(f"Backlog rebuild failed for board {request.board_id}: {e}")
        raise HTTPException(status_code=e.status_code, detail=e.to_dict()) from e


@router.get("/lists/{board_id}", response_model=TriageListsResponse)
async def triage_lists(
    board_id: str,
    resolver: ListResolver = Depends(get_list_resolver),
) -> TriageListsResponse:
    """Resolve every configured triage and done list name on a board."""
    names = resolver.config.all_list_names
    try:
        found = await resolver.resolve(board_id, names)
    except BacklogSyncError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict()) from e

    found_names = {normalize_list_name(board_list.name) for board_list in found}
    missing = [name for name in names if normalize_list_name(name) not in found_names]
    return TriageListsResponse(board_id=board_id, lists=found, missing=missing)
