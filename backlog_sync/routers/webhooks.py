"""
Webhooks Router - Trello webhook endpoint.

Endpoints:
- HEAD /webhooks/trello - Trello's callback validation request
- GET  /webhooks/trello - Same check, for manual use
- POST /webhooks/trello - Receive one action and dispatch it

Any other method answers 405 (FastAPI's default for a known path).
Dispatch failures inside the sync engine are logged and still answered with
200 so Trello does not keep retrying; only unexpected errors give 500.
"""

import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from backlog_sync.services.dispatcher import WebhookDispatcher
from backlog_sync.shared import get_dispatcher

logger = logging.getLogger(__name__)

# Create router with /webhooks prefix
router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.api_route("/trello", methods=["HEAD", "GET"])
async def trello_webhook_validation() -> Response:
    """Answer Trello's validation request with an empty 200."""
    return Response(status_code=200)


@router.post("/trello")
async def trello_webhook(
    request: Request,
    dispatcher: WebhookDispatcher = Depends(get_dispatcher),
):
    """
    Receive a Trello webhook action.

    The body is dispatched synchronously; Trello allows 30 seconds before it
    treats the delivery as failed.
    """
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Webhook body is not valid JSON")
        return JSONResponse(status_code=400, content={"error": "Body must be JSON"})

    try:
        result = await dispatcher.dispatch(payload)
    except Exception as e:
        logger.exception(f"Webhook dispatch failed: {e}")
        return JSONResponse(status_code=500, content={"error": "Internal error"})

    return {"status": "Webhook received", "dispatch": result.model_dump()}
