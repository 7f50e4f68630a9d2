"""
Router package for FastAPI endpoints.

- webhooks: Trello webhook receiver
- backlog: manual rebuild and list diagnostics
"""

from .webhooks import router as webhooks_router
from .backlog import router as backlog_router

__all__ = [
    "webhooks_router",
    "backlog_router",
]
