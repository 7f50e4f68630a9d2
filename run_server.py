#!/usr/bin/env python3
"""
Start the Backlog Sync FastAPI server.

Loads .env from the project root, then hands off to uvicorn.
"""

import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

project_root = Path(__file__).parent


if __name__ == "__main__":
    env_path = project_root / ".env"
    load_dotenv(dotenv_path=env_path, override=True)

    # Get configuration
    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("PORT") or os.getenv("API_PORT", "8001"))
    reload = os.getenv("UVICORN_RELOAD", "false").lower() == "true"

    print(f"Starting server on {host}:{port}")

    uvicorn.run(
        "backlog_sync.server:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info"
    )
