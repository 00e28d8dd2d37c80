#!/usr/bin/env python3
from __future__ import annotations

import os

import uvicorn

from backend.settings_store import load_settings


def main() -> None:
    host = os.environ.get("TRANCHEREADY_HOST") or "0.0.0.0"
    port = int(os.environ.get("TRANCHEREADY_PORT") or os.environ.get("PORT") or "10000")
    settings = load_settings()
    uvicorn.run("webapp.server:app", host=host, port=port, log_level=settings.log_level.lower())

if __name__ == "__main__":
    main()
