from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, PlainTextResponse
from fastapi.templating import Jinja2Templates

from backend.settings import APP_NAME, APP_VERSION, Settings
from backend.settings_store import load_settings
from webapp.auth.verify_store import VerifyStore
from webapp.routers.aml import router as aml_router

log = logging.getLogger("trancheready.server")

TEMPLATES = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))


def create_app(settings: Optional[Settings] = None, store: Optional[VerifyStore] = None) -> FastAPI:
    """Build the web app; settings default to settings.json + environment."""
    settings = settings or load_settings()

    app = FastAPI(title=f"{APP_NAME} Web", version=APP_VERSION)
    app.state.settings = settings
    app.state.verify_store = store if store is not None else VerifyStore()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.app_origin],
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
    )

    @app.get("/healthz", response_class=PlainTextResponse)
    def healthz() -> Any:
        return "ok"

    @app.get("/", response_class=HTMLResponse)
    def home(request: Request) -> Any:
        s: Settings = request.app.state.settings
        return TEMPLATES.TemplateResponse(
            request,
            "app.html",
            {
                "app_name": APP_NAME,
                "app_version": APP_VERSION,
                "max_upload_mb": s.max_upload_mb,
                "verify_ttl_min": s.verify_ttl_min,
            },
        )

    app.include_router(aml_router)

    log.info("%s %s ready (origin=%s, signing=%s, narrative=%s)",
             APP_NAME, APP_VERSION, settings.app_origin,
             "on" if settings.sign_private_key else "off",
             "on" if settings.narrative_enabled else "off")
    return app


app = create_app()
