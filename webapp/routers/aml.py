"""AML evidence router for TrancheReady.

Endpoints:
- POST /upload              - clients.csv + transactions.csv → scores + evidence links
- GET  /verify/{token}      - human-readable manifest / signature check
- GET  /api/verify/{token}  - same, as JSON
- GET  /download/{token}    - evidence zip
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import APIRouter, File, Request, UploadFile
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from fastapi.templating import Jinja2Templates
from starlette.concurrency import run_in_threadpool

from backend.aml.bundle import BUNDLE_FILENAME, read_zip
from backend.aml.csv_reader import CSVParseError
from backend.aml.llm_analysis import narrator_from_settings
from backend.aml.manifest import verify_manifest
from backend.aml.pipeline import MANIFEST_NAME, run_aml_pipeline
from backend.aml.signing import SigningError, public_key_b64
from backend.settings import APP_NAME, APP_VERSION, Settings
from webapp.auth.verify_store import VerifyEntry, VerifyStore, new_token

log = logging.getLogger("trancheready.api.aml")

router = APIRouter()
TEMPLATES = Jinja2Templates(directory=str(Path(__file__).resolve().parents[1] / "templates"))

NOT_FOUND = "Link expired or not found."
MISSING_FILES = "Both Clients.csv and Transactions.csv are required."


def _settings(request: Request) -> Settings:
    return request.app.state.settings


def _store(request: Request) -> VerifyStore:
    return request.app.state.verify_store


def _link(settings: Settings, path: str) -> str:
    return f"{settings.app_origin.rstrip('/')}{path}"


def _verification_key(settings: Settings) -> str:
    """Configured public key, or the public half of the signing key."""
    if settings.sign_public_key:
        return settings.sign_public_key
    if settings.sign_private_key:
        try:
            return public_key_b64(settings.sign_private_key)
        except SigningError as e:
            log.warning("Cannot derive public key: %s", e)
    return ""


def _check(entry: VerifyEntry, settings: Settings) -> Dict[str, Any]:
    files = read_zip(entry.zip_bytes)
    files.pop(MANIFEST_NAME, None)
    return verify_manifest(entry.manifest, files, _verification_key(settings) or None).to_dict()


async def _read_limited(upload: UploadFile, limit: int) -> Optional[bytes]:
    """File contents, or None when larger than limit bytes."""
    data = await upload.read(limit + 1)
    return None if len(data) > limit else data


# ============================================================
# UPLOAD
# ============================================================

@router.post("/upload")
async def upload(
    request: Request,
    clients: Optional[UploadFile] = File(None),
    transactions: Optional[UploadFile] = File(None),
):
    """Run the evidence pipeline on two CSV uploads and park the bundle."""
    settings = _settings(request)
    if clients is None or transactions is None:
        return JSONResponse({"error": MISSING_FILES}, status_code=400)

    limit = settings.max_upload_mb * 1024 * 1024
    clients_csv = await _read_limited(clients, limit)
    transactions_csv = await _read_limited(transactions, limit)
    if clients_csv is None or transactions_csv is None:
        return JSONResponse({"error": f"Each file must be at most {settings.max_upload_mb} MB."},
                            status_code=413)

    try:
        bundle = await run_in_threadpool(
            run_aml_pipeline,
            clients_csv,
            transactions_csv,
            settings=settings,
            narrator=narrator_from_settings(settings),
        )
    except CSVParseError as e:
        log.warning("Rejected upload: %s", e)
        return JSONResponse({"error": f"Could not parse CSV: {e}"}, status_code=400)
    except Exception:
        log.exception("AML pipeline error")
        return JSONResponse({"error": "Processing failed."}, status_code=500)

    token = new_token()
    entry = _store(request).put(token, bundle.zip_bytes, bundle.manifest, settings.verify_ttl_min)

    return JSONResponse({
        "ok": True,
        "risk": bundle.risk(),
        "cases": bundle.cases,
        "rejects": bundle.rejects,
        "verify_url": _link(settings, f"/verify/{token}"),
        "download_url": _link(settings, f"/download/{token}"),
        "expires_at": entry.expires_at.isoformat(),
    })


# ============================================================
# VERIFY / DOWNLOAD
# ============================================================

@router.get("/verify/{token}")
async def verify_page(request: Request, token: str):
    entry = _store(request).get(token)
    if entry is None:
        return PlainTextResponse(NOT_FOUND, status_code=404)
    settings = _settings(request)
    return TEMPLATES.TemplateResponse(
        request,
        "verify.html",
        {
            "app_name": APP_NAME,
            "app_version": APP_VERSION,
            "manifest": entry.manifest,
            "check": _check(entry, settings),
            "public_key": _verification_key(settings),
            "expires_at": entry.expires_at.isoformat(),
            "download_url": _link(settings, f"/download/{token}"),
        },
    )


@router.get("/api/verify/{token}")
async def verify_api(request: Request, token: str):
    entry = _store(request).get(token)
    if entry is None:
        return JSONResponse({"error": NOT_FOUND}, status_code=404)
    settings = _settings(request)
    return JSONResponse({
        "manifest": entry.manifest,
        "check": _check(entry, settings),
        "public_key": _verification_key(settings),
        "expires_at": entry.expires_at.isoformat(),
    })


@router.get("/download/{token}")
async def download(request: Request, token: str):
    entry = _store(request).get(token)
    if entry is None:
        return PlainTextResponse(NOT_FOUND, status_code=404)
    return Response(
        entry.zip_bytes,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{BUNDLE_FILENAME}"'},
    )
