from __future__ import annotations
from dataclasses import dataclass

# ====== App identity (used by UI + manifests) ======
# NOTE: Name/version are intentionally sourced from this file.
APP_NAME: str = "TrancheReady"
APP_VERSION: str = "1.0.0"
MANIFEST_SCHEMA: str = "trancheready.manifest.v1"

@dataclass
class Settings:
    app_origin: str = "http://localhost:10000"
    # Verify/download links expire after this many minutes
    verify_ttl_min: int = 60
    # Ed25519 keys, base64 (empty = manifests are left unsigned)
    sign_private_key: str = ""
    sign_public_key: str = ""
    sign_key_id: str = "trancheready"
    # Per-file upload limit
    max_upload_mb: int = 25
    # Optional one-sentence client narrative via Ollama
    narrative_enabled: bool = False
    ollama_url: str = ""
    narrative_model: str = "llama3.1:8b"
    log_level: str = "info"
