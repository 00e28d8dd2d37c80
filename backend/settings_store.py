from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any, Dict

from .settings import Settings

log = logging.getLogger("trancheready.settings")

FILENAME = "settings.json"

# Environment overrides, applied after settings.json
_ENV_OVERRIDES = {
    "APP_ORIGIN": "app_origin",
    "VERIFY_TTL_MIN": "verify_ttl_min",
    "SIGN_PRIVATE_KEY": "sign_private_key",
    "SIGN_PUBLIC_KEY": "sign_public_key",
    "SIGN_KEY_ID": "sign_key_id",
    "MAX_UPLOAD_MB": "max_upload_mb",
    "NARRATIVE_ENABLED": "narrative_enabled",
    "OLLAMA_HOST": "ollama_url",
    "NARRATIVE_MODEL": "narrative_model",
    "LOG_LEVEL": "log_level",
}


def _config_dir() -> Path:
    """Config location: TRANCHEREADY_CONFIG_DIR, else backend/.trancheready/.

    Security note:
      settings.json can contain the manifest signing key. DO NOT commit it to Git.
    """
    env_dir = (os.environ.get("TRANCHEREADY_CONFIG_DIR") or "").strip()
    if env_dir:
        return Path(env_dir).expanduser().resolve()
    return Path(__file__).resolve().parent / ".trancheready"


def _config_path() -> Path:
    return _config_dir() / FILENAME


def _read_settings_file(path: Path) -> dict:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as e:
        # Corrupt file should not take the whole app down.
        log.warning("Ignoring unreadable settings file %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


def _coerce(current: Any, raw: Any) -> Any:
    """Coerce a raw (JSON or env string) value to the type of the default."""
    if isinstance(current, bool):
        if isinstance(raw, bool):
            return raw
        return str(raw).strip().lower() in ("1", "true", "yes", "y", "on")
    if isinstance(current, int):
        return int(raw)
    return str(raw)


def _apply(s: Settings, key: str, raw: Any) -> None:
    try:
        setattr(s, key, _coerce(getattr(s, key), raw))
    except (TypeError, ValueError):
        log.warning("Invalid value for setting %s: %r (keeping %r)", key, raw, getattr(s, key))


def load_settings() -> Settings:
    """Load settings.

    Priority (last wins):
      1) defaults
      2) settings.json in the config dir
      3) environment variables (APP_ORIGIN, SIGN_PRIVATE_KEY, ...)
    """
    s = Settings()
    known = {f.name for f in fields(Settings)}

    for k, v in _read_settings_file(_config_path()).items():
        if k in known:
            _apply(s, k, v)

    for env_name, key in _ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if raw is not None and raw != "":
            _apply(s, key, raw)
    return s


def save_settings(settings: Settings) -> None:
    """Save settings to the config dir."""
    path = _config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")

    data: Dict[str, Any] = asdict(settings)
    # Write atomically (reduce risk of partial writes)
    tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    tmp.replace(path)
