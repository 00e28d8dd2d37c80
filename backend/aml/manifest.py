"""Evidence manifest: SHA-256 inventory of the bundle, optionally signed.

The signature covers the compact JSON of ``{files, created_utc, ruleset_id}``
(in that key order), so a verifier only needs the manifest and the public
key to check that the file list was issued by us, and the files themselves
to check that none was altered.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from ..settings import APP_VERSION, MANIFEST_SCHEMA
from .signing import SigningError, sign_bytes, verify_signature

log = logging.getLogger("trancheready.aml.manifest")

HASH_ALGO = "sha256"
SIGNATURE_ALG = "ed25519"
DEFAULT_KEY_ID = "trancheready"
DEFAULT_RULESET_ID = "dnfbp-starter"


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def file_entries(named_files: Mapping[str, bytes]) -> List[Dict[str, Any]]:
    """[{name, bytes, sha256}] in mapping order."""
    return [
        {"name": name, "bytes": len(content), "sha256": sha256_hex(content)}
        for name, content in named_files.items()
    ]


def signing_payload(manifest: Mapping[str, Any]) -> bytes:
    """Canonical bytes covered by the detached signature."""
    body = {
        "files": manifest.get("files", []),
        "created_utc": manifest.get("created_utc"),
        "ruleset_id": manifest.get("ruleset_id"),
    }
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def build_manifest(
    named_files: Mapping[str, bytes],
    rules_meta: Optional[Mapping[str, Any]] = None,
    *,
    signing_key: Optional[str] = None,
    key_id: str = DEFAULT_KEY_ID,
    created_utc: Optional[str] = None,
) -> Dict[str, Any]:
    """Hash every artifact and assemble the manifest.

    Args:
        named_files: artifact name -> content (manifest.json itself excluded)
        rules_meta: ruleset metadata ({id, sources, ...})
        signing_key: base64 Ed25519 private key; None/empty = unsigned
        key_id: identifier published alongside the signature
        created_utc: override the creation timestamp (tests, replays)

    Signing problems are logged and leave the manifest unsigned; an unsigned
    manifest is complete and valid.
    """
    meta = rules_meta or {}
    manifest: Dict[str, Any] = {
        "schema": MANIFEST_SCHEMA,
        "created_utc": created_utc or utc_timestamp(),
        "app_version": APP_VERSION,
        "ruleset_id": meta.get("id") or DEFAULT_RULESET_ID,
        "hash_algo": HASH_ALGO,
        "files": file_entries(named_files),
        "sources": dict(meta.get("sources") or {}),
    }

    if signing_key:
        try:
            signature = sign_bytes(signing_key, signing_payload(manifest))
        except Exception as e:
            log.warning("Manifest left unsigned: %s", e)
        else:
            manifest["signing"] = {"alg": SIGNATURE_ALG, "key_id": key_id, "signature": signature}

    log.info("Manifest built: %d files, signed=%s", len(manifest["files"]), "signing" in manifest)
    return manifest


@dataclass
class ManifestCheck:
    """Outcome of re-checking a manifest against files and a public key."""

    hashes_ok: bool = True
    mismatched: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    signed: bool = False
    signature_ok: Optional[bool] = None   # None = not checked (unsigned or no key)
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.hashes_ok and self.signature_ok is not False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "hashes_ok": self.hashes_ok,
            "mismatched": self.mismatched,
            "missing": self.missing,
            "signed": self.signed,
            "signature_ok": self.signature_ok,
            "error": self.error,
        }


def verify_manifest(
    manifest: Mapping[str, Any],
    named_files: Optional[Mapping[str, bytes]] = None,
    public_key: Optional[str] = None,
) -> ManifestCheck:
    """Re-hash supplied files and check the signature when a key is given."""
    check = ManifestCheck()

    if named_files is not None:
        for entry in manifest.get("files", []):
            name = entry.get("name")
            if name not in named_files:
                check.missing.append(name)
                continue
            content = named_files[name]
            if len(content) != entry.get("bytes") or sha256_hex(content) != entry.get("sha256"):
                check.mismatched.append(name)
        check.hashes_ok = not check.mismatched and not check.missing

    signing = manifest.get("signing")
    check.signed = bool(signing)
    if signing and public_key:
        try:
            check.signature_ok = verify_signature(
                public_key, signing_payload(manifest), str(signing.get("signature", "")),
            )
        except SigningError as e:
            check.signature_ok = False
            check.error = str(e)
    return check
