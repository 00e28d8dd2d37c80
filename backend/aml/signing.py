"""Ed25519 detached signatures for evidence manifests.

Keys travel as base64 strings (environment / settings.json).  A private key
may be either the 32-byte RFC 8032 seed or the 64-byte NaCl secret key
(seed followed by the public key) that tweetnacl-style tooling emits.

Ed25519 signatures are deterministic: the same key and message always give
the same 64-byte signature.
"""

from __future__ import annotations

import base64
import binascii
from typing import Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

__all__ = [
    "SigningError",
    "load_private_key",
    "sign_bytes",
    "verify_signature",
    "generate_ed25519_keypair",
    "public_key_b64",
]

SEED_LENGTH = 32
NACL_SECRET_LENGTH = 64
PUBLIC_KEY_LENGTH = 32
SIGNATURE_LENGTH = 64


class SigningError(RuntimeError):
    pass


def _b64decode(value: str, what: str) -> bytes:
    try:
        return base64.b64decode(value.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise SigningError(f"{what} is not valid base64: {e}") from e


def load_private_key(private_key_b64: str) -> ed25519.Ed25519PrivateKey:
    """Decode a base64 seed (32 bytes) or NaCl secret key (64 bytes)."""
    raw = _b64decode(private_key_b64, "Private key")
    if len(raw) == NACL_SECRET_LENGTH:
        seed = raw[:SEED_LENGTH]
        key = ed25519.Ed25519PrivateKey.from_private_bytes(seed)
        # The tail of a NaCl secret key is its public key; refuse mismatched pairs.
        if _raw_public(key) != raw[SEED_LENGTH:]:
            raise SigningError("NaCl secret key: embedded public key does not match seed")
        return key
    if len(raw) != SEED_LENGTH:
        raise SigningError(
            f"Private key must be {SEED_LENGTH} or {NACL_SECRET_LENGTH} bytes, got {len(raw)}"
        )
    return ed25519.Ed25519PrivateKey.from_private_bytes(raw)


def _raw_public(key: ed25519.Ed25519PrivateKey) -> bytes:
    return key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def public_key_b64(private_key_b64: str) -> str:
    """Public half of a configured private key, base64."""
    return base64.b64encode(_raw_public(load_private_key(private_key_b64))).decode("ascii")


def sign_bytes(private_key_b64: str, data: bytes) -> str:
    """Sign data and return the 64-byte signature as base64.

    Raises:
        SigningError: if the key cannot be decoded.
    """
    key = load_private_key(private_key_b64)
    return base64.b64encode(key.sign(data)).decode("ascii")


def verify_signature(public_key_b64: str, data: bytes, signature_b64: str) -> bool:
    """Verify a detached signature.

    A wrong signature or tampered data returns False.  Only malformed input
    (bad base64, wrong key/signature length) raises SigningError.
    """
    public = _b64decode(public_key_b64, "Public key")
    signature = _b64decode(signature_b64, "Signature")
    if len(public) != PUBLIC_KEY_LENGTH:
        raise SigningError(f"Public key must be {PUBLIC_KEY_LENGTH} bytes, got {len(public)}")
    if len(signature) != SIGNATURE_LENGTH:
        raise SigningError(f"Signature must be {SIGNATURE_LENGTH} bytes, got {len(signature)}")

    try:
        ed25519.Ed25519PublicKey.from_public_bytes(public).verify(signature, data)
    except InvalidSignature:
        return False
    return True


def generate_ed25519_keypair() -> Tuple[str, str]:
    """Generate a (private seed, public key) pair, both base64.

    For tests and first-time setup; production keys are managed externally.
    """
    key = ed25519.Ed25519PrivateKey.generate()
    seed = key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return (
        base64.b64encode(seed).decode("ascii"),
        base64.b64encode(_raw_public(key)).decode("ascii"),
    )
