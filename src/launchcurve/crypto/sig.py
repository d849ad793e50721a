# src/launchcurve/crypto/sig.py
from __future__ import annotations

import base64
import binascii
import json
from typing import Any, Dict

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

Json = Dict[str, Any]


def _decode_bytes(s: str) -> bytes:
    s = s.strip()
    if not s:
        raise ValueError("empty string")
    try:
        return bytes.fromhex(s)
    except ValueError:
        pass
    try:
        padding = "=" * (-len(s) % 4)
        return base64.b64decode((s + padding).replace("-", "+").replace("_", "/"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("not hex or base64") from e


def canonical_request_message(*, action: str, token: str, signer: str, nonce: int, payload: Json) -> bytes:
    """Bytes covered by a request signature. Amounts in payload are sent as decimal strings."""
    obj: Json = {
        "action": str(action),
        "token": str(token),
        "signer": str(signer),
        "nonce": int(nonce),
        "payload": payload if isinstance(payload, dict) else {},
    }
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def verify_ed25519_signature(*, message: bytes, sig: str, pubkey: str) -> bool:
    try:
        key = Ed25519PublicKey.from_public_bytes(_decode_bytes(pubkey))
        key.verify(_decode_bytes(sig), message)
        return True
    except (InvalidSignature, ValueError):
        return False


def sign_ed25519(*, message: bytes, privkey: str, encoding: str = "hex") -> str:
    """Sign with a 32-byte Ed25519 seed given as hex or base64."""
    seed = _decode_bytes(privkey)
    if len(seed) == 64:
        seed = seed[:32]
    if len(seed) != 32:
        raise ValueError("ed25519 privkey must be a 32-byte seed (or 64-byte expanded key)")

    sig_b = Ed25519PrivateKey.from_private_bytes(seed).sign(message)
    if encoding == "hex":
        return sig_b.hex()
    if encoding in {"b64", "base64"}:
        return base64.b64encode(sig_b).decode("ascii")
    raise ValueError("unsupported encoding")
