from __future__ import annotations

import threading
from typing import Dict

from launchcurve.api.errors import ApiError
from launchcurve.api.schemas import SignedRequest
from launchcurve.crypto.sig import canonical_request_message, verify_ed25519_signature


class NonceBook:
    """Highest accepted nonce per signer; a request must exceed it."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last: Dict[str, int] = {}

    def last(self, signer: str) -> int:
        with self._lock:
            return int(self._last.get(signer, 0))

    def consume(self, signer: str, nonce: int) -> None:
        with self._lock:
            last = int(self._last.get(signer, 0))
            if nonce <= last:
                raise ApiError.forbidden("stale_nonce", "nonce must increase", {"last": last, "nonce": nonce})
            self._last[signer] = int(nonce)


def resolve_account(
    body: SignedRequest,
    *,
    action: str,
    token: str,
    require_signatures: bool,
    nonces: NonceBook,
) -> str:
    """Acting account for a mutating request.

    With signatures required, the verified signer is the account and any
    `account` field must match it. Otherwise `account` is taken as given.
    """
    if not require_signatures:
        account = (body.account or body.signer or "").strip()
        if not account:
            raise ApiError.bad_request("missing_account", "account is required", {})
        return account

    if not body.signer or body.nonce is None or not body.sig:
        raise ApiError.forbidden("missing_signature", "signer, nonce and sig are required", {})
    if body.account and body.account != body.signer:
        raise ApiError.forbidden("account_mismatch", "account must equal signer", {})

    msg = canonical_request_message(
        action=action,
        token=token,
        signer=body.signer,
        nonce=int(body.nonce),
        payload=body.signed_payload(),
    )
    if not verify_ed25519_signature(message=msg, sig=body.sig, pubkey=body.signer):
        raise ApiError.forbidden("invalid_signature", "signature does not verify", {"signer": body.signer})

    nonces.consume(body.signer, int(body.nonce))
    return body.signer
