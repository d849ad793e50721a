"""Pydantic request schemas for the market API.

Amounts are integers in smallest units; JSON clients may send them as
decimal strings to avoid float precision loss.

Signed requests carry signer/nonce/sig. Every other non-null field is the
signed payload, with integers rendered as decimal strings.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

_AUTH_FIELDS = {"signer", "nonce", "sig"}


class SignedRequest(BaseModel):
    account: Optional[str] = Field(default=None, description="Acting account when signatures are not required")

    signer: Optional[str] = Field(default=None, description="Hex ed25519 pubkey; also the account address")
    nonce: Optional[int] = Field(default=None, description="Strictly increasing per signer")
    sig: Optional[str] = Field(default=None, description="Hex signature over the canonical request")

    def signed_payload(self) -> Dict[str, Any]:
        raw = self.model_dump(exclude_none=True, exclude=_AUTH_FIELDS)
        return {k: (str(v) if isinstance(v, int) and not isinstance(v, bool) else v) for k, v in raw.items()}


class BuyRequest(SignedRequest):
    eth_in: int = Field(..., gt=0, description="Wei spent on the curve, fees included")
    min_tokens_out: Optional[int] = Field(default=None, ge=0)
    value: Optional[int] = Field(default=None, ge=0, description="Wei attached; the excess over eth_in is refunded")


class SellRequest(SignedRequest):
    amount: int = Field(..., gt=0, description="Token units returned to the curve")
    min_eth_out: Optional[int] = Field(default=None, ge=0)


class GraduateRequest(SignedRequest):
    stipend_recipient: Optional[str] = None
    force: Optional[bool] = None


class ClaimRequest(SignedRequest):
    pass


class SweepClaimsRequest(SignedRequest):
    max_count: Optional[int] = Field(default=None, gt=0)


class FaucetRequest(BaseModel):
    account: str
    amount: int = Field(..., gt=0)


class RegisterTokenRequest(BaseModel):
    token_id: str
    name: str
    symbol: str
    creator: str
    tax_payee: str = ""
    headerless: bool = False
    profile: Dict[str, Any]
    start_time: Optional[int] = None
    limits_start: Optional[int] = None
