"""launchcurve.ledger.types

Typed views over the JSON records kept by the curve ledger.

The ledger persists plain dicts; these dataclasses are parsed on read and
serialized on write so engine code never touches raw keys.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from launchcurve.curve.profiles import TokenProfile, profile_from_json, profile_to_json

Json = Dict[str, Any]


def _coerce_int(v: Any, *, field: str) -> int:
    # bool is an int subclass; disallow it explicitly
    if isinstance(v, bool):
        raise ValueError(f"ledger schema error: field '{field}' must be int (got bool)")
    try:
        return int(v)
    except (TypeError, ValueError) as e:
        raise ValueError(f"ledger schema error: field '{field}' must be int-coercible (got {type(v).__name__})") from e


def _coerce_str(v: Any) -> str:
    return str(v).strip() if v is not None else ""


@dataclass(frozen=True)
class TokenMeta:
    token_id: str
    name: str
    symbol: str
    creator: str
    tax_payee: str
    created_at: int
    profile: TokenProfile
    headerless: bool = False

    @property
    def is_tax(self) -> bool:
        return self.profile.terms.final_tax_rate > 0

    def to_json(self) -> Json:
        return {
            "token_id": self.token_id,
            "name": self.name,
            "symbol": self.symbol,
            "creator": self.creator,
            "tax_payee": self.tax_payee,
            "created_at": int(self.created_at),
            "headerless": bool(self.headerless),
            "profile": profile_to_json(self.profile),
        }

    @classmethod
    def from_json(cls, d: Json) -> "TokenMeta":
        return cls(
            token_id=_coerce_str(d.get("token_id")),
            name=_coerce_str(d.get("name")),
            symbol=_coerce_str(d.get("symbol")),
            creator=_coerce_str(d.get("creator")),
            tax_payee=_coerce_str(d.get("tax_payee")),
            created_at=_coerce_int(d.get("created_at", 0), field="created_at"),
            headerless=bool(d.get("headerless", False)),
            profile=profile_from_json(d.get("profile")),
        )


@dataclass(frozen=True)
class RuntimeState:
    eth_pool: int = 0
    circulating_supply: int = 0
    graduated: bool = False
    start_time: int = 0
    limits_start: int = 0

    def to_json(self) -> Json:
        return {
            "eth_pool": int(self.eth_pool),
            "circulating_supply": int(self.circulating_supply),
            "graduated": bool(self.graduated),
            "start_time": int(self.start_time),
            "limits_start": int(self.limits_start),
        }

    @classmethod
    def from_json(cls, d: Json) -> "RuntimeState":
        return cls(
            eth_pool=_coerce_int(d.get("eth_pool", 0), field="eth_pool"),
            circulating_supply=_coerce_int(d.get("circulating_supply", 0), field="circulating_supply"),
            graduated=bool(d.get("graduated", False)),
            start_time=_coerce_int(d.get("start_time", 0), field="start_time"),
            limits_start=_coerce_int(d.get("limits_start", 0), field="limits_start"),
        )


@dataclass(frozen=True)
class TokenStats:
    buy_count: int = 0
    sell_count: int = 0
    volume_eth: int = 0
    unique_buyers: int = 0
    last_trade_at: int = 0

    def to_json(self) -> Json:
        return {
            "buy_count": self.buy_count,
            "sell_count": self.sell_count,
            "volume_eth": self.volume_eth,
            "unique_buyers": self.unique_buyers,
            "last_trade_at": self.last_trade_at,
        }

    @classmethod
    def from_json(cls, d: Json) -> "TokenStats":
        return cls(**{k: _coerce_int(d.get(k, 0), field=k) for k in cls.__dataclass_fields__})


@dataclass(frozen=True)
class GraduationRecord:
    real_token: str
    lp_token: str
    liquidity: int
    lp_disposition: str
    lock_id: Optional[str] = None
    claim_mode: bool = False
    claim_cursor: int = 0
    buy_burn_tokens: int = 0
    tokens_burned: int = 0
    stipend: int = 0
    stipend_recipient: str = ""
    graduated_at: int = 0

    def to_json(self) -> Json:
        return {
            "real_token": self.real_token,
            "lp_token": self.lp_token,
            "liquidity": self.liquidity,
            "lp_disposition": self.lp_disposition,
            "lock_id": self.lock_id,
            "claim_mode": self.claim_mode,
            "claim_cursor": self.claim_cursor,
            "buy_burn_tokens": self.buy_burn_tokens,
            "tokens_burned": self.tokens_burned,
            "stipend": self.stipend,
            "stipend_recipient": self.stipend_recipient,
            "graduated_at": self.graduated_at,
        }

    @classmethod
    def from_json(cls, d: Json) -> "GraduationRecord":
        return cls(
            real_token=_coerce_str(d.get("real_token")),
            lp_token=_coerce_str(d.get("lp_token")),
            liquidity=_coerce_int(d.get("liquidity", 0), field="liquidity"),
            lp_disposition=_coerce_str(d.get("lp_disposition")),
            lock_id=d.get("lock_id"),
            claim_mode=bool(d.get("claim_mode", False)),
            claim_cursor=_coerce_int(d.get("claim_cursor", 0), field="claim_cursor"),
            buy_burn_tokens=_coerce_int(d.get("buy_burn_tokens", 0), field="buy_burn_tokens"),
            tokens_burned=_coerce_int(d.get("tokens_burned", 0), field="tokens_burned"),
            stipend=_coerce_int(d.get("stipend", 0), field="stipend"),
            stipend_recipient=_coerce_str(d.get("stipend_recipient")),
            graduated_at=_coerce_int(d.get("graduated_at", 0), field="graduated_at"),
        )
