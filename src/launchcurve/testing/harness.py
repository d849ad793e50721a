from __future__ import annotations

from dataclasses import replace
from typing import Any, Optional

from launchcurve.curve.profiles import CurveTerms, LP_BURN, TokenProfile, ZeroSimpleProfile
from launchcurve.external.memory import MemoryBank
from launchcurve.ledger.types import TokenMeta
from launchcurve.runtime.boot import Market, build_market
from launchcurve.runtime.config import WEI, EngineConfig, default_engine_config

T0 = 1_700_000_000
SUPPLY = 1_000_000 * WEI


class ManualClock:
    """Deterministic clock for tests; advance() moves time forward."""

    def __init__(self, now: int = T0) -> None:
        self.now = int(now)

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += int(seconds)
        return self.now


def harness_config(**overrides: Any) -> EngineConfig:
    """In-memory, unsigned config with zero platform fees unless overridden."""
    base = replace(
        default_engine_config(),
        mode="test",
        db_path="",
        require_signatures=False,
        platform_fee_bps={"basic": 0, "advanced": 0, "super_simple": 0, "zero_simple": 0},
    )
    return replace(base, **overrides)


def zero_terms(**overrides: Any) -> CurveTerms:
    base = CurveTerms(total_supply=SUPPLY, graduation_cap=800_000 * WEI, lp_disposition=LP_BURN)
    return replace(base, **overrides)


def make_market(cfg: Optional[EngineConfig] = None, *, clock: Optional[ManualClock] = None) -> Market:
    return build_market(cfg or harness_config(), clock=clock or ManualClock())


def register(
    market: Market,
    profile: Optional[TokenProfile] = None,
    *,
    token: str = "tok",
    creator: str = "creator",
    tax_payee: str = "payee",
    created_at: Optional[int] = None,
    start_time: Optional[int] = None,
    headerless: bool = False,
) -> TokenMeta:
    now = int(market.clock())
    meta = TokenMeta(
        token_id=token,
        name=f"{token} token",
        symbol=token.upper(),
        creator=creator,
        tax_payee=tax_payee,
        created_at=now if created_at is None else int(created_at),
        profile=profile or ZeroSimpleProfile(terms=zero_terms()),
        headerless=headerless,
    )
    market.register_token(meta, start_time=now if start_time is None else int(start_time))
    return meta


def bank(market: Market) -> MemoryBank:
    b = market.ext.bank
    if not isinstance(b, MemoryBank):
        raise TypeError("harness expects the in-memory bank")
    return b


def fund(market: Market, account: str, amount: int) -> None:
    bank(market).credit(account, amount)
