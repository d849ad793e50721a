"""launchcurve.curve.profiles

Token profiles: a tagged union of four immutable record types.

Every profile carries the same CurveTerms (supply, graduation cap, final tax,
LP disposition) plus its own tax/limit schedule:

  - BasicProfile        static tax that flips to the final rate after a
                        duration; static caps with their own expiry
  - AdvancedProfile     tax decays by a step per interval toward the final
                        rate; caps grow by a step per interval until lifted
  - SuperSimpleProfile  no tax; static caps that are never lifted
  - ZeroSimpleProfile   no tax; no caps

Profiles are stored in the curve ledger as JSON with a "kind" tag.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Union

from launchcurve.runtime.errors import CurveError

Json = Dict[str, Any]

LP_LOCK = "lock"
LP_BURN = "burn"


@dataclass(frozen=True)
class CurveTerms:
    total_supply: int
    graduation_cap: int
    final_tax_rate: int = 0
    lp_disposition: str = LP_LOCK
    lock_duration: int = 0

    @property
    def burns_liquidity(self) -> bool:
        return self.lp_disposition == LP_BURN


@dataclass(frozen=True)
class BasicProfile:
    kind: ClassVar[str] = "basic"

    terms: CurveTerms
    starting_tax: int = 0
    tax_duration: int = 0
    max_tx: int = 0
    max_wallet: int = 0
    limits_duration: int = 0


@dataclass(frozen=True)
class AdvancedProfile:
    kind: ClassVar[str] = "advanced"

    terms: CurveTerms
    starting_tax: int = 0
    tax_drop_step: int = 0
    tax_drop_interval: int = 1
    starting_max_tx: int = 0
    starting_max_wallet: int = 0
    limit_step_bps: int = 0
    limit_interval: int = 1


@dataclass(frozen=True)
class SuperSimpleProfile:
    kind: ClassVar[str] = "super_simple"

    terms: CurveTerms
    max_tx: int = 0
    max_wallet: int = 0


@dataclass(frozen=True)
class ZeroSimpleProfile:
    kind: ClassVar[str] = "zero_simple"

    terms: CurveTerms


TokenProfile = Union[BasicProfile, AdvancedProfile, SuperSimpleProfile, ZeroSimpleProfile]


def _int(d: Json, key: str, default: int = 0) -> int:
    v = d.get(key, default)
    if isinstance(v, bool):
        raise CurveError("invalid_payload", "bad_profile_field", {"field": key})
    try:
        return int(v)
    except (TypeError, ValueError):
        raise CurveError("invalid_payload", "bad_profile_field", {"field": key, "value": v})


def _terms_from_json(d: Json) -> CurveTerms:
    return CurveTerms(
        total_supply=_int(d, "total_supply"),
        graduation_cap=_int(d, "graduation_cap"),
        final_tax_rate=_int(d, "final_tax_rate"),
        lp_disposition=str(d.get("lp_disposition") or LP_LOCK).strip().lower(),
        lock_duration=_int(d, "lock_duration"),
    )


def _terms_to_json(t: CurveTerms) -> Json:
    return {
        "total_supply": t.total_supply,
        "graduation_cap": t.graduation_cap,
        "final_tax_rate": t.final_tax_rate,
        "lp_disposition": t.lp_disposition,
        "lock_duration": t.lock_duration,
    }


def profile_from_json(d: Any) -> TokenProfile:
    if not isinstance(d, dict):
        raise CurveError("invalid_payload", "profile_not_object", {})
    kind = str(d.get("kind") or "").strip().lower()
    terms = _terms_from_json(d)

    if kind == BasicProfile.kind:
        return BasicProfile(
            terms=terms,
            starting_tax=_int(d, "starting_tax"),
            tax_duration=_int(d, "tax_duration"),
            max_tx=_int(d, "max_tx"),
            max_wallet=_int(d, "max_wallet"),
            limits_duration=_int(d, "limits_duration"),
        )
    if kind == AdvancedProfile.kind:
        return AdvancedProfile(
            terms=terms,
            starting_tax=_int(d, "starting_tax"),
            tax_drop_step=_int(d, "tax_drop_step"),
            tax_drop_interval=_int(d, "tax_drop_interval", 1),
            starting_max_tx=_int(d, "starting_max_tx"),
            starting_max_wallet=_int(d, "starting_max_wallet"),
            limit_step_bps=_int(d, "limit_step_bps"),
            limit_interval=_int(d, "limit_interval", 1),
        )
    if kind == SuperSimpleProfile.kind:
        return SuperSimpleProfile(terms=terms, max_tx=_int(d, "max_tx"), max_wallet=_int(d, "max_wallet"))
    if kind == ZeroSimpleProfile.kind:
        return ZeroSimpleProfile(terms=terms)

    raise CurveError("invalid_payload", "unknown_profile_kind", {"kind": kind})


def profile_to_json(p: TokenProfile) -> Json:
    out: Json = {"kind": p.kind}
    out.update(_terms_to_json(p.terms))

    if isinstance(p, BasicProfile):
        out.update(
            starting_tax=p.starting_tax,
            tax_duration=p.tax_duration,
            max_tx=p.max_tx,
            max_wallet=p.max_wallet,
            limits_duration=p.limits_duration,
        )
    elif isinstance(p, AdvancedProfile):
        out.update(
            starting_tax=p.starting_tax,
            tax_drop_step=p.tax_drop_step,
            tax_drop_interval=p.tax_drop_interval,
            starting_max_tx=p.starting_max_tx,
            starting_max_wallet=p.starting_max_wallet,
            limit_step_bps=p.limit_step_bps,
            limit_interval=p.limit_interval,
        )
    elif isinstance(p, SuperSimpleProfile):
        out.update(max_tx=p.max_tx, max_wallet=p.max_wallet)
    elif not isinstance(p, ZeroSimpleProfile):
        raise CurveError("invalid_payload", "unknown_profile_kind", {"type": type(p).__name__})
    return out


def validate_profile(p: TokenProfile) -> None:
    """Creation-time checks. The final tax ceiling is enforced at graduation."""
    t = p.terms
    if t.total_supply <= 0:
        raise CurveError("invalid_payload", "bad_total_supply", {"total_supply": t.total_supply})
    if not 0 < t.graduation_cap < t.total_supply:
        raise CurveError("invalid_payload", "bad_graduation_cap", {"graduation_cap": t.graduation_cap})
    if not 0 <= t.final_tax_rate <= 100:
        raise CurveError("invalid_payload", "bad_final_tax_rate", {"final_tax_rate": t.final_tax_rate})
    if t.lp_disposition not in (LP_LOCK, LP_BURN):
        raise CurveError("invalid_payload", "bad_lp_disposition", {"lp_disposition": t.lp_disposition})
    if t.lp_disposition == LP_LOCK and t.lock_duration <= 0:
        raise CurveError("invalid_payload", "bad_lock_duration", {"lock_duration": t.lock_duration})

    if isinstance(p, (BasicProfile, AdvancedProfile)):
        if not 0 <= p.starting_tax < 100:
            raise CurveError("invalid_payload", "bad_starting_tax", {"starting_tax": p.starting_tax})
    if isinstance(p, AdvancedProfile):
        if p.tax_drop_interval <= 0 or p.limit_interval <= 0:
            raise CurveError("invalid_payload", "bad_interval", {})
        if p.tax_drop_step < 0 or p.limit_step_bps < 0:
            raise CurveError("invalid_payload", "bad_step", {})
    if isinstance(p, BasicProfile) and (p.tax_duration < 0 or p.limits_duration < 0):
        raise CurveError("invalid_payload", "bad_duration", {})
