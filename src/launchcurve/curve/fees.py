"""launchcurve.curve.fees

Per-trade fee, tax and limit resolution.

Two skims apply to every trade in a fixed order: the platform fee (basis
points, chosen by profile kind) on the gross amount, then the tax/dev fee
(percent, time-dependent per profile) on what remains. The remainder is what
enters (buy) or leaves (sell) the curve.

Limit schedules are anchored at `limits_start`. Whether limits are lifted is
decided first; once lifted the UNBOUNDED sentinel is returned for both caps.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping

from launchcurve.curve.profiles import (
    AdvancedProfile,
    BasicProfile,
    SuperSimpleProfile,
    TokenProfile,
    ZeroSimpleProfile,
)
from launchcurve.runtime.errors import CurveError

UNBOUNDED = 2**256 - 1

# Post-graduation tax can never exceed this percentage.
MAX_FINAL_TAX = 5

BPS = 10_000


@dataclass(frozen=True)
class FeeSplit:
    gross: int
    platform_fee: int
    dev_fee: int
    net: int


@dataclass(frozen=True)
class FeeSchedule:
    platform_bps: int
    tax_pct: int
    limits_lifted: bool
    max_tx: int
    max_wallet: int

    def to_json(self) -> Dict[str, object]:
        return {
            "platform_bps": self.platform_bps,
            "tax_pct": self.tax_pct,
            "limits_lifted": self.limits_lifted,
            "max_tx": None if self.max_tx == UNBOUNDED else self.max_tx,
            "max_wallet": None if self.max_wallet == UNBOUNDED else self.max_wallet,
        }


def split_fees(amount: int, platform_bps: int, tax_pct: int) -> FeeSplit:
    platform_fee = amount * platform_bps // BPS
    after_platform = amount - platform_fee
    dev_fee = after_platform * tax_pct // 100
    return FeeSplit(gross=amount, platform_fee=platform_fee, dev_fee=dev_fee, net=after_platform - dev_fee)


def _unknown(profile: object) -> CurveError:
    return CurveError("invalid_state", "unknown_profile_kind", {"type": type(profile).__name__})


def _cap(v: int) -> int:
    return UNBOUNDED if v <= 0 else v


def _grown(start: int, step_bps: int, interval: int, elapsed: int) -> int:
    if start <= 0:
        return UNBOUNDED
    return start + start * step_bps * elapsed // (BPS * interval)


class FeeResolver:
    def __init__(self, platform_fee_bps: Mapping[str, int]) -> None:
        self._platform_fee_bps = dict(platform_fee_bps)

    def platform_bps(self, profile: TokenProfile) -> int:
        try:
            return int(self._platform_fee_bps[profile.kind])
        except KeyError:
            raise CurveError("config", "missing_platform_fee", {"kind": profile.kind})

    def current_tax(self, profile: TokenProfile, *, limits_start: int, now: int) -> int:
        elapsed = max(0, int(now) - int(limits_start))
        floor = min(profile.terms.final_tax_rate, MAX_FINAL_TAX)

        if isinstance(profile, BasicProfile):
            if elapsed >= profile.tax_duration:
                return floor
            return profile.starting_tax

        if isinstance(profile, AdvancedProfile):
            decay = elapsed * profile.tax_drop_step // profile.tax_drop_interval
            if decay >= profile.starting_tax:
                return floor
            return max(profile.starting_tax - decay, floor)

        if isinstance(profile, (SuperSimpleProfile, ZeroSimpleProfile)):
            return 0

        raise _unknown(profile)

    def limits_lifted(self, profile: TokenProfile, *, limits_start: int, now: int) -> bool:
        """Basic caps expire after limits_duration (0 keeps them until graduation)."""
        elapsed = max(0, int(now) - int(limits_start))

        if isinstance(profile, BasicProfile):
            if profile.max_tx <= 0 and profile.max_wallet <= 0:
                return True
            return profile.limits_duration > 0 and elapsed >= profile.limits_duration

        if isinstance(profile, AdvancedProfile):
            supply = profile.terms.total_supply
            tx = _grown(profile.starting_max_tx, profile.limit_step_bps, profile.limit_interval, elapsed)
            wallet = _grown(profile.starting_max_wallet, profile.limit_step_bps, profile.limit_interval, elapsed)
            return tx >= supply and wallet >= supply

        if isinstance(profile, SuperSimpleProfile):
            return profile.max_tx <= 0 and profile.max_wallet <= 0

        if isinstance(profile, ZeroSimpleProfile):
            return True

        raise _unknown(profile)

    def max_tx(self, profile: TokenProfile, *, limits_start: int, now: int) -> int:
        if self.limits_lifted(profile, limits_start=limits_start, now=now):
            return UNBOUNDED
        if isinstance(profile, (BasicProfile, SuperSimpleProfile)):
            return _cap(profile.max_tx)
        if isinstance(profile, AdvancedProfile):
            elapsed = max(0, int(now) - int(limits_start))
            return _grown(profile.starting_max_tx, profile.limit_step_bps, profile.limit_interval, elapsed)
        raise _unknown(profile)

    def max_wallet(self, profile: TokenProfile, *, limits_start: int, now: int) -> int:
        if self.limits_lifted(profile, limits_start=limits_start, now=now):
            return UNBOUNDED
        if isinstance(profile, (BasicProfile, SuperSimpleProfile)):
            return _cap(profile.max_wallet)
        if isinstance(profile, AdvancedProfile):
            elapsed = max(0, int(now) - int(limits_start))
            return _grown(profile.starting_max_wallet, profile.limit_step_bps, profile.limit_interval, elapsed)
        raise _unknown(profile)

    def resolve(self, profile: TokenProfile, *, limits_start: int, now: int) -> FeeSchedule:
        lifted = self.limits_lifted(profile, limits_start=limits_start, now=now)
        return FeeSchedule(
            platform_bps=self.platform_bps(profile),
            tax_pct=self.current_tax(profile, limits_start=limits_start, now=now),
            limits_lifted=lifted,
            max_tx=UNBOUNDED if lifted else self.max_tx(profile, limits_start=limits_start, now=now),
            max_wallet=UNBOUNDED if lifted else self.max_wallet(profile, limits_start=limits_start, now=now),
        )
