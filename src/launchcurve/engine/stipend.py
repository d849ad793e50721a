from __future__ import annotations

import logging
from typing import Sequence, Tuple

from launchcurve.external.interfaces import GasOracle
from launchcurve.runtime.event_log import log_event

log = logging.getLogger("launchcurve.stipend")

BPS = 10_000


def gas_units_for(holders: int, *, claim_mode: bool, tiers: Sequence[Tuple[int, int]], claim_mode_gas: int) -> int:
    """Estimated gas for the graduation call. Claim mode skips the airdrop loop."""
    if claim_mode:
        return int(claim_mode_gas)
    for max_holders, gas_units in tiers:
        if holders <= max_holders:
            return int(gas_units)
    return int(tiers[-1][1])


def resolve_gas_price(oracle: GasOracle, *, now: int, max_age: int) -> int:
    price, updated_at = oracle.gas_price()
    if price > 0 and 0 <= now - updated_at <= max_age:
        return int(price)
    base = int(oracle.base_fee())
    log_event(log, "gas_price_fallback", oracle_price=price, updated_at=updated_at, now=now, base_fee=base)
    return base


def gas_stipend(
    *,
    holders: int,
    claim_mode: bool,
    gas_price: int,
    tiers: Sequence[Tuple[int, int]],
    claim_mode_gas: int,
    multiplier_bps: int,
    floor_wei: int,
    cap_wei: int,
) -> int:
    units = gas_units_for(holders, claim_mode=claim_mode, tiers=tiers, claim_mode_gas=claim_mode_gas)
    raw = units * gas_price * multiplier_bps // BPS
    return max(floor_wei, min(raw, cap_wei))
