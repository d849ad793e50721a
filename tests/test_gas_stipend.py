from __future__ import annotations

import logging

import pytest

from launchcurve.engine.stipend import gas_stipend, gas_units_for, resolve_gas_price
from launchcurve.external.memory import StaticGasOracle
from launchcurve.runtime.config import WEI, default_engine_config
from launchcurve.testing.harness import T0, fund, make_market, register

CFG = default_engine_config()
GWEI = 10**9


def _stipend(holders: int, gas_price: int, *, claim_mode: bool = False) -> int:
    return gas_stipend(
        holders=holders,
        claim_mode=claim_mode,
        gas_price=gas_price,
        tiers=CFG.stipend_gas_tiers,
        claim_mode_gas=CFG.stipend_claim_mode_gas,
        multiplier_bps=CFG.stipend_multiplier_bps,
        floor_wei=CFG.stipend_floor_wei,
        cap_wei=CFG.stipend_cap_wei,
    )


@pytest.mark.parametrize(
    "holders,units",
    [(0, 3_000_000), (50, 3_000_000), (51, 6_000_000), (300, 12_000_000), (10_000, 12_000_000)],
)
def test_gas_units_follow_holder_tiers(holders: int, units: int) -> None:
    assert gas_units_for(holders, claim_mode=False, tiers=CFG.stipend_gas_tiers, claim_mode_gas=1) == units


def test_claim_mode_uses_flat_gas() -> None:
    assert gas_units_for(10_000, claim_mode=True, tiers=CFG.stipend_gas_tiers, claim_mode_gas=2_500_000) == 2_500_000


def test_stipend_is_clamped() -> None:
    assert _stipend(1, GWEI) == 36 * 10**14
    assert _stipend(1, 1) == CFG.stipend_floor_wei
    assert _stipend(300, 1000 * GWEI) == CFG.stipend_cap_wei


def test_stale_gas_price_falls_back_to_base_fee(caplog: pytest.LogCaptureFixture) -> None:
    oracle = StaticGasOracle(price=5 * GWEI, updated_at=T0 - 10_000, base_fee=2 * GWEI)

    with caplog.at_level(logging.INFO, logger="launchcurve.stipend"):
        price = resolve_gas_price(oracle, now=T0, max_age=3600)

    assert price == 2 * GWEI
    assert "gas_price_fallback" in caplog.text
    assert _stipend(1, price) == 72 * 10**14

    oracle.set(5 * GWEI, T0)
    assert resolve_gas_price(oracle, now=T0, max_age=3600) == 5 * GWEI

    oracle.set(0, T0)
    assert resolve_gas_price(oracle, now=T0, max_age=3600) == 2 * GWEI


def test_graduation_pays_fallback_stipend() -> None:
    m = make_market()
    register(m)
    fund(m, "alice", 10 * WEI)
    m.ext.gas_oracle.set(5 * GWEI, T0 - 10_000)
    m.ext.gas_oracle.set_base_fee(2 * GWEI)

    out = m.trading.buy("tok", "alice", 5 * WEI)

    assert out["graduation"]["params"]["stipend"] == 72 * 10**14
    assert m.ledger.graduation("tok").stipend == 72 * 10**14
