from __future__ import annotations

import pytest

from launchcurve.curve.profiles import ZeroSimpleProfile
from launchcurve.engine.graduation import GRADUATION_ADDRESS
from launchcurve.engine.trading import ENGINE_ADDRESS
from launchcurve.external.interfaces import DEAD_ADDRESS
from launchcurve.runtime.boot import LEDGER_OWNER
from launchcurve.runtime.config import WEI
from launchcurve.runtime.errors import CurveError
from launchcurve.testing.harness import SUPPLY, bank, fund, harness_config, make_market, register, zero_terms

GRAD_FEE = 2 * WEI // 10
# 3M gas * 1 gwei * 1.2 for a single-holder airdrop
STIPEND_ONE_HOLDER = 36 * 10**14


def _graduated_by_trade(profile=None):
    m = make_market()
    register(m, profile)
    fund(m, "alice", 10 * WEI)
    out = m.trading.buy("tok", "alice", 5 * WEI)
    return m, out


def test_crossing_the_cap_graduates_inside_the_buy() -> None:
    m, out = _graduated_by_trade()

    g = out["graduation"]
    assert g is not None
    assert g["params"]["stipend"] == STIPEND_ONE_HOLDER
    assert g["graduation"]["claim_mode"] is False
    assert g["graduation"]["stipend_recipient"] == "alice"

    rt = m.ledger.runtime("tok")
    assert rt.graduated is True
    assert rt.eth_pool == 0
    # airdrop mode clears the curve holder registry
    assert m.ledger.buyers("tok") == []

    record = m.ledger.graduation("tok")
    assert record is not None
    tokens = m.ext.tokens
    assert tokens.total_supply(record.real_token) == SUPPLY
    assert tokens.balance_of(record.real_token, "alice") == out["circulating_supply"]
    assert tokens.balance_of(record.real_token, "treasury") == out["circulating_supply"] // 100
    assert tokens.balance_of(record.real_token, GRADUATION_ADDRESS) == 0

    assert m.ext.venue.lp_balance_of(record.lp_token, DEAD_ADDRESS) == record.liquidity
    assert record.lock_id is None


def test_graduation_settles_every_wei_of_the_pool() -> None:
    m, out = _graduated_by_trade()
    b = bank(m)
    params = out["graduation"]["params"]

    assert b.balance_of(ENGINE_ADDRESS) == 0
    assert b.balance_of(GRADUATION_ADDRESS) == 0
    assert b.balance_of("treasury") == GRAD_FEE
    assert b.balance_of("alice") == 5 * WEI + STIPEND_ONE_HOLDER

    pool = m.ext.venue.pool(m.ledger.graduation("tok").real_token)
    assert pool["eth_reserve"] == params["eth_to_lp"] + params["buy_burn_eth"]
    assert GRAD_FEE + params["stipend"] + params["eth_to_lp"] + params["buy_burn_eth"] == 5 * WEI


def test_graduated_token_rejects_trading_and_second_graduation() -> None:
    m, _ = _graduated_by_trade()

    with pytest.raises(CurveError) as ei:
        m.trading.buy("tok", "alice", WEI)
    assert ei.value.reason == "already_graduated"

    with pytest.raises(CurveError) as ei:
        m.trading.sell("tok", "alice", 1)
    assert ei.value.reason == "already_graduated"

    with pytest.raises(CurveError) as ei:
        m.graduation.graduate("tok", caller=LEDGER_OWNER, force=True)
    assert ei.value.reason == "already_graduated"

    view = m.trading.token_view("tok")
    assert view["state"] == "graduated"
    assert view["graduation"]["real_token"].startswith("real:tok:")


def test_failed_graduation_reverts_the_triggering_buy() -> None:
    m = make_market()
    register(m)
    fund(m, "alice", 10 * WEI)
    bank(m).reject("treasury")

    with pytest.raises(CurveError) as ei:
        m.trading.buy("tok", "alice", 5 * WEI)
    assert ei.value.code == "settlement_failed"

    rt = m.ledger.runtime("tok")
    assert rt.graduated is False
    assert rt.circulating_supply == 0
    assert rt.eth_pool == 0
    assert m.ledger.graduation("tok") is None
    assert bank(m).balance_of("alice") == 10 * WEI
    assert bank(m).balance_of(ENGINE_ADDRESS) == 0
    deployed, _ = m.ext.tokens.snapshot()
    assert deployed == {}


def test_locked_liquidity_goes_to_the_locker_for_the_creator() -> None:
    profile = ZeroSimpleProfile(terms=zero_terms(lp_disposition="lock", lock_duration=86_400))
    m, out = _graduated_by_trade(profile)

    params = out["graduation"]["params"]
    assert params["lock_fee"] == 5 * WEI // 100

    record = m.ledger.graduation("tok")
    assert record.lock_id is not None
    lock = m.ext.locker.get(record.lock_id)
    assert lock["owner"] == "creator"
    assert lock["amount"] == record.liquidity
    assert lock["unlock_at"] - lock["locked_at"] == 86_400
    assert bank(m).balance_of("locker") == 5 * WEI // 100
    assert bank(m).balance_of(GRADUATION_ADDRESS) == 0


def _below_cap(eth_in: int, profile=None):
    m = make_market()
    register(m, profile)
    fund(m, "alice", 10 * WEI)
    m.trading.buy("tok", "alice", eth_in)
    return m


def test_graduate_before_cap_requires_admin_force() -> None:
    m = _below_cap(2 * WEI)

    with pytest.raises(CurveError) as ei:
        m.graduation.graduate("tok", caller="alice")
    assert ei.value.reason == "cap_not_reached"

    with pytest.raises(CurveError) as ei:
        m.graduation.graduate("tok", caller="creator", force=True)
    assert ei.value.code == "forbidden"

    out = m.graduation.graduate("tok", caller=LEDGER_OWNER, force=True)
    assert out["graduation"]["stipend_recipient"] == LEDGER_OWNER
    assert m.ledger.runtime("tok").graduated is True


def test_final_tax_above_ceiling_blocks_graduation() -> None:
    m = _below_cap(2 * WEI, ZeroSimpleProfile(terms=zero_terms(final_tax_rate=8)))

    with pytest.raises(CurveError) as ei:
        m.graduation.graduate("tok", caller=LEDGER_OWNER, force=True)
    assert ei.value.reason == "final_tax_too_high"
    assert m.ledger.runtime("tok").graduated is False


def test_pool_outside_bounds_blocks_graduation() -> None:
    m = _below_cap(WEI // 2)

    with pytest.raises(CurveError) as ei:
        m.graduation.graduate("tok", caller=LEDGER_OWNER, force=True)
    assert ei.value.reason == "pool_out_of_bounds"


def test_forced_graduation_needs_a_whole_token_in_circulation() -> None:
    # ~0.1 token issued for 1e11 wei
    m = _below_cap(10**11)
    assert 0 < m.ledger.runtime("tok").circulating_supply < WEI

    with pytest.raises(CurveError) as ei:
        m.graduation.graduate("tok", caller=LEDGER_OWNER, force=True)
    assert ei.value.reason == "supply_too_small"
    assert m.ledger.runtime("tok").graduated is False


def test_cap_outside_pool_bounds_is_rejected_at_registration() -> None:
    m = make_market()
    # 400k of 1M issued for ~0.67 ETH, under the 1 ETH minimum pool
    with pytest.raises(CurveError) as ei:
        register(m, ZeroSimpleProfile(terms=zero_terms(graduation_cap=400_000 * WEI)))
    assert ei.value.code == "invalid_payload"
    assert ei.value.reason == "cap_outside_pool_bounds"
    assert not m.ledger.has_token("tok")

    m = make_market(harness_config(max_pool_eth_wei=3 * WEI))
    with pytest.raises(CurveError) as ei:
        register(m)
    assert ei.value.details["pool_at_cap"] == 4 * WEI

    # the default cap sits inside the default bounds
    m = make_market()
    register(m)
    assert m.ledger.has_token("tok")


def test_graduate_from_trade_requires_an_open_unit_of_work() -> None:
    m = _below_cap(WEI)
    with pytest.raises(CurveError) as ei:
        m.graduation.graduate_from_trade("tok", stipend_recipient="alice")
    assert ei.value.reason == "no_active_unit_of_work"
