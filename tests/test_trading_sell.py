from __future__ import annotations

import pytest

from launchcurve.curve.profiles import BasicProfile, SuperSimpleProfile
from launchcurve.engine.trading import ENGINE_ADDRESS
from launchcurve.runtime.config import WEI
from launchcurve.runtime.errors import CurveError
from launchcurve.testing.harness import ManualClock, bank, fund, harness_config, make_market, register, zero_terms


def _bought(amount: int = WEI):
    m = make_market()
    register(m)
    fund(m, "alice", 10 * WEI)
    m.trading.buy("tok", "alice", amount)
    return m


def test_sell_pays_out_curve_eth_and_burns_tokens() -> None:
    m = _bought()

    out = m.trading.sell("tok", "alice", 250_000 * WEI)

    q = out["quote"]
    assert q["dust"] is False
    assert q["net"] == q["gross"] > 0
    assert out["balance"] == 250_000 * WEI

    rt = m.ledger.runtime("tok")
    assert rt.circulating_supply == 250_000 * WEI
    assert rt.eth_pool == WEI - q["gross"]
    assert bank(m).balance_of("alice") == 9 * WEI + q["net"]
    assert bank(m).balance_of(ENGINE_ADDRESS) == rt.eth_pool
    assert m.ledger.stats("tok").sell_count == 1


def test_full_exit_never_returns_more_than_was_paid() -> None:
    m = _bought()
    m.trading.sell("tok", "alice", 500_000 * WEI)

    assert bank(m).balance_of("alice") <= 10 * WEI
    assert m.ledger.buyers("tok") == []
    assert m.ledger.runtime("tok").circulating_supply == 0


def test_sell_fees_go_to_treasury_and_payee() -> None:
    fees = {"basic": 100, "advanced": 0, "super_simple": 0, "zero_simple": 0}
    m = make_market(harness_config(platform_fee_bps=fees))
    register(m, BasicProfile(terms=zero_terms(), starting_tax=10, tax_duration=3600))
    fund(m, "alice", 10 * WEI)
    m.trading.buy("tok", "alice", WEI)
    treasury_before = bank(m).balance_of("treasury")
    payee_before = bank(m).balance_of("payee")
    pool_before = m.ledger.runtime("tok").eth_pool

    out = m.trading.sell("tok", "alice", 100_000 * WEI)

    q = out["quote"]
    assert q["platform_fee"] + q["dev_fee"] + q["net"] == q["gross"]
    skim = q["dev_fee"] // 10
    assert bank(m).balance_of("treasury") - treasury_before == q["platform_fee"] + skim
    assert bank(m).balance_of("payee") - payee_before == q["dev_fee"] - skim
    assert m.ledger.runtime("tok").eth_pool == pool_before - q["gross"]
    assert bank(m).balance_of(ENGINE_ADDRESS) == m.ledger.runtime("tok").eth_pool


def test_pool_tracks_custody_through_mixed_trading() -> None:
    fees = {"basic": 100, "advanced": 0, "super_simple": 0, "zero_simple": 0}
    clock = ManualClock()
    m = make_market(harness_config(platform_fee_bps=fees), clock=clock)
    register(m, BasicProfile(terms=zero_terms(), starting_tax=10, tax_duration=3600))
    for who in ("alice", "bob", "carol"):
        fund(m, who, 10 * WEI)

    steps = [
        ("buy", "alice", WEI),
        ("buy", "bob", WEI // 2),
        ("sell", "alice", 200_000 * WEI),
        ("wait", "", 1800),
        ("buy", "carol", 3 * WEI // 10),
        ("sell", "bob", 0),
        ("buy", "alice", WEI // 4),
        ("wait", "", 3600),
        ("sell", "alice", 0),
        ("sell", "carol", 0),
    ]

    expected = 0
    for op, who, amount in steps:
        if op == "wait":
            clock.advance(amount)
            continue
        if op == "buy":
            # overpay so the refund path runs too
            out = m.trading.buy("tok", who, amount, value=amount + WEI // 10)
            expected += out["quote"]["to_curve"]
        else:
            out = m.trading.sell("tok", who, amount or m.ledger.balance_of("tok", who))
            expected -= out["quote"]["gross"]

        pool = m.ledger.runtime("tok").eth_pool
        assert pool == expected
        assert pool == bank(m).balance_of(ENGINE_ADDRESS)
        assert pool >= 0

    assert m.ledger.runtime("tok").circulating_supply == 0


def test_sell_validation() -> None:
    m = _bought()

    with pytest.raises(CurveError) as ei:
        m.trading.sell("tok", "alice", 0)
    assert ei.value.reason == "zero_amount"

    with pytest.raises(CurveError) as ei:
        m.trading.sell("tok", "alice", 500_000 * WEI + 1)
    assert ei.value.reason == "insufficient_balance"

    with pytest.raises(CurveError) as ei:
        m.trading.sell("tok", "bob", 1)
    assert ei.value.reason == "insufficient_balance"


def test_sell_slippage_guard() -> None:
    m = _bought()
    q = m.trading.quote_sell("tok", 100_000 * WEI)

    with pytest.raises(CurveError) as ei:
        m.trading.sell_with_min_out("tok", "alice", 100_000 * WEI, q.net + 1)
    assert ei.value.code == "slippage"

    out = m.trading.sell_with_min_out("tok", "alice", 100_000 * WEI, q.net)
    assert out["quote"]["net"] == q.net


def test_dust_position_must_exit_in_full() -> None:
    m = _bought()
    # leaves 1 wei in the pool against 1000 units outstanding
    m.trading.sell("tok", "alice", 500_000 * WEI - 1000)
    assert m.ledger.runtime("tok").eth_pool == 1
    assert m.trading.quote_sell("tok", 1000).dust is True

    with pytest.raises(CurveError) as ei:
        m.trading.sell("tok", "alice", 500)
    assert ei.value.reason == "dust_requires_full_balance"

    alice_eth = bank(m).balance_of("alice")
    out = m.trading.sell("tok", "alice", 1000)

    assert out["balance"] == 0
    assert out["quote"]["gross"] == 0
    assert bank(m).balance_of("alice") == alice_eth
    assert m.ledger.runtime("tok").circulating_supply == 0
    assert m.ledger.buyers("tok") == []


def test_failed_payout_rolls_back_the_sell() -> None:
    m = _bought()
    bank(m).reject("alice")

    with pytest.raises(CurveError) as ei:
        m.trading.sell("tok", "alice", 100_000 * WEI)
    assert ei.value.code == "settlement_failed"

    assert m.ledger.balance_of("tok", "alice") == 500_000 * WEI
    assert m.ledger.runtime("tok").eth_pool == WEI
    assert bank(m).balance_of(ENGINE_ADDRESS) == WEI


def test_max_tx_applies_to_sells_even_for_the_creator() -> None:
    m = make_market()
    register(m, SuperSimpleProfile(terms=zero_terms(), max_tx=100_000 * WEI, max_wallet=150_000 * WEI))
    fund(m, "creator", 10 * WEI)
    m.trading.buy("tok", "creator", WEI)

    with pytest.raises(CurveError) as ei:
        m.trading.sell("tok", "creator", 200_000 * WEI)
    assert ei.value.reason == "max_tx_exceeded"

    m.trading.sell("tok", "creator", 100_000 * WEI)


def test_holder_view_reports_caps_and_grace() -> None:
    m = make_market()
    register(m, SuperSimpleProfile(terms=zero_terms(), max_tx=100_000 * WEI, max_wallet=150_000 * WEI))

    assert m.trading.holder_view("tok", "creator")["max_tx"] is None
    view = m.trading.holder_view("tok", "alice")
    assert view["balance"] == 0
    assert view["max_tx"] == 100_000 * WEI
    assert view["max_wallet"] == 150_000 * WEI
