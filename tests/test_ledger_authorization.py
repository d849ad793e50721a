from __future__ import annotations

import pytest

from launchcurve.curve.profiles import ZeroSimpleProfile
from launchcurve.ledger.curve_ledger import CurveLedger
from launchcurve.ledger.types import GraduationRecord, TokenMeta
from launchcurve.runtime.errors import CurveError
from launchcurve.testing.harness import T0, zero_terms

OWNER = "owner"
WRITER = "writer"


def _meta(token: str = "tok") -> TokenMeta:
    return TokenMeta(
        token_id=token,
        name="Token",
        symbol="TOK",
        creator="creator",
        tax_payee="payee",
        created_at=T0,
        profile=ZeroSimpleProfile(terms=zero_terms()),
    )


def _ledger() -> CurveLedger:
    led = CurveLedger(owner=OWNER)
    led.authorize(OWNER, WRITER)
    led.register_token(OWNER, _meta(), start_time=T0)
    return led


def test_only_owner_manages_writers_and_tokens() -> None:
    led = CurveLedger(owner=OWNER)

    for call in (
        lambda: led.authorize("mallory", "mallory"),
        lambda: led.revoke("mallory", WRITER),
        lambda: led.register_token("mallory", _meta(), start_time=T0),
    ):
        with pytest.raises(CurveError) as ei:
            call()
        assert (ei.value.code, ei.value.reason) == ("forbidden", "not_owner")

    led.authorize(OWNER, WRITER)
    led.authorize(OWNER, WRITER)
    assert led.writers() == [WRITER]

    led.revoke(OWNER, WRITER)
    assert not led.is_writer(WRITER)


def test_writes_require_an_authorized_writer() -> None:
    led = _ledger()

    with pytest.raises(CurveError) as ei:
        led.update_runtime("mallory", "tok", eth_pool=1)
    assert ei.value.reason == "not_authorized"

    with pytest.raises(CurveError):
        led.set_balance("mallory", "tok", "x", 1)

    led.revoke(OWNER, WRITER)
    with pytest.raises(CurveError):
        led.update_runtime(WRITER, "tok", eth_pool=1)


def test_duplicate_token_conflicts() -> None:
    led = _ledger()
    with pytest.raises(CurveError) as ei:
        led.register_token(OWNER, _meta(), start_time=T0)
    assert ei.value.code == "conflict"


def test_limits_start_defaults_to_start_time() -> None:
    led = _ledger()
    led.register_token(OWNER, _meta("later"), start_time=T0 + 50, limits_start=T0 + 80)

    assert led.runtime("tok").limits_start == T0
    assert led.runtime("later").limits_start == T0 + 80
    assert led.token_ids() == ["later", "tok"]


def test_runtime_updates_are_checked() -> None:
    led = _ledger()

    with pytest.raises(CurveError) as ei:
        led.update_runtime(WRITER, "tok", bogus=1)
    assert ei.value.reason == "unknown_runtime_field"

    with pytest.raises(CurveError) as ei:
        led.update_runtime(WRITER, "tok", eth_pool=-1)
    assert ei.value.reason == "negative_pool"

    with pytest.raises(CurveError) as ei:
        led.update_runtime(WRITER, "tok", circulating_supply=zero_terms().total_supply + 1)
    assert ei.value.reason == "supply_exceeds_total"

    rt = led.update_runtime(WRITER, "tok", eth_pool=7, circulating_supply=9)
    assert (rt.eth_pool, rt.circulating_supply) == (7, 9)


def test_holder_registry_swap_and_pop() -> None:
    led = _ledger()

    assert led.set_balance(WRITER, "tok", "a", 10) is True
    assert led.set_balance(WRITER, "tok", "b", 20) is True
    assert led.set_balance(WRITER, "tok", "c", 30) is True
    assert led.set_balance(WRITER, "tok", "a", 15) is False

    led.set_balance(WRITER, "tok", "a", 0)
    assert led.buyers("tok") == ["c", "b"]
    assert led.balance_of("tok", "a") == 0

    led.set_balance(WRITER, "tok", "b", 0)
    assert led.buyers("tok") == ["c"]
    assert led.set_balance(WRITER, "tok", "a", 1) is True
    assert led.buyers("tok") == ["c", "a"]
    assert led.buyer_count("tok") == 2


def test_graduation_is_terminal() -> None:
    led = _ledger()
    led.set_balance(WRITER, "tok", "a", 10)
    record = GraduationRecord(real_token="real:tok:1", lp_token="lp:real:tok:1", liquidity=5, lp_disposition="burn")

    led.mark_graduated(WRITER, "tok", record)
    assert led.runtime("tok").graduated is True
    assert led.graduation("tok") == record
    assert led.buyers("tok") == []

    with pytest.raises(CurveError) as ei:
        led.mark_graduated(WRITER, "tok", record)
    assert ei.value.reason == "already_graduated"

    with pytest.raises(CurveError) as ei:
        led.update_runtime(WRITER, "tok", graduated=False)
    assert ei.value.reason == "graduation_is_terminal"


def test_snapshot_restore_discards_queued_events() -> None:
    led = _ledger()
    snap = led.snapshot()

    led.set_balance(WRITER, "tok", "a", 10)
    led.record_event("tok", "buy", account="a")
    led.restore(snap)

    assert led.balance_of("tok", "a") == 0
    assert led.snapshot()[1] == snap[1]


def test_unknown_token_is_not_found() -> None:
    led = _ledger()
    with pytest.raises(CurveError) as ei:
        led.runtime("missing")
    assert ei.value.code == "not_found"
