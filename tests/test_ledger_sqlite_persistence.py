from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from launchcurve.engine.trading import ENGINE_ADDRESS
from launchcurve.ledger.curve_ledger import CurveLedger
from launchcurve.runtime.boot import LEDGER_OWNER
from launchcurve.runtime.config import WEI
from launchcurve.runtime.errors import CurveError
from launchcurve.runtime.sqlite_db import SqliteDB, SqliteLedgerStore
from launchcurve.testing.harness import ManualClock, bank, fund, harness_config, make_market, register


def _store(path: Path) -> SqliteLedgerStore:
    return SqliteLedgerStore(db=SqliteDB(path=str(path)))


def test_committed_trades_survive_a_restart(tmp_path: Path) -> None:
    db = tmp_path / "ledger.db"
    cfg = harness_config(db_path=str(db))

    m = make_market(cfg, clock=ManualClock())
    register(m)
    fund(m, "alice", 10 * WEI)
    m.trading.buy("tok", "alice", WEI)
    revision = m.ledger.revision

    reopened = CurveLedger(owner=LEDGER_OWNER, store=_store(db))
    assert reopened.revision == revision
    assert reopened.runtime("tok").circulating_supply == 500_000 * WEI
    assert reopened.balance_of("tok", "alice") == 500_000 * WEI
    assert reopened.buyers("tok") == ["alice"]

    kinds = [e["kind"] for e in reopened.events("tok")]
    assert kinds == ["token_registered", "buy"]


def test_rolled_back_trade_is_not_persisted(tmp_path: Path) -> None:
    db = tmp_path / "ledger.db"
    m = make_market(harness_config(db_path=str(db)), clock=ManualClock())
    register(m)
    fund(m, "alice", 10 * WEI)
    before = m.ledger.revision

    with pytest.raises(CurveError):
        m.trading.buy("tok", "alice", WEI, min_tokens_out=10**30)

    assert m.ledger.revision == before
    reopened = CurveLedger(owner=LEDGER_OWNER, store=_store(db))
    assert reopened.runtime("tok").circulating_supply == 0
    assert [e["kind"] for e in reopened.events("tok")] == ["token_registered"]


def test_event_limit(tmp_path: Path) -> None:
    db = tmp_path / "ledger.db"
    m = make_market(harness_config(db_path=str(db)), clock=ManualClock())
    register(m)
    fund(m, "alice", 10 * WEI)
    for _ in range(3):
        m.trading.buy("tok", "alice", WEI // 10)

    assert len(m.ledger.events("tok", limit=2)) == 2
    assert len(m.ledger.events("tok")) == 4


def test_reopening_with_another_owner_fails_closed(tmp_path: Path) -> None:
    db = tmp_path / "ledger.db"
    CurveLedger(owner="first", store=_store(db))

    with pytest.raises(CurveError) as ei:
        CurveLedger(owner="second", store=_store(db))
    assert ei.value.reason == "ledger_owner_mismatch"


def test_memory_ledger_has_no_journal() -> None:
    m = make_market()
    register(m)
    assert m.ledger.events("tok") == []


def test_custody_is_restored_with_the_ledger(tmp_path: Path) -> None:
    cfg = harness_config(db_path=str(tmp_path / "ledger.db"))
    m = make_market(cfg, clock=ManualClock())
    register(m)
    fund(m, "alice", 10 * WEI)
    m.trading.buy("tok", "alice", WEI // 2)
    pool = m.ledger.runtime("tok").eth_pool

    m = make_market(cfg, clock=ManualClock())
    assert m.ledger.runtime("tok").eth_pool == pool
    assert bank(m).balance_of(ENGINE_ADDRESS) == pool
    assert bank(m).balance_of("alice") == 10 * WEI - WEI // 2

    out = m.trading.sell("tok", "alice", 1_000 * WEI)
    assert out["quote"]["net"] > 0
    assert bank(m).balance_of(ENGINE_ADDRESS) == m.ledger.runtime("tok").eth_pool

    # ~0.5 ETH already in the pool: 4.5 more lands between the cap and the overshoot ceiling
    out = m.trading.buy("tok", "alice", 4 * WEI + WEI // 2)
    record = m.ledger.graduation("tok")
    assert out["graduation"] is not None
    assert bank(m).balance_of(ENGINE_ADDRESS) == 0

    # graduated token, its pool and its holders come back too
    m = make_market(cfg, clock=ManualClock())
    assert m.ledger.runtime("tok").graduated is True
    assert m.ext.tokens.balance_of(record.real_token, "alice") == out["circulating_supply"]
    assert m.ext.venue.pool(record.real_token)["lp_supply"] == record.liquidity


def test_reopening_without_custody_fails_closed(tmp_path: Path) -> None:
    db = tmp_path / "ledger.db"
    cfg = harness_config(db_path=str(db))
    m = make_market(cfg, clock=ManualClock())
    register(m)
    fund(m, "alice", 10 * WEI)
    m.trading.buy("tok", "alice", WEI)

    con = sqlite3.connect(str(db))
    con.execute("DELETE FROM external_state;")
    con.commit()
    con.close()

    with pytest.raises(CurveError) as ei:
        make_market(cfg, clock=ManualClock())
    assert ei.value.code == "config"
    assert ei.value.reason == "custody_shortfall"
    assert ei.value.details["held"] == 0
