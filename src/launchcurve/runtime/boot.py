# src/launchcurve/runtime/boot.py

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from launchcurve.curve.fees import FeeResolver
from launchcurve.curve.pricing import eth_at_supply_from_genesis
from launchcurve.engine.graduation import GRADUATION_ADDRESS, GraduationOrchestrator
from launchcurve.engine.trading import ENGINE_ADDRESS, TradingEngine
from launchcurve.external.interfaces import Collaborators
from launchcurve.external.memory import (
    MemoryBank,
    MemoryLocker,
    MemoryTokenRegistry,
    MemoryVenue,
    StaticGasOracle,
    StaticPriceOracle,
)
from launchcurve.ledger.curve_ledger import CurveLedger
from launchcurve.ledger.types import TokenMeta
from launchcurve.runtime.atomic import ReentrancyGuard, UnitOfWork
from launchcurve.runtime.config import EngineConfig, load_engine_config
from launchcurve.runtime.errors import CurveError
from launchcurve.runtime.event_log import log_event
from launchcurve.runtime.sqlite_db import SqliteDB, SqliteLedgerStore

log = logging.getLogger("launchcurve.boot")

# Ledger owner: registers tokens and maintains the writer allow-list.
LEDGER_OWNER = "curve:owner"

DEFAULT_BASE_FEE_WEI = 1_000_000_000


def system_clock() -> int:
    return int(time.time())


@dataclass
class Market:
    cfg: EngineConfig
    ledger: CurveLedger
    ext: Collaborators
    uow: UnitOfWork
    guard: ReentrancyGuard
    trading: TradingEngine
    graduation: GraduationOrchestrator
    clock: Callable[[], int]

    def register_token(self, meta: TokenMeta, *, start_time: int, limits_start: Optional[int] = None) -> None:
        terms = meta.profile.terms
        if 0 < terms.graduation_cap < terms.total_supply:
            # a pool outside the bounds at the cap could never graduate
            pool_at_cap = eth_at_supply_from_genesis(terms.total_supply, terms.graduation_cap)
            if not self.cfg.min_pool_eth_wei <= pool_at_cap <= self.cfg.max_pool_eth_wei:
                raise CurveError(
                    "invalid_payload",
                    "cap_outside_pool_bounds",
                    {
                        "token": meta.token_id,
                        "pool_at_cap": pool_at_cap,
                        "min": self.cfg.min_pool_eth_wei,
                        "max": self.cfg.max_pool_eth_wei,
                    },
                )
        with self.uow.atomic():
            self.ledger.register_token(self.ledger.owner, meta, start_time=start_time, limits_start=limits_start)


def memory_collaborators(*, clock: Callable[[], int]) -> Collaborators:
    bank = MemoryBank()
    tokens = MemoryTokenRegistry()
    venue = MemoryVenue(bank=bank, tokens=tokens)
    locker = MemoryLocker(bank=bank, venue=venue, clock=clock)
    now = int(clock())
    return Collaborators(
        bank=bank,
        tokens=tokens,
        venue=venue,
        locker=locker,
        # No ETH/USD feed until an operator sets one: USD views report stale.
        price_oracle=StaticPriceOracle(price=0, updated_at=0),
        gas_oracle=StaticGasOracle(price=DEFAULT_BASE_FEE_WEI, updated_at=now, base_fee=DEFAULT_BASE_FEE_WEI),
    )


def _open_store(db_path: str) -> Optional[SqliteLedgerStore]:
    if not db_path:
        return None
    Path(db_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)
    return SqliteLedgerStore(db=SqliteDB(path=db_path))


def _check_custody(ledger: CurveLedger, ext: Collaborators) -> None:
    """Fail closed when the engine holds less ETH than the curve pools it owes."""
    owed = 0
    for token in ledger.token_ids():
        rt = ledger.runtime(token)
        if not rt.graduated:
            owed += rt.eth_pool
    held = ext.bank.balance_of(ENGINE_ADDRESS)
    if held < owed:
        raise CurveError("config", "custody_shortfall", {"engine": ENGINE_ADDRESS, "held": held, "owed": owed})


def build_market(
    cfg: Optional[EngineConfig] = None,
    *,
    clock: Optional[Callable[[], int]] = None,
    ext: Optional[Collaborators] = None,
    owner: str = LEDGER_OWNER,
) -> Market:
    """Wire ledger, collaborators and both engines around one UnitOfWork.

    Every participant with snapshot()/restore() joins the unit of work, so a
    failing buy, sell, graduation or claim leaves no partial effect anywhere.
    """
    c = cfg or load_engine_config()
    clk = clock or system_clock
    collaborators = ext or memory_collaborators(clock=clk)

    store = _open_store(c.db_path)
    reopened = store is not None and store.exists()
    ledger = CurveLedger(owner=owner, store=store)

    uow = UnitOfWork([ledger])
    parts = {
        "bank": collaborators.bank,
        "tokens": collaborators.tokens,
        "venue": collaborators.venue,
        "locker": collaborators.locker,
    }
    for name, part in parts.items():
        if callable(getattr(part, "snapshot", None)) and callable(getattr(part, "restore", None)):
            uow.add(part)
        # In-process collaborators ride along with the ledger commit; real
        # ones own their durability.
        if callable(getattr(part, "dump_state", None)) and callable(getattr(part, "load_state", None)):
            saved = ledger.attach_external(name, part)
            if reopened:
                part.load_state(saved)

    if reopened:
        _check_custody(ledger, collaborators)

    guard = ReentrancyGuard()
    graduation = GraduationOrchestrator(
        ledger=ledger,
        cfg=c,
        ext=collaborators,
        uow=uow,
        guard=guard,
        clock=clk,
        engine_address=ENGINE_ADDRESS,
        admins=(owner, *c.admins),
        address=GRADUATION_ADDRESS,
    )
    trading = TradingEngine(
        ledger=ledger,
        fees=FeeResolver(c.platform_fee_bps),
        cfg=c,
        ext=collaborators,
        graduation=graduation,
        uow=uow,
        guard=guard,
        clock=clk,
        address=ENGINE_ADDRESS,
    )

    with uow.atomic():
        ledger.authorize(owner, trading.address)
        ledger.authorize(owner, graduation.address)

    log_event(
        log,
        "market_booted",
        mode=c.mode,
        db_path=c.db_path,
        tokens=len(ledger.token_ids()),
        revision=ledger.revision,
    )
    return Market(
        cfg=c,
        ledger=ledger,
        ext=collaborators,
        uow=uow,
        guard=guard,
        trading=trading,
        graduation=graduation,
        clock=clk,
    )
