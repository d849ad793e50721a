"""launchcurve.engine.graduation

One-time conversion of a curve token into a real, liquidity-backed token.

Sequence (all inside one unit of work; any failure restores every participant
and the graduated flag is never observed without the rest):

   1. validate: not graduated, cap reached (or admin force), at least one
      whole token circulating, final tax <= 5%, pool inside the configured
      ETH bounds
   2. compute GradParams (pure)
   3. pull the whole pool from the trading engine's custody
   4. deploy the real token
   5. distribute: airdrop to every holder, or mint the circulating supply to
      this orchestrator and switch to claim mode for large holder sets
   6. graduation fee and treasury token fee
   7. seed liquidity, then burn or lock the LP position
   8. buy-and-burn with ETH that did not fit the headroom; burn leftover supply
   9. mark graduated with a GraduationRecord
  10. pay the gas stipend to whoever triggered graduation
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Iterable, Optional

from launchcurve.curve.fees import MAX_FINAL_TAX
from launchcurve.curve.pricing import TOKEN_UNIT, marginal_price_at
from launchcurve.engine.stipend import gas_stipend, resolve_gas_price
from launchcurve.external.interfaces import DEAD_ADDRESS, Collaborators, TaxConfig
from launchcurve.ledger.curve_ledger import CurveLedger
from launchcurve.ledger.types import GraduationRecord
from launchcurve.runtime.atomic import ReentrancyGuard, UnitOfWork
from launchcurve.runtime.config import EngineConfig
from launchcurve.runtime.errors import CurveError
from launchcurve.runtime.event_log import log_event
from launchcurve.runtime.metrics import inc_counter

Json = Dict[str, Any]

log = logging.getLogger("launchcurve.graduation")

GRADUATION_ADDRESS = "curve:graduation"


@dataclass(frozen=True)
class GradParams:
    graduation_fee: int
    lock_fee: int
    total_fee: int
    token_fee: int
    price: int
    eth_to_lp: int
    tokens_to_lp: int
    tokens_to_burn: int
    buy_burn_eth: int
    stipend: int

    def to_json(self) -> Json:
        return asdict(self)


def compute_grad_params(
    *,
    total_supply: int,
    circulating: int,
    eth_pool: int,
    graduation_fee: int,
    lock_fee: int,
    burns_liquidity: bool,
    stipend: int,
) -> GradParams:
    """Size the liquidity seed at the curve's final marginal price.

    When the tokens needed to pair with the pool ETH exceed the unminted
    headroom, liquidity is capped at the headroom and the ETH that no longer
    fits goes to buy-and-burn, so the pool opens at exactly the curve price.
    circulating + token_fee + tokens_to_lp + tokens_to_burn == total_supply.
    """
    if circulating < TOKEN_UNIT:
        raise CurveError("invalid_state", "supply_too_small", {"circulating": circulating, "min": TOKEN_UNIT})
    lock = 0 if burns_liquidity else int(lock_fee)
    total_fee = int(graduation_fee) + lock
    token_fee = circulating // 100

    price = marginal_price_at(total_supply, circulating)
    if price <= 0:
        raise CurveError("arithmetic", "zero_price", {"circulating": circulating})

    reserved = total_fee + int(stipend)
    if eth_pool <= reserved:
        raise CurveError("invalid_state", "pool_below_fees", {"eth_pool": eth_pool, "reserved": reserved})
    eth_for_lp = eth_pool - reserved

    headroom = total_supply - circulating - token_fee
    if headroom <= 0:
        raise CurveError("invalid_state", "no_headroom", {"circulating": circulating, "token_fee": token_fee})

    desired = eth_for_lp * TOKEN_UNIT // price
    if desired > headroom:
        tokens_to_lp = headroom
        eth_to_lp = headroom * price // TOKEN_UNIT
        buy_burn_eth = eth_for_lp - eth_to_lp
    else:
        tokens_to_lp = desired
        eth_to_lp = eth_for_lp
        buy_burn_eth = 0

    if tokens_to_lp <= 0 or eth_to_lp <= 0:
        raise CurveError("invalid_state", "zero_liquidity", {"eth_for_lp": eth_for_lp, "price": price})

    return GradParams(
        graduation_fee=int(graduation_fee),
        lock_fee=lock,
        total_fee=total_fee,
        token_fee=token_fee,
        price=price,
        eth_to_lp=eth_to_lp,
        tokens_to_lp=tokens_to_lp,
        tokens_to_burn=total_supply - circulating - token_fee - tokens_to_lp,
        buy_burn_eth=buy_burn_eth,
        stipend=int(stipend),
    )


class GraduationOrchestrator:
    def __init__(
        self,
        *,
        ledger: CurveLedger,
        cfg: EngineConfig,
        ext: Collaborators,
        uow: UnitOfWork,
        guard: ReentrancyGuard,
        clock: Callable[[], int],
        engine_address: str,
        admins: Iterable[str] = (),
        address: str = GRADUATION_ADDRESS,
    ) -> None:
        self._ledger = ledger
        self._cfg = cfg
        self._ext = ext
        self._uow = uow
        self._guard = guard
        self._clock = clock
        self._engine_address = str(engine_address)
        self._admins = {str(a) for a in admins}
        self.address = str(address)

    def is_admin(self, account: str) -> bool:
        return str(account) in self._admins or str(account) == self._ledger.owner

    def _require_admin(self, caller: str) -> None:
        if not self.is_admin(caller):
            raise CurveError("forbidden", "not_admin", {"caller": caller})

    # ---- graduation ----

    def graduate(self, token: str, *, caller: str, stipend_recipient: Optional[str] = None, force: bool = False) -> Json:
        with self._guard.enter("graduate"):
            with self._uow.atomic():
                out = self._graduate(token, caller=caller, stipend_recipient=stipend_recipient or caller, force=force)
        inc_counter("graduations_total", 1)
        return out

    def graduate_from_trade(self, token: str, *, stipend_recipient: str) -> Json:
        """Cap crossed inside a buy: runs under the buy's guard and unit of work."""
        if not self._uow.active:
            raise CurveError("invalid_state", "no_active_unit_of_work", {"token": token})
        return self._graduate(token, caller=stipend_recipient, stipend_recipient=stipend_recipient, force=False)

    def _graduate(self, token: str, *, caller: str, stipend_recipient: str, force: bool) -> Json:
        cfg = self._cfg
        ledger = self._ledger
        bank = self._ext.bank
        tokens = self._ext.tokens
        now = int(self._clock())

        meta = ledger.meta(token)
        rt = ledger.runtime(token)
        terms = meta.profile.terms

        if rt.graduated:
            raise CurveError("invalid_state", "already_graduated", {"token": token})
        if force:
            self._require_admin(caller)
        elif rt.circulating_supply < terms.graduation_cap:
            raise CurveError(
                "invalid_state",
                "cap_not_reached",
                {"circulating_supply": rt.circulating_supply, "graduation_cap": terms.graduation_cap},
            )
        if rt.circulating_supply < TOKEN_UNIT:
            # no marginal price below one whole token
            raise CurveError("invalid_state", "supply_too_small", {"circulating": rt.circulating_supply, "min": TOKEN_UNIT})
        if terms.final_tax_rate > MAX_FINAL_TAX:
            raise CurveError("invalid_state", "final_tax_too_high", {"final_tax_rate": terms.final_tax_rate})
        if not cfg.min_pool_eth_wei <= rt.eth_pool <= cfg.max_pool_eth_wei:
            raise CurveError(
                "invalid_state",
                "pool_out_of_bounds",
                {"eth_pool": rt.eth_pool, "min": cfg.min_pool_eth_wei, "max": cfg.max_pool_eth_wei},
            )

        holders = ledger.buyers(token)
        claim_mode = len(holders) > cfg.claim_mode_threshold
        gas_price = resolve_gas_price(self._ext.gas_oracle, now=now, max_age=cfg.oracle_max_age_seconds)
        stipend = gas_stipend(
            holders=len(holders),
            claim_mode=claim_mode,
            gas_price=gas_price,
            tiers=cfg.stipend_gas_tiers,
            claim_mode_gas=cfg.stipend_claim_mode_gas,
            multiplier_bps=cfg.stipend_multiplier_bps,
            floor_wei=cfg.stipend_floor_wei,
            cap_wei=cfg.stipend_cap_wei,
        )
        params = compute_grad_params(
            total_supply=terms.total_supply,
            circulating=rt.circulating_supply,
            eth_pool=rt.eth_pool,
            graduation_fee=cfg.graduation_fee_wei,
            lock_fee=cfg.lock_fee_wei,
            burns_liquidity=terms.burns_liquidity,
            stipend=stipend,
        )

        ledger.update_runtime(self.address, token, eth_pool=0)
        bank.transfer(self._engine_address, self.address, rt.eth_pool)

        real = tokens.deploy(
            name=meta.name,
            symbol=meta.symbol,
            creator=meta.creator,
            tax_config=TaxConfig(payee=meta.tax_payee or cfg.treasury, final_tax_rate=terms.final_tax_rate),
            is_tax=meta.is_tax,
            headerless=meta.headerless,
            final_tax_rate=terms.final_tax_rate,
            max_supply=terms.total_supply,
        )

        if claim_mode:
            tokens.mint(real, self.address, rt.circulating_supply)
        else:
            for holder in holders:
                bal = ledger.balance_of(token, holder)
                if bal > 0:
                    tokens.mint(real, holder, bal)

        bank.transfer(self.address, cfg.treasury, params.graduation_fee)
        if params.token_fee > 0:
            tokens.mint(real, cfg.treasury, params.token_fee)

        tokens.mint(real, self.address, params.tokens_to_lp)
        position = self._ext.venue.add_liquidity(
            token=real, provider=self.address, token_amount=params.tokens_to_lp, eth_amount=params.eth_to_lp
        )
        lock_id: Optional[str] = None
        if terms.burns_liquidity:
            self._ext.venue.transfer_lp(position.lp_token, self.address, DEAD_ADDRESS, position.liquidity)
        else:
            lock_id = self._ext.locker.lock(
                lp_token=position.lp_token,
                sender=self.address,
                amount=position.liquidity,
                duration=terms.lock_duration,
                owner=meta.creator,
                fee=params.lock_fee,
            )

        bought_and_burned = 0
        if params.buy_burn_eth > 0:
            bought_and_burned = self._ext.venue.swap_eth_for_tokens(
                token=real, payer=self.address, eth_in=params.buy_burn_eth, recipient=DEAD_ADDRESS
            )
        if params.tokens_to_burn > 0:
            tokens.mint(real, DEAD_ADDRESS, params.tokens_to_burn)

        record = GraduationRecord(
            real_token=real,
            lp_token=position.lp_token,
            liquidity=position.liquidity,
            lp_disposition=terms.lp_disposition,
            lock_id=lock_id,
            claim_mode=claim_mode,
            buy_burn_tokens=bought_and_burned,
            tokens_burned=params.tokens_to_burn,
            stipend=params.stipend,
            stipend_recipient=stipend_recipient,
            graduated_at=now,
        )
        ledger.mark_graduated(self.address, token, record)
        ledger.record_event(token, "graduated", real_token=real, holders=len(holders), claim_mode=claim_mode)

        bank.transfer(self.address, stipend_recipient, params.stipend)

        log_event(
            log,
            "graduation_complete",
            token=token,
            real_token=real,
            holders=len(holders),
            claim_mode=claim_mode,
            eth_pool=rt.eth_pool,
            eth_to_lp=params.eth_to_lp,
            tokens_to_lp=params.tokens_to_lp,
            buy_burn_eth=params.buy_burn_eth,
            stipend=params.stipend,
            forced=bool(force),
        )
        return {"token": token, "params": params.to_json(), "graduation": record.to_json()}

    # ---- claim mode ----

    def claim(self, token: str, holder: str) -> Json:
        with self._guard.enter("claim"):
            with self._uow.atomic():
                amount = self._claim_one(token, holder)
        inc_counter("claims_total", 1)
        log_event(log, "claim", token=token, holder=holder, amount=amount)
        return {"token": token, "holder": holder, "amount": amount}

    def _claim_record(self, token: str) -> GraduationRecord:
        record = self._ledger.graduation(token)
        if record is None:
            raise CurveError("invalid_state", "not_graduated", {"token": token})
        if not record.claim_mode:
            raise CurveError("invalid_state", "not_claim_mode", {"token": token})
        return record

    def _claim_one(self, token: str, holder: str) -> int:
        record = self._claim_record(token)
        if self._ledger.claimed_amount(token, holder) > 0:
            raise CurveError("conflict", "already_claimed", {"token": token, "holder": holder})
        amount = self._ledger.balance_of(token, holder)
        if amount <= 0:
            raise CurveError("invalid_state", "nothing_to_claim", {"token": token, "holder": holder})

        self._ledger.mark_claimed(self.address, token, holder, amount)
        self._ext.tokens.transfer(record.real_token, self.address, holder, amount)
        self._ledger.record_event(token, "claim", holder=holder, amount=amount)
        return amount

    def sweep_claims(self, token: str, *, caller: str, max_count: Optional[int] = None) -> Json:
        """Push unclaimed balances from the persisted cursor, one batch per call."""
        batch = int(max_count) if max_count is not None else self._cfg.claim_sweep_batch
        if batch <= 0:
            raise CurveError("invalid_payload", "bad_max_count", {"max_count": max_count})

        with self._guard.enter("sweep_claims"):
            with self._uow.atomic():
                self._require_admin(caller)
                record = self._claim_record(token)
                holders = self._ledger.buyers(token)
                start = record.claim_cursor
                end = min(len(holders), start + batch)

                delivered = 0
                for holder in holders[start:end]:
                    if self._ledger.claimed_amount(token, holder) > 0:
                        continue
                    if self._ledger.balance_of(token, holder) <= 0:
                        continue
                    self._claim_one(token, holder)
                    delivered += 1
                self._ledger.set_claim_cursor(self.address, token, end)

        inc_counter("claims_total", delivered)
        log_event(log, "claim_sweep", token=token, start=start, end=end, delivered=delivered)
        return {"token": token, "start": start, "cursor": end, "delivered": delivered, "done": end >= len(holders)}
