"""launchcurve.engine.trading

Buy and sell entry points over the virtual curve.

Token states: not_live (before start_time) -> tradeable -> graduated.

Every mutating call runs under the shared ReentrancyGuard and inside one
UnitOfWork, so a failed settlement or a failed in-trade graduation restores
ledger, custody balances and external registries together.

Custody: buyers pay into ENGINE_ADDRESS; the sum of every token's eth_pool
is held there. Fees and sell proceeds are paid out of it.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Optional

from launchcurve.curve.fees import BPS, UNBOUNDED, FeeResolver, FeeSchedule, FeeSplit, split_fees
from launchcurve.curve.pricing import TOKEN_UNIT, eth_for_tokens, marginal_price_at, tokens_for_eth
from launchcurve.engine.graduation import GraduationOrchestrator
from launchcurve.external.interfaces import Collaborators
from launchcurve.ledger.curve_ledger import CurveLedger
from launchcurve.ledger.types import RuntimeState, TokenMeta
from launchcurve.runtime.atomic import ReentrancyGuard, UnitOfWork
from launchcurve.runtime.config import WEI, EngineConfig
from launchcurve.runtime.errors import CurveError
from launchcurve.runtime.event_log import log_event
from launchcurve.runtime.metrics import inc_counter, set_gauge

Json = Dict[str, Any]

log = logging.getLogger("launchcurve.trading")

ENGINE_ADDRESS = "curve:engine"

STATE_NOT_LIVE = "not_live"
STATE_TRADEABLE = "tradeable"
STATE_GRADUATED = "graduated"


@dataclass(frozen=True)
class BuyQuote:
    eth_in: int
    platform_fee: int
    dev_fee: int
    to_curve: int
    tokens_out: int

    def to_json(self) -> Json:
        return asdict(self)


@dataclass(frozen=True)
class SellQuote:
    amount: int
    gross: int
    platform_fee: int
    dev_fee: int
    net: int
    dust: bool

    def to_json(self) -> Json:
        return asdict(self)


def overshoot_ceiling(cap: int, tolerance_bps: int) -> int:
    return cap + cap * tolerance_bps // BPS


class TradingEngine:
    def __init__(
        self,
        *,
        ledger: CurveLedger,
        fees: FeeResolver,
        cfg: EngineConfig,
        ext: Collaborators,
        graduation: GraduationOrchestrator,
        uow: UnitOfWork,
        guard: ReentrancyGuard,
        clock: Callable[[], int],
        address: str = ENGINE_ADDRESS,
    ) -> None:
        self._ledger = ledger
        self._fees = fees
        self._cfg = cfg
        self._ext = ext
        self._graduation = graduation
        self._uow = uow
        self._guard = guard
        self._clock = clock
        self.address = str(address)

    # ---- state ----

    def trading_state(self, token: str, *, now: Optional[int] = None) -> str:
        rt = self._ledger.runtime(token)
        t = int(self._clock()) if now is None else int(now)
        if rt.graduated:
            return STATE_GRADUATED
        if t < rt.start_time:
            return STATE_NOT_LIVE
        return STATE_TRADEABLE

    def _require_tradeable(self, token: str, rt: RuntimeState, now: int) -> None:
        if rt.graduated:
            raise CurveError("invalid_state", "already_graduated", {"token": token})
        if now < rt.start_time:
            raise CurveError("invalid_state", "not_live", {"token": token, "start_time": rt.start_time, "now": now})

    def _schedule(self, meta: TokenMeta, rt: RuntimeState, now: int) -> FeeSchedule:
        return self._fees.resolve(meta.profile, limits_start=rt.limits_start, now=now)

    def _in_creator_grace(self, meta: TokenMeta, account: str, now: int) -> bool:
        return account == meta.creator and now < meta.created_at + self._cfg.creator_grace_seconds

    # ---- quotes (read-only) ----

    def _quote_buy(self, meta: TokenMeta, rt: RuntimeState, sched: FeeSchedule, eth_in: int) -> BuyQuote:
        if eth_in <= 0:
            raise CurveError("arithmetic", "zero_eth_in", {"eth_in": eth_in})
        split = split_fees(eth_in, sched.platform_bps, sched.tax_pct)
        tokens_out = tokens_for_eth(meta.profile.terms.total_supply, rt.eth_pool, rt.circulating_supply, split.net)
        return BuyQuote(
            eth_in=eth_in,
            platform_fee=split.platform_fee,
            dev_fee=split.dev_fee,
            to_curve=split.net,
            tokens_out=tokens_out,
        )

    def _quote_sell(self, meta: TokenMeta, rt: RuntimeState, sched: FeeSchedule, amount: int) -> SellQuote:
        if amount <= 0:
            raise CurveError("invalid_payload", "zero_amount", {"amount": amount})
        gross = eth_for_tokens(meta.profile.terms.total_supply, rt.eth_pool, rt.circulating_supply, amount)
        split = split_fees(gross, sched.platform_bps, sched.tax_pct)
        return SellQuote(
            amount=amount,
            gross=gross,
            platform_fee=split.platform_fee,
            dev_fee=split.dev_fee,
            net=split.net,
            dust=gross == 0,
        )

    def quote_buy(self, token: str, eth_in: int) -> BuyQuote:
        now = int(self._clock())
        meta = self._ledger.meta(token)
        rt = self._ledger.runtime(token)
        if rt.graduated:
            raise CurveError("invalid_state", "already_graduated", {"token": token})
        return self._quote_buy(meta, rt, self._schedule(meta, rt, now), int(eth_in))

    def quote_sell(self, token: str, amount: int) -> SellQuote:
        now = int(self._clock())
        meta = self._ledger.meta(token)
        rt = self._ledger.runtime(token)
        if rt.graduated:
            raise CurveError("invalid_state", "already_graduated", {"token": token})
        return self._quote_sell(meta, rt, self._schedule(meta, rt, now), int(amount))

    # ---- settlement ----

    def _settle_fees(self, meta: TokenMeta, split: FeeSplit) -> None:
        bank = self._ext.bank
        treasury = self._cfg.treasury
        skim = split.dev_fee * self._cfg.treasury_tax_skim_pct // 100

        bank.transfer(self.address, treasury, split.platform_fee + skim)
        bank.transfer(self.address, meta.tax_payee or treasury, split.dev_fee - skim)

    # ---- buy ----

    def buy(
        self,
        token: str,
        buyer: str,
        eth_in: int,
        min_tokens_out: int = 0,
        value: Optional[int] = None,
    ) -> Json:
        """Spend `eth_in` of the attached `value` (defaults to eth_in); the rest is refunded."""
        paid = int(eth_in) if value is None else int(value)
        if paid < eth_in:
            raise CurveError("invalid_payload", "value_below_eth_in", {"value": paid, "eth_in": eth_in})

        with self._guard.enter("buy"):
            with self._uow.atomic():
                out = self._buy(token, str(buyer), int(eth_in), int(min_tokens_out), paid)

        inc_counter("curve_buys_total", 1)
        set_gauge("engine_custody_wei", self._ext.bank.balance_of(self.address))
        inc_counter("curve_volume_wei", int(eth_in))
        if out.get("graduation") is not None:
            inc_counter("graduations_total", 1)
        return out

    def buy_with_min_out(self, token: str, buyer: str, eth_in: int, min_tokens_out: int, value: Optional[int] = None) -> Json:
        return self.buy(token, buyer, eth_in, min_tokens_out=min_tokens_out, value=value)

    def _buy(self, token: str, buyer: str, eth_in: int, min_tokens_out: int, value: int) -> Json:
        ledger = self._ledger
        now = int(self._clock())
        meta = ledger.meta(token)
        rt = ledger.runtime(token)
        terms = meta.profile.terms

        self._require_tradeable(token, rt, now)
        if rt.circulating_supply >= terms.graduation_cap:
            raise CurveError("invalid_state", "cap_reached", {"token": token})

        sched = self._schedule(meta, rt, now)
        q = self._quote_buy(meta, rt, sched, eth_in)
        if q.tokens_out == 0:
            raise CurveError("arithmetic", "zero_output", {"eth_in": eth_in})
        if q.tokens_out < min_tokens_out:
            raise CurveError("slippage", "min_tokens_out", {"tokens_out": q.tokens_out, "min_tokens_out": min_tokens_out})

        post_balance = ledger.balance_of(token, buyer) + q.tokens_out
        if not self._in_creator_grace(meta, buyer, now):
            if q.tokens_out > sched.max_tx:
                raise CurveError("limit", "max_tx_exceeded", {"tokens_out": q.tokens_out, "max_tx": sched.max_tx})
            if post_balance > sched.max_wallet:
                raise CurveError("limit", "max_wallet_exceeded", {"balance": post_balance, "max_wallet": sched.max_wallet})

        post_supply = rt.circulating_supply + q.tokens_out
        graduates = post_supply >= terms.graduation_cap
        if graduates:
            ceiling = overshoot_ceiling(terms.graduation_cap, self._cfg.overshoot_tolerance_bps)
            if post_supply > ceiling:
                raise CurveError("limit", "cap_overshoot", {"circulating_supply": post_supply, "ceiling": ceiling})

        self._ext.bank.transfer(buyer, self.address, value)

        ledger.update_runtime(self.address, token, eth_pool=rt.eth_pool + q.to_curve, circulating_supply=post_supply)
        new_buyer = ledger.set_balance(self.address, token, buyer, post_balance)
        ledger.record_trade(self.address, token, side="buy", eth=eth_in, now=now, new_buyer=new_buyer)
        ledger.record_event(token, "buy", account=buyer, eth_in=eth_in, tokens_out=q.tokens_out, to_curve=q.to_curve)

        self._settle_fees(meta, FeeSplit(gross=eth_in, platform_fee=q.platform_fee, dev_fee=q.dev_fee, net=q.to_curve))
        if value > eth_in:
            self._ext.bank.transfer(self.address, buyer, value - eth_in)

        log_event(
            log,
            "curve_buy",
            token=token,
            buyer=buyer,
            eth_in=eth_in,
            tokens_out=q.tokens_out,
            platform_fee=q.platform_fee,
            dev_fee=q.dev_fee,
            circulating_supply=post_supply,
        )

        graduation = None
        if graduates:
            graduation = self._graduation.graduate_from_trade(token, stipend_recipient=buyer)

        return {
            "token": token,
            "buyer": buyer,
            "quote": q.to_json(),
            "balance": post_balance,
            "circulating_supply": post_supply,
            "refund": value - eth_in,
            "graduation": graduation,
        }

    # ---- sell ----

    def sell(self, token: str, seller: str, amount: int, min_eth_out: int = 0) -> Json:
        with self._guard.enter("sell"):
            with self._uow.atomic():
                out = self._sell(token, str(seller), int(amount), int(min_eth_out))

        inc_counter("curve_sells_total", 1)
        set_gauge("engine_custody_wei", self._ext.bank.balance_of(self.address))
        inc_counter("curve_volume_wei", int(out["quote"]["gross"]))
        return out

    def sell_with_min_out(self, token: str, seller: str, amount: int, min_eth_out: int) -> Json:
        return self.sell(token, seller, amount, min_eth_out=min_eth_out)

    def _sell(self, token: str, seller: str, amount: int, min_eth_out: int) -> Json:
        ledger = self._ledger
        now = int(self._clock())
        meta = ledger.meta(token)
        rt = ledger.runtime(token)

        self._require_tradeable(token, rt, now)
        if amount <= 0:
            raise CurveError("invalid_payload", "zero_amount", {"amount": amount})
        balance = ledger.balance_of(token, seller)
        if amount > balance:
            raise CurveError("invalid_state", "insufficient_balance", {"balance": balance, "amount": amount})

        sched = self._schedule(meta, rt, now)
        if amount > sched.max_tx:
            raise CurveError("limit", "max_tx_exceeded", {"amount": amount, "max_tx": sched.max_tx})

        q = self._quote_sell(meta, rt, sched, amount)

        if q.dust:
            # Quote rounds to zero: only the whole remaining balance may go.
            if amount != balance:
                raise CurveError("invalid_state", "dust_requires_full_balance", {"amount": amount, "balance": balance})
            ledger.update_runtime(self.address, token, circulating_supply=rt.circulating_supply - amount)
            ledger.set_balance(self.address, token, seller, 0)
            ledger.record_event(token, "dust_burn", account=seller, amount=amount)
            log_event(log, "curve_dust_burn", token=token, seller=seller, amount=amount)
            return {"token": token, "seller": seller, "quote": q.to_json(), "balance": 0, "circulating_supply": rt.circulating_supply - amount}

        if q.net < min_eth_out:
            raise CurveError("slippage", "min_eth_out", {"net": q.net, "min_eth_out": min_eth_out})

        post_supply = rt.circulating_supply - amount
        ledger.update_runtime(self.address, token, eth_pool=rt.eth_pool - q.gross, circulating_supply=post_supply)
        ledger.set_balance(self.address, token, seller, balance - amount)
        ledger.record_trade(self.address, token, side="sell", eth=q.gross, now=now, new_buyer=False)
        ledger.record_event(token, "sell", account=seller, amount=amount, gross=q.gross, net=q.net)

        self._ext.bank.transfer(self.address, seller, q.net)
        self._settle_fees(meta, FeeSplit(gross=q.gross, platform_fee=q.platform_fee, dev_fee=q.dev_fee, net=q.net))

        log_event(
            log,
            "curve_sell",
            token=token,
            seller=seller,
            amount=amount,
            gross=q.gross,
            net=q.net,
            circulating_supply=post_supply,
        )
        return {
            "token": token,
            "seller": seller,
            "quote": q.to_json(),
            "balance": balance - amount,
            "circulating_supply": post_supply,
        }

    # ---- views ----

    def eth_usd(self, *, now: int) -> int:
        price, updated_at = self._ext.price_oracle.eth_usd()
        if price <= 0 or now - updated_at > self._cfg.oracle_max_age_seconds:
            raise CurveError("oracle_stale", "stale_price", {"updated_at": updated_at, "now": now})
        return int(price)

    def token_view(self, token: str, *, with_usd: bool = False) -> Json:
        now = int(self._clock())
        ledger = self._ledger
        meta = ledger.meta(token)
        rt = ledger.runtime(token)
        terms = meta.profile.terms
        state = self.trading_state(token, now=now)

        view: Json = {
            "token": token,
            "state": state,
            "meta": meta.to_json(),
            "runtime": rt.to_json(),
            "stats": ledger.stats(token).to_json(),
            "holders": ledger.buyer_count(token),
            "progress_bps": min(BPS, rt.circulating_supply * BPS // terms.graduation_cap),
            "graduation": None,
        }

        if state == STATE_GRADUATED:
            record = ledger.graduation(token)
            view["graduation"] = record.to_json() if record is not None else None
            return view

        sched = self._schedule(meta, rt, now)
        view["fees"] = sched.to_json()
        view["creator_grace_until"] = meta.created_at + self._cfg.creator_grace_seconds

        price: Optional[int] = None
        if TOKEN_UNIT <= rt.circulating_supply < terms.total_supply:
            price = marginal_price_at(terms.total_supply, rt.circulating_supply)
        view["marginal_price_wei"] = price
        if price is not None:
            mcap = price * terms.total_supply // TOKEN_UNIT
            view["market_cap_wei"] = mcap
            if with_usd:
                view["market_cap_usd_e8"] = mcap * self.eth_usd(now=now) // WEI
        return view

    def holder_view(self, token: str, holder: str) -> Json:
        now = int(self._clock())
        meta = self._ledger.meta(token)
        rt = self._ledger.runtime(token)
        out: Json = {
            "token": token,
            "holder": holder,
            "balance": self._ledger.balance_of(token, holder),
            "claimed": self._ledger.claimed_amount(token, holder),
        }
        if not rt.graduated:
            sched = self._schedule(meta, rt, now)
            grace = self._in_creator_grace(meta, holder, now)
            out["max_tx"] = None if grace or sched.max_tx == UNBOUNDED else sched.max_tx
            out["max_wallet"] = None if grace or sched.max_wallet == UNBOUNDED else sched.max_wallet
        return out
