from __future__ import annotations

import copy
import math
from typing import Any, Callable, Dict, Set, Tuple

from launchcurve.external.interfaces import Address, LiquidityPosition, TaxConfig
from launchcurve.runtime.errors import CurveError

Json = Dict[str, Any]

ReceiveHook = Callable[[Address, int], None]


def _require_amount(amount: int, *, what: str) -> None:
    if isinstance(amount, bool) or int(amount) < 0:
        raise CurveError("arithmetic", "negative_amount", {"what": what, "amount": amount})


class MemoryBank:
    """
    In-process native currency ledger.

    - credit() mints native currency (tests / dev faucet)
    - transfer() moves value and then runs the recipient's receive hook, if any
    - reject() makes every transfer to an account fail, like a contract
      without a payable fallback
    - dump_state()/load_state() carry balances across restarts; hooks and
      rejections are process-local
    """

    def __init__(self) -> None:
        self._balances: Dict[Address, int] = {}
        self._hooks: Dict[Address, ReceiveHook] = {}
        self._rejecting: Set[Address] = set()

    def snapshot(self) -> Dict[Address, int]:
        return dict(self._balances)

    def restore(self, snap: Dict[Address, int]) -> None:
        self._balances = dict(snap)

    def dump_state(self) -> Json:
        return {"balances": dict(self._balances)}

    def load_state(self, state: Json) -> None:
        self._balances = {str(k): int(v) for k, v in (state.get("balances") or {}).items()}

    def credit(self, account: Address, amount: int) -> None:
        _require_amount(amount, what="credit")
        self._balances[account] = self._balances.get(account, 0) + int(amount)

    def balance_of(self, account: Address) -> int:
        return int(self._balances.get(account, 0))

    def on_receive(self, account: Address, hook: ReceiveHook) -> None:
        self._hooks[account] = hook

    def reject(self, account: Address, rejecting: bool = True) -> None:
        if rejecting:
            self._rejecting.add(account)
        else:
            self._rejecting.discard(account)

    def transfer(self, sender: Address, recipient: Address, amount: int) -> None:
        _require_amount(amount, what="transfer")
        if amount == 0:
            return
        if recipient in self._rejecting:
            raise CurveError("settlement_failed", "transfer_failed", {"recipient": recipient, "amount": amount})
        have = self._balances.get(sender, 0)
        if have < amount:
            raise CurveError("settlement_failed", "insufficient_funds", {"sender": sender, "have": have, "need": amount})

        self._balances[sender] = have - amount
        self._balances[recipient] = self._balances.get(recipient, 0) + amount

        hook = self._hooks.get(recipient)
        if hook is not None:
            hook(sender, amount)


class MemoryTokenRegistry:
    """Real tokens deployed at graduation: supply-capped balances per address."""

    def __init__(self) -> None:
        self._tokens: Dict[Address, Json] = {}
        self._seq = 0

    def snapshot(self) -> Tuple[Dict[Address, Json], int]:
        return copy.deepcopy(self._tokens), self._seq

    def restore(self, snap: Tuple[Dict[Address, Json], int]) -> None:
        self._tokens, self._seq = snap

    def dump_state(self) -> Json:
        return {"tokens": copy.deepcopy(self._tokens), "seq": self._seq}

    def load_state(self, state: Json) -> None:
        self._tokens = copy.deepcopy(state.get("tokens") or {})
        self._seq = int(state.get("seq", 0))

    def deploy(
        self,
        *,
        name: str,
        symbol: str,
        creator: Address,
        tax_config: TaxConfig,
        is_tax: bool,
        headerless: bool,
        final_tax_rate: int,
        max_supply: int,
    ) -> Address:
        self._seq += 1
        address = f"real:{symbol.lower()}:{self._seq}"
        self._tokens[address] = {
            "name": name,
            "symbol": symbol,
            "creator": creator,
            "tax_payee": tax_config.payee,
            "is_tax": bool(is_tax),
            "headerless": bool(headerless),
            "final_tax_rate": int(final_tax_rate),
            "max_supply": int(max_supply),
            "total_supply": 0,
            "balances": {},
        }
        return address

    def _get(self, token: Address) -> Json:
        t = self._tokens.get(token)
        if t is None:
            raise CurveError("settlement_failed", "unknown_real_token", {"token": token})
        return t

    def info(self, token: Address) -> Json:
        t = self._get(token)
        return {k: v for k, v in t.items() if k != "balances"}

    def mint(self, token: Address, to: Address, amount: int) -> None:
        _require_amount(amount, what="mint")
        t = self._get(token)
        if t["total_supply"] + amount > t["max_supply"]:
            raise CurveError("settlement_failed", "mint_exceeds_max_supply", {"token": token, "amount": amount})
        t["total_supply"] += int(amount)
        t["balances"][to] = t["balances"].get(to, 0) + int(amount)

    def transfer(self, token: Address, sender: Address, recipient: Address, amount: int) -> None:
        _require_amount(amount, what="token_transfer")
        t = self._get(token)
        have = t["balances"].get(sender, 0)
        if have < amount:
            raise CurveError("settlement_failed", "insufficient_tokens", {"token": token, "sender": sender})
        t["balances"][sender] = have - amount
        t["balances"][recipient] = t["balances"].get(recipient, 0) + int(amount)

    def balance_of(self, token: Address, holder: Address) -> int:
        return int(self._get(token)["balances"].get(holder, 0))

    def total_supply(self, token: Address) -> int:
        return int(self._get(token)["total_supply"])


class MemoryVenue:
    """Constant-product pools (0.3% swap fee) keyed by real token address."""

    ADDRESS: Address = "venue"

    def __init__(self, *, bank: MemoryBank, tokens: MemoryTokenRegistry) -> None:
        self._bank = bank
        self._tokens = tokens
        self._pools: Dict[Address, Json] = {}

    def snapshot(self) -> Dict[Address, Json]:
        return copy.deepcopy(self._pools)

    def restore(self, snap: Dict[Address, Json]) -> None:
        self._pools = snap

    def dump_state(self) -> Json:
        return {"pools": copy.deepcopy(self._pools)}

    def load_state(self, state: Json) -> None:
        self._pools = copy.deepcopy(state.get("pools") or {})

    def pool(self, token: Address) -> Json:
        p = self._pools.get(token)
        if p is None:
            raise CurveError("settlement_failed", "no_pool", {"token": token})
        return copy.deepcopy(p)

    def add_liquidity(self, *, token: Address, provider: Address, token_amount: int, eth_amount: int) -> LiquidityPosition:
        if token_amount <= 0 or eth_amount <= 0:
            raise CurveError("settlement_failed", "empty_liquidity", {"token": token})

        self._tokens.transfer(token, provider, self.ADDRESS, token_amount)
        self._bank.transfer(provider, self.ADDRESS, eth_amount)

        p = self._pools.setdefault(
            token,
            {"lp_token": f"lp:{token}", "token_reserve": 0, "eth_reserve": 0, "lp_supply": 0, "lp_balances": {}},
        )
        if p["lp_supply"] == 0:
            minted = math.isqrt(token_amount * eth_amount)
        else:
            minted = min(
                token_amount * p["lp_supply"] // p["token_reserve"],
                eth_amount * p["lp_supply"] // p["eth_reserve"],
            )
        if minted <= 0:
            raise CurveError("settlement_failed", "zero_liquidity_minted", {"token": token})

        p["token_reserve"] += int(token_amount)
        p["eth_reserve"] += int(eth_amount)
        p["lp_supply"] += minted
        p["lp_balances"][provider] = p["lp_balances"].get(provider, 0) + minted
        return LiquidityPosition(lp_token=p["lp_token"], liquidity=minted)

    def swap_eth_for_tokens(self, *, token: Address, payer: Address, eth_in: int, recipient: Address) -> int:
        p = self._pools.get(token)
        if p is None or p["eth_reserve"] == 0:
            raise CurveError("settlement_failed", "no_pool", {"token": token})

        self._bank.transfer(payer, self.ADDRESS, eth_in)
        with_fee = eth_in * 997
        out = p["token_reserve"] * with_fee // (p["eth_reserve"] * 1000 + with_fee)
        if out <= 0:
            raise CurveError("settlement_failed", "zero_swap_output", {"token": token, "eth_in": eth_in})

        p["eth_reserve"] += int(eth_in)
        p["token_reserve"] -= out
        self._tokens.transfer(token, self.ADDRESS, recipient, out)
        return out

    def _lp_pool(self, lp_token: Address) -> Json:
        for p in self._pools.values():
            if p["lp_token"] == lp_token:
                return p
        raise CurveError("settlement_failed", "unknown_lp_token", {"lp_token": lp_token})

    def transfer_lp(self, lp_token: Address, sender: Address, recipient: Address, amount: int) -> None:
        p = self._lp_pool(lp_token)
        have = p["lp_balances"].get(sender, 0)
        if have < amount:
            raise CurveError("settlement_failed", "insufficient_lp", {"lp_token": lp_token, "sender": sender})
        p["lp_balances"][sender] = have - amount
        p["lp_balances"][recipient] = p["lp_balances"].get(recipient, 0) + int(amount)

    def lp_balance_of(self, lp_token: Address, holder: Address) -> int:
        return int(self._lp_pool(lp_token)["lp_balances"].get(holder, 0))


class MemoryLocker:
    """Time locks over LP positions; the lock fee goes to the locker's fee account."""

    ADDRESS: Address = "locker"

    def __init__(self, *, bank: MemoryBank, venue: MemoryVenue, clock: Callable[[], int]) -> None:
        self._bank = bank
        self._venue = venue
        self._clock = clock
        self._locks: Dict[str, Json] = {}

    def snapshot(self) -> Dict[str, Json]:
        return copy.deepcopy(self._locks)

    def restore(self, snap: Dict[str, Json]) -> None:
        self._locks = snap

    def dump_state(self) -> Json:
        return {"locks": copy.deepcopy(self._locks)}

    def load_state(self, state: Json) -> None:
        self._locks = copy.deepcopy(state.get("locks") or {})

    def lock(self, *, lp_token: Address, sender: Address, amount: int, duration: int, owner: Address, fee: int) -> str:
        if duration <= 0:
            raise CurveError("settlement_failed", "bad_lock_duration", {"duration": duration})
        self._bank.transfer(sender, self.ADDRESS, fee)
        self._venue.transfer_lp(lp_token, sender, self.ADDRESS, amount)

        lock_id = f"lock:{len(self._locks) + 1}"
        now = int(self._clock())
        self._locks[lock_id] = {
            "lp_token": lp_token,
            "amount": int(amount),
            "owner": owner,
            "locked_at": now,
            "unlock_at": now + int(duration),
        }
        return lock_id

    def get(self, lock_id: str) -> Json:
        lk = self._locks.get(lock_id)
        if lk is None:
            raise CurveError("not_found", "unknown_lock", {"lock_id": lock_id})
        return dict(lk)


class StaticPriceOracle:
    """ETH/USD feed with 8 decimals; set() moves price and timestamp together."""

    def __init__(self, price: int, updated_at: int) -> None:
        self._price = int(price)
        self._updated_at = int(updated_at)

    def set(self, price: int, updated_at: int) -> None:
        self._price = int(price)
        self._updated_at = int(updated_at)

    def eth_usd(self) -> Tuple[int, int]:
        return self._price, self._updated_at


class StaticGasOracle:
    def __init__(self, price: int, updated_at: int, base_fee: int) -> None:
        self._price = int(price)
        self._updated_at = int(updated_at)
        self._base_fee = int(base_fee)

    def set(self, price: int, updated_at: int) -> None:
        self._price = int(price)
        self._updated_at = int(updated_at)

    def set_base_fee(self, base_fee: int) -> None:
        self._base_fee = int(base_fee)

    def gas_price(self) -> Tuple[int, int]:
        return self._price, self._updated_at

    def base_fee(self) -> int:
        return self._base_fee
