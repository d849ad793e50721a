# src/launchcurve/ledger/curve_ledger.py
from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Optional, Tuple

from launchcurve.curve.profiles import validate_profile
from launchcurve.ledger.types import GraduationRecord, RuntimeState, TokenMeta, TokenStats
from launchcurve.runtime.errors import CurveError
from launchcurve.runtime.event_log import log_event
from launchcurve.runtime.sqlite_db import SqliteLedgerStore

Json = Dict[str, Any]

log = logging.getLogger("launchcurve.ledger")

_RUNTIME_FIELDS = set(RuntimeState.__dataclass_fields__)


class CurveLedger:
    """Durable store of per-token metadata, runtime state and holder balances.

    Reads are open. Every write names its caller, and the caller must be on
    the writer allow-list maintained by the ledger owner.

    Holder registry: `buyers` is a deduplicated list and `buyer_index` maps
    holder -> position, so add and remove are O(1) (swap-and-pop). A holder
    is listed iff its balance is non-zero. After graduation in claim mode the
    list is frozen and kept for claims.

    The ledger is a UnitOfWork participant: snapshot()/restore() copy the
    whole state, commit() bumps the revision and persists the snapshot plus
    queued journal events when a SqliteLedgerStore is attached. Attached
    collaborator states (bank, real tokens, venue, locker) are written in the
    same SQLite transaction, so ledger balances and custody never diverge on
    disk.
    """

    def __init__(self, *, owner: str, store: Optional[SqliteLedgerStore] = None) -> None:
        self._store = store
        self._pending: List[Json] = []
        self._external: Dict[str, Any] = {}

        if store is not None and store.exists():
            self._state = store.read()
            persisted_owner = str(self._state.get("owner") or "")
            if persisted_owner and persisted_owner != owner:
                raise CurveError("config", "ledger_owner_mismatch", {"persisted": persisted_owner, "owner": owner})
        else:
            self._state = {"revision": 0, "owner": str(owner), "writers": [], "tokens": {}}
            if store is not None:
                store.commit(self._state)

    # ---- UnitOfWork participant ----

    def snapshot(self) -> Tuple[Json, int]:
        return copy.deepcopy(self._state), len(self._pending)

    def restore(self, snap: Tuple[Json, int]) -> None:
        state, pending_len = snap
        self._state = state
        del self._pending[pending_len:]

    def commit(self) -> None:
        if not self._pending and self._store is None:
            return
        self._state["revision"] = int(self._state.get("revision", 0)) + 1
        if self._store is not None:
            external = {name: part.dump_state() for name, part in self._external.items()}
            self._store.commit(self._state, self._pending, external)
        self._pending = []

    def attach_external(self, name: str, part: Any) -> Json:
        """Persist `part.dump_state()` with every commit; returns its saved state ({} if none)."""
        self._external[str(name)] = part
        if self._store is None:
            return {}
        return dict(self._store.read_external().get(str(name)) or {})

    # ---- authorization gate ----

    @property
    def owner(self) -> str:
        return str(self._state.get("owner") or "")

    @property
    def revision(self) -> int:
        return int(self._state.get("revision", 0))

    def writers(self) -> List[str]:
        return list(self._state.get("writers") or [])

    def is_writer(self, address: str) -> bool:
        return str(address) in set(self._state.get("writers") or [])

    def _require_owner(self, caller: str) -> None:
        if str(caller) != self.owner:
            raise CurveError("forbidden", "not_owner", {"caller": caller})

    def _require_writer(self, caller: str) -> None:
        if not self.is_writer(caller):
            raise CurveError("forbidden", "not_authorized", {"caller": caller})

    def authorize(self, caller: str, writer: str) -> None:
        self._require_owner(caller)
        writers = self._state.setdefault("writers", [])
        if writer not in writers:
            writers.append(str(writer))
            log_event(log, "ledger_writer_authorized", writer=writer)

    def revoke(self, caller: str, writer: str) -> None:
        self._require_owner(caller)
        writers = self._state.setdefault("writers", [])
        if writer in writers:
            writers.remove(writer)
            log_event(log, "ledger_writer_revoked", writer=writer)

    # ---- token records ----

    def _token(self, token: str) -> Json:
        rec = self._state["tokens"].get(str(token))
        if not isinstance(rec, dict):
            raise CurveError("not_found", "unknown_token", {"token": token})
        return rec

    def has_token(self, token: str) -> bool:
        return str(token) in self._state["tokens"]

    def token_ids(self) -> List[str]:
        return sorted(self._state["tokens"].keys())

    def register_token(self, caller: str, meta: TokenMeta, *, start_time: int, limits_start: Optional[int] = None) -> None:
        """Owner-only: record a token created upstream (creation itself is external)."""
        self._require_owner(caller)
        validate_profile(meta.profile)
        if not meta.token_id:
            raise CurveError("invalid_payload", "missing_token_id", {})
        if self.has_token(meta.token_id):
            raise CurveError("conflict", "token_exists", {"token": meta.token_id})

        runtime = RuntimeState(
            start_time=int(start_time),
            limits_start=int(start_time if limits_start is None else limits_start),
        )
        self._state["tokens"][meta.token_id] = {
            "meta": meta.to_json(),
            "runtime": runtime.to_json(),
            "balances": {},
            "buyers": [],
            "buyer_index": {},
            "stats": TokenStats().to_json(),
            "graduation": None,
            "claimed": {},
        }
        self.record_event(meta.token_id, "token_registered", symbol=meta.symbol, creator=meta.creator)

    def meta(self, token: str) -> TokenMeta:
        return TokenMeta.from_json(self._token(token)["meta"])

    def runtime(self, token: str) -> RuntimeState:
        return RuntimeState.from_json(self._token(token)["runtime"])

    def update_runtime(self, caller: str, token: str, **fields: Any) -> RuntimeState:
        self._require_writer(caller)
        rec = self._token(token)
        unknown = set(fields) - _RUNTIME_FIELDS
        if unknown:
            raise CurveError("invalid_payload", "unknown_runtime_field", {"fields": sorted(unknown)})

        cur = RuntimeState.from_json(rec["runtime"])
        nxt = RuntimeState.from_json({**cur.to_json(), **fields})

        if nxt.eth_pool < 0:
            raise CurveError("arithmetic", "negative_pool", {"token": token, "eth_pool": nxt.eth_pool})
        if nxt.circulating_supply < 0:
            raise CurveError("arithmetic", "negative_supply", {"token": token})
        if not nxt.graduated and nxt.circulating_supply > self.meta(token).profile.terms.total_supply:
            raise CurveError("arithmetic", "supply_exceeds_total", {"token": token})
        if cur.graduated and not nxt.graduated:
            raise CurveError("invalid_state", "graduation_is_terminal", {"token": token})

        rec["runtime"] = nxt.to_json()
        return nxt

    # ---- holder ledger ----

    def balance_of(self, token: str, holder: str) -> int:
        return int(self._token(token)["balances"].get(str(holder), 0))

    def buyers(self, token: str) -> List[str]:
        return list(self._token(token)["buyers"])

    def buyer_count(self, token: str) -> int:
        return len(self._token(token)["buyers"])

    def set_balance(self, caller: str, token: str, holder: str, amount: int) -> bool:
        """Set a holder balance; returns True when the holder is newly registered."""
        self._require_writer(caller)
        if amount < 0:
            raise CurveError("arithmetic", "negative_balance", {"token": token, "holder": holder})
        rec = self._token(token)
        holder = str(holder)
        balances = rec["balances"]
        index = rec["buyer_index"]
        buyers = rec["buyers"]

        if amount == 0:
            balances.pop(holder, None)
            pos = index.pop(holder, None)
            if pos is not None:
                last = buyers.pop()
                if last != holder:
                    buyers[pos] = last
                    index[last] = pos
            return False

        balances[holder] = int(amount)
        if holder in index:
            return False
        index[holder] = len(buyers)
        buyers.append(holder)
        return True

    def clear_buyers(self, caller: str, token: str) -> None:
        self._require_writer(caller)
        rec = self._token(token)
        rec["buyers"] = []
        rec["buyer_index"] = {}
        rec["balances"] = {}

    # ---- analytics ----

    def stats(self, token: str) -> TokenStats:
        return TokenStats.from_json(self._token(token)["stats"])

    def record_trade(self, caller: str, token: str, *, side: str, eth: int, now: int, new_buyer: bool) -> TokenStats:
        self._require_writer(caller)
        rec = self._token(token)
        cur = TokenStats.from_json(rec["stats"])
        nxt = TokenStats(
            buy_count=cur.buy_count + (1 if side == "buy" else 0),
            sell_count=cur.sell_count + (1 if side == "sell" else 0),
            volume_eth=cur.volume_eth + int(eth),
            unique_buyers=cur.unique_buyers + (1 if new_buyer else 0),
            last_trade_at=int(now),
        )
        rec["stats"] = nxt.to_json()
        return nxt

    # ---- graduation bookkeeping ----

    def graduation(self, token: str) -> Optional[GraduationRecord]:
        g = self._token(token).get("graduation")
        return GraduationRecord.from_json(g) if isinstance(g, dict) else None

    def mark_graduated(self, caller: str, token: str, record: GraduationRecord) -> None:
        self._require_writer(caller)
        rec = self._token(token)
        if rec.get("graduation") is not None or bool(rec["runtime"].get("graduated")):
            raise CurveError("invalid_state", "already_graduated", {"token": token})
        self.update_runtime(caller, token, graduated=True)
        rec["graduation"] = record.to_json()
        if not record.claim_mode:
            self.clear_buyers(caller, token)

    def set_claim_cursor(self, caller: str, token: str, cursor: int) -> None:
        self._require_writer(caller)
        g = self._token(token).get("graduation")
        if not isinstance(g, dict):
            raise CurveError("invalid_state", "not_graduated", {"token": token})
        g["claim_cursor"] = int(cursor)

    def claimed_amount(self, token: str, holder: str) -> int:
        return int(self._token(token)["claimed"].get(str(holder), 0))

    def mark_claimed(self, caller: str, token: str, holder: str, amount: int) -> None:
        self._require_writer(caller)
        claimed = self._token(token)["claimed"]
        if str(holder) in claimed:
            raise CurveError("conflict", "already_claimed", {"token": token, "holder": holder})
        claimed[str(holder)] = int(amount)

    # ---- journal ----

    def record_event(self, token: str, kind: str, **fields: Any) -> None:
        self._pending.append({"token": str(token), "kind": str(kind), **fields})

    def events(self, token: str, *, limit: int = 100) -> List[Json]:
        if self._store is None:
            return []
        return self._store.events(token, limit=limit)

    def token_json(self, token: str) -> Json:
        """Read-only copy of a token record (metadata, runtime, stats, graduation)."""
        rec = self._token(token)
        return {
            "meta": copy.deepcopy(rec["meta"]),
            "runtime": copy.deepcopy(rec["runtime"]),
            "stats": copy.deepcopy(rec["stats"]),
            "graduation": copy.deepcopy(rec.get("graduation")),
            "holders": len(rec["buyers"]),
        }
