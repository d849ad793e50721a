from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Query, Request, Response

from launchcurve.api.errors import ApiError
from launchcurve.api.schemas import (
    BuyRequest,
    ClaimRequest,
    FaucetRequest,
    GraduateRequest,
    RegisterTokenRequest,
    SellRequest,
    SignedRequest,
    SweepClaimsRequest,
)
from launchcurve.api.security import NonceBook, resolve_account
from launchcurve.curve.profiles import profile_from_json
from launchcurve.ledger.types import TokenMeta
from launchcurve.runtime.boot import Market
from launchcurve.runtime.metrics import format_prometheus, metrics_enabled

Json = Dict[str, Any]

router = APIRouter(prefix="/v1")


def _market(request: Request) -> Market:
    m = getattr(request.app.state, "market", None)
    if m is None:
        raise ApiError.internal("not_ready", "market not attached to app.state", {})
    return m


def _account(request: Request, body: SignedRequest, *, action: str, token: str) -> str:
    m = _market(request)
    nonces: NonceBook = request.app.state.nonces
    return resolve_account(body, action=action, token=token, require_signatures=m.cfg.require_signatures, nonces=nonces)


def _require_dev(m: Market) -> None:
    if m.cfg.mode not in {"dev", "test"}:
        raise ApiError.not_found("not_found", "dev routes are disabled", {})


# ---- health / metrics ----


@router.get("/health")
def health(request: Request) -> Json:
    m = getattr(request.app.state, "market", None)
    if m is None:
        return {"ok": True, "ready": False}
    return {
        "ok": True,
        "ready": True,
        "mode": m.cfg.mode,
        "revision": m.ledger.revision,
        "tokens": len(m.ledger.token_ids()),
    }


@router.get("/metrics")
def metrics() -> Response:
    """Prometheus-style metrics.

    Disabled by default. Enable with:
      LAUNCHCURVE_METRICS_ENABLED=1
    """
    if not metrics_enabled():
        return Response(status_code=404, content="not_found\n", media_type="text/plain")
    return Response(content=format_prometheus(), media_type="text/plain")


# ---- reads ----


@router.get("/tokens")
def list_tokens(request: Request) -> Json:
    return {"ok": True, "tokens": _market(request).ledger.token_ids()}


@router.get("/tokens/{token}")
def token_view(request: Request, token: str, usd: bool = False) -> Json:
    return {"ok": True, "token": _market(request).trading.token_view(token, with_usd=usd)}


@router.get("/tokens/{token}/quote/buy")
def quote_buy(request: Request, token: str, eth_in: int = Query(..., gt=0)) -> Json:
    return {"ok": True, "quote": _market(request).trading.quote_buy(token, eth_in).to_json()}


@router.get("/tokens/{token}/quote/sell")
def quote_sell(request: Request, token: str, amount: int = Query(..., gt=0)) -> Json:
    return {"ok": True, "quote": _market(request).trading.quote_sell(token, amount).to_json()}


@router.get("/tokens/{token}/holders/{holder}")
def holder_view(request: Request, token: str, holder: str) -> Json:
    return {"ok": True, "holder": _market(request).trading.holder_view(token, holder)}


@router.get("/tokens/{token}/events")
def token_events(request: Request, token: str, limit: int = Query(100, ge=1, le=1000)) -> Json:
    m = _market(request)
    m.ledger.meta(token)
    return {"ok": True, "events": m.ledger.events(token, limit=limit)}


# ---- trades ----


@router.post("/tokens/{token}/buy")
def buy(request: Request, token: str, body: BuyRequest) -> Json:
    account = _account(request, body, action="buy", token=token)
    out = _market(request).trading.buy(
        token,
        account,
        body.eth_in,
        min_tokens_out=body.min_tokens_out or 0,
        value=body.value,
    )
    return {"ok": True, "result": out}


@router.post("/tokens/{token}/sell")
def sell(request: Request, token: str, body: SellRequest) -> Json:
    account = _account(request, body, action="sell", token=token)
    out = _market(request).trading.sell(token, account, body.amount, min_eth_out=body.min_eth_out or 0)
    return {"ok": True, "result": out}


# ---- graduation ----


@router.post("/tokens/{token}/graduate")
def graduate(request: Request, token: str, body: GraduateRequest) -> Json:
    account = _account(request, body, action="graduate", token=token)
    out = _market(request).graduation.graduate(
        token,
        caller=account,
        stipend_recipient=body.stipend_recipient,
        force=bool(body.force),
    )
    return {"ok": True, "result": out}


@router.post("/tokens/{token}/claim")
def claim(request: Request, token: str, body: ClaimRequest) -> Json:
    account = _account(request, body, action="claim", token=token)
    return {"ok": True, "result": _market(request).graduation.claim(token, account)}


@router.post("/tokens/{token}/claims/sweep")
def sweep_claims(request: Request, token: str, body: SweepClaimsRequest) -> Json:
    account = _account(request, body, action="sweep_claims", token=token)
    out = _market(request).graduation.sweep_claims(token, caller=account, max_count=body.max_count)
    return {"ok": True, "result": out}


# ---- dev / test only ----


@router.post("/dev/faucet")
def dev_faucet(request: Request, body: FaucetRequest) -> Json:
    m = _market(request)
    _require_dev(m)
    credit = getattr(m.ext.bank, "credit", None)
    if not callable(credit):
        raise ApiError.bad_request("faucet_unavailable", "bank does not support credit", {})
    with m.uow.atomic():
        credit(body.account, body.amount)
    return {"ok": True, "account": body.account, "balance": m.ext.bank.balance_of(body.account)}


@router.post("/dev/tokens")
def dev_register_token(request: Request, body: RegisterTokenRequest) -> Json:
    m = _market(request)
    _require_dev(m)
    now = int(m.clock())
    meta = TokenMeta(
        token_id=body.token_id,
        name=body.name,
        symbol=body.symbol,
        creator=body.creator,
        tax_payee=body.tax_payee,
        created_at=now,
        profile=profile_from_json(body.profile),
        headerless=body.headerless,
    )
    m.register_token(meta, start_time=now if body.start_time is None else body.start_time, limits_start=body.limits_start)
    return {"ok": True, "token": m.ledger.token_json(body.token_id)}
