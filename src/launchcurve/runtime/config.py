# src/launchcurve/runtime/config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

Json = Dict[str, Any]

WEI = 10**18

PROFILE_KINDS = ("basic", "advanced", "super_simple", "zero_simple")


def _as_int(v: Any, default: int) -> int:
    if v is None or isinstance(v, bool):
        return int(default)
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


def _as_addresses(v: Any, default: Tuple[str, ...]) -> Tuple[str, ...]:
    # list from a config file, or a comma-separated string from env
    if v is None:
        return tuple(default)
    items = v.split(",") if isinstance(v, str) else list(v) if isinstance(v, (list, tuple)) else [v]
    return tuple(str(a).strip() for a in items if str(a).strip())


def _default_platform_fees() -> Dict[str, int]:
    return {"basic": 100, "advanced": 125, "super_simple": 75, "zero_simple": 50}


def _default_gas_tiers() -> Tuple[Tuple[int, int], ...]:
    # (max holders, gas units) for a direct airdrop graduation
    return ((50, 3_000_000), (150, 6_000_000), (300, 12_000_000))


@dataclass(frozen=True)
class EngineConfig:
    mode: str  # "dev" | "test" | "prod"

    # Empty db_path keeps the curve ledger in memory only.
    db_path: str

    api_host: str
    api_port: int
    log_level: str
    require_signatures: bool

    treasury: str
    # Extra accounts allowed to force graduation and sweep claims (the ledger
    # owner always is). With signatures on these are ed25519 pubkeys.
    admins: Tuple[str, ...] = ()
    platform_fee_bps: Dict[str, int] = field(default_factory=_default_platform_fees)
    treasury_tax_skim_pct: int = 10
    overshoot_tolerance_bps: int = 500
    creator_grace_seconds: int = 60

    graduation_fee_wei: int = 2 * WEI // 10
    lock_fee_wei: int = 5 * WEI // 100
    min_pool_eth_wei: int = WEI
    max_pool_eth_wei: int = 100 * WEI

    claim_mode_threshold: int = 300
    claim_sweep_batch: int = 100

    stipend_gas_tiers: Tuple[Tuple[int, int], ...] = field(default_factory=_default_gas_tiers)
    stipend_claim_mode_gas: int = 2_500_000
    stipend_multiplier_bps: int = 12_000
    stipend_floor_wei: int = WEI // 1000
    stipend_cap_wei: int = 5 * WEI // 100

    oracle_max_age_seconds: int = 3600


_ALLOWED_MODES = {"dev", "test", "prod"}


def validate_engine_config(cfg: EngineConfig) -> None:
    """Fail-fast validation for operator config."""

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if not str(cfg.treasury or "").strip():
        raise ValueError("treasury must be a non-empty address")

    if not isinstance(cfg.admins, tuple) or any(not str(a).strip() for a in cfg.admins):
        raise ValueError(f"admins must be a tuple of non-empty addresses; got: {cfg.admins!r}")
    if len(set(cfg.admins)) != len(cfg.admins):
        raise ValueError("admins must not contain duplicates")

    for kind in PROFILE_KINDS:
        if kind not in cfg.platform_fee_bps:
            raise ValueError(f"platform_fee_bps is missing profile kind {kind!r}")
        bps = int(cfg.platform_fee_bps[kind])
        if bps < 0 or bps >= 10_000:
            raise ValueError(f"platform_fee_bps[{kind}] must be 0..9999; got: {bps}")

    if not 0 <= int(cfg.treasury_tax_skim_pct) <= 100:
        raise ValueError(f"treasury_tax_skim_pct must be 0..100; got: {cfg.treasury_tax_skim_pct}")

    if not 0 <= int(cfg.overshoot_tolerance_bps) <= 10_000:
        raise ValueError(f"overshoot_tolerance_bps must be 0..10000; got: {cfg.overshoot_tolerance_bps}")

    if int(cfg.creator_grace_seconds) < 0:
        raise ValueError("creator_grace_seconds must be >= 0")

    if int(cfg.graduation_fee_wei) < 0 or int(cfg.lock_fee_wei) < 0:
        raise ValueError("graduation and lock fees must be >= 0")

    if int(cfg.min_pool_eth_wei) > int(cfg.max_pool_eth_wei):
        raise ValueError("min_pool_eth_wei must be <= max_pool_eth_wei")

    if int(cfg.claim_mode_threshold) <= 0 or int(cfg.claim_sweep_batch) <= 0:
        raise ValueError("claim_mode_threshold and claim_sweep_batch must be > 0")

    last = 0
    for max_holders, gas_units in cfg.stipend_gas_tiers:
        if int(max_holders) <= last or int(gas_units) <= 0:
            raise ValueError("stipend_gas_tiers must be strictly increasing with positive gas units")
        last = int(max_holders)

    if int(cfg.stipend_multiplier_bps) < 10_000:
        raise ValueError("stipend_multiplier_bps must be >= 10000")

    if int(cfg.stipend_floor_wei) > int(cfg.stipend_cap_wei):
        raise ValueError("stipend_floor_wei must be <= stipend_cap_wei")

    if int(cfg.oracle_max_age_seconds) <= 0:
        raise ValueError("oracle_max_age_seconds must be > 0")


def default_engine_config() -> EngineConfig:
    return EngineConfig(
        # Production-safe defaults: signatures required, durable storage.
        mode="prod",
        db_path="./data/launchcurve.db",
        api_host="127.0.0.1",
        api_port=8080,
        log_level="INFO",
        require_signatures=True,
        treasury="treasury",
    )


def _read_raw(path: str) -> Json:
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in {".yaml", ".yml"}:
        import yaml

        raw = yaml.safe_load(text)
    else:
        raw = json.loads(text)
    if not isinstance(raw, dict):
        raise ValueError("engine config must be a mapping")
    return raw


def config_from_mapping(raw: Json, *, base: Optional[EngineConfig] = None) -> EngineConfig:
    d = base or default_engine_config()

    fees = dict(d.platform_fee_bps)
    raw_fees = raw.get("platform_fee_bps")
    if isinstance(raw_fees, dict):
        for k, v in raw_fees.items():
            fees[str(k)] = _as_int(v, fees.get(str(k), 0))

    tiers = d.stipend_gas_tiers
    raw_tiers = raw.get("stipend_gas_tiers")
    if isinstance(raw_tiers, list):
        tiers = tuple((_as_int(t[0], 0), _as_int(t[1], 0)) for t in raw_tiers if isinstance(t, (list, tuple)) and len(t) == 2)

    return EngineConfig(
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        db_path=str(raw.get("db_path", d.db_path) or ""),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        log_level=_as_str(raw.get("log_level"), d.log_level),
        require_signatures=_as_bool(raw.get("require_signatures"), d.require_signatures),
        treasury=_as_str(raw.get("treasury"), d.treasury),
        admins=_as_addresses(raw.get("admins"), d.admins),
        platform_fee_bps=fees,
        treasury_tax_skim_pct=_as_int(raw.get("treasury_tax_skim_pct"), d.treasury_tax_skim_pct),
        overshoot_tolerance_bps=_as_int(raw.get("overshoot_tolerance_bps"), d.overshoot_tolerance_bps),
        creator_grace_seconds=_as_int(raw.get("creator_grace_seconds"), d.creator_grace_seconds),
        graduation_fee_wei=_as_int(raw.get("graduation_fee_wei"), d.graduation_fee_wei),
        lock_fee_wei=_as_int(raw.get("lock_fee_wei"), d.lock_fee_wei),
        min_pool_eth_wei=_as_int(raw.get("min_pool_eth_wei"), d.min_pool_eth_wei),
        max_pool_eth_wei=_as_int(raw.get("max_pool_eth_wei"), d.max_pool_eth_wei),
        claim_mode_threshold=_as_int(raw.get("claim_mode_threshold"), d.claim_mode_threshold),
        claim_sweep_batch=_as_int(raw.get("claim_sweep_batch"), d.claim_sweep_batch),
        stipend_gas_tiers=tiers,
        stipend_claim_mode_gas=_as_int(raw.get("stipend_claim_mode_gas"), d.stipend_claim_mode_gas),
        stipend_multiplier_bps=_as_int(raw.get("stipend_multiplier_bps"), d.stipend_multiplier_bps),
        stipend_floor_wei=_as_int(raw.get("stipend_floor_wei"), d.stipend_floor_wei),
        stipend_cap_wei=_as_int(raw.get("stipend_cap_wei"), d.stipend_cap_wei),
        oracle_max_age_seconds=_as_int(raw.get("oracle_max_age_seconds"), d.oracle_max_age_seconds),
    )


def read_engine_config_file(path: str) -> EngineConfig:
    cfg = config_from_mapping(_read_raw(path))
    validate_engine_config(cfg)
    return cfg


def _apply_env_overrides(cfg: EngineConfig) -> EngineConfig:
    env = os.environ
    return replace(
        cfg,
        mode=_as_str(env.get("LAUNCHCURVE_MODE"), cfg.mode).strip().lower(),
        db_path=env.get("LAUNCHCURVE_DB_PATH", cfg.db_path),
        api_host=_as_str(env.get("LAUNCHCURVE_API_HOST"), cfg.api_host),
        api_port=_as_int(env.get("LAUNCHCURVE_API_PORT"), cfg.api_port),
        log_level=_as_str(env.get("LAUNCHCURVE_LOG_LEVEL"), cfg.log_level),
        require_signatures=_as_bool(env.get("LAUNCHCURVE_REQUIRE_SIGNATURES"), cfg.require_signatures),
        treasury=_as_str(env.get("LAUNCHCURVE_TREASURY"), cfg.treasury),
        admins=_as_addresses(env.get("LAUNCHCURVE_ADMINS"), cfg.admins),
    )


def load_engine_config(*, config_path: Optional[str] = None) -> EngineConfig:
    p = config_path or os.environ.get("LAUNCHCURVE_CONFIG_PATH")
    cfg = config_from_mapping(_read_raw(p)) if p else default_engine_config()
    cfg = _apply_env_overrides(cfg)
    validate_engine_config(cfg)
    return cfg
