from __future__ import annotations

from launchcurve.curve.fees import MAX_FINAL_TAX, UNBOUNDED, FeeResolver, FeeSchedule, FeeSplit, split_fees
from launchcurve.curve.pricing import (
    TOKEN_UNIT,
    VIRTUAL_OFFSET,
    eth_at_supply_from_genesis,
    eth_for_tokens,
    marginal_price_at,
    tokens_for_eth,
)
from launchcurve.curve.profiles import (
    LP_BURN,
    LP_LOCK,
    AdvancedProfile,
    BasicProfile,
    CurveTerms,
    SuperSimpleProfile,
    TokenProfile,
    ZeroSimpleProfile,
    profile_from_json,
    profile_to_json,
    validate_profile,
)

__all__ = [
    "MAX_FINAL_TAX",
    "UNBOUNDED",
    "FeeResolver",
    "FeeSchedule",
    "FeeSplit",
    "split_fees",
    "TOKEN_UNIT",
    "VIRTUAL_OFFSET",
    "eth_at_supply_from_genesis",
    "eth_for_tokens",
    "marginal_price_at",
    "tokens_for_eth",
    "LP_BURN",
    "LP_LOCK",
    "AdvancedProfile",
    "BasicProfile",
    "CurveTerms",
    "SuperSimpleProfile",
    "TokenProfile",
    "ZeroSimpleProfile",
    "profile_from_json",
    "profile_to_json",
    "validate_profile",
]
