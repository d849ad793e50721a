"""launchcurve.curve.pricing

Closed-form math over the virtual constant-product curve.

    token_reserve = total_supply - tokens_sold
    eth_reserve   = eth_raised + VIRTUAL_OFFSET
    token_reserve * eth_reserve = k

The virtual offset keeps the price defined at zero real liquidity. Every
derived quantity is computed with one truncating division, which always
rounds toward the protocol (fewer tokens out on a buy, less ETH out on a
sell). Repeating buy-then-sell can never be profitable.

All functions are pure and take/return integers in smallest units.
"""

from __future__ import annotations

from launchcurve.runtime.errors import CurveError

VIRTUAL_OFFSET = 10**18

# One whole token in smallest units; marginal prices are quoted per whole token.
TOKEN_UNIT = 10**18


def _require_supply(total_supply: int) -> None:
    if total_supply <= 0:
        raise CurveError("arithmetic", "bad_total_supply", {"total_supply": total_supply})


def tokens_for_eth(total_supply: int, eth_raised: int, tokens_sold: int, eth_in: int) -> int:
    """Tokens issued for `eth_in` entering the curve.

    Equal to token_reserve - k / (eth_reserve + eth_in), truncated.
    """
    _require_supply(total_supply)
    if eth_in <= 0:
        raise CurveError("arithmetic", "zero_eth_in", {"eth_in": eth_in})
    if tokens_sold >= total_supply:
        raise CurveError("arithmetic", "sold_out", {"tokens_sold": tokens_sold, "total_supply": total_supply})

    token_reserve = total_supply - tokens_sold
    eth_reserve = eth_raised + VIRTUAL_OFFSET
    return token_reserve * eth_in // (eth_reserve + eth_in)


def eth_for_tokens(total_supply: int, eth_raised: int, tokens_sold: int, token_in: int) -> int:
    """ETH released for `token_in` returned to the curve, truncated."""
    _require_supply(total_supply)
    if token_in == 0:
        return 0
    if token_in < 0 or token_in > tokens_sold:
        raise CurveError("arithmetic", "oversell", {"token_in": token_in, "tokens_sold": tokens_sold})

    token_reserve = total_supply - tokens_sold
    eth_reserve = eth_raised + VIRTUAL_OFFSET
    return eth_reserve * token_in // (token_reserve + token_in)


def eth_at_supply_from_genesis(total_supply: int, supply: int) -> int:
    """ETH a curve must have raised from genesis to have issued `supply`."""
    _require_supply(total_supply)
    if supply <= 0 or supply >= total_supply:
        raise CurveError("arithmetic", "bad_supply_point", {"supply": supply, "total_supply": total_supply})
    return supply * VIRTUAL_OFFSET // (total_supply - supply)


def marginal_price_at(total_supply: int, supply: int) -> int:
    """Wei paid for one whole token returned at a hypothetical supply point."""
    eth_raised = eth_at_supply_from_genesis(total_supply, supply)
    return eth_for_tokens(total_supply, eth_raised, supply, TOKEN_UNIT)

