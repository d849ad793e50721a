"""
launchcurve: external collaborator interfaces

The curve engine never talks to a concrete chain, token contract, AMM or
oracle. Everything it needs from the outside world goes through these
protocols so the engine stays pure and testable.

Notes:
  - every amount is an int in smallest units (wei / token base units)
  - addresses are opaque strings
  - a failing collaborator raises CurveError("settlement_failed", ...); the
    engine never inspects a boolean return for success

Concrete in-process implementations live in launchcurve.external.memory.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Tuple, runtime_checkable


# ---------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------

Address = str

# Tokens and LP positions sent here are gone for good.
DEAD_ADDRESS: Address = "0x000000000000000000000000000000000000dEaD"


@dataclass(frozen=True, slots=True)
class TaxConfig:
    """Transfer-tax settings handed to the real token at deployment."""

    payee: Address
    final_tax_rate: int


@dataclass(frozen=True, slots=True)
class LiquidityPosition:
    lp_token: Address
    liquidity: int


# ---------------------------------------------------------------------
# Value movement
# ---------------------------------------------------------------------


@runtime_checkable
class NativeBank(Protocol):
    """Native-currency custody. transfer() may invoke recipient code."""

    def balance_of(self, account: Address) -> int: ...

    def transfer(self, sender: Address, recipient: Address, amount: int) -> None: ...


# ---------------------------------------------------------------------
# Real token
# ---------------------------------------------------------------------


@runtime_checkable
class TokenDeployer(Protocol):
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
    ) -> Address: ...

    def mint(self, token: Address, to: Address, amount: int) -> None: ...

    def transfer(self, token: Address, sender: Address, recipient: Address, amount: int) -> None: ...

    def balance_of(self, token: Address, holder: Address) -> int: ...


# ---------------------------------------------------------------------
# Liquidity
# ---------------------------------------------------------------------


@runtime_checkable
class LiquidityVenue(Protocol):
    def add_liquidity(
        self, *, token: Address, provider: Address, token_amount: int, eth_amount: int
    ) -> LiquidityPosition: ...

    def swap_eth_for_tokens(self, *, token: Address, payer: Address, eth_in: int, recipient: Address) -> int: ...

    def transfer_lp(self, lp_token: Address, sender: Address, recipient: Address, amount: int) -> None: ...

    def lp_balance_of(self, lp_token: Address, holder: Address) -> int: ...


@runtime_checkable
class LiquidityLocker(Protocol):
    """lock() is paid: the caller sends `fee` of native currency along with the position."""

    def lock(
        self, *, lp_token: Address, sender: Address, amount: int, duration: int, owner: Address, fee: int
    ) -> str: ...


# ---------------------------------------------------------------------
# Oracles
# ---------------------------------------------------------------------


@runtime_checkable
class PriceOracle(Protocol):
    def eth_usd(self) -> Tuple[int, int]:
        """(price with 8 decimals, updated_at seconds)."""
        ...


@runtime_checkable
class GasOracle(Protocol):
    def gas_price(self) -> Tuple[int, int]:
        """(wei per gas, updated_at seconds)."""
        ...

    def base_fee(self) -> int: ...


@dataclass(frozen=True)
class Collaborators:
    """Everything the engine reaches outside its own ledger."""

    bank: NativeBank
    tokens: TokenDeployer
    venue: LiquidityVenue
    locker: LiquidityLocker
    price_oracle: PriceOracle
    gas_oracle: GasOracle
