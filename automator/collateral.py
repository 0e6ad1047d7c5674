"""
collateral.py - Collateral adapters and the interest-bearing wrapper

A fund is parameterized by a CollateralAdapter that knows how idle collateral
is held:

- PlainCollateral: the fund wallet holds the underlying asset directly.
- WrappedCollateral: the fund wallet holds shares of a YieldWrapper and idle
  collateral is those shares converted at the wrapper's exchange rate.

Adapters never execute anything. They return Moves that the fund folds into
the operation's single PendingTransaction.
"""

from __future__ import annotations
from decimal import Decimal
from typing import List, Optional, Protocol, runtime_checkable
import logging

from .core import (
    LedgerView, Move, PendingTransaction, Unit, UnitStateChange,
    TransactionOrigin, OriginType,
    SYSTEM_WALLET, UNIT_TYPE_WRAPPED, DEFAULT_DECIMALS,
    build_transaction, mul_div_down, mul_div_up, quantize_down, to_decimal,
    _freeze_state,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class CollateralAdapter(Protocol):
    """How a fund holds, receives and pays out collateral."""

    asset: str

    def idle_balance(self, view: LedgerView, holder: str) -> Decimal:
        """Holder's collateral in underlying terms."""
        ...

    def preview_deposit(self, view: LedgerView, amount: Decimal) -> Decimal:
        """Underlying value credited to the holder for depositing amount."""
        ...

    def deposit(self, view: LedgerView, source: str, holder: str, amount: Decimal) -> List[Move]:
        """Moves bringing amount of underlying from source into holder's idle collateral."""
        ...

    def withdraw_to(self, view: LedgerView, holder: str, dest: str, amount: Decimal) -> List[Move]:
        """Moves paying amount of underlying out of holder's idle collateral to dest."""
        ...

    def convert_to_underlying(self, view: LedgerView, held_amount: Decimal) -> Decimal:
        """Value of held_amount of the held unit in underlying terms."""
        ...


# ============================================================================
# PLAIN COLLATERAL
# ============================================================================

class PlainCollateral:
    """The fund holds the underlying token itself."""

    def __init__(self, asset: str):
        self.asset = asset
        self.held_unit = asset

    def idle_balance(self, view: LedgerView, holder: str) -> Decimal:
        return view.get_balance(holder, self.asset)

    def preview_deposit(self, view: LedgerView, amount: Decimal) -> Decimal:
        return amount

    def deposit(self, view: LedgerView, source: str, holder: str, amount: Decimal) -> List[Move]:
        if source == holder or amount <= 0:
            return []
        return [Move(amount, self.asset, source, holder, "collateral_in")]

    def withdraw_to(self, view: LedgerView, holder: str, dest: str, amount: Decimal) -> List[Move]:
        if amount <= 0:
            return []
        return [Move(amount, self.asset, holder, dest, "collateral_out")]

    def convert_to_underlying(self, view: LedgerView, held_amount: Decimal) -> Decimal:
        return held_amount

    def __repr__(self) -> str:
        return f"PlainCollateral({self.asset})"


# ============================================================================
# YIELD WRAPPER (ERC4626-style)
# ============================================================================

class YieldWrapper:
    """
    An interest-bearing wrapper around an underlying token.

    The wrapper's reserve is the underlying balance of its own wallet; its
    shares are a ledger unit issued from and burned to SYSTEM_WALLET.

    Key Formulas:
        rate = reserve / supply            (1 when supply is zero)
        convert_to_shares(a) = floor(a * supply / reserve)
        convert_to_assets(s) = floor(s * reserve / supply)

    Interest accrues by moving underlying into the reserve (accrue()), which
    raises the rate for every holder. The rate never decreases absent losses.
    """

    def __init__(self, symbol: str, underlying: str, wallet: str, decimals: int = DEFAULT_DECIMALS):
        self.symbol = symbol
        self.underlying = underlying
        self.wallet = wallet
        self.decimals = decimals

    def create_unit(self, name: Optional[str] = None) -> Unit:
        return Unit(
            symbol=self.symbol,
            name=name or f"Wrapped {self.underlying}",
            unit_type=UNIT_TYPE_WRAPPED,
            min_balance=Decimal("0"),
            decimal_places=self.decimals,
            _frozen_state=_freeze_state({
                'underlying': self.underlying,
                'reserve_wallet': self.wallet,
            }),
        )

    def total_assets(self, view: LedgerView) -> Decimal:
        return view.get_balance(self.wallet, self.underlying)

    def total_supply(self, view: LedgerView) -> Decimal:
        return -view.get_balance(SYSTEM_WALLET, self.symbol)

    def convert_to_shares(self, view: LedgerView, assets: Decimal) -> Decimal:
        supply = self.total_supply(view)
        reserve = self.total_assets(view)
        if supply == 0 or reserve == 0:
            return quantize_down(assets, self.decimals)
        return mul_div_down(assets, supply, reserve, self.decimals)

    def convert_to_assets(self, view: LedgerView, shares: Decimal) -> Decimal:
        supply = self.total_supply(view)
        if supply == 0:
            return quantize_down(shares, self.decimals)
        return mul_div_down(shares, self.total_assets(view), supply, self.decimals)

    def deposit(self, view: LedgerView, assets: Decimal, source: str, receiver: str) -> List[Move]:
        """
        Moves depositing assets from source and minting shares to receiver.

        Raises:
            ValueError: If the deposit would mint zero shares
        """
        shares = self.convert_to_shares(view, assets)
        if shares <= 0:
            raise ValueError(f"deposit of {assets} {self.underlying} mints no {self.symbol}")
        return [
            Move(assets, self.underlying, source, self.wallet, "wrapper_deposit"),
            Move(shares, self.symbol, SYSTEM_WALLET, receiver, "wrapper_mint"),
        ]

    def withdraw(self, view: LedgerView, assets: Decimal, owner: str, receiver: str) -> List[Move]:
        """Moves burning owner's shares (rounded up) and paying assets to receiver."""
        supply = self.total_supply(view)
        reserve = self.total_assets(view)
        if supply == 0 or reserve == 0:
            shares = assets
        else:
            shares = mul_div_up(assets, supply, reserve, self.decimals)
        return [
            Move(shares, self.symbol, owner, SYSTEM_WALLET, "wrapper_burn"),
            Move(assets, self.underlying, self.wallet, receiver, "wrapper_withdraw"),
        ]

    def transfer(self, owner: str, receiver: str, shares: Decimal) -> List[Move]:
        return [Move(shares, self.symbol, owner, receiver, "wrapper_transfer")]

    def accrue(self, view: LedgerView, amount: Decimal, source: str = SYSTEM_WALLET) -> PendingTransaction:
        """
        Build a transaction crediting amount of interest to the reserve.

        Example:
            ledger.execute(wrapper.accrue(ledger, Decimal("5")))
        """
        amount = to_decimal(amount)
        if amount <= 0:
            raise ValueError(f"interest must be positive, got {amount}")
        logger.debug("wrapper %s accrues %s %s", self.symbol, amount, self.underlying)
        origin = TransactionOrigin(OriginType.EXTERNAL, self.wallet, self.symbol, "INTEREST")
        state = view.get_unit_state(self.symbol)
        new_state = {**state, 'interest_accrued': to_decimal(state.get('interest_accrued', 0)) + amount}
        return build_transaction(
            view,
            [Move(amount, self.underlying, source, self.wallet, "wrapper_interest")],
            [UnitStateChange(self.symbol, state, new_state)],
            origin=origin,
        )

    def __repr__(self) -> str:
        return f"YieldWrapper({self.symbol} over {self.underlying})"


class WrappedCollateral:
    """The fund holds YieldWrapper shares; idle collateral is their underlying value."""

    def __init__(self, wrapper: YieldWrapper):
        self.wrapper = wrapper
        self.asset = wrapper.underlying
        self.held_unit = wrapper.symbol

    def idle_balance(self, view: LedgerView, holder: str) -> Decimal:
        return self.wrapper.convert_to_assets(view, view.get_balance(holder, self.wrapper.symbol))

    def preview_deposit(self, view: LedgerView, amount: Decimal) -> Decimal:
        shares = self.wrapper.convert_to_shares(view, amount)
        return self.wrapper.convert_to_assets(view, shares)

    def deposit(self, view: LedgerView, source: str, holder: str, amount: Decimal) -> List[Move]:
        """
        Moves wrapping amount for holder.

        An amount worth less than one wrapper share is credited to the
        wrapper's reserve instead, where it accrues to every share holder.
        """
        if amount <= 0:
            return []
        if self.wrapper.convert_to_shares(view, amount) <= 0:
            logger.debug("%s below one %s share, credited to reserve", amount, self.wrapper.symbol)
            return [Move(amount, self.asset, source, self.wrapper.wallet, "wrapper_dust")]
        return self.wrapper.deposit(view, amount, source, holder)

    def withdraw_to(self, view: LedgerView, holder: str, dest: str, amount: Decimal) -> List[Move]:
        if amount <= 0:
            return []
        return self.wrapper.withdraw(view, amount, holder, dest)

    def convert_to_underlying(self, view: LedgerView, held_amount: Decimal) -> Decimal:
        return self.wrapper.convert_to_assets(view, held_amount)

    def __repr__(self) -> str:
        return f"WrappedCollateral({self.wrapper!r})"
