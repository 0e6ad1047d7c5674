"""
test_fund_scenarios.py - End-to-end fund lifecycle scenarios

Tests complete fund lifecycles:
- Deposit, originate, settle with a gain, redeem, harvest
- Redemption window boundaries
- Fee collection
- Several depositors entering at different prices
- Losses and break-even settlements
- Staggered expiries
- Interest-bearing collateral
- Redemptions blocked while collateral is committed
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from automator import (
    InMemoryVenue, PlainCollateral, WrappedCollateral, TimeSeriesOracle, FundConfig,
    InvalidRedemption, InsufficientCollateralToRedeem, NoEnoughCollateral, ZeroFee,
    SYSTEM_WALLET, BURN_WALLET,
)
from tests.conftest import (
    build_factory, build_fund, build_ledger, make_order, mint, range_payoff, settle_request,
    EXPIRY, IN_RANGE_PRICE, OUT_OF_RANGE_PRICE, START, STRIKES_B,
    FUND_WALLET, WRAPPED_FUND_WALLET, OWNER, VENUE_A, VENUE_FEES,
)

D = Decimal
LOCK = timedelta(days=7)
WINDOW = timedelta(days=3)
TOLERANCE = D("1e-14")


def _settle(ledger, oracle, fund, order, price=IN_RANGE_PRICE):
    ledger.advance_time(order.expiry)
    if not oracle.has_settled(order.expiry):
        oracle.settle(order.expiry, price)
    return fund.burn_products("keeper", [settle_request(order)])


class TestProfitableProduct:
    """One product, settled inside its range."""

    def test_settlement_raises_price_per_share(self, ledger, oracle, funded_fund):
        fund = funded_fund
        order = make_order()
        assert mint(fund, order) == D("90")

        returned = _settle(ledger, oracle, fund, order)

        # venue pays 100 less 3% of the 10 profit; fund gains 9.7 and keeps 1% as fee
        assert returned == D("99.7")
        assert ledger.get_balance(VENUE_FEES, "USDC") == D("0.3")
        assert fund.total_fee() == D("0.097")
        assert fund.total_collateral() == D("109.603")
        assert fund.get_price_per_share() == D("1.09603")
        assert fund.total_shares() == D("100")
        assert fund.outstanding_positions() == ()

    def test_full_cycle_to_redemption(self, ledger, oracle, funded_fund):
        fund = funded_fund
        order = make_order()
        mint(fund, order)
        _settle(ledger, oracle, fund, order)

        shares = fund.balance_of("alice")
        fund.withdraw("alice", shares)
        ledger.advance_time(EXPIRY + LOCK)
        paid = fund.claim_redemptions("alice")

        assert abs(paid - D("109.603")) < TOLERANCE
        assert fund.total_shares() == D("1e-15")
        assert fund.harvest() == D("0.097")

        # only the burned floor's value is left behind
        assert ledger.get_balance(FUND_WALLET, "USDC") < D("1e-14")
        assert ledger.get_balance(BURN_WALLET, "afUSDC") == D("1e-15")

    def test_collateral_is_conserved(self, ledger, oracle, funded_fund):
        order = make_order()
        mint(funded_fund, order)
        _settle(ledger, oracle, funded_fund, order)
        assert ledger.total_supply("USDC") == D("0")
        assert -ledger.get_balance(SYSTEM_WALLET, "USDC") == D("23000")


class TestRedemptionWindow:

    def test_claim_opens_after_lock_period(self, ledger, funded_fund):
        funded_fund.withdraw("alice", D("50"))

        ledger.advance_time(START + LOCK - timedelta(seconds=1))
        with pytest.raises(InvalidRedemption):
            funded_fund.claim_redemptions("alice")

        ledger.advance_time(START + LOCK)
        assert funded_fund.claim_redemptions("alice") == D("50")

    def test_missed_window_requires_new_request(self, ledger, funded_fund):
        funded_fund.withdraw("alice", D("50"))
        ledger.advance_time(START + LOCK + WINDOW)
        with pytest.raises(InvalidRedemption):
            funded_fund.claim_redemptions("alice")

        funded_fund.withdraw("alice", D("50"))
        ledger.advance_time(START + LOCK + WINDOW + LOCK)
        assert funded_fund.claim_redemptions("alice") == D("50")

    def test_claim_during_window_last_second(self, ledger, funded_fund):
        funded_fund.withdraw("alice", D("50"))
        ledger.advance_time(START + LOCK + WINDOW - timedelta(seconds=1))
        assert funded_fund.claim_redemptions("alice") == D("50")


class TestFees:

    def test_harvest_before_any_gain(self, funded_fund):
        with pytest.raises(ZeroFee):
            funded_fund.harvest()

    def test_harvest_after_gain(self, ledger, oracle, funded_fund):
        order = make_order()
        mint(funded_fund, order)
        _settle(ledger, oracle, funded_fund, order)
        pps = funded_fund.get_price_per_share()

        assert funded_fund.harvest() == D("0.097")
        assert funded_fund.total_fee() == D("0")
        assert ledger.get_balance(OWNER, "USDC") == D("0.097")
        assert funded_fund.get_price_per_share() == pps

    def test_fees_accumulate_across_settlements(self, ledger, oracle, funded_fund):
        first = make_order(total=D("50"), maker_collateral=D("5"))
        second = make_order(total=D("50"), maker_collateral=D("5"), expiry=EXPIRY + timedelta(days=7))
        mint(funded_fund, first, second)
        _settle(ledger, oracle, funded_fund, first)
        _settle(ledger, oracle, funded_fund, second)

        # each: payout 50 - 3% of 5 = 49.85, gain 4.85, fee 0.0485
        assert funded_fund.total_fee() == D("0.097")
        assert funded_fund.harvest() == D("0.097")


class TestMultipleDepositors:

    def test_later_depositor_enters_at_higher_price(self, ledger, oracle, funded_fund):
        order = make_order()
        mint(funded_fund, order)
        _settle(ledger, oracle, funded_fund, order)

        bob_shares = funded_fund.deposit("bob", D("109.603"))
        assert bob_shares == D("100")
        assert funded_fund.get_price_per_share() == D("1.09603")

        funded_fund.withdraw("alice", funded_fund.balance_of("alice"))
        funded_fund.withdraw("bob", bob_shares)
        ledger.advance_time(EXPIRY + LOCK)
        alice_paid = funded_fund.claim_redemptions("alice")
        bob_paid = funded_fund.claim_redemptions("bob")

        assert abs(bob_paid - D("109.603")) < TOLERANCE
        assert abs(alice_paid - bob_paid) < TOLERANCE

    def test_deposit_while_collateral_committed(self, ledger, oracle, funded_fund):
        mint(funded_fund, make_order())
        # committed collateral still counts toward NAV
        assert funded_fund.deposit("bob", D("50")) == D("50")
        assert funded_fund.total_assets() == D("150")
        assert funded_fund.get_unredeemed_collateral() == D("60")

    def test_shares_follow_transfers(self, ledger, oracle, funded_fund):
        funded_fund.transfer("alice", "carol", D("40"))
        funded_fund.withdraw("carol", D("40"))
        ledger.advance_time(START + LOCK)
        assert funded_fund.claim_redemptions("carol") == D("40")
        assert ledger.get_balance("carol", "USDC") == D("1040")


class TestLossesAndBreakEven:

    def test_loss_lowers_price_without_fee(self, ledger, oracle, funded_fund):
        order = make_order()
        mint(funded_fund, order)
        returned = _settle(ledger, oracle, funded_fund, order, OUT_OF_RANGE_PRICE)

        # minter keeps 80% of the 100 total; no profit, no venue fee
        assert returned == D("80")
        assert ledger.get_balance(VENUE_A, "USDC") == D("20")
        assert funded_fund.total_fee() == D("0")
        assert funded_fund.get_price_per_share() == D("0.9")
        with pytest.raises(ZeroFee):
            funded_fund.harvest()

    def test_break_even(self):
        ledger, fund, oracle = build_fund(venue_payoff=lambda strikes, risk, price: D("0.9"))
        fund.deposit("alice", D("100"))
        order = make_order()
        mint(fund, order)
        assert _settle(ledger, oracle, fund, order) == D("90")
        assert fund.total_fee() == D("0")
        assert ledger.get_balance(VENUE_FEES, "USDC") == D("0")
        assert fund.get_price_per_share() == D("1")


class TestStaggeredExpiries:

    def test_only_expired_positions_settle(self, ledger, oracle, funded_fund):
        near = make_order(total=D("40"), maker_collateral=D("4"))
        far = make_order(total=D("40"), maker_collateral=D("4"), strikes=STRIKES_B, expiry=EXPIRY + timedelta(days=14))
        mint(funded_fund, near, far)
        assert funded_fund.get_unredeemed_collateral() == D("28")

        ledger.advance_time(EXPIRY)
        oracle.settle(EXPIRY, IN_RANGE_PRICE)
        assert funded_fund.burn_expired_products("keeper") == D("39.88")
        (remaining,) = funded_fund.outstanding_positions()
        assert remaining.key == far.position_key

        # freed collateral can be committed again
        assert funded_fund.get_unredeemed_collateral() > D("60")
        late = make_order(
            total=D("50"), maker_collateral=D("5"),
            expiry=EXPIRY + timedelta(days=21), deadline=EXPIRY + timedelta(days=1),
        )
        assert mint(funded_fund, late) == D("45")

    def test_time_series_oracle(self):
        ledger = build_ledger()
        oracle = TimeSeriesOracle([(START, D("29500"))])
        venue = InMemoryVenue(VENUE_A, "USDC", range_payoff(), fee_rate=D("0.03"), fee_wallet=VENUE_FEES)
        fund = build_factory().create_fund(
            ledger, "afUSDC", "Automator USDC", PlainCollateral("USDC"), FUND_WALLET, OWNER,
            config=FundConfig(fee_rate=D("0.01")), venues=[venue], oracle=oracle,
        )
        fund.deposit("alice", D("100"))
        mint(fund, make_order())

        ledger.advance_time(EXPIRY)
        assert fund.burn_expired_products("keeper") == D("0")
        oracle.add_price(EXPIRY - timedelta(hours=1), D("29000"))
        oracle.add_price(EXPIRY + timedelta(minutes=5), D("35000"))
        assert fund.burn_expired_products("keeper") == D("99.7")


class TestCommittedCollateral:

    def test_claim_blocked_until_settlement(self, ledger, oracle, funded_fund):
        order = make_order()
        mint(funded_fund, order)
        funded_fund.withdraw("alice", D("50"))
        ledger.advance_time(START + LOCK)
        with pytest.raises(InsufficientCollateralToRedeem):
            funded_fund.claim_redemptions("alice")

        _settle(ledger, oracle, funded_fund, order)
        funded_fund.withdraw("alice", D("50"))
        ledger.advance_time(EXPIRY + LOCK)
        paid = funded_fund.claim_redemptions("alice")
        assert paid == D("54.8015")

    def test_pending_redemption_blocks_new_products(self, funded_fund):
        funded_fund.withdraw("alice", D("95"))
        with pytest.raises(NoEnoughCollateral):
            mint(funded_fund, make_order())


class TestWrappedCollateral:

    def test_interest_accrues_to_depositors(self, ledger, wrapper, wrapped_fund):
        wrapped_fund.deposit("bob", D("100"))
        assert ledger.get_balance(WRAPPED_FUND_WALLET, "aUSDC") == D("100")

        ledger.execute(wrapper.accrue(ledger, D("10")))
        assert wrapped_fund.total_assets() == D("110")
        assert wrapped_fund.get_price_per_share() == D("1.1")

        wrapped_fund.withdraw("bob", wrapped_fund.balance_of("bob"))
        ledger.advance_time(START + LOCK)
        paid = wrapped_fund.claim_redemptions("bob")
        assert abs(paid - D("110")) < TOLERANCE
        assert abs(ledger.get_balance("bob", "USDC") - D("1010")) < TOLERANCE

    def test_product_cycle_rewraps_payout(self, ledger, oracle, wrapper, wrapped_fund):
        wrapped_fund.deposit("bob", D("100"))
        order = make_order()
        mint(wrapped_fund, order)
        assert ledger.get_balance(WRAPPED_FUND_WALLET, "aUSDC") == D("10")
        assert ledger.get_balance(VENUE_A, "USDC") == D("100")

        assert _settle(ledger, oracle, wrapped_fund, order) == D("99.7")
        assert ledger.get_balance(WRAPPED_FUND_WALLET, "USDC") == D("0")
        assert ledger.get_balance(WRAPPED_FUND_WALLET, "aUSDC") == D("109.7")
        assert wrapped_fund.total_collateral() == D("109.603")
        assert wrapped_fund.harvest() == D("0.097")
        assert ledger.get_balance(OWNER, "USDC") == D("0.097")

    def test_payout_below_one_wrapper_share_settles(self, ledger, factory, oracle, config, wrapper):
        venue = InMemoryVenue(VENUE_A, "USDC", lambda strikes, risk, price: D("1e-20"),
                              fee_rate=D("0.03"), fee_wallet=VENUE_FEES)
        fund = factory.create_fund(
            ledger, "afaUSDC", "Automator aUSDC", WrappedCollateral(wrapper),
            WRAPPED_FUND_WALLET, OWNER, config=config, venues=[venue], oracle=oracle,
        )
        fund.deposit("bob", D("100"))
        ledger.execute(wrapper.accrue(ledger, D("50")))
        order = make_order()
        mint(fund, order)
        assert ledger.get_balance(WRAPPED_FUND_WALLET, "aUSDC") == D("40")

        assert _settle(ledger, oracle, fund, order) == D("1e-18")

        assert fund.outstanding_positions() == ()
        assert ledger.get_balance(WRAPPED_FUND_WALLET, "USDC") == D("0")
        assert ledger.get_balance(WRAPPED_FUND_WALLET, "aUSDC") == D("40")
        assert fund.total_assets() == D("60") + D("1e-18")
        assert fund.total_fee() == D("0")
