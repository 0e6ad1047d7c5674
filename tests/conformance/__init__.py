"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the automator fund.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. test_nav_conservation.py - Shareholder value only moves with deposits, claims and realized P&L
2. test_price_per_share.py - Price per share never falls without a realized loss
3. test_redemption_queue.py - Single active redemption, claim-window boundaries
4. test_order_replay.py - A signed order is usable once
5. test_transfer_reservation.py - Pending redemptions are not transferable
6. test_fund_atomicity.py - Failed operations leave no trace

These tests use hypothesis for property-based testing.
"""
