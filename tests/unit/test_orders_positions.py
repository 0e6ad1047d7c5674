"""
test_orders_positions.py - Unit tests for maker orders and the position book

Tests:
- MakerOrder validation and fund collateral
- PositionKey aggregation identity
- PositionBook commit / release / expired
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from automator import (
    MakerOrder, PositionKey, SettlementRequest, PositionBook, OutstandingPosition,
    NoEnoughCollateral, PositionNotFound,
)

EXPIRY = datetime(2024, 8, 15, 8, 0)
DEADLINE = datetime(2024, 8, 2)


def _order(**overrides):
    fields = dict(
        venue="0xaa",
        total_collateral=Decimal("100"),
        expiry=EXPIRY,
        strike_parameters=(Decimal("28000"), Decimal("30000")),
        maker_collateral=Decimal("10"),
        deadline=DEADLINE,
        maker="0xmaker",
    )
    fields.update(overrides)
    return MakerOrder(**fields)


class TestMakerOrder:

    def test_fund_collateral(self):
        assert _order().fund_collateral == Decimal("90")

    def test_numeric_inputs_coerced(self):
        order = _order(total_collateral=100, maker_collateral="10", strike_parameters=(1, 2.5))
        assert order.total_collateral == Decimal("100")
        assert order.strike_parameters == (Decimal("1"), Decimal("2.5"))

    def test_hex_signature_accepted(self):
        assert _order(signature="0x0102").signature == b"\x01\x02"

    @pytest.mark.parametrize("overrides", [
        dict(total_collateral=Decimal("0")),
        dict(maker_collateral=Decimal("-1")),
        dict(maker_collateral=Decimal("100")),
        dict(strike_parameters=()),
        dict(venue=""),
        dict(maker=""),
        dict(risk_parameter=Decimal("101")),
    ])
    def test_invalid_orders(self, overrides):
        with pytest.raises(ValueError):
            _order(**overrides)

    def test_with_signature_keeps_fields(self):
        order = _order(risk_parameter=Decimal("5"))
        signed = order.with_signature(b"\x01" * 65)
        assert signed.signature == b"\x01" * 65
        assert signed.position_key == order.position_key


class TestPositionKey:

    def test_orders_with_same_terms_share_a_key(self):
        a = _order(total_collateral=Decimal("100"))
        b = _order(total_collateral=Decimal("50"), maker_collateral=Decimal("5"), maker="0xother")
        assert a.position_key.key_id == b.position_key.key_id

    def test_key_id_is_case_insensitive_on_venue(self):
        upper = PositionKey("0xAA", EXPIRY, (Decimal("1.0"),))
        lower = PositionKey("0xaa", EXPIRY, (Decimal("1"),))
        assert upper.key_id == lower.key_id

    def test_risk_parameter_distinguishes_keys(self):
        assert _order().position_key.key_id != _order(risk_parameter=Decimal("5")).position_key.key_id

    def test_settlement_request_roundtrip(self):
        key = _order().position_key
        assert SettlementRequest.for_key(key).position_key == key


class TestPositionBook:

    def test_commit_creates_and_aggregates(self):
        key = _order().position_key
        book = PositionBook().commit(key, Decimal("90"), Decimal("200"), Decimal("100"), Decimal("10"))
        book = book.commit(key, Decimal("45"), Decimal("110"), Decimal("50"), Decimal("5"))
        position = book.get(key)
        assert position.committed == Decimal("135")
        assert position.total_collateral == Decimal("150")
        assert position.maker_collateral == Decimal("15")
        assert position.order_count == 2
        assert len(book) == 1
        assert book.total_committed == Decimal("135")

    def test_commit_is_non_mutating(self):
        empty = PositionBook()
        empty.commit(_order().position_key, Decimal("1"), Decimal("1"))
        assert len(empty) == 0

    def test_commit_beyond_available(self):
        with pytest.raises(NoEnoughCollateral, match="no enough collateral"):
            PositionBook().commit(_order().position_key, Decimal("90"), Decimal("89.99"))

    def test_commit_non_positive(self):
        with pytest.raises(ValueError):
            PositionBook().commit(_order().position_key, Decimal("0"), Decimal("100"))

    def test_release_returns_position(self):
        key = _order().position_key
        book = PositionBook().commit(key, Decimal("90"), Decimal("100"))
        remaining, released = book.release(key)
        assert released.committed == Decimal("90")
        assert len(remaining) == 0
        assert len(book) == 1

    def test_release_twice_raises(self):
        key = _order().position_key
        remaining, _ = PositionBook().commit(key, Decimal("90"), Decimal("100")).release(key)
        with pytest.raises(PositionNotFound):
            remaining.release(key)

    def test_expired_filters_by_time(self):
        early = _order(expiry=EXPIRY).position_key
        late = _order(expiry=EXPIRY + timedelta(days=7)).position_key
        book = PositionBook().commit(early, Decimal("1"), Decimal("10")).commit(late, Decimal("1"), Decimal("10"))
        assert [p.key for p in book.expired(EXPIRY)] == [early]
        assert len(book.expired(EXPIRY - timedelta(seconds=1))) == 0
        assert len(book.expired(EXPIRY + timedelta(days=7))) == 2

    def test_dict_roundtrip(self):
        key = _order(risk_parameter=Decimal("5")).position_key
        book = PositionBook().commit(key, Decimal("90"), Decimal("100"), Decimal("100"), Decimal("10"))
        assert PositionBook.from_dict(book.to_dict()) == book

    def test_from_empty(self):
        assert len(PositionBook.from_dict(None)) == 0

    def test_position_from_dict_defaults_order_count(self):
        raw = {
            'venue': "0xaa", 'expiry': EXPIRY, 'strike_parameters': ["1"],
            'committed': "90", 'total_collateral': "100", 'maker_collateral': "10",
        }
        position = OutstandingPosition.from_dict(raw)
        assert position.order_count == 1
        assert position.key.risk_parameter is None
        assert position.committed == Decimal("90")
