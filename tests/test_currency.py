"""
Test suite for currency module

Tests Money rounding, arithmetic and amount parsing.
Balances must never pick up binary floating point drift.
"""

import pytest
from decimal import Decimal

from emoney_ledger.currency import (
    Money, decimal_from_string, parse_positive_amount, to_money
)
from emoney_ledger.errors import InvalidAmount, LedgerError


class TestMoney:
    """Test Money class operations"""

    def test_money_creation_rounds_to_cents(self):
        """Test automatic rounding to two decimal places"""
        assert Money(Decimal('100.50')).amount == Decimal('100.50')
        assert Money(Decimal('100.555')).amount == Decimal('100.56')
        assert Money(Decimal('100.554')).amount == Decimal('100.55')
        assert Money(Decimal('7')).amount == Decimal('7.00')

    def test_float_input_goes_through_str(self):
        """Test float construction does not keep the binary expansion"""
        assert Money(10.1).amount == Decimal('10.10')
        assert Money(0.1).amount == Decimal('0.10')

    def test_no_accumulation_drift(self):
        """Test ten payments of 0.10 add up to exactly 1.00"""
        total = Money.zero()
        for _ in range(10):
            total = total + Money(Decimal('0.10'))
        assert total == Money(Decimal('1.00'))

        remaining = Money(Decimal('1.00'))
        for _ in range(10):
            remaining = remaining - Money(Decimal('0.10'))
        assert remaining.is_zero()

    def test_comparisons_and_predicates(self):
        """Test ordering and sign helpers"""
        small = Money(Decimal('10'))
        large = Money(Decimal('20'))

        assert small < large
        assert large > small
        assert small <= Money(Decimal('10.00'))
        assert large >= small
        assert small.is_positive()
        assert (-small).is_negative()
        assert Money.zero().is_zero()

    def test_non_finite_rejected(self):
        """Test NaN and infinity cannot become money"""
        with pytest.raises(InvalidAmount):
            Money(Decimal('NaN'))
        with pytest.raises(InvalidAmount):
            Money(Decimal('Infinity'))

    def test_out_of_range_rejected(self):
        """Test amounts beyond Decimal context precision"""
        with pytest.raises(InvalidAmount):
            Money(Decimal('1e40'))

    def test_display(self):
        """Test display formatting"""
        assert Money(Decimal('1234.5')).to_string() == "1,234.50"
        assert str(Money(Decimal('60'))) == "60.00"


class TestAmountParsing:
    """Test conversion of caller input to Money"""

    def test_decimal_from_string_formats(self):
        """Test common user-entered formats"""
        assert decimal_from_string("40") == Decimal('40')
        assert decimal_from_string("1,250.50") == Decimal('1250.50')
        assert decimal_from_string("12,5") == Decimal('12.5')
        assert decimal_from_string("1,250") == Decimal('1250')
        assert decimal_from_string(" $15.75 ") == Decimal('15.75')

    def test_decimal_from_string_invalid(self):
        """Test unparsable strings"""
        for value in ["", "abc", "1.2.3", "+"]:
            with pytest.raises(InvalidAmount):
                decimal_from_string(value)

    def test_to_money_types(self):
        """Test accepted input types"""
        assert to_money("40") == Money(Decimal('40'))
        assert to_money(40) == Money(Decimal('40'))
        assert to_money(Decimal('40.004')) == Money(Decimal('40.00'))
        money = Money(Decimal('5'))
        assert to_money(money) is money

    def test_to_money_rejects_float_and_bool(self):
        """Test floats and bools are refused at the API boundary"""
        with pytest.raises(InvalidAmount):
            to_money(1.5)
        with pytest.raises(InvalidAmount):
            to_money(True)
        with pytest.raises(InvalidAmount):
            to_money(None)

    def test_parse_positive_amount(self):
        """Test sign validation after rounding"""
        assert parse_positive_amount("0.01") == Money(Decimal('0.01'))

        for value in ["0", "-5", 0, -1, "0.001", Decimal('0.004')]:
            with pytest.raises(InvalidAmount, match="must be positive"):
                parse_positive_amount(value)

    def test_invalid_amount_is_value_error(self):
        """Test error hierarchy"""
        with pytest.raises(ValueError):
            parse_positive_amount("abc")
        assert issubclass(InvalidAmount, LedgerError)
