"""
Test suite for ledger module

Tests transfers, payments, balance queries and history.
CRITICAL: validates money conservation and that failed operations change nothing.
"""

import threading

import pytest
from decimal import Decimal

from emoney_ledger.currency import Money
from emoney_ledger.accounts import Account, AccountRegistry, TransactionType
from emoney_ledger.ledger import LedgerOperations
from emoney_ledger.sessions import Session
from emoney_ledger.errors import (
    InsufficientFunds, InvalidAmount, InvalidCategory, PermissionDenied,
    RecipientNotFound, SelfTransfer
)


@pytest.fixture
def registry():
    """Alice holds 100, Bob holds 0"""
    registry = AccountRegistry()
    registry.register_approved("alice", "alice-pw")
    registry.register_approved("bob", "bob-pw")
    registry.credit("alice", Money(Decimal('100')))
    return registry


@pytest.fixture
def ledger(registry):
    return LedgerOperations(registry)


@pytest.fixture
def alice():
    return Session.for_user("alice")


@pytest.fixture
def bob():
    return Session.for_user("bob")


def balance(registry, account_id):
    return registry.lookup(account_id).balance


class TestTransfer:
    """Test transfers between accounts"""

    def test_transfer_scenario(self, ledger, registry, alice):
        """Test A=100, B=0, transfer 40 -> A=60, B=40 with one record each"""
        sent = ledger.transfer(alice, "bob", "40")

        assert balance(registry, "alice") == Money(Decimal('60'))
        assert balance(registry, "bob") == Money(Decimal('40'))

        alice_history = registry.history("alice")
        bob_history = registry.history("bob")
        assert len(alice_history) == 1
        assert len(bob_history) == 1
        assert alice_history[0] == sent
        assert sent.kind == TransactionType.TRANSFER
        assert sent.amount == Money(Decimal('40'))
        assert sent.details == "Transferred to bob"
        assert bob_history[0].kind == TransactionType.TRANSFER
        assert bob_history[0].details == "Received from alice"
        assert bob_history[0].account_id == "bob"
        assert bob_history[0].timestamp == sent.timestamp

    def test_transfer_conserves_money(self, ledger, registry, alice, bob):
        """Test the combined balance is invariant across transfers"""
        before = balance(registry, "alice") + balance(registry, "bob")

        ledger.transfer(alice, "bob", Decimal('33.33'))
        ledger.transfer(bob, "alice", "10.01")
        ledger.transfer(alice, "bob", 1)

        after = balance(registry, "alice") + balance(registry, "bob")
        assert after == before
        assert balance(registry, "bob") == Money(Decimal('24.32'))

    def test_transfer_insufficient_funds(self, ledger, registry, alice):
        """Test overdraw fails with balances and histories unchanged"""
        with pytest.raises(InsufficientFunds):
            ledger.transfer(alice, "bob", "100.01")

        assert balance(registry, "alice") == Money(Decimal('100'))
        assert balance(registry, "bob") == Money.zero()
        assert registry.history("alice") == ()
        assert registry.history("bob") == ()

    def test_transfer_entire_balance(self, ledger, registry, alice):
        """Test balance may reach zero but not below"""
        ledger.transfer(alice, "bob", "100")
        assert balance(registry, "alice").is_zero()

        with pytest.raises(InsufficientFunds):
            ledger.transfer(alice, "bob", "0.01")

    @pytest.mark.parametrize("amount", ["0", "-5", "abc", 0, -1, "0.001"])
    def test_transfer_invalid_amount(self, ledger, registry, alice, amount):
        """Test non-positive and unparsable amounts"""
        with pytest.raises(InvalidAmount):
            ledger.transfer(alice, "bob", amount)
        assert balance(registry, "alice") == Money(Decimal('100'))
        assert registry.history("alice") == ()

    def test_transfer_unknown_recipient(self, ledger, registry, alice):
        """Test missing recipient"""
        with pytest.raises(RecipientNotFound):
            ledger.transfer(alice, "nobody", "10")
        assert balance(registry, "alice") == Money(Decimal('100'))

    def test_transfer_unapproved_recipient(self, ledger, registry, alice):
        """Test unapproved accounts are invisible as recipients"""
        accounts = registry.export()
        accounts["zed"] = Account(account_id="zed", credential="pw", approved=False)
        registry.replace_all(accounts)

        with pytest.raises(RecipientNotFound):
            ledger.transfer(alice, "zed", "10")
        assert registry.lookup("zed").balance.is_zero()

    def test_transfer_to_self(self, ledger, registry, alice):
        """Test sender cannot be the recipient"""
        with pytest.raises(SelfTransfer):
            ledger.transfer(alice, "alice", "10")
        assert registry.history("alice") == ()

    def test_transfer_recipient_overflow_changes_nothing(self, ledger, registry, alice):
        """Test a credit beyond Decimal precision fails before the sender is debited"""
        accounts = registry.export()
        accounts["whale"] = Account(
            account_id="whale",
            credential="pw",
            balance=Money(Decimal('99999999999999999999999999.99')),
            approved=True
        )
        registry.replace_all(accounts)

        with pytest.raises(InvalidAmount):
            ledger.transfer(alice, "whale", "1")

        assert balance(registry, "alice") == Money(Decimal('100'))
        assert balance(registry, "whale") == Money(Decimal('99999999999999999999999999.99'))
        assert registry.history("alice") == ()
        assert registry.history("whale") == ()

    def test_admin_session_cannot_transfer(self, ledger):
        """Test ledger operations need a user session"""
        with pytest.raises(PermissionDenied):
            ledger.transfer(Session.for_admin("admin"), "bob", "10")

    def test_concurrent_transfers_conserve_money(self, ledger, registry, alice, bob):
        """Test racing transfers never create or destroy money"""
        errors = []

        def worker(session, recipient):
            for _ in range(200):
                try:
                    ledger.transfer(session, recipient, "1")
                except InsufficientFunds:
                    pass
                except Exception as e:
                    errors.append(e)

        threads = [
            threading.Thread(target=worker, args=(alice, "bob")),
            threading.Thread(target=worker, args=(bob, "alice")),
            threading.Thread(target=worker, args=(alice, "bob")),
            threading.Thread(target=worker, args=(bob, "alice")),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert balance(registry, "alice") + balance(registry, "bob") == Money(Decimal('100'))
        assert not balance(registry, "alice").is_negative()
        assert not balance(registry, "bob").is_negative()
        for account_id in ("alice", "bob"):
            history = registry.history(account_id)
            assert [t.sequence for t in history] == list(range(1, len(history) + 1))


class TestPayment:
    """Test payments out of an account"""

    def test_payment_debits_and_records(self, ledger, registry, alice):
        """Test a payment appends one Payment record tagged with the category"""
        transaction = ledger.make_payment(alice, "electricity", "25.50")

        assert balance(registry, "alice") == Money(Decimal('74.50'))
        assert transaction.kind == TransactionType.PAYMENT
        assert transaction.details == "electricity"
        assert transaction.amount == Money(Decimal('25.50'))
        assert transaction.sequence == 1
        assert registry.history("alice") == (transaction,)

    def test_payment_never_negative(self, ledger, registry, alice):
        """Test payments beyond the balance fail without a change"""
        with pytest.raises(InsufficientFunds):
            ledger.make_payment(alice, "food", "100.01")
        assert balance(registry, "alice") == Money(Decimal('100'))
        assert registry.history("alice") == ()

        ledger.make_payment(alice, "food", "100")
        assert balance(registry, "alice").is_zero()

    def test_payment_blank_category(self, ledger, registry, alice):
        """Test a category is required"""
        with pytest.raises(InvalidCategory):
            ledger.make_payment(alice, "   ", "10")
        assert balance(registry, "alice") == Money(Decimal('100'))

    def test_payment_invalid_amount(self, ledger, registry, alice):
        """Test amount validation"""
        with pytest.raises(InvalidAmount):
            ledger.make_payment(alice, "phone", "-3")
        assert registry.history("alice") == ()

    def test_many_small_payments_exact(self, ledger, registry, alice):
        """Test there is no rounding drift over many payments"""
        for _ in range(1000):
            ledger.make_payment(alice, "BPJS", "0.10")
        assert balance(registry, "alice") == Money(Decimal('0.00'))


class TestQueries:
    """Test balance and history reads"""

    def test_check_balance(self, ledger, alice, bob):
        """Test balance reads"""
        assert ledger.check_balance(alice) == Money(Decimal('100'))
        assert ledger.check_balance(bob) == Money.zero()

    def test_history_order_and_sequences(self, ledger, alice, bob):
        """Test mixed operations are numbered 1..N in order"""
        ledger.transfer(alice, "bob", "10")
        ledger.make_payment(alice, "food", "5")
        ledger.transfer(bob, "alice", "2")
        ledger.make_payment(alice, "phone", "1")

        history = ledger.transaction_history(alice)
        assert [t.sequence for t in history] == [1, 2, 3, 4]
        assert [t.details for t in history] == [
            "Transferred to bob", "food", "Received from bob", "phone"
        ]

    def test_history_is_restartable(self, ledger, alice):
        """Test the history view can be iterated more than once"""
        ledger.make_payment(alice, "food", "5")
        history = ledger.transaction_history(alice)

        assert list(history) == list(history)
        assert len(history) == 1
