"""
Account Registry Module

Owns the mapping from account id to account state. The registry is the only
writer of balances and transaction histories, and its re-entrant lock is the
single critical section shared by every other component of the engine.
"""

from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple
from contextlib import contextmanager
from enum import Enum
import copy
import threading

from .currency import Money
from .errors import (
    AccountNotFound, DuplicateAccount, InsufficientFunds, InvalidAmount, NotApproved
)


class TransactionType(Enum):
    """Kinds of balance-affecting events recorded in an account history"""
    TRANSFER = "Transfer"
    PAYMENT = "Payment"


@dataclass(frozen=True)
class Transaction:
    """
    Immutable history record owned by exactly one account.
    The amount is always positive; direction follows from kind and details.
    """
    sequence: int
    account_id: str
    kind: TransactionType
    amount: Money
    timestamp: datetime
    details: str


@dataclass
class Account:
    """E-money account with its balance and append-only history"""
    account_id: str
    credential: str
    balance: Money = field(default_factory=Money.zero)
    approved: bool = False
    transactions: List[Transaction] = field(default_factory=list)

    def can_transact(self) -> bool:
        """Only approved accounts may be authenticated or have balances changed"""
        return self.approved


@dataclass(frozen=True)
class AccountSummary:
    """Read-only account listing row"""
    account_id: str
    balance: Money
    approved: bool
    transaction_count: int


class AccountRegistry:
    """
    In-memory account store guarded by a single re-entrant lock.

    Callers never receive the internal map. `lookup` returns the live Account
    for use by the engine's own components; public listings return copies.
    """

    def __init__(self, accounts: Optional[Dict[str, Account]] = None):
        self._accounts: Dict[str, Account] = dict(accounts or {})
        self.lock = threading.RLock()

    @contextmanager
    def locked(self) -> Iterator['AccountRegistry']:
        """Hold the registry critical section"""
        with self.lock:
            yield self

    def __len__(self) -> int:
        with self.lock:
            return len(self._accounts)

    def __contains__(self, account_id: object) -> bool:
        with self.lock:
            return account_id in self._accounts

    def has_accounts(self) -> bool:
        return len(self) > 0

    def lookup(self, account_id: str) -> Optional[Account]:
        """Get account by id regardless of approval state"""
        with self.lock:
            return self._accounts.get(account_id)

    def get_approved(self, account_id: str) -> Account:
        """
        Get an account that may take part in balance mutation

        Raises:
            AccountNotFound: If no account has this id
            NotApproved: If the account is not approved
        """
        with self.lock:
            account = self._accounts.get(account_id)
            if account is None:
                raise AccountNotFound(f"Account {account_id} not found")
            if not account.can_transact():
                raise NotApproved(f"Account {account_id} is not approved")
            return account

    def register_approved(self, account_id: str, credential: str) -> Account:
        """
        Create an approved account with zero balance

        Raises:
            DuplicateAccount: If an account with this id already exists
        """
        with self.lock:
            if account_id in self._accounts:
                raise DuplicateAccount(f"Account {account_id} already exists")
            account = Account(
                account_id=account_id,
                credential=credential,
                balance=Money.zero(),
                approved=True
            )
            self._accounts[account_id] = account
            return account

    def credit(self, account_id: str, amount: Money) -> Money:
        """Increase balance, returning the new balance"""
        self._require_positive(amount)
        with self.lock:
            account = self.get_approved(account_id)
            account.balance = account.balance + amount
            return account.balance

    def debit(self, account_id: str, amount: Money) -> Money:
        """
        Decrease balance, returning the new balance

        Raises:
            InsufficientFunds: If the balance is lower than the amount
        """
        self._require_positive(amount)
        with self.lock:
            account = self.get_approved(account_id)
            if account.balance < amount:
                raise InsufficientFunds(
                    f"Insufficient funds: available {account.balance.to_string()}, "
                    f"requested {amount.to_string()}"
                )
            account.balance = account.balance - amount
            return account.balance

    def append_transaction(
        self,
        account_id: str,
        kind: TransactionType,
        amount: Money,
        details: str,
        timestamp: Optional[datetime] = None
    ) -> Transaction:
        """Append a history record numbered one past the current count"""
        with self.lock:
            account = self._accounts.get(account_id)
            if account is None:
                raise AccountNotFound(f"Account {account_id} not found")
            transaction = Transaction(
                sequence=len(account.transactions) + 1,
                account_id=account_id,
                kind=kind,
                amount=amount,
                timestamp=timestamp or datetime.now(timezone.utc),
                details=details
            )
            account.transactions.append(transaction)
            return transaction

    def history(self, account_id: str) -> Tuple[Transaction, ...]:
        """Insertion-ordered, immutable view of an account's transactions"""
        with self.lock:
            account = self._accounts.get(account_id)
            if account is None:
                raise AccountNotFound(f"Account {account_id} not found")
            return tuple(account.transactions)

    def list_accounts(self) -> List[AccountSummary]:
        """Summaries of every account, sorted by id"""
        with self.lock:
            return [
                AccountSummary(
                    account_id=account.account_id,
                    balance=account.balance,
                    approved=account.approved,
                    transaction_count=len(account.transactions)
                )
                for account in sorted(self._accounts.values(), key=lambda a: a.account_id)
            ]

    def export(self) -> Dict[str, Account]:
        """Deep copy of all accounts for persistence"""
        with self.lock:
            return copy.deepcopy(self._accounts)

    def replace_all(self, accounts: Dict[str, Account]) -> None:
        """Swap in a freshly loaded account set"""
        with self.lock:
            self._accounts = dict(accounts)

    @staticmethod
    def _require_positive(amount: Money) -> None:
        if not amount.is_positive():
            raise InvalidAmount(f"Amount must be positive, got {amount.amount}")
