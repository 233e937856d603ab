"""
Pydantic schemas for the account snapshot document

Field aliases follow the accounts.json layout written by earlier versions of
the e-money system, so old snapshots (including float balances and null
transaction lists) load unchanged. Amounts are always written as decimal
strings.
"""

from decimal import Decimal
from datetime import datetime, timezone
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, RootModel, field_validator, model_validator

from .accounts import Account, Transaction, TransactionType
from .currency import Money


class TransactionModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sequence: int = Field(..., alias="ID", ge=1)
    account_id: str = Field(..., alias="AccountID")
    kind: TransactionType = Field(..., alias="Type")
    amount: Decimal = Field(..., alias="Amount", gt=0)
    timestamp: datetime = Field(..., alias="Date")
    details: str = Field("", alias="Details")

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_transaction(self) -> Transaction:
        return Transaction(
            sequence=self.sequence,
            account_id=self.account_id,
            kind=self.kind,
            amount=Money(self.amount),
            timestamp=self.timestamp,
            details=self.details
        )

    @classmethod
    def from_transaction(cls, transaction: Transaction) -> 'TransactionModel':
        return cls(
            sequence=transaction.sequence,
            account_id=transaction.account_id,
            kind=transaction.kind,
            amount=transaction.amount.amount,
            timestamp=transaction.timestamp,
            details=transaction.details
        )


class AccountModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    account_id: str = Field(..., alias="ID", min_length=1)
    credential: str = Field(..., alias="Password")
    balance: Decimal = Field(..., alias="Balance", ge=0)
    approved: bool = Field(False, alias="Approved")
    transactions: List[TransactionModel] = Field(default_factory=list, alias="Transactions")

    @field_validator("transactions", mode="before")
    @classmethod
    def _null_history(cls, value: Optional[list]) -> list:
        return [] if value is None else value

    @model_validator(mode="after")
    def _check_history(self) -> 'AccountModel':
        for position, transaction in enumerate(self.transactions, start=1):
            if transaction.sequence != position:
                raise ValueError(
                    f"Account {self.account_id}: transaction {position} has sequence {transaction.sequence}"
                )
            if transaction.account_id != self.account_id:
                raise ValueError(
                    f"Account {self.account_id}: transaction {position} belongs to {transaction.account_id}"
                )
        return self

    def to_account(self) -> Account:
        return Account(
            account_id=self.account_id,
            credential=self.credential,
            balance=Money(self.balance),
            approved=self.approved,
            transactions=[t.to_transaction() for t in self.transactions]
        )

    @classmethod
    def from_account(cls, account: Account) -> 'AccountModel':
        return cls(
            account_id=account.account_id,
            credential=account.credential,
            balance=account.balance.amount,
            approved=account.approved,
            transactions=[TransactionModel.from_transaction(t) for t in account.transactions]
        )


class SnapshotModel(RootModel[Dict[str, AccountModel]]):
    """Whole snapshot: account id -> account"""

    @model_validator(mode="after")
    def _check_keys(self) -> 'SnapshotModel':
        for key, account in self.root.items():
            if key != account.account_id:
                raise ValueError(f"Snapshot key {key} does not match account ID {account.account_id}")
        return self

    def to_accounts(self) -> Dict[str, Account]:
        return {key: model.to_account() for key, model in self.root.items()}

    @classmethod
    def from_accounts(cls, accounts: Dict[str, Account]) -> 'SnapshotModel':
        return cls({
            account_id: AccountModel.from_account(accounts[account_id])
            for account_id in sorted(accounts)
        })
