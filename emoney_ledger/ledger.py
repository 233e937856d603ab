"""
Ledger Operations Module

Balance queries, transfers and payments. Each mutation validates everything
first and then applies its debit, credit and history appends inside the
registry critical section, so no caller can observe a half-applied transfer.
"""

from datetime import datetime, timezone
from typing import Tuple

from .accounts import AccountRegistry, Transaction, TransactionType
from .currency import AmountLike, Money, parse_positive_amount
from .errors import (
    AccountNotFound, InsufficientFunds, InvalidCategory, NotApproved,
    RecipientNotFound, SelfTransfer
)
from .logging_config import get_logger, log_action
from .sessions import Session, require_user


class LedgerOperations:
    """
    Guarded state transitions over the account registry
    """

    def __init__(self, registry: AccountRegistry):
        self.registry = registry
        self.logger = get_logger("emoney.ledger")

    def check_balance(self, session: Session) -> Money:
        """Current balance of the session's account"""
        account_id = require_user(session)
        with self.registry.locked():
            return self.registry.get_approved(account_id).balance

    def transfer(self, session: Session, recipient_id: str, amount: AmountLike) -> Transaction:
        """
        Move money from the session's account to another approved account

        Args:
            session: User session of the sender
            recipient_id: Account id of the recipient
            amount: Positive amount to move

        Returns:
            The Transfer transaction appended to the sender's history

        Raises:
            InvalidAmount: If amount is not a positive number, or the recipient
                balance would exceed the supported range
            RecipientNotFound: If the recipient does not exist or is not approved
            SelfTransfer: If the recipient is the sender
            InsufficientFunds: If the sender balance is lower than amount
        """
        sender_id = require_user(session)
        money = parse_positive_amount(amount)

        with self.registry.locked():
            sender = self.registry.get_approved(sender_id)
            try:
                recipient = self.registry.get_approved(recipient_id)
            except (AccountNotFound, NotApproved):
                raise RecipientNotFound(f"Recipient account {recipient_id} not found")
            if recipient_id == sender_id:
                raise SelfTransfer("Cannot transfer to the sending account")
            if sender.balance < money:
                raise InsufficientFunds(
                    f"Insufficient funds: available {sender.balance.to_string()}, "
                    f"requested {money.to_string()}"
                )
            # Raises InvalidAmount before the debit if the credited balance is out of range
            recipient.balance + money

            now = datetime.now(timezone.utc)
            self.registry.debit(sender_id, money)
            self.registry.credit(recipient_id, money)
            sent = self.registry.append_transaction(
                sender_id, TransactionType.TRANSFER, money,
                f"Transferred to {recipient_id}", timestamp=now
            )
            self.registry.append_transaction(
                recipient_id, TransactionType.TRANSFER, money,
                f"Received from {sender_id}", timestamp=now
            )

        log_action(
            self.logger, "info", "Transfer completed",
            user_id=sender_id, action="transfer", resource=f"account:{recipient_id}",
            extra={"amount": str(money), "sequence": sent.sequence}
        )
        return sent

    def make_payment(self, session: Session, category: str, amount: AmountLike) -> Transaction:
        """
        Pay out of the session's account for a named category (food, phone, ...)

        Raises:
            InvalidAmount: If amount is not a positive number
            InvalidCategory: If category is blank
            InsufficientFunds: If the balance is lower than amount
        """
        account_id = require_user(session)
        money = parse_positive_amount(amount)
        category = (category or "").strip()
        if not category:
            raise InvalidCategory("Payment category must not be empty")

        with self.registry.locked():
            self.registry.debit(account_id, money)
            transaction = self.registry.append_transaction(
                account_id, TransactionType.PAYMENT, money, category
            )

        log_action(
            self.logger, "info", "Payment completed",
            user_id=account_id, action="payment", resource=f"account:{account_id}",
            extra={"amount": str(money), "category": category, "sequence": transaction.sequence}
        )
        return transaction

    def transaction_history(self, session: Session) -> Tuple[Transaction, ...]:
        """Transactions of the session's account in the order they happened"""
        account_id = require_user(session)
        with self.registry.locked():
            self.registry.get_approved(account_id)
            return self.registry.history(account_id)
