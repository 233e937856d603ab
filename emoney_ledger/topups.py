"""
Top-Up Workflow Module

Balance top-up requests and their admin decision. Approval is the only path
that raises a balance without a matching debit elsewhere, so each request is
a small state machine that can be decided exactly once:

    PENDING -> APPROVED
    PENDING -> REJECTED

Decided requests stay in memory for the lifetime of the process and are not
written to the snapshot.
"""

from datetime import datetime, timezone
from dataclasses import dataclass, replace
from typing import Dict, List, Optional
from enum import Enum

from .accounts import AccountRegistry
from .currency import AmountLike, Money, parse_positive_amount
from .errors import RequestNotFound
from .logging_config import get_logger, log_action


class TopUpState(Enum):
    """Lifecycle of a top-up request"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class TopUpRequest:
    """Request to credit an account, decided by an admin"""
    request_id: int
    account_id: str
    amount: Money
    requested_at: datetime
    state: TopUpState = TopUpState.PENDING
    decided_at: Optional[datetime] = None

    @property
    def approved(self) -> bool:
        return self.state == TopUpState.APPROVED

    @property
    def is_pending(self) -> bool:
        return self.state == TopUpState.PENDING


class TopUpWorkflow:
    """Submit -> admin approve/reject for balance top-ups"""

    def __init__(self, registry: AccountRegistry):
        self.registry = registry
        self._requests: Dict[int, TopUpRequest] = {}
        self._next_id = 1
        self.logger = get_logger("emoney.topups")

    def submit(self, account_id: str, amount: AmountLike) -> TopUpRequest:
        """
        Queue a top-up for an approved account

        Raises:
            InvalidAmount: If amount is not a positive number
            AccountNotFound: If the account does not exist
            NotApproved: If the account is not approved
        """
        money = parse_positive_amount(amount)

        with self.registry.locked():
            self.registry.get_approved(account_id)
            request = TopUpRequest(
                request_id=self._next_id,
                account_id=account_id,
                amount=money,
                requested_at=datetime.now(timezone.utc)
            )
            self._requests[request.request_id] = request
            self._next_id += 1

        log_action(
            self.logger, "info", "Top-up requested",
            user_id=account_id, action="submit_topup", resource=f"topup:{request.request_id}",
            extra={"amount": str(money)}
        )
        return request

    def approve(self, request_id: int) -> TopUpRequest:
        """
        Credit the owning account and mark the request approved

        A request that was already approved or rejected is not found, so a
        repeated approval never credits twice. If the credit fails the
        request stays pending.

        Raises:
            RequestNotFound: If no pending request has this id
        """
        with self.registry.locked():
            request = self._get_pending(request_id)
            self.registry.credit(request.account_id, request.amount)
            request = self._decide(request, TopUpState.APPROVED)

        log_action(
            self.logger, "info", "Top-up approved",
            action="approve_topup", resource=f"topup:{request_id}",
            extra={"account_id": request.account_id, "amount": str(request.amount)}
        )
        return request

    def reject(self, request_id: int) -> TopUpRequest:
        """Mark a pending request rejected without touching any balance"""
        with self.registry.locked():
            request = self._decide(self._get_pending(request_id), TopUpState.REJECTED)

        log_action(
            self.logger, "info", "Top-up rejected",
            action="reject_topup", resource=f"topup:{request_id}",
            extra={"account_id": request.account_id}
        )
        return request

    def reject_orphaned(self) -> List[TopUpRequest]:
        """
        Reject pending requests whose account is missing or not approved

        Used after the registry is replaced wholesale; such requests could
        never be approved.
        """
        with self.registry.locked():
            orphaned = [
                r for r in self._sorted()
                if r.is_pending and not self._account_can_transact(r.account_id)
            ]
            rejected = [self._decide(r, TopUpState.REJECTED) for r in orphaned]

        for request in rejected:
            log_action(
                self.logger, "info", "Top-up rejected, account unavailable",
                action="reject_topup", resource=f"topup:{request.request_id}",
                extra={"account_id": request.account_id}
            )
        return rejected

    def get(self, request_id: int) -> Optional[TopUpRequest]:
        with self.registry.locked():
            return self._requests.get(request_id)

    def list_pending(self) -> List[TopUpRequest]:
        """Pending requests ordered by id"""
        with self.registry.locked():
            return [r for r in self._sorted() if r.is_pending]

    def list_requests(self, account_id: Optional[str] = None) -> List[TopUpRequest]:
        """All requests in any state, optionally for one account"""
        with self.registry.locked():
            return [r for r in self._sorted() if account_id is None or r.account_id == account_id]

    def _sorted(self) -> List[TopUpRequest]:
        return sorted(self._requests.values(), key=lambda r: r.request_id)

    def _account_can_transact(self, account_id: str) -> bool:
        account = self.registry.lookup(account_id)
        return account is not None and account.can_transact()

    def _get_pending(self, request_id: int) -> TopUpRequest:
        request = self._requests.get(request_id)
        if request is None or not request.is_pending:
            raise RequestNotFound(f"No pending top-up request {request_id}")
        return request

    def _decide(self, request: TopUpRequest, state: TopUpState) -> TopUpRequest:
        decided = replace(request, state=state, decided_at=datetime.now(timezone.utc))
        self._requests[request.request_id] = decided
        return decided
