"""
Registration Workflow Module

Pending account registrations awaiting an admin decision. Approval moves a
registration into the account registry; rejection drops it. Both share the
registry lock so an id can never be both pending and registered.
"""

from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from .accounts import Account, AccountRegistry
from .errors import DuplicateAccount, InvalidRegistration, RequestNotFound
from .logging_config import get_logger, log_action


@dataclass(frozen=True)
class Registration:
    """Pending id + credential pair"""
    account_id: str
    credential: str
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class RegistrationWorkflow:
    """Submit -> admin approve/reject for new accounts"""

    def __init__(self, registry: AccountRegistry, reserved_ids: Iterable[str] = ()):
        self.registry = registry
        self.reserved_ids = frozenset(reserved_ids)
        self._pending: Dict[str, Registration] = {}
        self.logger = get_logger("emoney.registrations")

    def submit(self, account_id: str, credential: str) -> Registration:
        """
        Queue a registration for admin approval

        A second submission for an id that is already pending is refused and
        the first one is kept. Earlier versions of the system let the later
        submission overwrite the pending one (last writer wins); that is no
        longer the case.

        Raises:
            InvalidRegistration: If id or credential is blank
            DuplicateAccount: If the id is reserved, registered or already pending
        """
        account_id = (account_id or "").strip()
        if not account_id or not credential:
            raise InvalidRegistration("Account id and credential are required")

        with self.registry.locked():
            if account_id in self.reserved_ids or account_id in self.registry:
                raise DuplicateAccount(f"Account {account_id} already exists")
            if account_id in self._pending:
                raise DuplicateAccount(f"Registration for {account_id} is already pending")

            registration = Registration(account_id=account_id, credential=credential)
            self._pending[account_id] = registration

        log_action(
            self.logger, "info", "Registration submitted",
            user_id=account_id, action="submit_registration",
            resource=f"registration:{account_id}"
        )
        return registration

    def approve(self, account_id: str) -> Account:
        """
        Create the approved account and drop the pending registration

        Raises:
            RequestNotFound: If no registration is pending for the id
        """
        with self.registry.locked():
            registration = self._pending.get(account_id)
            if registration is None:
                raise RequestNotFound(f"No pending registration for {account_id}")

            account = self.registry.register_approved(registration.account_id, registration.credential)
            del self._pending[account_id]

        log_action(
            self.logger, "info", "Registration approved",
            action="approve_registration", resource=f"account:{account_id}"
        )
        return account

    def reject(self, account_id: str) -> Registration:
        """Drop a pending registration without creating an account"""
        with self.registry.locked():
            registration = self._pending.pop(account_id, None)
            if registration is None:
                raise RequestNotFound(f"No pending registration for {account_id}")

        log_action(
            self.logger, "info", "Registration rejected",
            action="reject_registration", resource=f"registration:{account_id}"
        )
        return registration

    def drop_registered(self) -> List[Registration]:
        """
        Remove pending registrations whose id is now in the registry

        Used after the registry is replaced wholesale, so an id is never both
        registered and pending.
        """
        with self.registry.locked():
            dropped = [r for r in self._pending.values() if r.account_id in self.registry]
            for registration in dropped:
                del self._pending[registration.account_id]

        for registration in dropped:
            log_action(
                self.logger, "info", "Registration dropped, account already exists",
                action="drop_registration", resource=f"registration:{registration.account_id}"
            )
        return dropped

    def is_pending(self, account_id: str) -> bool:
        with self.registry.locked():
            return account_id in self._pending

    def list_pending(self) -> List[Registration]:
        """Pending registrations in submission order"""
        with self.registry.locked():
            return list(self._pending.values())
