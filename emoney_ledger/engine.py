"""
Ledger Engine Module

Facade exposing the engine API consumed by a menu or service layer:
authentication, registration and top-up approval, balance queries,
transfers, payments and snapshot persistence. Every call takes an explicit
Session; nothing here prints, results are returned and failures raised.
"""

from typing import Dict, List, Optional, Tuple
import copy
import hmac

from .accounts import Account, AccountRegistry, AccountSummary, Transaction
from .config import LedgerConfig, get_config
from .currency import AmountLike, Money
from .errors import InvalidCredentials, PermissionDenied, PersistenceFailure
from .ledger import LedgerOperations
from .logging_config import get_logger, log_action, setup_logging
from .registrations import Registration, RegistrationWorkflow
from .sessions import Role, Session, require_admin, require_user
from .storage import JSONFileSnapshotStore, SnapshotStore
from .topups import TopUpRequest, TopUpWorkflow


def _credentials_match(given: str, expected: str) -> bool:
    return hmac.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))


class LedgerEngine:
    """
    Single-process e-money ledger

    Usage:
        with LedgerEngine() as engine:
            session = engine.authenticate_user("alice", "secret")
            engine.transfer(session, "bob", "40.00")

    Entering the context loads the snapshot; leaving it saves the snapshot.
    """

    def __init__(self, config: Optional[LedgerConfig] = None, store: Optional[SnapshotStore] = None):
        self.config = config or get_config()
        self.store = store or JSONFileSnapshotStore(
            self.config.snapshot_path, indent=self.config.snapshot_indent
        )
        self.registry = AccountRegistry()
        self.ledger = LedgerOperations(self.registry)
        self.registrations = RegistrationWorkflow(self.registry, reserved_ids=[self.config.admin_id])
        self.topups = TopUpWorkflow(self.registry)
        self.last_load_error: Optional[PersistenceFailure] = None
        self._sessions: Dict[str, Session] = {}
        self.logger = get_logger("emoney.engine")

    # Lifecycle

    def configure_logging(self) -> None:
        """Apply the configured log level, format and target to the emoney loggers"""
        setup_logging(
            level=self.config.log_level,
            fmt=self.config.log_format,
            log_file=self.config.log_file
        )

    def start(self) -> 'LedgerEngine':
        """
        Load the snapshot. A failed load leaves the engine running with an
        empty registry and is kept in `last_load_error` for the caller.
        """
        try:
            self.load_snapshot()
            self.last_load_error = None
        except PersistenceFailure as e:
            self.last_load_error = e
        log_action(self.logger, "info", "Ledger engine started", action="start",
                   extra={"accounts": len(self.registry)})
        return self

    def stop(self) -> None:
        """End all sessions and save the snapshot if configured to"""
        with self.registry.locked():
            self._sessions.clear()
        if self.config.persist_on_stop:
            self.save_snapshot()
        log_action(self.logger, "info", "Ledger engine stopped", action="stop")

    def __enter__(self) -> 'LedgerEngine':
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def load_snapshot(self) -> int:
        """
        Replace the registry with the stored snapshot

        Returns:
            Number of accounts loaded

        Pending registrations for ids the snapshot already holds are dropped,
        pending top-ups for accounts it no longer holds are rejected, and user
        sessions for such accounts end.

        Raises:
            PersistenceFailure: If the snapshot is unreadable; the registry is
                left empty in that case
        """
        with self.registry.locked():
            try:
                accounts = self.store.load()
            except PersistenceFailure as e:
                self.registry.replace_all({})
                self._reconcile()
                log_action(self.logger, "error", f"Snapshot load failed: {e}",
                           action="load_snapshot")
                raise
            self.registry.replace_all(accounts)
            self._reconcile()
            return len(accounts)

    def _reconcile(self) -> None:
        """Bring workflows and sessions in line with a replaced registry"""
        self.registrations.drop_registered()
        self.topups.reject_orphaned()
        stale = [
            session_id for session_id, session in self._sessions.items()
            if not session.is_admin and not self._can_log_in(session.principal_id)
        ]
        for session_id in stale:
            del self._sessions[session_id]

    def _can_log_in(self, account_id: str) -> bool:
        account = self.registry.lookup(account_id)
        return account is not None and account.can_transact()

    def save_snapshot(self) -> None:
        """
        Persist the registry. In-memory state stays valid if this fails.

        Raises:
            PersistenceFailure: If the snapshot could not be written
        """
        with self.registry.locked():
            try:
                self.store.save(self.registry.export())
            except PersistenceFailure as e:
                log_action(self.logger, "error", f"Snapshot save failed: {e}",
                           action="save_snapshot")
                raise

    def has_accounts(self) -> bool:
        """False on first run, before any account has been approved"""
        return self.registry.has_accounts()

    # Authentication

    def authenticate_admin(self, admin_id: str, password: str) -> Session:
        """
        Raises:
            InvalidCredentials: If id or password do not match the configured admin
        """
        id_ok = _credentials_match(admin_id, self.config.admin_id)
        password_ok = _credentials_match(password, self.config.admin_password)
        if not (id_ok and password_ok):
            log_action(self.logger, "warning", "Admin login failed",
                       user_id=admin_id, action="authenticate_admin")
            raise InvalidCredentials("Invalid admin credentials")
        return self._open_session(Session.for_admin(admin_id))

    def authenticate_user(self, account_id: str, password: str) -> Session:
        """
        Unknown, unapproved and wrong-password logins fail the same way.

        Raises:
            InvalidCredentials: If the account cannot log in
        """
        with self.registry.locked():
            account = self.registry.lookup(account_id)
            if (account is None or not account.can_transact()
                    or not _credentials_match(password, account.credential)):
                log_action(self.logger, "warning", "User login failed",
                           user_id=account_id, action="authenticate_user")
                raise InvalidCredentials("Invalid credentials or account not approved")
            return self._open_session(Session.for_user(account_id))

    def logout(self, session: Session) -> None:
        with self.registry.locked():
            self._sessions.pop(session.session_id, None)
        log_action(self.logger, "info", "Logged out", user_id=session.principal_id,
                   action="logout")

    def _open_session(self, session: Session) -> Session:
        with self.registry.locked():
            self._sessions[session.session_id] = session
        log_action(self.logger, "info", "Logged in", user_id=session.principal_id,
                   action=f"authenticate_{session.role.value}")
        return session

    def _check(self, session: Session, role: Role) -> str:
        with self.registry.locked():
            if session.session_id not in self._sessions:
                raise PermissionDenied("Session is not active")
        if role == Role.ADMIN:
            return require_admin(session)
        return require_user(session)

    # Registration workflow

    def submit_registration(self, account_id: str, credential: str) -> Registration:
        """Anyone may ask for an account; an admin decides"""
        return self.registrations.submit(account_id, credential)

    def pending_registrations(self, session: Session) -> List[Registration]:
        self._check(session, Role.ADMIN)
        return self.registrations.list_pending()

    def approve_registration(self, session: Session, account_id: str) -> Account:
        self._check(session, Role.ADMIN)
        # Copy so callers cannot mutate the registry-owned account
        return copy.deepcopy(self.registrations.approve(account_id))

    def reject_registration(self, session: Session, account_id: str) -> Registration:
        self._check(session, Role.ADMIN)
        return self.registrations.reject(account_id)

    # Ledger operations

    def check_balance(self, session: Session) -> Money:
        self._check(session, Role.USER)
        return self.ledger.check_balance(session)

    def transfer(self, session: Session, recipient_id: str, amount: AmountLike) -> Transaction:
        self._check(session, Role.USER)
        return self.ledger.transfer(session, recipient_id, amount)

    def make_payment(self, session: Session, category: str, amount: AmountLike) -> Transaction:
        self._check(session, Role.USER)
        return self.ledger.make_payment(session, category, amount)

    def transaction_history(self, session: Session) -> Tuple[Transaction, ...]:
        self._check(session, Role.USER)
        return self.ledger.transaction_history(session)

    # Top-up workflow

    def submit_topup(self, session: Session, amount: AmountLike) -> TopUpRequest:
        account_id = self._check(session, Role.USER)
        return self.topups.submit(account_id, amount)

    def pending_topups(self, session: Session) -> List[TopUpRequest]:
        self._check(session, Role.ADMIN)
        return self.topups.list_pending()

    def topup_requests(self, session: Session, account_id: Optional[str] = None) -> List[TopUpRequest]:
        """Admins see every request (or one account's); users see their own"""
        if session.is_admin:
            self._check(session, Role.ADMIN)
            return self.topups.list_requests(account_id)
        own_id = self._check(session, Role.USER)
        return self.topups.list_requests(own_id)

    def approve_topup(self, session: Session, request_id: int) -> TopUpRequest:
        self._check(session, Role.ADMIN)
        return self.topups.approve(request_id)

    def reject_topup(self, session: Session, request_id: int) -> TopUpRequest:
        self._check(session, Role.ADMIN)
        return self.topups.reject(request_id)

    # Administration

    def list_accounts(self, session: Session) -> List[AccountSummary]:
        self._check(session, Role.ADMIN)
        return self.registry.list_accounts()
