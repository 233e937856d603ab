"""
Ledger Error Types

Every business failure raised by the engine derives from LedgerError.
LedgerError subclasses ValueError so callers catching ValueError keep working.
"""


class LedgerError(ValueError):
    """Base class for all recoverable ledger errors"""


class InvalidAmount(LedgerError):
    """Amount is non-positive, non-finite or cannot be parsed"""


class InvalidCategory(LedgerError):
    """Payment category is blank"""


class InsufficientFunds(LedgerError):
    """Debit would take the balance below zero"""


class RecipientNotFound(LedgerError):
    """Transfer recipient does not exist or is not approved"""


class SelfTransfer(LedgerError):
    """Sender and recipient of a transfer are the same account"""


class DuplicateAccount(LedgerError):
    """Account id is already taken by an account or a pending registration"""


class AccountNotFound(LedgerError):
    """No account with the given id"""


class NotApproved(LedgerError):
    """Account exists but has not been approved"""


class RequestNotFound(LedgerError):
    """No pending registration or top-up request with the given id"""


class InvalidRegistration(LedgerError):
    """Registration is missing an id or a credential"""


class InvalidCredentials(LedgerError):
    """Authentication failed"""


class PermissionDenied(LedgerError):
    """Session role does not allow the operation"""


class PersistenceFailure(LedgerError):
    """Snapshot could not be read, parsed or written"""
