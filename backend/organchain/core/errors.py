"""
Error taxonomy for OrganChain.

Identity and ledger-write errors are fatal to the action that raised them.
Ledger-read and profile-store errors are recoverable: the controller degrades
to whatever data the other store returned.
"""
from typing import Optional


class OrganChainError(Exception):
    """Base class for every error raised by OrganChain."""


class ConfigMissing(OrganChainError):
    """A required setting is absent at startup."""

    def __init__(self, setting: str):
        super().__init__(f"Required setting {setting} is not configured")
        self.setting = setting


class NotFound(OrganChainError):
    """No record exists for the requested identity."""


# ── Identity ────────────────────────────────────────────────────────────────

class IdentityError(OrganChainError):
    pass


class WalletUnavailable(IdentityError):
    pass


class UserRejected(IdentityError):
    pass


class NotConnected(IdentityError):
    pass


class StaleIdentity(IdentityError):
    """A capability bound to a replaced identity was used."""


class IdentityChanged(IdentityError):
    """The acting identity changed while an operation was in flight."""


# ── Ledger ──────────────────────────────────────────────────────────────────

class LedgerError(OrganChainError):
    pass


class LedgerWriteError(LedgerError):
    pass


class LedgerReadError(LedgerError):
    pass


class WriteRejected(LedgerWriteError):
    """The signer declined to sign the transaction."""


class WriteReverted(LedgerWriteError):
    def __init__(self, reason: Optional[str] = None):
        self.reason = reason or "execution reverted"
        super().__init__(f"Transaction reverted: {self.reason}")


class ConfirmationTimeout(LedgerWriteError):
    def __init__(self, tx_hash: str, timeout: float):
        super().__init__(f"Transaction {tx_hash} not confirmed within {timeout:g}s")
        self.tx_hash = tx_hash
        self.timeout = timeout


class TransactionFailed(LedgerWriteError):
    def __init__(self, tx_hash: str):
        super().__init__(f"Transaction {tx_hash} failed after inclusion")
        self.tx_hash = tx_hash


class LedgerNetworkError(LedgerWriteError, LedgerReadError):
    pass


class LedgerRecordNotFound(LedgerReadError, NotFound):
    pass


# ── Profile store ───────────────────────────────────────────────────────────

class ProfileStoreError(OrganChainError):
    pass


class ProfileNotFound(ProfileStoreError, NotFound):
    pass


class AlreadyExists(ProfileStoreError):
    pass


class ProfileValidationError(ProfileStoreError):
    pass


class ProfileStoreUnavailable(ProfileStoreError):
    pass


# ── Input ───────────────────────────────────────────────────────────────────

class InvalidRegistration(OrganChainError, ValueError):
    pass
