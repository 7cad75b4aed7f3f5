"""
Donor profile controller.

Sequences connect / load / register / revoke against the ledger and the
profile store:

- a ledger write must confirm before the matching profile write is attempted,
  and only ledger failures fail an action;
- loads read both stores concurrently and reconcile whatever came back;
- every await is followed by an identity check, so results produced for an
  identity the wallet has since switched away from are dropped.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from ..core.errors import (
    IdentityChanged,
    IdentityError,
    InvalidRegistration,
    LedgerNetworkError,
    LedgerReadError,
    LedgerWriteError,
    NotConnected,
    NotFound,
    OrganChainError,
    ProfileStoreError,
    ProfileStoreUnavailable,
    UserRejected,
    WalletUnavailable,
)
from .ledger_client import LedgerRegistryClient
from .ledger_contract import RegistryContract, TransactionReceipt
from .profile_store import ProfileStoreClient
from .profile_sync import ProfileSyncQueue
from .reconciliation import reconcile
from .records import DonorView, LedgerDonorRecord, ProfileRecord, ProfileStatus, RegistrationForm
from .wallet import Identity, WalletIdentityProvider

logger = logging.getLogger(__name__)


class ControllerState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    NO_LEDGER_RECORD = "no_ledger_record"
    LOADING = "loading"
    LOADED = "loaded"
    LOAD_ERROR = "load_error"
    REGISTERING = "registering"
    REVOKING = "revoking"


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    SUCCESS_WITH_WARNING = "success_with_warning"
    FAILURE = "failure"


@dataclass
class ActionOutcome:
    """The single user-visible result of a controller action."""
    kind: OutcomeKind
    view: Optional[DonorView] = None
    error: Optional[OrganChainError] = None
    warnings: List[str] = field(default_factory=list)
    receipt: Optional[TransactionReceipt] = None

    @property
    def ok(self) -> bool:
        return self.kind != OutcomeKind.FAILURE

    @classmethod
    def failure(cls, error: OrganChainError, view: Optional[DonorView] = None) -> "ActionOutcome":
        return cls(kind=OutcomeKind.FAILURE, error=error, view=view)

    @classmethod
    def success(cls, view: Optional[DonorView], warnings: List[str], receipt=None) -> "ActionOutcome":
        kind = OutcomeKind.SUCCESS_WITH_WARNING if warnings else OutcomeKind.SUCCESS
        return cls(kind=kind, view=view, warnings=list(warnings), receipt=receipt)


class DonorProfileController:

    def __init__(
        self,
        wallet: WalletIdentityProvider,
        contract: RegistryContract,
        profiles: ProfileStoreClient,
        sync_queue: Optional[ProfileSyncQueue] = None,
        ledger_options: Optional[Dict] = None,
    ):
        self.wallet = wallet
        self.contract = contract
        self.profiles = profiles
        self.sync_queue = sync_queue or ProfileSyncQueue()
        self._ledger_options = ledger_options or {}

        self.state = ControllerState.DISCONNECTED
        self.view: Optional[DonorView] = None
        self.error: Optional[OrganChainError] = None
        self.warnings: List[str] = []

        self._identity: Optional[Identity] = None
        self._ledger: Optional[LedgerRegistryClient] = None
        self._restarts: List[asyncio.Task] = []
        self._subscription = wallet.subscribe(self._on_identity_changed)

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    def _bind(self, identity: Optional[Identity]) -> None:
        """Adopt ``identity`` and rebuild the signer-bound ledger client."""
        self._identity = identity
        self._ledger = (
            LedgerRegistryClient(identity, self.wallet.holder, self.contract, **self._ledger_options)
            if identity is not None else None
        )

    def _is_stale(self, identity: Identity) -> bool:
        return identity is not self._identity

    def _transition(self, state: ControllerState) -> None:
        if state != self.state:
            logger.debug("Controller %s -> %s", self.state.value, state.value)
        self.state = state

    def _on_identity_changed(self, identity: Optional[Identity]) -> None:
        if identity is self._identity:
            return
        logger.info(
            "Identity changed from %s to %s; in-flight results will be discarded",
            self._identity.address if self._identity else None,
            identity.address if identity else None,
        )
        self._bind(identity)
        self.view = None
        self.error = None
        self.warnings = []
        if identity is None:
            self._transition(ControllerState.DISCONNECTED)
            return
        self._transition(ControllerState.CONNECTING)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet: the next refresh() performs the load.
            return
        self._restarts.append(loop.create_task(self._probe_and_load(identity)))

    async def settle(self) -> None:
        """Wait for reloads triggered by identity changes to finish."""
        while self._restarts:
            tasks, self._restarts = self._restarts, []
            await asyncio.gather(*tasks)

    def close(self) -> None:
        """Release the identity subscription. Required on teardown."""
        self._subscription.unsubscribe()
        for task in self._restarts:
            task.cancel()
        self._restarts = []

    # ------------------------------------------------------------------
    # Connect / load
    # ------------------------------------------------------------------

    async def connect(self) -> ActionOutcome:
        """Prompt the wallet, then probe and load the donor view."""
        self._transition(ControllerState.CONNECTING)
        self.error = None
        try:
            identity = await self.wallet.connect()
        except (WalletUnavailable, UserRejected) as exc:
            logger.warning("Wallet connection failed: %s", exc)
            # DISCONNECTED means no identity: actions must not keep signing as the old one
            self._bind(None)
            self.view = None
            self.warnings = []
            self.error = exc
            self._transition(ControllerState.DISCONNECTED)
            return ActionOutcome.failure(exc)
        return await self._load_for(identity)

    async def resume(self) -> ActionOutcome:
        """Passive re-entry: reuse an already-authorized account if there is one."""
        try:
            identity = await self.wallet.resume()
        except WalletUnavailable as exc:
            self.error = exc
            self._transition(ControllerState.DISCONNECTED)
            return ActionOutcome.failure(exc)
        if identity is None:
            self._transition(ControllerState.DISCONNECTED)
            return ActionOutcome.failure(NotConnected("No previously connected wallet account"))
        self._transition(ControllerState.CONNECTING)
        return await self._load_for(identity)

    async def refresh(self) -> ActionOutcome:
        if self._identity is None:
            return ActionOutcome.failure(NotConnected("Connect a wallet first"))
        return await self._load_for(self._identity)

    async def _load_for(self, identity: Identity) -> ActionOutcome:
        if identity is not self._identity:
            self._bind(identity)
        if not await self._probe_and_load(identity):
            return ActionOutcome.failure(IdentityChanged("Identity changed while loading"))
        if self.state == ControllerState.LOAD_ERROR:
            return ActionOutcome.failure(self.error, view=None)
        return ActionOutcome.success(self.view, self.warnings)

    def _discard(self, stage: str, identity: Identity) -> bool:
        logger.warning("Discarding %s result for %s: identity changed", stage, identity.address)
        return False

    async def _read_ledger(self, identity: Identity) -> Tuple[Optional[LedgerDonorRecord], Optional[OrganChainError]]:
        try:
            return await self._ledger_for(identity).get_donor_info(identity.address), None
        except NotFound:
            return None, None
        except LedgerReadError as exc:
            logger.warning("Ledger read for %s failed: %s", identity.address, exc)
            return None, exc

    async def _read_profile(self, identity: Identity) -> Tuple[Optional[ProfileRecord], Optional[OrganChainError]]:
        try:
            return await self.profiles.fetch_by_identity(identity.address), None
        except NotFound:
            return None, None
        except ProfileStoreError as exc:
            logger.warning("Profile read for %s failed: %s", identity.address, exc)
            return None, exc

    def _ledger_for(self, identity: Identity) -> LedgerRegistryClient:
        if self._ledger is not None and self._ledger.identity is identity:
            return self._ledger
        # Reads for a superseded identity still run; their result is discarded.
        return LedgerRegistryClient(identity, self.wallet.holder, self.contract, **self._ledger_options)

    async def _probe_and_load(self, identity: Identity) -> bool:
        """Membership probe then load. Returns False if the result was discarded."""
        try:
            registered = await self._ledger_for(identity).is_donor(identity.address)
        except LedgerNetworkError as exc:
            logger.warning("Membership probe for %s failed (%s); reading both stores", identity.address, exc)
            registered = True
        if self._is_stale(identity):
            return self._discard("membership probe", identity)

        self.warnings = []
        if not registered:
            profile, profile_error = await self._read_profile(identity)
            if self._is_stale(identity):
                return self._discard("profile fallback", identity)
            self.view = reconcile(None, profile)
            self.error = None
            if profile_error is not None:
                self.warnings.append(f"Profile store unavailable: {profile_error}")
            self._transition(ControllerState.NO_LEDGER_RECORD)
            return True

        self._transition(ControllerState.LOADING)
        (ledger, ledger_error), (profile, profile_error) = await asyncio.gather(
            self._read_ledger(identity),
            self._read_profile(identity),
        )
        if self._is_stale(identity):
            return self._discard("load", identity)

        view = reconcile(ledger, profile)
        if view is None:
            self.view = None
            if ledger_error is not None or profile_error is not None:
                self.error = ledger_error or profile_error
                self._transition(ControllerState.LOAD_ERROR)
            else:
                self.error = None
                self._transition(ControllerState.NO_LEDGER_RECORD)
            return True

        self.view = view
        self.error = None
        if ledger_error is not None:
            self.warnings.append(f"Ledger unavailable, showing profile data: {ledger_error}")
        if profile_error is not None:
            self.warnings.append(f"Profile store unavailable, showing ledger data: {profile_error}")
        self._transition(ControllerState.LOADED)
        return True

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def _stale_outcome(self, action: str, identity: Identity) -> ActionOutcome:
        logger.warning("Discarding %s result for %s: identity changed", action, identity.address)
        return ActionOutcome.failure(IdentityChanged(
            f"Identity changed during {action}; any confirmed transaction belongs to {identity.address}"
        ))

    async def _submit_and_confirm(self, identity: Identity, action: str, submit):
        """Run a ledger write to confirmation. Returns (receipt, failure_outcome)."""
        ledger = self._ledger
        prior = self.state
        self.error = None
        self._transition(ControllerState.REGISTERING if action == "registration" else ControllerState.REVOKING)
        try:
            handle = await submit(ledger)
            receipt = await ledger.confirm(handle)
        except (LedgerWriteError, IdentityError) as exc:
            if self._is_stale(identity):
                return None, self._stale_outcome(action, identity)
            logger.warning("%s for %s failed: %s", action.capitalize(), identity.address, exc)
            self.error = exc
            self._transition(prior)
            return None, ActionOutcome.failure(exc, view=self.view)
        if self._is_stale(identity):
            return None, self._stale_outcome(action, identity)
        return receipt, None

    async def _finish(self, identity: Identity, action: str, warnings: List[str], receipt) -> ActionOutcome:
        if self._is_stale(identity):
            return self._stale_outcome(action, identity)
        if not await self._probe_and_load(identity):
            return self._stale_outcome(action, identity)
        if self.state == ControllerState.LOAD_ERROR:
            logger.warning("%s for %s confirmed but reload failed: %s", action.capitalize(), identity.address, self.error)
            warnings = warnings + [f"Confirmed on the ledger, but the donor view could not be reloaded: {self.error}"]
        return ActionOutcome.success(self.view, warnings + self.warnings, receipt=receipt)

    async def register(self, form: RegistrationForm) -> ActionOutcome:
        """Register on the ledger, then best-effort create the off-chain profile."""
        identity = self._identity
        if identity is None:
            return ActionOutcome.failure(NotConnected("Connect a wallet before registering"))
        try:
            form.validate()
        except InvalidRegistration as exc:
            return ActionOutcome.failure(exc, view=self.view)

        receipt, failed = await self._submit_and_confirm(
            identity,
            "registration",
            lambda ledger: ledger.register_donor(
                form.full_name.strip(), form.age, form.blood_type, tuple(form.organs), form.medical_history
            ),
        )
        if failed is not None:
            return failed

        warnings: List[str] = []
        profile = form.to_profile(identity.address)
        try:
            await self.profiles.create(profile)
        except ProfileStoreUnavailable as exc:
            self.sync_queue.queue_create(profile)
            logger.warning("Registered %s on ledger; profile create deferred: %s", identity.address, exc)
            warnings.append(f"Registered on the ledger, but the profile store is unavailable; profile queued for sync ({exc})")
        except ProfileStoreError as exc:
            logger.warning("Registered %s on ledger; profile create failed: %s", identity.address, exc)
            warnings.append(f"Registered on the ledger, but the profile was not saved: {exc}")

        return await self._finish(identity, "registration", warnings, receipt)

    async def revoke(self) -> ActionOutcome:
        """Revoke on the ledger, then best-effort mark the profile inactive."""
        identity = self._identity
        if identity is None:
            return ActionOutcome.failure(NotConnected("Connect a wallet before revoking"))

        receipt, failed = await self._submit_and_confirm(
            identity, "revocation", lambda ledger: ledger.revoke_donation()
        )
        if failed is not None:
            return failed

        warnings: List[str] = []
        fields = {"status": ProfileStatus.INACTIVE.value}
        try:
            await self.profiles.update_status(identity.address, fields)
        except ProfileStoreUnavailable as exc:
            self.sync_queue.queue_update(identity.address, fields)
            logger.warning("Revoked %s on ledger; profile update deferred: %s", identity.address, exc)
            warnings.append(f"Revoked on the ledger, but the profile store is unavailable; update queued for sync ({exc})")
        except ProfileStoreError as exc:
            logger.warning("Revoked %s on ledger; profile update failed: %s", identity.address, exc)
            warnings.append(f"Revoked on the ledger, but the profile was not updated: {exc}")

        return await self._finish(identity, "revocation", warnings, receipt)

    async def retry_profile_sync(self) -> Dict:
        """Replay deferred profile writes."""
        return await self.sync_queue.sync_all_pending(self.profiles)
