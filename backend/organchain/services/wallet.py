"""
Wallet identity acquisition.

The provider asks a wallet backend for an account, binds a signer to it and
keeps the resulting Identity in an injectable IdentityHolder. Account switches
reported by the wallet replace the Identity (and its signer session); consumers
holding the old one fail closed.
"""
import itertools
import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Awaitable, Callable, Generic, List, Optional, TypeVar

from ..core.errors import UserRejected, WalletUnavailable
from .records import normalize_identity

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Subscription:
    """Handle returned by EventFeed.subscribe; release it on teardown."""

    def __init__(self, feed: "EventFeed", listener: Callable):
        self._feed = feed
        self._listener = listener

    @property
    def active(self) -> bool:
        return self._feed is not None

    def unsubscribe(self) -> None:
        if self._feed is not None:
            self._feed._remove(self._listener)
            self._feed = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.unsubscribe()


class EventFeed(Generic[T]):
    """Minimal observable: synchronous listeners, explicit unsubscribe."""

    def __init__(self):
        self._listeners: List[Callable[[T], None]] = []

    def subscribe(self, listener: Callable[[T], None]) -> Subscription:
        self._listeners.append(listener)
        return Subscription(self, listener)

    def _remove(self, listener: Callable) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def emit(self, event: T) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Listener %r failed handling %r", listener, event)


@dataclass(frozen=True)
class Signer:
    """Capability to sign ledger transactions as ``address``.

    ``session`` is unique per identity acquisition, so two signers for the same
    address obtained before and after an account switch never compare equal.
    """
    address: str
    session: int
    approve: Callable[[str], Awaitable[bool]] = field(compare=False, repr=False)


@dataclass(frozen=True)
class Identity:
    address: str
    signer: Signer


class IdentityHolder:
    """Owns the current Identity. Replaced wholesale, never mutated."""

    def __init__(self, identity: Optional[Identity] = None):
        self._identity = identity

    @property
    def current(self) -> Optional[Identity]:
        return self._identity

    def replace(self, identity: Optional[Identity]) -> None:
        self._identity = identity

    def is_current(self, identity: Optional[Identity]) -> bool:
        return identity is not None and self._identity == identity


# ── Backends ────────────────────────────────────────────────────────────────

class InMemoryWallet:
    """Wallet double for development (mock mode) and tests.

    ``switch_account`` and ``disconnect`` mimic the user acting in the wallet UI.
    """

    def __init__(self, accounts: Optional[List[str]] = None, installed: bool = True):
        self.account_changes: EventFeed[List[str]] = EventFeed()
        self.installed = installed
        self.reject_connect = False
        self.reject_signatures = False
        self._accounts = [normalize_identity(a) for a in (accounts or [])]
        self._authorized = False

    def _require_installed(self) -> None:
        if not self.installed:
            raise WalletUnavailable("No wallet detected. Please install a wallet extension.")

    async def request_accounts(self) -> List[str]:
        self._require_installed()
        if self.reject_connect:
            raise UserRejected("User rejected the connection request")
        self._authorized = True
        return list(self._accounts)

    async def accounts(self) -> List[str]:
        self._require_installed()
        return list(self._accounts) if self._authorized else []

    async def approve_transaction(self, address: str, description: str) -> bool:
        return not self.reject_signatures

    def switch_account(self, address: str) -> None:
        address = normalize_identity(address)
        self._accounts = [address] + [a for a in self._accounts if a != address]
        if self._authorized:
            self.account_changes.emit(list(self._accounts))

    def disconnect(self) -> None:
        self._authorized = False
        self.account_changes.emit([])


class NodeWallet:
    """Accounts unlocked on an Ethereum node (e.g. a local Hardhat node).

    The node signs transactions itself; ``approver`` is an optional coroutine
    ``(address, description) -> bool`` standing in for the wallet's signing prompt.
    """

    def __init__(self, w3, approver: Optional[Callable[[str, str], Awaitable[bool]]] = None):
        self._w3 = w3
        self._approver = approver
        self._selected: Optional[str] = None
        self.account_changes: EventFeed[List[str]] = EventFeed()

    async def _node_accounts(self) -> List[str]:
        if not await self._w3.is_connected():
            raise WalletUnavailable("Ledger node is not reachable")
        try:
            accounts = await self._w3.eth.accounts
        except OSError as exc:
            raise WalletUnavailable(f"Ledger node is not reachable: {exc}") from exc
        return [a.lower() for a in accounts]

    def _ordered(self, accounts: List[str]) -> List[str]:
        if self._selected not in accounts:
            return accounts
        return [self._selected] + [a for a in accounts if a != self._selected]

    async def request_accounts(self) -> List[str]:
        accounts = await self._node_accounts()
        if not accounts:
            raise WalletUnavailable("Ledger node exposes no unlocked accounts")
        if self._selected not in accounts:
            self._selected = accounts[0]
        return self._ordered(accounts)

    async def accounts(self) -> List[str]:
        if self._selected is None:
            return []
        return self._ordered(await self._node_accounts())

    async def approve_transaction(self, address: str, description: str) -> bool:
        if self._approver is None:
            return True
        return await self._approver(address, description)

    def select_account(self, address: Optional[str]) -> None:
        self._selected = normalize_identity(address) if address else None
        self.account_changes.emit([self._selected] if self._selected else [])


# ── Provider ────────────────────────────────────────────────────────────────

class WalletIdentityProvider:
    """Acquires and tracks the acting identity.

    ``subscribe`` delivers wallet-initiated changes only: the new Identity, or
    None when the wallet reports no accounts. ``connect``/``resume`` return
    their result directly instead of notifying.
    """

    def __init__(self, backend, holder: Optional[IdentityHolder] = None):
        self.backend = backend
        self.holder = holder or IdentityHolder()
        self.identity_changes: EventFeed[Optional[Identity]] = EventFeed()
        self._sessions = itertools.count(1)
        self._backend_subscription = backend.account_changes.subscribe(self._on_accounts_changed)

    async def connect(self) -> Identity:
        """Prompt the wallet for an account. Raises WalletUnavailable / UserRejected."""
        accounts = await self.backend.request_accounts()
        if not accounts:
            raise WalletUnavailable("Wallet returned no accounts")
        return self._adopt(accounts[0])

    async def resume(self) -> Optional[Identity]:
        """Re-enter a previously authorized session without prompting."""
        accounts = await self.backend.accounts()
        if not accounts:
            return None
        return self._adopt(accounts[0])

    def current_identity(self) -> Optional[Identity]:
        return self.holder.current

    def subscribe(self, listener: Callable[[Optional[Identity]], None]) -> Subscription:
        return self.identity_changes.subscribe(listener)

    def close(self) -> None:
        self._backend_subscription.unsubscribe()

    def _adopt(self, address: str) -> Identity:
        address = normalize_identity(address)
        current = self.holder.current
        if current is not None and current.address == address:
            return current
        signer = Signer(
            address=address,
            session=next(self._sessions),
            approve=partial(self.backend.approve_transaction, address),
        )
        identity = Identity(address=address, signer=signer)
        self.holder.replace(identity)
        logger.info("Wallet identity set to %s (session %d)", address, signer.session)
        return identity

    def _on_accounts_changed(self, accounts: List[str]) -> None:
        previous = self.holder.current
        if not accounts:
            if previous is None:
                return
            self.holder.replace(None)
            logger.info("Wallet disconnected; identity cleared")
            self.identity_changes.emit(None)
            return
        identity = self._adopt(accounts[0])
        if identity is not previous:
            self.identity_changes.emit(identity)
