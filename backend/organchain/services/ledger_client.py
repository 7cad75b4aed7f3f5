"""
Identity-bound client for the donor registry contract.

A client is built for exactly one Identity. Once the wallet switches accounts
the IdentityHolder no longer holds that Identity and every write through the
old client raises StaleIdentity instead of signing as the wrong donor.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional, Sequence

from ..core.config import settings
from ..core.errors import ConfirmationTimeout, StaleIdentity, TransactionFailed, WriteRejected
from .ledger_contract import RegistryContract, TransactionReceipt
from .records import LedgerDonorRecord, normalize_identity
from .wallet import Identity, IdentityHolder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingTransaction:
    """Handle for a submitted but not yet confirmed write."""
    tx_hash: str
    action: str
    sender: str
    submitted_at: float


class LedgerRegistryClient:

    def __init__(
        self,
        identity: Identity,
        holder: IdentityHolder,
        contract: RegistryContract,
        confirmation_timeout: Optional[float] = None,
        confirmation_blocks: Optional[int] = None,
        poll_interval: Optional[float] = None,
    ):
        self.identity = identity
        self.holder = holder
        self.contract = contract
        self.confirmation_timeout = (
            settings.LEDGER_CONFIRMATION_TIMEOUT if confirmation_timeout is None else confirmation_timeout
        )
        self.confirmation_blocks = max(
            1, settings.LEDGER_CONFIRMATION_BLOCKS if confirmation_blocks is None else confirmation_blocks
        )
        self.poll_interval = settings.LEDGER_POLL_INTERVAL if poll_interval is None else poll_interval

    @property
    def is_stale(self) -> bool:
        return not self.holder.is_current(self.identity)

    async def _authorize(self, description: str) -> None:
        if self.is_stale:
            raise StaleIdentity(f"Signer for {self.identity.address} is no longer the active identity")
        if not await self.identity.signer.approve(description):
            raise WriteRejected(f"User declined to sign {description}")

    def _pending(self, tx_hash: str, action: str) -> PendingTransaction:
        logger.info("Submitted %s tx %s from %s", action, tx_hash, self.identity.address)
        return PendingTransaction(
            tx_hash=tx_hash,
            action=action,
            sender=self.identity.address,
            submitted_at=time.time(),
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def register_donor(
        self,
        full_name: str,
        age: int,
        blood_type: str,
        organs: Sequence[str],
        medical_history: str = "",
    ) -> PendingTransaction:
        """Submit a registerDonor transaction. Success only means the node accepted it."""
        await self._authorize("registerDonor")
        tx_hash = await self.contract.register_donor(
            self.identity.address, full_name, age, blood_type, tuple(organs), medical_history
        )
        return self._pending(tx_hash, "registerDonor")

    async def revoke_donation(self) -> PendingTransaction:
        await self._authorize("revokeDonation")
        tx_hash = await self.contract.revoke_donation(self.identity.address)
        return self._pending(tx_hash, "revokeDonation")

    async def confirm(self, handle: PendingTransaction) -> TransactionReceipt:
        """
        Wait until ``handle`` is included and buried under the configured
        number of blocks. Raises ConfirmationTimeout or TransactionFailed.
        """
        started = time.monotonic()
        receipt = await self.contract.wait_for_receipt(handle.tx_hash, self.confirmation_timeout)
        if not receipt.succeeded:
            logger.warning("%s tx %s failed after inclusion", handle.action, handle.tx_hash)
            raise TransactionFailed(handle.tx_hash)

        while True:
            head = await self.contract.block_number()
            if head - receipt.block_number + 1 >= self.confirmation_blocks:
                break
            if time.monotonic() - started >= self.confirmation_timeout:
                raise ConfirmationTimeout(handle.tx_hash, self.confirmation_timeout)
            await asyncio.sleep(self.poll_interval)

        logger.info("%s tx %s confirmed in block %d", handle.action, handle.tx_hash, receipt.block_number)
        return receipt

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_donor_info(self, identity: Optional[str] = None) -> LedgerDonorRecord:
        return await self.contract.get_donor_info(normalize_identity(identity or self.identity.address))

    async def is_donor(self, identity: Optional[str] = None) -> bool:
        return await self.contract.is_donor(normalize_identity(identity or self.identity.address))
