"""
Registry contract adapters.

RegistryContract is the narrow, typed surface of the on-chain donor registry:
the four contract functions plus the receipt and block-height queries needed to
confirm a write. Web3RegistryContract talks to a real node through web3's
AsyncWeb3; InMemoryRegistryContract mimics the contract for development
(LEDGER_MOCK_MODE) and tests.
"""
import asyncio
import itertools
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from functools import partial
from typing import Callable, Dict, List, Optional, Protocol, Sequence

from web3.exceptions import ContractLogicError, TimeExhausted, Web3RPCError

from ..core.errors import (
    ConfirmationTimeout,
    LedgerNetworkError,
    LedgerRecordNotFound,
    WriteRejected,
    WriteReverted,
)
from .records import LedgerDonorRecord, normalize_identity

logger = logging.getLogger(__name__)

# EIP-1193 "User Rejected Request"
USER_REJECTED_CODE = 4001

REGISTRY_ABI = [
    {
        "type": "function",
        "name": "registerDonor",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "_name", "type": "string"},
            {"name": "_age", "type": "uint8"},
            {"name": "_bloodType", "type": "string"},
            {"name": "_organs", "type": "string[]"},
            {"name": "_medicalHistory", "type": "string"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "revokeDonation",
        "stateMutability": "nonpayable",
        "inputs": [],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "getDonorInfo",
        "stateMutability": "view",
        "inputs": [{"name": "donorAddress", "type": "address"}],
        "outputs": [
            {"name": "name", "type": "string"},
            {"name": "age", "type": "uint8"},
            {"name": "bloodType", "type": "string"},
            {"name": "organs", "type": "string[]"},
            {"name": "medicalHistory", "type": "string"},
            {"name": "timestamp", "type": "uint256"},
            {"name": "isActive", "type": "bool"},
        ],
    },
    {
        "type": "function",
        "name": "isDonor",
        "stateMutability": "view",
        "inputs": [{"name": "", "type": "address"}],
        "outputs": [{"name": "", "type": "bool"}],
    },
]


@dataclass(frozen=True)
class TransactionReceipt:
    tx_hash: str
    block_number: int
    succeeded: bool


class RegistryContract(Protocol):
    address: str

    async def register_donor(
        self,
        sender: str,
        full_name: str,
        age: int,
        blood_type: str,
        organs: Sequence[str],
        medical_history: str,
    ) -> str: ...

    async def revoke_donation(self, sender: str) -> str: ...

    async def get_donor_info(self, donor: str) -> LedgerDonorRecord: ...

    async def is_donor(self, donor: str) -> bool: ...

    async def wait_for_receipt(self, tx_hash: str, timeout: float) -> TransactionReceipt: ...

    async def block_number(self) -> int: ...


def _revert_reason(exc: Exception) -> str:
    message = getattr(exc, "message", None) or str(exc)
    if "execution reverted:" in message:
        message = message.split("execution reverted:", 1)[1]
    return message.strip().strip("'\"") or "execution reverted"


def _rpc_error_code(exc: Exception) -> Optional[int]:
    response = getattr(exc, "rpc_response", None) or {}
    error = response.get("error") if isinstance(response, dict) else None
    if isinstance(error, dict):
        return error.get("code")
    return None


@contextmanager
def _write_errors(action: str):
    try:
        yield
    except ContractLogicError as exc:
        raise WriteReverted(_revert_reason(exc)) from exc
    except Web3RPCError as exc:
        if _rpc_error_code(exc) == USER_REJECTED_CODE:
            raise WriteRejected(f"Signature for {action} was rejected") from exc
        raise LedgerNetworkError(f"{action} failed: {exc}") from exc
    except (OSError, asyncio.TimeoutError) as exc:
        raise LedgerNetworkError(f"{action} failed: {exc}") from exc


@contextmanager
def _read_errors(action: str, donor: str):
    try:
        yield
    except ContractLogicError as exc:
        raise LedgerRecordNotFound(f"No ledger record for {donor}") from exc
    except (Web3RPCError, OSError, asyncio.TimeoutError) as exc:
        raise LedgerNetworkError(f"{action} failed: {exc}") from exc


class Web3RegistryContract:
    """Registry contract reached through an ``AsyncWeb3`` instance."""

    def __init__(self, w3, address: str):
        self._w3 = w3
        self.address = normalize_identity(address)
        self._contract = w3.eth.contract(
            address=w3.to_checksum_address(self.address),
            abi=REGISTRY_ABI,
        )

    def _checksum(self, address: str) -> str:
        return self._w3.to_checksum_address(address)

    async def register_donor(self, sender, full_name, age, blood_type, organs, medical_history) -> str:
        with _write_errors("registerDonor"):
            tx_hash = await self._contract.functions.registerDonor(
                full_name, age, blood_type, list(organs), medical_history
            ).transact({"from": self._checksum(sender)})
        return self._w3.to_hex(tx_hash)

    async def revoke_donation(self, sender: str) -> str:
        with _write_errors("revokeDonation"):
            tx_hash = await self._contract.functions.revokeDonation().transact(
                {"from": self._checksum(sender)}
            )
        return self._w3.to_hex(tx_hash)

    async def get_donor_info(self, donor: str) -> LedgerDonorRecord:
        donor = normalize_identity(donor)
        with _read_errors("getDonorInfo", donor):
            name, age, blood_type, organs, history, timestamp, active = (
                await self._contract.functions.getDonorInfo(self._checksum(donor)).call()
            )
        if not timestamp:
            raise LedgerRecordNotFound(f"No ledger record for {donor}")
        return LedgerDonorRecord(
            identity=donor,
            full_name=name,
            age=int(age),
            blood_type=blood_type,
            organs=tuple(organs),
            medical_history=history,
            registered_at_epoch=int(timestamp),
            is_active=bool(active),
        )

    async def is_donor(self, donor: str) -> bool:
        donor = normalize_identity(donor)
        with _read_errors("isDonor", donor):
            return bool(await self._contract.functions.isDonor(self._checksum(donor)).call())

    async def wait_for_receipt(self, tx_hash: str, timeout: float) -> TransactionReceipt:
        try:
            receipt = await self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        except TimeExhausted as exc:
            raise ConfirmationTimeout(tx_hash, timeout) from exc
        except (OSError, asyncio.TimeoutError) as exc:
            raise LedgerNetworkError(f"Receipt lookup for {tx_hash} failed: {exc}") from exc
        return TransactionReceipt(
            tx_hash=tx_hash,
            block_number=int(receipt["blockNumber"]),
            succeeded=receipt["status"] == 1,
        )

    async def block_number(self) -> int:
        try:
            return int(await self._w3.eth.block_number)
        except (OSError, asyncio.TimeoutError) as exc:
            raise LedgerNetworkError(f"Block number lookup failed: {exc}") from exc


class InMemoryRegistryContract:
    """Process-local stand-in for the registry contract.

    Reverts are raised at submission (as gas estimation does on a real node).
    With ``auto_mine=False`` transactions stay pending until ``mine()``; a
    transaction whose precondition no longer holds when mined gets a failed
    receipt.
    """

    POLL_INTERVAL = 0.01

    def __init__(
        self,
        address: str = "0x" + "0" * 40,
        clock: Callable[[], float] = time.time,
        auto_mine: bool = True,
    ):
        self.address = normalize_identity(address)
        self.clock = clock
        self.auto_mine = auto_mine
        self.network_down = False
        self._donors: Dict[str, LedgerDonorRecord] = {}
        self._pending: Dict[str, Callable[[], None]] = {}
        self._receipts: Dict[str, TransactionReceipt] = {}
        self._block = 0
        self._nonce = itertools.count(1)

    def _check_network(self) -> None:
        if self.network_down:
            raise LedgerNetworkError("Ledger node unreachable")

    def _submit(self, apply: Callable[[], None]) -> str:
        tx_hash = "0x%064x" % next(self._nonce)
        self._pending[tx_hash] = apply
        if self.auto_mine:
            self.mine()
        return tx_hash

    def mine(self) -> List[TransactionReceipt]:
        """Include every pending transaction in a new block."""
        if not self._pending:
            return []
        self._block += 1
        mined = []
        for tx_hash, apply in list(self._pending.items()):
            try:
                apply()
                succeeded = True
            except WriteReverted as exc:
                logger.info("In-memory tx %s reverted on inclusion: %s", tx_hash, exc.reason)
                succeeded = False
            receipt = TransactionReceipt(tx_hash=tx_hash, block_number=self._block, succeeded=succeeded)
            self._receipts[tx_hash] = receipt
            mined.append(receipt)
        self._pending.clear()
        return mined

    def advance_blocks(self, count: int = 1) -> None:
        self._block += count

    def _require_not_registered(self, sender: str) -> None:
        if sender in self._donors:
            raise WriteReverted("Donor already registered")

    def _require_active(self, sender: str) -> None:
        record = self._donors.get(sender)
        if record is None or not record.is_active:
            raise WriteReverted("Not an active donor")

    def _apply_register(self, sender, full_name, age, blood_type, organs, medical_history) -> None:
        self._require_not_registered(sender)
        self._donors[sender] = LedgerDonorRecord(
            identity=sender,
            full_name=full_name,
            age=age,
            blood_type=blood_type,
            organs=tuple(organs),
            medical_history=medical_history,
            registered_at_epoch=int(self.clock()),
            is_active=True,
        )

    def _apply_revoke(self, sender: str) -> None:
        self._require_active(sender)
        record = self._donors[sender]
        self._donors[sender] = LedgerDonorRecord(
            identity=record.identity,
            full_name=record.full_name,
            age=record.age,
            blood_type=record.blood_type,
            organs=record.organs,
            medical_history=record.medical_history,
            registered_at_epoch=record.registered_at_epoch,
            is_active=False,
        )

    async def register_donor(self, sender, full_name, age, blood_type, organs, medical_history) -> str:
        self._check_network()
        sender = normalize_identity(sender)
        if not 0 <= age <= 255:
            raise WriteReverted("age out of uint8 range")
        self._require_not_registered(sender)
        return self._submit(
            partial(self._apply_register, sender, full_name, age, blood_type, tuple(organs), medical_history)
        )

    async def revoke_donation(self, sender: str) -> str:
        self._check_network()
        sender = normalize_identity(sender)
        self._require_active(sender)
        return self._submit(partial(self._apply_revoke, sender))

    async def get_donor_info(self, donor: str) -> LedgerDonorRecord:
        self._check_network()
        donor = normalize_identity(donor)
        record = self._donors.get(donor)
        if record is None:
            raise LedgerRecordNotFound(f"No ledger record for {donor}")
        return record

    async def is_donor(self, donor: str) -> bool:
        self._check_network()
        return normalize_identity(donor) in self._donors

    async def wait_for_receipt(self, tx_hash: str, timeout: float) -> TransactionReceipt:
        self._check_network()
        deadline = time.monotonic() + timeout
        while tx_hash not in self._receipts:
            if time.monotonic() >= deadline:
                raise ConfirmationTimeout(tx_hash, timeout)
            await asyncio.sleep(self.POLL_INTERVAL)
        return self._receipts[tx_hash]

    async def block_number(self) -> int:
        self._check_network()
        return self._block
