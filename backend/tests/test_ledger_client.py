import asyncio

import pytest
from web3.exceptions import ContractLogicError, Web3RPCError

from organchain.core.errors import (
    ConfirmationTimeout,
    LedgerNetworkError,
    LedgerRecordNotFound,
    StaleIdentity,
    TransactionFailed,
    WriteRejected,
    WriteReverted,
)
from organchain.services.ledger_client import LedgerRegistryClient
from organchain.services.ledger_contract import InMemoryRegistryContract, _write_errors
from organchain.services.wallet import IdentityHolder, InMemoryWallet, WalletIdentityProvider

ALICE = "0xab" + "0" * 36 + "12"
BOB = "0x" + "b" * 40
T = 1_700_000_000


class TestLedgerRegistryClient:

    def setup_method(self):
        self.backend = InMemoryWallet(accounts=[ALICE, BOB])
        self.holder = IdentityHolder()
        self.provider = WalletIdentityProvider(self.backend, self.holder)
        self.identity = asyncio.run(self.provider.connect())
        self.contract = InMemoryRegistryContract(clock=lambda: T)

    def _client(self, **options):
        options.setdefault("confirmation_timeout", 1.0)
        options.setdefault("confirmation_blocks", 1)
        options.setdefault("poll_interval", 0.01)
        return LedgerRegistryClient(self.identity, self.holder, self.contract, **options)

    def test_register_confirm_then_read(self):
        client = self._client()

        async def scenario():
            handle = await client.register_donor("Ada Donor", 34, "O+", ["kidney", "liver"])
            receipt = await client.confirm(handle)
            return handle, receipt, await client.get_donor_info()

        handle, receipt, record = asyncio.run(scenario())
        assert handle.sender == ALICE
        assert handle.action == "registerDonor"
        assert receipt.succeeded
        assert receipt.tx_hash == handle.tx_hash
        assert record.full_name == "Ada Donor"
        assert record.organs == ("kidney", "liver")
        assert record.registered_at_epoch == T
        assert record.is_active
        assert asyncio.run(client.is_donor())

    def test_duplicate_registration_reverts_with_reason(self):
        client = self._client()

        async def scenario():
            await client.confirm(await client.register_donor("Ada", 34, "O+", ["kidney"]))
            await client.register_donor("Ada", 34, "O+", ["kidney"])

        with pytest.raises(WriteReverted) as exc_info:
            asyncio.run(scenario())
        assert exc_info.value.reason == "Donor already registered"

    def test_unknown_donor_read(self):
        client = self._client()
        with pytest.raises(LedgerRecordNotFound):
            asyncio.run(client.get_donor_info(BOB))
        assert asyncio.run(client.is_donor(BOB)) is False

    def test_revoke_marks_inactive_but_keeps_membership(self):
        client = self._client()

        async def scenario():
            await client.confirm(await client.register_donor("Ada", 34, "O+", ["kidney"]))
            await client.confirm(await client.revoke_donation())
            return await client.get_donor_info(), await client.is_donor()

        record, member = asyncio.run(scenario())
        assert record.is_active is False
        assert member is True

    def test_revoke_unregistered_reverts(self):
        client = self._client()
        with pytest.raises(WriteReverted) as exc_info:
            asyncio.run(client.revoke_donation())
        assert exc_info.value.reason == "Not an active donor"

    def test_declined_signature_submits_nothing(self):
        self.backend.reject_signatures = True
        client = self._client()
        with pytest.raises(WriteRejected):
            asyncio.run(client.register_donor("Ada", 34, "O+", ["kidney"]))
        assert asyncio.run(self.contract.is_donor(ALICE)) is False

    def test_stale_identity_cannot_sign(self):
        client = self._client()
        self.backend.switch_account(BOB)
        assert client.is_stale
        with pytest.raises(StaleIdentity):
            asyncio.run(client.register_donor("Ada", 34, "O+", ["kidney"]))
        assert asyncio.run(self.contract.is_donor(ALICE)) is False
        assert asyncio.run(self.contract.is_donor(BOB)) is False

    def test_confirmation_timeout_when_never_mined(self):
        self.contract.auto_mine = False
        client = self._client(confirmation_timeout=0.05)

        async def scenario():
            await client.confirm(await client.register_donor("Ada", 34, "O+", ["kidney"]))

        with pytest.raises(ConfirmationTimeout):
            asyncio.run(scenario())

    def test_failed_receipt_raises_transaction_failed(self):
        self.contract.auto_mine = False
        client = self._client()

        async def scenario():
            first = await client.register_donor("Ada", 34, "O+", ["kidney"])
            second = await client.register_donor("Ada", 34, "O+", ["kidney"])
            self.contract.mine()
            await client.confirm(first)
            await client.confirm(second)

        with pytest.raises(TransactionFailed):
            asyncio.run(scenario())
        assert asyncio.run(client.get_donor_info()).is_active

    def test_waits_for_confirmation_depth(self):
        client = self._client(confirmation_blocks=3)

        async def scenario():
            handle = await client.register_donor("Ada", 34, "O+", ["kidney"])
            task = asyncio.ensure_future(client.confirm(handle))
            await asyncio.sleep(0.05)
            assert not task.done()
            self.contract.advance_blocks(2)
            return await task

        receipt = asyncio.run(scenario())
        assert receipt.block_number == 1

    def test_confirmation_depth_times_out(self):
        client = self._client(confirmation_blocks=3, confirmation_timeout=0.05)

        async def scenario():
            await client.confirm(await client.register_donor("Ada", 34, "O+", ["kidney"]))

        with pytest.raises(ConfirmationTimeout):
            asyncio.run(scenario())

    def test_network_down(self):
        client = self._client()
        self.contract.network_down = True
        with pytest.raises(LedgerNetworkError):
            asyncio.run(client.get_donor_info())
        with pytest.raises(LedgerNetworkError):
            asyncio.run(client.register_donor("Ada", 34, "O+", ["kidney"]))

    def test_age_outside_uint8_reverts(self):
        client = self._client()
        with pytest.raises(WriteReverted):
            asyncio.run(client.register_donor("Ada", 300, "O+", ["kidney"]))


class TestWriteErrorMapping:

    def test_contract_revert(self):
        with pytest.raises(WriteReverted) as exc_info:
            with _write_errors("registerDonor"):
                raise ContractLogicError("execution reverted: Donor already registered")
        assert "Donor already registered" in exc_info.value.reason

    def test_user_rejection_code(self):
        error = Web3RPCError("User rejected the request.")
        error.rpc_response = {"error": {"code": 4001, "message": "User rejected the request."}}
        with pytest.raises(WriteRejected):
            with _write_errors("registerDonor"):
                raise error

    def test_other_rpc_error_is_network(self):
        error = Web3RPCError("nonce too low")
        error.rpc_response = {"error": {"code": -32000, "message": "nonce too low"}}
        with pytest.raises(LedgerNetworkError):
            with _write_errors("registerDonor"):
                raise error

    def test_connection_error_is_network(self):
        with pytest.raises(LedgerNetworkError):
            with _write_errors("revokeDonation"):
                raise ConnectionRefusedError("connection refused")
