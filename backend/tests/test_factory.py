import asyncio

import pytest

from organchain.core.config import Settings
from organchain.core.errors import ConfigMissing
from organchain.services.controller import ControllerState
from organchain.services.factory import DEMO_ACCOUNT, build_controller
from organchain.services.ledger_contract import InMemoryRegistryContract, Web3RegistryContract
from organchain.services.records import RegistrationForm
from organchain.services.wallet import InMemoryWallet, NodeWallet

REGISTRY = "0x5fbdb2315678afecb367f032d93f642f64180aa3"


def make_settings(**overrides):
    values = dict(CONTRACT_ADDRESS=REGISTRY, LEDGER_MOCK_MODE=True, LEDGER_CONFIRMATION_TIMEOUT=1.0)
    values.update(overrides)
    return Settings(_env_file=None, **values)


def test_missing_contract_address_fails_fast():
    with pytest.raises(ConfigMissing) as exc_info:
        build_controller(make_settings(CONTRACT_ADDRESS=None))
    assert exc_info.value.setting == "CONTRACT_ADDRESS"


def test_mock_mode_uses_in_memory_ledger(profile_store):
    controller = build_controller(make_settings(), profiles=profile_store)
    try:
        assert isinstance(controller.contract, InMemoryRegistryContract)
        assert controller.contract.address == REGISTRY
        assert isinstance(controller.wallet.backend, InMemoryWallet)
        assert controller.profiles is profile_store

        async def scenario():
            await controller.connect()
            return await controller.register(RegistrationForm(
                full_name="Demo Donor", age=30, blood_type="A+", organs=("corneas",), email="demo@example.com",
            ))

        outcome = asyncio.run(scenario())
        assert outcome.ok
        assert controller.identity.address == DEMO_ACCOUNT
        assert controller.state == ControllerState.LOADED
    finally:
        controller.close()


def test_node_mode_wires_web3():
    controller = build_controller(make_settings(LEDGER_MOCK_MODE=False, LEDGER_RPC_URL="http://127.0.0.1:8545"))
    try:
        assert isinstance(controller.contract, Web3RegistryContract)
        assert controller.contract.address == REGISTRY
        assert isinstance(controller.wallet.backend, NodeWallet)
        assert controller.profiles.base_url == make_settings().PROFILE_STORE_URL
    finally:
        controller.close()
