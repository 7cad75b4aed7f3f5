"""
Wires wallet, registry contract and profile store into a controller.
"""
import logging
from typing import Optional

from web3 import AsyncHTTPProvider, AsyncWeb3

from ..core.config import Settings, settings
from ..core.errors import ConfigMissing
from .controller import DonorProfileController
from .ledger_contract import InMemoryRegistryContract, Web3RegistryContract
from .profile_store import ProfileStoreClient
from .wallet import IdentityHolder, InMemoryWallet, NodeWallet, WalletIdentityProvider

logger = logging.getLogger(__name__)

# First unlocked account of a default Hardhat node
DEMO_ACCOUNT = "0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266"


def build_controller(
    config: Optional[Settings] = None,
    profiles: Optional[ProfileStoreClient] = None,
) -> DonorProfileController:
    """
    Build a controller from settings.
    Raises ConfigMissing when CONTRACT_ADDRESS is not set, so a misconfigured
    deployment fails at startup rather than on the first ledger call.
    """
    config = config or settings
    if not config.CONTRACT_ADDRESS:
        raise ConfigMissing("CONTRACT_ADDRESS")

    if config.LEDGER_MOCK_MODE:
        logger.info("Ledger mock mode: using in-memory registry at %s", config.CONTRACT_ADDRESS)
        contract = InMemoryRegistryContract(address=config.CONTRACT_ADDRESS)
        backend = InMemoryWallet(accounts=[DEMO_ACCOUNT])
    else:
        w3 = AsyncWeb3(AsyncHTTPProvider(config.LEDGER_RPC_URL))
        contract = Web3RegistryContract(w3, config.CONTRACT_ADDRESS)
        backend = NodeWallet(w3)

    wallet = WalletIdentityProvider(backend, IdentityHolder())
    return DonorProfileController(
        wallet=wallet,
        contract=contract,
        profiles=profiles or ProfileStoreClient(
            base_url=config.PROFILE_STORE_URL,
            timeout=config.PROFILE_STORE_TIMEOUT,
            api_key=config.PROFILE_STORE_API_KEY,
        ),
        ledger_options={
            "confirmation_timeout": config.LEDGER_CONFIRMATION_TIMEOUT,
            "confirmation_blocks": config.LEDGER_CONFIRMATION_BLOCKS,
            "poll_interval": config.LEDGER_POLL_INTERVAL,
        },
    )
