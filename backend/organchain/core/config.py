from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    APP_NAME: str = "OrganChain Donor Registry"
    VERSION: str = "1.0.0"

    # Profile store persistence
    DATABASE_URL: str = "sqlite:///./organchain.db"
    CORS_ORIGINS: List[str] = ["*"]

    # Ledger (registry contract)
    CONTRACT_ADDRESS: Optional[str] = None
    LEDGER_RPC_URL: str = "http://127.0.0.1:8545"  # local Hardhat node
    LEDGER_MOCK_MODE: bool = True  # Use the in-memory registry when no node is available
    LEDGER_CONFIRMATION_TIMEOUT: float = 120.0  # seconds
    LEDGER_CONFIRMATION_BLOCKS: int = 1
    LEDGER_POLL_INTERVAL: float = 1.0

    # Off-chain profile store client
    PROFILE_STORE_URL: str = "http://localhost:3001/api"
    PROFILE_STORE_TIMEOUT: int = 10
    PROFILE_STORE_API_KEY: Optional[str] = None

    class Config:
        env_file = ".env"


settings = Settings()
