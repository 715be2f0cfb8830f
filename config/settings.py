"""
TP/SL Synchronizer Configuration
"""
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    # Bybit V5 REST endpoints
    BYBIT_MAINNET_URL: str = "https://api.bybit.com"
    BYBIT_TESTNET_URL: str = "https://api-testnet.bybit.com"
    BYBIT_DEMO_URL: str = "https://api-demo.bybit.com"
    BYBIT_ENVIRONMENT: str = "mainnet"  # mainnet | testnet | demo

    # Credentials for the entry scripts only (the core takes them per call)
    BYBIT_API_KEY: str = ""
    BYBIT_API_SECRET: str = ""

    # Request signing / transport
    RECV_WINDOW_MS: int = 5000  # Signature validity window
    REQUEST_TIMEOUT_MS: int = 5000  # Aligned with recv window

    # Rate limiting (per gateway instance)
    MIN_REQUEST_INTERVAL_MS: int = 100
    MAX_CONCURRENT_REQUESTS: int = Field(default=5, ge=1)

    # Account position mode: "one_way" (positionIdx 0) or "hedge" (1 long / 2 short)
    POSITION_MODE: str = "one_way"

    # Simulate mutations instead of sending them
    DRY_RUN: bool = False

    # HTTP service
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8890

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
