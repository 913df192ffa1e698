"""Configuration settings for the BVC Registry API.

All settings are loaded from environment variables (or a ``.env`` file) using
pydantic-settings. The ``get_settings()`` function returns a cached singleton
instance.

Environment variables are case-insensitive and extra variables are silently
ignored.
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        ledger_rpc_url: JSON-RPC endpoint of the chain hosting the registry
            contract.
        ledger_private_key: Hex private key used to sign registry transactions.
        contract_address: Address of the deployed vulnerability registry
            contract.
        abi_file_path: Path to the compiled contract artifact (a JSON file with
            an ``abi`` key).
        ledger_receipt_timeout_seconds: How long to wait for a submitted
            transaction to be mined.
        pinata_jwt: Bearer token for the Pinata pinning API.
        pinata_api_url: Base URL of the Pinata pinning API.
        ipfs_gateway_url: Base URL of the IPFS gateway used for reads.
        content_fetch_timeout_seconds: Timeout for fetching a record body from
            the gateway. Kept short so read paths degrade instead of hanging.
        health_probe_timeout_seconds: Timeout for the gateway probe in
            ``/health``.
        documents_path: Directory that ``file_path`` references in create
            requests are resolved against.
        default_page_size: Page size used when a listing request omits one.
        max_page_size: Upper bound accepted for ``page_size``.
        api_host: Bind address for the API server.
        api_port: Bind port for the API server.
        api_debug: Enable FastAPI debug mode.
        api_log_level: Logging level (debug, info, warning, error, critical).
        cors_origins: Origins allowed by the CORS middleware.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Ledger
    ledger_rpc_url: str = "http://localhost:8545"
    ledger_private_key: str = ""
    contract_address: str = ""
    abi_file_path: Path = Path("/app/contracts/VulnerabilityRegistry.json")
    ledger_receipt_timeout_seconds: float = 120.0

    # Content store
    pinata_jwt: str = ""
    pinata_api_url: str = "https://api.pinata.cloud"
    ipfs_gateway_url: str = "https://gateway.pinata.cloud"
    content_fetch_timeout_seconds: float = 3.0
    health_probe_timeout_seconds: float = 3.0

    # Submissions
    documents_path: Path = Path("/app/documents")

    # Pagination
    default_page_size: int = 10
    max_page_size: int = 100

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_debug: bool = False
    api_log_level: str = "info"
    cors_origins: list[str] = ["*"]


@lru_cache
def get_settings() -> Settings:
    """Get or create the cached application settings singleton.

    Uses ``functools.lru_cache`` to ensure only one Settings instance is
    created per process, reading environment variables and ``.env`` file
    on first invocation.

    Returns:
        Cached Settings instance.
    """
    return Settings()
