"""Gateway construction and FastAPI dependencies."""

from functools import lru_cache

from fastapi import Depends

from api.config import get_settings
from api.services.registry.gateways.content_store import ContentStore, PinataContentStore
from api.services.registry.gateways.ledger import LedgerGateway, Web3LedgerGateway
from api.services.registry.service import RegistryService


@lru_cache
def get_ledger() -> LedgerGateway:
    """Dependency returning the process-wide ledger gateway."""
    settings = get_settings()
    return Web3LedgerGateway(
        rpc_url=settings.ledger_rpc_url,
        contract_address=settings.contract_address,
        abi_path=settings.abi_file_path,
        private_key=settings.ledger_private_key,
        receipt_timeout=settings.ledger_receipt_timeout_seconds,
    )


@lru_cache
def get_content_store() -> ContentStore:
    """Dependency returning the process-wide content store gateway."""
    settings = get_settings()
    return PinataContentStore(
        jwt=settings.pinata_jwt,
        api_url=settings.pinata_api_url,
        gateway_url=settings.ipfs_gateway_url,
        fetch_timeout=settings.content_fetch_timeout_seconds,
    )


def get_registry_service(
    ledger: LedgerGateway = Depends(get_ledger),
    content_store: ContentStore = Depends(get_content_store),
) -> RegistryService:
    """Dependency to get a registry service bound to the gateways."""
    settings = get_settings()
    return RegistryService(
        ledger=ledger,
        content_store=content_store,
        documents_path=settings.documents_path,
        fetch_timeout=settings.content_fetch_timeout_seconds,
    )
