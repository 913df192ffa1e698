"""Gateways to the registry's external collaborators."""

from api.services.registry.gateways.content_store import ContentStore, PinataContentStore
from api.services.registry.gateways.ledger import LedgerGateway, Web3LedgerGateway

__all__ = [
    "ContentStore",
    "LedgerGateway",
    "PinataContentStore",
    "Web3LedgerGateway",
]
