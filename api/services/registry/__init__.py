"""Vulnerability registry.

Identifier derivation, discovery-date validation and version tracking for
vulnerability reports recorded on a ledger, with full write-ups kept in a
content-addressed store.
"""

from api.services.registry.service import RegistryService
from api.services.registry.models import VulnerabilityRecord

__all__ = [
    "RegistryService",
    "VulnerabilityRecord",
]
