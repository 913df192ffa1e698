"""Data models for the vulnerability registry."""

from dataclasses import dataclass, field
from enum import Enum


class IdentifierKind(str, Enum):
    """How a caller-supplied identifier should be interpreted."""
    BASE_ID = "base_id"
    BVC_ID = "bvc_id"
    TEXT = "text"


@dataclass(frozen=True)
class BvcIdParts:
    """Constituent fields of a BVC ID.

    ``sequence`` keeps its zero-padding so the id can be rebuilt verbatim.
    """
    platform: str
    year: int
    sequence: str

    @property
    def sequence_number(self) -> int:
        return int(self.sequence)

    def to_bvc_id(self) -> str:
        return f"BVC-{self.platform}-{self.year:04d}-{self.sequence}"


@dataclass(frozen=True)
class VulnerabilityRecord:
    """One immutable version snapshot as stored on the ledger."""
    base_id: str
    bvc_id: str
    version: int
    title: str
    description: str
    content_hash: str
    platform: str
    discovery_date: str
    is_active: bool
    technical_details_hash: str | None = None
    proof_of_exploit_hash: str | None = None


@dataclass(frozen=True)
class TxReceipt:
    """Confirmation of a mined ledger transaction."""
    tx_hash: str
    block_number: int


@dataclass(frozen=True)
class SubmissionReceipt:
    """Result of submitting a vulnerability version to the ledger."""
    bvc_id: str
    version: int
    tx_hash: str
    block_number: int


@dataclass
class RegistryIndex:
    """Parallel listings of every logical vulnerability, in creation order."""
    base_ids: list[str] = field(default_factory=list)
    bvc_ids: list[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.base_ids)
