"""Pydantic schemas for API request/response validation."""

from typing import Any

from pydantic import BaseModel, Field


# ============================================================================
# Request Schemas
# ============================================================================


class CreateVulnerabilityRequest(BaseModel):
    """Schema for registering a vulnerability.

    The document is either sent inline or referenced by a path relative to
    the server's documents directory. Field checks (title, description,
    platform, discoveryDate) happen in the registry service so that they are
    reported as 400 with the offending field named.
    """

    document: dict[str, Any] | None = None
    file_path: str | None = None


class StatusUpdateRequest(BaseModel):
    """Schema for toggling the active flag of a vulnerability.

    Both fields are checked by the registry service, which rejects a missing
    id or a non-boolean flag with 400.
    """

    id: str | None = Field(None, description="BVC ID, BaseId or text identifier")
    is_active: Any = None


# ============================================================================
# Response Schemas
# ============================================================================


class ContentView(BaseModel):
    """Pointer into the content store plus the body, when it could be fetched."""

    hash: str | None = None
    url: str | None = None
    data: Any = None
    error: str | None = None


class VulnerabilityResponse(BaseModel):
    """Schema for the latest version of a vulnerability."""

    bvc_id: str
    base_id: str
    version: str
    title: str
    description: str
    platform: str
    discovery_date: str
    discovery_year: int
    status: str
    is_active: bool
    technical_details_hash: str | None = None
    proof_of_exploit_hash: str | None = None
    content: ContentView


class Identifiers(BaseModel):
    bvc_id: str
    base_id: str


class LedgerReceipt(BaseModel):
    tx_hash: str
    block_number: int
    version: str


class ContentReceipt(BaseModel):
    hash: str
    url: str
    filename: str
    reconciled: bool = False


class CreateVulnerabilityResponse(BaseModel):
    """Schema for the combined receipt of a registration."""

    message: str
    identifiers: Identifiers
    ledger: LedgerReceipt
    content: ContentReceipt


class StatusUpdateResponse(BaseModel):
    """Schema for a status toggle receipt."""

    message: str
    base_id: str
    is_active: bool
    tx_hash: str
    block_number: int


class PaginatedResponse(BaseModel):
    """Schema for paginated responses."""

    items: list[Any]
    total: int
    page: int
    page_size: int
    pages: int
    has_next: bool = False
    has_prev: bool = False


class VersionHistoryResponse(BaseModel):
    """Schema for the ordered version list of a vulnerability."""

    id: str
    base_id: str
    bvc_id: str
    count: int
    versions: list[dict[str, Any]]
