"""Vulnerability registry router."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from api.config import get_settings
from api.dependencies import get_registry_service
from api.models.schemas import (
    CreateVulnerabilityRequest,
    CreateVulnerabilityResponse,
    PaginatedResponse,
    StatusUpdateRequest,
    StatusUpdateResponse,
    VersionHistoryResponse,
    VulnerabilityResponse,
)
from api.services.registry.errors import RegistryError
from api.services.registry.service import RegistryService

router = APIRouter()
logger = logging.getLogger(__name__)


def _http_error(e: RegistryError) -> HTTPException:
    """Translate a registry error into the HTTP error it maps to."""
    if e.status_code >= 500:
        logger.error(f"{type(e).__name__}: {e.message}")
    return HTTPException(status_code=e.status_code, detail=e.to_detail())


def _check_page_size(page_size: int | None) -> None:
    max_page_size = get_settings().max_page_size
    if page_size is not None and page_size > max_page_size:
        raise HTTPException(
            status_code=400,
            detail={"error": f"page_size must not exceed {max_page_size}", "field": "page_size"},
        )


@router.post("", status_code=201, response_model=CreateVulnerabilityResponse)
async def create_vulnerability(
    request: CreateVulnerabilityRequest,
    service: RegistryService = Depends(get_registry_service),
):
    """Register a vulnerability or a new version of an existing one."""
    try:
        document = service.load_document(request.document, request.file_path)
        return await service.create(document)
    except RegistryError as e:
        raise _http_error(e) from e


# Static routes must be declared before /{identifier}.
@router.get("/bvc-id/preview")
async def preview_bvc_id(
    platform: str = Query(..., description="Platform code, e.g. ETH"),
    discovery_date: str = Query(..., description="YYYY or YYYY-MM-DD"),
    service: RegistryService = Depends(get_registry_service),
):
    """Predict the BVC ID the next registration would receive."""
    try:
        return await service.pre_generate_bvc_id(platform, discovery_date)
    except RegistryError as e:
        raise _http_error(e) from e


@router.get("/validate/discovery-date")
async def validate_discovery_date(
    date: str = "",
    service: RegistryService = Depends(get_registry_service),
):
    """Validate a discovery date and report its year."""
    try:
        return service.check_discovery_date(date)
    except RegistryError as e:
        raise _http_error(e) from e


@router.get("/ids")
async def list_vulnerability_ids(
    page: int | None = None,
    page_size: int | None = None,
    service: RegistryService = Depends(get_registry_service),
):
    """List BVC IDs and BaseIds, optionally one page at a time."""
    _check_page_size(page_size)
    if page is None and page_size is not None:
        page = 1
    try:
        if page_size is None:
            page_size = get_settings().default_page_size
        return await service.list_ids(page, page_size)
    except RegistryError as e:
        raise _http_error(e) from e


@router.get("/counters/{platform}/{year}")
async def get_current_counter(
    platform: str,
    year: int,
    service: RegistryService = Depends(get_registry_service),
):
    """Last sequence number issued for a platform and year."""
    try:
        return await service.current_counter(platform, year)
    except RegistryError as e:
        raise _http_error(e) from e


@router.post("/status", response_model=StatusUpdateResponse)
async def set_vulnerability_status(
    request: StatusUpdateRequest,
    service: RegistryService = Depends(get_registry_service),
):
    """Activate or deactivate a vulnerability."""
    try:
        return await service.set_status(request.id, request.is_active)
    except RegistryError as e:
        raise _http_error(e) from e


@router.get("")
async def list_vulnerabilities(
    page: int | None = None,
    page_size: int | None = None,
    platform: str | None = None,
    service: RegistryService = Depends(get_registry_service),
):
    """List vulnerabilities: all, one page, or one platform."""
    _check_page_size(page_size)
    try:
        if platform is not None:
            return await service.list_by_platform(platform)
        if page is None and page_size is None:
            return await service.list_all()
        result = await service.list_page(
            page if page is not None else 1,
            page_size if page_size is not None else get_settings().default_page_size,
        )
        return PaginatedResponse(**result)
    except RegistryError as e:
        raise _http_error(e) from e


@router.get("/{identifier}/versions", response_model=VersionHistoryResponse)
async def get_vulnerability_versions(
    identifier: str,
    service: RegistryService = Depends(get_registry_service),
):
    """All versions of a vulnerability, oldest first."""
    try:
        return await service.get_versions(identifier)
    except RegistryError as e:
        raise _http_error(e) from e


@router.get("/{identifier}", response_model=VulnerabilityResponse)
async def get_vulnerability(
    identifier: str,
    service: RegistryService = Depends(get_registry_service),
):
    """Latest version of a vulnerability by BVC ID or BaseId."""
    try:
        return await service.get(identifier)
    except RegistryError as e:
        raise _http_error(e) from e
