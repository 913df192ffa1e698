"""Health check router."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.config import get_settings
from api.dependencies import get_content_store, get_ledger
from api.services.registry.errors import RegistryError
from api.services.registry.gateways.content_store import ContentStore
from api.services.registry.gateways.ledger import LedgerGateway

router = APIRouter()
logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"


@router.get("/health")
async def health_check(
    ledger: LedgerGateway = Depends(get_ledger),
    content_store: ContentStore = Depends(get_content_store),
):
    """Check ledger and content store reachability.

    The ledger is authoritative: if it is unreachable the service is
    unavailable (503) whatever the content store reports. A content store
    outage alone only degrades the service.
    """
    try:
        ledger_details = await ledger.ping()
        ledger_status = {"reachable": True, **ledger_details}
    except RegistryError as e:
        logger.error(f"Health check: ledger unreachable: {e.message}")
        ledger_status = {"reachable": False, "contract_accessible": False, "error": e.message}

    content_reachable = await content_store.ping(timeout=get_settings().health_probe_timeout_seconds)
    if not content_reachable:
        logger.warning("Health check: content store unreachable")

    if not ledger_status["reachable"]:
        status = "unavailable"
    elif not content_reachable:
        status = "degraded"
    else:
        status = "healthy"

    body = {
        "status": status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "ledger": ledger_status,
        "content_store": {"reachable": content_reachable},
        "version": API_VERSION,
    }
    return JSONResponse(status_code=503 if status == "unavailable" else 200, content=body)


@router.get("/ready")
async def readiness_check():
    """Check if the API is ready to receive traffic."""
    return {"ready": True}
