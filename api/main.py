"""BVC Registry API - blockchain vulnerability catalogue."""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.config import get_settings
from api.routers import health, vulnerabilities
from api.routers.health import API_VERSION

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.api_log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting BVC Registry API...")
    yield
    logger.info("Shutting down BVC Registry API...")


app = FastAPI(
    title="BVC Registry",
    description="Blockchain vulnerability registry backed by a smart contract and IPFS",
    version=API_VERSION,
    debug=settings.api_debug,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log method, path, status and duration of every request."""
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(f"{request.method} {request.url.path} {response.status_code} {elapsed_ms:.1f} ms")
    return response


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Report malformed query, path or body parameters as 400, naming the field."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:]) or None
    logger.info(f"Rejected {request.method} {request.url.path}: {field}: {first.get('msg')}")
    return JSONResponse(
        status_code=400,
        content={"detail": {"error": first.get("msg", "Invalid request"), "field": field}},
    )


# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(vulnerabilities.router, prefix="/api/vulnerabilities", tags=["Vulnerabilities"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "BVC Registry",
        "version": API_VERSION,
        "description": "Blockchain vulnerability registry backed by a smart contract and IPFS",
    }
