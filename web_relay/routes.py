import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from web_relay.vars import RELAY_PREFIX, SERVICE_NAME, SERVICE_VERSION
from web_relay.relay.route import router as relay_router

router = APIRouter()
logger = logging.getLogger("uvicorn.error")

AVAILABLE_ENDPOINTS = ["/", "/health", "/api", f"{RELAY_PREFIX}/*"]


@router.get("/health")
async def health():
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": SERVICE_NAME,
    }


@router.get("/api")
async def api_info():
    """Describe the service and how to address a target through the relay."""
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "endpoints": {
            "health": "/health",
            "proxy": f"{RELAY_PREFIX}/[target URL]",
            "api": "/api",
            "metrics": "/metrics",
        },
        "usage": {
            "example": f"{RELAY_PREFIX}/https://raw.githubusercontent.com/python/cpython/main/README.rst",
            "note": "Append the original URL as-is, including its query string.",
        },
    }


@router.get("/")
async def root():
    return {
        "message": f"{SERVICE_NAME} is running",
        "docs": "/api",
        "health": "/health",
    }


router.include_router(relay_router)
