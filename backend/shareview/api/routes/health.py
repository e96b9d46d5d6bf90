"""Health check."""

from fastapi import APIRouter

from shareview import __version__
from shareview.config import settings
from shareview.schemas.system import HealthResponse
from shareview.services import get_page_registry

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Lightweight connectivity check."""
    try:
        open_pages = len(get_page_registry())
    except RuntimeError:
        open_pages = 0
    return HealthResponse(
        version=__version__,
        backend_url=settings.backend_base_url,
        open_pages=open_pages,
    )


@router.get("/ping")
async def ping():
    """Ultra-lightweight ping."""
    return {"status": "ok"}
