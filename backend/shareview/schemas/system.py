"""System schemas."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "ok"
    version: str
    service: str = "shareview"
    backend_url: str
    open_pages: int = 0
