"""
Core API routes, currently just the health check.

Note that unlike every other API route these routes are not behind authentication...
"""

from fastapi import APIRouter, status

core_router = APIRouter()


@core_router.get("/health", status_code=status.HTTP_200_OK, response_model=dict[str, str])
def health():
    """Basic health check endpoint for the server."""
    return {"status": "ok"}
