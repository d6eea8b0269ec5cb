"""
Health check route.
"""
from fastapi import APIRouter, Depends, Response

from vanishpaste.database import PasteStore
from vanishpaste.dependencies import get_store
from vanishpaste.models import HealthCheck

router = APIRouter()


@router.get("/api/healthz", response_model=HealthCheck)
async def health_check(
    response: Response,
    store: PasteStore = Depends(get_store),
) -> HealthCheck:
    """
    Health check endpoint.
    Returns 200 with ok=true if the paste store answers, 503 with ok=false otherwise.
    """
    is_healthy = await store.is_healthy()
    if not is_healthy:
        response.status_code = 503
    return HealthCheck(ok=is_healthy)
