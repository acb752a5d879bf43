"""
Route handlers for health checks.
"""
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from models.api_models import HealthStatus
from utils.dependencies import get_repo
from utils.errors import PersistenceError
from utils.logger import app_logger
from utils.repository import ChatRepository

router = APIRouter()


@router.get("/api/health", response_model=HealthStatus)
async def health_check(repo: ChatRepository = Depends(get_repo)):
    """Report service and database status; 503 when the database is unreachable."""
    try:
        repo.ping()
    except PersistenceError as e:
        app_logger.error(f"Database health check failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=HealthStatus(status="error", database="disconnected").model_dump()
        )

    return HealthStatus(status="ok", database="connected")
