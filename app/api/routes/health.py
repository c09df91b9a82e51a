"""Health check endpoint with database connectivity check."""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter

from app.api.deps import DbSession
from app.core.config import settings
from app.core.database import check_db_connected
from app.schemas.common import ApiResponse, envelope
from app.schemas.health import HealthData

router = APIRouter()


@router.get("", response_model=ApiResponse[HealthData], response_model_exclude_unset=True)
def get_health(db: DbSession) -> dict[str, Any]:
    """
    Return service health status and database connectivity.
    Used by load balancers and monitoring.
    """
    db_status = "connected" if check_db_connected(db) else "disconnected"
    return envelope(
        HealthData(
            status="ok",
            environment=settings.APP_ENV,
            database=db_status,
            timestamp=datetime.now(UTC),
        )
    )
