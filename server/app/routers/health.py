"""Health check router."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..schemas.health import HealthResponse, HealthStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/health", tags=["health"])


@router.post("/ping", response_model=HealthResponse)
async def health_ping(db: AsyncSession = Depends(get_db)) -> JSONResponse:
    """
    Health check endpoint.

    Returns current service status, timestamp and database reachability.
    """
    database_ok = True
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        database_ok = False
        logger.warning("Database health check failed", extra={"error": str(e)})

    response_data = HealthResponse(
        status=HealthStatus.HEALTHY if database_ok else HealthStatus.DEGRADED,
        timestamp=datetime.utcnow(),
        version="1.0.0",
        database=database_ok
    )

    logger.debug(
        "Health check requested",
        extra={
            "status": response_data.status,
            "timestamp": response_data.timestamp.isoformat()
        }
    )

    return JSONResponse(
        status_code=200 if database_ok else 503,
        content=response_data.model_dump(mode="json")
    )
