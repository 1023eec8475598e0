"""
Health check endpoint.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from datetime import datetime, timezone
import logging

from stembot.database import get_db
from stembot.dependencies.services import get_completion_client
from stembot.models.schemas import HealthCheckResponse
from stembot.services.completion_client import CompletionClient

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=HealthCheckResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    client: CompletionClient = Depends(get_completion_client),
):
    """
    Health check endpoint to verify system status.

    Returns:
        HealthCheckResponse with status of the database and the completion endpoint
    """
    # Check database connection
    db_status = "ok"
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        db_status = "error"

    # Check completion endpoint; an unset API key is reported, not treated as an outage
    if not client.is_configured:
        completion_status = "not_configured"
    elif await client.check_health():
        completion_status = "ok"
    else:
        completion_status = "error"

    # Overall status
    overall_status = "healthy" if db_status == "ok" and completion_status == "ok" else "degraded"
    if db_status != "ok":
        overall_status = "unhealthy"

    return HealthCheckResponse(
        status=overall_status,
        database=db_status,
        completion_endpoint=completion_status,
        timestamp=datetime.now(timezone.utc),
    )
