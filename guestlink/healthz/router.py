import logging

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from guestlink.config.database import async_session_manager
from guestlink.config.settings import settings
from guestlink.delivery.factory import build_registry

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthCheckResponse(BaseModel):
    status: str
    database: bool
    email_providers: int
    version: str = "0.1.0"


async def database_reachable() -> bool:
    try:
        async with async_session_manager(auto_commit=False) as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError):
        logger.exception("Database health check failed")
        return False
    return True


def get_database_check():
    """Dependency to get the database reachability check."""
    return database_reachable


def get_provider_count() -> int:
    return len(build_registry(settings.provider_config()))


@router.get("/", response_model=HealthCheckResponse)
async def health_check(
    response: Response,
    database_check=Depends(get_database_check),
    email_providers: int = Depends(get_provider_count),
) -> HealthCheckResponse:
    """
    Health check endpoint to verify the API and its database are up.

    Missing email providers do not make the service unhealthy; sends then fail per message.
    """
    database = await database_check()
    if not database:
        response.status_code = 503
    return HealthCheckResponse(
        status="healthy" if database else "degraded",
        database=database,
        email_providers=email_providers,
    )
