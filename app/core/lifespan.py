from contextlib import asynccontextmanager

from fastapi import FastAPI

from core.aws_client import validate_aws_credentials
from core.config import settings
from core.logger import logger
from services.provisioner import get_provider


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Handles application startup and shutdown.

    On shutdown, waits for binding cleanup tasks spawned by failed
    synchronous binds so their deletes are not cut off mid-flight.
    """
    validate_aws_credentials()
    if not settings.BROKER_PASSWORD:
        logger.warning("BROKER_PASSWORD is empty, every broker request will be rejected")
    logger.info(
        "Lifespan startup: Ready to serve requests.",
        extra={"resource_prefix": settings.RESOURCE_PREFIX, "environment": settings.DEPLOY_ENV}
    )
    yield
    logger.info("Lifespan shutdown.")
    # Nothing to drain if no request ever built the provider
    if get_provider.cache_info().currsize:
        await get_provider().drain_background_tasks()
