import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict

from fastapi import Depends, FastAPI
from sqlalchemy import text

from chatmatch.config import configure_logging, load_settings
from chatmatch.database import close_db, get_session_factory
from chatmatch.dependencies import matching_service
from chatmatch.routers.conversations import router as conversations_router
from chatmatch.routers.random import router as random_router
from chatmatch.services.matching_service import (
    MatchingService,
    create_matching_service,
)

settings = load_settings()
configure_logging(settings.log_level)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup and shutdown."""
    # Startup
    app.state.matching_service = create_matching_service(settings)
    logger.info("Matching service started (env=%s)", settings.env)
    yield
    # Shutdown
    await app.state.matching_service.shutdown()
    await close_db()


app = FastAPI(
    title="Chat Match Service",
    description="Random matching queue and conversation provisioning for chat",
    version=settings.commit_hash or "dev",
    lifespan=lifespan,
)

# Include routers
app.include_router(
    conversations_router, prefix="/api/conversations", tags=["conversations"]
)
app.include_router(random_router, prefix="/api/random", tags=["random"])


async def _database_status() -> str:
    try:
        async with get_session_factory()() as session:
            result = await session.execute(text("SELECT 1"))
            return "connected" if result.scalar() == 1 else "error"
    except Exception:
        logger.warning("Database health check failed", exc_info=True)
        return "disconnected"


@app.get("/health")
async def health_check(
    service: MatchingService = Depends(matching_service),
) -> Dict[str, str]:
    """Health check endpoint with store connectivity."""
    if settings.store_backend == "sql":
        db_status = await _database_status()
    else:
        db_status = "memory"

    return {
        "status": "healthy" if db_status in ("connected", "memory") else "degraded",
        "database": db_status,
        "change_feed": type(service.feed).__name__,
        "environment": settings.env or "",
        "version": settings.commit_hash or "",
    }


# If run directly, start the server
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
