"""FastAPI application entry point for the FinderMeister API."""

import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from findermeister.app.config import get_settings
from findermeister.app.errors import register_error_handlers
from findermeister.infra.database import async_session, init_db
from findermeister.services.email_service import get_email_service
from findermeister.services.maintenance import MaintenanceScheduler

logger = logging.getLogger(__name__)


async def maintenance_loop(interval_minutes: int):
    """Run strike expiry and escrow auto-release on a fixed interval."""
    while True:
        try:
            async with async_session() as db:
                results = await MaintenanceScheduler(db, email=get_email_service()).tick()
                if any(isinstance(v, int) and v for v in results.values()):
                    logger.info("Maintenance: %s", results)
        except Exception as e:
            logger.error("Maintenance loop error: %s", e)
        await asyncio.sleep(interval_minutes * 60)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: initialize database, start maintenance loop."""
    await init_db()

    settings = get_settings()
    task = None
    if settings.maintenance_enabled:
        task = asyncio.create_task(maintenance_loop(settings.maintenance_interval_minutes))
    yield
    if task is not None:
        task.cancel()


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.debug else logging.WARNING,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

app = FastAPI(
    title="FinderMeister API",
    lifespan=lifespan,
    debug=settings.debug,
)

_cors_origins = settings.cors_origins_list
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=("*" not in _cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# ---------------------------------------------------------------------------
# Route includes
# ---------------------------------------------------------------------------
from findermeister.app.routes.auth import router as auth_router
from findermeister.app.routes.finds import router as finds_router
from findermeister.app.routes.proposals import router as proposals_router
from findermeister.app.routes.contracts import router as contracts_router, orders_router, reviews_router
from findermeister.app.routes.tokens import router as tokens_router
from findermeister.app.routes.messages import router as messages_router
from findermeister.app.routes.strikes import router as strikes_router
from findermeister.app.routes.admin import router as admin_router, categories_router
from findermeister.app.routes.scheduler import router as scheduler_router

app.include_router(auth_router)
app.include_router(finds_router)
app.include_router(proposals_router)
app.include_router(contracts_router)
app.include_router(orders_router)
app.include_router(reviews_router)
app.include_router(tokens_router)
app.include_router(messages_router)
app.include_router(strikes_router)
app.include_router(admin_router)
app.include_router(categories_router)
app.include_router(scheduler_router)


@app.get("/health", tags=["health"])
async def health_check():
    """Return service health status."""
    return {"status": "ok", "service": "findermeister"}


def run() -> None:
    """Run the application with uvicorn (used by project.scripts entry point)."""
    uvicorn.run(
        "findermeister.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
