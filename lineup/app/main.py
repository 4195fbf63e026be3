from contextlib import asynccontextmanager

from fastapi import FastAPI

from lineup.app.core.config import settings
from lineup.app.core.logging_config import configure_logging
from lineup.app.core.redis_client import close_redis, init_redis
import lineup.app.routers.availability as availability
import lineup.app.routers.health as health
import lineup.app.routers.reservations as reservations
import lineup.app.routers.webhooks as webhooks


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    await init_redis()
    try:
        yield
    finally:
        await close_redis()


app = FastAPI(
    title="Lineup Reservations API",
    lifespan=lifespan,
)

app.include_router(health.router, prefix=settings.API_PREFIX)
app.include_router(availability.router, prefix=settings.API_PREFIX)
app.include_router(reservations.router, prefix=settings.API_PREFIX)
app.include_router(webhooks.router, prefix=settings.API_PREFIX)
