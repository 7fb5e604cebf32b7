from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from .infrastructure import models
from .infrastructure.database import engine

models.Base.metadata.create_all(bind=engine)

from .api import road_segments, devices, readings, predictions, alerts, weather
from .domain.services.scheduler import start_scheduler, stop_scheduler

from fastapi.middleware.cors import CORSMiddleware
from .core.config import settings

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def validate_config():
    """Validate configuration on startup."""
    if settings.is_production:
        localhost_origins = [o for o in settings.BACKEND_CORS_ORIGINS if "localhost" in o]
        if localhost_origins:
            logger.warning(
                f"WARNING: CORS origins contain localhost URLs in production: {localhost_origins}. "
                "Consider removing localhost from BACKEND_CORS_ORIGINS env var."
            )

    if settings.SCHEDULER_ENABLED and not settings.OPENWEATHER_API_KEY:
        logger.warning("OPENWEATHER_API_KEY not set: predictions will run without weather impact")

    logger.info(f"Config validation passed. Production mode: {settings.is_production}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan events for startup and shutdown."""
    logger.info("Starting StormWatch API...")
    validate_config()

    if settings.SCHEDULER_ENABLED:
        start_scheduler()

    yield

    logger.info("Shutting down StormWatch API...")
    if settings.SCHEDULER_ENABLED:
        stop_scheduler()


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

# Set all CORS enabled origins
if settings.BACKEND_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(road_segments.router, prefix=f"{settings.API_V1_STR}/road-segments", tags=["road-segments"])
app.include_router(devices.router, prefix=f"{settings.API_V1_STR}/devices", tags=["devices"])
app.include_router(readings.router, prefix=f"{settings.API_V1_STR}/readings", tags=["readings"])
app.include_router(predictions.router, prefix=f"{settings.API_V1_STR}/predictions", tags=["predictions"])
app.include_router(alerts.router, prefix=f"{settings.API_V1_STR}/alerts", tags=["alerts"])
app.include_router(weather.router, prefix=f"{settings.API_V1_STR}/weather", tags=["weather"])


@app.get("/health")
def health_check():
    return {"status": "healthy"}
