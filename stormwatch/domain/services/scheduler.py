"""
StormWatch Scheduler - Background maintenance jobs.

Uses APScheduler to run at configured intervals:
- Weather refresh: every WEATHER_REFRESH_MINUTES (15)
- Expired prediction purge: every PREDICTION_SWEEP_MINUTES (60)
- Alert expiry: every ALERT_SWEEP_MINUTES (30)
- Device liveness: every DEVICE_OFFLINE_MINUTES (30)

Usage:
    from stormwatch.domain.services.scheduler import start_scheduler, stop_scheduler

    # In FastAPI lifespan:
    start_scheduler()
    ...
    stop_scheduler()
"""

from datetime import datetime, timezone
from typing import Optional
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ...core.config import settings
from ...infrastructure.database import SessionLocal
from ...infrastructure.weather_client import OpenWeatherClient
from .alert_service import AlertService
from .device_service import DeviceService
from .prediction_service import PredictionService
from .weather_service import WeatherService

logger = logging.getLogger(__name__)


class StormWatchScheduler:
    """Each job opens and closes its own session."""

    def __init__(self, session_factory=None, weather_client: Optional[OpenWeatherClient] = None):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False
        self.session_factory = session_factory or SessionLocal
        self.weather_client = weather_client or OpenWeatherClient()

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        if self._running:
            logger.warning("[Scheduler] Already running")
            return

        logger.info("[Scheduler] Starting StormWatch scheduler...")
        self.scheduler = AsyncIOScheduler()

        self.scheduler.add_job(
            self.refresh_weather,
            IntervalTrigger(minutes=settings.WEATHER_REFRESH_MINUTES),
            id="weather_refresh",
            name="Weather Refresh",
            replace_existing=True,
            next_run_time=datetime.now(timezone.utc),
        )
        self.scheduler.add_job(
            self.purge_expired_predictions,
            IntervalTrigger(minutes=settings.PREDICTION_SWEEP_MINUTES),
            id="prediction_sweep",
            name="Expired Prediction Purge",
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.expire_alerts,
            IntervalTrigger(minutes=settings.ALERT_SWEEP_MINUTES),
            id="alert_sweep",
            name="Alert Expiry",
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.mark_offline_devices,
            IntervalTrigger(minutes=settings.DEVICE_OFFLINE_MINUTES),
            id="device_liveness",
            name="Device Liveness",
            replace_existing=True,
        )

        self.scheduler.start()
        self._running = True

        logger.info("[Scheduler] StormWatch scheduler started")
        logger.info(f"  Weather: every {settings.WEATHER_REFRESH_MINUTES} minutes")
        logger.info(f"  Predictions sweep: every {settings.PREDICTION_SWEEP_MINUTES} minutes")
        logger.info(f"  Alerts sweep: every {settings.ALERT_SWEEP_MINUTES} minutes")
        logger.info(f"  Device liveness: every {settings.DEVICE_OFFLINE_MINUTES} minutes")

    def stop(self):
        if self.scheduler and self._running:
            logger.info("[Scheduler] Stopping StormWatch scheduler...")
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("[Scheduler] Scheduler stopped")

    async def refresh_weather(self) -> bool:
        """Fetch current weather for the monitored city into the shared pool."""
        data = await self.weather_client.fetch_current(
            settings.WEATHER_LATITUDE, settings.WEATHER_LONGITUDE
        )
        if data is None:
            logger.debug("[Scheduler] Weather refresh produced no data")
            return False

        db = self.session_factory()
        try:
            WeatherService(db).store(data)
            return True
        except Exception as e:
            db.rollback()
            logger.error(f"[Scheduler] Storing weather failed: {e}")
            return False
        finally:
            db.close()

    def _run_sweep(self, job_name: str, sweep) -> int:
        db = self.session_factory()
        try:
            count = sweep(db)
            logger.info(f"[Scheduler] {job_name}: {count} rows affected")
            return count
        except Exception as e:
            db.rollback()
            logger.error(f"[Scheduler] {job_name} failed: {e}")
            return 0
        finally:
            db.close()

    async def purge_expired_predictions(self) -> int:
        return self._run_sweep("Prediction purge", lambda db: PredictionService(db).delete_expired())

    async def expire_alerts(self) -> int:
        return self._run_sweep("Alert expiry", lambda db: AlertService(db).deactivate_expired())

    async def mark_offline_devices(self) -> int:
        return self._run_sweep("Device liveness", lambda db: DeviceService(db).mark_stale_devices())


# Global scheduler instance
_scheduler: Optional[StormWatchScheduler] = None


def get_scheduler() -> StormWatchScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = StormWatchScheduler()
    return _scheduler


def start_scheduler():
    get_scheduler().start()


def stop_scheduler():
    global _scheduler
    if _scheduler:
        _scheduler.stop()
        _scheduler = None
