from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sqlguard.api import routes_alerts, routes_detection, routes_health
from sqlguard.core.config import get_settings
from sqlguard.core.logger import get_logger
from sqlguard.services.alert_engine import get_alert_engine
from sqlguard.services.detector_client import get_detector_client
from sqlguard.workers.metrics_poller import MetricsPoller
from sqlguard.workers.scheduler import get_scheduler

log = get_logger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    sched = get_scheduler()
    await sched.start()
    poller = MetricsPoller()
    sched.schedule(poller.poll_once, interval_sec=settings.POLL_INTERVAL, timeout=settings.POLL_INTERVAL, name="metrics-poll")
    log.info("Metrics polling every %.1fs from %s", settings.POLL_INTERVAL, settings.DETECTOR_BASE_URL)
    try:
        yield
    finally:
        # Shutdown
        await sched.stop()
        await get_alert_engine().aclose()
        await get_detector_client().aclose()


app = FastAPI(
    title="SQLGuard API",
    description="SQL injection threat classification and real-time query-rate alerting",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(routes_detection.router, prefix="/detection", tags=["Detection"])
app.include_router(routes_alerts.router, prefix="/alerts", tags=["Alerts"])
app.include_router(routes_health.router, prefix="/health", tags=["Health"])


@app.get("/")
def root():
    return {"status": "SQLGuard backend running"}
