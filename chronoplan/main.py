from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chronoplan.api.routes import replan_router, schedule_router
from chronoplan.config.settings import get_settings
from chronoplan.storage.cache import ScheduleCache, get_cache
from chronoplan.storage.database import init_db
from chronoplan.utils.logging_config import setup_logging

API_PREFIX = "/api/v1"
VERSION = "1.0.0"

logger = setup_logging()
settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    description="Multi-pass scheduling and adaptive re-planning engine",
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    logger.info(f"Starting {settings.app_name} {VERSION}...")
    init_db()
    logger.info("Database tables ready")
    logger.info(
        f"Scheduling window: {settings.scheduling_window_days} days, "
        f"slot search: {settings.slot_search_days} days, end of day: {settings.end_of_day_hour}:00"
    )
    logger.info(f"CP-SAT time limit for the Aggressive alternative: {settings.ortools_time_limit_seconds}s")
    if settings.relocate_existing_blocks:
        logger.info("Existing-schedule relocation enabled")
    if not settings.cache_enabled:
        logger.info("Result cache disabled")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info(f"Shutting down {settings.app_name}...")


app.include_router(schedule_router, prefix=API_PREFIX)
app.include_router(replan_router, prefix=API_PREFIX)


@app.get("/health", tags=["health"])
def health_check(cache: ScheduleCache = Depends(get_cache)):
    """Liveness plus Redis reachability (null when caching is off)."""
    cache_ok = cache.health_check() if settings.cache_enabled else None
    return {"status": "ok", "app": settings.app_name, "version": VERSION, "cache": cache_ok}
