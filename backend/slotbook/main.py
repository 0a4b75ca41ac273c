"""
FastAPI app entrypoint.

Booking API plus the housekeeping scheduler (pending-booking expiry, past-slot cleanup).
"""
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from apscheduler.schedulers.background import BackgroundScheduler
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load .env from backend/ before any app code
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from slotbook.api.routes import availability, bookings, customers, providers, slots
from slotbook.config import settings
from slotbook.core.constants import PENDING_EXPIRY_JOB_ID, SLOT_CLEANUP_JOB_ID
from slotbook.core.errors import register_error_handlers
from slotbook.scheduler.pending_expiry_job import run_pending_expiry_job
from slotbook.scheduler.slot_cleanup_job import run_slot_cleanup_job

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_scheduler() -> BackgroundScheduler:
    scheduler = BackgroundScheduler(timezone=settings.business_timezone)
    scheduler.add_job(
        run_pending_expiry_job,
        "interval",
        minutes=settings.pending_expiry_interval_minutes,
        id=PENDING_EXPIRY_JOB_ID,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        run_slot_cleanup_job,
        "interval",
        minutes=settings.slot_cleanup_interval_minutes,
        id=SLOT_CLEANUP_JOB_ID,
        max_instances=1,
        coalesce=True,
    )
    return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler = None
    if settings.scheduler_enabled:
        scheduler = build_scheduler()
        scheduler.start()
        logger.info(
            "Scheduler started: pending expiry every %sm (%sh window), slot cleanup every %sm",
            settings.pending_expiry_interval_minutes,
            settings.pending_expiry_hours,
            settings.slot_cleanup_interval_minutes,
        )
    else:
        logger.info("Scheduler disabled (SCHEDULER_ENABLED=false)")
    app.state.scheduler = scheduler
    yield
    if scheduler is not None:
        scheduler.shutdown(wait=False)


app = FastAPI(title="Slotbook", version="0.1.0", lifespan=lifespan)

# CORS: dev origins + optional CORS_ORIGINS (comma-separated) for the production frontend
_cors_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
if settings.cors_origins:
    _cors_origins.extend(o.strip() for o in settings.cors_origins.split(",") if o.strip())
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

app.include_router(providers.router, prefix="/providers", tags=["providers"])
app.include_router(customers.router, prefix="/customers", tags=["customers"])
app.include_router(slots.router, prefix="/slots", tags=["slots"])
app.include_router(availability.router, prefix="/availability", tags=["availability"])
app.include_router(bookings.router, prefix="/bookings", tags=["bookings"])


@app.get("/", include_in_schema=False)
def root():
    return {"message": "Slotbook API", "docs": "/docs", "health": "/health"}


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
