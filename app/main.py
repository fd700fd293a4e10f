# app/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.api.v1.api import api_router
from app.core.config import settings
from app.core.limiter import limiter
from app.scheduler import init_scheduler, shutdown_scheduler
from app.services.campaigns.exceptions import (
    CampaignValidationError,
    NotFoundError,
    SegmentValidationError,
)

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Campaign delivery service starting up...")
    if settings.SCHEDULER_ENABLED:
        init_scheduler()
    else:
        logger.info("Scheduler disabled by configuration")
    yield
    logger.info("Campaign delivery service shutting down...")
    if settings.SCHEDULER_ENABLED:
        shutdown_scheduler()


app = FastAPI(
    title="Campaign Delivery Service",
    version="1.0.0",
    description="""
        Bulk email campaigns for CRM leads.

        ## Features

        * **Segments**: Dynamic audiences built from lead predicates, with exclusion segments
        * **Campaigns**: Draft, schedule, send now, clone
        * **A/B Testing**: Split sends, winner selection, send the winner to non-openers
        * **Send Windows**: Scheduled sends wait for a local-time window
        * **Tracking**: Open pixel, click redirects, one-click unsubscribe
        * **Reports**: Stats, send log (JSON or CSV), link clicks, failed sends

        ## Authentication

        Operator endpoints require JWT authentication via the `Authorization: Bearer <token>` header.
        Tracking and unsubscribe endpoints are public.
        """,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


async def validation_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


app.add_exception_handler(NotFoundError, not_found_handler)
app.add_exception_handler(CampaignValidationError, validation_handler)
app.add_exception_handler(SegmentValidationError, validation_handler)

origins = [
    "http://localhost:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")


@app.get("/")
def read_root():
    return {"status": "Campaign Delivery Service is running"}
