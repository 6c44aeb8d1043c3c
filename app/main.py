import os
import newrelic.agent
if os.environ.get("NEW_RELIC_LICENSE_KEY"):
    newrelic.agent.initialize('newrelic.ini')

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import time
import logging

from app.core.config import get_settings
from app.core.errors import BookingError
from app.core.sessions import connect, disconnect
from app.routers import payments, quotes, sessions

settings = get_settings()

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up — creating session store...")
    await connect()
    yield
    logger.info("Shutting down...")
    await disconnect()


app = FastAPI(
    title="KARTER Delivery Booking API",
    description="Delivery quotes, payment method management and checkout for booking sessions.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Latency tracking middleware ──────────────────────────────────────────────
@app.middleware("http")
async def add_latency_header(request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    latency_ms = (time.perf_counter() - start) * 1000
    response.headers["X-Response-Time-Ms"] = f"{latency_ms:.2f}"
    if latency_ms > 500:
        logger.warning(f"SLOW REQUEST: {request.method} {request.url.path} — {latency_ms:.0f}ms")
    return response


# ─── Error mapping ────────────────────────────────────────────────────────────
@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    if exc.status_code >= 500:
        logger.error(f"{exc.kind} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.kind},
    )


# ─── Routers ──────────────────────────────────────────────────────────────────
app.include_router(sessions.router)
app.include_router(quotes.router)
app.include_router(payments.router)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "KARTER Delivery Booking", "env": settings.app_env}


def run():
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
