"""FastAPI application entry point."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from device_inventory.config import settings
from device_inventory.exceptions import DiscoveryError
from device_inventory.utils.logging import configure_logging, get_logger

configure_logging(settings.log_level, hide_auth=settings.snmp_hide_auth)
log = get_logger("main")


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Startup / shutdown lifecycle hook."""
    from device_inventory.services.runtime import get_runtime
    from device_inventory.services.scheduler import scheduler

    runtime = get_runtime()
    log.info("inventory_api_starting", poller_id=runtime.config.poller_id, os_definitions=len(runtime.corpus))
    yield
    await scheduler.stop()
    log.info("inventory_api_stopped")


app = FastAPI(
    title="Device Inventory",
    description="SNMP device discovery, identity resolution and OS fingerprinting",
    version="1.0.0",
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
    docs_url=f"{settings.api_prefix}/docs",
    redoc_url=f"{settings.api_prefix}/redoc",
    openapi_url=f"{settings.api_prefix}/openapi.json",
)

# ── CORS ────────────────────────────────────────
origins = [o.strip() for o in settings.cors_origins.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Exception handlers ─────────────────────────
@app.exception_handler(DiscoveryError)
async def discovery_exception_handler(request: Request, exc: DiscoveryError):
    log.info("discovery_error", path=str(request.url), error=type(exc).__name__, hostname=exc.hostname)
    return ORJSONResponse(
        status_code=exc.http_status,
        content={"detail": exc.message, "type": type(exc).__name__},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    log.error("unhandled_exception", path=str(request.url), error=str(exc), exc_info=True)
    return ORJSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__},
    )


# ── Health ──────────────────────────────────────
@app.get("/health", tags=["system"])
async def health_check():
    return {"status": "healthy", "service": "device-inventory", "poller_id": settings.poller_id}


# ── Register routers ───────────────────────────
from device_inventory.api.devices import router as devices_router      # noqa: E402
from device_inventory.api.inventory import router as inventory_router  # noqa: E402

app.include_router(devices_router, prefix=settings.api_prefix)
app.include_router(inventory_router, prefix=settings.api_prefix)
