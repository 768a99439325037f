"""
Climate Monitor - API Server

Provides endpoints for:
- Dashboard polling (current reading, history, stats, server status)
- Firmware OTA info and update trigger
- Static dashboard page
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

from climate_monitor.core.clock import now_iso
from climate_monitor.core.config import Settings, get_settings
from climate_monitor.core.logging import configure_logging
from climate_monitor.mqtt.main import SubscriberState, TelemetrySubscriber
from climate_monitor.services.history import HistoryStore
from climate_monitor.services.normalizer import DeviceDefaults
from climate_monitor.services.ota import (
    CommandPublishError,
    OtaService,
    UpdateInProgressError,
    UpdateNotAvailableError,
)
from climate_monitor.services.query import TelemetryQuery

logger = logging.getLogger(__name__)


def parse_limit(value: str | None) -> int | None:
    """Lenient ?limit= parsing: anything that is not a positive int means "default"."""
    if value is None:
        return None
    try:
        limit = int(value.strip())
    except ValueError:
        return None
    return limit if limit > 0 else None


# ==================== LIFESPAN ====================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = app.state.settings

    if app.state.subscriber is None and settings.mqtt_enabled:
        app.state.subscriber = TelemetrySubscriber(
            settings,
            app.state.store,
            on_ota_status=app.state.ota.tracker.apply_status,
        )

    subscriber = app.state.subscriber
    if subscriber is not None:
        subscriber.start()
    else:
        logger.warning("⚠️ MQTT disabled: history will stay empty")

    try:
        yield
    finally:
        if subscriber is not None:
            subscriber.stop()


# ==================== APP ====================

def create_app(
    settings: Settings | None = None,
    store: HistoryStore | None = None,
    subscriber: TelemetrySubscriber | None = None,
) -> FastAPI:
    """
    Build the API with its own store and collaborators.

    Args:
        settings: Defaults to environment settings
        store: History store shared with the subscriber
        subscriber: Pre-built subscriber; otherwise one is created at startup
            when MQTT is enabled
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    store = store or HistoryStore(settings.history_capacity)

    app = FastAPI(
        title="Climate Monitor API",
        description="Temperature/humidity telemetry received over MQTT",
        version=settings.server_version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.started_at = time.monotonic()
    app.state.query = TelemetryQuery(
        store,
        DeviceDefaults.from_settings(settings),
        default_limit=settings.history_default_limit,
    )
    app.state.subscriber = subscriber

    def publish_command(command: dict) -> bool:
        if app.state.subscriber is None:
            logger.warning("⚠️ Cannot send %s: MQTT subscriber not running", command.get("command"))
            return False
        return app.state.subscriber.publish_command(command)

    app.state.ota = OtaService.from_settings(settings, store, publish_command)
    if subscriber is not None and subscriber.on_ota_status is None:
        subscriber.on_ota_status = app.state.ota.tracker.apply_status

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("❌ Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            {"success": False, "message": "Internal server error"},
            status_code=500,
        )

    register_routes(app)
    return app


def register_routes(app: FastAPI) -> None:

    # ==================== SENSOR DATA ====================

    @app.get("/api/sensor-data")
    async def get_sensor_data(request: Request):
        """Current reading for the dashboard."""
        return request.app.state.query.get_current()

    @app.post("/api/sensor-data", deprecated=True)
    async def post_sensor_data():
        """
        Legacy HTTP ingestion. Telemetry now arrives over MQTT, so the body
        is accepted and ignored; nothing is recorded.
        """
        logger.warning("⚠️ Legacy POST /api/sensor-data called; body ignored")
        return JSONResponse(
            {
                "success": True,
                "deprecated": True,
                "message": "Telemetry is received over MQTT; HTTP data is ignored",
            },
            headers={"Deprecation": "true"},
        )

    @app.get("/api/sensor-history")
    async def get_sensor_history(request: Request, limit: str | None = Query(None)):
        """Most recent readings, oldest first."""
        return request.app.state.query.get_history(parse_limit(limit))

    @app.get("/api/sensor-stats")
    async def get_sensor_stats(request: Request):
        return request.app.state.query.get_stats()

    @app.get("/api/status")
    async def get_status(request: Request):
        """Server status."""
        state = request.app.state
        subscriber = state.subscriber
        return {
            "success": True,
            "server": state.settings.server_name,
            "version": state.settings.server_version,
            "uptime": round(time.monotonic() - state.started_at, 3),
            "timestamp": now_iso(),
            "dataPoints": state.query.data_points(),
            "ssl": state.settings.ssl_enabled,
            "mqtt": (subscriber.state if subscriber else SubscriberState.DISCONNECTED).value,
        }

    # ==================== OTA ====================

    @app.get("/api/ota/info")
    async def get_ota_info(request: Request):
        return request.app.state.ota.info().to_dict()

    @app.post("/api/ota/force-update")
    async def force_update(request: Request):
        """Send force_update to the device; progress shows up in /api/ota/info."""
        ota: OtaService = request.app.state.ota
        try:
            progress = ota.force_update()
        except (UpdateNotAvailableError, UpdateInProgressError) as e:
            return JSONResponse({"success": False, "message": str(e)}, status_code=409)
        except CommandPublishError as e:
            return JSONResponse({"success": False, "message": str(e)}, status_code=503)

        return {
            "success": True,
            "message": f"Update to {progress.target_version} sent to device",
            "update": progress.to_dict(),
        }

    # ==================== DASHBOARD ====================

    @app.get("/")
    async def dashboard(request: Request):
        index_path = request.app.state.settings.static_dir / "index.html"
        if not index_path.exists():
            return JSONResponse({"success": False, "message": "Dashboard not found"}, status_code=404)
        return FileResponse(index_path, media_type="text/html")


app = create_app()


# ==================== MAIN ====================

def main():
    """Entry point."""
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("🚀 Starting Climate Monitor on %s:%s (ssl=%s)", settings.host, settings.port, settings.ssl_enabled)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        ssl_certfile=settings.ssl_certfile or None,
        ssl_keyfile=settings.ssl_keyfile or None,
    )


if __name__ == "__main__":
    main()
