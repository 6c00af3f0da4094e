"""
coordinator/main.py

FastAPI application entry point for the coordinator service.
Builds the single DeviceDataManager in the lifespan and registers routers.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI

from config import settings
from coordinator.routers.devices import router as devices_router
from coordinator.routers.forecast import router as forecast_router
from coordinator.services.manager import DeviceDataManager

structlog.configure(
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.getLevelName(settings.log_level.upper())
    ),
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle: startup and shutdown."""
    manager = DeviceDataManager.from_settings()
    app.state.manager = manager
    await manager.start()
    logger.info(
        "coordinator_service_starting",
        pump_configured=manager.pump_slot.handle is not None,
        transmitter_configured=manager.transmitter_slot.handle is not None,
    )
    yield
    await manager.stop()
    logger.info("coordinator_service_shutting_down")


app = FastAPI(
    title="Pump Data Coordinator",
    description="Peripheral state, glucose forecasting and companion publishing",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(devices_router)
app.include_router(forecast_router)
