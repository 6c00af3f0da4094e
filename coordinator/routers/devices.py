"""
coordinator/routers/devices.py

Peripheral configuration and inbound event endpoints.
- PUT /pump, PUT /transmitter: set (or clear) the device identifier
- POST /pump/packets, POST /transmitter/events: deliver raw peripheral events
"""

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from coordinator.errors import PeripheralNotConfiguredError
from coordinator.routers.dependencies import get_manager
from coordinator.schemas import IdentifierUpdate
from coordinator.services.manager import DeviceDataManager

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.put("/pump")
async def configure_pump(
    body: IdentifierUpdate,
    manager: DeviceDataManager = Depends(get_manager),
) -> dict[str, Any]:
    """Configure the pump radio link. Malformed identifiers clear the configuration."""
    pump_id = manager.configure_pump(body.identifier)
    return {"pump_id": pump_id, "configured": pump_id is not None}


@router.put("/transmitter")
async def configure_transmitter(
    body: IdentifierUpdate,
    manager: DeviceDataManager = Depends(get_manager),
) -> dict[str, Any]:
    """Configure the CGM transmitter. Malformed identifiers clear the configuration."""
    transmitter_id = manager.configure_transmitter(body.identifier)
    return {"transmitter_id": transmitter_id, "configured": transmitter_id is not None}


@router.post("/pump/packets", status_code=status.HTTP_202_ACCEPTED)
async def receive_pump_packet(
    packet: dict[str, Any],
    manager: DeviceDataManager = Depends(get_manager),
) -> dict[str, str]:
    """Queue a raw pump packet for the configured radio link."""
    try:
        manager.deliver_pump_event(packet)
    except PeripheralNotConfiguredError as exc:
        logger.warning("pump_packet_rejected", reason=str(exc))
        raise HTTPException(status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return {"status": "queued"}


@router.post("/transmitter/events", status_code=status.HTTP_202_ACCEPTED)
async def receive_transmitter_event(
    event: dict[str, Any],
    manager: DeviceDataManager = Depends(get_manager),
) -> dict[str, str]:
    """Queue a raw transmitter event for the configured transmitter."""
    try:
        manager.deliver_transmitter_event(event)
    except PeripheralNotConfiguredError as exc:
        logger.warning("transmitter_event_rejected", reason=str(exc))
        raise HTTPException(status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return {"status": "queued"}
