"""
coordinator/routers/dependencies.py

Request-scoped access to the coordinator built in the application lifespan.
"""

from fastapi import Request

from coordinator.services.manager import DeviceDataManager


def get_manager(request: Request) -> DeviceDataManager:
    return request.app.state.manager
