"""
worker/main.py

Celery Worker entry point.
Defines the Celery app and the task that delivers deferred companion
snapshot updates. Retries belong to this task, not to the publisher.
"""

import json

import httpx
import structlog
from celery import Celery

from config import settings

logger = structlog.get_logger(__name__)

celery_app = Celery(
    "worker",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
)

_CONTEXT_REQUEST_TIMEOUT_S: float = 10.0
_CONTEXT_MAX_RETRIES: int = 5


def deliver_context(snapshot: dict) -> None:
    """POST a companion snapshot to the companion's application-context endpoint."""
    url = f"{settings.companion_url.rstrip('/')}/context"
    with httpx.Client(timeout=_CONTEXT_REQUEST_TIMEOUT_S) as client:
        response = client.post(url, json=snapshot)
        response.raise_for_status()
    logger.info(
        "companion_context_delivered",
        glucose=snapshot.get("glucose_value"),
        pump_date=snapshot.get("pump_date"),
    )


@celery_app.task(
    name="worker.tasks.update_companion_context",
    autoretry_for=(httpx.HTTPError,),
    retry_backoff=True,
    max_retries=_CONTEXT_MAX_RETRIES,
)
def update_companion_context(snapshot_json: str) -> None:
    """Celery task that delivers a deferred companion snapshot."""
    deliver_context(json.loads(snapshot_json))
