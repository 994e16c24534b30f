"""
Sales Pulse Hub — Router Dependencies
========================================

Shared accessors for the clients created at startup, and translation of
HubError into HTTP responses.

  ConfigError            -> 401
  SchemaValidationError  -> 400
  NotFoundError          -> 404
  HubSpot/Grain errors   -> 502
  APITimeoutError        -> 504
  anything else          -> 500
"""
from __future__ import annotations

from typing import List, Optional

from fastapi import HTTPException, Request

from integrations.grain import GrainClient
from integrations.hubspot import HubSpotClient
from scripts.lib.errors import HubError
from scripts.lib.logger import setup_logger
from scripts.pulse.store import PulseStore

logger = setup_logger("api_deps")


def get_hubspot(request: Request) -> HubSpotClient:
    hubspot = getattr(request.app.state, "hubspot", None)
    if hubspot is None:
        hubspot = request.app.state.hubspot = HubSpotClient()
    return hubspot


def get_grain(request: Request) -> GrainClient:
    grain = getattr(request.app.state, "grain", None)
    if grain is None:
        grain = request.app.state.grain = GrainClient()
    return grain


def get_store(request: Request) -> PulseStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        store = request.app.state.store = PulseStore()
    return store


def get_tz(request: Request):
    return getattr(request.app.state, "tz", None)


def http_error(e: Exception, action: str) -> HTTPException:
    """Map an exception raised while doing ``action`` to an HTTPException."""
    if isinstance(e, HubError):
        status = e.status_code_hint
        if status >= 500:
            logger.error("Failed to %s: %s", action, e)
        else:
            logger.warning("Failed to %s: %s", action, e.message)
        return HTTPException(status_code=status, detail=f"Failed to {action}: {e.message}")
    logger.error("Failed to %s: %s", action, e)
    return HTTPException(status_code=500, detail=f"Failed to {action}")


def split_ids(value: Optional[str]) -> List[str]:
    """Comma-separated id list from a query string, blanks dropped."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]
