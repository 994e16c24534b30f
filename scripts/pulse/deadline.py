"""
Sales Pulse Hub — Request Deadline
=====================================

Caps how long one request may spend waiting on HubSpot/Grain.
Individual HTTP calls have their own timeout; this bounds the whole
paginated, multi-fetch operation.
"""
from __future__ import annotations

import asyncio
import os
from typing import Awaitable, TypeVar

from scripts.lib.errors import APITimeoutError
from scripts.lib.logger import setup_logger

logger = setup_logger("pulse_deadline")

REQUEST_DEADLINE_SECONDS = float(os.getenv("REQUEST_DEADLINE_SECONDS", "60"))

T = TypeVar("T")


async def with_deadline(awaitable: Awaitable[T], operation: str, seconds: float = None) -> T:
    """Await ``awaitable`` or raise APITimeoutError once the deadline passes."""
    seconds = REQUEST_DEADLINE_SECONDS if seconds is None else seconds
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError:
        logger.error("%s exceeded the %ss request deadline", operation, seconds)
        raise APITimeoutError(operation, seconds)
