"""Outbound HTTP client handling for provider calls."""

from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager

import httpx

from config import get_settings


async def get_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """FastAPI dependency: one client per request, shared by all provider calls."""
    async with httpx.AsyncClient(timeout=get_settings().http_timeout_seconds) as client:
        yield client


@asynccontextmanager
async def use_client(
    client: httpx.AsyncClient | None, timeout: float = 30.0
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the given client, or a temporary one closed on exit."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout) as owned:
        yield owned
