"""Process-wide ``httpx.AsyncClient`` for calls to the inference service.

The client lives for the duration of the application lifespan so that
keep-alive connections to the model host are reused across requests.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

from aiproxy.app.core.config import settings

_client: Optional[httpx.AsyncClient] = None


def get_http_client() -> Optional[httpx.AsyncClient]:
    """Return the lifespan client, or None when the app is not running."""
    return _client


def _client_options() -> dict:
    return {
        "timeout": httpx.Timeout(
            connect=settings.httpx_connect_timeout,
            read=settings.httpx_read_timeout,
            write=settings.httpx_write_timeout,
            pool=settings.httpx_pool_timeout,
        ),
        "limits": httpx.Limits(
            max_connections=settings.httpx_max_connections,
            max_keepalive_connections=settings.httpx_max_keepalive_connections,
            keepalive_expiry=settings.httpx_keepalive_expiry,
        ),
    }


@asynccontextmanager
async def init_http_client() -> AsyncIterator[httpx.AsyncClient]:
    """Open the shared client for the body of the block and close it after."""
    global _client

    async with httpx.AsyncClient(**_client_options()) as client:
        _client = client
        try:
            yield client
        finally:
            _client = None
