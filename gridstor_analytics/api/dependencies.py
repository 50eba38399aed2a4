from __future__ import annotations

from typing import AsyncIterator

import httpx
from fastapi import Request

from ..persistence import CurveRepository

SHARED_HEADER_TIMEOUT = 10.0


def get_repository(request: Request) -> CurveRepository:
    """
    Provide the CurveRepository opened by the application lifespan.
    """
    return request.app.state.repository


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    """
    Provide an outbound HTTP client for proxy routes, closed after the request.
    """
    async with httpx.AsyncClient(timeout=SHARED_HEADER_TIMEOUT, follow_redirects=True) as client:
        yield client
