"""
Operational endpoints: service health and the shared header proxy.
"""

from __future__ import annotations

import json
import logging

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response

from ...config import get_shared_header_url
from ...health import check_health
from ...persistence import CurveRepository
from .. import dependencies

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["system"])

JAVASCRIPT_MEDIA_TYPE = "application/javascript; charset=utf-8"
PROXY_USER_AGENT = "Mozilla/5.0 (compatible; GridStor-Proxy/1.0)"


def _fallback_script(script: str) -> Response:
    return Response(
        content=script,
        media_type=JAVASCRIPT_MEDIA_TYPE,
        headers={"Access-Control-Allow-Origin": "*", "Cache-Control": "no-cache"},
    )


@router.get("/health")
def health(
    repository: CurveRepository = Depends(dependencies.get_repository),
) -> JSONResponse:
    """
    Report database connectivity and table access.

    Returns 200 when the ``SELECT 1`` ping and the definition/instance
    counts succeed, 503 otherwise. The body always carries ``status``,
    ``timestamp`` and the ``database``, ``tables`` and ``system`` checks.

    Example:
        ```python
        # GET /api/health
        {
            "status": "healthy",
            "timestamp": "2025-01-15T10:30:00.000Z",
            "checks": {
                "database": {"healthy": true, "message": "Database connection successful"},
                "tables": {"healthy": true, "counts": {"curveDefinitions": 12, "curveInstances": 40}, ...},
                "system": {"healthy": true, "uptime": 3600.5, "pythonVersion": "3.12.1", "platform": "linux"}
            }
        }
        ```
    """
    healthy, payload = check_health(repository)
    return JSONResponse(status_code=200 if healthy else 503, content=payload)


@router.get("/shared-header.js")
async def shared_header(
    client: httpx.AsyncClient = Depends(dependencies.get_http_client),
) -> Response:
    """
    Serve the shared navigation script fetched server-side.

    A successful fetch is returned with permissive CORS headers and cached
    for an hour. A 401 or any other failure answers 200 with a script that
    only logs the problem in the browser console, so pages never break.
    """
    source_url = get_shared_header_url()
    try:
        upstream = await client.get(source_url, headers={"User-Agent": PROXY_USER_AGENT})
    except httpx.HTTPError as exc:
        logger.error("Error proxying shared-header.js: %s", exc)
        message = str(exc) or exc.__class__.__name__
        return _fallback_script(f"console.error('Failed to load shared-header.js:', {json.dumps(message)});")

    if upstream.status_code == 401:
        logger.warning("shared-header.js at %s is password-protected", source_url)
        message = (
            "Shared navigation header is currently unavailable. "
            f"The file at {source_url} is password-protected and needs to be made "
            "publicly accessible with CORS headers."
        )
        return _fallback_script(f"console.warn({json.dumps(message)});")
    if upstream.status_code >= 400:
        message = f"Failed to fetch shared-header.js: {upstream.status_code} {upstream.reason_phrase}"
        logger.error(message)
        return _fallback_script(f"console.error('Failed to load shared-header.js:', {json.dumps(message)});")

    logger.info("Proxied shared-header.js (%d bytes)", len(upstream.content))
    return Response(
        content=upstream.text,
        media_type=JAVASCRIPT_MEDIA_TYPE,
        headers={
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "GET, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type",
            "Cache-Control": "public, max-age=3600",
        },
    )
