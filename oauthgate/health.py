import asyncio
from collections.abc import Mapping

from aiohttp import ClientError, ClientSession, ClientTimeout
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from .config import Backend

HEALTHY = "OK"
PROBE_TIMEOUT = 5  # seconds


async def _probe(http: ClientSession, url: str) -> str:
    try:
        async with http.get(url, allow_redirects=False) as resp:
            if resp.status == status.HTTP_200_OK:
                return HEALTHY
            return f"unexpected status {resp.status}"
    except (ClientError, asyncio.TimeoutError) as exc:
        return f"error: {exc!r}"


async def check_backends(backends: Mapping[str, Backend]) -> dict[str, str]:
    """Probe every backend that has a HealthCheck URL."""
    targets = {name: b.health_check for name, b in backends.items() if b.health_check}
    if not targets:
        return {}
    async with ClientSession(timeout=ClientTimeout(total=PROBE_TIMEOUT)) as http:
        results = await asyncio.gather(*(_probe(http, url) for url in targets.values()))
    return dict(zip(targets, results))


def health_router(backends: Mapping[str, Backend]) -> APIRouter:
    router = APIRouter()

    @router.get("/check", include_in_schema=False)
    async def check() -> JSONResponse:
        results = await check_backends(backends)
        healthy = all(r == HEALTHY for r in results.values())
        code = status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE
        return JSONResponse(results, status_code=code)

    return router
