"""
Reverse proxy to one configured backend.

Plain HTTP requests are relayed with aiohttp; websocket upgrades are bridged
to the backend's WebSocket URL, pumping frames both ways until either side
hangs up.
"""
import asyncio
import logging

import websockets
from aiohttp import ClientError, ClientSession
from fastapi import Request, WebSocket, status
from fastapi.responses import PlainTextResponse, Response
from starlette.routing import Route, Router, WebSocketRoute
from starlette.types import Receive, Scope, Send
from starlette.websockets import WebSocketDisconnect
from websockets.exceptions import ConnectionClosed

from .config import Backend

logger = logging.getLogger(__name__)

METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

# RFC 7230 §6.1, plus the headers the relay recomputes itself
HOP_BY_HOP = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
    "host",
    "content-length",
})


def _join(base: str, path: str, query: str) -> str:
    url = base.rstrip("/") + "/" + path.lstrip("/")
    return f"{url}?{query}" if query else url


def forwarded_headers(request: Request) -> list[tuple[str, str]]:
    headers = [(k, v) for k, v in request.headers.items() if k.lower() not in HOP_BY_HOP]
    if request.client:
        prior = request.headers.get("x-forwarded-for")
        client = f"{prior}, {request.client.host}" if prior else request.client.host
        headers = [(k, v) for k, v in headers if k.lower() != "x-forwarded-for"]
        headers.append(("X-Forwarded-For", client))
    headers.append(("X-Forwarded-Host", request.headers.get("host", "")))
    headers.append(("X-Forwarded-Proto", request.url.scheme))
    return headers


class BackendProxy:
    def __init__(self, name: str, backend: Backend):
        self.name = name
        self.backend = backend
        self.router = Router(routes=[
            Route("/{path:path}", self.forward, methods=METHODS),
            WebSocketRoute("/{path:path}", self.forward_websocket),
        ])

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self.router(scope, receive, send)

    async def forward(self, request: Request) -> Response:
        url = _join(self.backend.url, request.url.path, request.url.query)
        body = await request.body()
        try:
            async with ClientSession(auto_decompress=False) as http:
                async with http.request(
                    request.method,
                    url,
                    headers=forwarded_headers(request),
                    data=body or None,
                    allow_redirects=False,
                ) as resp:
                    content = await resp.read()
                    upstream_status = resp.status
                    upstream_headers = [
                        (k, v) for k, v in resp.headers.items() if k.lower() not in HOP_BY_HOP
                    ]
        except ClientError as exc:
            logger.warning("%s: %s %s failed: %s", self.name, request.method, url, exc)
            return PlainTextResponse("Bad Gateway", status_code=status.HTTP_502_BAD_GATEWAY)

        response = Response(content, status_code=upstream_status)
        for key, value in upstream_headers:
            response.headers.append(key, value)
        return response

    async def forward_websocket(self, websocket: WebSocket) -> None:
        if not self.backend.websocket:
            await websocket.close(code=4404)
            return

        url = _join(self.backend.websocket, websocket.url.path, websocket.url.query)
        try:
            remote = await websockets.connect(url, max_size=None)
        except (OSError, asyncio.TimeoutError, websockets.WebSocketException) as exc:
            logger.warning("%s: cannot open websocket %s: %s", self.name, url, exc)
            await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
            return
        await websocket.accept()

        async def client_to_backend():
            try:
                while True:
                    message = await websocket.receive()
                    if message["type"] == "websocket.disconnect":
                        break
                    if message.get("text") is not None:
                        await remote.send(message["text"])
                    elif message.get("bytes") is not None:
                        await remote.send(message["bytes"])
            except WebSocketDisconnect:
                pass
            finally:
                await remote.close()

        async def backend_to_client():
            try:
                async for message in remote:
                    if isinstance(message, str):
                        await websocket.send_text(message)
                    else:
                        await websocket.send_bytes(message)
            except ConnectionClosed:
                pass
            finally:
                await websocket.close()

        await asyncio.gather(client_to_backend(), backend_to_client(), return_exceptions=True)
