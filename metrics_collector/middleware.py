"""ASGI middleware for compressed and signed request bodies.

Order matters: request bodies are decompressed before the signature is
checked, because agents sign the uncompressed payload.
"""

from __future__ import annotations

import gzip
import logging
import zlib
from typing import List, Tuple

from starlette.datastructures import Headers, MutableHeaders
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .signing import SIGNATURE_HEADER, sign, verify

logger = logging.getLogger(__name__)

SIGNED_METHODS = frozenset({"POST", "PUT", "PATCH"})


async def _read_body(receive: Receive) -> bytes:
    chunks: List[bytes] = []
    while True:
        message = await receive()
        if message["type"] != "http.request":
            break
        chunks.append(message.get("body", b""))
        if not message.get("more_body", False):
            break
    return b"".join(chunks)


def _replay(body: bytes, receive: Receive) -> Receive:
    sent = False

    async def replay() -> Message:
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return replay


def _reject(message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=400)


class GzipRequestMiddleware:
    """Transparently inflates request bodies sent with ``Content-Encoding: gzip``."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        encoding = Headers(scope=scope).get("content-encoding", "")
        if "gzip" not in encoding.lower():
            await self.app(scope, receive, send)
            return

        body = await _read_body(receive)
        try:
            body = gzip.decompress(body)
        except (OSError, EOFError, zlib.error):
            await _reject("invalid gzip body")(scope, receive, send)
            return

        headers: List[Tuple[bytes, bytes]] = [
            (name, value)
            for name, value in scope["headers"]
            if name not in (b"content-encoding", b"content-length")
        ]
        headers.append((b"content-length", str(len(body)).encode("latin-1")))
        scope = dict(scope, headers=headers)
        await self.app(scope, _replay(body, receive), send)


class SignatureMiddleware:
    """Verifies ``HashSHA256`` on request bodies and signs every response."""

    def __init__(self, app: ASGIApp, key: str = "") -> None:
        self.app = app
        self.key = key

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not self.key:
            await self.app(scope, receive, send)
            return

        if scope["method"] in SIGNED_METHODS:
            body = await _read_body(receive)
            signature = Headers(scope=scope).get(SIGNATURE_HEADER)
            if not signature:
                logger.info("rejected %s %s: missing signature", scope["method"], scope["path"])
                await _reject("missing HashSHA256 header")(scope, receive, send)
                return
            if not verify(body, self.key, signature):
                logger.info("rejected %s %s: signature mismatch", scope["method"], scope["path"])
                await _reject("HashSHA256 mismatch")(scope, receive, send)
                return
            receive = _replay(body, receive)

        await self.app(scope, receive, self._signing_send(send))

    def _signing_send(self, send: Send) -> Send:
        start: Message = {}
        chunks: List[bytes] = []

        async def signing_send(message: Message) -> None:
            nonlocal start
            if message["type"] == "http.response.start":
                start = dict(message, headers=list(message.get("headers", [])))
                return
            if message["type"] != "http.response.body":
                await send(message)
                return

            chunks.append(message.get("body", b""))
            if message.get("more_body", False):
                return
            body = b"".join(chunks)
            MutableHeaders(raw=start["headers"])[SIGNATURE_HEADER] = sign(body, self.key)
            await send(start)
            await send({"type": "http.response.body", "body": body, "more_body": False})

        return signing_send
