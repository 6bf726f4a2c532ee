from __future__ import annotations

import asyncio
import gzip
import json
import logging
from typing import Mapping, Optional

import httpx

from ..errors import DeliveryRejected, DeliveryUnavailable
from ..metrics.base import Metric
from ..retry import DEFAULT_RETRY_POLICY, RetryPolicy, retry
from ..signing import SIGNATURE_HEADER, sign

logger = logging.getLogger(__name__)


def encode_batch(snapshot: Mapping[str, Metric]) -> bytes:
    return json.dumps([metric.to_dict() for metric in snapshot.values()]).encode("utf-8")


def is_transient(exc: BaseException) -> bool:
    """Refused connections, DNS/dial failures and timeouts."""
    return isinstance(exc, (httpx.TimeoutException, httpx.NetworkError))


class Reporter:
    """Delivers metric snapshots to the server's batch endpoint."""

    def __init__(
        self,
        server_url: str,
        key: str = "",
        timeout: float = 15.0,
        policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        stop_event: Optional[asyncio.Event] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = server_url.rstrip("/") + "/updates/"
        self.key = key
        self.policy = policy
        self.stop_event = stop_event
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    def build_request(self, snapshot: Mapping[str, Metric]) -> httpx.Request:
        body = encode_batch(snapshot)
        headers = {
            "Content-Type": "application/json",
            "Content-Encoding": "gzip",
            "Accept-Encoding": "gzip",
        }
        if self.key:
            headers[SIGNATURE_HEADER] = sign(body, self.key)
        return self._client.build_request(
            "POST", self.url, content=gzip.compress(body), headers=headers
        )

    async def _send(self, request: httpx.Request) -> None:
        response = await self._client.send(request)
        if response.status_code >= 400:
            raise DeliveryRejected(
                f"server returned status {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

    async def report(self, snapshot: Mapping[str, Metric]) -> None:
        if not snapshot:
            return
        request = self.build_request(snapshot)
        await retry(
            "report",
            lambda: self._send(request),
            is_transient,
            DeliveryUnavailable,
            policy=self.policy,
            stop_event=self.stop_event,
        )
        logger.debug("reported %d metrics to %s", len(snapshot), self.url)
