"""NATS client wrapper for price ingress, queries and oracle events."""

import json
from typing import Callable, Optional, Any
import nats
import structlog
from nats.aio.client import Client as NatsClient
from nats.aio.msg import Msg

logger = structlog.get_logger()


class OracleNatsClient:
    """Thin JSON-over-NATS wrapper."""

    def __init__(self, url: str):
        self.url = url
        self._client: Optional[NatsClient] = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected

    async def connect(self) -> None:
        """Connect to NATS server."""
        self._client = await nats.connect(self.url)
        logger.info("nats_connected", url=self.url)

    async def close(self) -> None:
        """Drain and close the NATS connection."""
        if self._client:
            await self._client.drain()
            self._client = None

    def _require_client(self) -> NatsClient:
        if not self._client:
            raise RuntimeError("Not connected to NATS")
        return self._client

    async def publish(self, subject: str, data: dict) -> None:
        await self._require_client().publish(subject, json.dumps(data).encode())

    async def reply(self, msg: Msg, data: dict) -> None:
        if msg.reply:
            await self._require_client().publish(msg.reply, json.dumps(data).encode())

    async def request(self, subject: str, data: dict, timeout: float = 5.0) -> dict:
        """Send a request and wait for the JSON response."""
        response = await self._require_client().request(
            subject, json.dumps(data).encode(), timeout=timeout
        )
        return json.loads(response.data.decode())

    async def subscribe(
        self,
        subject: str,
        callback: Callable[[Msg], Any],
        queue: Optional[str] = None
    ) -> None:
        """Subscribe to a subject."""
        await self._require_client().subscribe(subject, queue=queue or "", cb=callback)
