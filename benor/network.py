# benor/network.py
import asyncio
import random
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

import httpx
import structlog

from .errors import TransportError

logger = structlog.get_logger(__name__)

DeliverFn = Callable[[Dict[str, Any]], Awaitable[None]]


class Transport:
    """Point-to-point delivery plus a best-effort fan-out on top of it."""

    def __init__(self):
        self.nodes: Dict[int, DeliverFn] = {}  # id -> deliver coroutine

    def register(self, node_id: int, deliver_fn: DeliverFn):
        self.nodes[node_id] = deliver_fn

    async def send(self, src: int, dst: int, msg: Dict[str, Any]):
        raise NotImplementedError

    async def broadcast(self, src: int, msg: Dict[str, Any], destinations: Optional[Iterable[int]] = None):
        # broadcast includes sending to self as well
        if destinations is None:
            destinations = list(self.nodes.keys())
        tasks = [asyncio.create_task(self._send_best_effort(src, dst, msg)) for dst in destinations]
        if tasks:
            await asyncio.gather(*tasks)

    async def _send_best_effort(self, src: int, dst: int, msg: Dict[str, Any]):
        try:
            await self.send(src, dst, msg)
        except TransportError as e:
            # no retry: missing messages are absorbed by the N-F quorum
            logger.warning("message dropped", src=src, dst=dst, kind=msg.get("kind"), error=str(e))

    async def aclose(self):
        pass


class SimulatedNetwork(Transport):
    """In-process network with optional random delay and drops."""

    def __init__(self, drop_rate=0.0, min_delay=0.01, max_delay=0.05, rng: Optional[random.Random] = None):
        super().__init__()
        self.drop_rate = drop_rate
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.rng = rng or random.Random()

    async def send(self, src: int, dst: int, msg: Dict[str, Any]):
        deliver = self.nodes.get(dst)
        if deliver is None:
            raise TransportError(dst, "no such node")
        if self.drop_rate and self.rng.random() < self.drop_rate:
            logger.debug("simulated drop", src=src, dst=dst, kind=msg.get("kind"))
            return
        delay = self.rng.uniform(self.min_delay, self.max_delay)
        await asyncio.sleep(delay)
        await deliver(dict(msg))


class HttpTransport(Transport):
    """Delivers messages by POSTing them to `http://{host}:{base_port + dst}/message`."""

    def __init__(
        self,
        host: str = "127.0.0.1",
        base_port: int = 3000,
        timeout: float = 2.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__()
        self.host = host
        self.base_port = base_port
        self.timeout = timeout
        self._client = client

    def address(self, node_id: int) -> str:
        return f"http://{self.host}:{self.base_port + node_id}"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def send(self, src: int, dst: int, msg: Dict[str, Any]):
        url = f"{self.address(dst)}/message"
        try:
            response = await self._get_client().post(url, json=msg)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransportError(dst, str(e) or type(e).__name__, cause=e) from e

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None
