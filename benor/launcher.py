# benor/launcher.py
# Runs every node as its own HTTP server on base_node_port + id, the way a
# real deployment would, but inside one event loop.
import asyncio
import random
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

import httpx
import structlog
import uvicorn

from .config import Settings, get_settings
from .network import HttpTransport
from .node import BenOrNode
from .readiness import ReadinessGate
from .server import create_node_app
from .simulation import validate_cluster

logger = structlog.get_logger(__name__)


@dataclass
class NodeServer:
    node: BenOrNode
    server: uvicorn.Server
    task: Optional[asyncio.Task] = None


class LocalCluster:
    def __init__(
        self,
        n: int,
        f: int,
        initial_values: Sequence[int],
        faulty: Iterable[int] = (),
        settings: Optional[Settings] = None,
        seed: Optional[int] = None,
    ):
        faulty = set(faulty)
        validate_cluster(n, f, initial_values, faulty)
        self.n = n
        self.f = f
        self.settings = settings or get_settings()
        self.rng = random.Random(seed)
        self.gate = ReadinessGate(n, poll_interval=self.settings.ready_poll_interval)
        self.transport = HttpTransport(
            host=self.settings.host,
            base_port=self.settings.base_node_port,
            timeout=self.settings.request_timeout,
        )
        self.servers: List[NodeServer] = []
        for i in range(n):
            node = BenOrNode(
                node_id=i,
                n=n,
                f=f,
                initial_value=initial_values[i],
                network=self.transport,
                is_faulty=(i in faulty),
                gate=self.gate,
                rng=random.Random(self.rng.random()),
            )
            config = uvicorn.Config(
                create_node_app(node, self.gate),
                host=self.settings.host,
                port=self.settings.base_node_port + i,
                log_level="warning",
                lifespan="on",
            )
            self.servers.append(NodeServer(node=node, server=uvicorn.Server(config)))

    async def launch(self):
        for ns in self.servers:
            ns.task = asyncio.create_task(ns.server.serve())
        try:
            await self.gate.wait(timeout=self.settings.run_timeout)
        except Exception:
            logger.error("cluster failed to come up", ready=sorted(self.gate.ready), n=self.n)
            await self.close()
            raise
        logger.info("cluster listening", n=self.n, base_port=self.settings.base_node_port)

    async def _get_all(self, path: str) -> List[httpx.Response]:
        async with httpx.AsyncClient(timeout=self.settings.run_timeout) as client:
            return await asyncio.gather(
                *(client.get(f"{self.settings.node_url(i)}{path}") for i in range(self.n))
            )

    async def start_consensus(self):
        await self._get_all("/start")

    async def stop_consensus(self):
        await self._get_all("/stop")

    async def get_states(self) -> Dict[int, Dict[str, Any]]:
        responses = await self._get_all("/getState")
        return {i: r.json() for i, r in enumerate(responses)}

    async def wait_for_decision(self, timeout: float, poll_interval: float = 0.05) -> Dict[int, Dict[str, Any]]:
        honest = [ns.node.id for ns in self.servers if not ns.node.is_faulty]

        async def _poll():
            while True:
                states = await self.get_states()
                if all(states[i]["decided"] for i in honest):
                    return states
                await asyncio.sleep(poll_interval)

        try:
            return await asyncio.wait_for(_poll(), timeout)
        except asyncio.TimeoutError:
            logger.warning("cluster did not decide in time", timeout=timeout)
            return await self.get_states()

    async def close(self):
        for ns in self.servers:
            ns.server.should_exit = True
        await asyncio.gather(*(ns.task for ns in self.servers if ns.task), return_exceptions=True)
        await self.transport.aclose()
