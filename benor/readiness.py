# benor/readiness.py
import asyncio
from typing import Optional, Set

import structlog

logger = structlog.get_logger(__name__)


class ReadinessGate:
    """Blocks protocol start until every node reported it is listening.

    Broadcasts sent before a peer's receiver exists are lost for good, so
    `BenOrNode.start` waits here before initiating.
    """

    def __init__(self, n: int, poll_interval: float = 0.005):
        self.n = n
        self.poll_interval = poll_interval
        self.ready: Set[int] = set()

    def set_ready(self, node_id: int):
        if node_id not in self.ready:
            self.ready.add(node_id)
            logger.debug("node ready", node=node_id, ready=len(self.ready), total=self.n)

    def all_ready(self) -> bool:
        return len(self.ready) >= self.n

    async def wait(self, timeout: Optional[float] = None):
        async def _poll():
            while not self.all_ready():
                await asyncio.sleep(self.poll_interval)

        await asyncio.wait_for(_poll(), timeout)
