# benor/simulation.py
import asyncio
import random
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import structlog

from .config import Settings, get_settings
from .errors import ConfigurationError
from .network import SimulatedNetwork
from .node import BenOrNode
from .readiness import ReadinessGate

logger = structlog.get_logger(__name__)


@dataclass
class SimulationResult:
    states: Dict[int, Dict[str, Any]]
    honest_ids: List[int]
    timed_out: bool = False
    duration_ms: float = 0.0

    def decided_values(self) -> Dict[int, Any]:
        return {i: self.states[i]["value"] for i in self.honest_ids if self.states[i]["decided"]}

    def all_decided(self) -> bool:
        return all(self.states[i]["decided"] for i in self.honest_ids)

    def agreement(self) -> bool:
        return len(set(self.decided_values().values())) <= 1


def validate_cluster(n: int, f: int, initial_values: Sequence[int], faulty: Iterable[int]):
    faulty = set(faulty)
    if n < 1:
        raise ConfigurationError(f"n must be positive, got {n}")
    if f < 0:
        raise ConfigurationError(f"f must be non-negative, got {f}")
    if len(initial_values) != n:
        raise ConfigurationError(f"expected {n} initial values, got {len(initial_values)}")
    bad = [v for v in initial_values if isinstance(v, bool) or v not in (0, 1)]
    if bad:
        raise ConfigurationError(f"initial values must be bits, got {bad}")
    if len(faulty) > f:
        raise ConfigurationError(f"{len(faulty)} faulty nodes exceed fault bound f={f}")
    if any(i < 0 or i >= n for i in faulty):
        raise ConfigurationError(f"faulty ids {sorted(faulty)} out of range 0..{n - 1}")
    if n < 3 * f + 1:
        logger.warning("n < 3f+1 may violate agreement", n=n, f=f)


class Simulation:
    """Runs N nodes over a SimulatedNetwork inside one event loop."""

    def __init__(
        self,
        n: int,
        f: int,
        initial_values: Sequence[int],
        faulty: Iterable[int] = (),
        drop_rate: float = 0.0,
        min_delay: float = 0.0,
        max_delay: float = 0.01,
        seed: Optional[int] = None,
        poll_interval: float = 0.005,
        emit: Optional[Callable[[dict], None]] = None,
    ):
        faulty = set(faulty)
        validate_cluster(n, f, initial_values, faulty)
        self.n = n
        self.f = f
        self.faulty = faulty
        self.poll_interval = poll_interval

        # one seed drives the network and every node's coin
        self.rng = random.Random(seed)
        self.network = SimulatedNetwork(
            drop_rate=drop_rate,
            min_delay=min_delay,
            max_delay=max_delay,
            rng=random.Random(self.rng.random()),
        )
        self.gate = ReadinessGate(n, poll_interval=poll_interval)
        self.nodes: List[BenOrNode] = [
            BenOrNode(
                node_id=i,
                n=n,
                f=f,
                initial_value=initial_values[i],
                network=self.network,
                is_faulty=(i in faulty),
                gate=self.gate,
                rng=random.Random(self.rng.random()),
                emit=emit,
            )
            for i in range(n)
        ]

    @classmethod
    def from_config(
        cls,
        cfg: Dict[str, Any],
        settings: Optional[Settings] = None,
        seed: Optional[int] = None,
        emit: Optional[Callable[[dict], None]] = None,
    ) -> "Simulation":
        """Build from a scenario dict; network knobs it leaves out come from settings."""
        settings = settings or get_settings()
        return cls(
            n=int(cfg["n"]),
            f=int(cfg["f"]),
            initial_values=[int(v) for v in cfg["initial_values"]],
            faulty=[int(i) for i in cfg.get("faulty", [])],
            drop_rate=float(cfg.get("drop_rate", settings.drop_rate)),
            min_delay=float(cfg.get("min_delay", settings.min_delay)),
            max_delay=float(cfg.get("max_delay", settings.max_delay)),
            seed=seed if seed is not None else cfg.get("seed"),
            poll_interval=settings.ready_poll_interval,
            emit=emit,
        )

    @property
    def honest_nodes(self) -> List[BenOrNode]:
        return [node for node in self.nodes if not node.is_faulty]

    async def _until_decided(self):
        while not all(node.state.decided for node in self.honest_nodes):
            await asyncio.sleep(self.poll_interval)

    async def run(self, timeout: float = 5.0) -> SimulationResult:
        loop = asyncio.get_running_loop()
        started = loop.time()
        for node in self.nodes:
            await node.launch()
            self.gate.set_ready(node.id)

        timed_out = False
        try:
            await asyncio.gather(*(node.start() for node in self.nodes))
            await asyncio.wait_for(self._until_decided(), timeout)
        except asyncio.TimeoutError:
            timed_out = True
            logger.warning("simulation timed out", timeout=timeout,
                           undecided=[node.id for node in self.honest_nodes if not node.state.decided])
        finally:
            for node in self.nodes:
                node.stop()
            for node in self.nodes:
                await node.shutdown()

        result = SimulationResult(
            states={node.id: node.get_state() for node in self.nodes},
            honest_ids=[node.id for node in self.honest_nodes],
            timed_out=timed_out,
            duration_ms=(loop.time() - started) * 1000,
        )
        logger.info("simulation finished", decided=result.decided_values(), timed_out=timed_out)
        return result
