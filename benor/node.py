# benor/node.py
import asyncio
import random
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Set

import structlog

from .errors import ProtocolError
from .readiness import ReadinessGate
from .utils import PROPOSAL, VOTE, Message, NodeState, Value, majority_or_random, tally

logger = structlog.get_logger(__name__)


class BenOrNode:
    """One participant of the randomized binary consensus.

    Each round has a propose phase and a vote phase. A node votes once it holds
    N-F proposals for a round, and once it holds N-F votes it either decides
    (some bit has at least F+1 votes) or carries a value into the next round.
    All handling runs on the node's own inbox loop, one message at a time.
    """

    def __init__(
        self,
        node_id: int,
        n: int,
        f: int,
        initial_value: Value,
        network,
        is_faulty: bool = False,
        gate: Optional[ReadinessGate] = None,
        rng: Optional[random.Random] = None,
        emit: Optional[Callable[[dict], None]] = None,
    ):
        self.id = node_id
        self.n = n
        self.f = f
        self.quorum = n - f
        self.initial_value = initial_value
        self.network = network
        self.is_faulty = is_faulty
        self.gate = gate
        self.rng = rng or random.Random()
        self.emit = emit or (lambda e: None)

        self.state = NodeState.fresh(initial_value, is_faulty)
        self.proposals: Dict[int, List[Value]] = defaultdict(list)
        self.votes: Dict[int, List[Value]] = defaultdict(list)
        self.voted_in_round: Set[int] = set()
        self.closed_rounds: Set[int] = set()  # rounds whose vote quorum was handled

        self.inbox: asyncio.Queue = asyncio.Queue()
        self.running = False
        self._task_proc: Optional[asyncio.Task] = None

        self.network.register(self.id, self.receive)

    @property
    def peer_ids(self) -> List[int]:
        return list(range(self.n))

    # --- external interface ---
    def status(self) -> str:
        return "faulty" if self.is_faulty else "live"

    def get_state(self) -> Dict[str, Any]:
        return self.state.snapshot()

    async def receive(self, msg: Dict[str, Any]):
        if self.is_faulty or self.state.killed:
            return
        await self.inbox.put(msg)

    async def start(self):
        if self.gate is not None:
            await self.gate.wait()
        if self.is_faulty:
            return
        await self.initiate(self.initial_value)

    def stop(self):
        if self.state.killed:
            return
        self.state.killed = True
        logger.info("node stopped", node=self.id)
        self.emit({"type": "STOPPED", "node": self.id})

    # --- inbox loop ---
    async def launch(self):
        self.running = True
        self._task_proc = asyncio.create_task(self.process_messages())

    async def shutdown(self):
        self.running = False
        if self._task_proc:
            self._task_proc.cancel()
            try:
                await self._task_proc
            except asyncio.CancelledError:
                pass
            self._task_proc = None

    async def process_messages(self):
        while self.running:
            msg = await self.inbox.get()
            try:
                await self.on_message(msg)
            except Exception as e:
                logger.exception("message handling failed", node=self.id)
                self.emit({"type": "ERROR", "node": self.id, "error": str(e)})

    async def broadcast(self, message: Message):
        await self.network.broadcast(self.id, message.to_wire(), self.peer_ids)

    def _active(self) -> bool:
        return not (self.is_faulty or self.state.killed or self.state.decided)

    # --- protocol ---
    async def initiate(self, initial_value: Value):
        if not self._active():
            return
        if self.state.round:
            logger.warning("already initiated", node=self.id, round=self.state.round)
            return
        self.state.round = 1
        self.state.value = initial_value
        self.state.decided = False
        self.emit({"type": "PROPOSAL_SENT", "node": self.id, "round": 1, "value": initial_value})
        await self.broadcast(Message(PROPOSAL, 1, initial_value))

    async def on_message(self, msg: Dict[str, Any]):
        if self.is_faulty or self.state.killed:
            return
        try:
            message = Message.from_wire(msg)
        except ProtocolError as e:
            logger.warning("ignoring message", node=self.id, error=str(e))
            return
        if message.kind == PROPOSAL:
            await self.on_proposal(message.round, message.value)
        elif message.kind == VOTE:
            await self.on_vote(message.round, message.value)

    async def on_proposal(self, r: int, v: Value):
        if not self._active():
            return
        bucket = self.proposals[r]
        bucket.append(v)
        if len(bucket) < self.quorum or r in self.voted_in_round:
            return
        self.voted_in_round.add(r)

        value = majority_or_random(bucket, self.rng)
        logger.debug("proposal quorum", node=self.id, round=r, value=value)
        self.emit({"type": "VOTE_SENT", "node": self.id, "round": r, "value": value})
        await self.broadcast(Message(VOTE, r, value))

    async def on_vote(self, r: int, v: Value):
        if not self._active():
            return
        bucket = self.votes[r]
        bucket.append(v)
        if len(bucket) < self.quorum or r in self.closed_rounds:
            return
        self.closed_rounds.add(r)

        zeros, ones = tally(bucket)
        if zeros >= self.f + 1 or ones >= self.f + 1:
            self._decide(0 if zeros > ones else 1, r)
            return

        value = majority_or_random(bucket, self.rng)
        next_round = r + 1
        if next_round <= self.state.round:
            # already moved past this round on a later quorum
            logger.debug("stale vote quorum", node=self.id, round=r, current=self.state.round)
            return
        self.state.round = next_round
        self.state.value = value
        logger.debug("advancing round", node=self.id, round=next_round, value=value)
        self.emit({"type": "ROUND_ADVANCED", "node": self.id, "round": next_round, "value": value})
        await self.broadcast(Message(PROPOSAL, next_round, value))

    def _decide(self, value: int, r: int):
        self.state.decided = True
        self.state.value = value
        self.proposals.clear()
        self.votes.clear()
        logger.info("decided", node=self.id, round=r, value=value)
        self.emit({"type": "DECIDED", "node": self.id, "round": r, "value": value})
