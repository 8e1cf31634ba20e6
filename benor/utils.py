# benor/utils.py
import random
from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterable, Optional, Tuple, Union

from .errors import MalformedMessage, UnknownMessageKind

ABSTAIN = "?"
PROPOSAL = "proposal"
VOTE = "vote"
MESSAGE_KINDS = (PROPOSAL, VOTE)

Value = Union[int, str]  # 0, 1 or ABSTAIN


def is_value(x: Any) -> bool:
    # bool is an int subclass; True/False are not accepted on the wire
    if isinstance(x, bool):
        return False
    return x in (0, 1) or x == ABSTAIN


def tally(values: Iterable[Value]) -> Tuple[int, int]:
    """Count (zeros, ones), skipping abstentions."""
    zeros = ones = 0
    for v in values:
        if v == ABSTAIN:
            continue
        if v == 0:
            zeros += 1
        else:
            ones += 1
    return zeros, ones


def majority_or_random(values: Iterable[Value], rng: Optional[random.Random] = None) -> int:
    """Strict majority bit of `values`, or a coin flip from `rng` on a tie."""
    zeros, ones = tally(values)
    if zeros == ones:
        return (rng or random).randint(0, 1)
    return 0 if zeros > ones else 1


@dataclass
class Message:
    kind: str
    round: int
    value: Value

    def to_wire(self) -> Dict[str, Any]:
        return {"kind": self.kind, "round": self.round, "value": self.value}

    @classmethod
    def from_wire(cls, o: Dict[str, Any]) -> "Message":
        kind = o.get("kind")
        if kind not in MESSAGE_KINDS:
            raise UnknownMessageKind(kind)
        rnd = o.get("round")
        if isinstance(rnd, bool) or not isinstance(rnd, int) or rnd < 1:
            raise MalformedMessage(f"bad round {rnd!r}")
        value = o.get("value")
        if not is_value(value):
            raise MalformedMessage(f"bad value {value!r}")
        return cls(kind=kind, round=rnd, value=value)


@dataclass
class NodeState:
    killed: bool = False
    value: Optional[Value] = None
    decided: Optional[bool] = None
    round: Optional[int] = None  # 0 until the node initiates

    @classmethod
    def fresh(cls, initial_value: Value, is_faulty: bool) -> "NodeState":
        if is_faulty:
            return cls()
        return cls(killed=False, value=initial_value, decided=False, round=0)

    def snapshot(self) -> Dict[str, Any]:
        return asdict(self)
