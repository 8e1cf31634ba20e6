"""
pytest configuration for the consensus test suite
"""

import random

import pytest


class RecordingNetwork:
    """Stands in for a transport and keeps every broadcast instead of sending it."""

    def __init__(self):
        self.nodes = {}
        self.sent = []  # (src, msg, destinations)

    def register(self, node_id, deliver_fn):
        self.nodes[node_id] = deliver_fn

    async def broadcast(self, src, msg, destinations=None):
        self.sent.append((src, msg, list(destinations or [])))

    def messages(self, kind=None):
        return [m for _, m, _ in self.sent if kind is None or m["kind"] == kind]


def proposal(r, v):
    return {"kind": "proposal", "round": r, "value": v}


def vote(r, v):
    return {"kind": "vote", "round": r, "value": v}


@pytest.fixture
def network():
    return RecordingNetwork()


@pytest.fixture
def make_node(network):
    """Build a BenOrNode wired to the recording network."""
    from benor.node import BenOrNode

    def _make(node_id=0, n=4, f=1, initial_value=0, is_faulty=False, seed=7, **kwargs):
        return BenOrNode(
            node_id=node_id,
            n=n,
            f=f,
            initial_value=initial_value,
            network=network,
            is_faulty=is_faulty,
            rng=random.Random(seed),
            **kwargs,
        )

    return _make
