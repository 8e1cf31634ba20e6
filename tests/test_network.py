# tests/test_network.py
"""
Transport tests: best-effort broadcast, simulated drops and HTTP delivery.
"""

import json
import random

import httpx
import pytest

from benor.errors import TransportError
from benor.network import HttpTransport, SimulatedNetwork


def make_inbox(store, node_id):
    async def deliver(msg):
        store.setdefault(node_id, []).append(msg)
    return deliver


class TestSimulatedNetwork:
    @pytest.mark.asyncio
    async def test_broadcast_reaches_every_node_including_sender(self):
        net = SimulatedNetwork(min_delay=0, max_delay=0)
        got = {}
        for i in range(3):
            net.register(i, make_inbox(got, i))

        await net.broadcast(0, {"kind": "proposal", "round": 1, "value": 1}, [0, 1, 2])

        assert sorted(got) == [0, 1, 2]
        assert all(msgs == [{"kind": "proposal", "round": 1, "value": 1}] for msgs in got.values())

    @pytest.mark.asyncio
    async def test_unknown_destination_does_not_block_others(self):
        net = SimulatedNetwork(min_delay=0, max_delay=0)
        got = {}
        net.register(0, make_inbox(got, 0))
        net.register(2, make_inbox(got, 2))

        await net.broadcast(0, {"kind": "vote", "round": 1, "value": 0}, [0, 1, 2])

        assert sorted(got) == [0, 2]

    @pytest.mark.asyncio
    async def test_send_to_unknown_node_raises(self):
        net = SimulatedNetwork()
        with pytest.raises(TransportError):
            await net.send(0, 5, {"kind": "vote", "round": 1, "value": 0})

    @pytest.mark.asyncio
    async def test_full_drop_rate_delivers_nothing(self):
        net = SimulatedNetwork(drop_rate=1.0, min_delay=0, max_delay=0, rng=random.Random(1))
        got = {}
        for i in range(4):
            net.register(i, make_inbox(got, i))

        await net.broadcast(0, {"kind": "vote", "round": 1, "value": 0})

        assert got == {}

    @pytest.mark.asyncio
    async def test_failing_receiver_is_isolated(self):
        net = SimulatedNetwork(min_delay=0, max_delay=0)
        got = {}

        async def broken(msg):
            raise TransportError(1, "receiver gone")

        net.register(0, make_inbox(got, 0))
        net.register(1, broken)
        net.register(2, make_inbox(got, 2))

        await net.broadcast(0, {"kind": "vote", "round": 1, "value": 1}, [0, 1, 2])

        assert sorted(got) == [0, 2]


class TestHttpTransport:
    @pytest.mark.asyncio
    async def test_posts_to_port_derived_address(self):
        seen = []

        def handler(request: httpx.Request):
            seen.append((request.url.port, request.url.path, json.loads(request.content)))
            return httpx.Response(200, text="Message acknowledged.")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        transport = HttpTransport(base_port=4000, client=client)
        msg = {"kind": "proposal", "round": 1, "value": 0}

        await transport.broadcast(0, msg, [0, 1, 2])
        await transport.aclose()

        assert sorted(seen, key=lambda s: s[0]) == [
            (4000, "/message", msg), (4001, "/message", msg), (4002, "/message", msg),
        ]
        assert transport.address(3) == "http://127.0.0.1:4003"

    @pytest.mark.asyncio
    async def test_connection_failure_is_dropped_per_destination(self):
        delivered = []

        def handler(request: httpx.Request):
            if request.url.port == 4001:
                raise httpx.ConnectError("connection refused", request=request)
            if request.url.port == 4002:
                return httpx.Response(500)
            delivered.append(request.url.port)
            return httpx.Response(200)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        transport = HttpTransport(base_port=4000, client=client)

        await transport.broadcast(0, {"kind": "vote", "round": 1, "value": 1}, [0, 1, 2, 3])
        await transport.aclose()

        assert sorted(delivered) == [4000, 4003]

    @pytest.mark.asyncio
    async def test_send_wraps_http_errors(self):
        def handler(request: httpx.Request):
            raise httpx.ReadTimeout("slow", request=request)

        transport = HttpTransport(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        with pytest.raises(TransportError) as exc:
            await transport.send(0, 1, {"kind": "vote", "round": 1, "value": 1})
        await transport.aclose()

        assert exc.value.dst == 1
        assert isinstance(exc.value.cause, httpx.ReadTimeout)
