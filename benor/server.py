# benor/server.py
# HTTP face of a single node. The routes only adapt requests to BenOrNode;
# all protocol logic stays in the node.
from contextlib import asynccontextmanager
from typing import Optional, Union

import structlog
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from .node import BenOrNode
from .readiness import ReadinessGate

logger = structlog.get_logger(__name__)


class MessageBody(BaseModel):
    # every body is acknowledged; BenOrNode logs and drops what it cannot parse
    kind: Optional[str] = None
    round: Optional[int] = None
    value: Optional[Union[int, str]] = None


def create_node_app(node: BenOrNode, gate: Optional[ReadinessGate] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await node.launch()
        if gate is not None:
            gate.set_ready(node.id)
        logger.info("node server listening", node=node.id, status=node.status())
        yield
        await node.shutdown()

    app = FastAPI(title=f"benor node {node.id}", lifespan=lifespan)

    @app.get("/status")
    async def status():
        if node.is_faulty:
            return PlainTextResponse("faulty", status_code=500)
        return PlainTextResponse("live")

    @app.post("/message")
    async def message(body: MessageBody):
        await node.receive(body.model_dump())
        return PlainTextResponse("Message acknowledged.")

    @app.get("/start")
    async def start():
        await node.start()
        return PlainTextResponse("Consensus process initiated.")

    @app.get("/stop")
    async def stop():
        node.stop()
        return PlainTextResponse("Node stopped.")

    @app.get("/getState")
    async def get_state():
        return node.get_state()

    return app
