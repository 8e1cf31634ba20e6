# app.py
import asyncio
import json
from typing import Any, Dict, List, Optional

import structlog
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import HTMLResponse

from benor.config import get_settings
from benor.errors import ConfigurationError
from benor.simulation import Simulation
import simulate_configs as configs

logger = structlog.get_logger(__name__)

app = FastAPI()

@app.get("/health")
async def health():
    return {"ok": True}

@app.get("/")
async def root():
    return HTMLResponse("<h1>It works ✅</h1><p>Connect to /ws and send START to run a simulation</p>")

@app.get("/scenarios")
async def scenarios():
    return {name: factory() for name, factory in configs.SCENARIOS.items()}

class Hub:
    def __init__(self):
        self.clients: List[WebSocket] = []
        self.lock = asyncio.Lock()
    async def connect(self, ws: WebSocket):
        await ws.accept()
        async with self.lock:
            self.clients.append(ws)
    async def disconnect(self, ws: WebSocket):
        async with self.lock:
            if ws in self.clients:
                self.clients.remove(ws)
    async def broadcast(self, message: dict):
        payload = json.dumps(message)
        async with self.lock:
            dead = []
            for ws in self.clients:
                try:
                    await ws.send_text(payload)
                except Exception:
                    dead.append(ws)
            for d in dead:
                if d in self.clients: self.clients.remove(d)

hub = Hub()

def make_emitter(prefix: str):
    async def _emit_async(evt: dict):
        await hub.broadcast({"source": prefix, **evt})
    def _emit(evt: dict):
        asyncio.get_running_loop().create_task(_emit_async(evt))
    return _emit

sim_task: Optional[asyncio.Task] = None

@app.websocket("/ws")
async def ws_endpoint(ws: WebSocket):
    await hub.connect(ws)
    try:
        while True:
            raw = await ws.receive_text()
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("ignoring non-JSON frame")
                continue
            if not isinstance(msg, dict):
                continue
            if msg.get("type") == "START":
                await start_simulation(msg.get("config", {}))
            elif msg.get("type") == "STOP":
                await stop_simulation()
    except WebSocketDisconnect:
        pass
    finally:
        await hub.disconnect(ws)

async def stop_simulation():
    global sim_task
    if sim_task and not sim_task.done():
        sim_task.cancel()
        try:
            await sim_task
        except asyncio.CancelledError:
            pass
        await hub.broadcast({"type":"STATUS","state":"stopped"})
    sim_task = None

def build_simulation(cfg: Dict[str, Any]) -> Simulation:
    base = configs.get_scenario(cfg.get("scenario", "faulty_one"))
    base.update({k: v for k, v in cfg.items() if k != "scenario"})
    return Simulation.from_config(base, get_settings(), emit=make_emitter("node"))

async def start_simulation(cfg: Dict[str, Any]):
    global sim_task
    await stop_simulation()
    await hub.broadcast({"type":"STATUS","state":"starting"})

    try:
        sim = build_simulation(cfg)
        duration = float(cfg.get("duration", 10))
    except (ConfigurationError, KeyError, TypeError, ValueError) as e:
        logger.warning("rejected simulation config", error=str(e))
        await hub.broadcast({"type":"WARN","message":str(e)})
        return

    async def _run():
        try:
            result = await sim.run(timeout=duration)
        except Exception as e:
            logger.exception("simulation failed")
            await hub.broadcast({"type":"WARN","message":f"simulation failed: {e}"})
            await hub.broadcast({"type":"STATUS","state":"failed"})
            return
        await hub.broadcast({
            "type":"RESULT",
            "states": {str(k): v for k, v in result.states.items()},
            "all_decided": result.all_decided(),
            "agreement": result.agreement(),
            "timed_out": result.timed_out,
        })
        await hub.broadcast({"type":"STATUS","state":"finished"})

    sim_task = asyncio.create_task(_run())
    await hub.broadcast({
        "type":"STATUS","state":"running",
        "config":{"n": sim.n, "f": sim.f, "faulty": sorted(sim.faulty), "duration": duration},
    })
