"""
===========================================
QUANT NINJA - MAIN API
===========================================
Ledger + quarter-Kelly staking, fed by a Groq vision/search oracle.
"""

import asyncio
import base64
import binascii
import logging
from typing import Literal, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from quant_ninja import __version__
from quant_ninja.LedgerEngine.router import get_oracle_or_503, router as ledger_router
from quant_ninja.LedgerEngine.service import get_ledger_service
from quant_ninja.Oracle import config as oracle_config
from quant_ninja.Services.live_agent import LiveAgent

logger = logging.getLogger("QuantNinja")


# ===========================================
# PYDANTIC MODELS
# ===========================================
class FrameRequest(BaseModel):
    image: str  # base64 JPEG captured by the client


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(BaseModel):
    prompt: str
    history: list[ChatMessage] = []


class VisionRequest(BaseModel):
    image: str
    prompt: str


class AgentStatus(BaseModel):
    active: bool
    scanning: bool
    next_scan_in: Optional[float] = None
    logs: list[dict]


# ===========================================
# LIVE AGENT FRAME BUFFER
# ===========================================
class LatestFrame:
    """Holds the most recent client-pushed frame until the agent consumes it."""

    def __init__(self):
        self._frame: Optional[bytes] = None

    def push(self, frame: bytes):
        self._frame = frame

    async def take(self) -> Optional[bytes]:
        frame, self._frame = self._frame, None
        return frame


latest_frame = LatestFrame()
live_agent: Optional[LiveAgent] = None


# ===========================================
# FASTAPI APP
# ===========================================
app = FastAPI(
    title="Quant Ninja",
    description="+EV bet tracking: screenshot extraction, quarter-Kelly staking, search-verified settlement",
    version=__version__
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ledger_router)


@app.on_event("startup")
async def startup_event():
    """Load the persisted ledger snapshot"""
    service = get_ledger_service()
    logger.info(f"Ledger ready with {len(service.ledger.bets)} positions")


@app.get("/api/health")
async def health_check():
    """Health check for monitoring"""
    return {
        "status": "online",
        "service": "Quant Ninja",
        "groq_configured": bool(oracle_config.GROQ_API_KEY),
        "agent_active": bool(live_agent and live_agent.active),
    }


# ===========================================
# LIVE AGENT
# ===========================================
@app.post("/agent/start", response_model=AgentStatus)
async def start_agent():
    global live_agent
    if live_agent is None:
        live_agent = LiveAgent(get_oracle_or_503(), get_ledger_service(), latest_frame.take)
    live_agent.start()
    return _agent_status()


@app.post("/agent/stop", response_model=AgentStatus)
async def stop_agent():
    if live_agent is None:
        raise HTTPException(status_code=409, detail="Agent was never started")
    await live_agent.stop()
    return _agent_status()


@app.post("/agent/frame")
async def push_frame(request: FrameRequest):
    payload = request.image.split(",", 1)[1] if request.image.startswith("data:") else request.image
    try:
        latest_frame.push(base64.b64decode(payload, validate=True))
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="Frame must be base64 encoded")
    return {"status": "queued"}


@app.post("/agent/scan", response_model=AgentStatus)
async def manual_scan():
    if live_agent is None:
        raise HTTPException(status_code=409, detail="Agent was never started")
    await live_agent.scan_once()
    return _agent_status()


@app.get("/agent/status", response_model=AgentStatus)
async def agent_status():
    return _agent_status()


def _agent_status() -> AgentStatus:
    if live_agent is None:
        return AgentStatus(active=False, scanning=False, logs=[])
    return AgentStatus(
        active=live_agent.active,
        scanning=live_agent.scanning,
        next_scan_in=live_agent.next_scan_in(),
        logs=[{"msg": e.msg, "type": e.level, "at": e.at.isoformat()} for e in live_agent.logs],
    )


# ===========================================
# ASSISTANT (pass-through)
# ===========================================
@app.post("/api/chat")
async def chat(request: ChatRequest):
    oracle = get_oracle_or_503()
    history = [m.model_dump() for m in request.history]
    try:
        reply = await asyncio.wait_for(oracle.chat(request.prompt, history), timeout=60)
    except asyncio.TimeoutError:
        raise HTTPException(status_code=504, detail="Assistant timed out")
    return {"reply": reply}


@app.post("/api/vision")
async def analyze(request: VisionRequest):
    oracle = get_oracle_or_503()
    return {"analysis": await oracle.analyze_image(request.image, request.prompt)}


if __name__ == "__main__":
    import os
    import uvicorn

    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("main:app", host="0.0.0.0", port=port, reload=True)
