"""Control API routes: data reset and the traffic simulator."""

from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from ...app import IApplication


class StatusResponse(BaseModel):
    status: str


# Traffic simulator registered by main.py; None when running without one.
_sim_instance: Any = None


def set_sim_instance(sim: Any) -> None:
    """Register the traffic simulator controlled by /api/control/sim/*."""
    global _sim_instance
    _sim_instance = sim


def get_sim_instance() -> Any:
    return _sim_instance


def _require_sim() -> Any:
    if _sim_instance is None:
        raise HTTPException(status_code=404, detail="Simulator not configured")
    return _sim_instance


def create_control_router(app: IApplication) -> APIRouter:
    """Create control router."""
    router = APIRouter(prefix="/api/control", tags=["control"])

    @router.post("/reset", response_model=StatusResponse)
    async def reset_relay() -> dict:
        """Drop pending batches, conversation logs, profiles and trace events."""
        await app.reset()
        return {"status": "ok"}

    @router.post("/sim/start", response_model=StatusResponse)
    async def start_sim() -> dict:
        await _require_sim().start()
        return {"status": "started"}

    @router.post("/sim/stop", response_model=StatusResponse)
    async def stop_sim() -> dict:
        await _require_sim().stop()
        return {"status": "stopped"}

    return router
