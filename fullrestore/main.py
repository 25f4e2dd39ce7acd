from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from pydantic import BaseModel, Field

from fullrestore.config import RestoreSettings, load_settings
from fullrestore.orchestrator import RestorationOrchestrator, create_orchestrator

log = logging.getLogger(__name__)


class PlayerHook(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)
    uuid: UUID = Field(..., description="Offline-mode (cracked) UUID the player connects with")


class PreLoginResponse(BaseModel):
    allow: bool = True
    state: str
    copied: int
    verified_uuid: Optional[str] = None
    message: Optional[str] = None


class JoinResponse(BaseModel):
    skin_applied: bool
    scheduled: bool = True


def get_orchestrator(request: Request) -> RestorationOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Restore service is not ready")
    return orchestrator


health_router = APIRouter(tags=["health"])
hooks_router = APIRouter(prefix="/hooks", tags=["hooks"])
admin_router = APIRouter(prefix="/admin", tags=["admin"])


@health_router.get("/health")
def health(request: Request) -> Dict[str, Any]:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    payload: Dict[str, Any] = {"status": "ok", "service": "fullrestore"}
    if orchestrator is not None:
        payload["restored"] = len(orchestrator.tracker.snapshot())
        payload["skins_cached"] = len(orchestrator.skins)
    return payload


@hooks_router.post("/pre-login", response_model=PreLoginResponse)
async def pre_login(
    body: PlayerHook,
    orchestrator: RestorationOrchestrator = Depends(get_orchestrator),
) -> PreLoginResponse:
    # Runs before the server admits the player, so the restored files are
    # already in place when it loads them.
    outcome = await orchestrator.pre_login(body.username, body.uuid)
    return PreLoginResponse(
        state=outcome.state.value,
        copied=outcome.copied,
        verified_uuid=str(outcome.verified) if outcome.verified else None,
        message=outcome.message,
    )


@hooks_router.post("/join", response_model=JoinResponse)
async def join(
    body: PlayerHook,
    orchestrator: RestorationOrchestrator = Depends(get_orchestrator),
) -> JoinResponse:
    applied = await orchestrator.on_join(body.username, body.uuid)
    return JoinResponse(skin_applied=applied)


@admin_router.post("/restore-all")
async def restore_all(
    wait: bool = Query(False, description="Wait for the sweep and return its report"),
    orchestrator: RestorationOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    try:
        if wait:
            report = await orchestrator.restore_all()
            return {"status": "ok", **report.as_dict()}
        count = await orchestrator.start_sweep()
    except OSError as exc:
        log.warning("restoreall error: %s", exc)
        raise HTTPException(status_code=500, detail=f"Error during restoreall: {exc}") from exc

    return {
        "status": "ok",
        "message": "Restore process initiated for all offline player files.",
        "count": count,
    }


def create_app(
    settings: Optional[RestoreSettings] = None,
    orchestrator: Optional[RestorationOrchestrator] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        cfg = settings or load_settings()
        orch = orchestrator or create_orchestrator(cfg)
        app.state.orchestrator = orch
        orch.control.start()
        log.info("Full Data Restore enabled (world: %s)", orch.store.world_dir)

        if cfg.sweep_on_startup:
            try:
                count = await orch.start_sweep()
                log.info("startup sweep started for %d player files", count)
            except OSError as exc:
                log.warning("startup sweep failed: %s", exc)

        try:
            yield
        finally:
            kicked = await orch.shutdown()
            if kicked:
                log.info("kicked %d restored players on shutdown", kicked)
            await orch.control.stop()
            orch.close()
            app.state.orchestrator = None
            log.info("Full Data Restore disabled")

    app = FastAPI(title="fullrestore", lifespan=lifespan)
    app.include_router(health_router)
    app.include_router(hooks_router)
    app.include_router(admin_router)
    return app


app = create_app()


def run() -> None:
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host="0.0.0.0", port=8766)
