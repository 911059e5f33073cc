"""
HTTP surface for the console.

FastAPI routes mirroring the console's API client:

    POST /orchestrate       start a session, returns ``{sessionId, status}``
    GET  /getNodeStatus     full session document for polling
    POST /resume            approve/reject a plan (runs in the background)
    POST /evaluateABTest    compare two assets
    GET  /health            liveness

``create_app(orchestrator)`` takes an injected orchestrator (tests pass an
in-memory one); without one, the lifespan hook builds it from settings.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from src.config import Settings, get_settings
from src.exceptions import (
    InvalidSessionStateError,
    SessionNotFoundError,
    ValidationError,
)
from src.models import ApprovalData
from src.orchestrator import CampaignOrchestrator, build_orchestrator
from src.utils import utc_now

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class OrchestrateRequest(BaseModel):
    intent: Optional[str] = None


class ResumeRequest(BaseModel):
    sessionId: Optional[str] = None
    approvalData: Dict[str, Any] = Field(default_factory=dict)


class ABTestRequest(BaseModel):
    assetA: Dict[str, Any]
    assetB: Dict[str, Any]


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(
    orchestrator: Optional[CampaignOrchestrator] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "orchestrator", None) is None:
            app.state.orchestrator = await build_orchestrator(settings)
        yield
        # Let approved sessions finish before the process exits
        await app.state.orchestrator.wait_for_pending()

    app = FastAPI(title="Campaign Orchestrator", version="1.0.0", lifespan=lifespan)
    app.state.orchestrator = orchestrator
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def get_orchestrator(request: Request) -> CampaignOrchestrator:
        return request.app.state.orchestrator

    @app.post("/orchestrate")
    async def orchestrate(req: OrchestrateRequest, request: Request):
        """Start a session; returns once it awaits approval."""
        try:
            session_id = await get_orchestrator(request).start(req.intent or "")
        except ValidationError as exc:
            return _error(str(exc), 400)

        session = await get_orchestrator(request).get_session(session_id)
        status = session.status.value if session else "unknown"
        return {"sessionId": session_id, "status": status}

    @app.get("/getNodeStatus")
    async def get_node_status(request: Request, sessionId: Optional[str] = None):
        if not sessionId:
            return _error("'sessionId' required", 400)
        session = await get_orchestrator(request).get_session(sessionId)
        if session is None:
            return _error(f"Session not found: {sessionId}", 404)
        return session.to_dict()

    @app.post("/resume")
    async def resume(req: ResumeRequest, request: Request):
        """Accept the reviewer's decision and run the plan in the background."""
        try:
            approval = ApprovalData.from_dict(req.approvalData)
            await get_orchestrator(request).submit_resume(req.sessionId or "", approval)
        except ValidationError as exc:
            return _error(str(exc), 400)
        except SessionNotFoundError as exc:
            return _error(str(exc), 404)
        except InvalidSessionStateError as exc:
            return _error(str(exc), 409)
        return JSONResponse({"sessionId": req.sessionId, "status": "accepted"}, status_code=202)

    @app.post("/evaluateABTest")
    async def evaluate_ab_test(req: ABTestRequest, request: Request):
        result = await get_orchestrator(request).evaluate_ab_test(req.assetA, req.assetB)
        if result is None:
            return _error("Evaluation produced no result", 422)
        return result.to_dict()

    @app.get("/health")
    async def health():
        return {"status": "ok", "timestamp": utc_now().isoformat()}

    return app


__all__ = ["create_app"]
