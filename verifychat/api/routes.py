from typing import Optional

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from verifychat.api.auth import require_api_key
from verifychat.api.schemas import (
    ChatResponse,
    GoogleRequest,
    OptionRequest,
    ReplyRequest,
    RestartRequest,
    SessionView,
    StartRequest,
)
from verifychat.core.events import GoogleSignIn, OptionSelected, Restart, UserReply
from verifychat.core.orchestrator import handle_event, session_view, start_conversation

router = APIRouter(prefix="/chat", tags=["chat"], dependencies=[Depends(require_api_key)])


# Bodies for start/google/restart are optional: a bare POST is accepted.

@router.post("/{session_id}/start", response_model=ChatResponse)
async def start(session_id: str, req: Optional[StartRequest] = None):
    req = req or StartRequest()
    return await start_conversation(session_id, device_id=req.deviceId)


@router.post("/{session_id}/reply", response_model=ChatResponse)
async def reply(session_id: str, req: ReplyRequest):
    return await handle_event(session_id, UserReply(req.text), device_id=req.deviceId)


@router.post("/{session_id}/option", response_model=ChatResponse)
async def option(session_id: str, req: OptionRequest):
    return await handle_event(session_id, OptionSelected(req.label), device_id=req.deviceId)


@router.post("/{session_id}/google", response_model=ChatResponse)
async def google(session_id: str, req: Optional[GoogleRequest] = None):
    req = req or GoogleRequest()
    return await handle_event(session_id, GoogleSignIn(req.credential), device_id=req.deviceId)


@router.post("/{session_id}/restart", response_model=ChatResponse)
async def restart(session_id: str, req: Optional[RestartRequest] = None):
    req = req or RestartRequest()
    return await handle_event(session_id, Restart(), device_id=req.deviceId)


@router.get("/{session_id}", response_model=SessionView)
async def get_session(session_id: str):
    return await run_in_threadpool(session_view, session_id)
