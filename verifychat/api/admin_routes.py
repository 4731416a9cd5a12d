from fastapi import APIRouter, Body, Depends, HTTPException

import verifychat.observability.metrics as metrics
from verifychat.api.auth import require_admin
from verifychat.api.schemas import StepsReport
from verifychat.auth.ban_gate import get_ban
from verifychat.core import state_machine as sm
from verifychat.observability.logging import log
from verifychat.store.session_repo import load_session
from verifychat.store.step_repo import load_raw_steps, parse_steps, save_raw_steps, validate_flow

router = APIRouter(prefix="/admin", tags=["admin"])


def _report(raw_steps) -> dict:
    steps, problems = parse_steps(raw_steps)
    return {
        "steps": [s.to_dict() for s in steps],
        "problems": [{"stepId": p.step_id, "problems": p.problems} for p in problems],
        "warnings": validate_flow(steps),
    }


@router.get("/session/{session_id}")
def get_session_snapshot(session_id: str, _=Depends(require_admin)):
    """Full session state, including captured variables, for support staff."""
    s = load_session(session_id)
    return {
        "sessionId": s.sessionId,
        "deviceId": s.deviceId,
        "state": sm.state_of(s),
        "generation": s.generation,
        "currentStepId": s.currentStepId,
        "attempts": s.attempts,
        "variables": s.variables,
        "authSubState": s.authSubState,
        "banReason": s.banReason,
        "startedAtMs": s.startedAtMs,
        "updatedAtMs": s.updatedAtMs,
        "transcript": s.transcript,
    }


@router.get("/steps", response_model=StepsReport)
def get_steps(_=Depends(require_admin)):
    """Authored steps as the engine sees them, plus what was rejected."""
    return _report(load_raw_steps())


@router.put("/steps", response_model=StepsReport)
def put_steps(raw_steps: list = Body(...), _=Depends(require_admin)):
    """Replace the authored flow. Rejected if any step fails validation."""
    report = _report(raw_steps)
    if report["problems"]:
        raise HTTPException(status_code=422, detail=report["problems"])
    save_raw_steps(raw_steps)
    log("steps_saved", count=len(report["steps"]), warnings=len(report["warnings"]))
    return report


@router.get("/metrics")
def get_metrics(_=Depends(require_admin)):
    """
    Flow counters backed by Redis.
    """
    return metrics.get_flow_snapshot()


@router.get("/bans/{device_id}")
def get_device_ban(device_id: str, _=Depends(require_admin)):
    ban = get_ban(device_id)
    return {"deviceId": device_id, "banned": ban is not None, "ban": ban or {}}
