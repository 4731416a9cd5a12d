import time
from typing import Awaitable, Callable, Optional

from starlette.concurrency import run_in_threadpool

from verifychat.auth.ban_gate import build_ban_gate, get_ban
from verifychat.auth.bridge import AuthBridge, HttpAuthBridge
from verifychat.core import state_machine as sm
from verifychat.core.engine import Event, FlowEngine
from verifychat.core.events import BotMessage, Restart, SessionTerminal, Tick, WarningRaised
from verifychat.observability import metrics
from verifychat.observability.logging import log
from verifychat.settings import settings
from verifychat.store.identity_repo import IdentityMemory
from verifychat.store.models import Session
from verifychat.store.session_repo import load_session, save_session
from verifychat.store.step_repo import load_steps
from verifychat.utils.lock import session_lock

Action = Callable[[FlowEngine, Session], Awaitable[Tick]]

_bridge: Optional[AuthBridge] = None


def get_bridge() -> AuthBridge:
    global _bridge
    if _bridge is None:
        _bridge = HttpAuthBridge()
    return _bridge


def build_engine(steps) -> FlowEngine:
    bridge = get_bridge()
    return FlowEngine(steps, bridge, build_ban_gate(bridge), IdentityMemory())


def turn_payload(session: Session, events: list) -> dict:
    return {
        "sessionId": session.sessionId,
        "state": sm.state_of(session),
        "currentStepId": session.currentStepId,
        "generation": session.generation,
        "events": [e.to_dict() for e in events],
    }


def _refused_tick(session: Session, ban: dict) -> Tick:
    """A device on the ban registry never gets a conversation."""
    session.terminal = sm.TERMINAL_BANNED
    session.banReason = session.banReason or ban.get("reason") or "device banned"
    tick = Tick(session)
    tick.events.append(BotMessage(text=settings.DEFAULT_BAN_TEXT, isError=True))
    tick.events.append(SessionTerminal(sm.TERMINAL_BANNED))
    return tick


def _record_metrics(kind: str, was_init: bool, prev_terminal: str, tick: Tick, latency_ms: int) -> None:
    session = tick.session
    if kind == "restart":
        metrics.increment(metrics.K_RESTARTED)
    if kind == "restart" or (kind == "start" and was_init):
        metrics.increment(metrics.K_STARTED)
    warnings = sum(1 for e in tick.events if isinstance(e, WarningRaised))
    if warnings:
        metrics.increment(metrics.K_WARNINGS, warnings)
    if session.terminal != prev_terminal:
        if session.terminal == sm.TERMINAL_COMPLETED:
            metrics.increment(metrics.K_COMPLETED)
        elif session.terminal == sm.TERMINAL_BANNED:
            metrics.record_ban(session.deviceId)
    metrics.record_turn_latency(latency_ms)


async def _run_turn(session_id: str, kind: str, action: Action, device_id: str = "") -> dict:
    start_time = time.time()
    # Load -> advance -> save must not interleave with another turn of this session,
    # or parallel wrong answers would all read the same attempt count.
    async with session_lock(session_id):
        session = await run_in_threadpool(load_session, session_id)
        if device_id and not session.deviceId:
            session.deviceId = device_id

        was_init = sm.state_of(session) == sm.INIT
        prev_terminal = session.terminal

        ban = await run_in_threadpool(get_ban, session.deviceId) if session.deviceId else None
        if ban:
            log("device_refused", sessionId=session_id, deviceId=session.deviceId, reason=ban.get("reason"))
            tick = _refused_tick(session, ban)
        else:
            steps = await run_in_threadpool(load_steps)
            engine = build_engine(steps)
            tick = await action(engine, session)

        await run_in_threadpool(save_session, tick.session)

    duration_ms = int((time.time() - start_time) * 1000)
    try:
        await run_in_threadpool(_record_metrics, kind, was_init, prev_terminal, tick, duration_ms)
    except Exception as e:
        # metrics must never break a turn
        log("metrics_failed", sessionId=session_id, errorType=type(e).__name__, error=str(e)[:300])

    log(
        "turn_processed",
        sessionId=session_id,
        kind=kind,
        state=sm.state_of(tick.session),
        stepId=tick.session.currentStepId,
        attempts=tick.session.attempts,
        events=len(tick.events),
        total_latency_ms=duration_ms,
    )
    return turn_payload(tick.session, tick.events)


async def start_conversation(session_id: str, device_id: str = "") -> dict:
    """Begin the flow. Calling it again on a running session changes nothing."""

    async def _start(engine: FlowEngine, session: Session) -> Tick:
        if sm.state_of(session) != sm.INIT:
            return Tick(session)
        return await engine.start(session)

    return await _run_turn(session_id, "start", _start, device_id=device_id)


async def handle_event(session_id: str, event: Event, device_id: str = "") -> dict:
    async def _dispatch(engine: FlowEngine, session: Session) -> Tick:
        return await engine.dispatch(session, event)

    kind = "restart" if isinstance(event, Restart) else "event"
    return await _run_turn(session_id, kind, _dispatch, device_id=device_id)


def session_view(session_id: str) -> dict:
    s = load_session(session_id)
    return {
        "sessionId": s.sessionId,
        "deviceId": s.deviceId,
        "state": sm.state_of(s),
        "currentStepId": s.currentStepId,
        "generation": s.generation,
        "authSubState": s.authSubState,
        "transcript": s.transcript,
    }
