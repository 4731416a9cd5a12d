"""
Conversation runtime.

FlowEngine executes a list of StepDefinitions against one Session at a time.
Each public call is one tick: it takes the session and an inbound event,
mutates the session, and returns a Tick holding the outbound events.

The engine never raises out of a tick for conversational problems (wrong
answers, bridge failures, dangling step references, a failing ban gate). Those
become bot messages or a terminal session.
"""
from typing import Optional, Sequence, Union

from verifychat.auth.ban_gate import DeviceBanGate
from verifychat.auth.bridge import AuthBridge
from verifychat.core import state_machine as sm
from verifychat.core.events import (
    AuthPromptChanged,
    BotMessage,
    GoogleSignIn,
    OptionSelected,
    PendingAdvance,
    Restart,
    SessionTerminal,
    Tick,
    UserReply,
    WarningRaised,
)
from verifychat.core.login import LoginFlow
from verifychat.core.matcher import match, normalize
from verifychat.core.policy import BAN, REDIRECT, RETRY, WARN, evaluate
from verifychat.core.resolver import FlowGraph, Resolution, resolve_next, resolve_target
from verifychat.core.variables import capture, interpolate
from verifychat.errors import BanInvocationError
from verifychat.observability.logging import log
from verifychat.settings import settings
from verifychat.store.identity_repo import IdentityMemory
from verifychat.store.models import Session, StepDefinition, StepKind
from verifychat.utils.time import now_ms, reading_delay_ms

Event = Union[UserReply, OptionSelected, GoogleSignIn, Restart]


class FlowEngine:
    def __init__(
        self,
        steps: Union[FlowGraph, Sequence[StepDefinition]],
        bridge: AuthBridge,
        ban_gate: DeviceBanGate,
        identity: Optional[IdentityMemory] = None,
        inline_auto_advance: bool = True,
    ):
        self.graph = steps if isinstance(steps, FlowGraph) else FlowGraph(steps)
        self.bridge = bridge
        self.ban_gate = ban_gate
        self.login = LoginFlow(self, bridge, identity or IdentityMemory())
        # False: statement steps are handed back as Tick.pending for a scheduler
        self.inline_auto_advance = inline_auto_advance

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------

    def new_session(self, session_id: str, device_id: str = "", generation: int = 0) -> Session:
        ts = now_ms()
        return Session(
            sessionId=session_id,
            deviceId=device_id,
            generation=generation,
            startedAtMs=ts,
            updatedAtMs=ts,
        )

    async def start(self, session: Session) -> Tick:
        tick = Tick(session)
        if not session.startedAtMs:
            session.startedAtMs = now_ms()
        log("flow_started", sessionId=session.sessionId, generation=session.generation, steps=len(self.graph))
        first = self.graph.first()
        if first is None:
            # Nothing authored: nothing to verify
            self._complete(tick)
        else:
            await self._enter(tick, first)
        session.updatedAtMs = now_ms()
        return tick

    async def restart(self, session: Session) -> Tick:
        fresh = self.new_session(session.sessionId, session.deviceId, generation=session.generation + 1)
        log("flow_restarted", sessionId=session.sessionId, generation=fresh.generation)
        return await self.start(fresh)

    async def dispatch(self, session: Session, event: Event) -> Tick:
        if isinstance(event, Restart):
            return await self.restart(session)

        tick = Tick(session)
        if sm.is_terminal(session):
            log("event_ignored", sessionId=session.sessionId, reason="terminal", terminal=session.terminal)
            return tick

        if not session.currentStepId:
            return await self.start(session)

        step = self.graph.get(session.currentStepId)
        if step is None:
            # The flow was re-authored under a live session
            log("session_step_missing", sessionId=session.sessionId, stepId=session.currentStepId)
            return await self.restart(session)

        if isinstance(event, UserReply):
            await self._on_reply(tick, step, event.text)
        elif isinstance(event, OptionSelected):
            await self._on_option(tick, step, event.label)
        elif isinstance(event, GoogleSignIn):
            await self.login.on_google(tick, step, event.credential)
        else:
            log("event_ignored", sessionId=session.sessionId, reason="unknown_event", eventType=type(event).__name__)

        session.updatedAtMs = now_ms()
        return tick

    async def auto_advance(self, session: Session, generation: int, step_id: str) -> Tick:
        """Scheduled continuation of a statement step. Stale tokens are a no-op."""
        tick = Tick(session)
        if (
            session.generation != generation
            or session.currentStepId != step_id
            or sm.is_terminal(session)
        ):
            log("auto_advance_stale", sessionId=session.sessionId, generation=generation, stepId=step_id)
            return tick
        step = self.graph.get(step_id)
        if step is None:
            return tick
        await self._advance(tick, step)
        session.updatedAtMs = now_ms()
        return tick

    # ------------------------------------------------------------
    # Output helpers
    # ------------------------------------------------------------

    def emit(self, tick: Tick, event) -> None:
        tick.events.append(event)
        if isinstance(event, BotMessage):
            tick.session.transcript.append({
                "sender": "bot",
                "text": event.text,
                "kind": event.kind,
                "isError": event.isError,
                "timestamp": now_ms(),
            })

    def say(self, tick: Tick, text: str, is_error: bool = False) -> None:
        self.emit(tick, BotMessage(text=text, isError=is_error, delayMs=reading_delay_ms(text)))

    def record_user(self, tick: Tick, text: str) -> None:
        tick.session.transcript.append({"sender": "user", "text": text, "timestamp": now_ms()})

    def set_auth_state(self, tick: Tick, sub_state: str) -> None:
        if tick.session.authSubState != sub_state:
            tick.session.authSubState = sub_state
            self.emit(tick, AuthPromptChanged(sub_state))

    def render(self, step: StepDefinition, session: Session) -> Optional[BotMessage]:
        text = interpolate(step.prompt, session.variables)
        kind = step.kind

        if kind == StepKind.TEXT:
            if not text:
                return None
            return BotMessage(text=text, kind=kind.value, delayMs=reading_delay_ms(text))
        if kind in (StepKind.IMAGE, StepKind.GIF):
            return BotMessage(text=text, kind=kind.value, media=step.media, delayMs=reading_delay_ms(text))
        if kind == StepKind.LINK:
            link = {"url": step.link.url, "label": step.link.label} if step.link else None
            return BotMessage(text=text, kind=kind.value, link=link, delayMs=reading_delay_ms(text))
        if kind == StepKind.OPTIONS:
            return BotMessage(text=text, kind=kind.value, options=list(step.options), delayMs=reading_delay_ms(text))
        if kind == StepKind.LOGIN:
            return self.login.render(step, session)
        if kind == StepKind.END:
            return BotMessage(text=text, kind=kind.value, delayMs=reading_delay_ms(text)) if text else None
        raise ValueError(f"unhandled step kind: {kind}")

    # ------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------

    async def _enter(self, tick: Tick, step: StepDefinition) -> None:
        session = tick.session
        session.currentStepId = step.id
        session.authSubState = sm.AUTH_IDLE
        session.pendingAuthEmail = None
        log("step_entered", sessionId=session.sessionId, stepId=step.id, kind=step.kind.value)

        if step.kind == StepKind.LOGIN:
            await self.login.enter(tick, step)
            return

        msg = self.render(step, session)
        if msg is not None:
            self.emit(tick, msg)

        if step.kind == StepKind.END:
            self._complete(tick)
            return

        if not step.inputRequired:
            delay = msg.delayMs if msg is not None else 0
            if self.inline_auto_advance and tick.hops < settings.MAX_AUTO_ADVANCE_CHAIN:
                tick.hops += 1
                await self._advance(tick, step)
            else:
                if self.inline_auto_advance:
                    log("auto_advance_chain_limit", sessionId=session.sessionId, stepId=step.id, hops=tick.hops)
                tick.pending = PendingAdvance(session.generation, step.id, delay)

    async def _move(self, tick: Tick, resolution: Resolution) -> None:
        if resolution.target is None:
            self._complete(tick)
            return
        await self._enter(tick, self.graph.get(resolution.target))

    async def _advance(self, tick: Tick, step: StepDefinition, choice: Optional[str] = None) -> None:
        tick.session.attempts = 0
        await self._move(tick, resolve_next(self.graph, step, True, choice))

    def _complete(self, tick: Tick) -> None:
        session = tick.session
        session.terminal = sm.TERMINAL_COMPLETED
        log("flow_completed", sessionId=session.sessionId, stepId=session.currentStepId)
        self.emit(tick, SessionTerminal(sm.TERMINAL_COMPLETED))

    async def ban(self, tick: Tick, text: str, reason: str) -> None:
        session = tick.session
        self.say(tick, text, is_error=True)
        if not session.deviceId:
            # Nothing to lock out; the session itself still ends banned
            log("device_ban_skipped", sessionId=session.sessionId, reason="no_device_id")
        else:
            try:
                await self.ban_gate.ban(session.deviceId, reason, session.sessionId)
            except BanInvocationError as e:
                # The decision stands even if it could not be made durable
                log("ban_invocation_failed", sessionId=session.sessionId, deviceId=session.deviceId, error=str(e)[:300])
        session.terminal = sm.TERMINAL_BANNED
        session.banReason = reason
        log("device_banned", sessionId=session.sessionId, deviceId=session.deviceId,
            stepId=session.currentStepId, reason=reason)
        self.emit(tick, SessionTerminal(sm.TERMINAL_BANNED))

    # ------------------------------------------------------------
    # Input handling
    # ------------------------------------------------------------

    @staticmethod
    def _option_for(step: StepDefinition, label: str) -> Optional[str]:
        wanted = normalize(label)
        for option in step.options:
            if normalize(option) == wanted:
                return option
        return None

    async def _on_option(self, tick: Tick, step: StepDefinition, label: str) -> None:
        if step.kind == StepKind.LOGIN:
            self.record_user(tick, label)
            await self.login.on_option(tick, step, label)
            return
        option = self._option_for(step, label) if step.kind == StepKind.OPTIONS else None
        if option is None:
            # Not one of this step's choices: treat it like typed text
            await self._on_reply(tick, step, label)
            return
        self.record_user(tick, option)
        await self.succeed(tick, step, option, choice=option)

    async def _on_reply(self, tick: Tick, step: StepDefinition, text: str) -> None:
        if not (text or "").strip():
            return
        if step.kind == StepKind.LOGIN:
            await self.login.on_reply(tick, step, text)
            return

        self.record_user(tick, text)
        if not step.inputRequired:
            log("reply_ignored", sessionId=tick.session.sessionId, stepId=step.id, reason="statement_step")
            return

        if step.kind == StepKind.OPTIONS:
            option = self._option_for(step, text)
            if option is not None:
                await self.succeed(tick, step, option, choice=option)
                return

        if match(text, step.expectedAnswers, step.matchType, tick.session.variables):
            await self.succeed(tick, step, text)
        else:
            await self._fail(tick, step, text)

    async def succeed(self, tick: Tick, step: StepDefinition, raw: str, choice: Optional[str] = None) -> None:
        session = tick.session
        session.attempts = 0
        session.variables = capture(session.variables, step.captureAs, raw)
        log("answer_matched", sessionId=session.sessionId, stepId=step.id, captured=step.captureAs or "")
        if step.successReply:
            self.say(tick, interpolate(step.successReply, {**session.variables, "input": raw}))
        await self._advance(tick, step, choice)

    async def _fail(self, tick: Tick, step: StepDefinition, raw: str) -> None:
        session = tick.session
        verdict = evaluate(step, session)
        failure_text = interpolate(
            step.failureReply or settings.DEFAULT_FAILURE_REPLY,
            {**session.variables, "input": raw},
        )
        log("answer_rejected", sessionId=session.sessionId, stepId=step.id,
            action=verdict.action, attempts=session.attempts, input=raw)

        if verdict.action == RETRY:
            self.say(tick, failure_text, is_error=True)
        elif verdict.action == REDIRECT:
            self.say(tick, failure_text, is_error=True)
            await self._move(tick, resolve_target(self.graph, step, verdict.target))
        elif verdict.action == WARN:
            if step.failureReply:
                self.say(tick, failure_text, is_error=True)
            self.emit(tick, WarningRaised(verdict.message or settings.DEFAULT_WARNING_TEXT))
        elif verdict.action == BAN:
            await self.ban(tick, verdict.message or settings.DEFAULT_BAN_TEXT, verdict.reason)
