"""
Authentication sub-flow for `login` steps.

Two ways through:
- Google: one GoogleSignIn event, the bridge returns the identity.
- Email/password: "Continue with email", type the email, type the password.

A device that signed in with email before skips straight to the password
prompt. Any authenticated identity must be on the step's allow-list
(expectedAnswers) when one is authored. Failed sign-ins count towards a ban
(LOGIN_BAN_THRESHOLD), except provider errors on the Google path which only
show a message.
"""
from typing import Optional

from verifychat.auth.bridge import AuthBridge
from verifychat.core import state_machine as sm
from verifychat.core.events import BotMessage, Tick, WarningRaised
from verifychat.core.matcher import candidates, normalize
from verifychat.core.policy import BAN, evaluate_login_failure
from verifychat.core.variables import interpolate
from verifychat.errors import AuthError, UnauthorizedIdentity
from verifychat.observability.logging import log
from verifychat.settings import settings
from verifychat.store.identity_repo import IdentityMemory
from verifychat.store.models import Session, StepDefinition, StepKind
from verifychat.utils.time import reading_delay_ms

CONTINUE_WITH_EMAIL = "Continue with email"
USE_DIFFERENT_EMAIL = "Use a different email"

DEFAULT_LOGIN_PROMPT = "Please sign in to continue."
PASSWORD_MASK = "********"


class LoginFlow:
    def __init__(self, engine, bridge: AuthBridge, identity: IdentityMemory):
        self.engine = engine
        self.bridge = bridge
        self.identity = identity

    def render(self, step: StepDefinition, session: Session, remembered: Optional[str] = None) -> BotMessage:
        text = interpolate(step.prompt, session.variables) or DEFAULT_LOGIN_PROMPT
        options = [USE_DIFFERENT_EMAIL] if remembered else [CONTINUE_WITH_EMAIL]
        return BotMessage(
            text=text,
            kind=step.kind.value,
            options=options,
            showLoginButton=step.showGoogleLoginButton,
            delayMs=reading_delay_ms(text),
        )

    async def _recall(self, device_id: str) -> Optional[str]:
        try:
            return await self.identity.recall(device_id)
        except Exception as e:
            log("identity_recall_failed", deviceId=device_id, errorType=type(e).__name__, error=str(e)[:300])
            return None

    async def enter(self, tick: Tick, step: StepDefinition) -> None:
        session = tick.session
        remembered = await self._recall(session.deviceId)
        self.engine.emit(tick, self.render(step, session, remembered))
        if remembered:
            session.pendingAuthEmail = remembered
            self.engine.say(tick, f"Welcome back, {remembered}. Enter your password.")
            self.engine.set_auth_state(tick, sm.AWAITING_PASSWORD)

    async def on_option(self, tick: Tick, step: StepDefinition, label: str) -> None:
        session = tick.session
        choice = normalize(label)
        if choice == normalize(USE_DIFFERENT_EMAIL):
            try:
                await self.identity.forget(session.deviceId)
            except Exception as e:
                log("identity_forget_failed", deviceId=session.deviceId, errorType=type(e).__name__, error=str(e)[:300])
        elif choice != normalize(CONTINUE_WITH_EMAIL):
            self.engine.say(tick, "Please choose one of the sign-in options.", is_error=True)
            return

        session.pendingAuthEmail = None
        self.engine.say(tick, "Enter your email address.")
        self.engine.set_auth_state(tick, sm.AWAITING_EMAIL)

    async def on_reply(self, tick: Tick, step: StepDefinition, text: str) -> None:
        session = tick.session
        if session.authSubState == sm.AWAITING_PASSWORD:
            self.engine.record_user(tick, PASSWORD_MASK)
            await self._password(tick, step, text)
            return

        # Typing while idle is read as choosing the email path
        self.engine.record_user(tick, text)
        email = text.strip()
        if "@" not in email:
            self.engine.say(tick, "That doesn't look like an email address. Try again.", is_error=True)
            self.engine.set_auth_state(tick, sm.AWAITING_EMAIL)
            return

        session.pendingAuthEmail = email
        self.engine.say(tick, f"Enter the password for {email}.")
        self.engine.set_auth_state(tick, sm.AWAITING_PASSWORD)

    async def _password(self, tick: Tick, step: StepDefinition, password: str) -> None:
        session = tick.session
        email = session.pendingAuthEmail
        if not email:
            self.engine.say(tick, "Enter your email address.")
            self.engine.set_auth_state(tick, sm.AWAITING_EMAIL)
            return
        try:
            await self.bridge.sign_in_with_password(email, password)
        except AuthError as e:
            log("sign_in_failed", sessionId=session.sessionId, method="password", code=e.code, error=str(e)[:300])
            self.engine.say(tick, f"Sign-in failed: {e}", is_error=True)
            await self._strike(tick, step)
            return
        await self._signed_in(tick, step, email, method="password")

    async def on_google(self, tick: Tick, step: StepDefinition, credential: Optional[str] = None) -> None:
        session = tick.session
        if step.kind != StepKind.LOGIN:
            log("event_ignored", sessionId=session.sessionId, reason="google_outside_login", stepId=step.id)
            return
        if not step.showGoogleLoginButton:
            log("event_ignored", sessionId=session.sessionId, reason="google_not_offered", stepId=step.id)
            self.engine.say(tick, "Google sign-in is not available here. Continue with email instead.", is_error=True)
            return
        try:
            identity = await self.bridge.sign_in_with_google(credential)
        except AuthError as e:
            # Cancelled popups and provider outages are not the user's fault
            log("sign_in_failed", sessionId=session.sessionId, method="google", code=e.code, error=str(e)[:300])
            self.engine.say(tick, f"Google sign-in failed: {e}", is_error=True)
            return
        await self._signed_in(tick, step, identity.email, method="google")

    def _check_allowed(self, step: StepDefinition, session: Session, email: str) -> None:
        allowed = candidates(step.expectedAnswers, session.variables)
        if allowed and normalize(email) not in allowed:
            raise UnauthorizedIdentity(email)

    async def _signed_in(self, tick: Tick, step: StepDefinition, email: str, method: str) -> None:
        session = tick.session
        try:
            self._check_allowed(step, session, email)
        except UnauthorizedIdentity as e:
            log("identity_rejected", sessionId=session.sessionId, stepId=step.id, method=method, email=e.email)
            try:
                await self.bridge.sign_out()
            except AuthError as err:
                log("sign_out_failed", sessionId=session.sessionId, code=err.code, error=str(err)[:300])
            text = interpolate(
                step.failureReply or f"{email} is not allowed to sign in here.",
                {**session.variables, "input": email},
            )
            self.engine.say(tick, text, is_error=True)
            session.pendingAuthEmail = None
            self.engine.set_auth_state(tick, sm.AUTH_IDLE)
            await self._strike(tick, step)
            return

        if method == "password":
            try:
                await self.identity.remember(session.deviceId, email)
            except Exception as e:
                log("identity_remember_failed", deviceId=session.deviceId, errorType=type(e).__name__, error=str(e)[:300])

        log("sign_in_succeeded", sessionId=session.sessionId, stepId=step.id, method=method, email=email)
        session.pendingAuthEmail = None
        self.engine.set_auth_state(tick, sm.AUTH_IDLE)
        await self.engine.succeed(tick, step, email)

    async def _strike(self, tick: Tick, step: StepDefinition) -> None:
        verdict = evaluate_login_failure(tick.session, step.warningText)
        if verdict.action == BAN:
            await self.engine.ban(tick, verdict.message or settings.DEFAULT_BAN_TEXT, verdict.reason)
        else:
            self.engine.emit(tick, WarningRaised(verdict.message or settings.DEFAULT_WARNING_TEXT))
