"""
Talk to the verification flow from a terminal.

    python -m scripts.chat_repl [steps.json]

Statement steps advance on a timer, the way a chat window would reveal them.
Commands: /restart, /google [credential], /pick <n>, /quit. Anything else is a
reply. Bans and remembered identities are kept in memory for this run only;
sign-ins go to the Authentication Bridge at AUTH_BRIDGE_URL.
"""
import asyncio
import os
import sys
import uuid

from starlette.concurrency import run_in_threadpool

from verifychat.auth.ban_gate import LocalBanGate
from verifychat.auth.bridge import HttpAuthBridge
from verifychat.core import state_machine as sm
from verifychat.core.engine import FlowEngine
from verifychat.core.events import GoogleSignIn, OptionSelected, Restart, UserReply
from verifychat.core.scheduler import LiveConversation
from verifychat.store.identity_repo import LocalIdentityMemory
from verifychat.store.step_repo import load_flow_file, load_steps

TIME_SCALE = float(os.getenv("REPL_TIME_SCALE", "1.0"))


class TerminalView:
    def __init__(self):
        self.options = []

    def show(self, events: list) -> None:
        for e in events:
            t = e["type"]
            if t == "bot_message":
                prefix = "!" if e["isError"] else ">"
                if e["text"]:
                    print(f"{prefix} {e['text']}")
                if e.get("media"):
                    print(f"  [{e['kind']}] {e['media']}")
                if e.get("link"):
                    print(f"  [{e['link']['label']}] {e['link']['url']}")
                if e.get("options"):
                    self.options = list(e["options"])
                    for i, label in enumerate(self.options, 1):
                        print(f"  {i}) {label}")
                if e.get("showLoginButton"):
                    print("  [Sign in with Google: /google]")
            elif t == "warning_raised":
                print(f"  WARNING: {e['message']}")
            elif t == "auth_prompt_changed" and e["subState"] == sm.AWAITING_PASSWORD:
                print("  (password input)")
            elif t == "session_terminal":
                print(f"-- session {e['outcome']} (/restart to try again, /quit to leave)")


def parse_command(line: str, view: TerminalView):
    if line == "/restart":
        return Restart()
    if line.startswith("/google"):
        credential = line[len("/google"):].strip() or None
        return GoogleSignIn(credential)
    if line.startswith("/pick"):
        try:
            return OptionSelected(view.options[int(line.split()[1]) - 1])
        except (IndexError, ValueError):
            print("usage: /pick <n>")
            return None
    return UserReply(line)


async def run(steps_path: str = "") -> None:
    steps = load_flow_file(steps_path) if steps_path else load_steps()
    bridge = HttpAuthBridge()
    engine = FlowEngine(steps, bridge, LocalBanGate(), LocalIdentityMemory())
    session = engine.new_session(f"repl-{uuid.uuid4().hex[:8]}", device_id="repl-device")

    view = TerminalView()
    convo = LiveConversation(engine, session, view.show, time_scale=TIME_SCALE)
    await convo.start()

    while True:
        line = (await run_in_threadpool(input)).strip()
        if line == "/quit":
            break
        if not line:
            continue
        event = parse_command(line, view)
        if event is not None:
            await convo.send(event)
    convo.scheduler.cancel_all()


if __name__ == "__main__":
    try:
        asyncio.run(run(sys.argv[1] if len(sys.argv) > 1 else ""))
    except (KeyboardInterrupt, EOFError):
        pass
