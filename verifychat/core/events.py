from dataclasses import asdict, dataclass, field
from typing import List, Optional


# --- Inbound (presentation layer -> engine) ---

@dataclass(frozen=True)
class UserReply:
    text: str


@dataclass(frozen=True)
class OptionSelected:
    label: str


@dataclass(frozen=True)
class GoogleSignIn:
    # Provider credential (e.g. an ID token) forwarded to the bridge, if any
    credential: Optional[str] = None


@dataclass(frozen=True)
class Restart:
    pass


# --- Outbound (engine -> presentation layer) ---

@dataclass
class BotMessage:
    text: str
    kind: str = "text"
    media: Optional[str] = None
    link: Optional[dict] = None
    options: Optional[List[str]] = None
    showLoginButton: bool = False
    isError: bool = False
    # Suggested reveal delay (reading time) for the presentation layer
    delayMs: int = 0

    def to_dict(self) -> dict:
        return {"type": "bot_message", **asdict(self)}


@dataclass
class AuthPromptChanged:
    subState: str

    def to_dict(self) -> dict:
        return {"type": "auth_prompt_changed", "subState": self.subState}


@dataclass
class SessionTerminal:
    outcome: str  # completed/banned

    def to_dict(self) -> dict:
        return {"type": "session_terminal", "outcome": self.outcome}


@dataclass
class WarningRaised:
    message: str

    def to_dict(self) -> dict:
        return {"type": "warning_raised", "message": self.message}


@dataclass(frozen=True)
class PendingAdvance:
    """A statement step that should advance once its reveal delay has passed."""
    generation: int
    stepId: str
    delayMs: int


@dataclass
class Tick:
    session: object
    events: list = field(default_factory=list)
    pending: Optional[PendingAdvance] = None
    # Statement steps advanced inline during this tick
    hops: int = 0

    def to_dicts(self) -> List[dict]:
        return [e.to_dict() for e in self.events]
