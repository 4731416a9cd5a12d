from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union


class StepKind(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    GIF = "gif"
    LINK = "link"
    OPTIONS = "options"
    LOGIN = "login"
    END = "end"


class MatchType(str, Enum):
    CONTAINS = "contains"
    EXACT = "exact"


# Kinds that wait for a reply unless the author says otherwise
INPUT_KINDS = (StepKind.TEXT, StepKind.OPTIONS)


# --- Failure policy (tagged) ---
# Authored as a plain string in onFailureGoTo: a step id or one of the sentinels.

@dataclass(frozen=True)
class RedirectTo:
    target: str


@dataclass(frozen=True)
class WarnRetry:
    pass


@dataclass(frozen=True)
class BanDevice:
    pass


FailurePolicy = Union[RedirectTo, WarnRetry, BanDevice]

WARN_RETRY = "WARN_RETRY"
BAN_DEVICE = "BAN_DEVICE"
# Older flows used WARNING_ONLY for the warn-and-retry policy
LEGACY_WARN_RETRY = "WARNING_ONLY"
POLICY_SENTINELS = {WARN_RETRY, BAN_DEVICE, LEGACY_WARN_RETRY}


def parse_failure_policy(raw: Optional[str]) -> Optional[FailurePolicy]:
    value = (raw or "").strip()
    if not value:
        return None
    if value == BAN_DEVICE:
        return BanDevice()
    if value in (WARN_RETRY, LEGACY_WARN_RETRY):
        return WarnRetry()
    return RedirectTo(value)


def failure_policy_label(policy: Optional[FailurePolicy]) -> Optional[str]:
    if policy is None:
        return None
    if isinstance(policy, BanDevice):
        return BAN_DEVICE
    if isinstance(policy, WarnRetry):
        return WARN_RETRY
    return policy.target


@dataclass(frozen=True)
class Branch:
    label: str
    targetStepId: str


@dataclass(frozen=True)
class LinkSpec:
    url: str
    label: str = "Open Link"


@dataclass(frozen=True)
class StepDefinition:
    id: str
    order: int = 0
    kind: StepKind = StepKind.TEXT
    prompt: str = ""
    inputRequired: bool = False
    expectedAnswers: str = ""
    matchType: MatchType = MatchType.CONTAINS
    successReply: str = ""
    failureReply: str = ""
    captureAs: Optional[str] = None
    media: Optional[str] = None
    link: Optional[LinkSpec] = None
    options: Tuple[str, ...] = ()
    branches: Tuple[Branch, ...] = ()
    onSuccessGoTo: Optional[str] = None
    onFailureGoTo: Optional[FailurePolicy] = None
    warningText: str = ""
    maxAttempts: Optional[int] = None
    showGoogleLoginButton: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order": self.order,
            "kind": self.kind.value,
            "prompt": self.prompt,
            "inputRequired": self.inputRequired,
            "expectedAnswers": self.expectedAnswers,
            "matchType": self.matchType.value,
            "successReply": self.successReply,
            "failureReply": self.failureReply,
            "captureAs": self.captureAs,
            "media": self.media,
            "link": {"url": self.link.url, "label": self.link.label} if self.link else None,
            "options": list(self.options),
            "branches": [{"label": b.label, "targetStepId": b.targetStepId} for b in self.branches],
            "onSuccessGoTo": self.onSuccessGoTo,
            "onFailureGoTo": failure_policy_label(self.onFailureGoTo),
            "warningText": self.warningText,
            "maxAttempts": self.maxAttempts,
            "showGoogleLoginButton": self.showGoogleLoginButton,
        }


@dataclass
class Session:
    # Identity
    sessionId: str = ""
    deviceId: str = ""
    # Bumped on every restart; scheduled work carries it to detect stale sessions
    generation: int = 0

    # Append-only message log: {"sender": "bot"|"user", "text": ..., "kind": ..., "timestamp": ...}
    transcript: List[dict] = field(default_factory=list)

    currentStepId: Optional[str] = None
    variables: Dict[str, str] = field(default_factory=dict)

    # Failure counter for the current step's policy; reset on success and restart
    attempts: int = 0

    authSubState: str = "idle"  # idle/awaiting_email/awaiting_password
    pendingAuthEmail: Optional[str] = None

    terminal: str = "none"  # none/completed/banned
    banReason: Optional[str] = None

    startedAtMs: int = 0
    updatedAtMs: int = 0
