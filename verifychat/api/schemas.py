from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field


class StartRequest(BaseModel):
    deviceId: str = ""


class ReplyRequest(BaseModel):
    text: str
    deviceId: str = ""


class OptionRequest(BaseModel):
    label: str
    deviceId: str = ""


class GoogleRequest(BaseModel):
    # Provider credential forwarded to the Authentication Bridge
    credential: Optional[str] = None
    deviceId: str = ""


class RestartRequest(BaseModel):
    deviceId: str = ""


class ChatResponse(BaseModel):
    sessionId: str
    state: Literal["INIT", "ACTIVE", "AUTH_EMAIL", "AUTH_PASSWORD", "COMPLETED", "BANNED"]
    currentStepId: Optional[str] = None
    generation: int = 0
    events: List[Dict[str, Any]] = Field(default_factory=list)


class SessionView(BaseModel):
    sessionId: str
    deviceId: str = ""
    state: str
    currentStepId: Optional[str] = None
    generation: int = 0
    authSubState: str = "idle"
    transcript: List[Dict[str, Any]] = Field(default_factory=list)


class StepsReport(BaseModel):
    steps: List[Dict[str, Any]] = Field(default_factory=list)
    problems: List[Dict[str, Any]] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
