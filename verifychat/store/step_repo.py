"""
Step Store.

Authored steps are a JSON list, kept in Redis under STEPS_KEY or in a local
file at STEPS_FILE. Loading is forgiving: a malformed step is reported and
skipped, the rest of the flow still runs. Field names from older flow editors
(question, expectedAnswer, type, nextStepId, ...) are accepted.
"""
import json
from typing import Any, Dict, List, Optional, Tuple

from verifychat.core.matcher import normalize, split_answers
from verifychat.errors import ValidationError
from verifychat.observability.logging import log
from verifychat.settings import settings
from verifychat.store.models import (
    INPUT_KINDS,
    POLICY_SENTINELS,
    Branch,
    LinkSpec,
    MatchType,
    RedirectTo,
    StepDefinition,
    StepKind,
    parse_failure_policy,
)
from verifychat.store.redis_conn import get_redis


def _first(raw: dict, *names: str) -> Any:
    for name in names:
        if raw.get(name) is not None:
            return raw[name]
    return None


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value if v is not None)
    return str(value)


def _parse_link(raw: dict) -> Optional[LinkSpec]:
    link = raw.get("link")
    if isinstance(link, dict):
        url = str(link.get("url") or "").strip()
        label = str(link.get("label") or "").strip()
    else:
        url = str(_first(raw, "linkUrl") or "").strip()
        label = str(_first(raw, "linkText") or "").strip()
    if not url:
        return None
    return LinkSpec(url=url, label=label) if label else LinkSpec(url=url)


def _parse_branches(raw: dict, problems: List[str]) -> Tuple[Branch, ...]:
    out = []
    for b in raw.get("branches") or []:
        if not isinstance(b, dict):
            problems.append("branch must be an object")
            continue
        label = str(b.get("label") or "").strip()
        target = str(_first(b, "targetStepId", "nextStepId") or "").strip()
        if not label or not target:
            problems.append("branch needs label and targetStepId")
            continue
        out.append(Branch(label=label, targetStepId=target))
    return tuple(out)


def parse_step(raw: Dict[str, Any], index: int = 0) -> StepDefinition:
    """Build a StepDefinition from its JSON form. Raises ValidationError."""
    if not isinstance(raw, dict):
        raise ValidationError(None, ["step must be an object"])

    problems: List[str] = []
    step_id = str(raw.get("id") or "").strip()
    if not step_id:
        problems.append("id is required")
    elif step_id in POLICY_SENTINELS:
        problems.append(f"id {step_id} is reserved")

    kind = StepKind.TEXT
    try:
        kind = StepKind(str(_first(raw, "kind", "type") or "text").lower())
    except ValueError:
        problems.append(f"unknown kind {_first(raw, 'kind', 'type')!r}")

    try:
        order = int(raw.get("order", index))
    except (TypeError, ValueError):
        problems.append("order must be an integer")
        order = index

    match_type = MatchType.CONTAINS
    try:
        match_type = MatchType(str(raw.get("matchType") or "contains").lower())
    except ValueError:
        problems.append(f"unknown matchType {raw.get('matchType')!r}")

    max_attempts = raw.get("maxAttempts")
    if max_attempts is not None:
        try:
            max_attempts = int(max_attempts)
            if max_attempts < 1:
                raise ValueError
        except (TypeError, ValueError):
            problems.append("maxAttempts must be a positive integer")
            max_attempts = None

    input_required = raw.get("inputRequired")
    if input_required is None:
        input_required = kind in INPUT_KINDS
    if kind in (StepKind.LOGIN, StepKind.END):
        # login waits on its own sub-flow; end never waits
        input_required = False

    expected = _as_text(_first(raw, "expectedAnswers", "expectedAnswer"))
    options = tuple(str(o).strip() for o in (raw.get("options") or []) if str(o).strip())
    media = _first(raw, "media", "mediaUrl")
    link = _parse_link(raw)
    branches = _parse_branches(raw, problems)

    if input_required and kind != StepKind.OPTIONS and not split_answers(expected):
        problems.append("expectedAnswers required when inputRequired")
    if kind in (StepKind.IMAGE, StepKind.GIF) and not media:
        problems.append(f"{kind.value} step needs media")
    if kind == StepKind.LINK and link is None:
        problems.append("link step needs link.url")
    if kind == StepKind.OPTIONS and len(options) < 2:
        problems.append("options step needs at least two options")

    if problems:
        raise ValidationError(step_id or None, problems)

    return StepDefinition(
        id=step_id,
        order=order,
        kind=kind,
        prompt=_as_text(_first(raw, "prompt", "question")),
        inputRequired=bool(input_required),
        expectedAnswers=expected,
        matchType=match_type,
        successReply=_as_text(raw.get("successReply")),
        failureReply=_as_text(raw.get("failureReply")),
        captureAs=(str(_first(raw, "captureAs", "variableName") or "").strip() or None),
        media=str(media) if media else None,
        link=link,
        options=options,
        branches=branches,
        onSuccessGoTo=(str(_first(raw, "onSuccessGoTo", "nextStepId") or "").strip() or None),
        onFailureGoTo=parse_failure_policy(_first(raw, "onFailureGoTo", "failureNextStepId")),
        warningText=_as_text(raw.get("warningText")),
        maxAttempts=max_attempts,
        showGoogleLoginButton=bool(raw.get("showGoogleLoginButton", False)),
    )


def parse_steps(raw_steps: Any) -> Tuple[List[StepDefinition], List[ValidationError]]:
    """Return (valid steps, problems). Later duplicates of an id are rejected."""
    if not isinstance(raw_steps, list):
        return [], [ValidationError(None, ["steps must be a JSON list"])]

    steps: List[StepDefinition] = []
    problems: List[ValidationError] = []
    seen = set()
    for i, raw in enumerate(raw_steps):
        try:
            step = parse_step(raw, index=i)
        except ValidationError as e:
            problems.append(e)
            continue
        if step.id in seen:
            problems.append(ValidationError(step.id, ["duplicate id"]))
            continue
        seen.add(step.id)
        steps.append(step)
    return steps, problems


def validate_flow(steps: List[StepDefinition]) -> List[str]:
    """Warnings for references that will fall back at runtime."""
    ids = {s.id for s in steps}
    warnings: List[str] = []
    for s in steps:
        if s.onSuccessGoTo and s.onSuccessGoTo not in ids:
            warnings.append(f"step {s.id}: onSuccessGoTo {s.onSuccessGoTo} does not exist")
        if isinstance(s.onFailureGoTo, RedirectTo) and s.onFailureGoTo.target not in ids:
            warnings.append(f"step {s.id}: onFailureGoTo {s.onFailureGoTo.target} does not exist")
        labels = {normalize(o) for o in s.options}
        for b in s.branches:
            if b.targetStepId not in ids:
                warnings.append(f"step {s.id}: branch {b.label} targets missing step {b.targetStepId}")
            if normalize(b.label) not in labels:
                warnings.append(f"step {s.id}: branch {b.label} is not one of the options")
    return warnings


def _read_file(path: str) -> list:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def load_raw_steps() -> list:
    if settings.STEPS_FILE:
        return _read_file(settings.STEPS_FILE)
    r = get_redis()
    raw = r.get(settings.STEPS_KEY)
    return json.loads(raw) if raw else []


def _valid_steps(raw: list) -> List[StepDefinition]:
    steps, problems = parse_steps(raw)
    for p in problems:
        log("steps_invalid", stepId=p.step_id, problems=p.problems)
    return steps


def load_steps() -> List[StepDefinition]:
    return _valid_steps(load_raw_steps())


def load_flow_file(path: str) -> List[StepDefinition]:
    return _valid_steps(_read_file(path))


def save_raw_steps(raw_steps: list) -> None:
    r = get_redis()
    r.set(settings.STEPS_KEY, json.dumps(raw_steps, ensure_ascii=False))
