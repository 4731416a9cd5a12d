"""
Step traversal.

Targets are looked up in a FlowGraph built from the loaded steps. A target that
does not exist never raises: it degrades to the next step in `order` after the
current one, and to completion when there is none.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from verifychat.core.matcher import normalize
from verifychat.errors import DanglingReference
from verifychat.observability.logging import log
from verifychat.store.models import RedirectTo, StepDefinition, StepKind


@dataclass(frozen=True)
class Resolution:
    # None means the flow is exhausted (complete)
    target: Optional[str]
    fallback: bool = False


class FlowGraph:
    def __init__(self, steps: Sequence[StepDefinition]):
        # Stable sort: authored list position breaks ties in `order`
        self.ordered: List[StepDefinition] = sorted(steps, key=lambda s: s.order)
        self.by_id: Dict[str, StepDefinition] = {s.id: s for s in self.ordered}
        self._position = {s.id: i for i, s in enumerate(self.ordered)}

    def __len__(self) -> int:
        return len(self.ordered)

    def __contains__(self, step_id) -> bool:
        return step_id in self.by_id

    def first(self) -> Optional[StepDefinition]:
        return self.ordered[0] if self.ordered else None

    def get(self, step_id: Optional[str]) -> Optional[StepDefinition]:
        if not step_id:
            return None
        return self.by_id.get(step_id)

    def next_sequential(self, step_id: str) -> Optional[str]:
        pos = self._position.get(step_id)
        if pos is None or pos + 1 >= len(self.ordered):
            return None
        return self.ordered[pos + 1].id


def _check_target(graph: FlowGraph, step: StepDefinition, target: str) -> Resolution:
    if target in graph:
        return Resolution(target)
    err = DanglingReference(step.id, target)
    fallback = graph.next_sequential(step.id)
    log("dangling_reference", stepId=step.id, targetId=target, fallbackId=fallback, error=str(err))
    return Resolution(fallback, fallback=True)


def branch_target(step: StepDefinition, choice: Optional[str]) -> Optional[str]:
    if step.kind != StepKind.OPTIONS or choice is None:
        return None
    wanted = normalize(choice)
    for b in step.branches:
        if normalize(b.label) == wanted:
            return b.targetStepId
    return None


def resolve_target(graph: FlowGraph, step: StepDefinition, target: Optional[str]) -> Resolution:
    """Resolve an explicit target id, applying the sequential fallback when it is missing."""
    if not target:
        return Resolution(graph.next_sequential(step.id))
    return _check_target(graph, step, target)


def resolve_next(
    graph: FlowGraph,
    step: StepDefinition,
    success: bool,
    choice: Optional[str] = None,
) -> Optional[Resolution]:
    """
    Success: option branch for `choice`, else onSuccessGoTo, else next by order.
    Failure: the redirect target if the step has one, else None (stay put).
    """
    if success:
        target = branch_target(step, choice) or step.onSuccessGoTo
        return resolve_target(graph, step, target)

    policy = step.onFailureGoTo
    if isinstance(policy, RedirectTo):
        return _check_target(graph, step, policy.target)
    return None
