"""Stage gates: pure predicates over a ``TriggerContext``.

Gates decide whether a stage is eligible for a trigger. They hold no state
and perform no I/O, so a plan can be inspected (dry run) without touching
any host. Gates compose with ``AllOf`` / ``AnyOf``.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from dockhand.core.errors import GateEvaluationError
from dockhand.models.context import EventKind, TriggerContext
from dockhand.models.hosts import EnvironmentLabel


@runtime_checkable
class StageGate(Protocol):
    """Protocol for stage gates: ``evaluate(context) -> bool``."""

    def evaluate(self, context: TriggerContext) -> bool:
        ...


class AlwaysGate:
    """Accepts every context."""

    def evaluate(self, context: TriggerContext) -> bool:
        return True

    def __repr__(self) -> str:
        return "AlwaysGate()"


class BranchGate:
    """Accepts contexts whose branch is in *branches*."""

    def __init__(self, branches: Iterable[str]) -> None:
        self.branches = frozenset(branches)

    def evaluate(self, context: TriggerContext) -> bool:
        return context.branch in self.branches

    def __repr__(self) -> str:
        return f"BranchGate({sorted(self.branches)!r})"


class EventGate:
    """Accepts contexts whose event kind is in *kinds*."""

    def __init__(self, kinds: Iterable[EventKind]) -> None:
        self.kinds = frozenset(kinds)

    def evaluate(self, context: TriggerContext) -> bool:
        return context.event_kind in self.kinds

    def __repr__(self) -> str:
        return f"EventGate({sorted(k.value for k in self.kinds)!r})"


class ManualEnvironmentGate:
    """Accepts manual dispatches that requested *label*."""

    def __init__(self, label: EnvironmentLabel) -> None:
        self.label = label

    def evaluate(self, context: TriggerContext) -> bool:
        return context.is_manual and context.requested_environment == self.label

    def __repr__(self) -> str:
        return f"ManualEnvironmentGate({self.label.value!r})"


class AllOf:
    """Accepts when every inner gate accepts."""

    def __init__(self, *gates: StageGate) -> None:
        self.gates = gates

    def evaluate(self, context: TriggerContext) -> bool:
        return all(g.evaluate(context) for g in self.gates)

    def __repr__(self) -> str:
        return f"AllOf({', '.join(map(repr, self.gates))})"


class AnyOf:
    """Accepts when at least one inner gate accepts."""

    def __init__(self, *gates: StageGate) -> None:
        self.gates = gates

    def evaluate(self, context: TriggerContext) -> bool:
        return any(g.evaluate(context) for g in self.gates)

    def __repr__(self) -> str:
        return f"AnyOf({', '.join(map(repr, self.gates))})"


def environment_gate(
    label: EnvironmentLabel, release_branches: Iterable[str]
) -> StageGate:
    """Deploy gate: a push to a release branch, or a manual dispatch for *label*."""
    return AnyOf(
        AllOf(BranchGate(release_branches), EventGate({EventKind.PUSH})),
        ManualEnvironmentGate(label),
    )


def validate_trigger_context(context: TriggerContext) -> None:
    """Reject contexts no gate can meaningfully evaluate.

    Raises
    ------
    GateEvaluationError
        If the branch is empty, or a manual dispatch names no environment.
    """
    if not context.branch:
        raise GateEvaluationError("Trigger context has an empty branch")
    if context.is_manual and context.requested_environment is None:
        raise GateEvaluationError(
            "Manual dispatch must request a target environment"
        )


def evaluate_gate(gate: StageGate, context: TriggerContext, *, stage_name: str) -> bool:
    """Evaluate *gate*, reporting any failure as ``GateEvaluationError``."""
    try:
        return bool(gate.evaluate(context))
    except GateEvaluationError:
        raise
    except Exception as exc:
        raise GateEvaluationError(
            f"Gate for stage {stage_name!r} could not be evaluated: {exc}"
        ) from exc
