"""Append-only outcome log for a single orchestrator run.

The log is the record of a run: one ``DeploymentOutcome`` per stage, in
stage order. It has a single write method, ``append()``; there is no
update and no delete. Retention is the caller's concern; ``to_json()``
hands the log off for external persistence once the run has ended.
"""

from __future__ import annotations

import json
from collections.abc import Iterator

from dockhand.core.errors import InvalidTransitionError
from dockhand.models.outcomes import DeploymentOutcome


class RunLog:
    """Ordered, append-only sequence of stage outcomes.

    Parameters
    ----------
    run_id:
        The run this log belongs to.
    """

    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        self._entries: list[DeploymentOutcome] = []
        self._sealed = False

    def append(self, outcome: DeploymentOutcome) -> DeploymentOutcome:
        """Record *outcome*. Each stage may appear at most once."""
        if self._sealed:
            raise InvalidTransitionError(
                f"Run {self.run_id} has ended; its outcome log is sealed"
            )
        if any(e.stage_name == outcome.stage_name for e in self._entries):
            raise InvalidTransitionError(
                f"Stage {outcome.stage_name!r} already has an outcome in run {self.run_id}"
            )
        self._entries.append(outcome)
        return outcome

    def seal(self) -> None:
        """Refuse further appends; called when the run reaches a terminal state."""
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def entries(self) -> tuple[DeploymentOutcome, ...]:
        return tuple(self._entries)

    @property
    def stage_names(self) -> list[str]:
        return [e.stage_name for e in self._entries]

    def to_json(self) -> str:
        return json.dumps(
            {
                "run_id": self.run_id,
                "outcomes": [e.model_dump(mode="json") for e in self._entries],
            },
            indent=2,
        )

    def __iter__(self) -> Iterator[DeploymentOutcome]:
        return iter(tuple(self._entries))

    def __len__(self) -> int:
        return len(self._entries)
