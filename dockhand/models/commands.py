"""Structured remote commands and their results.

Commands are a program plus an argument list, never shell text. The
transport is responsible for quoting when a remote shell is involved.
"""

from __future__ import annotations

import shlex

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RemoteCommand(BaseModel):
    """A single program invocation on a target.

    ``best_effort`` turns a non-zero exit (or a timeout) into a logged
    warning instead of a ``CommandError``.
    """

    model_config = ConfigDict(frozen=True)

    program: str
    args: tuple[str, ...] = ()
    best_effort: bool = False
    timeout_seconds: float | None = Field(default=None, gt=0)
    description: str = ""

    @field_validator("program")
    @classmethod
    def _program_is_single_word(cls, value: str) -> str:
        if not value or any(ch.isspace() for ch in value):
            raise ValueError("program must be a single executable name")
        return value

    @property
    def argv(self) -> list[str]:
        return [self.program, *self.args]

    def display(self) -> str:
        """Shell-quoted rendering, for logs and diagnostics only."""
        return shlex.join(self.argv)

    def __str__(self) -> str:
        return self.display()


class CommandResult(BaseModel):
    """Structured outcome of one ``RemoteCommand``."""

    model_config = ConfigDict(frozen=True)

    command: RemoteCommand
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: float = 0.0
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    def summary(self) -> str:
        """One-line description used in warnings and diagnostics."""
        if self.timed_out:
            return f"`{self.command.display()}` timed out"
        detail = self.stderr.strip().splitlines()
        tail = f": {detail[-1]}" if detail else ""
        return f"`{self.command.display()}` exited {self.exit_code}{tail}"
