"""Deployment targets and the credentials used to reach them.

Credentials are held by reference: the secret value lives in a
``SecretStr`` and the handle is excluded from ``repr`` and from every
``model_dump``, so a host can be logged or serialized without leaking it.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator


class EnvironmentLabel(str, Enum):
    """Environments a target host can belong to."""

    STAGING = "staging"
    PRODUCTION = "production"


class CredentialHandle(BaseModel):
    """Opaque secret handle resolved from a credential provider.

    ``ref`` names where the secret came from (e.g. an environment variable)
    and is safe to log. ``secret`` is never rendered.
    """

    model_config = ConfigDict(frozen=True)

    ref: str
    secret: SecretStr
    username: str = ""

    def __repr__(self) -> str:
        return f"CredentialHandle(ref={self.ref!r})"

    __str__ = __repr__


class TargetHost(BaseModel):
    """One remote execution endpoint."""

    model_config = ConfigDict(frozen=True)

    address: str
    environment_label: EnvironmentLabel
    credential: CredentialHandle = Field(repr=False, exclude=True)
    username: str = "ubuntu"
    port: int = Field(default=22, ge=1, le=65535)

    @field_validator("address")
    @classmethod
    def _address_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value or any(ch.isspace() for ch in value):
            raise ValueError("host address must be a non-empty hostname or IP")
        return value

    @property
    def destination(self) -> str:
        """``user@address`` as passed to ssh."""
        return f"{self.username}@{self.address}"

    def __str__(self) -> str:
        return f"{self.environment_label.value}:{self.address}"
