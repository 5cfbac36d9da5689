"""Artifact identity: a built container image (immutable)."""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, field_validator

DEFAULT_REGISTRY = "docker.io"
DEFAULT_TAG = "latest"

# Docker tag grammar: up to 128 chars, word chars, dots and dashes, no leading dot/dash.
_TAG_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")


class ArtifactReference(BaseModel):
    """Identifies a build output by registry, repository and tag.

    Two references are equivalent iff all three fields match.
    """

    model_config = ConfigDict(frozen=True)

    registry: str = DEFAULT_REGISTRY
    repository: str
    tag: str = DEFAULT_TAG

    @field_validator("registry", "repository")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        if any(ch.isspace() for ch in value):
            raise ValueError("must not contain whitespace")
        return value

    @field_validator("tag")
    @classmethod
    def _valid_tag(cls, value: str) -> str:
        if not _TAG_PATTERN.match(value):
            raise ValueError(f"invalid image tag: {value!r}")
        return value

    @property
    def image_ref(self) -> str:
        """Full image reference, e.g. ``docker.io/acme/notes:latest``."""
        return f"{self.registry}/{self.repository}:{self.tag}"

    def with_tag(self, tag: str) -> ArtifactReference:
        return ArtifactReference(
            registry=self.registry, repository=self.repository, tag=tag
        )

    @classmethod
    def parse(cls, text: str) -> ArtifactReference:
        """Parse ``[registry/]repository[:tag]``.

        The first path component is treated as a registry only when it looks
        like a hostname (contains a dot or a port, or is ``localhost``), the
        same heuristic the Docker CLI applies.
        """
        remainder = text.strip()
        registry = DEFAULT_REGISTRY
        first, sep, rest = remainder.partition("/")
        if sep and ("." in first or ":" in first or first == "localhost"):
            registry, remainder = first, rest

        tag = DEFAULT_TAG
        name, colon, maybe_tag = remainder.rpartition(":")
        if colon and "/" not in maybe_tag:
            remainder, tag = name, maybe_tag

        return cls(registry=registry, repository=remainder, tag=tag)

    def __str__(self) -> str:
        return self.image_ref
