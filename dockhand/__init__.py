"""Dockhand: gated build, publish and container deployment pipeline.

A trigger (push, pull request or manual dispatch) is evaluated against an
ordered plan of gated stages:

  - build the container image and verify it (tests, best-effort scans)
  - publish it to a registry
  - replace the running container on staging and production hosts over ssh

Runs follow a small state machine (Idle -> Running -> Completed/Failed/
Aborted), stop at the first failing stage and keep an append-only outcome
log for the caller.
"""

__version__ = "0.1.0"
__description__ = "Gated build, publish and container deployment pipeline"

from dockhand.core.orchestrator import DeploymentOrchestrator
from dockhand.core.plan import DeploymentPlan, build_plan
from dockhand.cli.app import app as cli

__all__ = ["DeploymentOrchestrator", "DeploymentPlan", "build_plan", "cli", "__version__"]
