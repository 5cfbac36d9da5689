"""Deployment orchestrator: the run state machine.

The orchestrator walks a ``DeploymentPlan`` for one trigger context:

    Idle -> Running -> {Completed, Failed, Aborted}

Stages run strictly in order. Each eligible stage is re-gated against the
current (derived) context, executed through its collaborator or the
container runtime adapter, and recorded exactly once in the run log. The
first failure ends the run as ``Failed``; no later stage runs. Cancellation
is honoured between stages only, never mid-stage.

Remote sessions opened during a run are released when ``start()`` returns,
on every path. Concurrent runs must use separate orchestrator instances;
deployments to the same host are not serialized here.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Callable, Iterable
from contextlib import ExitStack
from datetime import datetime, timezone

from dockhand.config import DockhandSettings, settings as default_settings
from dockhand.core.collaborators import (
    Builder,
    CheckRunner,
    CredentialProvider,
    RegistryPusher,
    ReleaseNotifier,
    release_tag_name,
)
from dockhand.core.errors import (
    ChecksFailedError,
    DockhandError,
    InvalidTransitionError,
    PlanError,
    PublishError,
)
from dockhand.core.executor import RemoteExecutor
from dockhand.core.gates import evaluate_gate, validate_trigger_context
from dockhand.core.plan import (
    BuildAction,
    CheckAction,
    DeployAction,
    DeploymentPlan,
    PushAction,
    Stage,
    build_plan,
)
from dockhand.core.run_log import RunLog
from dockhand.core.runtime import ContainerRuntimeAdapter
from dockhand.models.artifacts import ArtifactReference
from dockhand.models.config import PipelineConfig
from dockhand.models.context import TriggerContext
from dockhand.models.hosts import EnvironmentLabel, TargetHost
from dockhand.models.outcomes import (
    VALID_RUN_TRANSITIONS,
    DeploymentOutcome,
    OutcomeStatus,
    RunState,
    RunSummary,
)
from dockhand.models.reports import ReleaseNotice

logger = logging.getLogger(__name__)

ExecutorFactory = Callable[[TargetHost], RemoteExecutor]
RuntimeFactory = Callable[[RemoteExecutor, TargetHost], ContainerRuntimeAdapter]


class DeploymentOrchestrator:
    """Executes one pipeline run against its target hosts.

    Parameters
    ----------
    plan:
        The plan to walk. Never mutated.
    context:
        The trigger context. Validated at construction.
    builder, checks, pusher:
        Collaborators for build, verify and publish stages. Required only
        when the plan contains a stage of that kind.
    notifier:
        Optional release hook, called after a ``Completed`` run for every
        successful deploy to an environment in *release_environments*.
    executor_factory:
        Opens a ``RemoteExecutor`` for a host. Defaults to ssh.
    runtime_factory:
        Wraps an executor in a ``ContainerRuntimeAdapter``.
    run_id:
        Explicit run identifier. Generated if None.

    Raises
    ------
    GateEvaluationError
        If *context* is malformed.
    PlanError
        If the plan needs a collaborator that was not supplied.
    """

    def __init__(
        self,
        plan: DeploymentPlan,
        context: TriggerContext,
        *,
        builder: Builder | None = None,
        checks: CheckRunner | None = None,
        pusher: RegistryPusher | None = None,
        notifier: ReleaseNotifier | None = None,
        executor_factory: ExecutorFactory | None = None,
        runtime_factory: RuntimeFactory | None = None,
        release_environments: Iterable[EnvironmentLabel] = (EnvironmentLabel.PRODUCTION,),
        run_id: str | None = None,
        settings: DockhandSettings | None = None,
    ) -> None:
        validate_trigger_context(context)

        self.plan = plan
        self._settings = settings or default_settings
        self._builder = builder
        self._checks = checks
        self._pusher = pusher
        self._notifier = notifier
        self._executor_factory = executor_factory or self._default_executor
        self._runtime_factory = runtime_factory or self._default_runtime
        self.release_environments = frozenset(release_environments)
        self._check_collaborators()

        ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        self.run_id = run_id or f"dh-{ts}-{uuid.uuid4().hex[:6]}"
        self.run_log = RunLog(self.run_id)

        self._state = RunState.IDLE
        self._context = context
        self._artifact: ArtifactReference = plan.artifact
        self._cancel = threading.Event()
        self._sessions: ExitStack | None = None
        self._runtimes: dict[tuple[str, int, str], ContainerRuntimeAdapter] = {}
        self._deployed: list[TargetHost] = []
        self._started_at: datetime | None = None
        self._finished_at: datetime | None = None

    @classmethod
    def from_config(
        cls,
        config: PipelineConfig,
        context: TriggerContext,
        credentials: CredentialProvider,
        **kwargs,
    ) -> DeploymentOrchestrator:
        """Build the canonical plan for *config* and wrap it in an orchestrator."""
        kwargs.setdefault("release_environments", config.release_environments)
        return cls(build_plan(config, credentials), context, **kwargs)

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    def _check_collaborators(self) -> None:
        required = {
            BuildAction: ("builder", self._builder),
            CheckAction: ("checks", self._checks),
            PushAction: ("pusher", self._pusher),
        }
        missing = [
            name
            for action_type, (name, collaborator) in required.items()
            if collaborator is None and self.plan.needs(action_type)
        ]
        if missing:
            raise PlanError(
                f"Plan requires collaborators that were not supplied: {', '.join(missing)}"
            )

    def _default_executor(self, host: TargetHost) -> RemoteExecutor:
        return RemoteExecutor.for_host(host, self._settings)

    def _default_runtime(
        self, executor: RemoteExecutor, host: TargetHost
    ) -> ContainerRuntimeAdapter:
        return ContainerRuntimeAdapter(
            executor,
            docker_binary=self._settings.docker_binary,
            login_user=host.username,
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def context(self) -> TriggerContext:
        """The current context, including derived fields such as ``artifact_tag``."""
        return self._context

    @property
    def artifact(self) -> ArtifactReference:
        return self._artifact

    @property
    def runtimes(self) -> dict[tuple[str, int, str], ContainerRuntimeAdapter]:
        """Runtime adapters opened during the run, keyed by (address, port, user)."""
        return dict(self._runtimes)

    def _transition(self, target: RunState) -> None:
        allowed = VALID_RUN_TRANSITIONS.get(self._state, set())
        if target not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition run {self.run_id} from {self._state.value} "
                f"to {target.value}. Allowed: {sorted(s.value for s in allowed)}"
            )
        logger.info("Run %s: %s -> %s", self.run_id, self._state.value, target.value)
        self._state = target

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Request cancellation. Honoured before the next stage starts."""
        if not self._cancel.is_set():
            logger.warning("Run %s: cancellation requested", self.run_id)
        self._cancel.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    def start(self) -> RunSummary:
        """Run the plan to a terminal state and return the summary.

        Blocks until the run ends. Stage errors never propagate: they are
        recorded in the run log and end the run as ``Failed``.

        Raises
        ------
        InvalidTransitionError
            If the run has already been started.
        GateEvaluationError
            If the plan's gates cannot be evaluated for this context. The
            run stays ``Idle`` and no stage executes.
        """
        if self._state != RunState.IDLE:
            raise InvalidTransitionError(
                f"Run {self.run_id} is {self._state.value}; start() may be called once"
            )
        eligible = self.plan.eligible_stages(self._context)

        self._transition(RunState.RUNNING)
        self._started_at = datetime.now(timezone.utc)
        logger.info(
            "Run %s: %d of %d stages eligible for %s on %s",
            self.run_id,
            len(eligible),
            len(self.plan),
            self._context.event_kind.value,
            self._context.branch,
        )

        with ExitStack() as sessions:
            self._sessions = sessions
            try:
                terminal = self._run_stages(eligible)
            finally:
                self._sessions = None

        self._transition(terminal)
        self._finished_at = datetime.now(timezone.utc)
        self.run_log.seal()

        if terminal == RunState.COMPLETED:
            self._notify_release()
        return self.summary()

    def summary(self) -> RunSummary:
        return RunSummary(
            run_id=self.run_id,
            state=self._state,
            outcomes=self.run_log.entries,
            artifact=self._artifact,
            started_at=self._started_at,
            finished_at=self._finished_at,
        )

    def _run_stages(self, eligible: list[Stage]) -> RunState:
        for stage in eligible:
            if self._cancel.is_set():
                logger.warning("Run %s aborted before stage %s", self.run_id, stage.name)
                return RunState.ABORTED

            started = time.monotonic()
            diagnostics: list[str] = []
            try:
                if not evaluate_gate(stage.gate, self._context, stage_name=stage.name):
                    self._record(stage, OutcomeStatus.SKIPPED, started, ["gate no longer matches"])
                    continue
                logger.info("Run %s: stage %s started", self.run_id, stage.name)
                self._execute(stage, diagnostics)
            except Exception as exc:
                if isinstance(exc, DockhandError):
                    logger.error("Run %s: stage %s failed: %s", self.run_id, stage.name, exc)
                else:
                    logger.exception("Run %s: stage %s raised unexpectedly", self.run_id, stage.name)
                diagnostics.append(f"{type(exc).__name__}: {exc}")
                self._record(stage, OutcomeStatus.FAILED, started, diagnostics)
                return RunState.FAILED

            self._record(stage, OutcomeStatus.SUCCEEDED, started, diagnostics)
        return RunState.COMPLETED

    def _record(
        self,
        stage: Stage,
        status: OutcomeStatus,
        started: float,
        diagnostics: list[str],
    ) -> None:
        outcome = DeploymentOutcome(
            stage_name=stage.name,
            status=status,
            duration_ms=(time.monotonic() - started) * 1000.0,
            diagnostics=tuple(diagnostics),
        )
        self.run_log.append(outcome)
        logger.info(
            "Run %s: stage %s %s in %.0f ms",
            self.run_id,
            stage.name,
            status.value,
            outcome.duration_ms,
        )

    # ------------------------------------------------------------------
    # Stage actions
    # ------------------------------------------------------------------

    def _execute(self, stage: Stage, diagnostics: list[str]) -> None:
        action = stage.action
        if isinstance(action, BuildAction):
            self._build(action, diagnostics)
        elif isinstance(action, CheckAction):
            self._verify(action, diagnostics)
        elif isinstance(action, PushAction):
            self._publish(action, diagnostics)
        elif isinstance(action, DeployAction):
            self._deploy(action, diagnostics)
        else:
            raise PlanError(f"Stage {stage.name!r} has unsupported action {type(action).__name__}")

    def _build(self, action: BuildAction, diagnostics: list[str]) -> None:
        artifact = self._builder.build(action.source_ref)
        self._artifact = artifact
        self._context = self._context.model_copy(update={"artifact_tag": artifact.tag})
        diagnostics.append(f"built {artifact.image_ref}")

    def _verify(self, action: CheckAction, diagnostics: list[str]) -> None:
        report = self._checks.run_checks(self._artifact)
        diagnostics.extend(report.findings)
        if report.passed:
            return
        if action.best_effort:
            logger.warning("Run %s: checks failed, continuing (best-effort)", self.run_id)
            diagnostics.append("best-effort: checks failed")
            return
        raise ChecksFailedError(f"Checks failed for {self._artifact.image_ref}")

    def _publish(self, action: PushAction, diagnostics: list[str]) -> None:
        if not self._pusher.push(self._artifact, action.credential):
            raise PublishError(f"Push of {self._artifact.image_ref} was rejected")
        diagnostics.append(f"pushed {self._artifact.image_ref}")

    def _deploy(self, action: DeployAction, diagnostics: list[str]) -> None:
        runtime = self._runtime_for(action.target)
        runtime.begin_stage()
        try:
            if action.prepare_host:
                runtime.prepare_host(install_runtime=action.install_runtime)
            runtime.ensure_absent(action.container_name)
            runtime.pull(self._artifact)
            runtime.run(action.container_name, self._artifact, action.port_mapping)
            if action.prune:
                runtime.prune_unused()
        finally:
            diagnostics.extend(runtime.diagnostics)
        self._deployed.append(action.target)
        diagnostics.append(f"{action.container_name} running {self._artifact.image_ref} on {action.target}")

    def _runtime_for(self, host: TargetHost) -> ContainerRuntimeAdapter:
        key = (host.address, host.port, host.username)
        runtime = self._runtimes.get(key)
        if runtime is None:
            executor = self._executor_factory(host)
            if self._sessions is not None:
                self._sessions.enter_context(executor)
            runtime = self._runtime_factory(executor, host)
            self._runtimes[key] = runtime
        return runtime

    # ------------------------------------------------------------------
    # Release hook
    # ------------------------------------------------------------------

    def _notify_release(self) -> None:
        if self._notifier is None:
            return
        tag_name = release_tag_name(self._context.run_number, self.run_id)
        for host in self._deployed:
            if host.environment_label not in self.release_environments:
                continue
            notice = ReleaseNotice(
                run_id=self.run_id,
                artifact=self._artifact,
                host=host,
                tag_name=tag_name,
                commit_message=self._context.commit_message,
            )
            try:
                self._notifier.notify(notice)
            except Exception as exc:
                logger.warning(
                    "Run %s: release notifier failed for %s: %s", self.run_id, host, exc
                )
