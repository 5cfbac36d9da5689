"""Remote executor: structured commands over a scoped transport session.

The session is acquired lazily on the first ``execute()`` and released by
``close()``; use the executor as a context manager to guarantee release on
every exit path::

    with RemoteExecutor.for_host(host) as executor:
        executor.execute(RemoteCommand(program="docker", args=("ps",)))

Best-effort commands turn a non-zero exit or a timeout into a logged
warning and return the failing ``CommandResult``; everything else raises
``CommandError``.
"""

from __future__ import annotations

import logging
import time

from dockhand.config import DockhandSettings, settings as default_settings
from dockhand.core.errors import CommandError
from dockhand.core.transport import LocalTransport, SshTransport, Transport
from dockhand.models.commands import CommandResult, RemoteCommand
from dockhand.models.hosts import TargetHost

logger = logging.getLogger(__name__)

# Exit status reported for timed-out commands, as coreutils ``timeout`` does.
TIMEOUT_EXIT_CODE = 124


class RemoteExecutor:
    """Runs ``RemoteCommand`` objects through a single transport session.

    Parameters
    ----------
    transport:
        The transport carrying commands to the endpoint.
    name:
        Endpoint label used in logs (never includes credentials).
    default_timeout:
        Timeout applied when a command does not set its own.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        name: str = "localhost",
        default_timeout: float | None = None,
    ) -> None:
        self._transport = transport
        self.name = name
        self.default_timeout = default_timeout
        self._connected = False
        self.history: list[CommandResult] = []

    @classmethod
    def for_host(
        cls, host: TargetHost, settings: DockhandSettings | None = None
    ) -> RemoteExecutor:
        """Executor over an ssh session to *host*."""
        settings = settings or default_settings
        return cls(
            SshTransport(host, settings),
            name=str(host),
            default_timeout=settings.command_timeout_seconds,
        )

    @classmethod
    def local(cls, settings: DockhandSettings | None = None) -> RemoteExecutor:
        """Executor running commands on this machine."""
        settings = settings or default_settings
        return cls(
            LocalTransport(),
            name="localhost",
            default_timeout=settings.command_timeout_seconds,
        )

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    @property
    def connected(self) -> bool:
        return self._connected

    def _ensure_session(self) -> None:
        if self._connected:
            return
        logger.debug("Opening session to %s", self.name)
        self._transport.open()
        self._connected = True

    def close(self) -> None:
        """Release the session. Safe to call repeatedly."""
        if not self._connected:
            return
        try:
            self._transport.close()
        finally:
            self._connected = False
            logger.debug("Closed session to %s", self.name)

    def __enter__(self) -> RemoteExecutor:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(
        self, command: RemoteCommand, *, stdin: str | None = None
    ) -> CommandResult:
        """Run *command* and return its structured result.

        ``stdin`` is passed to the process and never logged.

        Raises
        ------
        RemoteConnectionError
            If the session cannot be opened or the transport loses the host.
        CommandError
            If the command fails and is not best-effort.
        """
        self._ensure_session()

        timeout = command.timeout_seconds or self.default_timeout
        logger.info("[%s] $ %s", self.name, command.display())
        started = time.monotonic()
        try:
            exit_code, stdout, stderr = self._transport.run(
                command.argv, timeout=timeout, stdin=stdin
            )
            timed_out = False
        except TimeoutError as exc:
            exit_code, stdout, stderr = TIMEOUT_EXIT_CODE, "", str(exc)
            timed_out = True
        duration_ms = (time.monotonic() - started) * 1000.0

        result = CommandResult(
            command=command,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            duration_ms=duration_ms,
            timed_out=timed_out,
        )
        self.history.append(result)

        if result.ok:
            return result
        if command.best_effort:
            logger.warning("[%s] best-effort command failed: %s", self.name, result.summary())
            return result
        logger.error("[%s] command failed: %s", self.name, result.summary())
        raise CommandError(f"[{self.name}] {result.summary()}", result)
