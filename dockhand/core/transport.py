"""Command transports: how argv reaches a machine.

Defines the ``Transport`` Protocol used by ``RemoteExecutor`` together with
two implementations:

1. ``SshTransport``: drives the system ``ssh`` client for a ``TargetHost``.
2. ``LocalTransport``: runs argv on this machine (builds, pushes, checks).

Transports return raw ``(exit_code, stdout, stderr)`` triples. They raise
``RemoteConnectionError`` when the endpoint cannot be reached and
``TimeoutError`` when a command exceeds its timeout; deciding whether a
non-zero exit is an error is the executor's job.

Child processes start in a new session, so a Ctrl-C at the terminal reaches
only Dockhand, which cancels between stages instead of killing an in-flight
remote command.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

from dockhand.config import DockhandSettings, settings as default_settings
from dockhand.core.errors import RemoteConnectionError
from dockhand.models.hosts import TargetHost

logger = logging.getLogger(__name__)

RawOutput = tuple[int, str, str]

# ssh reserves exit status 255 for its own (connection/auth) failures.
SSH_CONNECTION_FAILURE = 255
COMMAND_NOT_FOUND = 127


@runtime_checkable
class Transport(Protocol):
    """Protocol for command transports.

    ``open()`` is called once before the first ``run()``; ``close()`` must be
    safe to call whether or not ``open()`` succeeded.
    """

    def open(self) -> None:
        ...

    def run(
        self,
        argv: Sequence[str],
        *,
        timeout: float | None = None,
        stdin: str | None = None,
    ) -> RawOutput:
        ...

    def close(self) -> None:
        ...


class LocalTransport:
    """Runs commands on the local machine with ``subprocess``."""

    def open(self) -> None:
        return None

    def run(
        self,
        argv: Sequence[str],
        *,
        timeout: float | None = None,
        stdin: str | None = None,
    ) -> RawOutput:
        try:
            completed = subprocess.run(
                list(argv),
                capture_output=True,
                text=True,
                timeout=timeout,
                input=stdin,
                start_new_session=True,
            )
        except subprocess.TimeoutExpired as exc:
            raise TimeoutError(f"{argv[0]} exceeded {timeout}s") from exc
        except FileNotFoundError:
            return COMMAND_NOT_FOUND, "", f"{argv[0]}: command not found"
        return completed.returncode, completed.stdout, completed.stderr

    def close(self) -> None:
        return None


class SshTransport:
    """Runs commands on a ``TargetHost`` through the ``ssh`` client.

    The private key held by the host's credential handle is written to a
    ``0600`` temporary file when the session opens and removed on close.
    Remote argv is quoted with ``shlex.join`` so arguments are never
    re-split or interpreted by the remote shell.

    Parameters
    ----------
    host:
        The target to connect to.
    settings:
        Runtime settings (ssh binary, connect timeout, host key policy).
    """

    def __init__(
        self, host: TargetHost, settings: DockhandSettings | None = None
    ) -> None:
        self.host = host
        self._settings = settings or default_settings
        self._key_path: Path | None = None

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        self._key_path = self._write_key()
        try:
            code, _, stderr = self._invoke(
                ["true"], timeout=self._settings.ssh_connect_timeout * 2
            )
        except TimeoutError as exc:
            self.close()
            raise RemoteConnectionError(
                f"Cannot open ssh session to {self.host.destination}: {exc}"
            ) from exc
        except BaseException:
            self.close()
            raise
        if code != 0:
            self.close()
            raise RemoteConnectionError(
                f"Cannot open ssh session to {self.host.destination}: "
                f"{_last_line(stderr) or f'exit {code}'}"
            )
        logger.info("ssh session opened to %s", self.host.destination)

    def close(self) -> None:
        if self._key_path is not None:
            try:
                self._key_path.unlink(missing_ok=True)
            finally:
                self._key_path = None

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def run(
        self,
        argv: Sequence[str],
        *,
        timeout: float | None = None,
        stdin: str | None = None,
    ) -> RawOutput:
        code, stdout, stderr = self._invoke(argv, timeout=timeout, stdin=stdin)
        if code == SSH_CONNECTION_FAILURE:
            raise RemoteConnectionError(
                f"ssh connection to {self.host.destination} failed: "
                f"{_last_line(stderr) or 'exit 255'}"
            )
        return code, stdout, stderr

    def build_argv(self, argv: Sequence[str]) -> list[str]:
        """Full local argv for running *argv* on the host."""
        s = self._settings
        command = [
            s.ssh_binary,
            "-o", "BatchMode=yes",
            "-o", f"ConnectTimeout={s.ssh_connect_timeout}",
            "-o", f"StrictHostKeyChecking={'yes' if s.strict_host_key_checking else 'accept-new'}",
            "-p", str(self.host.port),
        ]
        if s.known_hosts_file is not None:
            command += ["-o", f"UserKnownHostsFile={s.known_hosts_file}"]
        if self._key_path is not None:
            command += ["-i", str(self._key_path), "-o", "IdentitiesOnly=yes"]
        command += [self.host.destination, "--", shlex.join(list(argv))]
        return command

    def _invoke(
        self,
        argv: Sequence[str],
        *,
        timeout: float | None = None,
        stdin: str | None = None,
    ) -> RawOutput:
        local_argv = self.build_argv(argv)
        try:
            completed = subprocess.run(
                local_argv,
                capture_output=True,
                text=True,
                timeout=timeout,
                input=stdin,
                start_new_session=True,
            )
        except subprocess.TimeoutExpired as exc:
            raise TimeoutError(
                f"{argv[0]} on {self.host.address} exceeded {timeout}s"
            ) from exc
        except FileNotFoundError as exc:
            raise RemoteConnectionError(
                f"ssh client {self._settings.ssh_binary!r} not found"
            ) from exc
        return completed.returncode, completed.stdout, completed.stderr

    def _write_key(self) -> Path | None:
        secret = self.host.credential.secret.get_secret_value()
        if not secret:
            return None  # fall back to the ssh agent / default identities
        fd, name = tempfile.mkstemp(prefix="dockhand-key-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                os.fchmod(fh.fileno(), 0o600)
                fh.write(secret if secret.endswith("\n") else secret + "\n")
        except OSError:
            Path(name).unlink(missing_ok=True)
            raise
        return Path(name)


def _last_line(text: str) -> str:
    lines = text.strip().splitlines()
    return lines[-1] if lines else ""
