# Purpose: Run commands on a remote host over SSH (paramiko).
# Relationships: Implements adapters/base.py; connection settings come from
#               the `ssh:` section of core/config.py overlaid with cli.py flags.

# One SSH connection is opened when the runner is built and reused for every
# command; each command gets its own session channel. The remote side runs
# the argv through the login shell, so tokens are joined with POSIX quoting
# to keep each one a single word there.

import codecs
import getpass
import io
import logging
import os
import shlex
import sys
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Sequence, TextIO

import paramiko

from ..core.config import SSHSettings
from ..core.errors import ConfigError, EmptyCommand, RunnerFailure
from .base import CommandRunner

logger = logging.getLogger("runner.ssh")

DEFAULT_PORT = 22
DEFAULT_TIMEOUT_SECONDS = 10.0

# Poll interval while waiting for channel output. Short enough that streamed
# output feels live, long enough not to spin a core.
_POLL_SECONDS = 0.05
_CHUNK = 32768


@dataclass(frozen=True)
class SSHConnectionConfig:
    host: str = ""
    port: int = DEFAULT_PORT
    user: str = ""
    password: str = ""
    key_path: str = ""
    verify_host: bool = True
    host_key_path: str = ""
    timeout: float = DEFAULT_TIMEOUT_SECONDS

    @classmethod
    def defaults(cls) -> "SSHConnectionConfig":
        """Current user, ~/.ssh/id_rsa (or id_ed25519) and ~/.ssh/known_hosts."""
        try:
            user = getpass.getuser()
        except (KeyError, OSError):
            user = ""

        ssh_dir = Path.home() / ".ssh"
        key_path = ssh_dir / "id_rsa"
        if not key_path.exists() and (ssh_dir / "id_ed25519").exists():
            key_path = ssh_dir / "id_ed25519"

        return cls(
            user=user,
            key_path=str(key_path),
            host_key_path=str(ssh_dir / "known_hosts"),
        )

    @classmethod
    def from_settings(
        cls,
        settings: SSHSettings | None = None,
        **overrides,
    ) -> "SSHConnectionConfig":
        """
        Build the effective settings: defaults, then the config file's ssh
        section, then any override that is not None (command-line flags).
        """
        cfg = cls.defaults()
        if settings is not None:
            file_values = {
                "host": settings.host or None,
                "port": settings.port or None,
                "user": settings.user or None,
                "password": settings.password or None,
                "key_path": settings.key or None,
                "verify_host": settings.verify_host,
                "host_key_path": settings.host_key_path or None,
                "timeout": float(settings.timeout) if settings.timeout else None,
            }
            cfg = replace(cfg, **{k: v for k, v in file_values.items() if v is not None})

        unknown = set(overrides) - set(cls.__dataclass_fields__)
        if unknown:
            raise TypeError(f"unknown ssh settings: {sorted(unknown)}")
        cfg = replace(cfg, **{k: v for k, v in overrides.items() if v is not None})
        return cfg


class SSHRunner(CommandRunner):
    def __init__(
        self,
        config: SSHConnectionConfig,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        if not config.host:
            raise ConfigError("SSH host is required in remote mode")
        self._config = config
        self._stdout = stdout
        self._stderr = stderr
        self._client: paramiko.SSHClient | None = self._connect()

    def _connect(self) -> paramiko.SSHClient:
        cfg = self._config
        client = paramiko.SSHClient()

        policy: paramiko.MissingHostKeyPolicy = paramiko.AutoAddPolicy()
        if cfg.verify_host and cfg.host_key_path:
            try:
                client.load_host_keys(cfg.host_key_path)
                policy = paramiko.RejectPolicy()
            except OSError as exc:
                logger.warning("Cannot use known_hosts file %s: %s", cfg.host_key_path, exc)
        client.set_missing_host_key_policy(policy)

        key_filename = None
        if cfg.key_path:
            if os.path.isfile(cfg.key_path) and os.access(cfg.key_path, os.R_OK):
                key_filename = cfg.key_path
            else:
                logger.warning("Cannot use key file %s: not a readable file", cfg.key_path)

        if key_filename is None and not cfg.password:
            raise ConfigError("no SSH authentication methods available")

        addr = f"{cfg.host}:{cfg.port}"
        logger.info("Connecting to %s as %s", addr, cfg.user or "(default user)")
        try:
            client.connect(
                hostname=cfg.host,
                port=cfg.port,
                username=cfg.user or None,
                password=cfg.password or None,
                key_filename=key_filename,
                timeout=cfg.timeout,
                allow_agent=False,
                look_for_keys=False,
            )
        except (paramiko.SSHException, OSError) as exc:
            client.close()
            raise RunnerFailure(f"failed to connect to ssh server {addr}: {exc}") from exc
        return client

    # -----------------------------------------------------------------------
    # CommandRunner
    # -----------------------------------------------------------------------

    def execute(self, argv: Sequence[str]) -> None:
        status = self._run(argv, self._stdout or sys.stdout, self._stderr or sys.stderr)
        if status != 0:
            raise RunnerFailure(
                f"remote command {argv[0]!r} exited with status {status}",
                returncode=status,
            )

    def execute_with_output(self, argv: Sequence[str]) -> str:
        out, err = io.StringIO(), io.StringIO()
        status = self._run(argv, out, err)
        if status != 0:
            stderr_text = err.getvalue()
            raise RunnerFailure(
                stderr_text.strip()
                or f"remote command {argv[0]!r} exited with status {status}",
                returncode=status,
                output=stderr_text,
            )
        return out.getvalue()

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    def _run(self, argv: Sequence[str], out: TextIO, err: TextIO) -> int:
        if not argv:
            raise EmptyCommand()
        if self._client is None:
            raise RunnerFailure("ssh client is not connected")

        command = shlex.join(argv)
        logger.debug("Running on %s: %s", self._config.host, command)
        try:
            stdin, stdout, _ = self._client.exec_command(command)
            stdin.close()
            return _pump(stdout.channel, out, err)
        except paramiko.SSHException as exc:
            raise RunnerFailure(f"failed to run ssh session: {exc}") from exc


def _pump(channel: paramiko.Channel, out: TextIO, err: TextIO) -> int:
    """Copy channel stdout/stderr to out/err until the command exits."""
    out_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    err_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def drain() -> bool:
        moved = False
        while channel.recv_ready():
            out.write(out_decoder.decode(channel.recv(_CHUNK)))
            moved = True
        while channel.recv_stderr_ready():
            err.write(err_decoder.decode(channel.recv_stderr(_CHUNK)))
            moved = True
        return moved

    while not channel.exit_status_ready():
        if not drain():
            time.sleep(_POLL_SECONDS)
    drain()

    out.write(out_decoder.decode(b"", final=True))
    err.write(err_decoder.decode(b"", final=True))
    out.flush()
    err.flush()
    return channel.recv_exit_status()
