"""
/bash_script/ssh_session.py
SSH helper for everything that touches a remote server
──────────────────────────────────────────────────────
✓ One paramiko connection per operation, closed when the operation ends
✓ Streams stdout/stderr without blocking, exit code for every command
✓ Classifies failures (command missing, permission, container missing, timeout)
"""

from __future__ import annotations

import codecs
import io
import logging
import os
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

import paramiko
from flask import current_app, has_app_context

from util.crypto import server_password, server_private_key
from util.errors import RemoteCommandError, SSHConnectionError

logger = logging.getLogger("ssh_logger")

TIMEOUT_EXIT_CODE = 124

FAILURE_COMMAND_NOT_FOUND = "command_not_found"
FAILURE_PERMISSION_DENIED = "permission_denied"
FAILURE_CONTAINER_MISSING = "container_missing"
FAILURE_TIMEOUT = "timeout"
FAILURE_GENERIC = "generic"


# ─────────────────────────────── Results ───────────────────────────────── #

def classify_failure(exit_code: int, stderr: str, stdout: str = "") -> Optional[str]:
    if exit_code == 0:
        return None
    text = f"{stderr}\n{stdout}".lower()
    if exit_code == TIMEOUT_EXIT_CODE:
        return FAILURE_TIMEOUT
    if exit_code == 127 or "command not found" in text:
        return FAILURE_COMMAND_NOT_FOUND
    if "permission denied" in text or "operation not permitted" in text:
        return FAILURE_PERMISSION_DENIED
    if "no such container" in text or "no such object" in text:
        return FAILURE_CONTAINER_MISSING
    return FAILURE_GENERIC


@dataclass
class CommandResult:
    command: str
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        return self.stdout.strip() or self.stderr.strip()

    @property
    def failure(self) -> Optional[str]:
        return classify_failure(self.exit_code, self.stderr, self.stdout)


def _load_private_key(pem: str) -> paramiko.PKey:
    last_error = None
    for key_class in (paramiko.RSAKey, paramiko.Ed25519Key, paramiko.ECDSAKey):
        try:
            return key_class.from_private_key(io.StringIO(pem))
        except (paramiko.SSHException, ValueError) as e:
            last_error = e
    raise SSHConnectionError(f"Unsupported private key: {last_error}")


def _connect_timeout() -> float:
    if has_app_context():
        return float(current_app.config.get("SSH_CONNECT_TIMEOUT", 30))
    return float(os.getenv("SSH_CONNECT_TIMEOUT", "30"))


# ──────────────────────────── SSH Session ──────────────────────────────── #

class SSHSession:
    """A single SSH connection; open it, run commands, close it."""

    def __init__(
        self,
        host: str,
        username: str,
        *,
        port: int = 22,
        password: Optional[str] = None,
        private_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.host = host
        self.port = port or 22
        self.username = username
        self._password = password
        self._private_key = private_key
        self.timeout = timeout if timeout is not None else _connect_timeout()
        self._client: Optional[paramiko.SSHClient] = None

    def connect(self) -> "SSHSession":
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        kwargs = dict(
            hostname=self.host,
            port=self.port,
            username=self.username,
            timeout=self.timeout,
            allow_agent=False,
            look_for_keys=False,
        )
        if self._private_key:
            kwargs["pkey"] = _load_private_key(self._private_key)
        else:
            kwargs["password"] = self._password
        try:
            client.connect(**kwargs)
        except paramiko.AuthenticationException as e:
            raise SSHConnectionError(f"Authentication failed for {self.host}: {e}") from e
        except (paramiko.SSHException, OSError) as e:
            raise SSHConnectionError(f"SSH connection to {self.host} failed: {e}") from e
        self._client = client
        logger.info(f"Connected to {self.username}@{self.host}:{self.port}")
        return self

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info(f"Disconnected from {self.host}")

    def __enter__(self):
        if self._client is None:
            self.connect()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _transport(self) -> paramiko.Transport:
        if self._client is None:
            raise SSHConnectionError("Session is not connected")
        transport = self._client.get_transport()
        if transport is None or not transport.is_active():
            raise SSHConnectionError(f"Connection to {self.host} is closed")
        return transport

    def run(
        self,
        command: str,
        *,
        timeout: Optional[float] = None,
        on_output: Optional[Callable[[str], None]] = None,
    ) -> CommandResult:
        """Run *command*, stream output to *on_output* and return the result."""
        try:
            stdout, stderr, exit_code = self._exec(command, timeout, on_output)
        except (paramiko.SSHException, OSError) as e:
            raise SSHConnectionError(f"Lost connection to {self.host}: {e}") from e

        result = CommandResult(command, stdout, stderr, exit_code)
        if result.ok:
            logger.info(f"[{self.host}] exit 0: {command.strip()[:200]}")
        else:
            logger.warning(
                f"[{self.host}] exit {exit_code} ({result.failure}): "
                f"{command.strip()[:200]}\n{result.stderr.strip()[:1000]}"
            )
        return result

    def _exec(self, command, timeout, on_output):
        chan = self._transport().open_session()
        chan.exec_command(command)

        # Chunks can split a multi-byte character
        out_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        err_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        out: list[str] = []
        err: list[str] = []
        start = time.time()
        timed_out = False

        while True:
            drained = False
            if chan.recv_ready():
                chunk = out_decoder.decode(chan.recv(4096))
                out.append(chunk)
                if on_output and chunk:
                    on_output(chunk)
                drained = True
            if chan.recv_stderr_ready():
                err.append(err_decoder.decode(chan.recv_stderr(4096)))
                drained = True

            if chan.exit_status_ready() and not chan.recv_ready() and not chan.recv_stderr_ready():
                break

            if timeout is not None and time.time() - start > timeout:
                timed_out = True
                break

            if not drained:
                time.sleep(0.05)

        out.append(out_decoder.decode(b"", final=True))
        err.append(err_decoder.decode(b"", final=True))
        if timed_out:
            chan.close()
            err.append(f"\nCommand timed out after {timeout}s")
            exit_code = TIMEOUT_EXIT_CODE
        else:
            exit_code = chan.recv_exit_status()
            chan.close()
        return "".join(out), "".join(err), exit_code

    def check(self, command: str, **kwargs) -> CommandResult:
        result = self.run(command, **kwargs)
        if not result.ok:
            raise RemoteCommandError(
                f"Command failed with exit {result.exit_code}: {result.output}", result
            )
        return result

    def write_file(self, path: str, content: str, mode: Optional[int] = None) -> None:
        sftp = self._client.open_sftp() if self._client else None
        if sftp is None:
            raise SSHConnectionError("Session is not connected")
        try:
            with sftp.open(path, "w") as f:
                f.write(content)
            if mode is not None:
                sftp.chmod(path, mode)
        finally:
            sftp.close()
        logger.info(f"[{self.host}] wrote {path}")


# ──────────────────────────── Server helpers ───────────────────────────── #

def session_for_server(server) -> SSHSession:
    if server.auth_type == "key":
        return SSHSession(
            server.host,
            server.username,
            port=server.port,
            private_key=server_private_key(server),
        )
    return SSHSession(
        server.host,
        server.username,
        port=server.port,
        password=server_password(server),
    )


@contextmanager
def open_server_session(server) -> Iterator[SSHSession]:
    """Decrypt credentials, connect, yield the session and always close it."""
    session = session_for_server(server)
    session.connect()
    try:
        yield session
    finally:
        session.close()


def test_connection(server) -> bool:
    try:
        with open_server_session(server) as ssh:
            return ssh.run('echo "test"', timeout=15).ok
    except Exception as e:
        logger.warning(f"Connection test to {server.host} failed: {e}")
        return False
