"""Remote shell channel to the robot's root filesystem over SSH."""

from __future__ import annotations

import asyncio
import base64
import logging
import shlex
from typing import Any

import asyncssh

from .const import (
    DEFAULT_SSH_PORT,
    DEFAULT_SSH_USER,
    SSH_CONNECT_TIMEOUT,
    SSH_KEEPALIVE_INTERVAL,
)

_LOGGER = logging.getLogger(__name__)


class SshError(Exception):
    """Base class for remote channel failures."""


class ChannelUnavailable(SshError):
    """Raised when the SSH connection cannot be established."""

    def __init__(self, host: str, port: int, reason: str) -> None:
        super().__init__(f"Cannot reach {host}:{port} over SSH: {reason}")
        self.host = host
        self.port = port
        self.reason = reason


class ExecError(SshError):
    """Raised when a remote command exits non-zero."""

    def __init__(self, command: str, exit_code: int, stderr: str = "") -> None:
        detail = stderr.strip() or "no output"
        super().__init__(f"Command failed (exit {exit_code}): {command}: {detail}")
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr


class SshChannel:
    """Lazily connected, reusable command/file channel to the robot.

    Usage:
        ssh = SshChannel(host="192.168.1.50", password="...")
        if await ssh.file_exists("/mnt/data/rockrobo/last_map"):
            await ssh.copy_file(src, dst)
        await ssh.disconnect()
    """

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_SSH_PORT,
        username: str = DEFAULT_SSH_USER,
        password: str | None = None,
        private_key: str | None = None,
    ) -> None:
        self.host = host
        self.port = port or DEFAULT_SSH_PORT
        self.username = username or DEFAULT_SSH_USER
        self.password = password or None
        self.private_key = private_key or None

        self._conn: Any = None
        self._connect_lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._conn is not None

    def update_config(
        self,
        host: str,
        port: int | None = None,
        username: str | None = None,
        password: str | None = None,
        private_key: str | None = None,
    ) -> bool:
        """Apply new connection settings.

        Drops the current connection when anything changed, so the next
        command reconnects with the new settings. Returns True if changed.
        """
        new = (
            host,
            port or DEFAULT_SSH_PORT,
            username or DEFAULT_SSH_USER,
            password or None,
            private_key or None,
        )
        old = (self.host, self.port, self.username, self.password, self.private_key)
        self.host, self.port, self.username, self.password, self.private_key = new
        if new != old:
            _LOGGER.debug("SSH settings changed for %s, dropping connection", self.host)
            self._drop_connection()
            return True
        return False

    async def _connect(self) -> Any:
        async with self._connect_lock:
            if self._conn is not None:
                return self._conn

            options: dict[str, Any] = {
                "username": self.username,
                "known_hosts": None,  # robots regenerate host keys on every flash
                "connect_timeout": SSH_CONNECT_TIMEOUT,
                "keepalive_interval": SSH_KEEPALIVE_INTERVAL,
            }
            if self.password:
                options["password"] = self.password
            try:
                if self.private_key:
                    options["client_keys"] = [asyncssh.import_private_key(self.private_key)]
                self._conn = await asyncssh.connect(self.host, self.port, **options)
            except (OSError, asyncio.TimeoutError, asyncssh.Error) as err:
                raise ChannelUnavailable(self.host, self.port, str(err) or type(err).__name__) from err

            _LOGGER.info("SSH connected to %s:%d", self.host, self.port)
            return self._conn

    def _drop_connection(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    async def _run(
        self, command: str, input: str | None = None, encoding: str | None = "utf-8"
    ) -> Any:
        conn = await self._connect()
        try:
            result = await conn.run(command, input=input, encoding=encoding, check=False)
        except (OSError, asyncssh.Error) as err:
            # Session died mid-command; reconnect on the next call
            self._drop_connection()
            raise ExecError(command, -1, str(err)) from err

        if result.exit_status != 0:
            stderr = result.stderr or ""
            if isinstance(stderr, bytes):
                stderr = stderr.decode("utf-8", errors="replace")
            exit_code = result.exit_status if result.exit_status is not None else -1
            raise ExecError(command, exit_code, stderr)
        return result.stdout

    async def exec(self, command: str) -> str:
        """Run a shell command and return its stdout.

        Raises:
            ChannelUnavailable: If the robot cannot be reached.
            ExecError: If the command exits non-zero.
        """
        _LOGGER.debug("SSH exec: %s", command)
        return await self._run(command) or ""

    async def read_file(self, path: str) -> bytes:
        """Read a remote file as raw bytes."""
        return await self._run(f"cat {shlex.quote(path)}", encoding=None) or b""

    async def read_text(self, path: str) -> str:
        return (await self.read_file(path)).decode("utf-8", errors="replace")

    async def write_file(self, path: str, data: bytes | str) -> None:
        """Write a remote file.

        The payload travels base64-encoded on stdin so shell metacharacters
        and control bytes reach the robot unchanged.
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        encoded = base64.b64encode(data).decode("ascii")
        await self._run(f"base64 -d > {shlex.quote(path)}", input=encoded)

    async def copy_file(self, src: str, dst: str) -> None:
        await self.exec(f"cp {shlex.quote(src)} {shlex.quote(dst)}")

    async def remove_file(self, path: str) -> None:
        await self.exec(f"rm -f {shlex.quote(path)}")

    async def remove_tree(self, path: str) -> None:
        await self.exec(f"rm -rf {shlex.quote(path)}")

    async def make_dirs(self, path: str) -> None:
        await self.exec(f"mkdir -p {shlex.quote(path)}")

    async def list_dir(self, path: str) -> list[str]:
        """List entry names in a remote directory (empty if it is missing)."""
        try:
            output = await self.exec(f"ls -1 {shlex.quote(path)}")
        except ExecError:
            return []
        return [line for line in output.strip().split("\n") if line]

    async def file_exists(self, path: str) -> bool:
        """Return True if the remote path exists.

        A failing test command means "no"; an unreachable robot still raises
        ChannelUnavailable.
        """
        try:
            await self.exec(f"test -e {shlex.quote(path)}")
        except ExecError:
            return False
        return True

    async def reboot(self) -> None:
        """Reboot the robot.

        The reboot kills the session, so a lost connection here is the
        acknowledgment rather than an error.
        """
        conn = await self._connect()
        _LOGGER.info("Rebooting robot at %s", self.host)
        try:
            await conn.run("reboot", check=False)
        except (OSError, asyncssh.Error) as err:
            _LOGGER.debug("Connection closed by reboot: %s", err)
        finally:
            self._drop_connection()

    async def disconnect(self) -> None:
        """Close the connection if open."""
        conn = self._conn
        self._conn = None
        if conn is not None:
            conn.close()
            try:
                await conn.wait_closed()
            except (OSError, asyncssh.Error):
                pass
            _LOGGER.info("SSH disconnected from %s", self.host)
