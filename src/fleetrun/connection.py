"""One transport session to one host."""

from __future__ import annotations

import asyncio
import posixpath
import shlex
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Protocol, TypeVar

import asyncssh

from .errors import ConnectError, RemoteExecutionFailure, TargetUnreachable, Timeout
from .models import CommandResult, NodeTarget

T = TypeVar("T")

STAGING_DIR = "/tmp"

# Type alias for the per-connection output callback
LineCallback = Callable[[str], None]  # (line) -> None


class Session(Protocol):
    """An authenticated transport session."""

    async def run(self, command: str, input: str | None = None) -> tuple[str, str, int | None]:
        ...

    async def put(self, path: str, content: str) -> None:
        ...

    def close(self) -> None:
        ...


class Transport(Protocol):
    """Opens sessions to targets."""

    async def connect(self, target: NodeTarget) -> Session:
        ...


class AsyncSSHSession:
    """Session backed by an asyncssh client connection."""

    def __init__(self, conn: asyncssh.SSHClientConnection) -> None:
        self._conn = conn

    async def run(self, command: str, input: str | None = None) -> tuple[str, str, int | None]:
        result = await self._conn.run(command, input=input, check=False)
        return result.stdout or "", result.stderr or "", result.exit_status

    async def put(self, path: str, content: str) -> None:
        attrs = asyncssh.SFTPAttrs(permissions=0o600)
        async with self._conn.start_sftp_client() as sftp:
            async with sftp.open(path, "w", attrs=attrs) as f:
                await f.write(content)

    def close(self) -> None:
        self._conn.close()


class AsyncSSHTransport:
    """Production transport using asyncssh."""

    def __init__(self, known_hosts: str | None = None) -> None:
        # None skips host key verification, as first-time bootstrap requires
        self.known_hosts = known_hosts

    async def connect(self, target: NodeTarget) -> AsyncSSHSession:
        kwargs = {
            "port": target.port,
            "username": target.user,
            "known_hosts": self.known_hosts,
        }
        if target.uses_keys:
            kwargs["client_keys"] = list(target.keys)
        else:
            kwargs["client_keys"] = None
            kwargs["password"] = target.password

        conn = await asyncssh.connect(target.address, **kwargs)
        return AsyncSSHSession(conn)


class Connection:
    """A live session bound to exactly one target.

    The timeout budget starts when ``open`` begins the handshake and covers
    every later call. Exceeding it raises ``Timeout`` and force-closes the
    session.
    """

    def __init__(
        self,
        target: NodeTarget,
        transport: Transport,
        on_output: LineCallback | None = None,
    ) -> None:
        self.target = target
        self._transport = transport
        self._on_output = on_output
        self._session: Session | None = None
        self._deadline: float | None = None
        self.closed = False

    def _emit(self, line: str) -> None:
        if self._on_output:
            self._on_output(line)

    async def _bounded(self, awaitable: Awaitable[T], what: str) -> T:
        remaining = max(self._deadline - asyncio.get_running_loop().time(), 0)
        try:
            return await asyncio.wait_for(awaitable, remaining)
        except asyncio.TimeoutError:
            self.close()
            raise Timeout(
                self.target.address, f"{what} exceeded the {self.target.timeout}s timeout"
            ) from None

    async def open(self) -> None:
        """Connect and authenticate."""
        target = self.target
        if not target.resolved:
            raise TargetUnreachable(target.address, f"no usable address for node '{target.name}'")

        self._deadline = asyncio.get_running_loop().time() + target.timeout
        self._emit(f"Connecting to {target.user}@{target.address}:{target.port}...")
        try:
            self._session = await self._bounded(self._transport.connect(target), "connect")
        except (asyncssh.Error, OSError) as e:
            self.close()
            raise ConnectError(target.address, str(e) or type(e).__name__) from e
        self._emit("Connected successfully")

    @property
    def _sudo_prompts(self) -> bool:
        # Key identities must already be allowed to sudo without a prompt
        return not self.target.uses_keys and bool(self.target.password)

    async def _stage(self, content: str) -> str:
        """Copy ``content`` to a private file on the host and return its path."""
        path = posixpath.join(STAGING_DIR, f".fleetrun-{uuid.uuid4().hex}")
        try:
            await self._bounded(self._session.put(path, content), f"staging {path}")
        except (asyncssh.Error, OSError) as e:
            self.close()
            raise ConnectError(self.target.address, str(e) or type(e).__name__) from e
        return path

    def _wrap(self, command: str, sudo: bool, source: str | None) -> str:
        """Apply the elevation wrapper.

        When sudo prompts, stdin carries only the password. The elevated
        shell takes its own input from the staged ``source`` file, or from
        /dev/null, so the password never reaches the command.
        """
        if not sudo:
            return command
        if not self._sudo_prompts:
            return f"sudo -n sh -c {shlex.quote(command)}"
        if source is None:
            return f"sudo -S -p '' sh -c {shlex.quote(f'exec < /dev/null; {command}')}"
        staged = shlex.quote(source)
        inner = shlex.quote(f"exec < {staged}; {command}")
        return f"sudo -S -p '' sh -c {inner}; status=$?; rm -f {staged}; exit $status"

    async def execute(
        self,
        command: str,
        *,
        sudo: bool | None = None,
        input: str | None = None,
        check: bool = False,
    ) -> CommandResult:
        """Run ``command`` and return its result.

        With ``check`` a nonzero exit status raises ``RemoteExecutionFailure``.
        """
        if self._session is None or self.closed:
            raise ConnectError(self.target.address, "connection is not open")

        sudo = self.target.sudo if sudo is None else sudo
        stdin, source = input, None
        if sudo and self._sudo_prompts:
            if input is not None:
                source = await self._stage(input)
            stdin = f"{self.target.password}\n"
        wrapped = self._wrap(command, sudo, source)

        self._emit(f"$ {command}")
        try:
            stdout, stderr, exit_status = await self._bounded(
                self._session.run(wrapped, stdin), f"'{command}'"
            )
        except (asyncssh.Error, OSError) as e:
            self.close()
            raise ConnectError(self.target.address, str(e) or type(e).__name__) from e

        for line in stdout.splitlines():
            self._emit(line)
        for line in stderr.splitlines():
            self._emit(f"STDERR: {line}")

        result = CommandResult(
            target=self.target,
            command=command,
            stdout=stdout,
            stderr=stderr,
            exit_status=exit_status,
        )
        if exit_status != 0:
            self._emit(f"Command exited with status {exit_status}")
            if check:
                raise RemoteExecutionFailure(result)
        return result

    async def upload(
        self, path: str, content: str, mode: int = 0o600, *, sudo: bool | None = None
    ) -> CommandResult:
        """Write ``content`` to ``path`` on the host, creating its directory."""
        directory = posixpath.dirname(path) or "."
        quoted = shlex.quote(path)
        command = (
            f"mkdir -p {shlex.quote(directory)} && cat > {quoted} && chmod {mode:o} {quoted}"
        )
        return await self.execute(command, sudo=sudo, input=content, check=True)

    def close(self) -> None:
        """Close the session. Safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        if self._session is not None:
            self._session.close()


@asynccontextmanager
async def open_connection(
    target: NodeTarget,
    transport: Transport,
    on_output: LineCallback | None = None,
) -> AsyncIterator[Connection]:
    """Open a connection for the duration of the block, always closing it."""
    conn = Connection(target, transport, on_output)
    try:
        await conn.open()
        yield conn
    finally:
        conn.close()
