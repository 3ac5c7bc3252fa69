"""Shared fixtures: an in-memory transport that records a connection timeline."""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field

import pytest

from fleetrun.config import SSHOptions
from fleetrun.models import NodeTarget


@dataclass
class HostBehavior:
    """How a fake host responds."""

    connect_delay: float = 0.0
    connect_error: Exception | None = None
    run_delay: float = 0.0
    stdout: str = "ok\n"
    exit_status: int = 0
    fail_on: dict[str, int] = field(default_factory=dict)  # command substring -> exit status
    # False models a cached or NOPASSWD sudo that leaves the password unread on stdin
    sudo_reads_password: bool = True


class FakeSession:
    def __init__(self, transport: FakeTransport, target: NodeTarget) -> None:
        self.transport = transport
        self.target = target
        self.closed = False
        self.commands: list[tuple[str, str | None]] = []
        self.files: dict[str, str] = {}
        self.written: dict[str, str] = {}

    async def run(self, command: str, input: str | None = None) -> tuple[str, str, int | None]:
        self.commands.append((command, input))
        self.transport.commands.append((self.target.address, command, input))
        behavior = self.transport.behavior(self.target.address)
        destination = re.search(r"cat > (\S+)", command)
        if destination:
            self.written[destination.group(1)] = self._command_stdin(command, input, behavior)
        if behavior.run_delay:
            await asyncio.sleep(behavior.run_delay)
        for pattern, status in behavior.fail_on.items():
            if pattern in command:
                return "", f"failed: {pattern}\n", status
        return behavior.stdout, "", behavior.exit_status

    async def put(self, path: str, content: str) -> None:
        self.files[path] = content

    def _command_stdin(self, command: str, input: str | None, behavior: HostBehavior) -> str:
        """What the wrapped command itself reads from stdin."""
        redirect = re.search(r"exec < (\S+);", command)
        if redirect:
            return self.files.get(redirect.group(1), "")
        data = input or ""
        if command.startswith("sudo -S") and behavior.sudo_reads_password:
            data = data.partition("\n")[2]
        return data

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.transport.events.append(("close", self.target.address))


class FakeTransport:
    def __init__(self, behaviors: dict[str, HostBehavior] | None = None) -> None:
        self.behaviors = behaviors or {}
        self.events: list[tuple[str, str]] = []
        self.sessions: dict[str, FakeSession] = {}
        self.commands: list[tuple[str, str, str | None]] = []

    def behavior(self, address: str) -> HostBehavior:
        return self.behaviors.get(address, HostBehavior())

    @property
    def connect_attempts(self) -> list[str]:
        return [address for event, address in self.events if event == "open"]

    async def connect(self, target: NodeTarget) -> FakeSession:
        self.events.append(("open", target.address))
        behavior = self.behavior(target.address)
        if behavior.connect_delay:
            await asyncio.sleep(behavior.connect_delay)
        if behavior.connect_error is not None:
            self.events.append(("close", target.address))
            raise behavior.connect_error
        session = FakeSession(self, target)
        self.sessions[target.address] = session
        return session


def max_active(events: list[tuple[str, str]]) -> int:
    """Highest number of simultaneously open connections in a timeline."""
    active = peak = 0
    for event, _ in events:
        active += 1 if event == "open" else -1
        peak = max(peak, active)
    return peak


@pytest.fixture
def options() -> SSHOptions:
    return SSHOptions(user="deploy", password="secret", timeout=1.0)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


def make_target(address: str, **kwargs) -> NodeTarget:
    kwargs.setdefault("user", "deploy")
    kwargs.setdefault("password", "secret")
    kwargs.setdefault("timeout", 1.0)
    return NodeTarget(address=address, **kwargs)
