"""Value types shared by the execution engine."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .resolver import UNKNOWN_ADDRESS, resolve

if TYPE_CHECKING:
    from .config import SSHOptions
    from .errors import HostError


@dataclass(frozen=True, eq=False)
class NodeTarget:
    """A single host plus everything needed to reach it for one run.

    Two targets are equal when they resolve to the same address. Targets
    with no usable address are told apart by name instead.
    """

    address: str
    user: str | None = None
    password: str | None = field(default=None, repr=False)
    keys: tuple[str, ...] = ()
    timeout: float = 5.0
    sudo: bool = True
    port: int = 22
    name: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            object.__setattr__(self, "name", self.address)

    def _identity(self) -> tuple[str, ...]:
        if self.resolved:
            return (self.address,)
        return (self.address, self.name)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NodeTarget):
            return NotImplemented
        return self._identity() == other._identity()

    def __hash__(self) -> int:
        return hash(self._identity())

    @classmethod
    def for_node(
        cls, node: Mapping[str, Any], options: SSHOptions, name: str | None = None
    ) -> NodeTarget:
        """Build a target from a node attribute tree and SSH options."""
        address = resolve(node)
        return cls(
            address=address,
            user=options.user,
            password=options.password,
            keys=tuple(options.keys),
            timeout=options.timeout,
            sudo=options.sudo,
            port=options.port,
            name=name or node.get("name") or address,
        )

    @property
    def resolved(self) -> bool:
        return self.address != UNKNOWN_ADDRESS

    @property
    def uses_keys(self) -> bool:
        """Keys take precedence over a password when both are set."""
        return bool(self.keys)


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one command on one target."""

    target: NodeTarget
    command: str = ""
    stdout: str = ""
    stderr: str = ""
    exit_status: int | None = None
    error: HostError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.exit_status == 0


class NodeStatus(Enum):
    """Status of a node's execution."""

    PENDING = "pending"
    CONNECTING = "connecting"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class NodeState:
    """Runtime state for a node."""

    target: NodeTarget
    status: NodeStatus = NodeStatus.PENDING
    current_command: str = ""
    output_lines: list[str] = field(default_factory=list)
    error_message: str = ""
    log_file: Path | None = None
