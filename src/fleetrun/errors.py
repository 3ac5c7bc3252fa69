"""Error taxonomy for multi-host runs.

Per-host errors derive from ``HostError``. They are raised inside a host's
unit of work and caught once at the per-host boundary, where they become
entries in the failure partition of a ``ResponseSet``. Contract violations
(``CallbackRequiredError``, ``ConfigError``) are raised to the caller before
any connection is attempted.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import CommandResult


class HostError(Exception):
    """A failure confined to a single host."""

    kind = "host_error"

    def __init__(self, target: str, message: str) -> None:
        super().__init__(message)
        self.target = target
        self.message = message

    def __str__(self) -> str:
        return f"[{self.kind}] {self.target}: {self.message}"


class TargetUnreachable(HostError):
    """Address resolution produced no usable address."""

    kind = "target_unreachable"


class ConnectError(HostError):
    """Transport or authentication handshake failed."""

    kind = "connect_error"


class Timeout(HostError):
    """Handshake or execution exceeded the configured timeout."""

    kind = "timeout"


class RemoteExecutionFailure(HostError):
    """The remote command ran but returned a nonzero exit status."""

    kind = "remote_execution_failure"

    def __init__(self, result: CommandResult) -> None:
        super().__init__(
            result.target.address,
            f"'{result.command}' exited with status {result.exit_status}",
        )
        self.result = result

    @property
    def exit_status(self) -> int | None:
        return self.result.exit_status


class StepFailure(HostError):
    """A named bootstrap step failed; wraps the underlying host error."""

    kind = "step_failure"

    def __init__(self, step: str, cause: HostError) -> None:
        super().__init__(cause.target, f"step '{step}' failed: {cause.message}")
        self.step = step
        self.cause = cause


class OperationError(HostError):
    """The per-host work raised something that is not a host error."""

    kind = "operation_error"

    def __init__(self, target: str, cause: Exception) -> None:
        super().__init__(target, f"{type(cause).__name__}: {cause}")
        self.cause = cause


class CallbackRequiredError(RuntimeError):
    """An interactive run was started without a callback."""


class ConfigError(ValueError):
    """Configuration is missing or invalid."""
