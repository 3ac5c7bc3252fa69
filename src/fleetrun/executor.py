"""SSH execution engine for fleetrun."""

from __future__ import annotations

import asyncio
import re
import shutil
from collections.abc import Awaitable, Callable, Iterable, Mapping
from datetime import datetime
from pathlib import Path
from typing import Any, Union

from .config import DEFAULT_MAX_CONCURRENCY, SSHOptions
from .connection import AsyncSSHTransport, Connection, Transport, open_connection
from .errors import CallbackRequiredError, ConfigError, HostError, OperationError
from .models import NodeState, NodeStatus, NodeTarget
from .pool import WorkerPool
from .response_set import ResponseSet

# Type alias for output callback
OutputCallback = Callable[[str, str], None]  # (node_name, line) -> None
StatusCallback = Callable[[str, NodeStatus], None]  # (node_name, status) -> None
Operation = Callable[[Connection], Awaitable[Any]]
TargetLike = Union[NodeTarget, Mapping[str, Any]]


def _log_stem(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]", "-", name).lstrip(".") or "node"


class Executor:
    """Manages SSH execution across multiple nodes."""

    def __init__(
        self,
        options: SSHOptions | None = None,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        transport: Transport | None = None,
        on_output: OutputCallback | None = None,
        on_status: StatusCallback | None = None,
        log_dir: Path | None = None,
        source_path: Path | None = None,
    ):
        self.options = options or SSHOptions()
        self.pool = WorkerPool(max_concurrency)
        self.transport = transport or AsyncSSHTransport()
        self.on_output = on_output
        self.on_status = on_status
        self.log_dir = log_dir
        self.source_path = source_path
        self.states: dict[NodeTarget, NodeState] = {}
        self._run_log_dir: Path | None = None

    def _setup_logging(self) -> None:
        """Set up log directory with timestamp."""
        if self.log_dir is None:
            self._run_log_dir = None
            return
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        self._run_log_dir = self.log_dir / timestamp
        self._run_log_dir.mkdir(parents=True, exist_ok=True)

        # Copy the source config file to the log directory
        if self.source_path and self.source_path.exists():
            shutil.copy(self.source_path, self._run_log_dir / "config.yaml")

    def _notify(self, target: NodeTarget, callback: Callable[..., None], *args: Any) -> None:
        """Call an observer. A failing observer is noted, never propagated."""
        try:
            callback(target.name, *args)
        except Exception as e:
            state = self.states.get(target)
            if state is not None:
                state.output_lines.append(f"callback error: {type(e).__name__}: {e}")

    def _emit_output(self, target: NodeTarget, line: str) -> None:
        """Emit output line for a node."""
        state = self.states.get(target)
        if state is not None:
            state.output_lines.append(line)

            # Write to log file
            if state.log_file:
                try:
                    with open(state.log_file, "a") as f:
                        f.write(line + "\n")
                except OSError as e:
                    state.log_file = None
                    state.output_lines.append(f"log file disabled: {e}")

        if self.on_output:
            self._notify(target, self.on_output, line)

    def _emit_status(self, target: NodeTarget, status: NodeStatus) -> None:
        """Emit status change for a node."""
        if target in self.states:
            self.states[target].status = status
        if self.on_status:
            self._notify(target, self.on_status, status)

    def _coerce_targets(self, targets: Iterable[TargetLike]) -> list[NodeTarget]:
        """Resolve node records into targets, dropping repeated hosts.

        Raises ConfigError before any connection if a target has no usable
        credentials.
        """
        seen: set[NodeTarget] = set()
        resolved = []
        for item in targets:
            if not isinstance(item, NodeTarget):
                self.options.validate()
                item = NodeTarget.for_node(item, self.options)
            elif not item.user or not (item.password or item.keys):
                raise ConfigError(f"Node '{item.name}' has no ssh user with a password or keys")
            if item in seen:
                continue
            seen.add(item)
            resolved.append(item)
        return resolved

    def _init_states(self, targets: list[NodeTarget]) -> None:
        self._setup_logging()
        self.states = {}
        used: set[str] = set()
        for target in targets:
            log_file = None
            if self._run_log_dir:
                stem = _log_stem(target.name)
                if stem in used:
                    stem = f"{stem}_{_log_stem(target.address)}"
                used.add(stem)
                log_file = self._run_log_dir / f"{stem}.log"
            self.states[target] = NodeState(target=target, log_file=log_file)

    async def _run_target(self, target: NodeTarget, operation: Operation) -> Any:
        """Run ``operation`` on one host. Host errors are returned, not raised."""
        state = self.states[target]
        self._emit_status(target, NodeStatus.CONNECTING)

        def on_line(line: str) -> None:
            if line.startswith("$ "):
                state.current_command = line[2:]
            self._emit_output(target, line)

        try:
            async with open_connection(target, self.transport, on_line) as conn:
                self._emit_status(target, NodeStatus.RUNNING)
                payload = await operation(conn)
        except Exception as e:
            error = e if isinstance(e, HostError) else OperationError(target.address, e)
            state.error_message = str(error)
            self._emit_output(target, f"ERROR: {error}")
            self._emit_status(target, NodeStatus.FAILED)
            return error

        self._emit_status(target, NodeStatus.SUCCESS)
        return payload

    async def _dispatch(self, targets: list[NodeTarget], operation: Operation) -> ResponseSet:
        responses = ResponseSet()
        if not targets:
            return responses

        self._init_states(targets)

        async def work(target: NodeTarget) -> Any:
            return await self._run_target(target, operation)

        async for target, outcome in self.pool.run(targets, work):
            if isinstance(outcome, HostError):
                responses.add_failure(target, outcome)
            else:
                responses.add_success(target, outcome)
        return responses

    async def run(self, targets: Iterable[TargetLike], command: str) -> ResponseSet:
        """Run ``command`` once on every target in parallel."""

        async def operation(conn: Connection):
            return await conn.execute(command, check=True)

        return await self._dispatch(self._coerce_targets(targets), operation)

    async def start(
        self, targets: Iterable[TargetLike], block: Operation | None = None
    ) -> ResponseSet:
        """Await ``block(connection)`` once per target with an open connection.

        The block may issue several commands on the connection before it is
        closed; its return value becomes that target's success payload.
        """
        if block is None or not callable(block):
            raise CallbackRequiredError(
                "A block must be given to run an interactive session."
            )
        return await self._dispatch(self._coerce_targets(targets), block)

    def run_sync(self, targets: Iterable[TargetLike], command: str) -> ResponseSet:
        return asyncio.run(self.run(targets, command))

    def start_sync(
        self, targets: Iterable[TargetLike], block: Operation | None = None
    ) -> ResponseSet:
        if block is None or not callable(block):
            raise CallbackRequiredError(
                "A block must be given to run an interactive session."
            )
        return asyncio.run(self.start(targets, block))
