"""fleetrun: Run commands and bootstrap the fleet agent on many nodes over SSH."""

from .bootstrap import BootstrapContext, BootstrapStep, Bootstrapper
from .config import BootstrapSettings, Config, NodeConfig, SSHOptions, load_config
from .connection import AsyncSSHTransport, Connection, open_connection
from .errors import (
    CallbackRequiredError,
    ConfigError,
    ConnectError,
    HostError,
    OperationError,
    RemoteExecutionFailure,
    StepFailure,
    TargetUnreachable,
    Timeout,
)
from .executor import Executor
from .models import CommandResult, NodeState, NodeStatus, NodeTarget
from .pool import WorkerPool
from .resolver import UNKNOWN_ADDRESS, NodeAttributes, resolve
from .response_set import ResponseSet

__all__ = [
    "AsyncSSHTransport",
    "BootstrapContext",
    "BootstrapSettings",
    "BootstrapStep",
    "Bootstrapper",
    "CallbackRequiredError",
    "CommandResult",
    "Config",
    "ConfigError",
    "ConnectError",
    "Connection",
    "Executor",
    "HostError",
    "NodeAttributes",
    "NodeConfig",
    "NodeState",
    "NodeStatus",
    "NodeTarget",
    "OperationError",
    "RemoteExecutionFailure",
    "ResponseSet",
    "SSHOptions",
    "StepFailure",
    "TargetUnreachable",
    "Timeout",
    "UNKNOWN_ADDRESS",
    "WorkerPool",
    "load_config",
    "open_connection",
    "resolve",
]
