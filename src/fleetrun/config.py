"""Configuration loader for fleetrun."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError
from .models import NodeTarget

DEFAULT_TIMEOUT = 5.0
DEFAULT_MAX_CONCURRENCY = 8


@dataclass
class SSHOptions:
    """SSH settings shared by every node unless overridden per node."""

    user: str | None = None
    password: str | None = None
    keys: tuple[str, ...] = ()
    port: int = 22
    timeout: float = DEFAULT_TIMEOUT
    sudo: bool = True

    def validate(self) -> None:
        """Raise ConfigError if the credentials cannot authenticate anyone."""
        if not self.user:
            raise ConfigError("Missing value for required ssh option 'user'")
        if not self.password and not self.keys:
            raise ConfigError("SSH options need a 'password' or at least one entry in 'keys'")
        if self.timeout <= 0:
            raise ConfigError(f"SSH timeout must be positive, got {self.timeout}")


@dataclass
class BootstrapSettings:
    """Settings used to render and transfer the fleet agent's first-run files."""

    server_url: str | None = None
    validator_client: str = "chef-validator"
    validator_path: Path | None = None
    encrypted_data_bag_secret_path: Path | None = None
    environment: str = "_default"
    run_list: list[str] = field(default_factory=list)
    agent_version: str | None = None
    hints: dict[str, Any] = field(default_factory=dict)


@dataclass
class NodeConfig:
    """A node as the directory service reports it."""

    name: str
    attributes: dict[str, Any]
    ssh: SSHOptions


@dataclass
class Config:
    """Main configuration for a run."""

    nodes: list[NodeConfig]
    ssh: SSHOptions = field(default_factory=SSHOptions)
    bootstrap: BootstrapSettings = field(default_factory=BootstrapSettings)
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    log_dir: Path = field(default_factory=lambda: Path("logs"))
    source_path: Path | None = None  # Path to the original config file

    def targets(self) -> list[NodeTarget]:
        """Build one NodeTarget per configured node."""
        return [NodeTarget.for_node(node.attributes, node.ssh, name=node.name) for node in self.nodes]


def load_config(config_path: str | Path) -> Config:
    """Load and validate configuration from a YAML file."""
    config_path = Path(config_path).resolve()

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ConfigError(f"Config file must contain a mapping: {config_path}")

    config = _parse_config(raw)
    config.source_path = config_path
    return config


def _parse_keys(raw: Any) -> tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, (str, Path)):
        raw = [raw]
    return tuple(str(Path(key).expanduser()) for key in raw)


def _parse_ssh(raw: dict[str, Any], base: SSHOptions) -> SSHOptions:
    """Parse an ssh section, inheriting anything unspecified from ``base``."""
    changes: dict[str, Any] = {}
    for key in ("user", "password", "port", "sudo"):
        if key in raw:
            changes[key] = raw[key]
    if "timeout" in raw:
        changes["timeout"] = float(raw["timeout"])
    if "keys" in raw:
        changes["keys"] = _parse_keys(raw["keys"])
    return replace(base, **changes)


def _parse_bootstrap(raw: dict[str, Any]) -> BootstrapSettings:
    """Parse the bootstrap section."""
    validator_path = raw.get("validator_path")
    secret_path = raw.get("encrypted_data_bag_secret_path")
    return BootstrapSettings(
        server_url=raw.get("server_url"),
        validator_client=raw.get("validator_client", "chef-validator"),
        validator_path=Path(validator_path).expanduser() if validator_path else None,
        encrypted_data_bag_secret_path=Path(secret_path).expanduser() if secret_path else None,
        environment=raw.get("environment", "_default"),
        run_list=list(raw.get("run_list", [])),
        agent_version=raw.get("agent_version"),
        hints=dict(raw.get("hints", {})),
    )


def _parse_config(raw: dict[str, Any]) -> Config:
    """Parse raw YAML data into Config object."""
    ssh = _parse_ssh(raw.get("ssh") or {}, SSHOptions())

    max_concurrency = raw.get("max_concurrency", DEFAULT_MAX_CONCURRENCY)
    if not isinstance(max_concurrency, int) or max_concurrency < 1:
        raise ConfigError(f"max_concurrency must be a positive integer, got {max_concurrency!r}")

    log_dir = Path(raw.get("log_dir", "logs")).expanduser().resolve()

    nodes_raw = raw.get("nodes", [])
    if not nodes_raw:
        raise ConfigError("No nodes defined in configuration")

    nodes = [_parse_node(node_raw, ssh) for node_raw in nodes_raw]

    return Config(
        nodes=nodes,
        ssh=ssh,
        bootstrap=_parse_bootstrap(raw.get("bootstrap") or {}),
        max_concurrency=max_concurrency,
        log_dir=log_dir,
    )


def _parse_node(node_raw: dict[str, Any], defaults: SSHOptions) -> NodeConfig:
    """Parse a single node entry."""
    name = node_raw.get("name")
    if not name:
        raise ConfigError("Node must have a 'name' field")

    if "automatic" in node_raw:
        attributes = dict(node_raw["automatic"] or {})
    else:
        attributes = {
            key: value
            for key, value in node_raw.items()
            if key not in ("name", "host", "ssh")
        }
    # 'host' is shorthand for a node that only reports its IP address
    if "host" in node_raw:
        attributes.setdefault("ipaddress", node_raw["host"])

    if not attributes:
        raise ConfigError(f"Node '{name}' must have attributes or a 'host' field")

    ssh = _parse_ssh(node_raw.get("ssh") or {}, defaults)
    try:
        ssh.validate()
    except ConfigError as e:
        raise ConfigError(f"Node '{name}': {e}") from None
    return NodeConfig(name=name, attributes=attributes, ssh=ssh)
