"""First-time setup of nodes: config, keys, secret, then the fleet agent."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, PackageLoader

from .config import BootstrapSettings
from .connection import Connection
from .errors import ConfigError, HostError, StepFailure
from .executor import Executor, TargetLike
from .models import CommandResult
from .response_set import ResponseSet

CONFIG_DIR = "/etc/chef"

CONFIG_TRANSFER = "config_transfer"
KEY_TRANSFER = "key_transfer"
SECRET_TRANSFER = "secret_transfer"
AGENT_INSTALL = "agent_install"

StepAction = Callable[[Connection, "BootstrapContext"], Awaitable[CommandResult]]


@dataclass(frozen=True)
class BootstrapStep:
    name: str
    action: StepAction


async def transfer_config(conn: Connection, context: BootstrapContext) -> CommandResult:
    await conn.upload(f"{CONFIG_DIR}/client.rb", context.client_config, 0o644)
    for name, content in context.hints:
        await conn.upload(f"{CONFIG_DIR}/ohai/hints/{name}.json", content, 0o644)
    return await conn.upload(f"{CONFIG_DIR}/first-boot.json", context.first_boot, 0o644)


async def transfer_key(conn: Connection, context: BootstrapContext) -> CommandResult:
    return await conn.upload(f"{CONFIG_DIR}/validation.pem", context.validator_key or "")


async def transfer_secret(conn: Connection, context: BootstrapContext) -> CommandResult:
    return await conn.upload(f"{CONFIG_DIR}/encrypted_data_bag_secret", context.secret or "")


async def install_agent(conn: Connection, context: BootstrapContext) -> CommandResult:
    return await conn.execute(context.install_command, check=True)


def default_steps(validator_key: str | None, secret: str | None) -> tuple[BootstrapStep, ...]:
    """The standard step order, skipping transfers with nothing to send."""
    steps = [BootstrapStep(CONFIG_TRANSFER, transfer_config)]
    if validator_key:
        steps.append(BootstrapStep(KEY_TRANSFER, transfer_key))
    if secret:
        steps.append(BootstrapStep(SECRET_TRANSFER, transfer_secret))
    steps.append(BootstrapStep(AGENT_INSTALL, install_agent))
    return tuple(steps)


def _read_file(path: Path, description: str) -> str:
    try:
        return path.read_text().rstrip("\n")
    except FileNotFoundError:
        raise ConfigError(f"{description} provided but not found at '{path}'") from None


@dataclass(frozen=True)
class BootstrapContext:
    """Payload shared read-only by every host in a bootstrap run."""

    steps: tuple[BootstrapStep, ...]
    client_config: str
    first_boot: str
    install_command: str
    validator_key: str | None = None
    secret: str | None = None
    hints: tuple[tuple[str, str], ...] = ()

    @classmethod
    def from_config(
        cls, settings: BootstrapSettings, template_dir: Path | None = None
    ) -> BootstrapContext:
        """Read key material and render the templates once for all hosts."""
        if not settings.server_url:
            raise ConfigError("Missing value for required bootstrap option 'server_url'")

        validator_key = None
        if settings.validator_path:
            validator_key = _read_file(settings.validator_path, "Validator key")
        secret = None
        if settings.encrypted_data_bag_secret_path:
            secret = _read_file(
                settings.encrypted_data_bag_secret_path, "Encrypted data bag secret"
            )

        if template_dir is not None:
            loader = FileSystemLoader(str(template_dir))
        else:
            loader = PackageLoader("fleetrun", "templates")
        env = Environment(loader=loader, autoescape=False, trim_blocks=True, keep_trailing_newline=True)

        values = {
            "config_dir": CONFIG_DIR,
            "server_url": settings.server_url,
            "validator_client": settings.validator_client,
            "validator_key": validator_key,
            "secret": secret,
            "environment": settings.environment,
            "agent_version": settings.agent_version,
        }
        return cls(
            steps=default_steps(validator_key, secret),
            client_config=env.get_template("client.rb.j2").render(**values),
            first_boot=json.dumps({"run_list": settings.run_list}),
            install_command=env.get_template("install.sh.j2").render(**values),
            validator_key=validator_key,
            secret=secret,
            hints=tuple((name, json.dumps(hint)) for name, hint in sorted(settings.hints.items())),
        )


async def run_steps(conn: Connection, context: BootstrapContext) -> dict[str, CommandResult]:
    """Apply each step in order, stopping at the first failure."""
    results: dict[str, CommandResult] = {}
    for step in context.steps:
        try:
            results[step.name] = await step.action(conn, context)
        except HostError as e:
            raise StepFailure(step.name, e) from e
    return results


class Bootstrapper(Executor):
    """Executor that runs the bootstrap steps on every host."""

    async def bootstrap(
        self, targets: Iterable[TargetLike], context: BootstrapContext
    ) -> ResponseSet:
        async def operation(conn: Connection) -> dict[str, CommandResult]:
            return await run_steps(conn, context)

        return await self.start(targets, operation)

    def bootstrap_sync(
        self, targets: Iterable[TargetLike], context: BootstrapContext
    ) -> ResponseSet:
        return asyncio.run(self.bootstrap(targets, context))
