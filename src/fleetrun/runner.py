#!/usr/bin/env python3
"""Main entry point for fleetrun."""

import argparse
import asyncio
import sys
from dataclasses import replace
from pathlib import Path

from .bootstrap import BootstrapContext, Bootstrapper
from .config import Config, load_config
from .dashboard import Dashboard
from .models import NodeStatus
from .response_set import ResponseSet


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Run a command, or bootstrap the fleet agent, on every node in an inventory"
    )
    parser.add_argument("config", type=Path, help="Path to YAML configuration file")
    parser.add_argument("command", nargs="?", help="Command to run on every node")
    parser.add_argument(
        "--bootstrap",
        action="store_true",
        help="Bootstrap the fleet agent instead of running a command",
    )
    parser.add_argument(
        "--key",
        type=Path,
        help="Override SSH keys from config",
    )
    parser.add_argument("--timeout", type=float, help="Per-node timeout in seconds")
    parser.add_argument(
        "--max-concurrency",
        type=int,
        help="Maximum number of nodes handled at once",
    )
    parser.add_argument(
        "--no-sudo",
        action="store_true",
        help="Run without sudo",
    )
    parser.add_argument(
        "--no-logs",
        action="store_true",
        help="Disable logging to files",
    )
    parser.add_argument(
        "--dashboard",
        action="store_true",
        help="Run with the TUI dashboard",
    )
    args = parser.parse_args(argv)

    if not args.bootstrap and not args.command:
        parser.error("a command is required unless --bootstrap is given")

    # Load configuration
    try:
        config = load_config(args.config)
        _apply_overrides(config, args)
        for node in config.nodes:
            node.ssh.validate()
        context = BootstrapContext.from_config(config.bootstrap) if args.bootstrap else None
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    enable_logging = not args.no_logs

    if not args.dashboard:
        # Run without TUI dashboard (default)
        return _run_headless(config, args.command, context, enable_logging)

    # Run with the dashboard
    app = Dashboard(config, command=args.command, bootstrap=context, enable_logging=enable_logging)
    app.run()

    if app.responses is None:
        return 1
    return _report(app.responses)


def _apply_overrides(config: Config, args: argparse.Namespace) -> None:
    """Apply command line overrides to the defaults and every node."""
    changes = {}
    if args.key:
        changes["keys"] = (str(args.key.expanduser()),)
    if args.timeout is not None:
        changes["timeout"] = args.timeout
    if args.no_sudo:
        changes["sudo"] = False
    if changes:
        config.ssh = replace(config.ssh, **changes)
        for node in config.nodes:
            node.ssh = replace(node.ssh, **changes)
    if args.max_concurrency is not None:
        if args.max_concurrency < 1:
            raise ValueError("--max-concurrency must be at least 1")
        config.max_concurrency = args.max_concurrency


def _report(responses: ResponseSet) -> int:
    """Print failures and return the process exit status."""
    failures = responses.failures()
    if failures:
        print(f"\nFailed nodes ({len(failures)}):", file=sys.stderr)
        for target, error in failures.items():
            print(f"  {target.name}: {error}", file=sys.stderr)
        return 1

    print(f"\nAll {len(responses)} nodes succeeded")
    return 0


def _run_headless(
    config: Config,
    command: str | None,
    context: BootstrapContext | None,
    enable_logging: bool,
) -> int:
    """Run executor without TUI dashboard."""
    # ANSI colors for different nodes
    colors = [
        "\033[36m",  # Cyan
        "\033[33m",  # Yellow
        "\033[35m",  # Magenta
        "\033[32m",  # Green
        "\033[34m",  # Blue
        "\033[91m",  # Light Red
        "\033[96m",  # Light Cyan
        "\033[93m",  # Light Yellow
    ]
    reset = "\033[0m"

    node_colors = {
        node.name: colors[i % len(colors)]
        for i, node in enumerate(config.nodes)
    }

    def on_output(node_name: str, line: str) -> None:
        color = node_colors.get(node_name, "")
        print(f"{color}[{node_name}]{reset} {line}")

    def on_status(node_name: str, status: NodeStatus) -> None:
        color = node_colors.get(node_name, "")
        print(f"{color}[{node_name}]{reset} Status: {status.value}")

    executor = Bootstrapper(
        config.ssh,
        max_concurrency=config.max_concurrency,
        on_output=on_output,
        on_status=on_status,
        log_dir=config.log_dir if enable_logging else None,
        source_path=config.source_path,
    )

    targets = config.targets()
    if context is not None:
        responses = asyncio.run(executor.bootstrap(targets, context))
    else:
        responses = asyncio.run(executor.run(targets, command))

    return _report(responses)


if __name__ == "__main__":
    sys.exit(main())
