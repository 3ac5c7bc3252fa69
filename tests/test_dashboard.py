"""Tests for the live dashboard."""
from __future__ import annotations

import asyncio

from conftest import FakeTransport
from fleetrun.config import Config, NodeConfig
from fleetrun.dashboard import Dashboard, StatusBar, unique_targets
from fleetrun.models import NodeTarget


def test_unique_targets_renames_repeated_names() -> None:
    targets = [
        NodeTarget("10.0.0.1", name="web"),
        NodeTarget("10.0.0.2", name="web"),
        NodeTarget("10.0.0.1", name="web-again"),
    ]

    assert [t.name for t in unique_targets(targets)] == ["web", "web (10.0.0.2)"]


def test_repeated_names_get_their_own_panels(options) -> None:
    transport = FakeTransport()
    config = Config(
        nodes=[
            NodeConfig("web", {"ipaddress": "10.0.0.1"}, options),
            NodeConfig("web", {"ipaddress": "10.0.0.2"}, options),
            NodeConfig("web-again", {"ipaddress": "10.0.0.1"}, options),
        ],
        ssh=options,
    )
    app = Dashboard(config, command="uptime", transport=transport, enable_logging=False)

    async def main():
        async with app.run_test() as pilot:
            await app.workers.wait_for_complete()
            await pilot.pause()
            await pilot.pause()
            bar = app.query_one("#status-bar", StatusBar)
            return bar.completed, bar.failed, bar.total

    completed, failed, total = asyncio.run(main())

    assert (completed, failed, total) == (2, 0, 2)
    assert len(app.panels) == 2
    assert app.responses is not None and app.responses.ok()
    assert len(app.responses) == 2
    assert sorted(transport.connect_attempts) == ["10.0.0.1", "10.0.0.2"]
