"""Tests for the command line entry point."""
from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from conftest import FakeTransport, HostBehavior
from fleetrun import runner


@pytest.fixture
def fake_transport(monkeypatch) -> FakeTransport:
    transport = FakeTransport({"10.0.0.2": HostBehavior(exit_status=1)})
    monkeypatch.setattr("fleetrun.executor.AsyncSSHTransport", lambda: transport)
    return transport


def _config(tmp_path: Path) -> Path:
    path = tmp_path / "fleet.yaml"
    path.write_text(
        textwrap.dedent(
            f"""
            ssh: {{user: deploy, password: pw}}
            log_dir: {tmp_path / "logs"}
            nodes:
              - {{name: ok1, host: 10.0.0.1}}
              - {{name: bad1, host: 10.0.0.2}}
            """
        )
    )
    return path


def test_headless_run_reports_failures(tmp_path, fake_transport, capsys) -> None:
    status = runner.main([str(_config(tmp_path)), "uptime"])

    assert status == 1
    captured = capsys.readouterr()
    assert "[ok1]" in captured.out
    assert "bad1" in captured.err
    assert sorted(fake_transport.connect_attempts) == ["10.0.0.1", "10.0.0.2"]
    log_dirs = list((tmp_path / "logs").iterdir())
    assert len(log_dirs) == 1
    assert (log_dirs[0] / "ok1.log").exists()
    assert (log_dirs[0] / "config.yaml").exists()


def test_no_logs_and_overrides(tmp_path, fake_transport) -> None:
    fake_transport.behaviors = {}
    status = runner.main(
        [str(_config(tmp_path)), "uptime", "--no-logs", "--no-sudo", "--max-concurrency", "1"]
    )

    assert status == 0
    assert not (tmp_path / "logs").exists()
    assert all(command == "uptime" for _, command, _ in fake_transport.commands)


def test_missing_config_exits_nonzero(tmp_path, capsys) -> None:
    assert runner.main([str(tmp_path / "absent.yaml"), "uptime"]) == 1
    assert "Error:" in capsys.readouterr().err


def test_bootstrap_without_server_url_is_configuration_error(tmp_path, fake_transport, capsys) -> None:
    assert runner.main([str(_config(tmp_path)), "--bootstrap"]) == 1
    assert "Configuration error" in capsys.readouterr().err
    assert fake_transport.events == []


def test_command_required_without_bootstrap(tmp_path) -> None:
    with pytest.raises(SystemExit):
        runner.main([str(_config(tmp_path))])


def test_per_node_credentials_without_top_level_ssh(tmp_path, fake_transport) -> None:
    fake_transport.behaviors = {}
    path = tmp_path / "fleet.yaml"
    path.write_text(
        textwrap.dedent(
            """
            nodes:
              - {name: web1, host: 10.0.0.1, ssh: {user: admin, password: pw}}
              - {name: web2, host: 10.0.0.2, ssh: {user: admin, password: pw}}
            """
        )
    )

    assert runner.main([str(path), "uptime", "--no-logs"]) == 0
    assert sorted(fake_transport.connect_attempts) == ["10.0.0.1", "10.0.0.2"]


def test_node_missing_credentials_is_configuration_error(tmp_path, fake_transport, capsys) -> None:
    path = tmp_path / "fleet.yaml"
    path.write_text("nodes:\n  - {name: web1, host: 10.0.0.1, ssh: {user: admin}}\n")

    assert runner.main([str(path), "uptime", "--no-logs"]) == 1
    assert "web1" in capsys.readouterr().err
    assert fake_transport.events == []
