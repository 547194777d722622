from __future__ import annotations

import json

from typer.testing import CliRunner

from eventhub import cli, config

runner = CliRunner()


def test_sweep_command_reports_stats():
    result = runner.invoke(cli.app, ["sweep"])

    assert result.exit_code == 0, result.output
    assert "Sweep complete" in result.output


def test_config_show_reads_given_file(tmp_path):
    path = tmp_path / "eventhub.toml"
    path.write_text("join_code_attempts = 9\n", encoding="utf-8")

    result = runner.invoke(cli.app, ["config", "--config-path", str(path)])

    assert result.exit_code == 0, result.output
    effective = json.loads(result.output)
    assert effective["join_code_attempts"] == 9
    assert effective["config_path"] == str(path)


def test_config_updates_file(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "settings", config.settings)
    path = tmp_path / "eventhub.toml"

    result = runner.invoke(
        cli.app,
        ["config", "--config-path", str(path), "--sweep-minutes", "30", "--disable-scheduler"],
    )

    assert result.exit_code == 0, result.output
    text = path.read_text(encoding="utf-8")
    assert "phase_sweep_minutes = 30" in text
    assert "enable_scheduler = false" in text
