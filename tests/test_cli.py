"""Tests for the command line entry point."""

from __future__ import annotations

import yaml

from whisper_migrator import cli
from whisper_migrator.config import load_config


def write_config(path, **influx):
    payload = {
        "migration": {"create_database_and_policies": False},
        "rules": [{"pattern": "cpu", "measurement": "cpu", "field": "value"}],
        "influx": {"addresses": ["http://localhost:8086"], **influx},
    }
    path.write_text(yaml.safe_dump(payload), encoding="utf-8")
    return path


def test_init_config_writes_template(tmp_path):
    path = tmp_path / "migrate.yaml"

    assert cli.main(["--config", str(path), "--init-config"]) == cli.EXIT_OK
    assert load_config(path).rules

    assert cli.main(["--config", str(path), "--init-config"]) == cli.EXIT_FATAL


def test_missing_whisper_dir_is_fatal(tmp_path):
    path = write_config(tmp_path / "migrate.yaml")

    assert cli.main(["--config", str(path)]) == cli.EXIT_FATAL


def test_invalid_configuration_is_fatal(tmp_path):
    path = write_config(tmp_path / "migrate.yaml", batch_interval="whenever")

    assert cli.main(["--config", str(path), "--whisper-dir", str(tmp_path)]) == cli.EXIT_FATAL


def test_run_with_disabled_sink(tmp_path, capsys):
    path = write_config(tmp_path / "migrate.yaml", enabled=False)
    (tmp_path / "whisper").mkdir()

    status = cli.main(["--config", str(path), "--whisper-dir", str(tmp_path / "whisper")])

    assert status == cli.EXIT_OK
    assert "Migration duration" in capsys.readouterr().out


def test_run_passes_prepared_policies(tmp_path, monkeypatch):
    path = write_config(tmp_path / "migrate.yaml")
    captured = {}

    monkeypatch.setattr(cli.Administrator, "prepare", lambda self, root: ["1d"])

    def fake_migrate(config, root, retention_policies=None):
        captured["root"] = root
        captured["policies"] = retention_policies
        from whisper_migrator.metrics import MigrationSummary

        return MigrationSummary(errors=[RuntimeError("late")])

    monkeypatch.setattr(cli, "migrate", fake_migrate)

    status = cli.main(["--config", str(path), "--whisper-dir", str(tmp_path)])

    assert status == cli.EXIT_WITH_ERRORS
    assert captured == {"root": str(tmp_path), "policies": ["1d"]}
