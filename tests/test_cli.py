"""Tests for configuration handling and the entry point."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

import folder_sync
from folder_sync import (
    AppConfig,
    ConfigError,
    build_effective_config,
    load_config_file,
    main,
    parse_args,
    save_config_file,
    validate_config,
    validate_paths,
)


class TestParseArgs:
    def test_all_options(self) -> None:
        args = parse_args([
            "--source", "/src",
            "--replica", "/dst",
            "-i", "30",
            "--log", "sync.log",
            "--compare", "digest",
            "--ignore", "*.tmp",
            "--ignore", "build/",
            "--debug",
            "--no-save",
        ])

        assert args.source == "/src"
        assert args.replica == "/dst"
        assert args.interval == 30
        assert args.log == "sync.log"
        assert args.compare == "digest"
        assert args.ignore == ["*.tmp", "build/"]
        assert args.debug and args.no_save

    def test_unknown_strategy_rejected(self) -> None:
        with pytest.raises(SystemExit):
            parse_args(["--compare", "size"])

    def test_interval_must_be_integer(self) -> None:
        with pytest.raises(SystemExit):
            parse_args(["-i", "soon"])


class TestEffectiveConfig:
    def test_defaults(self) -> None:
        cfg = build_effective_config(parse_args(["--source", "s", "--replica", "r", "-i", "5"]))

        assert cfg == AppConfig(source="s", replica="r", interval_sec=5)

    def test_missing_values_stay_empty(self) -> None:
        cfg = build_effective_config(parse_args([]))

        assert cfg.source == "" and cfg.replica == "" and cfg.interval_sec is None
        assert cfg.log_path is None

    def test_saved_values_fill_gaps(self, isolated_config: Path) -> None:
        isolated_config.parent.mkdir(parents=True)
        isolated_config.write_text(json.dumps({
            "source": "/saved/src",
            "replica": "/saved/dst",
            "interval_sec": 15,
            "log": "/saved/sync.log",
            "compare": "digest",
            "ignore": ["*.bak"],
        }))

        cfg = build_effective_config(parse_args(["--replica", "/flag/dst"]))

        assert cfg.source == "/saved/src"
        assert cfg.replica == "/flag/dst"
        assert cfg.interval_sec == 15
        assert cfg.log_path == Path("/saved/sync.log")
        assert cfg.compare == "digest"
        assert cfg.ignore_patterns == ("*.bak",)

    def test_corrupt_config_file_ignored(self, isolated_config: Path) -> None:
        isolated_config.parent.mkdir(parents=True)
        isolated_config.write_text("{not json")

        assert load_config_file() == {}

    def test_save_round_trip(self, isolated_config: Path, tmp_path: Path) -> None:
        cfg = AppConfig(source="s", replica="r", interval_sec=7, compare="digest", ignore_patterns=("x/",))

        save_config_file(cfg, tmp_path / "s", tmp_path / "r")

        saved = load_config_file()
        assert saved["source"] == str(tmp_path / "s")
        assert saved["interval_sec"] == 7
        assert saved["ignore"] == ["x/"]
        assert saved["log"] is None


class TestValidation:
    def test_valid_paths_resolved(self, tmp_path: Path) -> None:
        (tmp_path / "src").mkdir()

        source, replica = validate_paths(str(tmp_path / "src"), str(tmp_path / "dst"))

        assert source == (tmp_path / "src").resolve()
        assert replica == (tmp_path / "dst").resolve()
        assert not replica.exists()

    def test_missing_source(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Source folder does not exist"):
            validate_paths(str(tmp_path / "nope"), str(tmp_path / "dst"))

    def test_empty_paths(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Source folder path is empty"):
            validate_paths("", str(tmp_path))
        with pytest.raises(ConfigError, match="Replica folder path is empty"):
            validate_paths(str(tmp_path), "  ")

    def test_replica_is_a_file(self, tmp_path: Path) -> None:
        (tmp_path / "src").mkdir()
        (tmp_path / "dst").write_text("")

        with pytest.raises(ConfigError, match="not a folder"):
            validate_paths(str(tmp_path / "src"), str(tmp_path / "dst"))

    @pytest.mark.parametrize("replica_rel", ["src", "src/inner", "."])
    def test_overlapping_roots(self, tmp_path: Path, replica_rel: str) -> None:
        (tmp_path / "src").mkdir()

        with pytest.raises(ConfigError):
            validate_paths(str(tmp_path / "src"), str(tmp_path / replica_rel))

    @pytest.mark.parametrize("interval", [None, 0, -5])
    def test_bad_interval(self, tmp_path: Path, interval) -> None:
        cfg = AppConfig(source=str(tmp_path), replica=str(tmp_path / "r"), interval_sec=interval)

        with pytest.raises(ConfigError, match="interval"):
            validate_config(cfg)

    def test_config_error_is_value_error(self) -> None:
        assert issubclass(ConfigError, ValueError)


class TestMain:
    def test_missing_source_exits_before_any_cycle(self, tmp_path: Path, isolated_config: Path) -> None:
        replica = tmp_path / "replica"
        log_file = tmp_path / "sync.log"

        code = main(["--source", str(tmp_path / "missing"), "--replica", str(replica), "-i", "1", "--log", str(log_file)])

        assert code == 2
        assert not replica.exists()
        assert not isolated_config.exists()
        assert "Error  - Config error: Source folder does not exist" in log_file.read_text()
        assert folder_sync.logging.getLogger(folder_sync.LOGGER_NAME).handlers == []

    def test_interrupt_stops_cleanly(self, tmp_path: Path, isolated_config: Path) -> None:
        source = tmp_path / "source"
        source.mkdir()
        log_file = tmp_path / "sync.log"
        argv = ["--source", str(source), "--replica", str(tmp_path / "replica"), "-i", "60", "--log", str(log_file)]

        with patch.object(folder_sync.SyncScheduler, "is_alive", side_effect=[KeyboardInterrupt(), False]):
            code = main(argv)

        assert code == 0
        text = log_file.read_text()
        assert f"# Source Folder: {source.resolve()}" in text
        assert "# Comparison: timestamp" in text
        assert "Info   - Stopping..." in text
        assert "Info   - Stopped." in text
        assert json.loads(isolated_config.read_text())["interval_sec"] == 60
        assert folder_sync.logging.getLogger(folder_sync.LOGGER_NAME).handlers == []

    def test_no_save(self, tmp_path: Path, isolated_config: Path) -> None:
        source = tmp_path / "source"
        source.mkdir()
        argv = ["--source", str(source), "--replica", str(tmp_path / "replica"), "-i", "60", "--no-save"]

        with patch.object(folder_sync.SyncScheduler, "is_alive", side_effect=[KeyboardInterrupt(), False]):
            assert main(argv) == 0

        assert not isolated_config.exists()

    def test_interrupt_during_startup_exits_cleanly(self, tmp_path: Path, isolated_config: Path) -> None:
        log_file = tmp_path / "sync.log"
        argv = ["--source", str(tmp_path), "--replica", str(tmp_path / "r"), "-i", "5", "--log", str(log_file)]

        with patch("folder_sync.validate_config", side_effect=KeyboardInterrupt()):
            assert main(argv) == 0

        assert "Info   - Interrupted, exiting." in log_file.read_text()
        assert not (tmp_path / "r").exists()
        assert folder_sync.logging.getLogger(folder_sync.LOGGER_NAME).handlers == []

    def test_second_interrupt_while_stopping_exits_cleanly(self, tmp_path: Path, isolated_config: Path) -> None:
        source = tmp_path / "source"
        source.mkdir()
        log_file = tmp_path / "sync.log"
        argv = ["--source", str(source), "--replica", str(tmp_path / "replica"), "-i", "60", "--log", str(log_file)]

        with patch.object(folder_sync.SyncScheduler, "start") as start, \
                patch.object(folder_sync.SyncScheduler, "is_alive", side_effect=[KeyboardInterrupt()]), \
                patch.object(folder_sync.SyncScheduler, "join", side_effect=KeyboardInterrupt()), \
                patch.object(folder_sync.SyncScheduler, "stop") as stop:
            assert main(argv) == 0

        start.assert_called_once()
        stop.assert_called_once()
        text = log_file.read_text()
        assert "Info   - Stopping..." in text
        assert "Info   - Interrupted, exiting." in text
