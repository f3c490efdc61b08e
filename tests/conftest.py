"""Shared fixtures for folder_sync tests."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Iterator

import pytest

import folder_sync
from folder_sync import FolderSynchronizer, open_log_sink, timestamp_up_to_date


def make_tree(root: Path, files: dict[str, str]) -> None:
    """Create ``files`` (relative path -> text) under ``root``."""
    root.mkdir(parents=True, exist_ok=True)
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


def tree_listing(root: Path) -> set[str]:
    return {p.relative_to(root).as_posix() for p in root.rglob("*")}


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep saved settings out of the real home folder."""
    config_path = tmp_path / "home" / ".folder_sync" / "config.json"
    monkeypatch.setattr(folder_sync, "CONFIG_PATH", config_path)
    return config_path


@pytest.fixture
def source(tmp_path: Path) -> Path:
    path = tmp_path / "source"
    path.mkdir()
    return path


@pytest.fixture
def replica(tmp_path: Path) -> Path:
    return tmp_path / "replica"


@pytest.fixture
def log_file(tmp_path: Path) -> Path:
    return tmp_path / "logs" / "sync.log"


@pytest.fixture
def logger(log_file: Path) -> Iterator[logging.Logger]:
    with open_log_sink(log_file, debug=True) as logger:
        yield logger


@pytest.fixture
def make_sync(source: Path, replica: Path, logger: logging.Logger) -> Callable[..., FolderSynchronizer]:
    def factory(comparator=timestamp_up_to_date, ignore=None, stop_event=None) -> FolderSynchronizer:
        return FolderSynchronizer(
            source,
            replica,
            comparator,
            logger,
            ignore=ignore,
            stop_event=stop_event or threading.Event(),
        )

    return factory
