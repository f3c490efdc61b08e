# /folder_sync.py
"""
Folder Sync
- One-way mirror of a source folder into a replica folder, repeated on a fixed interval.
- Each cycle runs a mirror pass (create folders, copy new/changed files) and then a
  prune pass (delete replica files/folders that no longer exist in the source).
- Pluggable comparison: "timestamp" (exact mtime) or "digest" (MD5 of contents).
- Per-entry failures are logged and skipped; a failed cycle never stops the loop.
- Ctrl+C stops gracefully: the running cycle is interrupted between entries,
  the log file is flushed and closed, exit status 0.
- Remembers last settings across restarts via ~/.folder_sync/config.json
- Optional gitignore-style ignore rules (--ignore); ignored entries are treated
  as absent from the source.
- Log lines: [UTC MM/DD/YYYY hh:mm:ss.fff AM/PM] LABEL  - message
  - Create/Copy green, Delete orange, Error red on a color terminal
  - Log file is always plain (no color codes).

Usage
  pip install pathspec colorama
  python folder_sync.py --source "/src" --replica "/dst" -i 30 --log sync.log
  python folder_sync.py --source "/src" --replica "/dst" -i 30 --compare digest --ignore "*.tmp"
"""

from __future__ import annotations

import argparse
import datetime as dt
import enum
import errno
import hashlib
import json
import logging
import shutil
import sys
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator, Optional

from colorama import just_fix_windows_console
from pathspec import PathSpec

__version__ = "1.0.0"

APP_DIR = Path.home() / ".folder_sync"
CONFIG_PATH = APP_DIR / "config.json"

LOGGER_NAME = "folder_sync"

SHUTDOWN_TIMEOUT_SEC = 10.0


# -------------------------
# Errors
# -------------------------

class SyncError(Exception):
    """Base class for errors raised by folder_sync."""


class ConfigError(SyncError, ValueError):
    """Invalid configuration; fatal at startup."""


class SourceMissingError(SyncError):
    """The source root vanished after startup."""


class ComparisonError(SyncError):
    """A comparison strategy could not decide whether a file is up to date."""

    def __init__(self, path: Path, cause: OSError):
        super().__init__(f"could not compare {path}: {cause}")
        self.path = path
        self.cause = cause


# -------------------------
# Console styling / log sink
# -------------------------

class Ansi:
    RESET = "\x1b[0m"
    RED = "\x1b[31m"
    GREEN = "\x1b[32m"
    ORANGE = "\x1b[38;5;208m"
    WHITE = "\x1b[97m"
    LIGHT_BROWN = "\x1b[33m"
    GREY = "\x1b[90m"


class Label:
    CREATE = "Create"
    COPY = "Copy"
    DELETE = "Delete"
    ERROR = "Error"
    INFO = "Info"
    DEBUG = "Debug"


LABEL_LEVELS = {
    Label.CREATE: logging.INFO,
    Label.COPY: logging.INFO,
    Label.DELETE: logging.INFO,
    Label.ERROR: logging.ERROR,
    Label.INFO: logging.INFO,
    Label.DEBUG: logging.DEBUG,
}

LABEL_COLORS = {
    Label.CREATE: Ansi.GREEN,
    Label.COPY: Ansi.GREEN,
    Label.DELETE: Ansi.ORANGE,
    Label.ERROR: Ansi.RED,
    Label.DEBUG: Ansi.GREY,
}


def label_for_level(levelno: int) -> str:
    if levelno >= logging.ERROR:
        return Label.ERROR
    if levelno <= logging.DEBUG:
        return Label.DEBUG
    return Label.INFO


def format_utc(when: dt.datetime) -> str:
    """Render ``when`` as ``MM/DD/YYYY hh:mm:ss.fff AM/PM``."""
    return when.strftime("%m/%d/%Y %I:%M:%S.") + f"{when.microsecond // 1000:03d}" + when.strftime(" %p")


def _supports_color(stream) -> bool:
    try:
        return hasattr(stream, "isatty") and stream.isatty()
    except Exception:
        return False


class SyncFormatter(logging.Formatter):
    LINE_FORMAT = "[UTC %(asctime)s] %(label)-6s - %(message)s"

    def __init__(self) -> None:
        super().__init__(fmt=self.LINE_FORMAT)

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        return format_utc(dt.datetime.fromtimestamp(record.created, tz=dt.timezone.utc))

    def format(self, record: logging.LogRecord) -> str:
        if getattr(record, "raw", False):
            return record.getMessage()
        if not hasattr(record, "label"):
            record.label = label_for_level(record.levelno)
        return super().format(record)


class ColorizingFormatter(SyncFormatter):
    def __init__(self, use_color: bool) -> None:
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        if not self.use_color or getattr(record, "raw", False):
            return base

        label = record.label
        if record.levelno >= logging.ERROR:
            return f"{Ansi.RED}{base}{Ansi.RESET}"

        label_color = LABEL_COLORS.get(label, "")
        if label_color:
            base = base.replace(f"] {label}", f"] {label_color}{label}{Ansi.RESET}", 1)

        path_text = getattr(record, "path_text", None)
        if path_text and path_text in base:
            pcolor = Ansi.LIGHT_BROWN if getattr(record, "is_dir", False) else Ansi.WHITE
            base = base.replace(path_text, f"{pcolor}{path_text}{Ansi.RESET}")

        return base


def log_event(
    logger: logging.Logger,
    label: str,
    message: str,
    path: Optional[Path] = None,
    is_dir: Optional[bool] = None,
    exc_info: bool = False,
) -> None:
    extra = {"label": label}
    if path is not None:
        extra["path_text"] = str(path)
        extra["is_dir"] = bool(is_dir) if is_dir is not None else (path.exists() and path.is_dir())
    logger.log(LABEL_LEVELS[label], message, extra=extra, exc_info=exc_info)


def write_header(logger: logging.Logger, lines: list[str]) -> None:
    """Write a block of comment lines, unformatted, to every handler."""
    for line in lines:
        prefixed = line if line.startswith("#") else f"# {line}"
        logger.info(prefixed, extra={"raw": True, "label": Label.INFO})


def close_logger(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        try:
            handler.flush()
        finally:
            handler.close()
            logger.removeHandler(handler)


def setup_logger(log_path: Optional[Path] = None, debug: bool = False) -> logging.Logger:
    level = logging.DEBUG if debug else logging.INFO

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False
    close_logger(logger)

    just_fix_windows_console()

    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(level)
    ch.setFormatter(ColorizingFormatter(use_color=_supports_color(sys.stdout)))
    logger.addHandler(ch)

    if log_path is None:
        return logger

    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_path, encoding="utf-8")
    except OSError as e:
        log_event(logger, Label.ERROR, f"Could not open log file '{log_path}', logging to console only: {e}")
        return logger

    fh.setFormatter(SyncFormatter())
    fh.setLevel(level)
    logger.addHandler(fh)

    log_event(logger, Label.DEBUG, f"Logging to: {log_path}")
    return logger


@contextmanager
def open_log_sink(log_path: Optional[Path] = None, debug: bool = False) -> Iterator[logging.Logger]:
    """Set up the ``folder_sync`` logger and close its handlers on every exit path."""
    logger = setup_logger(log_path, debug=debug)
    try:
        yield logger
    finally:
        close_logger(logger)


# -------------------------
# Config / CLI
# -------------------------

@dataclass(frozen=True)
class AppConfig:
    source: str
    replica: str
    interval_sec: Optional[int]
    log_path: Optional[Path] = None
    compare: str = "timestamp"
    ignore_patterns: tuple[str, ...] = ()
    debug: bool = False


def parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="folder-sync", description="Periodically mirror a source folder into a replica folder.")
    p.add_argument("--source", type=str, default=None, help="Source folder path.")
    p.add_argument("--replica", type=str, default=None, help="Replica folder path.")
    p.add_argument("-i", "--interval", type=int, default=None, help="Synchronization interval in seconds.")
    p.add_argument("--log", type=str, default=None, help="Log output file path.")
    p.add_argument("--compare", choices=sorted(COMPARATORS), default=None, help="How to decide a replica file is up to date (default: timestamp).")
    p.add_argument("--ignore", action="append", default=None, metavar="PATTERN", help="Gitignore-style pattern to leave out of the replica (repeatable).")
    p.add_argument("--debug", action="store_true", help="Log debug events.")
    p.add_argument("--no-save", action="store_true", help="Do not remember these settings for the next run.")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p.parse_args(argv)


def load_config_file() -> dict:
    try:
        if CONFIG_PATH.exists():
            data = json.loads(CONFIG_PATH.read_text(encoding="utf-8"))
            if isinstance(data, dict):
                return data
    except (OSError, ValueError):
        pass
    return {}


def save_config_file(cfg: AppConfig, source: Path, replica: Path) -> None:
    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "source": str(source),
        "replica": str(replica),
        "interval_sec": cfg.interval_sec,
        "log": str(cfg.log_path.expanduser().resolve()) if cfg.log_path else None,
        "compare": cfg.compare,
        "ignore": list(cfg.ignore_patterns),
    }
    CONFIG_PATH.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def build_effective_config(args: argparse.Namespace) -> AppConfig:
    saved = load_config_file()

    source = args.source if args.source is not None else saved.get("source", "")
    replica = args.replica if args.replica is not None else saved.get("replica", "")
    interval = args.interval if args.interval is not None else saved.get("interval_sec")
    log = args.log if args.log is not None else saved.get("log")
    compare = args.compare or saved.get("compare") or "timestamp"
    ignore = args.ignore if args.ignore is not None else saved.get("ignore") or []

    return AppConfig(
        source=source or "",
        replica=replica or "",
        interval_sec=interval,
        log_path=Path(log) if log else None,
        compare=compare,
        ignore_patterns=tuple(ignore),
        debug=args.debug,
    )


def _is_subpath(child: Path, parent: Path) -> bool:
    try:
        child.resolve().relative_to(parent.resolve())
        return True
    except ValueError:
        return False


def validate_paths(source: str, replica: str) -> tuple[Path, Path]:
    """Check the configured roots and return them resolved. Never touches the replica."""
    if not source.strip():
        raise ConfigError("Source folder path is empty.")
    if not replica.strip():
        raise ConfigError("Replica folder path is empty.")

    source_path = Path(source).expanduser().resolve()
    replica_path = Path(replica).expanduser().resolve()

    if not source_path.is_dir():
        raise ConfigError(f"Source folder does not exist or is not a folder: {source_path}")
    if replica_path.exists() and not replica_path.is_dir():
        raise ConfigError(f"Replica path exists and is not a folder: {replica_path}")
    if source_path == replica_path:
        raise ConfigError("Source and replica folders must be different.")
    if _is_subpath(replica_path, source_path):
        raise ConfigError("Replica folder must NOT be inside source folder (would cause loops).")
    if _is_subpath(source_path, replica_path):
        raise ConfigError("Source folder must NOT be inside replica folder (it would be pruned).")

    return source_path, replica_path


def validate_config(cfg: AppConfig) -> tuple[Path, Path]:
    if cfg.interval_sec is None or isinstance(cfg.interval_sec, bool) or not isinstance(cfg.interval_sec, int) or cfg.interval_sec <= 0:
        raise ConfigError(f"Synchronization interval must be a positive number of seconds, got: {cfg.interval_sec}")
    if cfg.compare not in COMPARATORS:
        raise ConfigError(f"Unknown comparison strategy: {cfg.compare}")
    return validate_paths(cfg.source, cfg.replica)


# -------------------------
# Comparison strategies
# -------------------------

Comparator = Callable[[Path, Path], bool]


def md5_file(path: Path, chunk_size: int = 1024 * 1024) -> str:
    h = hashlib.md5()
    with path.open("rb") as f:
        while True:
            b = f.read(chunk_size)
            if not b:
                break
            h.update(b)
    return h.hexdigest()


def _comparison_error(e: OSError, default: Path) -> ComparisonError:
    return ComparisonError(Path(e.filename) if e.filename else default, e)


def timestamp_up_to_date(source: Path, target: Path) -> bool:
    """Up to date iff both files carry exactly the same modification time."""
    try:
        if not target.is_file():
            return False
        return source.stat().st_mtime_ns == target.stat().st_mtime_ns
    except OSError as e:
        raise _comparison_error(e, source) from e


def digest_up_to_date(source: Path, target: Path) -> bool:
    """Up to date iff both files have the same MD5 digest. Reads both files in full."""
    try:
        if not target.is_file():
            return False
        return md5_file(source) == md5_file(target)
    except OSError as e:
        raise _comparison_error(e, source) from e


COMPARATORS: dict[str, Comparator] = {
    "timestamp": timestamp_up_to_date,
    "digest": digest_up_to_date,
}


def get_comparator(name: str) -> Comparator:
    try:
        return COMPARATORS[name]
    except KeyError:
        raise ValueError(f"Unknown comparison strategy: {name!r} (expected one of {', '.join(sorted(COMPARATORS))})") from None


# -------------------------
# Ignore + filesystem helpers
# -------------------------

class IgnoreMatcher:
    def __init__(self, source_root: Path, patterns: list[str]):
        self.source_root = source_root
        self.spec = PathSpec.from_lines("gitwildmatch", patterns)

    def is_ignored(self, path: Path, is_dir: bool = False) -> bool:
        try:
            rel = path.relative_to(self.source_root)
        except ValueError:
            return True
        rel_posix = rel.as_posix()
        if is_dir and not rel_posix.endswith("/"):
            rel_posix += "/"
        return self.spec.match_file(rel_posix)


def list_dir(directory: Path, follow_symlinks: bool = True) -> tuple[list[Path], list[Path]]:
    """
    Split the immediate children of ``directory`` into (files, folders), sorted by name.

    With ``follow_symlinks`` a link counts as whatever it points to, and entries that
    are neither regular files nor folders (sockets, fifos, dangling links) are skipped.
    Without it, only real folders count as folders and everything else is a file.
    """
    files: list[Path] = []
    dirs: list[Path] = []
    for entry in sorted(directory.iterdir(), key=lambda p: p.name):
        if follow_symlinks:
            if entry.is_dir():
                dirs.append(entry)
            elif entry.is_file():
                files.append(entry)
        elif entry.is_dir() and not entry.is_symlink():
            dirs.append(entry)
        else:
            files.append(entry)
    return files, dirs


# -------------------------
# Synchronization engine
# -------------------------

class ActionKind:
    CREATE_DIR = "CreateDir"
    COPY_FILE = "CopyFile"
    DELETE_FILE = "DeleteFile"
    DELETE_DIR = "DeleteDir"


ACTION_LABELS = {
    ActionKind.CREATE_DIR: Label.CREATE,
    ActionKind.COPY_FILE: Label.COPY,
    ActionKind.DELETE_FILE: Label.DELETE,
    ActionKind.DELETE_DIR: Label.DELETE,
}


@dataclass(frozen=True)
class SyncAction:
    kind: str
    path: Path  # relative to the replica root


@dataclass
class CycleOutcome:
    actions: list[SyncAction] = field(default_factory=list)
    errors: list[tuple[Path, BaseException]] = field(default_factory=list)
    cancelled: bool = False
    # source folders the mirror pass could not enter; prune leaves their replicas alone
    unlisted: set[Path] = field(default_factory=set)

    @property
    def succeeded(self) -> bool:
        return not self.errors and not self.cancelled


class FolderSynchronizer:
    """
    Mirrors ``source_root`` onto ``replica_root``.

    A cycle is a mirror pass followed by a prune pass. Both walk one folder level
    at a time. Failures on a single file or folder are logged, recorded on the
    outcome and skipped; the rest of the cycle proceeds. The source tree is only
    ever read.
    """

    def __init__(
        self,
        source_root: Path,
        replica_root: Path,
        comparator: Comparator,
        logger: logging.Logger,
        ignore: Optional[IgnoreMatcher] = None,
        stop_event: Optional[threading.Event] = None,
    ):
        self.source_root = source_root
        self.replica_root = replica_root
        self.comparator = comparator
        self.logger = logger
        self.ignore = ignore
        self.stop_event = stop_event or threading.Event()
        self._visiting: set[tuple[int, int]] = set()

    def run_cycle(self) -> CycleOutcome:
        if not self.source_root.is_dir():
            raise SourceMissingError(f"Source folder '{self.source_root}' does not exist anymore.")

        outcome = CycleOutcome()
        self.mirror(self.source_root, self.replica_root, outcome)
        if not outcome.cancelled and self.replica_root.is_dir():
            self.prune(self.replica_root, self.source_root, outcome)
        return outcome

    # mirror pass

    def mirror(self, source_dir: Path, replica_dir: Path, outcome: CycleOutcome) -> None:
        try:
            st = source_dir.stat()
        except OSError as e:
            self._skip_source(outcome, source_dir, e, f"Could not access '{source_dir}'.")
            return

        key = (st.st_dev, st.st_ino)
        if key in self._visiting:
            # a linked folder pointing back at one of its own ancestors
            loop = OSError(errno.ELOOP, "Folder link loops back to an ancestor", str(source_dir))
            self._skip_source(outcome, source_dir, loop, f"Skipped folder '{source_dir}'.")
            return

        self._visiting.add(key)
        try:
            self._mirror_dir(source_dir, replica_dir, outcome)
        finally:
            self._visiting.discard(key)

    def _mirror_dir(self, source_dir: Path, replica_dir: Path, outcome: CycleOutcome) -> None:
        if not self._ensure_dir(replica_dir, outcome):
            return

        try:
            files, dirs = self._list_source(source_dir)
        except OSError as e:
            self._skip_source(outcome, source_dir, e, f"Could not access contents of '{source_dir}'.")
            return

        for src in files:
            if self._cancelled(outcome):
                return
            self._mirror_file(src, replica_dir / src.name, outcome)

        for src in dirs:
            if self._cancelled(outcome):
                return
            self.mirror(src, replica_dir / src.name, outcome)

    def _ensure_dir(self, replica_dir: Path, outcome: CycleOutcome) -> bool:
        try:
            if replica_dir.is_dir() and not replica_dir.is_symlink():
                return True
            if replica_dir.exists() or replica_dir.is_symlink():
                replica_dir.unlink()
                self._record(outcome, ActionKind.DELETE_FILE, replica_dir, f"Deleted file '{replica_dir}'.")
            replica_dir.mkdir(parents=True)
            self._record(outcome, ActionKind.CREATE_DIR, replica_dir, f"Created folder '{replica_dir}'.")
            return True
        except OSError as e:
            self._fail(outcome, replica_dir, e, f"Could not create folder '{replica_dir}'.", is_dir=True)
            return False

    def _mirror_file(self, src: Path, dst: Path, outcome: CycleOutcome) -> None:
        try:
            if self.comparator(src, dst):
                return
        except ComparisonError as e:
            self._fail(outcome, e.path, e.cause, f"Could not compare '{src}' with '{dst}'.")
            return

        try:
            if dst.is_dir() and not dst.is_symlink():
                shutil.rmtree(dst)
                self._record(outcome, ActionKind.DELETE_DIR, dst, f"Deleted folder '{dst}'.")
            shutil.copy2(src, dst)
            self._record(outcome, ActionKind.COPY_FILE, dst, f"Copied file from '{src}' to '{dst}'.")
        except OSError as e:
            self._fail(outcome, src, e, f"Could not copy '{src}' to '{dst}'.")

    # prune pass

    def prune(self, replica_dir: Path, source_dir: Path, outcome: CycleOutcome) -> None:
        # an unreadable source folder must never look empty
        if source_dir in outcome.unlisted:
            return
        try:
            source_files, source_dirs = self._list_source(source_dir)
        except OSError as e:
            self._fail(outcome, source_dir, e, f"Could not access contents of '{source_dir}'.", is_dir=True)
            return

        try:
            replica_files, replica_dirs = list_dir(replica_dir, follow_symlinks=False)
        except OSError as e:
            self._fail(outcome, replica_dir, e, f"Could not access contents of '{replica_dir}'.", is_dir=True)
            return

        keep_files = {p.name for p in source_files}
        keep_dirs = {p.name for p in source_dirs}

        for path in replica_files:
            if self._cancelled(outcome):
                return
            if path.name in keep_files:
                continue
            try:
                path.unlink()
                self._record(outcome, ActionKind.DELETE_FILE, path, f"Deleted file '{path}'.")
            except OSError as e:
                self._fail(outcome, path, e, f"Could not delete file '{path}'.")

        for path in replica_dirs:
            if self._cancelled(outcome):
                return
            if path.name in keep_dirs:
                self.prune(path, source_dir / path.name, outcome)
                continue
            try:
                shutil.rmtree(path)
                self._record(outcome, ActionKind.DELETE_DIR, path, f"Deleted folder '{path}'.")
            except OSError as e:
                self._fail(outcome, path, e, f"Could not delete folder '{path}'.", is_dir=True)

    # helpers

    def _list_source(self, source_dir: Path) -> tuple[list[Path], list[Path]]:
        files, dirs = list_dir(source_dir)
        if self.ignore is None:
            return files, dirs
        files = [p for p in files if not self.ignore.is_ignored(p, is_dir=False)]
        dirs = [p for p in dirs if not self.ignore.is_ignored(p, is_dir=True)]
        return files, dirs

    def _cancelled(self, outcome: CycleOutcome) -> bool:
        if self.stop_event.is_set():
            outcome.cancelled = True
        return outcome.cancelled

    def _record(self, outcome: CycleOutcome, kind: str, path: Path, message: str) -> None:
        try:
            rel = path.relative_to(self.replica_root)
        except ValueError:
            rel = path
        outcome.actions.append(SyncAction(kind, rel))
        is_dir = kind in (ActionKind.CREATE_DIR, ActionKind.DELETE_DIR)
        log_event(self.logger, ACTION_LABELS[kind], message, path=path, is_dir=is_dir)

    def _fail(self, outcome: CycleOutcome, path: Path, error: BaseException, message: str, is_dir: bool = False) -> None:
        outcome.errors.append((path, error))
        log_event(self.logger, Label.ERROR, f"{message} {error}", path=path, is_dir=is_dir)

    def _skip_source(self, outcome: CycleOutcome, source_dir: Path, error: BaseException, message: str) -> None:
        outcome.unlisted.add(source_dir)
        self._fail(outcome, source_dir, error, message, is_dir=True)


# -------------------------
# Scheduler thread
# -------------------------

class SchedulerState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class SyncScheduler(threading.Thread):
    """
    Runs one synchronization cycle per interval until stopped.

    The interval is measured from the start of a cycle. ``stop()`` wakes the
    wait immediately; a cycle already in progress stops at its next entry.
    """

    def __init__(
        self,
        synchronizer: FolderSynchronizer,
        interval_sec: float,
        logger: logging.Logger,
        stop_event: Optional[threading.Event] = None,
    ):
        super().__init__(name="folder-sync", daemon=True)
        if interval_sec <= 0:
            raise ValueError(f"interval must be positive, got {interval_sec}")
        self.synchronizer = synchronizer
        self.interval_sec = float(interval_sec)
        self.logger = logger
        self.stop_event = stop_event or synchronizer.stop_event
        self.state = SchedulerState.IDLE
        self.cycles = 0
        self.last_outcome: Optional[CycleOutcome] = None
        self._state_guard = threading.Lock()

    def stop(self) -> None:
        self.stop_event.set()
        with self._state_guard:
            if self.state is SchedulerState.IDLE:
                self.state = SchedulerState.STOPPED

    def run(self) -> None:
        with self._state_guard:
            if self.state is not SchedulerState.IDLE:
                return
            if self.stop_event.is_set():
                self.state = SchedulerState.STOPPED
                return
            self.state = SchedulerState.RUNNING

        log_event(self.logger, Label.DEBUG, f"Execution started (interval={self.interval_sec:g}s).")
        try:
            while not self.stop_event.is_set():
                start = time.monotonic()
                self.run_once()

                elapsed = time.monotonic() - start
                self.stop_event.wait(max(0.0, self.interval_sec - elapsed))
            log_event(self.logger, Label.INFO, "Cancellation requested, synchronization stopped.")
        finally:
            with self._state_guard:
                self.state = SchedulerState.STOPPED

    def run_once(self) -> Optional[CycleOutcome]:
        log_event(self.logger, Label.INFO, "Starting synchronization.")
        try:
            outcome = self.synchronizer.run_cycle()
        except Exception as e:
            log_event(self.logger, Label.ERROR, f"Synchronization failed: {type(e).__name__}: {e}")
            log_event(self.logger, Label.DEBUG, "Traceback of the failed synchronization:", exc_info=True)
            self.cycles += 1
            return None

        self.last_outcome = outcome
        self.cycles += 1
        changes = len(outcome.actions)
        if outcome.cancelled:
            log_event(self.logger, Label.INFO, f"Synchronization cancelled after {changes} change(s).")
        elif outcome.errors:
            log_event(self.logger, Label.INFO, f"Synchronization completed with {len(outcome.errors)} error(s), {changes} change(s).")
        else:
            log_event(self.logger, Label.INFO, f"Synchronization completed, {changes} change(s).")
        return outcome


# -------------------------
# Main
# -------------------------

def header_lines(cfg: AppConfig, source: Path, replica: Path) -> list[str]:
    return [
        "# Log file for folder_sync",
        f"# Date: {format_utc(dt.datetime.now(dt.timezone.utc))}",
        f"# Version: {__version__}",
        f"# Source Folder: {source}",
        f"# Replica Folder: {replica}",
        f"# Synchronization Interval: {cfg.interval_sec}s",
        f"# Comparison: {cfg.compare}",
    ]


def run_sync(cfg: AppConfig, save: bool, logger: logging.Logger) -> int:
    """Validate, then run the scheduler until it is interrupted. Returns the exit status."""
    try:
        source, replica = validate_config(cfg)
    except ConfigError as e:
        log_event(logger, Label.ERROR, f"Config error: {e}")
        return 2

    write_header(logger, header_lines(cfg, source, replica))

    if save:
        try:
            save_config_file(cfg, source, replica)
            log_event(logger, Label.DEBUG, f"Saved config: {CONFIG_PATH}")
        except OSError as e:
            log_event(logger, Label.ERROR, f"Could not save config: {e}")

    ignore = IgnoreMatcher(source, list(cfg.ignore_patterns)) if cfg.ignore_patterns else None
    stop_event = threading.Event()
    synchronizer = FolderSynchronizer(
        source,
        replica,
        get_comparator(cfg.compare),
        logger,
        ignore=ignore,
        stop_event=stop_event,
    )
    scheduler = SyncScheduler(synchronizer, cfg.interval_sec, logger, stop_event)

    log_event(logger, Label.INFO, "Starting synchronizer... (Ctrl+C to stop)")
    scheduler.start()

    try:
        while scheduler.is_alive():
            scheduler.join(0.5)
    except KeyboardInterrupt:
        log_event(logger, Label.INFO, "Stopping...")
    finally:
        scheduler.stop()
        scheduler.join(timeout=SHUTDOWN_TIMEOUT_SEC)
        if scheduler.is_alive():
            log_event(logger, Label.ERROR, "Synchronization did not stop in time, exiting anyway.")
        else:
            log_event(logger, Label.INFO, "Stopped.")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    cfg = build_effective_config(args)

    with open_log_sink(cfg.log_path, debug=cfg.debug) as logger:
        try:
            return run_sync(cfg, not args.no_save, logger)
        except KeyboardInterrupt:
            log_event(logger, Label.INFO, "Interrupted, exiting.")
            return 0


if __name__ == "__main__":
    raise SystemExit(main())
