from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, Iterable

from .builder import BuildReport, run_build
from .config import BuildConfig
from .content import SOURCE_SUFFIX

logger = logging.getLogger(__name__)


def watched_paths(config: BuildConfig) -> list[Path]:
    """Sources and template fragments. Generated pages and the feed are never watched."""
    paths = list(config.template_paths)
    try:
        paths.extend(path for path in config.source_dir.iterdir() if path.suffix == SOURCE_SUFFIX)
    except OSError:
        pass
    return paths


def snapshot(paths: Iterable[Path]) -> dict[Path, int]:
    state = {}
    for path in paths:
        try:
            state[path] = path.stat().st_mtime_ns
        except OSError:
            continue
    return state


def diff_snapshots(old: dict[Path, int], new: dict[Path, int]) -> set[Path]:
    changed = {path for path, mtime in new.items() if old.get(path) != mtime}
    changed.update(path for path in old if path not in new)
    return changed


class ChangeWatcher:
    """Poll a set of paths and hand back debounced batches of changes.

    ``next_changes`` blocks until something changes, then keeps collecting
    until nothing new shows up for ``debounce`` seconds. The baseline is only
    advanced when changes are returned, so edits made while the caller is busy
    are reported on the next call.
    """

    def __init__(
        self,
        collect: Callable[[], Iterable[Path]],
        poll_interval: float = 0.1,
        debounce: float = 0.2,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.collect = collect
        self.poll_interval = poll_interval
        self.debounce = debounce
        self.sleep = sleep
        self.clock = clock
        self.state = snapshot(collect())

    def poll(self) -> set[Path]:
        current = snapshot(self.collect())
        changed = diff_snapshots(self.state, current)
        if changed:
            self.state = current
        return changed

    def next_changes(self) -> set[Path]:
        pending = self.poll()
        while not pending:
            self.sleep(self.poll_interval)
            pending = self.poll()
        quiet_since = self.clock()
        while self.clock() - quiet_since < self.debounce:
            self.sleep(self.poll_interval)
            more = self.poll()
            if more:
                pending |= more
                quiet_since = self.clock()
        return pending


def watch(
    config: BuildConfig,
    on_report: Callable[[BuildReport], None] | None = None,
    watcher: ChangeWatcher | None = None,
    max_runs: int | None = None,
) -> None:
    """Build once, then rebuild after every debounced batch of changes.

    Runs until interrupted, or until ``max_runs`` rebuilds have happened.
    """

    def build() -> None:
        try:
            report = run_build(config)
        except OSError as exc:
            logger.error("Build failed: %s", exc)
            return
        if on_report is not None:
            on_report(report)

    if watcher is None:
        watcher = ChangeWatcher(
            lambda: watched_paths(config),
            poll_interval=config.poll_interval,
            debounce=config.debounce,
        )
    build()
    runs = 0
    while max_runs is None or runs < max_runs:
        changes = watcher.next_changes()
        logger.info("Detected %d change(s): %s", len(changes), ", ".join(sorted(str(p) for p in changes)))
        build()
        runs += 1
