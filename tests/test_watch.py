import os
from pathlib import Path

from blogbuild.watch import ChangeWatcher, diff_snapshots, snapshot, watch, watched_paths


class FakeClock:
    """Clock whose sleep advances time and runs one scheduled action per call."""

    def __init__(self, actions=()):
        self.now = 0.0
        self.actions = list(actions)
        self.sleeps = 0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps += 1
        self.now += seconds
        if self.actions:
            self.actions.pop(0)()


def set_mtime(path: Path, seconds: int) -> None:
    os.utime(path, ns=(seconds * 1_000_000_000, seconds * 1_000_000_000))


def make_files(tmp_path, *names):
    paths = []
    for name in names:
        path = tmp_path / name
        path.write_text(name, encoding="utf-8")
        set_mtime(path, 1000)
        paths.append(path)
    return paths


def test_diff_snapshots_reports_changes_creations_and_deletions():
    old = {Path("a"): 1, Path("b"): 2, Path("c"): 3}
    new = {Path("a"): 1, Path("b"): 5, Path("d"): 1}

    assert diff_snapshots(old, new) == {Path("b"), Path("c"), Path("d")}


def test_snapshot_skips_missing_files(tmp_path):
    (existing,) = make_files(tmp_path, "a.md")

    assert snapshot([existing, tmp_path / "gone.md"]) == {existing: existing.stat().st_mtime_ns}


def test_burst_of_changes_is_one_batch(tmp_path):
    a, b = make_files(tmp_path, "a.md", "b.md")
    clock = FakeClock([lambda: set_mtime(a, 2000), lambda: set_mtime(b, 2000)])
    watcher = ChangeWatcher(lambda: [a, b], poll_interval=0.1, debounce=0.2, sleep=clock.sleep, clock=clock)

    assert watcher.next_changes() == {a, b}
    assert clock.sleeps >= 4


def test_deleted_and_created_files_are_reported(tmp_path):
    a, b = make_files(tmp_path, "a.md", "b.md")
    c = tmp_path / "c.md"
    clock = FakeClock([lambda: (b.unlink(), c.write_text("new", encoding="utf-8"))])
    watcher = ChangeWatcher(lambda: sorted(tmp_path.glob("*.md")), sleep=clock.sleep, clock=clock)

    assert watcher.next_changes() == {b, c}


def test_changes_made_between_calls_are_not_lost(tmp_path):
    a, b = make_files(tmp_path, "a.md", "b.md")
    clock = FakeClock([lambda: set_mtime(a, 2000)])
    watcher = ChangeWatcher(lambda: [a, b], sleep=clock.sleep, clock=clock)
    assert watcher.next_changes() == {a}

    set_mtime(b, 3000)
    sleeps_before = clock.sleeps

    assert watcher.next_changes() == {b}
    # only the debounce window was waited out
    assert clock.sleeps - sleeps_before <= 3


def test_watched_paths_excludes_generated_files(make_blog):
    config = make_blog({"a.md": "a"})
    (config.source_dir / "a.html").write_text("<p>a</p>", encoding="utf-8")

    paths = watched_paths(config)

    assert config.source_dir / "a.md" in paths
    assert config.template_dir / "header.html" in paths
    assert config.source_dir / "a.html" not in paths
    assert config.feed_output_path not in paths


def test_watch_rebuilds_after_each_batch(make_blog):
    config = make_blog({"a.md": "# A\n\ntext"})
    source = config.source_dir / "a.md"

    class ScriptedWatcher:
        def next_changes(self):
            source.write_text("# A\n\nchanged", encoding="utf-8")
            os.utime(source, ns=(source.stat().st_atime_ns, source.stat().st_mtime_ns + 10**12))
            return {source}

    reports = []
    watch(config, on_report=reports.append, watcher=ScriptedWatcher(), max_runs=1)

    assert len(reports) == 2
    assert reports[0].built == [source]
    assert reports[1].built == [source]
    assert "changed" in (config.source_dir / "a.html").read_text(encoding="utf-8")


def test_watch_survives_discovery_failure(make_blog):
    config = make_blog({"a.md": "a"})
    header = config.template_dir / "header.html"
    header.unlink()

    class ScriptedWatcher:
        def next_changes(self):
            header.write_text("<html>", encoding="utf-8")
            return {header}

    reports = []
    watch(config, on_report=reports.append, watcher=ScriptedWatcher(), max_runs=1)

    assert len(reports) == 1
    assert reports[0].built == [config.source_dir / "a.md"]
