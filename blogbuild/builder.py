from __future__ import annotations

import enum
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from .cache import MtimeStaleness, StalenessStrategy, make_strategy
from .config import BuildConfig
from .content import SourceDocument, iter_sources
from .errors import RenderError
from .feed import FeedResult, generate_feed
from .pages import Template, compose_page, load_template, write_page
from .render import Renderer, make_renderer, render_document

logger = logging.getLogger(__name__)


class Phase(enum.Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    BUILDING = "building"
    FEED_GENERATING = "feed-generating"
    DONE = "done"
    FAILED = "failed"


@dataclass
class BuildReport:
    built: list[Path] = field(default_factory=list)
    skipped: list[Path] = field(default_factory=list)
    failed: dict[Path, str] = field(default_factory=dict)
    feed: FeedResult | None = None
    phase: Phase = Phase.IDLE
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1


class Builder:
    """One incremental build: discover, rebuild stale pages, then regenerate the feed."""

    def __init__(
        self,
        config: BuildConfig,
        renderer: Renderer | None = None,
        strategy: StalenessStrategy | None = None,
    ):
        self.config = config
        self.renderer = renderer or make_renderer(config)
        self.strategy = strategy or make_strategy(config)
        self.phase = Phase.IDLE

    def _enter(self, phase: Phase, report: BuildReport) -> None:
        logger.debug("Build phase: %s -> %s", self.phase.value, phase.value)
        self.phase = phase
        report.phase = phase

    def discover(self) -> tuple[Template, list[SourceDocument]]:
        template = load_template(self.config)
        docs = list(iter_sources(self.config.source_dir))
        return template, docs

    def build_one(self, doc: SourceDocument, template: Template) -> None:
        body = render_document(self.renderer, doc.read_text(), self.config.indent)
        data = compose_page(template, body)
        min_mtime = None
        if isinstance(self.strategy, MtimeStaleness):
            min_mtime = self.strategy.required_mtime_ns(doc, template)
        write_page(doc.output_path, data, min_mtime_ns=min_mtime)

    def _job(self, doc: SourceDocument, template: Template) -> str | None:
        try:
            self.build_one(doc, template)
        except (RenderError, OSError, UnicodeDecodeError) as exc:
            logger.error("Failed to build %s: %s", doc.path, exc)
            return str(exc)
        logger.info("Built %s", doc.output_path)
        return None

    def select_stale(
        self, docs: list[SourceDocument], template: Template, report: BuildReport
    ) -> list[SourceDocument]:
        stale = []
        for doc in docs:
            try:
                is_stale = self.strategy.is_stale(doc, doc.output_path, template)
            except OSError as exc:
                logger.error("Failed to check %s: %s", doc.path, exc)
                report.failed[doc.path] = str(exc)
                self.strategy.forget(doc)
                continue
            if is_stale:
                stale.append(doc)
            else:
                logger.debug("Up to date: %s", doc.output_path)
                report.skipped.append(doc.path)
        return stale

    def run(self) -> BuildReport:
        """Run the build.

        Discovery problems (unreadable source directory, missing template
        fragments) move the run to ``Phase.FAILED`` and re-raise before
        anything is written. Per-document failures are recorded in the report.
        """
        start = time.perf_counter()
        report = BuildReport()
        self._enter(Phase.DISCOVERING, report)
        try:
            template, docs = self.discover()
        except OSError:
            self._enter(Phase.FAILED, report)
            raise

        self._enter(Phase.BUILDING, report)
        stale = self.select_stale(docs, template, report)
        workers = min(self.config.workers, len(stale)) if stale else 1
        if workers > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                outcomes = list(executor.map(lambda d: self._job(d, template), stale))
        else:
            outcomes = [self._job(doc, template) for doc in stale]
        for doc, error in zip(stale, outcomes):
            if error is None:
                report.built.append(doc.path)
                self.strategy.record(doc, doc.output_path, template)
            else:
                report.failed[doc.path] = error
                self.strategy.forget(doc)
        self.strategy.save(docs, template)

        self._enter(Phase.FEED_GENERATING, report)
        try:
            report.feed = generate_feed(docs, template, self.config)
        except OSError as exc:
            logger.error("Failed to write feed %s: %s", self.config.feed_output_path, exc)
            report.failed[self.config.feed_output_path] = str(exc)

        self._enter(Phase.DONE, report)
        report.elapsed = time.perf_counter() - start
        return report


def run_build(
    config: BuildConfig,
    renderer: Renderer | None = None,
    strategy: StalenessStrategy | None = None,
) -> BuildReport:
    return Builder(config, renderer=renderer, strategy=strategy).run()


def format_report(report: BuildReport) -> list[str]:
    lines = [
        f"Built {len(report.built)}, skipped {len(report.skipped)}, "
        f"failed {len(report.failed)} in {report.elapsed:.2f}s."
    ]
    for path, reason in sorted(report.failed.items()):
        lines.append(f"  FAILED {path}: {reason}")
    if report.feed is not None:
        state = "written" if report.feed.written else "unchanged"
        lines.append(f"Feed {report.feed.path} {state} ({len(report.feed.entries)} entries).")
        for path, reason in sorted(report.feed.omitted.items()):
            lines.append(f"  OMITTED {path}: {reason}")
    return lines
