from __future__ import annotations

import datetime as dt
import html
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from .config import BuildConfig
from .content import SourceDocument
from .errors import FeedError
from .pages import Template, extract_body, write_page
from .render import strip_tags
from .utils import EPOCH, iso_date, join_url, parse_iso

logger = logging.getLogger(__name__)

ATOM_NS = "http://www.w3.org/2005/Atom"
ELLIPSIS = "..."
META_TITLE_RE = re.compile(
    r"""<meta\b[^>]*\bname\s*=\s*["']title["'][^>]*\bcontent\s*=\s*["']([^"']*)["']""",
    re.IGNORECASE,
)
H1_RE = re.compile(r"<h1\b[^>]*>(.*?)</h1\s*>", re.IGNORECASE | re.DOTALL)
HEADING_RE = re.compile(r"<h[1-6]\b[^>]*>(.*?)</h[1-6]\s*>", re.IGNORECASE | re.DOTALL)
TIME_RE = re.compile(r"""<time\b[^>]*\bdatetime\s*=\s*["']([^"']*)["']""", re.IGNORECASE)
TIME_ELEMENT_RE = re.compile(r"<time\b[^>]*>.*?</time\s*>", re.IGNORECASE | re.DOTALL)
PARAGRAPH_RE = re.compile(r"<p\b[^>]*>(.*?)</p\s*>", re.IGNORECASE | re.DOTALL)
SPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class FeedEntry:
    title: str
    link: str
    published: dt.datetime
    summary: str
    source: Path


@dataclass
class FeedResult:
    path: Path
    entries: list[FeedEntry] = field(default_factory=list)
    omitted: dict[Path, str] = field(default_factory=dict)
    written: bool = False


def plain_text(fragment: str) -> str:
    text = html.unescape(strip_tags(fragment))
    return SPACE_RE.sub(" ", text).strip()


def truncate(text: str, limit: int) -> str:
    if limit <= 0 or len(text) <= limit:
        return text
    return text[:limit].rstrip() + ELLIPSIS


def extract_title(body: str, fallback: str) -> str:
    match = META_TITLE_RE.search(body)
    if match:
        title = plain_text(match.group(1))
        if title:
            return title
    for pattern in (H1_RE, HEADING_RE):
        match = pattern.search(body)
        if match:
            title = plain_text(match.group(1))
            if title:
                return title
    return fallback


def extract_date(body: str) -> dt.datetime | None:
    for match in TIME_RE.finditer(body):
        parsed = parse_iso(html.unescape(match.group(1)))
        if parsed is not None:
            return parsed
    return None


def extract_summary(body: str, limit: int) -> str:
    for match in PARAGRAPH_RE.finditer(body):
        text = plain_text(TIME_ELEMENT_RE.sub("", match.group(1)))
        if text:
            return truncate(text, limit)
    return ""


def page_link(page: Path, config: BuildConfig) -> str:
    try:
        rel = page.resolve().relative_to(config.site_root.resolve())
    except ValueError:
        rel = Path(page.name)
    return join_url(config.site_url, rel.as_posix())


def read_entry(doc: SourceDocument, template: Template, config: BuildConfig) -> FeedEntry:
    page = doc.output_path
    try:
        raw = page.read_bytes()
    except FileNotFoundError as exc:
        raise FeedError(doc.path, f"page {page} has not been generated") from exc
    except OSError as exc:
        raise FeedError(doc.path, f"could not read {page}: {exc}") from exc
    body = extract_body(raw, template).decode("utf-8", errors="replace")
    published = extract_date(body)
    if published is None:
        raise FeedError(doc.path, 'no parseable <time datetime="..."> marker')
    return FeedEntry(
        title=extract_title(body, doc.path.stem),
        link=page_link(page, config),
        published=published,
        summary=extract_summary(body, config.summary_length),
        source=doc.path,
    )


def sort_entries(entries: list[FeedEntry]) -> list[FeedEntry]:
    by_link = sorted(entries, key=lambda e: e.link)
    return sorted(by_link, key=lambda e: e.published, reverse=True)


def render_atom(entries: list[FeedEntry], config: BuildConfig) -> str:
    site_url = config.site_url.rstrip("/")
    updated = iso_date(entries[0].published) if entries else iso_date(EPOCH)
    feed_link = page_link(config.feed_output_path, config)
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<feed xmlns="{ATOM_NS}">',
        f"<title>{html.escape(config.site_name)}</title>",
        f"<id>{html.escape(site_url + '/' if site_url else feed_link)}</id>",
        f"<updated>{updated}</updated>",
        f'<link href="{html.escape(feed_link)}" rel="self" />',
    ]
    if site_url:
        lines.append(f'<link href="{html.escape(site_url)}/" />')
    for entry in entries:
        link = html.escape(entry.link)
        lines.extend(
            [
                "<entry>",
                f"<title>{html.escape(entry.title)}</title>",
                f'<link href="{link}" />',
                f"<id>{link}</id>",
                f"<updated>{iso_date(entry.published)}</updated>",
                f"<summary>{html.escape(entry.summary)}</summary>",
                "</entry>",
            ]
        )
    lines.append("</feed>")
    return "\n".join(lines) + "\n"


def generate_feed(docs: list[SourceDocument], template: Template, config: BuildConfig) -> FeedResult:
    """Collect entries from every generated page and write the Atom feed.

    Pages without a usable date are left out and listed in ``omitted``. The
    feed file is only rewritten when its content changes.
    """
    if not config.site_url:
        logger.warning("site_url is not set; feed ids in %s are relative links", config.feed_output_path)
    result = FeedResult(path=config.feed_output_path)
    entries = []
    for doc in docs:
        try:
            entries.append(read_entry(doc, template, config))
        except FeedError as exc:
            logger.warning("Omitting %s from feed: %s", doc.path, exc.reason)
            result.omitted[doc.path] = exc.reason
    entries = sort_entries(entries)
    if config.feed_limit > 0:
        entries = entries[: config.feed_limit]
    result.entries = entries

    data = render_atom(entries, config).encode("utf-8")
    try:
        current = config.feed_output_path.read_bytes()
    except FileNotFoundError:
        current = None
    if current != data:
        write_page(config.feed_output_path, data)
        result.written = True
        logger.info("Wrote feed %s (%d entries)", config.feed_output_path, len(entries))
    else:
        logger.debug("Feed %s unchanged", config.feed_output_path)
    return result
