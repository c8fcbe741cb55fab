from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Protocol

from .config import BuildConfig
from .content import SourceDocument
from .pages import Template

logger = logging.getLogger(__name__)

LOCK_VERSION = 1


def mtime_ns(path: Path) -> int | None:
    try:
        return path.stat().st_mtime_ns
    except FileNotFoundError:
        return None


def load_lock(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        logger.warning("Ignoring unreadable lock file %s", path)
        return {}
    return data if isinstance(data, dict) else {}


def write_lock(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, sort_keys=True, ensure_ascii=True), encoding="utf-8")


class StalenessStrategy(Protocol):
    name: str

    def is_stale(self, doc: SourceDocument, target: Path, template: Template) -> bool: ...

    def record(self, doc: SourceDocument, target: Path, template: Template) -> None: ...

    def forget(self, doc: SourceDocument) -> None: ...

    def save(self, docs: list[SourceDocument], template: Template) -> None: ...


class MtimeStaleness:
    """A page is stale when it is missing or older than its source or the template.

    Removing a fragment changes the template without moving any mtime forward,
    so the template digest of the last complete build is kept in the lock file
    and a different digest makes every page stale.
    """

    name = "mtime"

    def __init__(self, lock_path: Path | None = None):
        self.lock_path = lock_path
        state = load_lock(lock_path) if lock_path is not None else {}
        self.template_digest = state.get("template") if state.get("version") == LOCK_VERSION else None
        self._complete = True

    def required_mtime_ns(self, doc: SourceDocument, template: Template) -> int:
        return max(doc.mtime_ns, template.mtime_ns)

    def template_changed(self, template: Template) -> bool:
        return self.template_digest is not None and self.template_digest != template.digest()

    def is_stale(self, doc: SourceDocument, target: Path, template: Template) -> bool:
        target_mtime = mtime_ns(target)
        if target_mtime is None or self.template_changed(template):
            return True
        return target_mtime < self.required_mtime_ns(doc, template)

    def record(self, doc: SourceDocument, target: Path, template: Template) -> None:
        pass

    def forget(self, doc: SourceDocument) -> None:
        self._complete = False

    def save(self, docs: list[SourceDocument], template: Template) -> None:
        # a failed page keeps the old digest so the next run retries every page
        if self.lock_path is None:
            return
        if not self._complete and self.template_digest is not None:
            return
        digest = template.digest()
        if digest != self.template_digest:
            write_lock(self.lock_path, {"version": LOCK_VERSION, "template": digest})
            self.template_digest = digest


class HashStaleness:
    """A page is stale when it is missing or its inputs hash differently from the last build.

    Input digests are kept in a JSON lock file keyed by source path.
    """

    name = "hash"

    def __init__(self, lock_path: Path, render_settings: str = ""):
        self.lock_path = lock_path
        self.render_settings = render_settings
        state = load_lock(lock_path)
        pages = state.get("pages", {}) if state.get("version") == LOCK_VERSION else {}
        self.pages: dict[str, str] = {str(key): str(value) for key, value in pages.items()}
        self._digests: dict[str, str] = {}

    def input_digest(self, doc: SourceDocument, template: Template) -> str:
        key = doc.path.as_posix()
        if key not in self._digests:
            digest = hashlib.sha256()
            digest.update(doc.read_bytes())
            digest.update(b"\0")
            digest.update(template.digest().encode("ascii"))
            digest.update(b"\0")
            digest.update(self.render_settings.encode("utf-8"))
            self._digests[key] = digest.hexdigest()
        return self._digests[key]

    def is_stale(self, doc: SourceDocument, target: Path, template: Template) -> bool:
        if not target.exists():
            return True
        return self.pages.get(doc.path.as_posix()) != self.input_digest(doc, template)

    def record(self, doc: SourceDocument, target: Path, template: Template) -> None:
        self.pages[doc.path.as_posix()] = self.input_digest(doc, template)

    def forget(self, doc: SourceDocument) -> None:
        self.pages.pop(doc.path.as_posix(), None)

    def save(self, docs: list[SourceDocument], template: Template) -> None:
        current = {doc.path.as_posix() for doc in docs}
        pages = {key: value for key, value in self.pages.items() if key in current}
        self.pages = pages
        write_lock(self.lock_path, {"version": LOCK_VERSION, "pages": pages})


def make_strategy(config: BuildConfig) -> StalenessStrategy:
    if config.staleness == "mtime":
        return MtimeStaleness(config.lock_file)
    if config.staleness == "hash":
        return HashStaleness(config.lock_file, config.render_settings())
    raise ValueError(f"Unknown staleness mode: {config.staleness}")
