import os
import time
from pathlib import Path

import pytest

from blogbuild.config import BuildConfig
from blogbuild.errors import RenderError

BASE_MTIME = 1_000_000_000


class StubRenderer:
    """Wraps the text in a paragraph; fails on any document containing FAIL."""

    name = "stub"

    def render(self, text: str) -> str:
        if "FAIL" in text:
            raise RenderError("stub renderer refused the document")
        return f"<p>{text.strip()}</p>\n"


def set_mtime(path: Path, seconds: float) -> None:
    ns = int(seconds * 1_000_000_000)
    os.utime(path, ns=(ns, ns))


@pytest.fixture
def touch():
    def _touch(path: Path, seconds: float | None = None) -> None:
        set_mtime(path, time.time() + 1000 if seconds is None else seconds)

    return _touch


@pytest.fixture
def make_blog(tmp_path):
    """Create a blog tree under ``tmp_path / name`` and return its config."""

    def _make(
        posts: dict[str, str],
        name: str = "site",
        header: str = "<html><body>",
        style: str | None = "",
        footer: str = "</body></html>",
        **overrides,
    ) -> BuildConfig:
        root = tmp_path / name
        source_dir = root / "blog"
        template_dir = root / "build"
        source_dir.mkdir(parents=True)
        template_dir.mkdir(parents=True)
        (template_dir / "header.html").write_text(header, encoding="utf-8")
        (template_dir / "footer.html").write_text(footer, encoding="utf-8")
        if style is not None:
            (template_dir / "style.css").write_text(style, encoding="utf-8")
        for fragment in template_dir.iterdir():
            set_mtime(fragment, BASE_MTIME)
        for filename, text in posts.items():
            path = source_dir / filename
            path.write_text(text, encoding="utf-8")
            set_mtime(path, BASE_MTIME)
        values = {
            "source_dir": source_dir,
            "template_dir": template_dir,
            "feed_output_path": source_dir / "atom.xml",
            "site_root": root,
            "lock_file": root / "build.lock.json",
            "build_workers": 2,
        }
        values.update(overrides)
        return BuildConfig(**values)

    return _make


@pytest.fixture
def stub_renderer():
    return StubRenderer()
