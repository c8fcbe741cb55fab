from __future__ import annotations

import hashlib
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from .config import BuildConfig


@dataclass(frozen=True)
class Template:
    header: bytes
    style: bytes
    footer: bytes
    mtime_ns: int = 0

    def digest(self) -> str:
        digest = hashlib.sha256()
        for part in (self.header, self.style, self.footer):
            digest.update(part)
            digest.update(b"\0")
        return digest.hexdigest()


def load_template(config: BuildConfig) -> Template:
    """Read the header, style and footer fragments.

    Header and footer are required and raise ``OSError`` when missing. A
    missing style fragment is empty and does not count towards the template
    mtime.
    """
    header_path, style_path, footer_path = config.template_paths
    header = header_path.read_bytes()
    footer = footer_path.read_bytes()
    mtimes = [header_path.stat().st_mtime_ns, footer_path.stat().st_mtime_ns]
    try:
        style = style_path.read_bytes()
        mtimes.append(style_path.stat().st_mtime_ns)
    except FileNotFoundError:
        style = b""
    return Template(header=header, style=style, footer=footer, mtime_ns=max(mtimes))


def compose_page(template: Template, body: str) -> bytes:
    return template.header + template.style + body.encode("utf-8") + template.footer


def extract_body(page: bytes, template: Template) -> bytes:
    prefix = template.header + template.style
    if page.startswith(prefix):
        page = page[len(prefix) :]
    if template.footer and page.endswith(template.footer):
        page = page[: -len(template.footer)]
    return page


def write_page(path: Path, data: bytes, min_mtime_ns: int | None = None) -> None:
    """Atomically replace ``path`` with ``data``.

    When ``min_mtime_ns`` is given and the fresh file would be older than it,
    the file's mtime is moved forward so it never looks stale against its inputs.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.chmod(tmp_name, 0o644)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise
    if min_mtime_ns is not None:
        stat = path.stat()
        if stat.st_mtime_ns < min_mtime_ns:
            os.utime(path, ns=(stat.st_atime_ns, min_mtime_ns))
