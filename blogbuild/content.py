from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

SOURCE_SUFFIX = ".md"
OUTPUT_SUFFIX = ".html"


@dataclass(frozen=True)
class SourceDocument:
    path: Path
    mtime_ns: int

    def read_text(self) -> str:
        return self.path.read_text(encoding="utf-8").lstrip("\ufeff")

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()

    @property
    def output_path(self) -> Path:
        return output_path_for(self.path)


def output_path_for(source: Path) -> Path:
    return source.with_suffix(OUTPUT_SUFFIX)


def list_sources(source_dir: Path) -> list[Path]:
    # iterdir raises for a missing or unreadable directory, unlike glob
    entries = [
        path for path in source_dir.iterdir() if path.suffix == SOURCE_SUFFIX and path.is_file()
    ]
    return sorted(entries, key=lambda p: p.name)


def iter_sources(source_dir: Path) -> Iterator[SourceDocument]:
    """Yield the Markdown sources directly inside ``source_dir``.

    Each call rescans the directory. ``OSError`` propagates when the directory
    is missing or unreadable; a file that vanishes mid-scan is skipped.
    """
    for path in list_sources(source_dir):
        try:
            stat = path.stat()
        except FileNotFoundError:
            continue
        yield SourceDocument(path=path, mtime_ns=stat.st_mtime_ns)
