from __future__ import annotations

from pathlib import Path


class BlogBuildError(Exception):
    pass


class RenderError(BlogBuildError):
    """Markdown conversion failed for a single document."""


class FeedError(BlogBuildError):
    """A page could not be turned into a feed entry."""

    def __init__(self, path: Path, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason
