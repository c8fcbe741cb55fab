from __future__ import annotations

import logging
import re
import subprocess
from typing import Protocol

import markdown
from markdown.extensions import Extension

from .config import BuildConfig
from .errors import RenderError

logger = logging.getLogger(__name__)

TAG_RE = re.compile(r"<[^>]+>")


class Renderer(Protocol):
    name: str

    def render(self, text: str) -> str: ...


class EscapeRawHtmlExtension(Extension):
    """Treat raw HTML in the source as literal text instead of passing it through."""

    def extendMarkdown(self, md):
        md.preprocessors.deregister("html_block", strict=False)
        md.inlinePatterns.deregister("html", strict=False)


class MarkdownRenderer:
    name = "markdown"

    def __init__(self, smart: bool = True, allow_raw_html: bool = True, highlight_code: bool = False):
        self.smart = smart
        self.allow_raw_html = allow_raw_html
        self.highlight_code = highlight_code

    def _extensions(self) -> tuple[list, dict]:
        extensions: list = ["fenced_code", "tables"]
        configs: dict = {}
        if self.smart:
            extensions.append("smarty")
        if self.highlight_code:
            extensions.append("codehilite")
            configs["codehilite"] = {"css_class": "codehilite", "guess_lang": False}
        if not self.allow_raw_html:
            extensions.append(EscapeRawHtmlExtension())
        return extensions, configs

    def render(self, text: str) -> str:
        extensions, configs = self._extensions()
        try:
            # Markdown instances keep per-document state, so each call gets its own.
            md = markdown.Markdown(extensions=extensions, extension_configs=configs)
            return md.convert(text)
        except Exception as exc:
            raise RenderError(f"markdown conversion failed: {exc}") from exc


class CmarkRenderer:
    name = "cmark"

    def __init__(
        self,
        command: str = "cmark",
        smart: bool = True,
        allow_raw_html: bool = True,
        timeout: float | None = 30.0,
    ):
        self.command = command
        self.smart = smart
        self.allow_raw_html = allow_raw_html
        self.timeout = timeout

    def argv(self) -> list[str]:
        args = [self.command]
        if self.smart:
            args.append("--smart")
        if self.allow_raw_html:
            args.append("--unsafe")
        return args

    def render(self, text: str) -> str:
        argv = self.argv()
        try:
            result = subprocess.run(
                argv,
                input=text,
                capture_output=True,
                text=True,
                encoding="utf-8",
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise RenderError(f"renderer not found: {self.command}") from exc
        except subprocess.TimeoutExpired as exc:
            raise RenderError(f"{self.command} timed out after {self.timeout}s") from exc
        except OSError as exc:
            raise RenderError(f"could not run {self.command}: {exc}") from exc
        if result.returncode != 0:
            detail = (result.stderr or "").strip()
            message = f"{self.command} exited with status {result.returncode}"
            if detail:
                message = f"{message}: {detail}"
            raise RenderError(message)
        return result.stdout


def make_renderer(config: BuildConfig) -> Renderer:
    if config.renderer == "markdown":
        return MarkdownRenderer(
            smart=config.smart,
            allow_raw_html=config.allow_raw_html,
            highlight_code=config.highlight_code,
        )
    if config.renderer == "cmark":
        if config.highlight_code:
            logger.warning("highlight_code is ignored by the cmark renderer")
        return CmarkRenderer(
            command=config.cmark_command,
            smart=config.smart,
            allow_raw_html=config.allow_raw_html,
            timeout=config.render_timeout or None,
        )
    raise ValueError(f"Unknown renderer: {config.renderer}")


def normalize_html(html_text: str, indent: int = 6) -> str:
    """Indent every line by ``indent`` spaces and strip trailing whitespace.

    Lines that are blank after stripping come out empty; every line, the last
    one included, ends with a newline.
    """
    margin = " " * indent
    lines = [(margin + line).rstrip() for line in html_text.splitlines()]
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def render_document(renderer: Renderer, text: str, indent: int = 6) -> str:
    return normalize_html(renderer.render(text), indent)


def strip_tags(html_text: str) -> str:
    return TAG_RE.sub("", html_text)
