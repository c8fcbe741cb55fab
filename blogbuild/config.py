from __future__ import annotations

import argparse
import json
import sys
import tomllib
from dataclasses import dataclass, fields
from pathlib import Path

import yaml

from .utils import parse_bool, parse_float, parse_int, resolve_workers

RENDERERS = ("markdown", "cmark")
STALENESS_MODES = ("mtime", "hash")


def load_config(path: Path) -> dict:
    if not path.exists():
        return {}
    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")
    if suffix == ".toml":
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            print(f"Invalid TOML in config file {path}: {exc}", file=sys.stderr)
            sys.exit(1)
        return data
    if suffix in {".yml", ".yaml"}:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            print(f"Invalid YAML in config file {path}: {exc}", file=sys.stderr)
            sys.exit(1)
        if data is None:
            return {}
        if not isinstance(data, dict):
            print(f"YAML config must be a mapping: {path}", file=sys.stderr)
            sys.exit(1)
        return data
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        print(f"Invalid JSON in config file {path}: {exc}", file=sys.stderr)
        sys.exit(1)
    if not isinstance(data, dict):
        print(f"JSON config must be an object: {path}", file=sys.stderr)
        sys.exit(1)
    return data


@dataclass(frozen=True)
class BuildConfig:
    """Everything a build or watch run needs, passed explicitly to each component."""

    source_dir: Path = Path("blog")
    template_dir: Path = Path("build")
    feed_output_path: Path = Path("blog/atom.xml")
    header_file: str = "header.html"
    style_file: str = "style.css"
    footer_file: str = "footer.html"
    site_url: str = ""
    site_name: str = "Blog"
    site_root: Path = Path(".")
    renderer: str = "markdown"
    cmark_command: str = "cmark"
    smart: bool = True
    allow_raw_html: bool = True
    highlight_code: bool = False
    indent: int = 6
    staleness: str = "mtime"
    lock_file: Path = Path("build.lock.json")
    build_workers: int = 0
    feed_limit: int = 20
    summary_length: int = 280
    render_timeout: float = 30.0
    debounce: float = 0.2
    poll_interval: float = 0.1

    @property
    def template_paths(self) -> tuple[Path, Path, Path]:
        return (
            self.template_dir / self.header_file,
            self.template_dir / self.style_file,
            self.template_dir / self.footer_file,
        )

    @property
    def workers(self) -> int:
        return resolve_workers(self.build_workers)

    def render_settings(self) -> str:
        """Stable description of everything that changes rendered output besides inputs."""
        return "|".join(
            [
                self.renderer,
                f"smart={self.smart}",
                f"raw_html={self.allow_raw_html}",
                f"highlight={self.highlight_code}",
                f"indent={self.indent}",
            ]
        )

    @classmethod
    def from_mapping(cls, data: dict) -> "BuildConfig":
        """Build a config from loosely typed values (a config file or argparse namespace)."""
        defaults = cls()
        values: dict = {}
        known = {f.name for f in fields(cls)}
        for name in known:
            default = getattr(defaults, name)
            raw = data.get(name)
            if raw is None:
                values[name] = default
            elif isinstance(default, bool):
                values[name] = parse_bool(raw)
            elif isinstance(default, int):
                values[name] = parse_int(raw, default)
            elif isinstance(default, float):
                values[name] = parse_float(raw, default)
            elif isinstance(default, Path):
                values[name] = Path(str(raw))
            else:
                values[name] = str(raw)
        if values["renderer"] not in RENDERERS:
            raise ValueError(f"Unknown renderer {values['renderer']!r}; expected one of {', '.join(RENDERERS)}")
        if values["staleness"] not in STALENESS_MODES:
            raise ValueError(
                f"Unknown staleness mode {values['staleness']!r}; expected one of {', '.join(STALENESS_MODES)}"
            )
        return cls(**values)

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "BuildConfig":
        return cls.from_mapping(vars(args))
