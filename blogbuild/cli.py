from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .builder import BuildReport, format_report, run_build
from .config import RENDERERS, STALENESS_MODES, BuildConfig, load_config
from .utils import parse_bool, parse_float, parse_int
from .watch import watch

DEFAULTS = BuildConfig()


def print_report(report: BuildReport) -> None:
    for line in format_report(report):
        print(line)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )


def build_parser(config: dict, config_path: str) -> argparse.ArgumentParser:
    def cfg_value(key: str, default: object) -> object:
        value = config.get(key)
        return default if value is None else value

    def cfg_str(key: str, default: object) -> str:
        return str(cfg_value(key, default))

    def cfg_bool(key: str, default: bool) -> bool:
        return parse_bool(cfg_value(key, default))

    def cfg_int(key: str, default: int) -> int:
        return parse_int(cfg_value(key, default), default)

    def cfg_float(key: str, default: float) -> float:
        return parse_float(cfg_value(key, default), default)

    parser = argparse.ArgumentParser(description="Incremental Markdown blog builder.")
    parser.add_argument(
        "command",
        nargs="?",
        choices=("build", "watch"),
        default="build",
        help="build once (default) or keep rebuilding on changes.",
    )
    parser.add_argument("--config", default=config_path, help="Path to config file (TOML/YAML/JSON).")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output.")
    parser.add_argument(
        "--source-dir",
        default=cfg_str("source_dir", DEFAULTS.source_dir),
        help="Directory containing Markdown posts; pages are written next to them.",
    )
    parser.add_argument(
        "--template-dir",
        default=cfg_str("template_dir", DEFAULTS.template_dir),
        help="Directory containing the header, style and footer fragments.",
    )
    parser.add_argument(
        "--feed-output-path",
        default=cfg_str("feed_output_path", DEFAULTS.feed_output_path),
        help="Where to write the Atom feed.",
    )
    parser.add_argument("--header-file", default=cfg_str("header_file", DEFAULTS.header_file), help="Header fragment name.")
    parser.add_argument("--style-file", default=cfg_str("style_file", DEFAULTS.style_file), help="Style fragment name.")
    parser.add_argument("--footer-file", default=cfg_str("footer_file", DEFAULTS.footer_file), help="Footer fragment name.")
    parser.add_argument(
        "--site-url",
        default=cfg_str("site_url", DEFAULTS.site_url),
        help="Public site URL used for feed links.",
    )
    parser.add_argument("--site-name", default=cfg_str("site_name", DEFAULTS.site_name), help="Feed title.")
    parser.add_argument(
        "--site-root",
        default=cfg_str("site_root", DEFAULTS.site_root),
        help="Directory that maps to the site URL; feed links are relative to it.",
    )
    parser.add_argument(
        "--renderer",
        choices=RENDERERS,
        default=cfg_str("renderer", DEFAULTS.renderer),
        help="Markdown backend: in-process python-markdown or the external cmark binary.",
    )
    parser.add_argument(
        "--cmark-command",
        default=cfg_str("cmark_command", DEFAULTS.cmark_command),
        help="cmark executable used by the cmark renderer.",
    )
    parser.add_argument(
        "--smart",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("smart", DEFAULTS.smart),
        help="Smart typography (curly quotes, dashes).",
    )
    parser.add_argument(
        "--allow-raw-html",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("allow_raw_html", DEFAULTS.allow_raw_html),
        help="Pass raw HTML in posts through unchanged.",
    )
    parser.add_argument(
        "--highlight-code",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("highlight_code", DEFAULTS.highlight_code),
        help="Highlight fenced code blocks with Pygments (markdown renderer only).",
    )
    parser.add_argument(
        "--indent",
        type=int,
        default=cfg_int("indent", DEFAULTS.indent),
        help="Spaces added before every line of rendered HTML.",
    )
    parser.add_argument(
        "--staleness",
        choices=STALENESS_MODES,
        default=cfg_str("staleness", DEFAULTS.staleness),
        help="Compare modification times or content hashes to find stale pages.",
    )
    parser.add_argument(
        "--lock-file",
        default=cfg_str("lock_file", DEFAULTS.lock_file),
        help="Path to the build lock JSON (template digest for mtime staleness, page hashes for hash staleness).",
    )
    parser.add_argument(
        "--build-workers",
        type=int,
        default=cfg_int("build_workers", DEFAULTS.build_workers),
        help="Number of worker threads for rendering (0 = auto).",
    )
    parser.add_argument(
        "--feed-limit",
        type=int,
        default=cfg_int("feed_limit", DEFAULTS.feed_limit),
        help="Maximum number of feed entries (0 = all).",
    )
    parser.add_argument(
        "--summary-length",
        type=int,
        default=cfg_int("summary_length", DEFAULTS.summary_length),
        help="Maximum characters in a feed entry summary.",
    )
    parser.add_argument(
        "--render-timeout",
        type=float,
        default=cfg_float("render_timeout", DEFAULTS.render_timeout),
        help="Seconds to wait for the external renderer (0 = no limit).",
    )
    parser.add_argument(
        "--debounce",
        type=float,
        default=cfg_float("debounce", DEFAULTS.debounce),
        help="Quiet window in seconds before a watch rebuild.",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=cfg_float("poll_interval", DEFAULTS.poll_interval),
        help="Seconds between filesystem polls in watch mode.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    pre_parser = argparse.ArgumentParser(add_help=False)
    pre_parser.add_argument(
        "--config",
        default="blog.toml",
        help="Path to config file (TOML/YAML/JSON).",
    )
    pre_args, _ = pre_parser.parse_known_args(argv)
    config_data = load_config(Path(pre_args.config))

    args = build_parser(config_data, pre_args.config).parse_args(argv)
    configure_logging(args.verbose)
    try:
        config = BuildConfig.from_args(args)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    if args.command == "watch":
        print(f"Watching {config.source_dir} and {config.template_dir}. Press Ctrl-C to stop.")
        try:
            watch(config, on_report=print_report)
        except KeyboardInterrupt:
            print("Stopped watching.")
        return 0

    try:
        report = run_build(config)
    except OSError as exc:
        print(f"Build failed: {exc}", file=sys.stderr)
        return 1
    print_report(report)
    return report.exit_code
