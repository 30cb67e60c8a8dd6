from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Optional, Sequence

from .config import FEED_LIMIT, LAYOUTS, BuildConfig, config_from_mapping, load_config
from .content import SourceDocument
from .errors import BuildError
from .pipeline import BuildReport, build_document, build_site
from .styles import MODES
from .utils import parse_bool, parse_int

logger = logging.getLogger("pagesmith")


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s", stream=sys.stderr)
    logger.setLevel(level)


def build_parser(config: dict, config_path: Path) -> argparse.ArgumentParser:
    config_dir = config_path.resolve().parent

    def cfg_value(key: str, default: object) -> object:
        value = config.get(key)
        return default if value is None else value

    def cfg_str(key: str, default: str) -> str:
        return str(cfg_value(key, default))

    def cfg_path(key: str, default: str) -> str:
        value = config.get(key)
        if value in (None, ""):
            return default
        path = Path(str(value))
        return str(path if path.is_absolute() else config_dir / path)

    def cfg_bool(key: str, default: bool) -> bool:
        return parse_bool(cfg_value(key, default))

    def cfg_int(key: str, default: int) -> int:
        return parse_int(cfg_value(key, default), default)

    parser = argparse.ArgumentParser(description="Build HTML pages from Markdown posts and templates.")
    parser.add_argument("--config", default=str(config_path), help="Path to build config file (TOML/YAML/JSON).")
    parser.add_argument("--posts", default=cfg_path("posts_root", "posts"), help="Directory containing Markdown posts.")
    parser.add_argument(
        "--templates", default=cfg_path("template_root", "tmpl"), help="Directory containing HTML templates."
    )
    parser.add_argument("--output", default=cfg_path("output_root", "public"), help="Output directory for pages.")
    parser.add_argument(
        "--project-root",
        default=cfg_path("project_root", str(config_dir)),
        help="Directory that stylesheet references in templates resolve against.",
    )
    parser.add_argument(
        "--mode",
        choices=MODES,
        default=cfg_str("mode", "development"),
        help="Build mode; production compresses CSS and drops source maps.",
    )
    parser.add_argument(
        "--layout",
        choices=LAYOUTS,
        default=cfg_str("layout", "nested"),
        help="nested writes <name>/index.html, flat writes <name>.html.",
    )
    parser.add_argument(
        "--workers",
        default=cfg_int("workers", 0),
        type=int,
        help="Number of worker threads for building pages (0 = auto).",
    )
    parser.add_argument(
        "--fail-fast",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("fail_fast", False),
        help="Abort on the first document that fails instead of reporting it.",
    )
    parser.add_argument(
        "--include-drafts",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("include_drafts", False),
        help="Build documents marked draft. They never appear in the index or feed.",
    )
    parser.add_argument(
        "--strict-placeholders",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("strict_placeholders", False),
        help="Fail a document when a known placeholder has no value.",
    )
    parser.add_argument(
        "--clean",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("clean", False),
        help="Clean output directory before build.",
    )
    parser.add_argument("--site-url", default=cfg_str("site_url", ""), help="Public site URL used for RSS.")
    parser.add_argument("--site-name", default=cfg_str("site_name", ""), help="Site title used for RSS.")
    parser.add_argument(
        "--site-description", default=cfg_str("site_description", ""), help="Site description used for RSS."
    )
    parser.add_argument(
        "--feed-limit",
        default=cfg_int("feed_limit", FEED_LIMIT),
        type=int,
        help="Maximum number of posts in the RSS feed.",
    )
    parser.add_argument(
        "--enable-feed",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("enable_feed", True),
        help="Generate rss.xml (needs --site-url).",
    )
    parser.add_argument(
        "--enable-index",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("enable_index", True),
        help="Generate posts.json.",
    )
    parser.add_argument("--document", default="", help="Build a single source document, drafts included.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output.")
    return parser


def config_from_args(args: argparse.Namespace, config: dict) -> BuildConfig:
    values = dict(config)
    values.update(
        {
            "posts_root": args.posts,
            "template_root": args.templates,
            "output_root": args.output,
            "project_root": args.project_root,
            "mode": args.mode,
            "layout": args.layout,
            "workers": args.workers,
            "fail_fast": args.fail_fast,
            "include_drafts": args.include_drafts,
            "strict_placeholders": args.strict_placeholders,
            "clean": args.clean,
            "site_url": args.site_url,
            "site_name": args.site_name,
            "site_description": args.site_description,
            "feed_limit": args.feed_limit,
            "enable_feed": args.enable_feed,
            "enable_index": args.enable_index,
        }
    )
    return config_from_mapping(values, Path.cwd())


def print_report(report: BuildReport) -> None:
    print(f"Built {len(report.written)} page(s), skipped {len(report.drafts)} draft(s), {len(report.failures)} failed.")
    for issue in report.warnings:
        print(f"warning: {issue.error}", file=sys.stderr)
    for issue in report.failures:
        print(f"error: {issue.error}", file=sys.stderr)


def run_single(path: Path, config: BuildConfig) -> int:
    result = build_document(SourceDocument.from_path(path), config)
    if result.error is not None:
        print(f"error: {result.error}", file=sys.stderr)
        return 1
    if result.warning is not None:
        print(f"warning: {result.warning}", file=sys.stderr)
    print(f"Page written to: {result.output_path}")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    pre_parser = argparse.ArgumentParser(add_help=False)
    pre_parser.add_argument("--config", default="site.toml")
    pre_args, _ = pre_parser.parse_known_args(argv)
    config_path = Path(pre_args.config)
    try:
        config = load_config(config_path)
    except BuildError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    args = build_parser(config, config_path).parse_args(argv)
    configure_logging(args.verbose)
    start = time.perf_counter()
    try:
        build_config = config_from_args(args, config)
        if args.document:
            return run_single(Path(args.document), build_config)
        report = build_site(build_config)
    except BuildError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    elapsed = time.perf_counter() - start
    print_report(report)
    print(f"Build completed in {elapsed:.2f}s.")
    if report.written:
        print(f"Site generated in: {build_config.output_root}")
    return 0 if report.ok else 1
