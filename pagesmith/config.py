from __future__ import annotations

import json
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from .errors import ConfigError
from .render import DEFAULT_RENDER_CONFIG, RenderConfig
from .styles import MODES
from .utils import parse_bool, parse_int, parse_list

LAYOUTS = ("nested", "flat")
MAX_WORKERS = 32
FEED_LIMIT = 20


@dataclass(frozen=True)
class BuildConfig:
    posts_root: Path = Path("posts")
    template_root: Path = Path("tmpl")
    output_root: Path = Path("public")
    project_root: Path = Path(".")
    mode: str = "development"
    layout: str = "nested"
    workers: int = 0
    fail_fast: bool = False
    include_drafts: bool = False
    require_template: bool = True
    default_template: str = "_base.html"
    strict_placeholders: bool = False
    source_suffixes: tuple[str, ...] = ()
    clean: bool = False
    site_url: str = ""
    site_name: str = ""
    site_description: str = ""
    feed_limit: int = FEED_LIMIT
    enable_feed: bool = True
    enable_index: bool = True
    render: RenderConfig = field(default=DEFAULT_RENDER_CONFIG)

    def __post_init__(self) -> None:
        if self.mode not in MODES:
            raise ConfigError(f"Unknown build mode {self.mode!r}, expected one of: {', '.join(MODES)}")
        if self.layout not in LAYOUTS:
            raise ConfigError(f"Unknown output layout {self.layout!r}, expected one of: {', '.join(LAYOUTS)}")

    def resolved_workers(self) -> int:
        workers = self.workers
        if workers <= 0:
            workers = os.cpu_count() or 1
        return max(1, min(workers, MAX_WORKERS))


def load_config(path: Path) -> dict:
    if not path.exists():
        return {}
    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")
    if suffix == ".toml":
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid TOML in config file: {exc}", path) from exc
        return data
    if suffix in {".yml", ".yaml"}:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in config file: {exc}", path) from exc
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError("YAML config must be a mapping", path)
        return data
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in config file: {exc}", path) from exc
    if not isinstance(data, dict):
        raise ConfigError("JSON config must be a mapping", path)
    return data


def normalize_suffixes(value: object) -> tuple[str, ...]:
    if not value:
        return ()
    items = value if isinstance(value, (list, tuple)) else parse_list(str(value))
    suffixes = []
    for item in items:
        item = str(item).strip().lower()
        if not item:
            continue
        suffixes.append(item if item.startswith(".") else f".{item}")
    return tuple(suffixes)


def render_config_from_mapping(mapping: Mapping[str, Any]) -> RenderConfig:
    extensions = mapping.get("markdown_extensions")
    if extensions is None:
        extensions = DEFAULT_RENDER_CONFIG.extensions
    elif isinstance(extensions, str):
        extensions = parse_list(extensions)
    return RenderConfig(
        extensions=tuple(str(name) for name in extensions),
        tab_length=parse_int(mapping.get("tab_length"), DEFAULT_RENDER_CONFIG.tab_length),
        highlight=parse_bool(mapping.get("highlight", True)),
    )


def config_from_mapping(mapping: Mapping[str, Any], base_dir: Path = Path(".")) -> BuildConfig:
    """Build a ``BuildConfig`` from loose config values.

    Relative paths resolve against ``base_dir``. Missing keys fall back to the
    ``BuildConfig`` defaults.
    """
    defaults = BuildConfig()

    def path_value(key: str, default: Path) -> Path:
        value = mapping.get(key)
        path = Path(str(value)) if value not in (None, "") else default
        if not path.is_absolute():
            path = base_dir / path
        return path

    def str_value(key: str, default: str) -> str:
        value = mapping.get(key)
        return default if value is None else str(value).strip()

    def bool_value(key: str, default: bool) -> bool:
        value = mapping.get(key)
        return default if value is None else parse_bool(value)

    return BuildConfig(
        posts_root=path_value("posts_root", defaults.posts_root),
        template_root=path_value("template_root", defaults.template_root),
        output_root=path_value("output_root", defaults.output_root),
        project_root=path_value("project_root", defaults.project_root),
        mode=str_value("mode", defaults.mode),
        layout=str_value("layout", defaults.layout),
        workers=parse_int(mapping.get("workers"), defaults.workers),
        fail_fast=bool_value("fail_fast", defaults.fail_fast),
        include_drafts=bool_value("include_drafts", defaults.include_drafts),
        require_template=bool_value("require_template", defaults.require_template),
        default_template=str_value("default_template", defaults.default_template),
        strict_placeholders=bool_value("strict_placeholders", defaults.strict_placeholders),
        source_suffixes=normalize_suffixes(mapping.get("source_suffixes")),
        clean=bool_value("clean", defaults.clean),
        site_url=str_value("site_url", defaults.site_url),
        site_name=str_value("site_name", defaults.site_name),
        site_description=str_value("site_description", defaults.site_description),
        feed_limit=max(0, parse_int(mapping.get("feed_limit"), defaults.feed_limit)),
        enable_feed=bool_value("enable_feed", defaults.enable_feed),
        enable_index=bool_value("enable_index", defaults.enable_index),
        render=render_config_from_mapping(mapping),
    )
