from __future__ import annotations

import html
import logging
import os
import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import sass

from .errors import CompilationError, ConfigError
from .utils import write_text

logger = logging.getLogger(__name__)

MODES = ("development", "production")
CSS_DIR = "css"
SASS_LINK_RE = re.compile(
    r"<link\b[^>]*(?<![\w-])type\s*=\s*([\"'])text/(?:sass|scss)\1[^>]*>",
    re.IGNORECASE,
)
HREF_RE = re.compile(r"((?<![\w-])href\s*=\s*)([\"'])(.*?)\2", re.IGNORECASE | re.DOTALL)
TYPE_RE = re.compile(r"((?<![\w-])type\s*=\s*)([\"'])text/(?:sass|scss)\2", re.IGNORECASE)


@dataclass(frozen=True)
class CompiledStylesheet:
    source: Path
    output_path: Path
    css: str
    source_map_path: Optional[Path] = None


def stylesheet_output_path(source: Path, output_root: Path) -> Path:
    return output_root / CSS_DIR / f"{source.stem}.css"


def relative_href(target: Path, page_dir: Path) -> str:
    return Path(os.path.relpath(target, page_dir)).as_posix()


def rewrite_link(tag: str, href: str) -> str:
    escaped = html.escape(href)
    tag = HREF_RE.sub(lambda m: f"{m.group(1)}{m.group(2)}{escaped}{m.group(2)}", tag, count=1)
    return TYPE_RE.sub(lambda m: f"{m.group(1)}{m.group(2)}text/css{m.group(2)}", tag, count=1)


def compile_stylesheet(source: Path, output_root: Path, mode: str) -> CompiledStylesheet:
    """Compile one preprocessor source and write the CSS under ``output_root/css``.

    ``production`` emits compressed CSS with no source map; ``development``
    emits expanded CSS plus a ``.map`` file next to it.
    """
    if mode not in MODES:
        raise ConfigError(f"Unknown build mode: {mode!r}")
    output_path = stylesheet_output_path(source, output_root)
    if not source.is_file():
        raise CompilationError("Stylesheet source not found", source)

    map_path = None
    source_map = ""
    try:
        if mode == "production":
            css = sass.compile(filename=str(source), output_style="compressed")
        else:
            map_path = output_path.with_name(f"{output_path.name}.map")
            css, source_map = sass.compile(
                filename=str(source),
                output_style="expanded",
                source_map_filename=str(map_path),
                output_filename_hint=str(output_path),
                source_map_contents=True,
            )
    except sass.CompileError as exc:
        raise CompilationError("Stylesheet failed to compile", source, diagnostic=str(exc)) from exc
    except OSError as exc:
        raise CompilationError("Stylesheet could not be read", source, diagnostic=str(exc)) from exc

    write_text(output_path, css)
    if map_path is not None:
        write_text(map_path, source_map)
    logger.debug("Compiled %s -> %s", source, output_path)
    return CompiledStylesheet(source=source, output_path=output_path, css=css, source_map_path=map_path)


class StylesheetCompiler:
    """Compiles each referenced stylesheet at most once per build.

    Results, failures included, are memoized by resolved source path behind a
    lock, so documents sharing a template can be built from several threads.
    """

    def __init__(self, project_root: Path, output_root: Path, mode: str):
        if mode not in MODES:
            raise ConfigError(f"Unknown build mode: {mode!r}")
        self.project_root = Path(project_root).absolute()
        self.output_root = Path(output_root).absolute()
        self.mode = mode
        self._lock = threading.Lock()
        self._results: dict[Path, Union[CompiledStylesheet, CompilationError]] = {}

    def resolve_source(self, href: str) -> Path:
        if "://" in href or href.startswith("//"):
            raise CompilationError(f"Cannot compile remote stylesheet {href!r}")
        return (self.project_root / href.lstrip("/")).resolve()

    def compile(self, source: Path) -> CompiledStylesheet:
        with self._lock:
            result = self._results.get(source)
            if result is None:
                try:
                    result = compile_stylesheet(source, self.output_root, self.mode)
                except CompilationError as exc:
                    result = exc
                self._results[source] = result
        if isinstance(result, CompilationError):
            raise CompilationError(result.message, result.path, diagnostic=result.diagnostic)
        return result

    def process(self, template_html: str, page_dir: Optional[Path] = None) -> str:
        links = list(SASS_LINK_RE.finditer(template_html))
        if not links:
            return template_html
        if len(links) > 1:
            raise CompilationError(f"Expected one stylesheet preprocessor reference, found {len(links)}")
        link = links[0]
        href_match = HREF_RE.search(link.group(0))
        if href_match is None or not href_match.group(3).strip():
            raise CompilationError("Stylesheet preprocessor reference has no href")

        compiled = self.compile(self.resolve_source(html.unescape(href_match.group(3).strip())))
        # Pages live one directory below the output root unless told otherwise.
        page_dir = page_dir or self.output_root / "_"
        href = relative_href(compiled.output_path, page_dir)
        return f"{template_html[:link.start()]}{rewrite_link(link.group(0), href)}{template_html[link.end():]}"


def process_stylesheet(
    template_html: str,
    project_root: Path,
    output_root: Path,
    mode: str,
    page_dir: Optional[Path] = None,
) -> str:
    return StylesheetCompiler(project_root, output_root, mode).process(template_html, page_dir)
