from __future__ import annotations

import enum
import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional

from .config import BuildConfig
from .content import SourceDocument, discover_sources, load_document, parse_front_matter, read_source
from .errors import BuildError, CompilationError, ContentPermissionError, NotFoundError, OutputCollisionError
from .feeds import PostSummary, collect_summaries, summarize, write_feed, write_posts_index
from .render import render_markdown
from .styles import StylesheetCompiler
from .templates import load_template, substitute_body, substitute_metadata
from .utils import clean_output_dir, parse_bool, write_text

logger = logging.getLogger(__name__)


class Stage(enum.Enum):
    DISCOVERED = "discovered"
    FRONTMATTER_PARSED = "frontmatter-parsed"
    TEMPLATE_LOADED = "template-loaded"
    METADATA_SUBSTITUTED = "metadata-substituted"
    STYLESHEET_COMPILED = "stylesheet-compiled"
    BODY_RENDERED = "body-rendered"
    BODY_SUBSTITUTED = "body-substituted"
    WRITTEN = "written"


@dataclass(frozen=True)
class RenderedPage:
    document: SourceDocument
    html: str
    output_path: Path
    summary: PostSummary


@dataclass(frozen=True)
class DocumentIssue:
    path: Path
    stage: Stage
    error: BuildError


@dataclass
class DocumentResult:
    document: SourceDocument
    output_path: Path
    stage: Stage = Stage.DISCOVERED
    page: Optional[RenderedPage] = None
    error: Optional[BuildError] = None
    warning: Optional[CompilationError] = None
    draft: bool = False


@dataclass
class BuildReport:
    written: list[RenderedPage] = field(default_factory=list)
    drafts: list[SourceDocument] = field(default_factory=list)
    failures: list[DocumentIssue] = field(default_factory=list)
    warnings: list[DocumentIssue] = field(default_factory=list)
    extra_files: list[Path] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def output_path_for(base_name: str, output_root: Path, layout: str = "nested") -> Path:
    if layout == "flat":
        return output_root / f"{base_name}.html"
    return output_root / base_name / "index.html"


def page_url(base_name: str, layout: str = "nested") -> str:
    if layout == "flat":
        return f"{base_name}.html"
    return f"{base_name}/"


def is_draft(document: SourceDocument) -> bool:
    """Read only the front matter of ``document`` and report its draft flag.

    Unreadable or malformed documents count as non-drafts; their build fails
    later with the real error.
    """
    try:
        meta, _ = parse_front_matter(read_source(document), document.path)
    except BuildError:
        return False
    return parse_bool(meta.get("draft"))


def plan_outputs(
    documents: Iterable[SourceDocument],
    output_root: Path,
    layout: str = "nested",
    skipped: Optional[Callable[[SourceDocument], bool]] = None,
) -> tuple[list[tuple[SourceDocument, Path]], list[DocumentIssue]]:
    """Assign every document its output path.

    The first document to claim a path keeps it; later documents with the
    same base name are returned as collisions and are not built. Where
    several documents share a path, those for which ``skipped`` returns true
    are planned without claiming it, since they never write a page.
    """
    documents = list(documents)
    paths = [output_path_for(document.base_name, output_root, layout) for document in documents]
    counts = Counter(paths)
    claimed: dict[Path, SourceDocument] = {}
    planned = []
    collisions = []
    for document, path in zip(documents, paths):
        if skipped is not None and counts[path] > 1 and skipped(document):
            planned.append((document, path))
            continue
        owner = claimed.get(path)
        if owner is not None:
            error = OutputCollisionError(f"Output {path} is already produced by {owner.path}", document.path)
            collisions.append(DocumentIssue(document.path, Stage.DISCOVERED, error))
            continue
        claimed[path] = document
        planned.append((document, path))
    return planned, collisions


def write_page(path: Path, page_html: str) -> None:
    try:
        write_text(path, page_html)
    except PermissionError as exc:
        raise ContentPermissionError("Cannot write output page", path) from exc
    except OSError as exc:
        raise BuildError(f"Cannot write output page: {exc.strerror}", path) from exc


def build_document(
    document: SourceDocument,
    config: BuildConfig,
    stylesheets: Optional[StylesheetCompiler] = None,
    output_path: Optional[Path] = None,
    skip_drafts: bool = False,
) -> DocumentResult:
    """Run one document through every stage and write its page.

    Errors are captured on the returned result rather than raised. Stylesheet
    failures are kept as a warning and the page is built from the template
    as it was.
    """
    if output_path is None:
        output_path = output_path_for(document.base_name, config.output_root, config.layout)
    if stylesheets is None:
        stylesheets = StylesheetCompiler(config.project_root, config.output_root, config.mode)
    result = DocumentResult(document=document, output_path=output_path)
    logger.info("Processing %s", document.path)
    try:
        record = load_document(document, config.require_template)
        result.stage = Stage.FRONTMATTER_PARSED
        if record.draft and skip_drafts:
            logger.info("Skipping draft %s", document.path)
            result.draft = True
            return result

        template = load_template(record.template or config.default_template, config.template_root)
        result.stage = Stage.TEMPLATE_LOADED

        page_html = substitute_metadata(record, template, strict=config.strict_placeholders)
        result.stage = Stage.METADATA_SUBSTITUTED

        try:
            page_html = stylesheets.process(page_html, output_path.parent.absolute())
        except CompilationError as exc:
            logger.warning("Stylesheet not compiled for %s: %s", document.path, exc)
            result.warning = exc
        result.stage = Stage.STYLESHEET_COMPILED

        body_html = render_markdown(record.body, config.render)
        result.stage = Stage.BODY_RENDERED

        page_html = substitute_body(body_html, page_html, strict=config.strict_placeholders)
        result.stage = Stage.BODY_SUBSTITUTED

        write_page(output_path, page_html)
        result.stage = Stage.WRITTEN
    except BuildError as exc:
        if exc.path is None:
            exc.path = document.path
        result.error = exc
        return result

    summary = summarize(record, document.base_name, page_url(document.base_name, config.layout))
    result.page = RenderedPage(document=document, html=page_html, output_path=output_path, summary=summary)
    return result


def _record_result(report: BuildReport, result: DocumentResult, fail_fast: bool) -> None:
    if result.warning is not None:
        report.warnings.append(DocumentIssue(result.document.path, Stage.METADATA_SUBSTITUTED, result.warning))
    if result.error is not None:
        if fail_fast:
            raise result.error
        logger.error("Failed after %s: %s", result.stage.value, result.error)
        report.failures.append(DocumentIssue(result.document.path, result.stage, result.error))
    elif result.draft:
        report.drafts.append(result.document)
    elif result.page is not None:
        report.written.append(result.page)


def build_site(config: BuildConfig) -> BuildReport:
    """Build every source document under ``config.posts_root``.

    A missing posts or template root, or an unreadable subtree, aborts the
    build. Per-document failures are collected on the report, or raised
    straight away when ``config.fail_fast`` is set.
    """
    template_root = Path(config.template_root)
    if not template_root.is_dir():
        raise NotFoundError("Template directory not found", template_root)
    if config.clean:
        clean_output_dir(config.output_root, config.project_root)

    documents = discover_sources(config.posts_root, config.source_suffixes)
    logger.info("Number of posts %d", len(documents))

    skip_drafts = not config.include_drafts
    planned, collisions = plan_outputs(
        documents, config.output_root, config.layout, skipped=is_draft if skip_drafts else None
    )
    report = BuildReport()
    for issue in collisions:
        if config.fail_fast:
            raise issue.error
        logger.error("%s", issue.error)
        report.failures.append(issue)

    stylesheets = StylesheetCompiler(config.project_root, config.output_root, config.mode)

    def run(item: tuple[SourceDocument, Path]) -> DocumentResult:
        document, output_path = item
        return build_document(document, config, stylesheets, output_path, skip_drafts=skip_drafts)

    workers = min(config.resolved_workers(), len(planned)) if planned else 1
    if workers > 1:
        executor = ThreadPoolExecutor(max_workers=workers)
        try:
            # map() yields in submission order, so the report follows enumeration order.
            for result in executor.map(run, planned):
                _record_result(report, result, config.fail_fast)
        finally:
            executor.shutdown(wait=True, cancel_futures=True)
    else:
        for item in planned:
            _record_result(report, run(item), config.fail_fast)

    report.failures.sort(key=lambda issue: issue.path.as_posix())

    summaries = collect_summaries(page.summary for page in report.written)
    if config.enable_index:
        report.extra_files.append(write_posts_index(config.output_root, summaries))
    if config.enable_feed:
        feed_path = write_feed(
            config.output_root,
            summaries,
            config.site_url,
            config.site_name,
            config.site_description,
            config.feed_limit,
        )
        if feed_path is not None:
            report.extra_files.append(feed_path)
    return report
