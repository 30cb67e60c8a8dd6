from __future__ import annotations

import datetime as dt
import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

import yaml

from .errors import BuildError, ContentPermissionError, InvalidFrontmatterError, NotFoundError
from .utils import parse_bool, parse_list

FRONT_MATTER_OPEN = "---"
FRONT_MATTER_CLOSE = {"---", "..."}
REQUIRED_FIELDS = ("title", "description")
DATE_FIELDS = ("date", "pubDate", "published")


@dataclass(frozen=True)
class SourceDocument:
    path: Path
    base_name: str

    @classmethod
    def from_path(cls, path: Path) -> "SourceDocument":
        path = Path(path).absolute()
        return cls(path=path, base_name=path.stem)


@dataclass(frozen=True)
class FrontmatterRecord:
    title: str
    description: str
    template: Optional[str]
    body: str
    tags: tuple[str, ...] = ()
    draft: bool = False
    date: Optional[dt.date] = None
    author: Optional[str] = None
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class ValidationFailure:
    field: str
    reason: str


ValidationResult = Union[FrontmatterRecord, ValidationFailure]


class FrontMatterLoader(yaml.SafeLoader):
    """Safe loader that keeps out-of-range timestamps as plain strings.

    ``validate_metadata`` then reports them against the field they came from.
    """


def _construct_timestamp(loader: FrontMatterLoader, node: yaml.Node) -> object:
    try:
        return yaml.SafeLoader.construct_yaml_timestamp(loader, node)
    except ValueError:
        return loader.construct_scalar(node)


FrontMatterLoader.add_constructor("tag:yaml.org,2002:timestamp", _construct_timestamp)


def discover_sources(root: Path, suffixes: tuple[str, ...] = ()) -> list[SourceDocument]:
    """Walk ``root`` and return every regular file as a ``SourceDocument``.

    Entries are visited in sorted order and the final list is sorted by POSIX
    path, so two runs over an unchanged tree yield the same sequence. An
    unreadable directory aborts the walk with ``ContentPermissionError``.
    """
    root = Path(root).absolute()
    if not root.exists():
        raise NotFoundError("Posts directory not found", root)
    if not root.is_dir():
        raise NotFoundError("Posts root is not a directory", root)

    wanted = {suffix.lower() for suffix in suffixes}

    def on_error(exc: OSError) -> None:
        where = Path(exc.filename) if exc.filename else root
        if isinstance(exc, PermissionError):
            raise ContentPermissionError("Cannot read directory", where) from exc
        raise BuildError(f"Cannot walk directory: {exc.strerror}", where) from exc

    documents = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
        dirnames.sort()
        for name in sorted(filenames):
            path = Path(dirpath) / name
            if not path.is_file():
                continue
            if wanted and path.suffix.lower() not in wanted:
                continue
            documents.append(SourceDocument.from_path(path))
    return sorted(documents, key=lambda doc: doc.path.as_posix())


def split_front_matter(text: str) -> tuple[Optional[str], str]:
    clean_text = text.lstrip("\ufeff")
    lines = clean_text.splitlines()
    if not lines or lines[0].strip() != FRONT_MATTER_OPEN:
        return None, clean_text

    end = None
    for i in range(1, len(lines)):
        if lines[i].strip() in FRONT_MATTER_CLOSE:
            end = i
            break
    if end is None:
        return None, clean_text

    block = "\n".join(lines[1:end])
    body = "\n".join(lines[end + 1 :])
    return block, body


def parse_front_matter(text: str, path: Optional[Path] = None) -> tuple[dict, str]:
    block, body = split_front_matter(text)
    if block is None:
        return {}, body
    try:
        data = yaml.load(block, Loader=FrontMatterLoader)
    except (yaml.YAMLError, ValueError) as exc:
        raise InvalidFrontmatterError(f"Malformed front matter: {exc}", path) from exc
    if data is None:
        return {}, body
    if not isinstance(data, dict):
        raise InvalidFrontmatterError("Front matter must be a mapping", path)
    return {str(key): value for key, value in data.items()}, body


def _text_value(value: object) -> Optional[str]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return None


def _parse_tags(value: object) -> Union[tuple[str, ...], ValidationFailure]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(parse_list(value))
    if isinstance(value, (list, tuple)):
        tags = []
        for item in value:
            text = _text_value(item)
            if text is None:
                return ValidationFailure("tags", "tags must be a list of strings")
            if text.strip():
                tags.append(text.strip())
        return tuple(tags)
    return ValidationFailure("tags", "tags must be a list of strings")


def _parse_date(key: str, value: object) -> Union[dt.date, ValidationFailure]:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if isinstance(value, str):
        try:
            return dt.date.fromisoformat(value.strip())
        except ValueError:
            try:
                return dt.datetime.fromisoformat(value.strip()).date()
            except ValueError:
                return ValidationFailure(key, f"invalid date: {value!r}")
    return ValidationFailure(key, f"invalid date: {value!r}")


def validate_metadata(meta: Mapping[str, Any], body: str, require_template: bool = True) -> ValidationResult:
    """Check ``meta`` and build a ``FrontmatterRecord`` from it.

    Returns a ``ValidationFailure`` naming the first offending field instead
    of raising, so callers decide how to report it.
    """
    values = {}
    for key in REQUIRED_FIELDS:
        text = _text_value(meta.get(key))
        if text is None or not text.strip():
            return ValidationFailure(key, f"missing required field '{key}'")
        values[key] = text

    template = _text_value(meta.get("template"))
    if template is not None and not template.strip():
        template = None
    if require_template and template is None:
        return ValidationFailure("template", "missing required field 'template'")

    tags = _parse_tags(meta.get("tags"))
    if isinstance(tags, ValidationFailure):
        return tags

    date = None
    for key in DATE_FIELDS:
        if meta.get(key) is None:
            continue
        date = _parse_date(key, meta[key])
        if isinstance(date, ValidationFailure):
            return date
        break

    author = _text_value(meta.get("author"))
    return FrontmatterRecord(
        title=values["title"],
        description=values["description"],
        template=template.strip() if template else None,
        body=body,
        tags=tags,
        draft=parse_bool(meta.get("draft")),
        date=date,
        author=author,
        metadata=MappingProxyType(dict(meta)),
    )


def parse_document(text: str, path: Optional[Path] = None, require_template: bool = True) -> FrontmatterRecord:
    meta, body = parse_front_matter(text, path)
    result = validate_metadata(meta, body, require_template)
    if isinstance(result, ValidationFailure):
        raise InvalidFrontmatterError(result.reason, path, field=result.field)
    return result


def read_source(document: SourceDocument) -> str:
    try:
        return document.path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise NotFoundError("Source document not found", document.path) from exc
    except PermissionError as exc:
        raise ContentPermissionError("Cannot read source document", document.path) from exc
    except UnicodeDecodeError as exc:
        raise BuildError(f"Source document is not valid UTF-8: {exc.reason}", document.path) from exc


def load_document(document: SourceDocument, require_template: bool = True) -> FrontmatterRecord:
    return parse_document(read_source(document), document.path, require_template)
