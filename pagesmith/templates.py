from __future__ import annotations

import html
import re
from pathlib import Path
from typing import Iterable, Mapping

from .content import FrontmatterRecord
from .errors import ContentPermissionError, NotFoundError, TemplateNotFoundError, UnresolvedPlaceholderError

PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z_][\w-]*)\s*\}\}")
METADATA_PLACEHOLDERS = ("title", "description", "author", "date", "tags")
BODY_PLACEHOLDER = "main"


def load_template(name: str, template_root: Path) -> str:
    root = Path(template_root).absolute()
    if not root.is_dir():
        raise NotFoundError("Template directory not found", root)
    path = (root / name).resolve()
    if not path.is_relative_to(root.resolve()) or not path.is_file():
        raise TemplateNotFoundError(f"Template not found: {name}", path)
    try:
        return path.read_text(encoding="utf-8")
    except PermissionError as exc:
        raise ContentPermissionError("Cannot read template", path) from exc


def fill_placeholders(
    template: str,
    values: Mapping[str, str],
    names: Iterable[str],
    strict: bool = False,
    first_only: bool = False,
) -> str:
    """Replace ``{{ name }}`` placeholders for the given ``names`` in one pass.

    Placeholders outside ``names`` are left alone. A recognized placeholder
    with no value is left in place too, unless ``strict`` is set.
    Replacement text is never rescanned.
    """
    recognized = set(names)
    seen = set()
    missing = set()

    def replace(match: re.Match) -> str:
        name = match.group(1)
        if name not in recognized:
            return match.group(0)
        if name not in values:
            missing.add(name)
            return match.group(0)
        if first_only and name in seen:
            return match.group(0)
        seen.add(name)
        return values[name]

    output = PLACEHOLDER_RE.sub(replace, template)
    if strict and missing:
        names_text = ", ".join(sorted(missing))
        raise UnresolvedPlaceholderError(f"No value for placeholder(s): {names_text}", names=tuple(sorted(missing)))
    return output


def escape_value(text: str) -> str:
    """HTML-escape ``text`` and encode braces so it cannot form a placeholder."""
    return html.escape(text).replace("{", "&#123;").replace("}", "&#125;")


def metadata_values(record: FrontmatterRecord) -> dict[str, str]:
    values = {
        "title": escape_value(record.title),
        "description": escape_value(record.description),
    }
    if record.author:
        values["author"] = escape_value(record.author)
    if record.date is not None:
        values["date"] = record.date.isoformat()
    if record.tags:
        values["tags"] = escape_value(", ".join(record.tags))
    return values


def substitute_metadata(record: FrontmatterRecord, template: str, strict: bool = False) -> str:
    return fill_placeholders(template, metadata_values(record), METADATA_PLACEHOLDERS, strict=strict)


def substitute_body(body_html: str, template: str, strict: bool = False) -> str:
    if strict and BODY_PLACEHOLDER not in template_placeholders(template):
        raise UnresolvedPlaceholderError("Template has no {{ main }} placeholder", names=(BODY_PLACEHOLDER,))
    return fill_placeholders(
        template, {BODY_PLACEHOLDER: body_html}, (BODY_PLACEHOLDER,), strict=strict, first_only=True
    )


def template_placeholders(template: str) -> list[str]:
    return sorted({match.group(1) for match in PLACEHOLDER_RE.finditer(template)})
