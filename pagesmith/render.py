from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

import markdown
from markdown.extensions import Extension
from markdown.preprocessors import Preprocessor
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

logger = logging.getLogger(__name__)

FENCED_BLOCK_RE = re.compile(
    r"(?P<fence>^(?:~{3,}|`{3,}))[ ]*\.?(?P<lang>[\w#.+-]*)[^\n]*\n"
    r"(?P<code>.*?)(?<=\n)"
    r"(?P=fence)[ ]*$",
    re.MULTILINE | re.DOTALL,
)


@dataclass(frozen=True)
class RenderConfig:
    extensions: tuple[str, ...] = ("tables", "sane_lists")
    extension_configs: Mapping[str, Mapping[str, Any]] = field(default_factory=lambda: MappingProxyType({}))
    tab_length: int = 4
    highlight: bool = True
    output_format: str = "html"


DEFAULT_RENDER_CONFIG = RenderConfig()


def plain_code_block(code: str) -> str:
    return f"<pre><code>{html.escape(code, quote=False)}</code></pre>"


def highlight_code(code: str, language: str) -> str:
    """Render one fenced block.

    Tagged blocks go through Pygments and are wrapped in a
    ``hljs {language}`` container; untagged blocks and languages Pygments
    does not know are emitted as escaped, unhighlighted code.
    """
    code = code.rstrip("\n")
    if not language:
        return plain_code_block(code)
    try:
        lexer = get_lexer_by_name(language)
    except ClassNotFound:
        logger.debug("No highlighter for language %r, emitting plain code", language)
        return plain_code_block(code)
    highlighted = highlight(code, lexer, HtmlFormatter(nowrap=True)).rstrip("\n")
    return f'<pre><code class="hljs {html.escape(language)}">{highlighted}</code></pre>'


class FencedHighlightPreprocessor(Preprocessor):
    def __init__(self, md, use_highlighting: bool):
        super().__init__(md)
        self.use_highlighting = use_highlighting

    def run(self, lines):
        text = "\n".join(lines)
        while True:
            m = FENCED_BLOCK_RE.search(text)
            if not m:
                break
            if self.use_highlighting:
                block_html = highlight_code(m.group("code"), m.group("lang"))
            else:
                block_html = plain_code_block(m.group("code").rstrip("\n"))
            placeholder = self.md.htmlStash.store(block_html)
            text = f"{text[:m.start()]}\n{placeholder}\n{text[m.end():]}"
        return text.split("\n")


class FencedHighlightExtension(Extension):
    def __init__(self, use_highlighting: bool = True, **kwargs):
        super().__init__(**kwargs)
        self.use_highlighting = use_highlighting

    def extendMarkdown(self, md):
        md.preprocessors.register(
            FencedHighlightPreprocessor(md, self.use_highlighting),
            "fenced_highlight",
            25,
        )


def build_markdown(config: RenderConfig) -> markdown.Markdown:
    return markdown.Markdown(
        extensions=[*config.extensions, FencedHighlightExtension(config.highlight)],
        extension_configs={name: dict(options) for name, options in config.extension_configs.items()},
        tab_length=config.tab_length,
        output_format=config.output_format,
    )


def render_markdown(body: str, config: RenderConfig = DEFAULT_RENDER_CONFIG) -> str:
    # A fresh converter per call keeps state from leaking between documents.
    return build_markdown(config).convert(body)
