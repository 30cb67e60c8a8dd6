"""Tests for Sass compilation and stylesheet link rewriting."""

from __future__ import annotations

from pathlib import Path

import pytest
import sass

from pagesmith import styles
from pagesmith.errors import CompilationError
from pagesmith.styles import StylesheetCompiler, compile_stylesheet, process_stylesheet, rewrite_link
from pagesmith.templates import load_template

SASS_LINK = '<link rel="stylesheet" type="text/sass" href="sass/main.scss" media="screen"/>'
CSS_LINK = '<link rel="stylesheet" type="text/css" href="../css/main.css" media="screen"/>'


def test_production_build_compresses_and_rewrites_link(project) -> None:
    template = load_template("_base.html", project.templates)
    processed = process_stylesheet(template, project.root, project.output, "production")

    css_path = project.output / "css" / "main.css"
    assert css_path.is_file()
    css = css_path.read_text(encoding="utf-8")
    assert "body main{padding:1rem}" in css
    assert "sourceMappingURL" not in css
    assert not (project.output / "css" / "main.css.map").exists()

    assert "text/sass" not in processed
    assert SASS_LINK not in processed
    assert CSS_LINK in processed


def test_development_build_is_expanded_with_source_map(project) -> None:
    template = load_template("_base.html", project.templates)
    process_stylesheet(template, project.root, project.output, "development")

    css = (project.output / "css" / "main.css").read_text(encoding="utf-8")
    assert "body main {" in css
    assert "sourceMappingURL=main.css.map" in css
    assert (project.output / "css" / "main.css.map").is_file()


def test_template_without_reference_is_unchanged(project) -> None:
    template = load_template("_plain.html", project.templates)
    assert process_stylesheet(template, project.root, project.output, "production") == template
    assert not (project.output / "css").exists()


def test_syntax_error_carries_diagnostic(project) -> None:
    (project.root / "sass" / "main.scss").write_text("body { color: ; \n", encoding="utf-8")
    with pytest.raises(CompilationError) as excinfo:
        compile_stylesheet(project.root / "sass" / "main.scss", project.output, "production")
    assert excinfo.value.diagnostic
    assert excinfo.value.path == project.root / "sass" / "main.scss"
    assert not (project.output / "css" / "main.css").exists()


def test_unresolved_import_is_a_compilation_error(project) -> None:
    (project.root / "sass" / "main.scss").write_text('@import "missing-partial";\n', encoding="utf-8")
    template = load_template("_base.html", project.templates)
    with pytest.raises(CompilationError) as excinfo:
        process_stylesheet(template, project.root, project.output, "production")
    assert "missing-partial" in excinfo.value.diagnostic


def test_missing_source_is_a_compilation_error(project) -> None:
    (project.root / "sass" / "main.scss").unlink()
    template = load_template("_base.html", project.templates)
    with pytest.raises(CompilationError):
        process_stylesheet(template, project.root, project.output, "production")


def test_more_than_one_reference_is_rejected(project) -> None:
    template = f"<head>{SASS_LINK}{SASS_LINK.replace('main.scss', 'other.scss')}</head>"
    with pytest.raises(CompilationError, match="found 2"):
        process_stylesheet(template, project.root, project.output, "production")


def test_flat_pages_get_a_shallower_href(project) -> None:
    template = load_template("_base.html", project.templates)
    processed = process_stylesheet(template, project.root, project.output, "production", page_dir=project.output)
    assert 'href="css/main.css"' in processed


def test_rewrite_link_keeps_other_attributes() -> None:
    tag = "<link media='print' type='text/scss' href='x.scss' rel='stylesheet'>"
    assert rewrite_link(tag, "../css/x.css") == "<link media='print' type='text/css' href='../css/x.css' rel='stylesheet'>"


def test_each_stylesheet_compiles_once_per_build(project, monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []
    real_compile = sass.compile

    def counting_compile(**kwargs):
        calls.append(kwargs["filename"])
        return real_compile(**kwargs)

    monkeypatch.setattr(styles.sass, "compile", counting_compile)
    compiler = StylesheetCompiler(project.root, project.output, "production")
    template = load_template("_base.html", project.templates)

    first = compiler.process(template)
    second = compiler.process(template)

    assert first == second
    assert len(calls) == 1


def test_failures_are_memoized_too(project, monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []

    def failing_compile(**kwargs):
        calls.append(kwargs["filename"])
        raise sass.CompileError("Error: broken")

    monkeypatch.setattr(styles.sass, "compile", failing_compile)
    compiler = StylesheetCompiler(project.root, project.output, "production")
    template = load_template("_base.html", project.templates)

    for _ in range(3):
        with pytest.raises(CompilationError):
            compiler.process(template)
    assert len(calls) == 1


def test_remote_stylesheet_is_refused(tmp_path: Path) -> None:
    compiler = StylesheetCompiler(tmp_path, tmp_path / "out", "production")
    with pytest.raises(CompilationError):
        compiler.resolve_source("https://cdn.example.com/site.scss")


def test_compiling_twice_is_byte_identical(project) -> None:
    source = project.root / "sass" / "main.scss"
    first = compile_stylesheet(source, project.output, "development")
    first_bytes = first.output_path.read_bytes()
    first_map = first.source_map_path.read_bytes()
    second = compile_stylesheet(source, project.output, "development")
    assert second.output_path.read_bytes() == first_bytes
    assert second.source_map_path.read_bytes() == first_map
