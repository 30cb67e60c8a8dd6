"""Shared fixtures: a throwaway project with posts, templates and Sass sources."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import pytest

from pagesmith.config import BuildConfig

BASE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8"/>
<title>{{ title }}</title>
<meta name="description" content="{{ description }}"/>
<link rel="stylesheet" type="text/sass" href="sass/main.scss" media="screen"/>
</head>
<body>
<main>{{ main }}</main>
</body>
</html>
"""

PLAIN_TEMPLATE = """<html><head><title>{{ title }}</title></head>
<body><p class="lede">{{ description }}</p>{{ main }}</body></html>
"""

MAIN_SCSS = """$brand: #336699;

body {
  color: $brand;

  main {
    padding: 1rem;
  }
}
"""


@dataclass
class Project:
    root: Path
    posts: Path
    templates: Path
    output: Path

    def write_post(
        self,
        name: str,
        title: Optional[str] = "A",
        description: Optional[str] = "B",
        template: Optional[str] = "_base.html",
        body: str = "# Hi",
        extra: str = "",
    ) -> Path:
        lines = ["---"]
        if title is not None:
            lines.append(f'title: "{title}"')
        if description is not None:
            lines.append(f'description: "{description}"')
        if template is not None:
            lines.append(f'template: "{template}"')
        if extra:
            lines.append(extra.strip("\n"))
        lines.append("---")
        lines.append(body)
        path = self.posts / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    def config(self, **overrides) -> BuildConfig:
        values = {
            "posts_root": self.posts,
            "template_root": self.templates,
            "output_root": self.output,
            "project_root": self.root,
            "mode": "production",
            "workers": 1,
        }
        values.update(overrides)
        return BuildConfig(**values)


@pytest.fixture
def project(tmp_path: Path) -> Project:
    posts = tmp_path / "posts"
    templates = tmp_path / "tmpl"
    sass_dir = tmp_path / "sass"
    for directory in (posts, templates, sass_dir):
        directory.mkdir()
    (templates / "_base.html").write_text(BASE_TEMPLATE, encoding="utf-8")
    (templates / "_plain.html").write_text(PLAIN_TEMPLATE, encoding="utf-8")
    (sass_dir / "main.scss").write_text(MAIN_SCSS, encoding="utf-8")
    return Project(root=tmp_path, posts=posts, templates=templates, output=tmp_path / "public")
