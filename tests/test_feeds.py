"""Tests for the post index and RSS feed."""

from __future__ import annotations

import datetime as dt
import json
from pathlib import Path

from pagesmith.feeds import PostSummary, collect_summaries, write_feed, write_posts_index


def summary(slug: str, date=None, draft: bool = False) -> PostSummary:
    return PostSummary(
        slug=slug,
        title=f"Title {slug}",
        description=f"About {slug} & more",
        url=f"{slug}/",
        date=date,
        tags=("t",),
        draft=draft,
    )


def test_collect_summaries_orders_newest_first_and_drops_drafts() -> None:
    items = [
        summary("undated-b"),
        summary("old", dt.date(2020, 1, 1)),
        summary("secret", dt.date(2030, 1, 1), draft=True),
        summary("new", dt.date(2024, 5, 1)),
        summary("undated-a"),
        summary("also-new", dt.date(2024, 5, 1)),
    ]
    ordered = collect_summaries(items)
    assert [item.slug for item in ordered] == ["also-new", "new", "old", "undated-a", "undated-b"]


def test_write_posts_index(tmp_path: Path) -> None:
    path = write_posts_index(tmp_path, [summary("a", dt.date(2024, 1, 2)), summary("b")])
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data == [
        {
            "slug": "a",
            "title": "Title a",
            "description": "About a & more",
            "url": "a/",
            "date": "2024-01-02",
            "tags": ["t"],
        },
        {"slug": "b", "title": "Title b", "description": "About b & more", "url": "b/", "date": None, "tags": ["t"]},
    ]


def test_feed_needs_site_url(tmp_path: Path) -> None:
    assert write_feed(tmp_path, [summary("a")], "", "Blog", "Desc", 20) is None
    assert not (tmp_path / "rss.xml").exists()


def test_feed_items_and_limit(tmp_path: Path) -> None:
    items = [summary("b", dt.date(2024, 3, 1)), summary("a", dt.date(2024, 2, 1)), summary("c")]
    path = write_feed(tmp_path, items, "https://example.com/", "Blog", "Desc", 2)
    rss = path.read_text(encoding="utf-8")
    assert rss.startswith('<?xml version="1.0" encoding="UTF-8"?>')
    assert "<link>https://example.com/b/</link>" in rss
    assert "<link>https://example.com/a/</link>" in rss
    assert "https://example.com/c/" not in rss
    assert "<description>About b &amp; more</description>" in rss
    assert "<pubDate>Fri, 01 Mar 2024 00:00:00 +0000</pubDate>" in rss
    assert "<lastBuildDate>Fri, 01 Mar 2024 00:00:00 +0000</lastBuildDate>" in rss
