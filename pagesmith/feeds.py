from __future__ import annotations

import datetime as dt
import html
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from .content import FrontmatterRecord
from .utils import join_url, rfc822_date, write_text

POSTS_INDEX_NAME = "posts.json"
FEED_NAME = "rss.xml"


@dataclass(frozen=True)
class PostSummary:
    slug: str
    title: str
    description: str
    url: str
    date: Optional[dt.date] = None
    tags: tuple[str, ...] = ()
    draft: bool = False


def summarize(record: FrontmatterRecord, slug: str, url: str) -> PostSummary:
    return PostSummary(
        slug=slug,
        title=record.title,
        description=record.description,
        url=url,
        date=record.date,
        tags=record.tags,
        draft=record.draft,
    )


def collect_summaries(summaries: Iterable[PostSummary]) -> list[PostSummary]:
    """Drop drafts and order newest first; undated posts go last, ties by slug."""
    visible = [item for item in summaries if not item.draft]
    dated = sorted((item for item in visible if item.date), key=lambda item: item.slug)
    dated.sort(key=lambda item: item.date, reverse=True)
    undated = sorted((item for item in visible if not item.date), key=lambda item: item.slug)
    return dated + undated


def write_posts_index(output_root: Path, summaries: list[PostSummary]) -> Path:
    index = []
    for post in summaries:
        index.append(
            {
                "slug": post.slug,
                "title": post.title,
                "description": post.description,
                "url": post.url,
                "date": post.date.isoformat() if post.date else None,
                "tags": list(post.tags),
            }
        )
    path = output_root / POSTS_INDEX_NAME
    write_text(path, json.dumps(index, indent=2, ensure_ascii=True) + "\n")
    return path


def write_feed(
    output_root: Path,
    summaries: list[PostSummary],
    site_url: str,
    site_name: str,
    site_description: str,
    limit: int,
) -> Optional[Path]:
    if not site_url:
        return None
    site_url = site_url.rstrip("/")
    items = []
    for post in summaries[:limit]:
        link = join_url(site_url, post.url)
        lines = [
            "<item>",
            f"<title>{html.escape(post.title)}</title>",
            f"<link>{link}</link>",
            f"<guid>{link}</guid>",
        ]
        if post.date:
            lines.append(f"<pubDate>{rfc822_date(post.date)}</pubDate>")
        lines.append(f"<description>{html.escape(post.description)}</description>")
        lines.append("</item>")
        items.append("\n".join(lines))
    channel = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<rss version="2.0">',
        "<channel>",
        f"<title>{html.escape(site_name)}</title>",
        f"<link>{site_url}/</link>",
        f"<description>{html.escape(site_description)}</description>",
        "<language>en-us</language>",
    ]
    newest = next((post.date for post in summaries if post.date), None)
    if newest:
        channel.append(f"<lastBuildDate>{rfc822_date(newest)}</lastBuildDate>")
    channel.extend(items)
    channel.extend(["</channel>", "</rss>"])
    path = output_root / FEED_NAME
    write_text(path, "\n".join(channel) + "\n")
    return path
