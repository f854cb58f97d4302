"""
News Feed Client

Fetches RSS 2.0 and Atom feeds and normalizes their entries into `Article`
records ready for embedding. HTML in entry bodies is reduced to plain text
and bodies are truncated to keep embedding inputs bounded.

A feed that cannot be fetched or parsed yields no articles; it never aborts
an ingestion run.
"""

from __future__ import annotations

import logging
import time
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from typing import List, Optional

import httpx
from bs4 import BeautifulSoup
from pydantic import BaseModel, ConfigDict

from ..config import settings

logger = logging.getLogger("newsrag.ingest")

MAX_CONTENT_LENGTH = 1000

NAMESPACES = {
    "content": "http://purl.org/rss/1.0/modules/content/",
    "atom": "http://www.w3.org/2005/Atom",
}


class NewsSource(BaseModel):
    name: str
    url: str

    model_config = ConfigDict(frozen=True)


DEFAULT_NEWS_SOURCES: List[NewsSource] = [
    NewsSource(name="BBC News", url="http://feeds.bbci.co.uk/news/rss.xml"),
    NewsSource(name="BBC Technology", url="http://feeds.bbci.co.uk/news/technology/rss.xml"),
    NewsSource(name="BBC Business", url="http://feeds.bbci.co.uk/news/business/rss.xml"),
    NewsSource(name="TechCrunch", url="https://techcrunch.com/feed/"),
    NewsSource(name="Ars Technica", url="https://feeds.arstechnica.com/arstechnica/index/"),
]


class Article(BaseModel):
    """A feed entry before embedding."""

    id: str
    title: str
    content: str
    url: str
    source: str
    published_date: str


# ---------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------

def extract_text(raw: str, limit: int = MAX_CONTENT_LENGTH) -> str:
    """Strip HTML, collapse whitespace and truncate to `limit` characters."""
    if "<" in raw:
        raw = BeautifulSoup(raw, "html.parser").get_text(" ")
    return " ".join(raw.split())[:limit]


def _text(element: ET.Element, path: str) -> str:
    found = element.find(path, NAMESPACES)
    if found is None or found.text is None:
        return ""
    return found.text.strip()


def _atom_link(entry: ET.Element) -> str:
    for link in entry.findall("atom:link", NAMESPACES):
        if link.get("rel", "alternate") == "alternate" and link.get("href"):
            return link.get("href", "")
    return ""


def parse_feed(payload: bytes, source: NewsSource) -> List[Article]:
    """
    Parse an RSS 2.0 or Atom document into articles.

    Raises
    ------
    xml.etree.ElementTree.ParseError
        If the payload is not well-formed XML.
    """
    root = ET.fromstring(payload)
    now = datetime.now(timezone.utc).isoformat()
    stamp = int(time.time() * 1000)

    articles: List[Article] = []

    items = root.findall("./channel/item")
    if items:
        for position, item in enumerate(items):
            link = _text(item, "link")
            body = (
                _text(item, "content:encoded")
                or _text(item, "description")
            )
            articles.append(
                Article(
                    id=_text(item, "guid") or link or f"{source.name}-{stamp}-{position}",
                    title=_text(item, "title") or "Untitled",
                    content=extract_text(body),
                    url=link,
                    source=source.name,
                    published_date=_text(item, "pubDate") or now,
                )
            )
        return articles

    for position, entry in enumerate(root.findall("atom:entry", NAMESPACES)):
        link = _atom_link(entry)
        body = _text(entry, "atom:content") or _text(entry, "atom:summary")
        articles.append(
            Article(
                id=_text(entry, "atom:id") or link or f"{source.name}-{stamp}-{position}",
                title=_text(entry, "atom:title") or "Untitled",
                content=extract_text(body),
                url=link,
                source=source.name,
                published_date=(
                    _text(entry, "atom:published")
                    or _text(entry, "atom:updated")
                    or now
                ),
            )
        )

    return articles


# ---------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------

class FeedClient:
    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout = timeout or settings.feed_timeout
        self._transport = transport

    async def fetch(self, source: NewsSource) -> List[Article]:
        """Fetch and parse one feed. Returns [] on any fetch or parse failure."""
        logger.info("Fetching feed from %s...", source.name)

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                resp = await client.get(source.url)
                resp.raise_for_status()
            return parse_feed(resp.content, source)
        except (httpx.HTTPError, ET.ParseError) as exc:
            logger.error("Error fetching feed from %s: %s", source.name, exc)
            return []
