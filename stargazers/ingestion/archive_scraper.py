"""fallback scraper for the public daily-photo html archive.

used only when the api fails for a whole chunk. extraction lives behind
parse_archive_page() so it can be hardened without touching the chunk loop.
"""

from __future__ import annotations

import logging
import re
import time
from datetime import date
from typing import Callable, Iterator, Optional, Tuple
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from src.data.errors import ParseError
from src.data.records import DEFAULT_COPYRIGHT, ApodRecord
from stargazers.ingestion.chunking import DateChunk

logger = logging.getLogger(__name__)

ARCHIVE_BASE_URL = "https://apod.nasa.gov/apod/"

# blocks that end an inline run of text on an archive page
_BLOCK_TAGS = ("p", "center", "table", "hr")


def _collapse(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def _label(soup: BeautifulSoup, word: str) -> Optional[Tag]:
    """first <b> whose text contains `word` (e.g. "Explanation:")."""
    for bold in soup.find_all("b"):
        if word.lower() in bold.get_text().lower():
            return bold
    return None


def _text_after(node: Tag, stop: str = "") -> str:
    """inline text following a label, up to the next block element (or `stop`)."""
    parts = []
    for sibling in node.next_siblings:
        if isinstance(sibling, Tag):
            if sibling.name in _BLOCK_TAGS:
                break
            parts.append(" " if sibling.name == "br" else sibling.get_text())
        elif isinstance(sibling, NavigableString) and not isinstance(sibling, Comment):
            parts.append(str(sibling))

    text = "".join(parts)
    if stop:
        text = text.split(stop, 1)[0]
    return _collapse(text)


def archive_page_name(day: date) -> str:
    """ap<yy><mm><dd>.html"""
    return day.strftime("ap%y%m%d.html")


def parse_archive_page(page: str, day: date, base_url: str = ARCHIVE_BASE_URL) -> ApodRecord:
    """
    extract one daily-photo record from an archive page.

    args:
        page: raw html
        day: calendar day the page belongs to
        base_url: archive root used to resolve relative media links

    returns:
        normalized record

    raises:
        ParseError: when no title or no media url is found
    """
    soup = BeautifulSoup(page, "html.parser")

    title = ""
    heading = soup.select_one("center > b")
    if heading is not None:
        title = heading.get_text(" ", strip=True)
    if not title and soup.title is not None:
        # "APOD: 2020 January 1 - Betelgeuse Imagined"
        page_title = soup.title.get_text(" ", strip=True)
        if " - " in page_title:
            title = _collapse(page_title.split(" - ", 1)[1])
    if not title:
        raise ParseError(f"no title found on archive page for {day}")

    media_type = "image"
    media_url = hd_media_url = ""
    image = soup.select_one("img[src]")
    if image is not None:
        media_url = urljoin(base_url, image["src"].strip())
        hd = soup.select_one('a[href^="image/"]')
        if hd is not None:
            hd_media_url = urljoin(base_url, hd["href"].strip())
    else:
        video = soup.select_one("iframe[src]")
        if video is not None:
            media_type = "video"
            media_url = urljoin(base_url, video["src"].strip())
    if not media_url:
        raise ParseError(f"no media found on archive page for {day}")

    explanation = ""
    label = _label(soup, "Explanation:")
    if label is not None:
        explanation = _text_after(label, stop="Tomorrow's picture")

    copyright = DEFAULT_COPYRIGHT
    label = _label(soup, "Copyright:")
    if label is not None:
        copyright = _text_after(label) or DEFAULT_COPYRIGHT

    return ApodRecord(
        date=day,
        title=title,
        explanation=explanation,
        media_url=media_url,
        hd_media_url=hd_media_url,
        media_type=media_type,
        copyright=copyright,
    )


class ArchiveScraper:
    """walks a chunk day by day against the html archive."""

    def __init__(
        self,
        base_url: str = ARCHIVE_BASE_URL,
        timeout: int = 30,
        delay: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.timeout = timeout
        self.delay = delay
        self._sleep = sleep
        self.session = session or requests.Session()

    def build_url(self, day: date) -> str:
        return urljoin(self.base_url, archive_page_name(day))

    def fetch_page(self, day: date) -> Optional[str]:
        """fetch the archive page for a day. returns none on any fetch failure."""
        url = self.build_url(day)
        try:
            resp = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"archive fetch failed for {day}: {e}")
            return None

        if resp.status_code != 200:
            logger.warning(f"archive returned status code {resp.status_code} for {day}")
            return None
        return resp.text

    def extract(self, page: str, day: date) -> Optional[ApodRecord]:
        try:
            return parse_archive_page(page, day, self.base_url)
        except ParseError as e:
            logger.info(f"dropping archive day: {e}")
            return None

    def scrape_chunk(self, chunk: DateChunk) -> Iterator[Tuple[date, bool, Optional[ApodRecord]]]:
        """
        scrape every day of a chunk in order.

        yields:
            (day, fetched, record) per day. record is none when the fetch failed
            or the page could not be parsed.
        """
        for i, day in enumerate(chunk.iter_days()):
            if i:
                self._sleep(self.delay)
            page = self.fetch_page(day)
            if page is None:
                yield day, False, None
                continue
            yield day, True, self.extract(page, day)
