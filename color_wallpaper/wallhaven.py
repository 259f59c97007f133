"""wallhaven.cc search client: result pages, thumbnails and full images."""

from __future__ import annotations

import logging
import random
import re
import string
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

import numpy as np
import requests
from bs4 import BeautifulSoup

from color_wallpaper.config import WallhavenConfig
from color_wallpaper.errors import SourceError
from color_wallpaper.image_io import decode_image

logger = logging.getLogger(__name__)

_PAGE_HEADER_RE = re.compile(r"(\d+)\s*/\s*(\d+)")
_SEED_SYMBOLS = string.ascii_letters + string.digits + " " + string.punctuation


@dataclass(frozen=True)
class Thumb:
    """A search result: thumbnail image plus the page that previews it."""

    thumbnail_url: str | None
    preview_url: str | None


@dataclass(frozen=True)
class SearchPage:
    """Parsed search results page.

    ``current_page`` and ``total_pages`` come from the page header, which
    wallhaven only renders from the second page on.
    """

    thumbs: list[Thumb] = field(default_factory=list)
    current_page: int | None = None
    total_pages: int | None = None


def random_seed(rng: random.Random | None = None, length: int = 16) -> str:
    """Seed that keeps random sorting stable across pages of one search."""
    rng = rng or random.Random()
    return "".join(rng.choice(_SEED_SYMBOLS) for _ in range(length))


def parse_search_page(html: str) -> SearchPage:
    soup = BeautifulSoup(html, "html.parser")

    thumbs = []
    for figure in soup.select("figure.thumb"):
        img = figure.find("img")
        preview = figure.select_one(".preview")
        thumbs.append(Thumb(
            thumbnail_url=img.get("data-src") if img is not None else None,
            preview_url=preview.get("href") if preview is not None else None,
        ))

    current = total = None
    header = soup.select_one(".thumb-listing-page-header")
    if header is not None:
        match = _PAGE_HEADER_RE.search(header.get_text(" ", strip=True))
        if match:
            current, total = int(match.group(1)), int(match.group(2))

    return SearchPage(thumbs, current_page=current, total_pages=total)


def parse_full_image_url(html: str) -> str | None:
    soup = BeautifulSoup(html, "html.parser")
    img = soup.select_one("#wallpaper")
    src = img.get("src") if img is not None else None
    if not src:
        return None
    if not src.startswith("http"):
        src = "https:" + src
    return src


class WallhavenClient:
    """Thin HTTP layer over a ``requests.Session``.

    The session carries cookies between requests. Search requests are sent
    as XHR with the previous search URL as referer, like the site's own
    infinite scroll does.
    """

    def __init__(
        self,
        config: WallhavenConfig | None = None,
        session: requests.Session | None = None,
        seed: str | None = None,
    ) -> None:
        self.config = config or WallhavenConfig()
        self.session = session or requests.Session()
        self.session.headers["User-Agent"] = self.config.user_agent
        self.seed = seed or random_seed()
        self.referer: str | None = None

    def _get(self, url: str, **kwargs) -> requests.Response:
        kwargs.setdefault("timeout", self.config.timeout)
        kwargs.setdefault("verify", self.config.verify)
        try:
            response = self.session.get(url, **kwargs)
            response.raise_for_status()
        except requests.RequestException as err:
            msg = f"Request to {url} failed: {err}"
            raise SourceError(msg) from err
        return response

    def search_params(self, page: int) -> dict[str, str | int]:
        params: dict[str, str | int] = {
            "categories": self.config.categories,
            "purity": self.config.purity,
            "sorting": self.config.sorting,
            "seed": self.seed,
            "page": page,
        }
        if self.config.resolution:
            params["resolutions"] = self.config.resolution
        return params

    def fetch_search_page(self, page: int) -> SearchPage:
        headers = {"X-Requested-With": "XMLHttpRequest"}
        if self.referer:
            headers["Referer"] = self.referer
        url = f"{self.config.base_url}/search"
        response = self._get(url, params=self.search_params(page), headers=headers)
        self.referer = response.url

        result = parse_search_page(response.text)
        logger.debug(
            "Page %d: %d thumbs (header %s/%s)",
            page, len(result.thumbs), result.current_page, result.total_pages,
        )
        return result

    def fetch_image(self, url: str) -> np.ndarray:
        response = self._get(url)
        return decode_image(response.content, name=url)

    def resolve_full_image(self, preview_url: str) -> str:
        """Find the full-resolution image URL on a preview page."""
        response = self._get(preview_url)
        src = parse_full_image_url(response.text)
        if src is None:
            msg = f"Could not find the wallpaper's src on {preview_url}"
            raise SourceError(msg)
        return src

    def download(self, url: str, dest_dir: str | Path) -> Path:
        """Stream *url* into *dest_dir*, keeping the remote file name."""
        dest = Path(dest_dir) / Path(urlparse(url).path).name
        response = self._get(url, stream=True)
        try:
            with open(dest, "wb") as f:
                for chunk in response.iter_content(chunk_size=64 * 1024):
                    f.write(chunk)
        except (OSError, requests.RequestException) as err:
            dest.unlink(missing_ok=True)
            msg = f"Could not save {url} to {dest}: {err}"
            raise SourceError(msg) from err
        finally:
            response.close()
        logger.debug("Downloaded %s -> %s", url, dest)
        return dest
