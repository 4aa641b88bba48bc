from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import unquote, urlparse

import requests
from requests import RequestException

from ..domain.errors import TransferError

logger = logging.getLogger("addon_manager.addons.downloader")

ProgressCallback = Callable[[int, Optional[int]], None]

# Direct links we can name without asking the server.
_DIRECT_SUFFIXES = (".zip", ".dll")


def _last_segment(url: str) -> str:
    path = unquote(urlparse(url).path)
    return path.rstrip("/").rsplit("/", 1)[-1]


class Downloader:
    """HTTP transport for add-on artifacts, backed by a requests session."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        *,
        timeout: float = 30.0,
        chunk_size: int = 64 * 1024,
    ):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.chunk_size = chunk_size

    def resolve_filename(self, url: str) -> str:
        """
        File name the artifact should be saved under.

        Direct .zip/.dll links use their last path segment; anything else
        (release redirects, "latest" endpoints) is resolved by following the
        redirects and naming the file after the final URL.
        """
        if url.endswith(_DIRECT_SUFFIXES):
            return _last_segment(url)

        try:
            with self.session.get(url, stream=True, allow_redirects=True, timeout=self.timeout) as resp:
                resp.raise_for_status()
                final_url = resp.url or url
        except RequestException as e:
            raise TransferError(f"Could not resolve file name for {url}: {e}") from e

        name = _last_segment(final_url)
        if not name:
            raise TransferError(f"Could not resolve file name for {url}")
        logger.debug("Resolved %s -> %s", url, name)
        return name

    def download(self, url: str, dest: Path, progress: Optional[ProgressCallback] = None) -> Path:
        """Stream url into dest. Raises TransferError on any HTTP/network failure."""
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Downloading %s -> %s", url, dest)

        try:
            with self.session.get(url, stream=True, timeout=self.timeout) as resp:
                resp.raise_for_status()
                total_header = resp.headers.get("Content-Length")
                total = int(total_header) if total_header and total_header.isdigit() else None

                received = 0
                with dest.open("wb") as f:
                    for chunk in resp.iter_content(chunk_size=self.chunk_size):
                        if not chunk:
                            continue
                        f.write(chunk)
                        received += len(chunk)
                        if progress is not None:
                            progress(received, total)
        except RequestException as e:
            raise TransferError(f"Download failed for {url}: {e}") from e

        logger.debug("Downloaded %d bytes from %s", received, url)
        return dest
