"""
HTTP downloader — fetch release artifacts and install scripts.

Also resolves "latest GitHub release" asset URLs, which several units
need (node_exporter, Lite XL).
"""

from __future__ import annotations

import json
import logging
import re
import shutil
import tempfile
import time
import urllib.error
import urllib.request
from pathlib import Path

from autorpi.adapters.base import Downloader
from autorpi.core.models.receipt import Receipt

logger = logging.getLogger(__name__)

_USER_AGENT = "auto-rpi-config"


class HttpDownloader(Downloader):
    """Downloads with :mod:`urllib.request`."""

    def __init__(self, timeout: int = 60):
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "http"

    def _open(self, url: str):
        req = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT})
        return urllib.request.urlopen(req, timeout=self._timeout)  # noqa: S310

    def fetch(self, url: str, dest: str | Path) -> Receipt:
        target = Path(dest)
        start = time.monotonic()
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=target.parent, prefix=".dl_")
            tmp = Path(tmp_path)
            try:
                with open(fd, "wb") as out, self._open(url) as resp:
                    shutil.copyfileobj(resp, out)
                tmp.replace(target)
            except BaseException:
                tmp.unlink(missing_ok=True)
                raise
        except (urllib.error.URLError, OSError, ValueError) as e:
            return Receipt.failure(
                adapter=self.name,
                operation=f"fetch {url}",
                error=f"Download failed: {e}",
            )
        return Receipt.success(
            adapter=self.name,
            operation=f"fetch {url}",
            output=str(target),
            duration_ms=int((time.monotonic() - start) * 1000),
            metadata={"path": str(target), "size": target.stat().st_size},
        )

    def fetch_text(self, url: str) -> Receipt:
        try:
            with self._open(url) as resp:
                body = resp.read().decode("utf-8", errors="replace")
        except (urllib.error.URLError, OSError, ValueError) as e:
            return Receipt.failure(
                adapter=self.name,
                operation=f"fetch {url}",
                error=f"Download failed: {e}",
            )
        return Receipt.success(adapter=self.name, operation=f"fetch {url}", output=body)


def latest_release_asset(downloader: Downloader, repo: str, pattern: str) -> str | None:
    """URL of the first asset of ``repo``'s latest release matching ``pattern``.

    Args:
        downloader: Used to query the GitHub API.
        repo: ``owner/name``.
        pattern: Regular expression matched against asset download URLs.

    Returns:
        The download URL, or None if the release or asset can't be found.
    """
    api_url = f"https://api.github.com/repos/{repo}/releases/latest"
    receipt = downloader.fetch_text(api_url)
    if receipt.failed:
        logger.debug("Release lookup for %s failed: %s", repo, receipt.error)
        return None

    try:
        release = json.loads(receipt.output)
    except json.JSONDecodeError:
        logger.debug("Release metadata for %s is not JSON", repo)
        return None

    regex = re.compile(pattern)
    for asset in release.get("assets", []):
        url = asset.get("browser_download_url", "")
        if regex.search(url):
            return url
    return None
