"""
Image fetcher backed by urllib.

Downloads cloud images and installer ISOs over http(s) or file URLs and
copies local paths. Data is written to "<destination>.part" and moved into
place only once complete. A "<destination>.source" marker records which
locator produced the file, and a destination is reused only when its marker
names the same locator, so re-running a plan does not download the same
image twice.
"""

import http.client
import logging
import os
import shutil
import socket
import time
import urllib.error
import urllib.request
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from ...constants import AppInfo
from ...errors import FetchError, ToolTimeout
from ..collaborators import ImageFetcher, ProgressCallback

CHUNK_SIZE = 1024 * 1024  # 1MB chunks


def partial_path(destination: Path) -> Path:
    return destination.with_name(destination.name + ".part")


def source_marker_path(destination: Path) -> Path:
    return destination.with_name(destination.name + ".source")


class UrlImageFetcher(ImageFetcher):
    """Fetch images from URLs or local paths."""

    def __init__(self, timeout: Optional[float] = None, reuse_existing: bool = True):
        self.logger = logging.getLogger(__name__)
        self.timeout = timeout
        self.reuse_existing = reuse_existing

    def is_reusable(self, locator: str, destination: Path) -> bool:
        """True if destination is complete and was fetched from locator."""
        marker = source_marker_path(destination)
        if not (destination.is_file() and destination.stat().st_size > 0 and marker.is_file()):
            return False
        return marker.read_text(encoding="utf-8").strip() == locator

    def fetch(self, locator: str, destination: Path,
              progress_callback: Optional[ProgressCallback] = None) -> None:
        destination = Path(destination)
        if self.reuse_existing and self.is_reusable(locator, destination):
            self.logger.info(f"{destination} already fetched from {locator}, skipping download.")
            if progress_callback:
                progress_callback(100)
            return

        destination.parent.mkdir(parents=True, exist_ok=True)
        marker = source_marker_path(destination)
        if marker.exists():
            marker.unlink()
        part = partial_path(destination)

        try:
            scheme = urlparse(locator).scheme
            if scheme in ("http", "https", "ftp", "file"):
                self._download(locator, part, progress_callback)
            else:
                self._copy(Path(locator).expanduser(), part, progress_callback)
            os.replace(part, destination)
        except BaseException:
            # Interrupted or failed: never leave a partial image behind
            self._remove_partial(part)
            raise

        marker.write_text(locator + "\n", encoding="utf-8")
        self.logger.info(f"Fetch completed: {destination}")

    def _copy(self, source: Path, target: Path,
              progress_callback: Optional[ProgressCallback]) -> None:
        if not source.is_file():
            raise FetchError(f"Source image not found: {source}")
        self.logger.info(f"Copying {source} to {target}")
        try:
            shutil.copyfile(source, target)
        except OSError as e:
            raise FetchError(f"Failed to copy {source}: {e}") from e
        if progress_callback:
            progress_callback(100)

    def _download(self, url: str, target: Path,
                  progress_callback: Optional[ProgressCallback]) -> None:
        self.logger.info(f"Downloading {url} to {target}")
        deadline = time.monotonic() + self.timeout if self.timeout else None
        request = urllib.request.Request(
            url, headers={"User-Agent": f"{AppInfo.name}/{AppInfo.version}"}
        )
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response, \
                    open(target, "wb") as out_file:
                total_size = int(response.headers.get("Content-Length") or 0)
                downloaded = 0
                last_percent = -1

                while True:
                    chunk = response.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    out_file.write(chunk)
                    downloaded += len(chunk)

                    if deadline is not None and time.monotonic() > deadline:
                        raise ToolTimeout(
                            f"Download of {url} timed out after {self.timeout}s", self.timeout
                        )

                    if progress_callback and total_size > 0:
                        percent = int((downloaded / total_size) * 100)
                        if percent != last_percent:
                            last_percent = percent
                            progress_callback(percent)

            if total_size and downloaded != total_size:
                raise FetchError(
                    f"Incomplete download of {url}: got {downloaded} of {total_size} bytes"
                )
        except (socket.timeout, TimeoutError) as e:
            raise ToolTimeout(f"Download of {url} timed out", self.timeout) from e
        except urllib.error.HTTPError as e:
            raise FetchError(f"Failed to download {url}: HTTP {e.code} {e.reason}") from e
        except urllib.error.URLError as e:
            if isinstance(e.reason, (socket.timeout, TimeoutError)):
                raise ToolTimeout(f"Download of {url} timed out", self.timeout) from e
            raise FetchError(f"Failed to download {url}: {e.reason}") from e
        except http.client.HTTPException as e:
            raise FetchError(f"Failed to download {url}: {e!r}") from e
        except OSError as e:
            raise FetchError(f"Failed to download {url}: {e}") from e

        if progress_callback and total_size <= 0:
            progress_callback(100)

    def _remove_partial(self, part: Path) -> None:
        if part.exists():
            part.unlink()
