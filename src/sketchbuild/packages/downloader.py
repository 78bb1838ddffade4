"""Index downloader with progress tracking.

Package and library indexes are fetched into the data directory, first to
``<index>.tmp`` and then renamed into place, so an interrupted download
never leaves a truncated index behind. A downloaded index must parse as
JSON before it replaces the cached one.

``file://`` URLs are copied from the local filesystem, which is how
platforms under development publish their index.
"""

import json
import logging
import shutil
from pathlib import Path
from typing import List, Optional, Sequence
from urllib.parse import unquote, urlparse

import requests
from tqdm import tqdm

from ..config.directories import LIBRARY_INDEX_URL, DataDirectory

logger = logging.getLogger(__name__)


class DownloadError(Exception):
    """Raised when download fails."""

    pass


class IndexDownloader:
    """Downloads package and library indexes into the data directory."""

    def __init__(self, data_dir: DataDirectory, chunk_size: int = 8192, timeout: int = 30):
        """Initialize downloader.

        Args:
            data_dir: Data directory receiving the indexes
            chunk_size: Size of chunks for downloading
            timeout: Network timeout in seconds
        """
        self.data_dir = data_dir
        self.chunk_size = chunk_size
        self.timeout = timeout

    def download_index(self, url: str, show_progress: bool = True) -> Path:
        """Download one index and cache it in the data directory.

        Args:
            url: Index URL (http(s) or file)
            show_progress: Whether to show a progress bar

        Returns:
            Path to the cached index

        Raises:
            DownloadError: If the download fails or the index is not valid JSON
        """
        try:
            dest_path = self.data_dir.index_path_from_url(url)
        except ValueError as e:
            raise DownloadError(str(e)) from e

        dest_path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = dest_path.with_suffix(dest_path.suffix + ".tmp")

        try:
            if urlparse(url).scheme == "file":
                self._copy_local(url, temp_file)
            else:
                self._fetch(url, temp_file, show_progress)
            self._validate(url, temp_file)

            if dest_path.exists():
                dest_path.unlink()
            temp_file.rename(dest_path)
            logger.debug("Updated index %s -> %s", url, dest_path)
            return dest_path

        except requests.RequestException as e:
            if temp_file.exists():
                temp_file.unlink()
            raise DownloadError(f"Failed to download {url}: {e}") from e

        except Exception:
            if temp_file.exists():
                temp_file.unlink()
            raise

    def _fetch(self, url: str, temp_file: Path, show_progress: bool) -> None:
        response = requests.get(url, stream=True, timeout=self.timeout)
        response.raise_for_status()

        total_size = int(response.headers.get("content-length", 0))
        progress_bar: Optional[tqdm] = None
        if show_progress and total_size > 0:
            progress_bar = tqdm(
                total=total_size,
                unit="B",
                unit_scale=True,
                unit_divisor=1024,
                desc=f"Downloading index: {Path(urlparse(url).path).name}",
            )

        try:
            with open(temp_file, "wb") as f:
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    if chunk:
                        f.write(chunk)
                        if progress_bar:
                            progress_bar.update(len(chunk))
        finally:
            if progress_bar:
                progress_bar.close()

    @staticmethod
    def _copy_local(url: str, temp_file: Path) -> None:
        source = Path(unquote(urlparse(url).path))
        if not source.is_file():
            raise DownloadError(f"Index file not found: {source}")
        shutil.copyfile(source, temp_file)

    @staticmethod
    def _validate(url: str, temp_file: Path) -> None:
        try:
            with open(temp_file, "r", encoding="utf-8") as f:
                json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DownloadError(f"Invalid index downloaded from {url}: {e}") from e

    def update_indexes(self, urls: Sequence[str], show_progress: bool = True) -> List[Path]:
        """Download every index, continuing past failures.

        Args:
            urls: Index URLs
            show_progress: Whether to show progress bars

        Returns:
            Paths of the updated indexes

        Raises:
            DownloadError: Listing every URL that failed, after trying them all
        """
        updated = []
        failures = []
        for url in urls:
            try:
                updated.append(self.download_index(url, show_progress))
            except DownloadError as e:
                logger.warning("Index update failed: %s", e)
                failures.append(str(e))

        if failures:
            raise DownloadError("\n".join(failures))
        return updated

    def download_library_index(self, show_progress: bool = True) -> Path:
        return self.download_index(LIBRARY_INDEX_URL, show_progress)
