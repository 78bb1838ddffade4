"""Package index management for sketchbuild.

This module handles downloading the package and library indexes that
describe installable platforms and tools.
"""

from .downloader import DownloadError, IndexDownloader

__all__ = [
    "DownloadError",
    "IndexDownloader",
]
