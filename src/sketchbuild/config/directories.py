"""Data directory layout for sketchbuild.

Installed packages, downloaded indexes and build output live under a single
data directory:

    ~/.sketchbuild/
    ├── package_index.json                   # default package index
    ├── package_<name>_index.json            # additional package indexes
    ├── library_index.json                   # library index
    ├── staging/                             # partial downloads
    ├── packages/
    │   └── {packager}/
    │       ├── hardware/{arch}/{version}/   # installed platform releases
    │       │   ├── boards.txt
    │       │   └── platform.txt
    │       └── tools/{name}/{version}/      # installed tool releases
    └── build/
        └── {sketch_hash}/                   # build output per sketch
            ├── sketch/
            ├── libraries/
            └── core/

The data directory can be relocated with the SKETCHBUILD_DATA_DIR
environment variable.
"""

import hashlib
import os
import shutil
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

DEFAULT_INDEX_URL = "https://downloads.arduino.cc/packages/package_index.json"
LIBRARY_INDEX_URL = "https://downloads.arduino.cc/libraries/library_index.json"


class DataDirectory:
    """Computes every path sketchbuild reads from or writes to."""

    def __init__(self, root: Optional[Path] = None):
        """Initialize the data directory.

        Args:
            root: Data directory. If None, SKETCHBUILD_DATA_DIR or ~/.sketchbuild
        """
        if root is None:
            env_root = os.environ.get("SKETCHBUILD_DATA_DIR")
            root = Path(env_root) if env_root else Path.home() / ".sketchbuild"

        self.root = Path(root).resolve()

    @staticmethod
    def hash_path(path: Path) -> str:
        """Generate a stable directory name for a sketch location.

        Args:
            path: Sketch directory

        Returns:
            First 16 characters of the SHA256 hash of the absolute path
        """
        absolute = str(Path(path).resolve())
        return hashlib.sha256(absolute.encode("utf-8")).hexdigest()[:16]

    @property
    def packages_dir(self) -> Path:
        """Directory holding installed packages."""
        return self.root / "packages"

    @property
    def staging_dir(self) -> Path:
        """Directory for in-progress downloads."""
        return self.root / "staging"

    @property
    def build_root(self) -> Path:
        """Directory holding per-sketch build output."""
        return self.root / "build"

    def index_path_from_url(self, url: str) -> Path:
        """Get the local file an index URL is cached in.

        The default package index and the library index keep their file
        names; additional package indexes are stored under their own URL
        file name, which by convention already reads package_<name>_index.json.

        Args:
            url: Index URL

        Returns:
            Path of the cached index file
        """
        filename = Path(urlparse(url).path).name
        if not filename:
            raise ValueError(f"Index URL has no file name: {url}")
        return self.root / filename

    def get_build_dir(self, sketch_dir: Path) -> Path:
        """Get the default build directory for a sketch.

        Args:
            sketch_dir: Sketch directory

        Returns:
            Path to the sketch's build directory
        """
        return self.build_root / self.hash_path(sketch_dir)

    def ensure_directories(self) -> None:
        """Create the data directories if they don't exist."""
        for directory in [self.packages_dir, self.staging_dir, self.build_root]:
            directory.mkdir(parents=True, exist_ok=True)

    def clean_build(self, sketch_dir: Path) -> None:
        """Remove all build artifacts for a sketch.

        Args:
            sketch_dir: Sketch directory
        """
        build_dir = self.get_build_dir(sketch_dir)
        if build_dir.exists():
            shutil.rmtree(build_dir)
