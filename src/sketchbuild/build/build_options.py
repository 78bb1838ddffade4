"""Build options tracking.

A build directory is only reusable when it was produced with the same
board, hardware, libraries and custom properties. The options of each build
are saved to build.options.json; when the next build's options differ (or
the previous file is unreadable), the build directory is wiped first.
"""

import json
import logging
import shutil
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)

BUILD_OPTIONS_FILE = "build.options.json"


class BuildOptionsManager:
    """Wipes a build directory whose previous options don't match."""

    def __init__(self, build_path: Path, options: Dict[str, Any]):
        """
        Initialize options manager.

        Args:
            build_path: Build output directory
            options: Options of the current build (JSON-serialisable values)
        """
        self.build_path = Path(build_path)
        self.options = options

    @property
    def options_file(self) -> Path:
        return self.build_path / BUILD_OPTIONS_FILE

    def load_previous(self) -> Dict[str, Any]:
        """Return the options of the previous build, or {} if none/unreadable."""
        if not self.options_file.exists():
            return {}
        try:
            with open(self.options_file, "r", encoding="utf-8") as f:
                previous = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.debug("Unreadable %s: %s", self.options_file, e)
            return {}
        return previous if isinstance(previous, dict) else {}

    def needs_wipe(self) -> bool:
        """True when a previous build exists and was made with other options."""
        if not self.build_path.exists() or not any(self.build_path.iterdir()):
            return False
        return self.load_previous() != self._normalized()

    def wipe_build_path(self) -> bool:
        """
        Wipe the build directory if needed, then record the current options.

        Returns:
            True if the directory was wiped

        Raises:
            OSError: If the directory can't be removed or the file written
        """
        wiped = False
        if self.needs_wipe():
            logger.debug("Build options changed, wiping %s", self.build_path)
            shutil.rmtree(self.build_path)
            wiped = True

        self.build_path.mkdir(parents=True, exist_ok=True)
        with open(self.options_file, "w", encoding="utf-8") as f:
            json.dump(self._normalized(), f, indent=2, sort_keys=True)
        return wiped

    def _normalized(self) -> Dict[str, Any]:
        # Round-trip so tuples/Paths compare equal to what was loaded back
        return json.loads(json.dumps(self.options, sort_keys=True, default=str))
