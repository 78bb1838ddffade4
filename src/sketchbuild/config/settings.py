"""
Runtime settings for sketchbuild.

Settings come from CLI arguments with environment-variable fallbacks:

    SKETCHBUILD_DATA_DIR          data directory (default ~/.sketchbuild)
    SKETCHBUILD_USER_DIR          sketchbook directory (default ~/Arduino)
    SKETCHBUILD_ADDITIONAL_URLS   comma separated extra package index URLs
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .directories import DEFAULT_INDEX_URL, DataDirectory


class SettingsError(Exception):
    """Exception raised for invalid settings."""

    pass


def _split_urls(value: str) -> List[str]:
    return [url.strip() for url in value.split(",") if url.strip()]


@dataclass
class Settings:
    """Resolved settings for one sketchbuild invocation."""

    data_dir: DataDirectory
    user_dir: Path
    additional_urls: List[str] = field(default_factory=list)
    verbose: bool = False
    only_update_compilation_database: bool = False
    export_cmake: bool = False
    custom_properties: Dict[str, str] = field(default_factory=dict)
    build_path: Optional[Path] = None

    @classmethod
    def from_environment(
        cls,
        data_dir: Optional[Path] = None,
        user_dir: Optional[Path] = None,
        **overrides,
    ) -> "Settings":
        """
        Build settings from explicit values and environment variables.

        Args:
            data_dir: Data directory override
            user_dir: Sketchbook directory override
            **overrides: Any other Settings field

        Returns:
            Settings instance
        """
        if user_dir is None:
            env_user = os.environ.get("SKETCHBUILD_USER_DIR")
            user_dir = Path(env_user) if env_user else Path.home() / "Arduino"

        if "additional_urls" not in overrides:
            overrides["additional_urls"] = _split_urls(
                os.environ.get("SKETCHBUILD_ADDITIONAL_URLS", "")
            )

        return cls(
            data_dir=DataDirectory(data_dir),
            user_dir=Path(user_dir).resolve(),
            **overrides,
        )

    @property
    def index_urls(self) -> List[str]:
        """Default index URL followed by the additional ones."""
        return [DEFAULT_INDEX_URL] + [u for u in self.additional_urls if u != DEFAULT_INDEX_URL]

    @property
    def user_libraries_dir(self) -> Path:
        return self.user_dir / "libraries"

    @property
    def user_hardware_dir(self) -> Path:
        return self.user_dir / "hardware"

    @staticmethod
    def parse_custom_properties(items: List[str]) -> Dict[str, str]:
        """
        Parse ``key=value`` strings given on the command line.

        Raises:
            SettingsError: If an item has no '=' or an empty key
        """
        props: Dict[str, str] = {}
        for item in items:
            if "=" not in item:
                raise SettingsError(f"Invalid build property '{item}': expected key=value")
            key, value = item.split("=", 1)
            key = key.strip()
            if not key:
                raise SettingsError(f"Invalid build property '{item}': empty key")
            props[key] = value
        return props
