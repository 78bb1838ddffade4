"""
Package index parsing.

A package index (package_index.json) advertises the platforms and tools a
vendor publishes:

    {
      "packages": [{
        "name": "arduino",
        "maintainer": "Arduino",
        "platforms": [{
          "name": "Arduino AVR Boards", "architecture": "avr", "version": "1.8.6",
          "boards": [{"name": "Arduino Uno"}],
          "toolsDependencies": [
            {"packager": "arduino", "name": "avr-gcc", "version": "7.3.0-atmel3.6.1-arduino7"}
          ]
        }],
        "tools": [{"name": "avr-gcc", "version": "7.3.0-atmel3.6.1-arduino7", "systems": [...]}]
      }]
    }

Merging an index adds releases and their tool dependencies to the registry.
It never marks anything installed; that is the hardware loader's job.
"""

import json
import logging
import platform as host_platform
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import IndexLoadError
from .packages import Packages, ToolDependency

logger = logging.getLogger(__name__)


def load_index(index_path: Path) -> Dict[str, Any]:
    """
    Read and minimally validate a package index file.

    Args:
        index_path: Path to the JSON file

    Returns:
        Decoded index document

    Raises:
        IndexLoadError: If the file is missing, not JSON, or has no package list
    """
    if not index_path.exists():
        raise IndexLoadError(f"Index file not found: {index_path}")

    try:
        with open(index_path, "r", encoding="utf-8") as f:
            document = json.load(f)
    except json.JSONDecodeError as e:
        raise IndexLoadError(f"Invalid JSON in {index_path}: {e}") from e
    except OSError as e:
        raise IndexLoadError(f"Failed to read {index_path}: {e}") from e

    if not isinstance(document, dict) or not isinstance(document.get("packages"), list):
        raise IndexLoadError(f"{index_path} has no 'packages' list")

    return document


def merge_into_packages(document: Dict[str, Any], packages: Packages) -> None:
    """
    Merge a decoded index into the registry.

    Args:
        document: Index as returned by load_index
        packages: Registry to update in place

    Raises:
        IndexLoadError: If an entry lacks a required field
    """
    for pkg_entry in document.get("packages", []):
        name = _required(pkg_entry, "name", "package")
        package = packages.get_or_create_package(name)
        package.maintainer = pkg_entry.get("maintainer", package.maintainer)
        package.website_url = pkg_entry.get("websiteURL", package.website_url)
        package.email = pkg_entry.get("email", package.email)

        for platform_entry in pkg_entry.get("platforms", []) or []:
            _merge_platform(package, platform_entry)

        for tool_entry in pkg_entry.get("tools", []) or []:
            _merge_tool(package, tool_entry)

        logger.debug(
            "Merged index package %s: %d platforms, %d tools",
            name,
            len(package.platforms),
            len(package.tools),
        )


def _merge_platform(package, entry: Dict[str, Any]) -> None:
    arch = _required(entry, "architecture", f"platform of {package.name}")
    version = _required(entry, "version", f"platform {package.name}:{arch}")

    platform = package.get_or_create_platform(arch)
    platform.name = entry.get("name", platform.name)
    platform.category = entry.get("category", platform.category)

    release = platform.get_or_create_release(version)
    release.url = entry.get("url")
    release.checksum = entry.get("checksum")
    release.index_board_names = [b.get("name", "") for b in entry.get("boards", []) or []]
    release.dependencies = [
        ToolDependency(
            tool_packager=_required(dep, "packager", f"tool dependency of {release}"),
            tool_name=_required(dep, "name", f"tool dependency of {release}"),
            tool_version=_required(dep, "version", f"tool dependency of {release}"),
        )
        for dep in entry.get("toolsDependencies", []) or []
    ]


def _merge_tool(package, entry: Dict[str, Any]) -> None:
    name = _required(entry, "name", f"tool of {package.name}")
    version = _required(entry, "version", f"tool {package.name}:{name}")

    release = package.get_or_create_tool(name).get_or_create_release(version)
    system = _select_system(entry.get("systems", []) or [])
    if system is not None:
        release.url = system.get("url")
        release.checksum = system.get("checksum")


def _select_system(systems: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Pick the download flavour matching the running host, if any."""
    machine = host_platform.machine().lower()
    system_name = host_platform.system().lower()
    host_words = {
        "linux": ["linux"],
        "darwin": ["apple", "darwin"],
        "windows": ["mingw", "windows", "cygwin"],
    }.get(system_name, [system_name])

    for system in systems:
        host = system.get("host", "").lower()
        if any(word in host for word in host_words) and (machine in host or not machine):
            return system
    for system in systems:
        host = system.get("host", "").lower()
        if any(word in host for word in host_words):
            return system
    return None


def _required(entry: Dict[str, Any], key: str, what: str) -> str:
    value = entry.get(key)
    if not value:
        raise IndexLoadError(f"Missing '{key}' in {what}")
    return str(value)
