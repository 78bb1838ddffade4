"""
Hardware folder loader.

Marks platform and tool releases installed by scanning the data directory:

    packages/{packager}/hardware/{arch}/{version}/boards.txt
    packages/{packager}/hardware/{arch}/{version}/platform.txt
    packages/{packager}/tools/{name}/{version}/

and the sketchbook hardware folder, whose platforms are unversioned and
usually come without a package index:

    {user_dir}/hardware/{packager}/{arch}/boards.txt
"""

import logging
from pathlib import Path

from ..config.properties import PropertiesError, PropertiesMap
from .errors import PackageManagerError
from .packages import Packages, Platform, PlatformRelease
from .versions import version_key

logger = logging.getLogger(__name__)

UNVERSIONED = "0.0.0"


class HardwareLoadError(PackageManagerError):
    """Raised when an installed platform has unreadable descriptors."""

    pass


def load_packages_dir(packages_dir: Path, packages: Packages) -> None:
    """
    Load every installed platform and tool release below a packages dir.

    Args:
        packages_dir: The data directory's packages/ folder
        packages: Registry to update in place

    Raises:
        HardwareLoadError: If a platform's boards.txt/platform.txt can't be read
    """
    if not packages_dir.is_dir():
        logger.debug("No packages directory at %s", packages_dir)
        return

    for packager_dir in sorted(p for p in packages_dir.iterdir() if p.is_dir()):
        package = packages.get_or_create_package(packager_dir.name)

        hardware_dir = packager_dir / "hardware"
        if hardware_dir.is_dir():
            for arch_dir in sorted(p for p in hardware_dir.iterdir() if p.is_dir()):
                platform = package.get_or_create_platform(arch_dir.name)
                version_dirs = sorted(
                    (p for p in arch_dir.iterdir() if p.is_dir()), key=lambda p: version_key(p.name)
                )
                if len(version_dirs) > 1:
                    logger.warning(
                        "Multiple versions of %s installed, using %s",
                        platform,
                        version_dirs[-1].name,
                    )
                for version_dir in version_dirs:
                    load_platform_release(platform, version_dir.name, version_dir)

        tools_dir = packager_dir / "tools"
        if tools_dir.is_dir():
            for tool_dir in sorted(p for p in tools_dir.iterdir() if p.is_dir()):
                tool = package.get_or_create_tool(tool_dir.name)
                for version_dir in sorted(p for p in tool_dir.iterdir() if p.is_dir()):
                    tool.get_or_create_release(version_dir.name).mark_installed(version_dir)
                    logger.debug("Found tool %s@%s", tool, version_dir.name)


def load_user_hardware_dir(hardware_dir: Path, packages: Packages) -> None:
    """
    Load unversioned platforms from a sketchbook hardware folder.

    Args:
        hardware_dir: {user_dir}/hardware
        packages: Registry to update in place
    """
    if not hardware_dir.is_dir():
        return

    for packager_dir in sorted(p for p in hardware_dir.iterdir() if p.is_dir()):
        for arch_dir in sorted(p for p in packager_dir.iterdir() if p.is_dir()):
            if not (arch_dir / "boards.txt").exists():
                continue
            package = packages.get_or_create_package(packager_dir.name)
            platform = package.get_or_create_platform(arch_dir.name)
            version = UNVERSIONED
            platform_txt = arch_dir / "platform.txt"
            if platform_txt.exists():
                version = _read(platform_txt).get("version", UNVERSIONED) or UNVERSIONED
            load_platform_release(platform, version, arch_dir)


def load_platform_release(platform: Platform, version: str, install_dir: Path) -> PlatformRelease:
    """
    Load boards and platform properties of an installed release.

    *.local.txt files, when present, override their base file.

    Args:
        platform: Platform the release belongs to
        version: Release version
        install_dir: Directory with boards.txt and platform.txt

    Returns:
        The release, now marked installed
    """
    release = platform.mark_installed(version, install_dir)

    properties = PropertiesMap()
    for name in ("platform.txt", "platform.local.txt"):
        path = install_dir / name
        if path.exists():
            properties.merge(_read(path))
    release.properties = properties

    boards_props = PropertiesMap()
    for name in ("boards.txt", "boards.local.txt"):
        path = install_dir / name
        if path.exists():
            boards_props.merge(_read(path))

    release.menus = boards_props.sub_tree("menu")
    release.boards = {}
    for board_id in boards_props.first_level_keys():
        if board_id == "menu":
            continue
        board = release.get_or_create_board(board_id)
        board.properties = boards_props.sub_tree(board_id)

    logger.debug("Loaded %s from %s with %d boards", release, install_dir, len(release.boards))
    return release


def _read(path: Path) -> PropertiesMap:
    try:
        return PropertiesMap.load(path)
    except PropertiesError as e:
        raise HardwareLoadError(str(e)) from e
