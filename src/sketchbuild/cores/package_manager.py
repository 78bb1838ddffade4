"""
Package manager: the read side of the package registry.

The PackageManager owns the registry of installed packages and answers the
questions a build needs:

- which package, platform release and board an FQBN names
- which merged build properties that board builds with
- which platform release actually provides the core (a board may borrow
  the core of another package through ``build.core=packager:core``)
- which tool releases the board's platform requires

Resolution never mutates the registry. clear() and the load_* methods are
the only mutators and must not run concurrently with a resolution.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from ..config.directories import DataDirectory
from ..config.properties import PropertiesMap
from . import loader, packageindex
from .errors import (
    BoardNotFoundError,
    InvalidBuildPropertiesError,
    MissingCorePackageError,
    PlatformNotInstalledError,
    ResolutionError,
    ToolReleaseNotFoundError,
    UnknownPackageError,
    UnknownPlatformError,
)
from .fqbn import FQBN
from .packages import Board, Package, Packages, PlatformRelease, Tool, ToolDependency, ToolRelease

logger = logging.getLogger(__name__)


class EventHandler(Protocol):
    """Observer notified while the package manager resolves tools."""

    def on_tool_resolved(self, dependency: ToolDependency, release: ToolRelease) -> None:
        ...


@dataclass
class FQBNResolution:
    """
    Everything resolve_fqbn found for an FQBN.

    On failure ``error`` is set and every field resolved before the failing
    step is still populated, so callers can report e.g. "found package
    arduino, but platform avr is not installed".
    """

    fqbn: FQBN
    package: Optional[Package] = None
    platform_release: Optional[PlatformRelease] = None
    board: Optional[Board] = None
    build_properties: Optional[PropertiesMap] = None
    build_platform_release: Optional[PlatformRelease] = None
    error: Optional[ResolutionError] = None

    @property
    def success(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> None:
        """Raise the resolution error, if any."""
        if self.error is not None:
            raise self.error

    def resolved(self) -> "ResolvedBoard":
        """
        Return the fields of a successful resolution.

        Raises:
            ResolutionError: The resolution error, or a plain one when a
                field is missing
        """
        self.raise_for_error()
        package, platform_release, board = self.package, self.platform_release, self.board
        build_properties, build_platform_release = self.build_properties, self.build_platform_release
        if (
            package is None
            or platform_release is None
            or board is None
            or build_properties is None
            or build_platform_release is None
        ):
            raise ResolutionError(f"Incomplete resolution of {self.fqbn}")
        return ResolvedBoard(package, platform_release, board, build_properties, build_platform_release)


@dataclass(frozen=True)
class ResolvedBoard:
    """A complete FQBN resolution."""

    package: Package
    platform_release: PlatformRelease
    board: Board
    build_properties: PropertiesMap
    build_platform_release: PlatformRelease


class PackageManager:
    """
    Registry of installed packages plus the resolution operations over it.

    Example usage:
        pm = PackageManager(DataDirectory())
        pm.load_hardware()
        result = pm.resolve_fqbn(FQBN.parse("arduino:avr:uno"))
        if result.success:
            tools = pm.find_tools_required_for_board(result.board)
    """

    def __init__(
        self,
        data_dir: Optional[DataDirectory] = None,
        event_handler: Optional[EventHandler] = None,
    ):
        """
        Initialize the package manager with an empty registry.

        Args:
            data_dir: Data directory to load installed packages from
            event_handler: Optional observer for tool resolution events
        """
        self.data_dir = data_dir
        self.event_handler = event_handler
        self._packages = Packages()

    # Registry mutators

    def clear(self) -> None:
        """Discard every loaded package."""
        self._packages = Packages()

    def get_packages(self) -> Packages:
        return self._packages

    def load_package_index(self, url: str) -> None:
        """
        Merge the locally cached index for ``url`` into the registry.

        Raises:
            IndexLoadError: If the cached index is missing or malformed
        """
        data_dir = self._require_data_dir()
        index_path = data_dir.index_path_from_url(url)
        document = packageindex.load_index(index_path)
        packageindex.merge_into_packages(document, self._packages)
        logger.debug("Loaded package index %s from %s", url, index_path)

    def load_hardware(self, user_hardware_dir: Optional[Path] = None) -> None:
        """
        Mark installed platforms and tools found on disk.

        Args:
            user_hardware_dir: Optional sketchbook hardware folder

        Raises:
            HardwareLoadError: If an installed platform can't be read
        """
        data_dir = self._require_data_dir()
        loader.load_packages_dir(data_dir.packages_dir, self._packages)
        if user_hardware_dir is not None:
            loader.load_user_hardware_dir(user_hardware_dir, self._packages)

    def _require_data_dir(self) -> DataDirectory:
        if self.data_dir is None:
            self.data_dir = DataDirectory()
        return self.data_dir

    # Board lookups

    def installed_boards(self) -> List[Board]:
        """Return every board of every installed platform release."""
        boards: List[Board] = []
        for package in self._packages:
            for platform in package.platforms.values():
                release = platform.get_installed()
                if release is not None:
                    boards.extend(release.boards.values())
        return boards

    def find_boards_with_vid_pid(self, vid: str, pid: str) -> List[Board]:
        return [board for board in self.installed_boards() if board.has_usb_id(vid, pid)]

    def find_boards_with_id(self, board_id: str) -> List[Board]:
        return [board for board in self.installed_boards() if board.board_id == board_id]

    def find_board_with_fqbn(self, fqbn: str) -> Board:
        """
        Resolve an FQBN string to its board only.

        Raises:
            FQBNError: If the string is malformed
            ResolutionError: If the board can't be resolved
        """
        return self.resolve_fqbn(FQBN.parse(fqbn)).resolved().board

    def resolve_fqbn(self, fqbn: FQBN) -> FQBNResolution:
        """
        Resolve an FQBN against the installed packages.

        Args:
            fqbn: Parsed FQBN

        Returns:
            FQBNResolution; on failure, with the partial results and ``error``
        """
        result = FQBNResolution(fqbn=fqbn)

        package = self._packages.get(fqbn.package)
        if package is None:
            result.error = UnknownPackageError(f"unknown package {fqbn.package}")
            return result
        result.package = package

        platform = package.platforms.get(fqbn.platform_arch)
        if platform is None:
            result.error = UnknownPlatformError(f"unknown platform {package.name}:{fqbn.platform_arch}")
            return result

        platform_release = platform.get_installed()
        if platform_release is None:
            result.error = PlatformNotInstalledError(f"platform {platform} is not installed")
            return result
        result.platform_release = platform_release

        board = platform_release.boards.get(fqbn.board_id)
        if board is None:
            result.error = BoardNotFoundError(f"board {platform_release}:{fqbn.board_id} not found")
            return result
        result.board = board

        try:
            build_properties = board.get_build_properties(fqbn.configs)
        except InvalidBuildPropertiesError as e:
            error = InvalidBuildPropertiesError(f"getting build properties for board {board}: {e}")
            error.__cause__ = e
            result.error = error
            return result
        result.build_properties = build_properties

        # The core may live in another package: build.core=packager:core
        build_platform_release = platform_release
        core_parts = build_properties.get("build.core", "").split(":")
        if len(core_parts) > 1:
            referred_package = core_parts[0]
            build_platform_release = self._installed_release(referred_package, fqbn.platform_arch)
            if build_platform_release is None:
                result.error = MissingCorePackageError(
                    f"missing package {referred_package}:{fqbn.platform_arch} required for build"
                )
                return result
        result.build_platform_release = build_platform_release

        return result

    def _installed_release(self, package_name: str, arch: str) -> Optional[PlatformRelease]:
        package = self._packages.get(package_name)
        if package is None:
            return None
        platform = package.platforms.get(arch)
        if platform is None:
            return None
        return platform.get_installed()

    # Tool lookups

    def package(self, name: str) -> Optional[Package]:
        return self._packages.get(name)

    def tool(self, packager: str, name: str) -> Optional[Tool]:
        package = self.package(packager)
        if package is None:
            return None
        return package.tools.get(name)

    def is_tool_installed(self, packager: str, name: str) -> bool:
        tool = self.tool(packager, name)
        return tool is not None and tool.is_installed()

    def get_all_installed_tools_releases(self) -> List[ToolRelease]:
        releases: List[ToolRelease] = []
        for package in self._packages:
            for tool in package.tools.values():
                releases.extend(r for r in tool.releases.values() if r.is_installed())
        return releases

    def find_tool_dependency(self, dep: ToolDependency) -> Optional[ToolRelease]:
        """Look up the release a dependency names; None when absent."""
        tool = self.tool(dep.tool_packager, dep.tool_name)
        if tool is None:
            return None
        return tool.get_release(dep.tool_version)

    def find_tools_required_for_board(self, board: Board) -> List[ToolRelease]:
        """
        Compute the tool releases needed to build for a board.

        Every tool's latest installed release is taken by default, since
        platforms loaded from a hardware folder declare no dependencies.
        Explicit dependencies of the board's platform release then replace
        the default for their tool.

        Args:
            board: Board to build for

        Returns:
            One release per packager:tool, in no particular order

        Raises:
            ToolReleaseNotFoundError: If an explicit dependency isn't installed
        """
        # "packager:tool" -> release
        found_tools: Dict[str, ToolRelease] = {}

        for package in self._packages:
            for tool in package.tools.values():
                latest = tool.get_latest_installed()
                if latest is not None:
                    found_tools[str(tool)] = latest

        for dep in board.platform_release.dependencies:
            release = self.find_tool_dependency(dep)
            if release is None or not release.is_installed():
                raise ToolReleaseNotFoundError(dep)
            found_tools[str(release.tool)] = release
            if self.event_handler is not None:
                self.event_handler.on_tool_resolved(dep, release)

        return list(found_tools.values())


def runtime_tool_properties(releases: List[ToolRelease]) -> PropertiesMap:
    """
    Build the runtime.tools.* properties recipes use to locate tools.

    For each installed release both ``runtime.tools.{name}.path`` and
    ``runtime.tools.{name}-{version}.path`` are set.
    """
    props = PropertiesMap()
    for release in releases:
        if release.install_dir is None:
            continue
        path = str(release.install_dir)
        props[f"runtime.tools.{release.tool.name}.path"] = path
        props[f"runtime.tools.{release.tool.name}-{release.version}.path"] = path
    return props
