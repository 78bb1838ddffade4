"""
In-memory package registry.

The registry is a graph of installed hardware:

    Packages
    └── Package (e.g. "arduino")
        ├── platforms: arch -> Platform (e.g. "avr")
        │   └── releases: version -> PlatformRelease (at most one installed)
        │       └── boards: board id -> Board
        └── tools: name -> Tool (e.g. "avr-gcc")
            └── releases: version -> ToolRelease

Loaders (package index, hardware folders) are the only writers; resolution
reads the graph without modifying it.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ..config.properties import PropertiesMap
from .errors import InvalidBuildPropertiesError
from .versions import version_key

ConfigOptions = Union[Mapping[str, str], Sequence[Tuple[str, str]]]


@dataclass(frozen=True)
class ToolDependency:
    """A tool version required by a platform release."""

    tool_packager: str
    tool_name: str
    tool_version: str

    def __str__(self) -> str:
        return f"{self.tool_packager}:{self.tool_name}@{self.tool_version}"


class ToolRelease:
    """One version of a tool."""

    def __init__(self, tool: "Tool", version: str):
        self.tool = tool
        self.version = version
        self.install_dir: Optional[Path] = None
        self.installed = False
        self.url: Optional[str] = None
        self.checksum: Optional[str] = None

    def is_installed(self) -> bool:
        return self.installed

    def mark_installed(self, install_dir: Path) -> None:
        self.install_dir = Path(install_dir)
        self.installed = True

    def __str__(self) -> str:
        return f"{self.tool}@{self.version}"

    def __repr__(self) -> str:
        return f"ToolRelease({self}, installed={self.installed})"


class Tool:
    """A named external program and its known releases."""

    def __init__(self, package: "Package", name: str):
        self.package = package
        self.name = name
        self.releases: Dict[str, ToolRelease] = {}

    def get_or_create_release(self, version: str) -> ToolRelease:
        release = self.releases.get(version)
        if release is None:
            release = ToolRelease(self, version)
            self.releases[version] = release
        return release

    def get_release(self, version: str) -> Optional[ToolRelease]:
        return self.releases.get(version)

    def get_latest_installed(self) -> Optional[ToolRelease]:
        """Return the installed release with the highest version, or None."""
        installed = [r for r in self.releases.values() if r.is_installed()]
        if not installed:
            return None
        return max(installed, key=lambda r: version_key(r.version))

    def is_installed(self) -> bool:
        return any(r.is_installed() for r in self.releases.values())

    def __str__(self) -> str:
        return f"{self.package.name}:{self.name}"

    def __repr__(self) -> str:
        return f"Tool({self})"


class Board:
    """A board defined by an installed platform release."""

    def __init__(self, platform_release: "PlatformRelease", board_id: str, properties: Optional[PropertiesMap] = None):
        self.platform_release = platform_release
        self.board_id = board_id
        self.properties = properties if properties is not None else PropertiesMap()

    def name(self) -> str:
        return self.properties.get("name", self.board_id)

    def fqbn(self) -> str:
        platform = self.platform_release.platform
        return f"{platform.package.name}:{platform.architecture}:{self.board_id}"

    def usb_ids(self) -> List[Tuple[str, str]]:
        """Return the declared (vid, pid) pairs, from vid.N/pid.N properties."""
        vids = self.properties.sub_tree("vid")
        pids = self.properties.sub_tree("pid")
        return [(vid, pids[index]) for index, vid in vids.items() if index in pids]

    def has_usb_id(self, vid: str, pid: str) -> bool:
        """Check whether the board declares the given USB ids (case-insensitive)."""
        vid, pid = vid.lower(), pid.lower()
        return any(v.lower() == vid and p.lower() == pid for v, p in self.usb_ids())

    def config_menus(self) -> Dict[str, List[str]]:
        """Return menu id -> option ids declared by this board, in declaration order."""
        menus = self.properties.sub_tree("menu")
        return {menu_id: menus.sub_tree(menu_id).first_level_keys() for menu_id in menus.first_level_keys()}

    def get_build_properties(self, config_options: Optional[ConfigOptions] = None) -> PropertiesMap:
        """
        Compute the merged build properties for the given menu selections.

        Merge order: platform properties, board properties (menu.* excluded),
        the first option of every menu not selected explicitly, then the
        selected options.

        Args:
            config_options: Menu selections, e.g. {"cpu": "atmega328old"}

        Returns:
            Merged PropertiesMap

        Raises:
            InvalidBuildPropertiesError: If a menu or option isn't declared
        """
        selected: Dict[str, str] = dict(config_options or {})

        menus = self.properties.sub_tree("menu")
        declared = self.config_menus()

        for option, value in selected.items():
            if option not in declared:
                raise InvalidBuildPropertiesError(
                    f"invalid option '{option}' for board {self.board_id}"
                )
            if not value:
                raise InvalidBuildPropertiesError(f"invalid empty value for option '{option}'")
            if value not in declared[option]:
                raise InvalidBuildPropertiesError(
                    f"invalid value '{value}' for option '{option}' of board {self.board_id}"
                )

        release = self.platform_release
        platform = release.platform

        props = release.properties.clone()
        props.merge({k: v for k, v in self.properties.items() if not k.startswith("menu.")})

        for option, values in declared.items():
            choice = selected.get(option)
            if choice is None and values:
                choice = values[0]
            if choice is not None:
                props.merge(menus.sub_tree(option).sub_tree(choice))

        props["build.fqbn"] = self.fqbn()
        props["build.arch"] = platform.architecture.upper()
        props.setdefault("build.board", f"{platform.architecture}_{self.board_id}".upper())
        if release.install_dir is not None:
            props["runtime.platform.path"] = str(release.install_dir)
            props["runtime.hardware.path"] = str(release.install_dir.parent)
        return props

    def __str__(self) -> str:
        return self.fqbn()

    def __repr__(self) -> str:
        return f"Board({self.fqbn()!r})"


class PlatformRelease:
    """One version of a platform, with its boards once installed."""

    def __init__(self, platform: "Platform", version: str):
        self.platform = platform
        self.version = version
        self.properties = PropertiesMap()
        self.boards: Dict[str, Board] = {}
        self.menus = PropertiesMap()
        self.dependencies: List[ToolDependency] = []
        self.install_dir: Optional[Path] = None
        self.installed = False
        self.url: Optional[str] = None
        self.checksum: Optional[str] = None
        # Board names advertised by the package index, before install
        self.index_board_names: List[str] = []

    def is_installed(self) -> bool:
        return self.installed

    def get_or_create_board(self, board_id: str) -> Board:
        board = self.boards.get(board_id)
        if board is None:
            board = Board(self, board_id)
            self.boards[board_id] = board
        return board

    def __str__(self) -> str:
        return f"{self.platform}@{self.version}"

    def __repr__(self) -> str:
        return f"PlatformRelease({self}, installed={self.installed})"


class Platform:
    """One architecture within a package."""

    def __init__(self, package: "Package", architecture: str):
        self.package = package
        self.architecture = architecture
        self.name = architecture
        self.category = ""
        self.releases: Dict[str, PlatformRelease] = {}

    def get_or_create_release(self, version: str) -> PlatformRelease:
        release = self.releases.get(version)
        if release is None:
            release = PlatformRelease(self, version)
            self.releases[version] = release
        return release

    def get_installed(self) -> Optional[PlatformRelease]:
        """Return the installed release, or None."""
        for release in self.releases.values():
            if release.is_installed():
                return release
        return None

    def get_latest_release(self) -> Optional[PlatformRelease]:
        if not self.releases:
            return None
        return max(self.releases.values(), key=lambda r: version_key(r.version))

    def mark_installed(self, version: str, install_dir: Path) -> PlatformRelease:
        """
        Mark one release installed, un-marking any other.

        Args:
            version: Release version
            install_dir: Directory holding boards.txt/platform.txt

        Returns:
            The installed PlatformRelease
        """
        target = self.get_or_create_release(version)
        for release in self.releases.values():
            release.installed = release is target
        target.install_dir = Path(install_dir)
        return target

    def __str__(self) -> str:
        return f"{self.package.name}:{self.architecture}"

    def __repr__(self) -> str:
        return f"Platform({self})"


class Package:
    """A vendor of platforms and tools."""

    def __init__(self, name: str):
        self.name = name
        self.maintainer = ""
        self.website_url = ""
        self.email = ""
        self.platforms: Dict[str, Platform] = {}
        self.tools: Dict[str, Tool] = {}

    def get_or_create_platform(self, architecture: str) -> Platform:
        platform = self.platforms.get(architecture)
        if platform is None:
            platform = Platform(self, architecture)
            self.platforms[architecture] = platform
        return platform

    def get_or_create_tool(self, name: str) -> Tool:
        tool = self.tools.get(name)
        if tool is None:
            tool = Tool(self, name)
            self.tools[name] = tool
        return tool

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"Package({self.name!r})"


class Packages:
    """The set of known packages, keyed by name."""

    def __init__(self):
        self.packages: Dict[str, Package] = {}

    def get_or_create_package(self, name: str) -> Package:
        package = self.packages.get(name)
        if package is None:
            package = Package(name)
            self.packages[name] = package
        return package

    def get(self, name: str) -> Optional[Package]:
        return self.packages.get(name)

    def __iter__(self):
        return iter(self.packages.values())

    def __len__(self) -> int:
        return len(self.packages)
