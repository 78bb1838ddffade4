"""Package registry and board/tool resolution for sketchbuild."""

from .errors import (
    BoardNotFoundError,
    IndexLoadError,
    InvalidBuildPropertiesError,
    MissingCorePackageError,
    PackageManagerError,
    PlatformNotInstalledError,
    ResolutionError,
    ToolReleaseNotFoundError,
    UnknownPackageError,
    UnknownPlatformError,
)
from .fqbn import FQBN, FQBNError
from .loader import HardwareLoadError
from .package_manager import EventHandler, FQBNResolution, PackageManager, ResolvedBoard, runtime_tool_properties
from .packages import (
    Board,
    Package,
    Packages,
    Platform,
    PlatformRelease,
    Tool,
    ToolDependency,
    ToolRelease,
)

__all__ = [
    "Board",
    "BoardNotFoundError",
    "EventHandler",
    "FQBN",
    "FQBNError",
    "FQBNResolution",
    "HardwareLoadError",
    "IndexLoadError",
    "InvalidBuildPropertiesError",
    "MissingCorePackageError",
    "Package",
    "PackageManager",
    "PackageManagerError",
    "Packages",
    "Platform",
    "PlatformNotInstalledError",
    "PlatformRelease",
    "ResolvedBoard",
    "ResolutionError",
    "Tool",
    "ToolDependency",
    "ToolRelease",
    "ToolReleaseNotFoundError",
    "UnknownPackageError",
    "UnknownPlatformError",
    "runtime_tool_properties",
]
