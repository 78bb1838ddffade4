"""Exceptions raised while resolving boards, platforms and tools."""


class PackageManagerError(Exception):
    """Base exception for package registry operations."""

    pass


class ResolutionError(PackageManagerError):
    """Base exception for FQBN resolution failures."""

    pass


class UnknownPackageError(ResolutionError):
    """The FQBN names a package that isn't in the registry."""

    pass


class UnknownPlatformError(ResolutionError):
    """The package has no platform for the FQBN's architecture."""

    pass


class PlatformNotInstalledError(ResolutionError):
    """The platform exists but none of its releases is installed."""

    pass


class BoardNotFoundError(ResolutionError):
    """The installed platform release doesn't define the board."""

    pass


class InvalidBuildPropertiesError(ResolutionError):
    """A configuration option of the FQBN is not valid for the board."""

    pass


class MissingCorePackageError(ResolutionError):
    """The board's build.core refers to a package that isn't installed."""

    pass


class ToolReleaseNotFoundError(PackageManagerError):
    """An explicit tool dependency of a platform has no matching release."""

    def __init__(self, dependency):
        self.dependency = dependency
        super().__init__(f"tool release not found: {dependency}")


class IndexLoadError(PackageManagerError):
    """A package index file is missing or malformed."""

    pass
