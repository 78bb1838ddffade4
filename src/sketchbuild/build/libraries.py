"""Library discovery and include detection.

Libraries live in folders holding one directory per library, in one of two
layouts:

    Servo/                         FastLED/
    ├── Servo.h      (flat)        ├── library.properties  (recursive)
    ├── Servo.cpp                  └── src/
    └── utility/                       ├── FastLED.h
                                       └── platforms/...

The SketchLibrariesDetector scans the sketch for ``#include`` directives,
maps every header not provided by the core or variant to a library, and
repeats the scan on each imported library's sources until no new library
is found.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from ..config.properties import PropertiesError, PropertiesMap
from ..output import BuilderLogger
from .sketch import Sketch

logger = logging.getLogger(__name__)

HEADER_EXTENSIONS = (".h", ".hh", ".hpp", ".hxx")
SOURCE_EXTENSIONS = (".c", ".cpp", ".cc", ".cxx", ".S")

_INCLUDE = re.compile(r'^\s*#\s*include\s*[<"]([^>"]+)[>"]', re.MULTILINE)

# Later locations win when several libraries provide a header
LOCATION_PRIORITY = {
    "core_platform": 0,
    "board_platform": 1,
    "user": 2,
}


class LibraryError(Exception):
    """Raised when a library folder can't be read."""

    pass


@dataclass
class Library:
    """An installed library."""

    name: str
    install_dir: Path
    source_dir: Path
    layout: str = "flat"
    architectures: List[str] = field(default_factory=lambda: ["*"])
    location: str = "user"
    version: str = ""
    properties: Optional[PropertiesMap] = None

    @classmethod
    def load(cls, install_dir: Path, location: str = "user") -> "Library":
        """
        Load a library from its folder.

        Raises:
            LibraryError: If library.properties exists but can't be read
        """
        install_dir = Path(install_dir)
        props = PropertiesMap()
        props_file = install_dir / "library.properties"
        if props_file.is_file():
            try:
                props = PropertiesMap.load(props_file)
            except PropertiesError as e:
                raise LibraryError(f"Invalid library {install_dir.name}: {e}") from e

        src_dir = install_dir / "src"
        if props_file.is_file() and src_dir.is_dir():
            layout, source_dir = "recursive", src_dir
        else:
            layout, source_dir = "flat", install_dir

        architectures = [
            a.strip() for a in props.get("architectures", "*").split(",") if a.strip()
        ] or ["*"]

        return cls(
            name=props.get("name", install_dir.name),
            install_dir=install_dir,
            source_dir=source_dir,
            layout=layout,
            architectures=architectures,
            location=location,
            version=props.get("version", ""),
            properties=props,
        )

    def is_compatible_with(self, arch: str) -> bool:
        return "*" in self.architectures or arch in self.architectures

    def headers(self) -> List[Path]:
        """Headers a sketch can include directly (top level of the source dir)."""
        if not self.source_dir.is_dir():
            return []
        return sorted(p for p in self.source_dir.iterdir() if p.suffix in HEADER_EXTENSIONS)

    def source_files(self) -> List[Path]:
        """Source files compiled into the library."""
        if not self.source_dir.is_dir():
            return []
        if self.layout == "recursive":
            return sorted(p for p in self.source_dir.rglob("*") if p.is_file() and p.suffix in SOURCE_EXTENSIONS)

        sources = [p for p in self.source_dir.iterdir() if p.is_file() and p.suffix in SOURCE_EXTENSIONS]
        utility_dir = self.source_dir / "utility"
        if utility_dir.is_dir():
            sources.extend(p for p in utility_dir.rglob("*") if p.is_file() and p.suffix in SOURCE_EXTENSIONS)
        return sorted(sources)

    def include_dirs(self) -> List[Path]:
        dirs = [self.source_dir]
        if self.layout == "flat" and (self.source_dir / "utility").is_dir():
            dirs.append(self.source_dir / "utility")
        return dirs

    def __str__(self) -> str:
        return f"{self.name}@{self.version}" if self.version else self.name


def load_libraries_dir(libraries_dir: Path, location: str) -> List[Library]:
    """Load every library in a libraries folder; missing folders yield nothing."""
    libraries_dir = Path(libraries_dir)
    if not libraries_dir.is_dir():
        return []
    libraries = []
    for lib_dir in sorted(libraries_dir.iterdir()):
        if not lib_dir.is_dir() or lib_dir.name.startswith("."):
            continue
        try:
            libraries.append(Library.load(lib_dir, location))
        except LibraryError as e:
            logger.warning("Skipping library %s: %s", lib_dir, e)
    return libraries


@dataclass
class LibraryResolution:
    """Outcome of mapping one header to a library."""

    header: str
    library: Library
    not_used: List[Library] = field(default_factory=list)


class LibrariesResolver:
    """Maps header names to the library that should provide them."""

    def __init__(self, libraries: Iterable[Library]):
        self.libraries = list(libraries)
        self._by_header: Dict[str, List[Library]] = {}
        for library in self.libraries:
            for header in library.headers():
                self._by_header.setdefault(header.name, []).append(library)

    def candidates(self, header: str) -> List[Library]:
        return list(self._by_header.get(header, []))

    def resolve(self, header: str, arch: str) -> Optional[LibraryResolution]:
        """
        Pick the library providing ``header``.

        Preference order: architecture-compatible, then a library whose name
        matches the header, then the highest-priority location.

        Returns:
            LibraryResolution, or None when no library provides the header
        """
        candidates = self.candidates(header)
        if not candidates:
            return None

        stem = Path(header).stem.lower()

        def score(library: Library):
            return (
                library.is_compatible_with(arch),
                library.name.lower().replace(" ", "_") == stem or library.install_dir.name.lower() == stem,
                LOCATION_PRIORITY.get(library.location, 0),
            )

        # max() keeps the first of equal candidates
        chosen = max(candidates, key=score)
        return LibraryResolution(
            header=header,
            library=chosen,
            not_used=[lib for lib in candidates if lib is not chosen],
        )


class SketchLibrariesDetector:
    """Finds the libraries a sketch imports and the include folders it needs."""

    def __init__(self, resolver: LibrariesResolver, builder_logger: BuilderLogger):
        self.resolver = resolver
        self.builder_logger = builder_logger
        self._imported: List[Library] = []
        self._include_folders: List[Path] = []
        self._resolutions: Dict[str, LibraryResolution] = {}
        self._unresolved: List[str] = []

    def imported_libraries(self) -> List[Library]:
        return list(self._imported)

    def include_folders(self) -> List[Path]:
        return list(self._include_folders)

    def unresolved_headers(self) -> List[str]:
        return list(self._unresolved)

    def find_includes(
        self,
        build_core_path: Optional[Path],
        build_variant_path: Optional[Path],
        sketch_build_path: Path,
        sketch: Sketch,
        platform_arch: str,
    ) -> None:
        """
        Detect the libraries imported by a prepared sketch.

        Scans the sources in the sketch build path, then the sources of
        every library found, until no new library is imported.

        Args:
            build_core_path: Core source folder (``build.core.path``)
            build_variant_path: Variant folder (``build.variant.path``)
            sketch_build_path: Folder holding the merged sketch sources
            sketch: The sketch being built
            platform_arch: Architecture used to prefer compatible libraries
        """
        self._imported = []
        self._resolutions = {}
        self._unresolved = []
        self._include_folders = [p for p in (build_core_path, build_variant_path) if p is not None]

        queue: List[Path] = sorted(
            p for p in Path(sketch_build_path).rglob("*")
            if p.is_file() and p.suffix in SOURCE_EXTENSIONS + HEADER_EXTENSIONS
        )
        if not queue:
            queue = [sketch.main_file] + list(sketch.other_sketch_files) + list(sketch.additional_files)

        scanned = set()
        while queue:
            source = queue.pop(0)
            if source in scanned:
                continue
            scanned.add(source)

            for header in self._includes_of(source):
                if self._provided_locally(header, source.parent):
                    continue
                resolution = self.resolver.resolve(header, platform_arch)
                if resolution is None:
                    if header not in self._unresolved:
                        self._unresolved.append(header)
                    continue
                library = resolution.library
                if library in self._imported:
                    continue

                logger.debug("Header %s resolved to library %s", header, library.install_dir)
                self._resolutions[header] = resolution
                self._imported.append(library)
                self._include_folders.extend(library.include_dirs())
                queue.extend(library.headers())
                queue.extend(library.source_files())

    def _includes_of(self, source: Path) -> List[str]:
        try:
            content = source.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.debug("Can't scan %s: %s", source, e)
            return []
        return _INCLUDE.findall(content)

    def _provided_locally(self, header: str, source_dir: Path) -> bool:
        if (source_dir / header).exists():
            return True
        return any((folder / header).exists() for folder in self._include_folders)

    def print_used_and_not_used_libraries(self, sketch_error: bool) -> None:
        """
        Report headers that several libraries could have provided.

        Printed as a warning when the sketch failed to build, as info in
        verbose mode, and not at all otherwise.
        """
        if not sketch_error and not self.builder_logger.verbose():
            return

        lines = []
        for header, resolution in self._resolutions.items():
            if not resolution.not_used:
                continue
            lines.append(f'Multiple libraries were found for "{header}"')
            lines.append(f"  Used: {resolution.library.install_dir}")
            for library in resolution.not_used:
                lines.append(f"  Not used: {library.install_dir}")
        if not lines:
            return

        message = "\n".join(lines)
        if sketch_error:
            self.builder_logger.warn(message)
        else:
            self.builder_logger.info(message)
