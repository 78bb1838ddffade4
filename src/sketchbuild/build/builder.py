"""
Sketch builder: the build actions the pipeline sequences.

Build directory layout:
    <build path>/
    ├── build.options.json
    ├── compile_commands.json
    ├── sketch/              # merged sketch + copied sketch sources, objects
    ├── libraries/<lib>/     # library objects
    ├── core/                # core objects, variant objects, core.a
    ├── <sketch>.ino.elf
    ├── <sketch>.ino.hex
    └── _cmake/              # exported project (optional)

Every compile goes through a platform recipe (``recipe.c.o.pattern``,
``recipe.cpp.o.pattern``, ``recipe.S.o.pattern``) with ``{source_file}``,
``{object_file}`` and ``{includes}`` set for that file.
"""

import filecmp
import logging
import shutil
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from intelhex import AddressOverlapError, IntelHex, IntelHexError

from ..config.properties import PropertiesMap, runtime_os
from ..cores.package_manager import FQBNResolution, runtime_tool_properties
from ..cores.packages import ToolRelease
from ..output import BuilderLogger
from . import preprocessor
from .build_options import BuildOptionsManager
from .compilation_database import CompilationDatabase, CompilationDatabaseError
from .libraries import Library
from .progress import Progress
from .recipe_runner import (
    DEFAULT_TIMEOUT,
    CommandResult,
    RecipeError,
    RecipeRunner,
    prepare_command,
    run_command,
)
from .size import (
    LOW_MEMORY_WARNING,
    NOT_ENOUGH_MEMORY_TIP,
    TOO_BIG_TIP,
    check_size,
    format_size_report,
    is_low_on_memory,
    parse_size_output,
)
from .sketch import SOURCE_FILE_EXTENSIONS, Sketch

logger = logging.getLogger(__name__)

COMPILE_RECIPES = {
    ".c": "recipe.c.o.pattern",
    ".cpp": "recipe.cpp.o.pattern",
    ".cc": "recipe.cpp.o.pattern",
    ".cxx": "recipe.cpp.o.pattern",
    ".S": "recipe.S.o.pattern",
}

ARCHIVE_FILE = "core.a"
IDE_VERSION = "10607"

# Merged images larger than this are not produced
DEFAULT_MAXIMUM_BIN_SIZE = 16000000


class BuildError(Exception):
    """Raised when a build action fails."""

    pass


def build_properties_for(
    resolution: FQBNResolution,
    tool_releases: Sequence[ToolRelease],
    sketch: Sketch,
    build_path: Path,
    custom_properties: Optional[Dict[str, str]] = None,
) -> PropertiesMap:
    """
    Compute the full property set a build runs with.

    Starts from the resolved board build properties (layered over the core
    platform's platform.txt when the core comes from another package) and
    adds the runtime paths, the build paths and finally the custom
    properties given by the user.

    Args:
        resolution: Successful FQBN resolution
        tool_releases: Tools required for the board
        sketch: Sketch being built
        build_path: Build output directory
        custom_properties: User overrides, applied last

    Returns:
        PropertiesMap used by every recipe of the build
    """
    resolved = resolution.resolved()
    core_release = resolved.build_platform_release

    if core_release is not resolved.platform_release:
        props = core_release.properties.clone().merge(resolved.build_properties)
    else:
        props = resolved.build_properties.clone()

    props.merge(runtime_tool_properties(list(tool_releases)))
    props["runtime.os"] = runtime_os()
    props["runtime.ide.version"] = IDE_VERSION
    props.setdefault("build.core", "arduino")

    core_dir = core_release.install_dir
    core_name = props["build.core"].split(":")[-1]
    if core_dir is not None:
        props["build.core.path"] = str(core_dir / "cores" / core_name)
        props["build.system.path"] = str(core_dir / "system")

    variant = props.get("build.variant", "")
    if variant:
        if ":" in variant:
            variant_dir = core_dir
            variant = variant.split(":")[-1]
        else:
            variant_dir = resolved.platform_release.install_dir
        if variant_dir is not None:
            props["build.variant.path"] = str(variant_dir / "variants" / variant)

    if "compiler.optimization_flags" not in props and "compiler.optimization_flags.release" in props:
        props["compiler.optimization_flags"] = props["compiler.optimization_flags.release"]

    props["build.path"] = str(build_path)
    props["build.project_name"] = sketch.main_file.name
    props["build.source.path"] = str(sketch.full_path)
    props["sketch_path"] = str(sketch.full_path)

    if custom_properties:
        props.merge(custom_properties)
    return props


class SketchBuilder:
    """Holds the state of one build and performs its actions."""

    def __init__(
        self,
        sketch: Sketch,
        build_properties: PropertiesMap,
        build_path: Path,
        builder_logger: BuilderLogger,
        target_arch: str,
        progress: Optional[Progress] = None,
        only_update_compilation_database: bool = False,
        export_cmake: bool = False,
        build_options: Optional[Dict[str, object]] = None,
        timeout: int = DEFAULT_TIMEOUT,
    ):
        """
        Initialize sketch builder.

        Args:
            sketch: Sketch to build
            build_properties: Properties from build_properties_for()
            build_path: Build output directory
            builder_logger: Output sink for user-facing messages
            target_arch: Architecture of the board's platform (e.g. "avr")
            progress: Progress tracker shared with the pipeline
            only_update_compilation_database: Record compile commands without running them
            export_cmake: Export a CMake project after the build
            build_options: Options recorded in build.options.json
            timeout: Per-command timeout in seconds
        """
        self.sketch = sketch
        self.build_properties = build_properties
        self.build_path = Path(build_path)
        self.builder_logger = builder_logger
        self.target_arch = target_arch
        self.progress = progress or Progress()
        self.only_update_compilation_database = only_update_compilation_database
        self.export_cmake = export_cmake
        self.timeout = timeout

        self.recipe_runner = RecipeRunner(
            build_properties,
            builder_logger,
            only_update_compilation_database=only_update_compilation_database,
            timeout=timeout,
        )
        self.compilation_database = CompilationDatabase(self.build_path / "compile_commands.json")
        self.build_options_manager = BuildOptionsManager(self.build_path, build_options or {})

        self.sketch_objects: List[Path] = []
        self.library_objects: List[Path] = []
        self.core_objects: List[Path] = []
        self.variant_objects: List[Path] = []

    # Paths

    @property
    def sketch_build_path(self) -> Path:
        return self.build_path / "sketch"

    @property
    def libraries_build_path(self) -> Path:
        return self.build_path / "libraries"

    @property
    def core_build_path(self) -> Path:
        return self.build_path / "core"

    @property
    def archive_file_path(self) -> Path:
        return self.core_build_path / ARCHIVE_FILE

    def _prop_path(self, key: str) -> Optional[Path]:
        return self.build_properties.get_path(key)

    # Recipes

    def run_recipe(self, prefix: str, suffix: str, skip_if_only_updating_compilation_database: bool = False) -> None:
        self.recipe_runner.run_recipe(prefix, suffix, skip_if_only_updating_compilation_database)

    def _run(self, command: List[str]) -> CommandResult:
        if self.builder_logger.verbose():
            self.builder_logger.info(" ".join(command))
        result = run_command(command, cwd=self.build_path, timeout=self.timeout)
        if self.builder_logger.verbose():
            if result.stdout:
                self.builder_logger.write_stdout(result.stdout)
            if result.stderr:
                self.builder_logger.write_stderr(result.stderr)
        return result

    # Sketch

    def prepare_sketch_build_path(self) -> None:
        """
        Populate the sketch build path with the merged sketch and its sources.

        Files are only rewritten when their content changed so that
        up-to-date objects are reused.
        """
        self.sketch_build_path.mkdir(parents=True, exist_ok=True)

        main_cpp = preprocessor.main_cpp_path(self.sketch, self.sketch_build_path)
        preprocessor.write_if_changed(main_cpp, preprocessor.generate_main_cpp(self.sketch))

        for source in self.sketch.additional_files:
            target = self.sketch_build_path / source.relative_to(self.sketch.full_path)
            if target.exists() and filecmp.cmp(source, target, shallow=False):
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, target)

    def preprocess_sketch(self) -> Path:
        """
        Generate function prototypes into the main sketch translation unit.

        Prototypes are found by scanning the merged sketch, so no include
        folders are involved.
        """
        return preprocessor.preprocess_sketch(self.sketch, self.sketch_build_path)

    def build_sketch(self, include_folders: Sequence[Path]) -> List[Path]:
        """Compile every source in the sketch build path."""
        includes = [self.sketch_build_path] + list(include_folders)
        sources = sorted(
            p for p in self.sketch_build_path.rglob("*")
            if p.is_file() and p.suffix in SOURCE_FILE_EXTENSIONS
        )
        self.sketch_objects = [self.compile_file(source, Path(f"{source}.o"), includes) for source in sources]
        return self.sketch_objects

    # Compilation

    def compile_files(
        self,
        sources: Sequence[Path],
        source_dir: Path,
        build_dir: Path,
        include_folders: Sequence[Path],
    ) -> List[Path]:
        objects = []
        for source in sources:
            object_file = build_dir / f"{source.relative_to(source_dir)}.o"
            objects.append(self.compile_file(source, object_file, include_folders))
        return objects

    def compile_file(self, source: Path, object_file: Path, include_folders: Sequence[Path]) -> Path:
        """
        Compile one source file through its platform recipe.

        The command is always recorded in the compilation database. It is
        not run when only the database is being updated, or when the
        object is newer than the source and every dependency in its .d file.

        Raises:
            BuildError: If the platform has no recipe for the file type
            RecipeError: If the compiler fails
        """
        recipe_key = COMPILE_RECIPES.get(source.suffix)
        pattern = self.build_properties.get(recipe_key, "") if recipe_key else ""
        if not pattern:
            raise BuildError(f"Missing recipe {recipe_key or source.suffix} to compile {source}")

        props = self.build_properties.clone()
        props["includes"] = " ".join(f'"-I{folder}"' for folder in include_folders)
        props["source_file"] = str(source)
        props["object_file"] = str(object_file)
        command = prepare_command(pattern, props)

        self.compilation_database.add(source, command, self.build_path)
        if self.only_update_compilation_database:
            return object_file

        if object_is_up_to_date(source, object_file):
            if self.builder_logger.verbose():
                self.builder_logger.info(f"Using previously compiled file: {object_file}")
            return object_file

        object_file.parent.mkdir(parents=True, exist_ok=True)
        self._run(command)
        return object_file

    # Libraries

    def remove_unused_compiled_libraries(self, imported_libraries: Sequence[Library]) -> None:
        """Delete compiled output of libraries the sketch no longer imports."""
        if not self.libraries_build_path.is_dir():
            return
        wanted = {library.install_dir.name for library in imported_libraries}
        for entry in self.libraries_build_path.iterdir():
            if entry.name in wanted:
                continue
            logger.debug("Removing unused compiled library %s", entry)
            if entry.is_dir():
                shutil.rmtree(entry)
            else:
                entry.unlink()

    def build_libraries(self, include_folders: Sequence[Path], imported_libraries: Sequence[Library]) -> List[Path]:
        self.library_objects = []
        for library in imported_libraries:
            if self.builder_logger.verbose():
                self.builder_logger.info(f"Compiling library \"{library.name}\"")
            self.library_objects.extend(
                self.compile_files(
                    library.source_files(),
                    library.source_dir,
                    self.libraries_build_path / library.install_dir.name,
                    include_folders,
                )
            )
        return self.library_objects

    # Core

    def build_core(self) -> Optional[Path]:
        """
        Compile the variant and the core, and archive the core into core.a.

        Returns:
            Path to core.a, or None when only the database was updated
        """
        core_path = self._prop_path("build.core.path")
        if core_path is None or not core_path.is_dir():
            raise BuildError(f"Invalid build.core.path: {self.build_properties.get('build.core.path', '')}")

        variant_path = self._prop_path("build.variant.path")
        includes = [core_path] + ([variant_path] if variant_path is not None else [])

        self.variant_objects = []
        if variant_path is not None and variant_path.is_dir():
            variant_sources = sorted(
                p for p in variant_path.iterdir() if p.is_file() and p.suffix in SOURCE_FILE_EXTENSIONS
            )
            self.variant_objects = self.compile_files(variant_sources, variant_path, self.core_build_path, includes)

        core_sources = sorted(
            p for p in core_path.rglob("*") if p.is_file() and p.suffix in SOURCE_FILE_EXTENSIONS
        )
        self.core_objects = self.compile_files(core_sources, core_path, self.core_build_path, includes)

        if self.only_update_compilation_database:
            return None
        return self.archive_core()

    def archive_core(self) -> Path:
        """Rebuild core.a when any core object is newer than it."""
        archive = self.archive_file_path
        if archive.exists():
            archive_mtime = archive.stat().st_mtime
            if all(obj.stat().st_mtime <= archive_mtime for obj in self.core_objects):
                if self.builder_logger.verbose():
                    self.builder_logger.info(f"Using previously compiled file: {archive}")
                return archive
            archive.unlink()

        pattern = self.build_properties.get("recipe.ar.pattern", "")
        if not pattern:
            raise BuildError("Missing recipe recipe.ar.pattern")

        for object_file in self.core_objects:
            props = self.build_properties.clone()
            props["archive_file"] = ARCHIVE_FILE
            props["archive_file_path"] = str(archive)
            props["object_file"] = str(object_file)
            self._run(prepare_command(pattern, props))
        return archive

    # Link

    def link(self) -> None:
        """Link sketch, library and variant objects against core.a."""
        if self.only_update_compilation_database:
            if self.builder_logger.verbose():
                self.builder_logger.info("Skip linking of final executable.")
            return

        pattern = self.build_properties.get("recipe.c.combine.pattern", "")
        if not pattern:
            raise BuildError("Missing recipe recipe.c.combine.pattern")

        objects = self.sketch_objects + self.library_objects + self.variant_objects
        props = self.build_properties.clone()
        props["object_files"] = " ".join(f'"{obj}"' for obj in objects)
        props["archive_file"] = f"core/{ARCHIVE_FILE}"
        props["archive_file_path"] = str(self.archive_file_path)
        self._run(prepare_command(pattern, props))

    # Bootloader

    def merge_sketch_with_bootloader(self) -> Optional[Path]:
        """
        Merge the sketch hex with the platform bootloader, when both exist.

        Returns:
            Path to ``<sketch>.with_bootloader.hex``, or None when skipped
        """
        if self.only_update_compilation_database:
            return None

        name = self.sketch.main_file.name
        sketch_hex = self.build_path / f"{name}.hex"
        if not sketch_hex.exists():
            sketch_hex = self.sketch_build_path / f"{name}.hex"
            if not sketch_hex.exists():
                return None

        bootloader = self.build_properties.get("bootloader.noblink") or self.build_properties.get("bootloader.file", "")
        bootloader = self.build_properties.expand_props_in_string(bootloader)
        platform_path = self._prop_path("runtime.platform.path")
        if not bootloader or platform_path is None:
            return None

        bootloader_path = platform_path / "bootloaders" / bootloader
        if not bootloader_path.is_file():
            self.builder_logger.warn(f"Bootloader file specified but missing: {bootloader_path}")
            return None

        maximum_bin_size = DEFAULT_MAXIMUM_BIN_SIZE
        upload_max = self.build_properties.get("upload.maximum_size", "")
        if upload_max.isdigit():
            maximum_bin_size = int(upload_max) * 2

        merged = sketch_hex.parent / f"{name}.with_bootloader.hex"
        try:
            merge_intel_hex(sketch_hex, bootloader_path, merged, maximum_bin_size)
        except (BuildError, OSError) as e:
            # Merge failures never fail the build
            if self.builder_logger.verbose():
                self.builder_logger.info(str(e))
            return None
        return merged

    # Reports

    def warn_about_arch_incompatible_libraries(self, imported_libraries: Sequence[Library]) -> None:
        archs = [self.target_arch]
        overrides = self.build_properties.get("architecture.override_check", "")
        if overrides:
            archs.extend(a.strip() for a in overrides.split(",") if a.strip())

        for library in imported_libraries:
            if not any(library.is_compatible_with(arch) for arch in archs):
                self.builder_logger.info(
                    f"WARNING: library {library.name} claims to run on "
                    f"{', '.join(library.architectures)} architecture(s) and may be incompatible "
                    f"with your current board which runs on {', '.join(archs)} architecture(s)."
                )

    def print_used_libraries(self, imported_libraries: Sequence[Library]) -> None:
        if not self.builder_logger.verbose() or not imported_libraries:
            return
        lines = []
        for library in imported_libraries:
            if library.version:
                lines.append(f"Using library {library.name} at version {library.version} in folder: {library.install_dir}")
            else:
                lines.append(f"Using library {library.name} in folder: {library.install_dir}")
        self.builder_logger.info("\n".join(lines))

    def size(self, sketch_error: bool) -> None:
        """
        Report the program size and fail when it doesn't fit the board.

        Skipped when the sketch failed to build, when only the compilation
        database is updated, or when the board declares no maximum size.

        Raises:
            SizeError: If the program or its data exceed the board limits
        """
        if self.only_update_compilation_database or sketch_error:
            return
        if not self.build_properties.get("upload.maximum_size", ""):
            return

        pattern = self.build_properties.get("recipe.size.pattern", "")
        try:
            if not pattern:
                raise BuildError("Missing recipe recipe.size.pattern")
            result = self._run(prepare_command(pattern, self.build_properties))
        except (BuildError, RecipeError) as e:
            logger.debug("Size recipe failed: %s", e)
            self.builder_logger.warn("Couldn't determine program size")
            return

        size_info = parse_size_output(result.stdout, self.build_properties)
        self.builder_logger.info(format_size_report(size_info))
        if size_info.max_text is not None and size_info.text > size_info.max_text:
            self.builder_logger.warn(TOO_BIG_TIP)
        elif size_info.max_data and size_info.data > size_info.max_data:
            self.builder_logger.warn(NOT_ENOUGH_MEMORY_TIP)
        check_size(size_info)

        warn_percentage = self.build_properties.get("build.warn_data_percentage", "")
        if warn_percentage.isdigit() and is_low_on_memory(size_info, int(warn_percentage)):
            self.builder_logger.warn(LOW_MEMORY_WARNING)

    def export_project_cmake(
        self,
        sketch_error: bool,
        imported_libraries: Sequence[Library],
        include_folders: Sequence[Path],
    ) -> Optional[Path]:
        """
        Export the build as a standalone CMake project in ``<build>/_cmake``.

        Only runs when export was requested and the sketch built.

        Returns:
            Path to the generated CMakeLists.txt, or None when skipped
        """
        if not self.export_cmake or sketch_error:
            return None

        cmake_dir = self.build_path / "_cmake"
        if cmake_dir.exists():
            shutil.rmtree(cmake_dir)

        sources: List[str] = []
        include_dirs: List[str] = ["sketch"]

        def copy_tree(src_dir: Path, dest: str, files: Sequence[Path]) -> None:
            for source in files:
                target = cmake_dir / dest / source.relative_to(src_dir)
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(source, target)
                if source.suffix in SOURCE_FILE_EXTENSIONS:
                    sources.append(target.relative_to(cmake_dir).as_posix())

        sketch_files = sorted(p for p in self.sketch_build_path.rglob("*") if p.is_file() and p.suffix != ".o" and p.suffix != ".d")
        copy_tree(self.sketch_build_path, "sketch", sketch_files)

        for library in imported_libraries:
            dest = f"lib/{library.install_dir.name}"
            copy_tree(library.source_dir, dest, [p for p in library.source_dir.rglob("*") if p.is_file()])
            include_dirs.append(dest)

        core_path = self._prop_path("build.core.path")
        if core_path is not None and core_path.is_dir():
            copy_tree(core_path, "core", [p for p in core_path.rglob("*") if p.is_file()])
            include_dirs.append("core")

        variant_path = self._prop_path("build.variant.path")
        if variant_path is not None and variant_path.is_dir():
            copy_tree(variant_path, "variant", [p for p in variant_path.rglob("*") if p.is_file()])
            include_dirs.append("variant")

        defines = sorted(
            {
                arg[2:]
                for key in ("recipe.c.o.pattern", "recipe.cpp.o.pattern")
                for arg in self._recipe_args(key)
                if arg.startswith("-D")
            }
        )

        project = self.sketch.name
        lines = [
            "cmake_minimum_required(VERSION 3.5.0)",
            f"project({project} C CXX)",
            "",
            f"add_executable({project}",
        ]
        lines.extend(f"    {source}" for source in sorted(sources))
        lines.append(")")
        lines.append("")
        lines.append(f"target_include_directories({project} PRIVATE")
        lines.extend(f"    {folder}" for folder in include_dirs)
        lines.append(")")
        if defines:
            lines.append("")
            lines.append(f"target_compile_definitions({project} PRIVATE")
            lines.extend(f"    {define}" for define in defines)
            lines.append(")")

        cmake_file = cmake_dir / "CMakeLists.txt"
        cmake_dir.mkdir(parents=True, exist_ok=True)
        cmake_file.write_text("\n".join(lines) + "\n", encoding="utf-8")
        logger.debug("Exported CMake project with %d sources (%d include folders known)", len(sources), len(include_folders))
        return cmake_file

    def _recipe_args(self, key: str) -> List[str]:
        pattern = self.build_properties.get(key, "")
        if not pattern:
            return []
        props = self.build_properties.clone()
        props.merge({"includes": "", "source_file": "", "object_file": ""})
        try:
            return prepare_command(pattern, props)
        except RecipeError:
            return []

    def save_compilation_database(self) -> None:
        """Write compile_commands.json; failures are reported, never raised."""
        try:
            self.compilation_database.save()
        except CompilationDatabaseError as e:
            self.builder_logger.warn(f"Error saving compilation database: {e}")


def _dependencies_from_file(dep_file: Path) -> Optional[List[Path]]:
    """Parse a make-style .d file; None when it can't be read."""
    try:
        content = dep_file.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None
    content = content.replace("\\\n", " ")
    _, _, deps = content.partition(": ")
    if not deps:
        _, _, deps = content.partition(":\n")
    return [Path(token) for token in deps.split() if token and token != "\\"]


def object_is_up_to_date(source: Path, object_file: Path) -> bool:
    """
    True when ``object_file`` is newer than its source and dependencies.

    The dependency file sits next to the object with a .d extension
    (``main.cpp.o`` -> ``main.cpp.d``); without it the object is rebuilt.
    """
    if not object_file.exists():
        return False
    object_mtime = object_file.stat().st_mtime
    if source.stat().st_mtime > object_mtime:
        return False

    dep_file = object_file.with_suffix(".d")
    dependencies = _dependencies_from_file(dep_file)
    if dependencies is None:
        return False
    for dependency in dependencies:
        if not dependency.exists() or dependency.stat().st_mtime > object_mtime:
            return False
    return True


def merge_intel_hex(sketch_hex: Path, bootloader_hex: Path, output: Path, maximum_bin_size: int) -> None:
    """
    Merge a sketch hex and a bootloader hex into one image.

    Both files are decoded to absolute addresses before merging, so each
    keeps its own extended address records.

    Raises:
        BuildError: If a file is not Intel HEX, the images overlap or the
            merged image spans more than ``maximum_bin_size`` bytes
    """
    if bootloader_hex.suffix.lower() != ".hex":
        raise BuildError(f"Unsupported bootloader format: {bootloader_hex.name}")

    merged = _load_hex(sketch_hex)
    try:
        merged.merge(_load_hex(bootloader_hex), overlap="error")
    except AddressOverlapError as e:
        raise BuildError(f"Bootloader {bootloader_hex.name} overlaps the sketch: {e}") from e

    min_addr, max_addr = merged.minaddr(), merged.maxaddr()
    span = 0 if min_addr is None else max_addr - min_addr + 1
    if span > maximum_bin_size:
        raise BuildError(f"Merged image of {span} bytes exceeds {maximum_bin_size} bytes")

    merged.write_hex_file(str(output))


def _load_hex(path: Path) -> IntelHex:
    try:
        return IntelHex(str(path))
    except IntelHexError as e:
        raise BuildError(f"Invalid Intel HEX file {path}: {e}") from e
