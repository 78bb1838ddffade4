"""
Command-line interface for sketchbuild.

This module provides the `sketchbuild` CLI tool for building sketches
against installed Arduino-style platforms.
"""

import argparse
import logging
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from sketchbuild import __version__
from sketchbuild.build import (
    BuildPipeline,
    LibrariesResolver,
    Library,
    Progress,
    Sketch,
    SketchBuilder,
    SketchError,
    SketchLibrariesDetector,
    StageFailedError,
    build_properties_for,
    load_libraries_dir,
)
from sketchbuild.cli_utils import (
    ErrorFormatter,
    PathValidator,
    ProgressBar,
    VerboseToolReporter,
)
from sketchbuild.config import Settings, SettingsError
from sketchbuild.cores import (
    FQBN,
    FQBNError,
    IndexLoadError,
    PackageManager,
    PackageManagerError,
    ResolvedBoard,
)
from sketchbuild.interrupt_utils import handle_keyboard_interrupt_properly
from sketchbuild.output import BuilderLogger
from sketchbuild.packages import DownloadError, IndexDownloader

VERSION = __version__

logger = logging.getLogger(__name__)


@dataclass
class CompileArgs:
    """Arguments for the compile and preprocess commands."""

    sketch: Path
    fqbn: str
    build_path: Optional[Path] = None
    only_compilation_database: bool = False
    export_cmake: bool = False
    properties: List[str] = field(default_factory=list)
    verbose: bool = False


@dataclass
class BoardArgs:
    """Arguments for the board commands."""

    fqbn: Optional[str] = None
    vid: Optional[str] = None
    pid: Optional[str] = None
    verbose: bool = False


def load_package_manager(settings: Settings, verbose: bool = False) -> PackageManager:
    """Create a package manager with the cached indexes and installed hardware."""
    pm = PackageManager(settings.data_dir, event_handler=VerboseToolReporter(verbose))
    for url in settings.index_urls:
        try:
            pm.load_package_index(url)
        except IndexLoadError as e:
            # Installed hardware still loads without an index
            logger.debug("Skipping index %s: %s", url, e)
    user_hardware = settings.user_hardware_dir
    pm.load_hardware(user_hardware if user_hardware.is_dir() else None)
    return pm


def _libraries_for(resolved: ResolvedBoard, settings: Settings) -> List[Library]:
    libraries: List[Library] = []
    core_release = resolved.build_platform_release
    if core_release is not resolved.platform_release and core_release.install_dir is not None:
        libraries.extend(load_libraries_dir(core_release.install_dir / "libraries", "core_platform"))
    if resolved.platform_release.install_dir is not None:
        libraries.extend(load_libraries_dir(resolved.platform_release.install_dir / "libraries", "board_platform"))
    libraries.extend(load_libraries_dir(settings.user_libraries_dir, "user"))
    return libraries


def _build_options(fqbn: FQBN, sketch: Sketch, settings: Settings, custom_properties: Dict[str, str], props) -> Dict[str, object]:
    return {
        "fqbn": str(fqbn),
        "hardwareFolders": [str(settings.data_dir.packages_dir), str(settings.user_hardware_dir)],
        "librariesFolders": [str(settings.user_libraries_dir)],
        "customBuildProperties": sorted(f"{k}={v}" for k, v in custom_properties.items()),
        "sketchLocation": str(sketch.full_path),
        "compiler.optimization_flags": props.get("compiler.optimization_flags", ""),
    }


def create_pipeline(args: CompileArgs, progress: Progress) -> BuildPipeline:
    """Resolve the board and wire a builder and a library detector for a sketch.

    Raises:
        SettingsError, FQBNError, SketchError: On invalid input
        PackageManagerError: If the board or its tools can't be resolved
    """
    custom_properties = Settings.parse_custom_properties(args.properties)
    settings = Settings.from_environment(
        verbose=args.verbose,
        only_update_compilation_database=args.only_compilation_database,
        export_cmake=args.export_cmake,
        custom_properties=custom_properties,
        build_path=args.build_path,
    )
    fqbn = FQBN.parse(args.fqbn)
    sketch = Sketch.load(args.sketch)

    pm = load_package_manager(settings, args.verbose)
    resolution = pm.resolve_fqbn(fqbn)
    resolved = resolution.resolved()
    tools = pm.find_tools_required_for_board(resolved.board)

    build_path = (settings.build_path or settings.data_dir.get_build_dir(sketch.full_path)).resolve()
    props = build_properties_for(resolution, tools, sketch, build_path, custom_properties)

    builder_logger = BuilderLogger(verbose=args.verbose)
    builder = SketchBuilder(
        sketch=sketch,
        build_properties=props,
        build_path=build_path,
        builder_logger=builder_logger,
        target_arch=resolved.platform_release.platform.architecture,
        progress=progress,
        only_update_compilation_database=settings.only_update_compilation_database,
        export_cmake=settings.export_cmake,
        build_options=_build_options(fqbn, sketch, settings, custom_properties, props),
    )
    detector = SketchLibrariesDetector(
        LibrariesResolver(_libraries_for(resolved, settings)),
        builder_logger,
    )
    return BuildPipeline(builder, detector)


def compile_command(args: CompileArgs) -> None:
    """Compile a sketch for a board.

    Examples:
        sketchbuild compile --fqbn arduino:avr:uno Blink
        sketchbuild compile --fqbn arduino:avr:nano:cpu=atmega328old Blink -v
        sketchbuild compile --fqbn arduino:avr:uno --only-compilation-database Blink
    """
    print(f"sketchbuild v{VERSION}")
    print()

    progress_bar = ProgressBar("Compiling", disable=args.verbose)
    try:
        pipeline = create_pipeline(args, Progress(callback=progress_bar))

        if args.verbose:
            print(f"Building sketch: {pipeline.builder.sketch.full_path}")
            print(f"Board: {args.fqbn}")
            print(f"Build path: {pipeline.builder.build_path}")
            print()

        start_time = time.time()
        result = pipeline.run()
        build_time = time.time() - start_time
        progress_bar.close()

        if result.success:
            ErrorFormatter.print_success("Build successful!")
            print()
            if args.only_compilation_database:
                print(f"Compilation database: {pipeline.builder.compilation_database.file}")
            else:
                print(f"Output: {pipeline.builder.build_path}")
            print(f"Build time: {build_time:.2f}s")
            sys.exit(0)
        else:
            ErrorFormatter.print_error("Build failed!", str(result.error))
            sys.exit(1)

    except (SettingsError, FQBNError, SketchError) as e:
        progress_bar.close()
        ErrorFormatter.handle_error("Invalid arguments", e)
    except PackageManagerError as e:
        progress_bar.close()
        ErrorFormatter.handle_error("Error resolving board", e)
    except KeyboardInterrupt:
        progress_bar.close()
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        progress_bar.close()
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def preprocess_command(args: CompileArgs) -> None:
    """Print the preprocessed sketch for a board.

    Examples:
        sketchbuild preprocess --fqbn arduino:avr:uno Blink > Blink.cpp
    """
    try:
        pipeline = create_pipeline(args, Progress())
        pipeline.preprocess()
        sys.exit(0)

    except (SettingsError, FQBNError, SketchError) as e:
        ErrorFormatter.handle_error("Invalid arguments", e)
    except PackageManagerError as e:
        ErrorFormatter.handle_error("Error resolving board", e)
    except StageFailedError as e:
        ErrorFormatter.handle_error("Preprocessing failed!", e)
    except KeyboardInterrupt as ke:
        handle_keyboard_interrupt_properly(ke)
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def board_details_command(args: BoardArgs) -> None:
    """Show what an FQBN resolves to and the tools it requires.

    Examples:
        sketchbuild board details arduino:avr:uno
    """
    try:
        settings = Settings.from_environment(verbose=args.verbose)
        pm = load_package_manager(settings)
        if not args.fqbn:
            raise FQBNError("No FQBN given")
        resolution = pm.resolve_fqbn(FQBN.parse(args.fqbn))

        if resolution.package is not None:
            print(f"Package:          {resolution.package.name}")
        if resolution.platform_release is not None:
            print(f"Platform:         {resolution.platform_release}")
        if resolution.board is not None:
            print(f"Board:            {resolution.board.name()} ({resolution.board.fqbn()})")
        if resolution.build_platform_release is not None:
            print(f"Core platform:    {resolution.build_platform_release}")

        resolved = resolution.resolved()

        menus = resolved.board.config_menus()
        if menus:
            print()
            print("Options:")
            for menu, options in menus.items():
                print(f"  {menu}: {', '.join(options)}")

        tools = pm.find_tools_required_for_board(resolved.board)
        print()
        print("Required tools:")
        for release in sorted(tools, key=str):
            print(f"  {release}")

        if args.verbose:
            print()
            print("Build properties:")
            for key in sorted(resolved.build_properties):
                print(f"  {key}={resolved.build_properties[key]}")
        sys.exit(0)

    except FQBNError as e:
        ErrorFormatter.handle_error("Invalid FQBN", e)
    except PackageManagerError as e:
        ErrorFormatter.handle_error("Error resolving board", e)
    except KeyboardInterrupt as ke:
        handle_keyboard_interrupt_properly(ke)
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def board_list_command(args: BoardArgs) -> None:
    """List installed boards, or the boards matching a USB VID/PID.

    Examples:
        sketchbuild board list
        sketchbuild board search-usb 0x2341 0x0043
    """
    try:
        settings = Settings.from_environment(verbose=args.verbose)
        pm = load_package_manager(settings)
        if args.vid is not None and args.pid is not None:
            boards = pm.find_boards_with_vid_pid(args.vid, args.pid)
        else:
            boards = pm.installed_boards()

        if not boards:
            print("No boards found.")
            sys.exit(0)

        width = max(len(board.name()) for board in boards)
        for board in sorted(boards, key=lambda b: b.fqbn()):
            print(f"{board.name():<{width}}  {board.fqbn()}")
        sys.exit(0)

    except PackageManagerError as e:
        ErrorFormatter.handle_error("Error loading packages", e)
    except KeyboardInterrupt as ke:
        handle_keyboard_interrupt_properly(ke)
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def update_index_command(libraries: bool = False, verbose: bool = False) -> None:
    """Download the package indexes (or the library index).

    Examples:
        sketchbuild core update-index
        sketchbuild lib update-index
    """
    try:
        settings = Settings.from_environment(verbose=verbose)
        downloader = IndexDownloader(settings.data_dir)
        if libraries:
            paths = [downloader.download_library_index()]
        else:
            paths = downloader.update_indexes(settings.index_urls)
        for path in paths:
            print(f"Updated {path}")
        ErrorFormatter.print_success("Index update successful!")
        sys.exit(0)

    except DownloadError as e:
        ErrorFormatter.handle_error("Index update failed!", e)
    except KeyboardInterrupt as ke:
        handle_keyboard_interrupt_properly(ke)
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, verbose)


def _add_compile_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "sketch",
        type=Path,
        help="Sketch directory or main sketch file",
    )
    parser.add_argument(
        "-b",
        "--fqbn",
        required=True,
        help="Fully qualified board name, e.g. arduino:avr:uno",
    )
    parser.add_argument(
        "--build-path",
        type=Path,
        default=None,
        help="Build directory (default: <data dir>/build/<sketch hash>)",
    )
    parser.add_argument(
        "--property",
        dest="properties",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a build property (repeatable)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose build output",
    )


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sketchbuild",
        description="sketchbuild - recipe-driven sketch build system",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"sketchbuild {VERSION}",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Compile command
    compile_parser = subparsers.add_parser("compile", help="Compile a sketch")
    _add_compile_arguments(compile_parser)
    compile_parser.add_argument(
        "--only-compilation-database",
        action="store_true",
        help="Only create compile_commands.json without running the compiler",
    )
    compile_parser.add_argument(
        "--export-cmake",
        action="store_true",
        help="Export the build as a CMake project in <build path>/_cmake",
    )

    # Preprocess command
    preprocess_parser = subparsers.add_parser("preprocess", help="Print the preprocessed sketch")
    _add_compile_arguments(preprocess_parser)

    # Board commands
    board_parser = subparsers.add_parser("board", help="Board commands")
    board_subparsers = board_parser.add_subparsers(dest="board_command", help="Board command to run")
    details_parser = board_subparsers.add_parser("details", help="Show board details")
    details_parser.add_argument("fqbn", help="Fully qualified board name")
    details_parser.add_argument("-v", "--verbose", action="store_true", help="Show build properties")
    board_subparsers.add_parser("list", help="List installed boards")
    search_parser = board_subparsers.add_parser("search-usb", help="Find boards by USB VID/PID")
    search_parser.add_argument("vid", help="USB vendor id, e.g. 0x2341")
    search_parser.add_argument("pid", help="USB product id, e.g. 0x0043")

    # Index commands
    core_parser = subparsers.add_parser("core", help="Platform commands")
    core_subparsers = core_parser.add_subparsers(dest="core_command", help="Core command to run")
    core_subparsers.add_parser("update-index", help="Download the package indexes")

    lib_parser = subparsers.add_parser("lib", help="Library commands")
    lib_subparsers = lib_parser.add_subparsers(dest="lib_command", help="Library command to run")
    lib_subparsers.add_parser("update-index", help="Download the library index")

    return parser


def main() -> None:
    """sketchbuild - recipe-driven sketch build system."""
    parser = create_parser()
    parsed_args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if parsed_args.debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    # If no command specified, show help
    if not parsed_args.command:
        parser.print_help()
        sys.exit(0)

    if parsed_args.command in ("compile", "preprocess"):
        PathValidator.validate_sketch_path(parsed_args.sketch)
        compile_args = CompileArgs(
            sketch=parsed_args.sketch,
            fqbn=parsed_args.fqbn,
            build_path=parsed_args.build_path,
            only_compilation_database=getattr(parsed_args, "only_compilation_database", False),
            export_cmake=getattr(parsed_args, "export_cmake", False),
            properties=parsed_args.properties,
            verbose=parsed_args.verbose,
        )
        if parsed_args.command == "compile":
            compile_command(compile_args)
        else:
            preprocess_command(compile_args)
    elif parsed_args.command == "board":
        if parsed_args.board_command == "details":
            board_details_command(BoardArgs(fqbn=parsed_args.fqbn, verbose=parsed_args.verbose))
        elif parsed_args.board_command == "list":
            board_list_command(BoardArgs())
        elif parsed_args.board_command == "search-usb":
            board_list_command(BoardArgs(vid=parsed_args.vid, pid=parsed_args.pid))
        else:
            parser.parse_args(["board", "--help"])
    elif parsed_args.command == "core":
        if parsed_args.core_command == "update-index":
            update_index_command()
        else:
            parser.parse_args(["core", "--help"])
    elif parsed_args.command == "lib":
        if parsed_args.lib_command == "update-index":
            update_index_command(libraries=True)
        else:
            parser.parse_args(["lib", "--help"])


if __name__ == "__main__":
    main()
