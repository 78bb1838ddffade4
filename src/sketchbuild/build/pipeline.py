"""
Build pipeline.

A build is two ordered lists of stages:

- the main sequence (prepare, detect libraries, preprocess, compile, link,
  objcopy, bootloader merge) which stops at the first failure
- the secondary sequence (library reports, project export, size) which
  always runs afterwards, so a failed build still gets its diagnostics

The compilation database is saved between the two. The result of the
build is the main sequence error if any, else the secondary sequence
error, else success.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from ..interrupt_utils import handle_keyboard_interrupt_properly
from .builder import SketchBuilder
from .libraries import SketchLibrariesDetector
from .preprocessor import main_cpp_path

logger = logging.getLogger(__name__)

# Steps registered on top of the main sequence for the secondary one
SECONDARY_STEPS = 5


class StageFailedError(Exception):
    """Raised when a pipeline stage fails; wraps the originating error."""

    def __init__(self, stage_name: str, cause: BaseException):
        super().__init__(f"{stage_name}: {cause}")
        self.stage_name = stage_name
        self.cause = cause


@dataclass(frozen=True)
class RecipeStage:
    """Runs every recipe matching a property key prefix/suffix."""

    prefix: str
    suffix: str = ".pattern"
    skip_if_only_updating_compilation_database: bool = False

    @property
    def name(self) -> str:
        return f"{self.prefix}*{self.suffix}"


@dataclass(frozen=True)
class ActionStage:
    """Runs a named build action."""

    name: str
    fn: Callable[[], None]


Stage = Union[RecipeStage, ActionStage]


@dataclass
class BuildResult:
    """Outcome of a pipeline run."""

    success: bool
    error: Optional[StageFailedError] = None
    main_error: Optional[StageFailedError] = None
    secondary_error: Optional[StageFailedError] = None
    completed_stages: List[str] = field(default_factory=list)

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


def run_stages(stages: Sequence[Stage], builder: SketchBuilder, completed: Optional[List[str]] = None) -> Optional[StageFailedError]:
    """
    Run stages in order, stopping at the first failure.

    Each completed stage advances the builder's progress by one step.

    Returns:
        The failure wrapped in StageFailedError, or None on success
    """
    for stage in stages:
        logger.debug("Running stage %s", stage.name)
        try:
            if isinstance(stage, RecipeStage):
                builder.run_recipe(stage.prefix, stage.suffix, stage.skip_if_only_updating_compilation_database)
            else:
                stage.fn()
        except KeyboardInterrupt as ke:
            handle_keyboard_interrupt_properly(ke)
        except Exception as e:
            logger.debug("Stage %s failed: %s", stage.name, e)
            return StageFailedError(stage.name, e)

        if completed is not None:
            completed.append(stage.name)
        builder.progress.complete_step()
        builder.progress.push_progress()
    return None


def _log_if_verbose(builder: SketchBuilder, message: str) -> ActionStage:
    def log() -> None:
        if builder.builder_logger.verbose():
            builder.builder_logger.info(message)

    return ActionStage(f"log: {message}", log)


def _find_includes_stage(builder: SketchBuilder, detector: SketchLibrariesDetector) -> ActionStage:
    def find_includes() -> None:
        detector.find_includes(
            builder.build_properties.get_path("build.core.path"),
            builder.build_properties.get_path("build.variant.path"),
            builder.sketch_build_path,
            builder.sketch,
            builder.target_arch,
        )

    return ActionStage("find includes", find_includes)


def _preparation_stages(builder: SketchBuilder, detector: SketchLibrariesDetector, log_progress: bool) -> List[Stage]:
    stages: List[Stage] = [
        ActionStage("wipe build path", builder.build_options_manager.wipe_build_path),
        RecipeStage("recipe.hooks.prebuild"),
        ActionStage("prepare sketch build path", builder.prepare_sketch_build_path),
    ]
    if log_progress:
        stages.append(_log_if_verbose(builder, "Detecting libraries used..."))
    stages.append(_find_includes_stage(builder, detector))
    stages.append(
        ActionStage(
            "warn about arch incompatible libraries",
            lambda: builder.warn_about_arch_incompatible_libraries(detector.imported_libraries()),
        )
    )
    if log_progress:
        stages.append(_log_if_verbose(builder, "Generating function prototypes..."))
    stages.append(ActionStage("preprocess sketch", builder.preprocess_sketch))
    return stages


def main_sequence(builder: SketchBuilder, detector: SketchLibrariesDetector) -> List[Stage]:
    """The main build stages, in execution order."""
    stages = _preparation_stages(builder, detector, log_progress=True)
    stages.extend([
        _log_if_verbose(builder, "Compiling sketch..."),
        RecipeStage("recipe.hooks.sketch.prebuild"),
        ActionStage("build sketch", lambda: builder.build_sketch(detector.include_folders())),
        RecipeStage("recipe.hooks.sketch.postbuild", skip_if_only_updating_compilation_database=True),

        _log_if_verbose(builder, "Compiling libraries..."),
        RecipeStage("recipe.hooks.libraries.prebuild"),
        ActionStage(
            "remove unused compiled libraries",
            lambda: builder.remove_unused_compiled_libraries(detector.imported_libraries()),
        ),
        ActionStage(
            "build libraries",
            lambda: builder.build_libraries(detector.include_folders(), detector.imported_libraries()),
        ),
        RecipeStage("recipe.hooks.libraries.postbuild", skip_if_only_updating_compilation_database=True),

        _log_if_verbose(builder, "Compiling core..."),
        RecipeStage("recipe.hooks.core.prebuild"),
        ActionStage("build core", builder.build_core),
        RecipeStage("recipe.hooks.core.postbuild", skip_if_only_updating_compilation_database=True),

        _log_if_verbose(builder, "Linking everything together..."),
        RecipeStage("recipe.hooks.linking.prelink"),
        ActionStage("link", builder.link),
        RecipeStage("recipe.hooks.linking.postlink", skip_if_only_updating_compilation_database=True),

        RecipeStage("recipe.hooks.objcopy.preobjcopy"),
        RecipeStage("recipe.objcopy.", skip_if_only_updating_compilation_database=True),
        RecipeStage("recipe.hooks.objcopy.postobjcopy", skip_if_only_updating_compilation_database=True),

        ActionStage("merge sketch with bootloader", builder.merge_sketch_with_bootloader),

        RecipeStage("recipe.hooks.postbuild", skip_if_only_updating_compilation_database=True),
    ])
    return stages


def secondary_sequence(builder: SketchBuilder, detector: SketchLibrariesDetector, sketch_error: bool) -> List[Stage]:
    """The reporting stages run after the main sequence, whatever its outcome."""
    return [
        ActionStage(
            "print used and not used libraries",
            lambda: detector.print_used_and_not_used_libraries(sketch_error),
        ),
        ActionStage(
            "print used libraries",
            lambda: builder.print_used_libraries(detector.imported_libraries()),
        ),
        ActionStage(
            "export project cmake",
            lambda: builder.export_project_cmake(
                sketch_error,
                detector.imported_libraries(),
                detector.include_folders(),
            ),
        ),
        ActionStage("size", lambda: builder.size(sketch_error)),
    ]


class BuildPipeline:
    """
    Runs a build for a prepared SketchBuilder.

    Example usage:
        pipeline = BuildPipeline(builder, detector)
        result = pipeline.run()
        result.raise_for_error()
    """

    def __init__(self, builder: SketchBuilder, detector: SketchLibrariesDetector):
        self.builder = builder
        self.detector = detector

    def run(self) -> BuildResult:
        """
        Run the main sequence, save the compilation database, then run the
        secondary sequence.

        Returns:
            BuildResult whose ``error`` is the main sequence error if any,
            else the secondary sequence error
        """
        self.builder.build_path.mkdir(parents=True, exist_ok=True)
        progress = self.builder.progress
        completed: List[str] = []

        main = main_sequence(self.builder, self.detector)
        progress.add_sub_steps(len(main) + SECONDARY_STEPS)
        try:
            main_error = run_stages(main, self.builder, completed)
            self.builder.save_compilation_database()

            secondary = secondary_sequence(self.builder, self.detector, main_error is not None)
            secondary_error = run_stages(secondary, self.builder, completed)
        finally:
            progress.remove_sub_steps()

        error = main_error if main_error is not None else secondary_error
        return BuildResult(
            success=error is None,
            error=error,
            main_error=main_error,
            secondary_error=secondary_error,
            completed_stages=completed,
        )

    def preprocess(self) -> Path:
        """
        Run the preparation stages only and write the preprocessed sketch
        to the logger's stdout.

        Returns:
            Path to the preprocessed ``<main>.cpp``

        Raises:
            StageFailedError: If a stage fails or the output can't be read
        """
        self.builder.build_path.mkdir(parents=True, exist_ok=True)
        progress = self.builder.progress

        stages = _preparation_stages(self.builder, self.detector, log_progress=False)
        progress.add_sub_steps(len(stages))
        try:
            error = run_stages(stages, self.builder)
        finally:
            progress.remove_sub_steps()
        if error is not None:
            raise error

        output = main_cpp_path(self.builder.sketch, self.builder.sketch_build_path)
        try:
            content = output.read_text(encoding="utf-8")
        except OSError as e:
            raise StageFailedError("read preprocessed sketch", e) from e
        self.builder.builder_logger.write_stdout(content)
        return output
