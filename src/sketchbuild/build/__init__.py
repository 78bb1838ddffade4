"""
Build system components for sketchbuild.

This module provides the recipe-driven build implementation including:
- Sketch discovery and preprocessing (.ino merge, function prototypes)
- Library detection from #include directives
- Compilation, archiving and linking through platform recipes
- The build pipeline sequencing all of the above
"""

from .build_options import BuildOptionsManager
from .builder import BuildError, SketchBuilder, build_properties_for
from .compilation_database import CompilationDatabase, CompilationDatabaseError
from .libraries import Library, LibrariesResolver, SketchLibrariesDetector, load_libraries_dir
from .pipeline import (
    ActionStage,
    BuildPipeline,
    BuildResult,
    RecipeStage,
    StageFailedError,
    main_sequence,
    run_stages,
    secondary_sequence,
)
from .preprocessor import PreprocessorError
from .progress import Progress
from .recipe_runner import RecipeError, RecipeRunner
from .size import SizeError, SizeInfo
from .sketch import Sketch, SketchError

__all__ = [
    'ActionStage',
    'BuildError',
    'BuildOptionsManager',
    'BuildPipeline',
    'BuildResult',
    'CompilationDatabase',
    'CompilationDatabaseError',
    'LibrariesResolver',
    'Library',
    'PreprocessorError',
    'Progress',
    'RecipeError',
    'RecipeRunner',
    'RecipeStage',
    'SizeError',
    'SizeInfo',
    'Sketch',
    'SketchBuilder',
    'SketchError',
    'SketchLibrariesDetector',
    'StageFailedError',
    'build_properties_for',
    'load_libraries_dir',
    'main_sequence',
    'run_stages',
    'secondary_sequence',
]
