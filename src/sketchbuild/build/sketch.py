"""
Sketch discovery.

A sketch is a directory whose main file shares its name:

    Blink/
    ├── Blink.ino          # main file
    ├── helpers.ino        # merged into the main translation unit
    ├── util.cpp           # compiled on its own
    └── src/
        └── driver/
            └── driver.c   # compiled on its own
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List

MAIN_FILE_EXTENSIONS = (".ino", ".pde")
ADDITIONAL_FILE_EXTENSIONS = (".c", ".cpp", ".cc", ".cxx", ".S", ".h", ".hh", ".hpp", ".tpp", ".ipp")
SOURCE_FILE_EXTENSIONS = (".c", ".cpp", ".cc", ".cxx", ".S")

# Directories never treated as sketch sources
EXCLUDED_DIRS = {".git", ".svn", "__pycache__", "build", ".sketchbuild"}


class SketchError(Exception):
    """Raised when a directory is not a valid sketch."""

    pass


@dataclass
class Sketch:
    """Files making up a sketch."""

    full_path: Path
    main_file: Path
    other_sketch_files: List[Path] = field(default_factory=list)
    additional_files: List[Path] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.full_path.name

    @property
    def source_files(self) -> List[Path]:
        """Additional files that are compiled on their own."""
        return [p for p in self.additional_files if p.suffix in SOURCE_FILE_EXTENSIONS]

    @classmethod
    def load(cls, path: Path) -> "Sketch":
        """
        Load a sketch from its directory or its main file.

        Args:
            path: Sketch directory, or path to the main .ino/.pde file

        Returns:
            Sketch instance

        Raises:
            SketchError: If the main file can't be found
        """
        path = Path(path).resolve()
        if path.is_file():
            path = path.parent
        if not path.is_dir():
            raise SketchError(f"Sketch not found: {path}")

        main_file = None
        for ext in MAIN_FILE_EXTENSIONS:
            candidate = path / f"{path.name}{ext}"
            if candidate.is_file():
                main_file = candidate
                break
        if main_file is None:
            raise SketchError(
                f"No main sketch file found in {path}: expected {path.name}.ino"
            )

        other_sketch_files = sorted(
            p for p in path.iterdir()
            if p.is_file() and p.suffix in MAIN_FILE_EXTENSIONS and p != main_file
        )

        additional_files = sorted(
            p for p in path.iterdir()
            if p.is_file() and p.suffix in ADDITIONAL_FILE_EXTENSIONS
        )
        src_dir = path / "src"
        if src_dir.is_dir():
            additional_files.extend(
                sorted(
                    p for p in src_dir.rglob("*")
                    if p.is_file()
                    and p.suffix in ADDITIONAL_FILE_EXTENSIONS
                    and not EXCLUDED_DIRS.intersection(p.relative_to(src_dir).parts)
                )
            )

        return cls(
            full_path=path,
            main_file=main_file,
            other_sketch_files=other_sketch_files,
            additional_files=additional_files,
        )
