"""Compilation database (compile_commands.json).

Records the exact compiler invocation for every source file of a build so
editors and static analysers can reproduce it. The database is saved after
the main build sequence even when compilation failed, and is the only
output of a build run in "only update compilation database" mode.

Format (one entry per source file, later entries replace earlier ones):
    [
      {
        "directory": "/home/user/.sketchbuild/build/3f2a.../sketch",
        "arguments": ["avr-g++", "-c", "-g", "Blink.ino.cpp", "-o", "Blink.ino.cpp.o"],
        "file": "/home/user/.sketchbuild/build/3f2a.../sketch/Blink.ino.cpp"
      }
    ]
"""

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, List

logger = logging.getLogger(__name__)


class CompilationDatabaseError(Exception):
    """Raised when the database file can't be read or written."""

    pass


@dataclass
class CompilationCommand:
    """One compile invocation."""

    directory: str
    arguments: List[str]
    file: str


class CompilationDatabase:
    """In-memory compilation database bound to its output file."""

    def __init__(self, file: Path):
        self.file = Path(file)
        self._entries: Dict[str, CompilationCommand] = {}

    @classmethod
    def load(cls, file: Path) -> "CompilationDatabase":
        """
        Load an existing database.

        Raises:
            CompilationDatabaseError: If the file is not a valid database
        """
        db = cls(file)
        try:
            with open(file, "r", encoding="utf-8") as f:
                entries = json.load(f)
            for entry in entries:
                db._entries[entry["file"]] = CompilationCommand(
                    directory=entry["directory"],
                    arguments=list(entry["arguments"]),
                    file=entry["file"],
                )
        except (OSError, json.JSONDecodeError, KeyError, TypeError) as e:
            raise CompilationDatabaseError(f"Failed to load {file}: {e}") from e
        return db

    def add(self, source: Path, arguments: List[str], directory: Path) -> None:
        """Record the command used to compile ``source``."""
        key = str(source)
        self._entries[key] = CompilationCommand(
            directory=str(directory),
            arguments=list(arguments),
            file=key,
        )

    @property
    def entries(self) -> List[CompilationCommand]:
        return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def save(self) -> None:
        """
        Write the database to its file.

        Raises:
            CompilationDatabaseError: If the file can't be written
        """
        try:
            self.file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.file, "w", encoding="utf-8") as f:
                json.dump([asdict(e) for e in self._entries.values()], f, indent=2)
        except OSError as e:
            raise CompilationDatabaseError(f"Failed to write {self.file}: {e}") from e
        logger.debug("Saved %d compilation commands to %s", len(self._entries), self.file)
