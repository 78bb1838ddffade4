"""Recipe execution.

A recipe is a build property whose value is a command-line pattern, e.g.

    recipe.hooks.prebuild.1.pattern=bash -c "[ -f {build.path}/gen.h ] || touch {build.path}/gen.h"
    recipe.objcopy.hex.pattern="{compiler.path}{compiler.elf2hex.cmd}" ... "{build.path}/{build.project_name}.hex"

RecipeRunner runs every recipe matching a key prefix/suffix pair, in
natural order of the part between them (so ``.2.`` runs before ``.10.``),
after expanding ``{property}`` placeholders against the build properties.
"""

import logging
import re
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple, Union

from ..config.properties import PropertiesMap
from ..output import BuilderLogger

logger = logging.getLogger(__name__)

# Recipes are external tools; a hung tool shouldn't hang the build forever
DEFAULT_TIMEOUT = 600


class RecipeError(Exception):
    """Raised when a recipe command fails to run or exits non-zero."""

    def __init__(
        self,
        message: str,
        command: Optional[List[str]] = None,
        stdout: str = "",
        stderr: str = "",
        returncode: Optional[int] = None,
    ):
        super().__init__(message)
        self.command = command or []
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode

    def __str__(self) -> str:
        message = super().__str__()
        if self.stderr:
            message += f"\n{self.stderr.rstrip()}"
        return message


@dataclass
class CommandResult:
    """Outcome of one external command."""

    command: List[str]
    returncode: int
    stdout: str
    stderr: str


def prepare_command(pattern: str, properties: PropertiesMap) -> List[str]:
    """
    Expand a recipe pattern and split it into arguments.

    Raises:
        RecipeError: If the expanded pattern can't be split (unbalanced quotes)
    """
    expanded = properties.expand_props_in_string(pattern)
    try:
        return shlex.split(expanded)
    except ValueError as e:
        raise RecipeError(f"Invalid command line '{expanded}': {e}") from e


def run_command(
    command: List[str],
    cwd: Optional[Path] = None,
    timeout: int = DEFAULT_TIMEOUT,
) -> CommandResult:
    """
    Run an external command, raising on failure.

    Args:
        command: Program and arguments
        cwd: Working directory
        timeout: Timeout in seconds

    Returns:
        CommandResult with captured output

    Raises:
        RecipeError: If the command can't start, times out or exits non-zero
    """
    logger.debug("Running: %s", " ".join(command))
    try:
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            cwd=str(cwd) if cwd else None,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise RecipeError(
            f"Command timed out after {timeout}s: {command[0]}", command=command
        ) from e
    except OSError as e:
        raise RecipeError(f"Failed to run {command[0]}: {e}", command=command) from e

    if result.returncode != 0:
        raise RecipeError(
            f"Command failed with exit code {result.returncode}: {' '.join(command)}",
            command=command,
            stdout=result.stdout,
            stderr=result.stderr,
            returncode=result.returncode,
        )

    return CommandResult(
        command=command,
        returncode=result.returncode,
        stdout=result.stdout,
        stderr=result.stderr,
    )


def _natural_key(text: str) -> Tuple[Tuple[int, Union[int, str]], ...]:
    parts = [p for p in re.split(r"(\d+)", text) if p]
    return tuple((0, int(p)) if p.isdigit() else (1, p) for p in parts)


def find_recipes(properties: PropertiesMap, prefix: str, suffix: str) -> List[str]:
    """Return the keys matching prefix/suffix, in natural order of their middle part."""
    matches = []
    for key in properties:
        if not key.startswith(prefix) or not key.endswith(suffix):
            continue
        if len(key) < len(prefix) + len(suffix):
            continue
        middle = key[len(prefix):len(key) - len(suffix)]
        matches.append((_natural_key(middle), key))
    return [key for _, key in sorted(matches)]


class RecipeRunner:
    """Runs recipe hooks against a build's properties."""

    def __init__(
        self,
        properties: PropertiesMap,
        builder_logger: BuilderLogger,
        only_update_compilation_database: bool = False,
        timeout: int = DEFAULT_TIMEOUT,
    ):
        """
        Initialize recipe runner.

        Args:
            properties: Merged build properties
            builder_logger: Output sink for verbose command echo and tool output
            only_update_compilation_database: Skip recipes flagged as skippable
            timeout: Per-command timeout in seconds
        """
        self.properties = properties
        self.builder_logger = builder_logger
        self.only_update_compilation_database = only_update_compilation_database
        self.timeout = timeout

    def run_recipe(
        self,
        prefix: str,
        suffix: str,
        skip_if_only_updating_compilation_database: bool = False,
    ) -> List[CommandResult]:
        """
        Run every recipe matching ``prefix``/``suffix``.

        Args:
            prefix: Key prefix, e.g. "recipe.hooks.prebuild"
            suffix: Key suffix, e.g. ".pattern"
            skip_if_only_updating_compilation_database: Don't execute when the
                build only refreshes the compilation database

        Returns:
            Results of the commands that ran

        Raises:
            RecipeError: On the first failing command
        """
        results = []
        for key in find_recipes(self.properties, prefix, suffix):
            pattern = self.properties[key]
            if not pattern.strip():
                continue

            command = prepare_command(pattern, self.properties)
            if not command:
                continue

            if self.only_update_compilation_database and skip_if_only_updating_compilation_database:
                if self.builder_logger.verbose():
                    self.builder_logger.info(f"Skipping: {' '.join(command)}")
                continue

            if self.builder_logger.verbose():
                self.builder_logger.info(" ".join(command))

            result = run_command(command, timeout=self.timeout)
            if self.builder_logger.verbose():
                if result.stdout:
                    self.builder_logger.write_stdout(result.stdout)
                if result.stderr:
                    self.builder_logger.write_stderr(result.stderr)
            results.append(result)
        return results
