"""CLI utility functions for sketchbuild.

This module provides common utilities used across CLI commands including:
- Error handling and formatting
- Sketch path validation
- Build progress display
- Verbose reporting of resolved tools
"""

import sys
from pathlib import Path
from typing import Optional

from tqdm import tqdm

from sketchbuild.cores.packages import ToolDependency, ToolRelease


class ErrorFormatter:
    """Formats and displays error messages with ANSI color codes."""

    # ANSI color codes
    RED = "\033[1;31m"
    GREEN = "\033[1;32m"
    YELLOW = "\033[1;33m"
    RESET = "\033[0m"

    @staticmethod
    def print_error(title: str, message: str) -> None:
        """Print formatted error message.

        Args:
            title: Error title (e.g., "Build failed")
            message: Error message details
        """
        print()
        print(f"{ErrorFormatter.RED}✗ {title}{ErrorFormatter.RESET}")
        print()
        print(message)
        print()

    @staticmethod
    def print_success(message: str) -> None:
        print()
        print(f"{ErrorFormatter.GREEN}✓ {message}{ErrorFormatter.RESET}")

    @staticmethod
    def print_warning(message: str) -> None:
        print()
        print(f"{ErrorFormatter.YELLOW}✗ {message}{ErrorFormatter.RESET}")

    @staticmethod
    def handle_error(title: str, error: Exception) -> None:
        """Print a known error and exit with status 1."""
        ErrorFormatter.print_error(title, str(error))
        sys.exit(1)

    @staticmethod
    def handle_keyboard_interrupt() -> None:
        """Handle KeyboardInterrupt with standard formatting."""
        ErrorFormatter.print_warning("Build interrupted")
        sys.exit(130)  # Standard exit code for SIGINT

    @staticmethod
    def handle_unexpected_error(error: Exception, verbose: bool = False) -> None:
        """Handle unexpected errors with standard formatting.

        Args:
            error: The exception to handle
            verbose: Whether to print traceback
        """
        message = f"{type(error).__name__}: {error}"
        ErrorFormatter.print_error("Unexpected error", message)

        if verbose:
            import traceback

            print("Traceback:")
            print(traceback.format_exc())

        sys.exit(1)


class PathValidator:
    """Validates sketch paths."""

    @staticmethod
    def validate_sketch_path(sketch_path: Path) -> None:
        """Validate that a sketch path exists.

        A sketch is given either as its directory or as its main file.

        Raises:
            SystemExit: If the path doesn't exist
        """
        if not sketch_path.exists():
            print(
                f"{ErrorFormatter.RED}✗ Error: Path does not exist: {sketch_path}{ErrorFormatter.RESET}"
            )
            sys.exit(2)


class ProgressBar:
    """Progress callback rendering the build percentage with tqdm."""

    def __init__(self, description: str = "Building", disable: bool = False):
        self._bar: Optional[tqdm] = None
        self._description = description
        self._disable = disable

    def __call__(self, percent: float) -> None:
        if self._disable:
            return
        if self._bar is None:
            self._bar = tqdm(
                total=100,
                desc=self._description,
                bar_format="{desc}: {percentage:3.0f}%|{bar}|",
                leave=False,
            )
        self._bar.n = min(max(percent, 0.0), 100.0)
        self._bar.refresh()

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None


class VerboseToolReporter:
    """Package manager event handler printing each resolved tool."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def on_tool_resolved(self, dependency: ToolDependency, release: ToolRelease) -> None:
        if self.verbose:
            print(f"Using tool {dependency} from {release.install_dir}")
