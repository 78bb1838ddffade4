"""
Build output for sketchbuild.

User-facing build messages are printed with an elapsed-time prefix in
MM:SS.cc format so a build log shows where time was spent:

    00:00.12 Detecting libraries used...
    00:01.23 Compiling sketch...
    00:04.67 WARNING: library Servo claims to run on sam architecture(s)

Raw output of external tools (compiler diagnostics, the preprocessed sketch)
is passed through untouched via write_stdout/write_stderr.

Debug tracing does not go through this module; modules use the standard
``logging`` package for that.

Usage:
    logger = BuilderLogger(verbose=True)
    logger.info("Compiling core...")
    logger.warn("Sketch uses 98% of program storage space")
    logger.write_stdout(preprocessed_source)
"""

import sys
import time
from typing import Optional, TextIO, Union


def format_elapsed(elapsed: float) -> str:
    """
    Format an elapsed time as MM:SS.cc.

    Args:
        elapsed: Elapsed time in seconds

    Returns:
        Formatted timestamp string
    """
    minutes = int(elapsed // 60)
    seconds = elapsed % 60
    return f"{minutes:02d}:{seconds:05.2f}"


class BuilderLogger:
    """Severity-aware output sink used by the build pipeline."""

    INFO = "info"
    WARN = "warn"

    def __init__(
        self,
        verbose: bool = False,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
    ):
        """
        Initialize the logger.

        Args:
            verbose: Whether verbose-only messages are printed
            stdout: Stream for informational output (defaults to sys.stdout)
            stderr: Stream for warnings and tool errors (defaults to sys.stderr)
        """
        self._verbose = verbose
        self._stdout = stdout if stdout is not None else sys.stdout
        self._stderr = stderr if stderr is not None else sys.stderr
        self._start_time = time.time()

    def verbose(self) -> bool:
        """Return True when verbose output is enabled."""
        return self._verbose

    def reset_timer(self) -> None:
        """Restart the elapsed-time reference."""
        self._start_time = time.time()

    def log(self, message: str, severity: str = INFO) -> None:
        """
        Print a message with the given severity.

        Args:
            message: Message text
            severity: BuilderLogger.INFO or BuilderLogger.WARN
        """
        if severity == self.WARN:
            self._emit(self._stderr, f"WARNING: {message}")
        else:
            self._emit(self._stdout, message)

    def info(self, message: str) -> None:
        self.log(message, self.INFO)

    def warn(self, message: str) -> None:
        self.log(message, self.WARN)

    def write_stdout(self, data: Union[str, bytes]) -> None:
        """Write raw data to stdout without a timestamp."""
        self._write_raw(self._stdout, data)

    def write_stderr(self, data: Union[str, bytes]) -> None:
        """Write raw data to stderr without a timestamp."""
        self._write_raw(self._stderr, data)

    def _emit(self, stream: TextIO, message: str) -> None:
        timestamp = format_elapsed(time.time() - self._start_time)
        stream.write(f"{timestamp} {message}\n")
        stream.flush()

    @staticmethod
    def _write_raw(stream: TextIO, data: Union[str, bytes]) -> None:
        if isinstance(data, bytes):
            data = data.decode("utf-8", errors="replace")
        stream.write(data)
        stream.flush()
