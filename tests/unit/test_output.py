"""
Unit tests for build output formatting.
"""

import io

import pytest

from sketchbuild.output import BuilderLogger, format_elapsed


class TestFormatElapsed:
    """Test elapsed time formatting."""

    @pytest.mark.parametrize(
        "elapsed,expected",
        [
            (0.0, "00:00.00"),
            (1.234, "00:01.23"),
            (65.5, "01:05.50"),
            (600.0, "10:00.00"),
        ],
    )
    def test_format(self, elapsed, expected):
        """Test MM:SS.cc formatting."""
        assert format_elapsed(elapsed) == expected


class TestBuilderLogger:
    """Test suite for BuilderLogger."""

    @pytest.fixture
    def streams(self):
        """Captured stdout and stderr streams."""
        return io.StringIO(), io.StringIO()

    def test_info_goes_to_stdout(self, streams):
        """Test info messages get a timestamp and go to stdout."""
        out, err = streams
        logger = BuilderLogger(stdout=out, stderr=err)

        logger.info("Compiling sketch...")

        line = out.getvalue()
        assert line.endswith(" Compiling sketch...\n")
        assert line[2] == ":"
        assert err.getvalue() == ""

    def test_warn_goes_to_stderr(self, streams):
        """Test warnings are prefixed and go to stderr."""
        out, err = streams
        logger = BuilderLogger(stdout=out, stderr=err)

        logger.warn("low memory")

        assert "WARNING: low memory\n" in err.getvalue()
        assert out.getvalue() == ""

    def test_raw_output(self, streams):
        """Test raw writes are untouched, bytes are decoded."""
        out, err = streams
        logger = BuilderLogger(stdout=out, stderr=err)

        logger.write_stdout("#include <Arduino.h>\n")
        logger.write_stderr(b"error: expected ';'\n")

        assert out.getvalue() == "#include <Arduino.h>\n"
        assert err.getvalue() == "error: expected ';'\n"

    def test_verbose_flag(self):
        """Test verbose() reflects the constructor flag."""
        assert BuilderLogger(verbose=True).verbose() is True
        assert BuilderLogger().verbose() is False
