"""
Unit tests for nested progress accounting.
"""

import pytest

from sketchbuild.build.progress import Progress


class TestProgress:
    """Test suite for Progress."""

    def test_flat_steps(self):
        """Test each step advances by an equal share."""
        progress = Progress()
        progress.add_sub_steps(4)

        progress.complete_step()
        progress.complete_step()

        assert progress.progress == pytest.approx(50.0)

    def test_nested_steps(self):
        """Test nested steps subdivide the parent step."""
        progress = Progress()
        progress.add_sub_steps(4)
        progress.complete_step()
        progress.add_sub_steps(2)
        progress.complete_step()

        assert progress.progress == pytest.approx(37.5)
        assert progress.depth == 2

        progress.remove_sub_steps()
        assert progress.progress == pytest.approx(25.0)
        progress.complete_step()
        assert progress.progress == pytest.approx(50.0)
        assert progress.depth == 1

    def test_capped_at_100(self):
        """Test extra steps never exceed 100%."""
        progress = Progress()
        progress.add_sub_steps(2)
        for _ in range(5):
            progress.complete_step()

        assert progress.progress == 100.0

    def test_push_progress_calls_callback(self):
        """Test push_progress reports the current percentage."""
        reported = []
        progress = Progress(callback=reported.append)
        progress.add_sub_steps(2)
        progress.complete_step()
        progress.push_progress()

        assert reported == [pytest.approx(50.0)]

    def test_push_progress_without_callback(self):
        """Test push_progress is a no-op without a callback."""
        Progress().push_progress()

    def test_invalid_steps(self):
        """Test a non-positive step count is rejected."""
        with pytest.raises(ValueError):
            Progress().add_sub_steps(0)

    def test_unbalanced_remove(self):
        """Test removing without a matching add raises."""
        with pytest.raises(RuntimeError):
            Progress().remove_sub_steps()
