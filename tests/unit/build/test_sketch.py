"""
Unit tests for sketch discovery.
"""

import pytest

from sketchbuild.build.sketch import Sketch, SketchError


class TestSketchLoad:
    """Test suite for Sketch.load."""

    def test_load_directory(self, sketch_dir):
        """Test loading a sketch from its directory."""
        sketch = Sketch.load(sketch_dir)

        assert sketch.name == "Blink"
        assert sketch.full_path == sketch_dir.resolve()
        assert sketch.main_file.name == "Blink.ino"
        assert [p.name for p in sketch.other_sketch_files] == ["helpers.ino"]
        assert [p.name for p in sketch.additional_files] == ["util.cpp", "util.h"]
        assert [p.name for p in sketch.source_files] == ["util.cpp"]

    def test_load_main_file(self, sketch_dir):
        """Test loading a sketch from its main file."""
        assert Sketch.load(sketch_dir / "Blink.ino").full_path == sketch_dir.resolve()

    def test_pde_main_file(self, tmp_path):
        """Test legacy .pde main files are accepted."""
        path = tmp_path / "Old"
        path.mkdir()
        (path / "Old.pde").write_text("void setup() {}\nvoid loop() {}\n")

        assert Sketch.load(path).main_file.name == "Old.pde"

    def test_src_folder_is_recursive(self, sketch_dir):
        """Test sources below src/ are found recursively, VCS folders excluded."""
        driver = sketch_dir / "src" / "driver"
        driver.mkdir(parents=True)
        (driver / "driver.c").write_text("")
        (driver / "driver.h").write_text("")
        git_dir = sketch_dir / "src" / ".git"
        git_dir.mkdir()
        (git_dir / "hook.c").write_text("")

        sketch = Sketch.load(sketch_dir)

        relative = [p.relative_to(sketch.full_path).as_posix() for p in sketch.additional_files]
        assert "src/driver/driver.c" in relative
        assert "src/driver/driver.h" in relative
        assert not any(".git" in p for p in relative)

    def test_nested_folders_outside_src_ignored(self, sketch_dir):
        """Test only src/ is searched below the sketch folder."""
        (sketch_dir / "extras").mkdir()
        (sketch_dir / "extras" / "tool.cpp").write_text("")

        sketch = Sketch.load(sketch_dir)

        assert all(p.parent == sketch.full_path for p in sketch.additional_files)

    def test_missing_main_file(self, tmp_path):
        """Test a folder without <name>.ino is rejected."""
        path = tmp_path / "Blink"
        path.mkdir()
        (path / "other.ino").write_text("")

        with pytest.raises(SketchError, match="No main sketch file"):
            Sketch.load(path)

    def test_missing_path(self, tmp_path):
        """Test a path that doesn't exist is rejected."""
        with pytest.raises(SketchError, match="Sketch not found"):
            Sketch.load(tmp_path / "Nope")
