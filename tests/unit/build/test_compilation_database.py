"""
Unit tests for the compilation database.
"""

import json

import pytest

from sketchbuild.build.compilation_database import CompilationDatabase, CompilationDatabaseError


class TestCompilationDatabase:
    """Test suite for CompilationDatabase."""

    def test_add_and_save(self, tmp_path):
        """Test entries are written in compile_commands.json format."""
        db = CompilationDatabase(tmp_path / "build" / "compile_commands.json")
        source = tmp_path / "sketch" / "Blink.ino.cpp"
        db.add(source, ["avr-g++", "-c", str(source)], tmp_path / "build")

        db.save()

        data = json.loads(db.file.read_text())
        assert data == [
            {
                "directory": str(tmp_path / "build"),
                "arguments": ["avr-g++", "-c", str(source)],
                "file": str(source),
            }
        ]

    def test_later_entry_replaces_earlier(self, tmp_path):
        """Test one entry is kept per source file."""
        db = CompilationDatabase(tmp_path / "compile_commands.json")
        source = tmp_path / "a.cpp"
        db.add(source, ["g++", "-O0"], tmp_path)
        db.add(source, ["g++", "-Os"], tmp_path)

        assert len(db) == 1
        assert db.entries[0].arguments == ["g++", "-Os"]

    def test_load(self, tmp_path):
        """Test a saved database loads back."""
        db = CompilationDatabase(tmp_path / "compile_commands.json")
        db.add(tmp_path / "a.cpp", ["g++", "a.cpp"], tmp_path)
        db.add(tmp_path / "b.c", ["gcc", "b.c"], tmp_path)
        db.save()

        loaded = CompilationDatabase.load(db.file)

        assert [e.file for e in loaded.entries] == [str(tmp_path / "a.cpp"), str(tmp_path / "b.c")]

    @pytest.mark.parametrize("content", ["not json", '[{"file": "a.cpp"}]'])
    def test_load_invalid(self, tmp_path, content):
        """Test malformed databases raise CompilationDatabaseError."""
        path = tmp_path / "compile_commands.json"
        path.write_text(content)

        with pytest.raises(CompilationDatabaseError):
            CompilationDatabase.load(path)

    def test_save_unwritable(self, tmp_path):
        """Test a save into a file path used by a directory fails cleanly."""
        target = tmp_path / "compile_commands.json"
        target.mkdir()

        with pytest.raises(CompilationDatabaseError, match="Failed to write"):
            CompilationDatabase(target).save()
