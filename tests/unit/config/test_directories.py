"""
Unit tests for the data directory layout.
"""

import pytest

from sketchbuild.config.directories import DEFAULT_INDEX_URL, LIBRARY_INDEX_URL, DataDirectory


class TestDataDirectory:
    """Test suite for DataDirectory."""

    def test_explicit_root(self, tmp_path):
        """Test an explicit root is used as-is."""
        data_dir = DataDirectory(tmp_path)

        assert data_dir.root == tmp_path.resolve()
        assert data_dir.packages_dir == tmp_path.resolve() / "packages"
        assert data_dir.staging_dir == tmp_path.resolve() / "staging"
        assert data_dir.build_root == tmp_path.resolve() / "build"

    def test_root_from_environment(self, tmp_path, monkeypatch):
        """Test SKETCHBUILD_DATA_DIR relocates the data directory."""
        monkeypatch.setenv("SKETCHBUILD_DATA_DIR", str(tmp_path / "data"))

        assert DataDirectory().root == (tmp_path / "data").resolve()

    def test_default_root(self, monkeypatch):
        """Test the default data directory is in the home directory."""
        monkeypatch.delenv("SKETCHBUILD_DATA_DIR", raising=False)

        assert DataDirectory().root.name == ".sketchbuild"

    def test_hash_path_is_stable(self, tmp_path):
        """Test the same path always hashes the same."""
        first = DataDirectory.hash_path(tmp_path / "Blink")
        second = DataDirectory.hash_path(tmp_path / "Blink")
        other = DataDirectory.hash_path(tmp_path / "Fade")

        assert first == second
        assert first != other
        assert len(first) == 16

    def test_index_path_from_url(self, tmp_path):
        """Test index files keep their URL file name."""
        data_dir = DataDirectory(tmp_path)

        assert data_dir.index_path_from_url(DEFAULT_INDEX_URL).name == "package_index.json"
        assert data_dir.index_path_from_url(LIBRARY_INDEX_URL).name == "library_index.json"
        assert (
            data_dir.index_path_from_url("https://example.com/boards/package_acme_index.json").name
            == "package_acme_index.json"
        )

    def test_index_path_from_url_without_file_name(self, tmp_path):
        """Test URLs without a file name are rejected."""
        with pytest.raises(ValueError, match="no file name"):
            DataDirectory(tmp_path).index_path_from_url("https://example.com/")

    def test_ensure_directories(self, tmp_path):
        """Test ensure_directories creates the layout."""
        data_dir = DataDirectory(tmp_path / "data")
        data_dir.ensure_directories()

        assert data_dir.packages_dir.is_dir()
        assert data_dir.staging_dir.is_dir()
        assert data_dir.build_root.is_dir()

    def test_clean_build(self, tmp_path):
        """Test clean_build removes only the sketch's build directory."""
        data_dir = DataDirectory(tmp_path / "data")
        sketch_dir = tmp_path / "Blink"
        build_dir = data_dir.get_build_dir(sketch_dir)
        (build_dir / "core").mkdir(parents=True)

        data_dir.clean_build(sketch_dir)

        assert not build_dir.exists()
        assert data_dir.build_root.exists()
