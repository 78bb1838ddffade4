"""
Unit tests for runtime settings.
"""

import pytest

from sketchbuild.config.directories import DEFAULT_INDEX_URL
from sketchbuild.config.settings import Settings, SettingsError


class TestSettings:
    """Test suite for Settings."""

    def test_from_environment(self, tmp_path, monkeypatch):
        """Test user dir and additional URLs are read from the environment."""
        monkeypatch.setenv("SKETCHBUILD_USER_DIR", str(tmp_path / "sketchbook"))
        monkeypatch.setenv(
            "SKETCHBUILD_ADDITIONAL_URLS",
            "https://example.com/package_a_index.json, https://example.com/package_b_index.json,",
        )

        settings = Settings.from_environment(data_dir=tmp_path / "data")

        assert settings.user_dir == (tmp_path / "sketchbook").resolve()
        assert settings.additional_urls == [
            "https://example.com/package_a_index.json",
            "https://example.com/package_b_index.json",
        ]
        assert settings.user_libraries_dir == settings.user_dir / "libraries"
        assert settings.user_hardware_dir == settings.user_dir / "hardware"

    def test_overrides_take_precedence(self, tmp_path, monkeypatch):
        """Test explicit values win over the environment."""
        monkeypatch.setenv("SKETCHBUILD_ADDITIONAL_URLS", "https://example.com/package_a_index.json")

        settings = Settings.from_environment(
            data_dir=tmp_path,
            user_dir=tmp_path / "user",
            additional_urls=[],
            verbose=True,
        )

        assert settings.additional_urls == []
        assert settings.verbose is True
        assert settings.user_dir == (tmp_path / "user").resolve()

    def test_index_urls(self, tmp_path):
        """Test the default index comes first and is not repeated."""
        settings = Settings.from_environment(
            data_dir=tmp_path,
            user_dir=tmp_path,
            additional_urls=[DEFAULT_INDEX_URL, "https://example.com/package_a_index.json"],
        )

        assert settings.index_urls == [DEFAULT_INDEX_URL, "https://example.com/package_a_index.json"]

    def test_parse_custom_properties(self):
        """Test key=value parsing keeps '=' inside values."""
        props = Settings.parse_custom_properties(["build.extra_flags=-DFOO=1", "compiler.warning_flags="])

        assert props == {"build.extra_flags": "-DFOO=1", "compiler.warning_flags": ""}

    @pytest.mark.parametrize("item", ["no-equals", "=value"])
    def test_parse_custom_properties_invalid(self, item):
        """Test malformed properties are rejected."""
        with pytest.raises(SettingsError, match="Invalid build property"):
            Settings.parse_custom_properties([item])
