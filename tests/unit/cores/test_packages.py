"""
Unit tests for the in-memory package registry.
"""

from pathlib import Path

import pytest

from sketchbuild.config.properties import PropertiesMap
from sketchbuild.cores.errors import InvalidBuildPropertiesError
from sketchbuild.cores.packages import Packages, ToolDependency


@pytest.fixture
def avr_release(tmp_path):
    """Installed arduino:avr release with a nano board declaring a cpu menu."""
    packages = Packages()
    platform = packages.get_or_create_package("arduino").get_or_create_platform("avr")
    release = platform.mark_installed("1.8.6", tmp_path / "hardware" / "avr" / "1.8.6")
    release.properties = PropertiesMap({"compiler.c.cmd": "avr-gcc", "build.mcu": "platform-default"})
    nano = release.get_or_create_board("nano")
    nano.properties = PropertiesMap(
        {
            "name": "Arduino Nano",
            "build.core": "arduino",
            "vid.0": "0x2341",
            "pid.0": "0x0043",
            "menu.cpu.atmega328": "ATmega328P",
            "menu.cpu.atmega328.build.mcu": "atmega328p",
            "menu.cpu.atmega328old": "ATmega328P (Old Bootloader)",
            "menu.cpu.atmega328old.build.mcu": "atmega328p",
            "menu.cpu.atmega328old.upload.speed": "57600",
            "menu.cpu.atmega168": "ATmega168",
            "menu.cpu.atmega168.build.mcu": "atmega168",
        }
    )
    return release


class TestBoard:
    """Test suite for Board."""

    def test_identity(self, avr_release):
        """Test board name and FQBN."""
        nano = avr_release.boards["nano"]

        assert nano.name() == "Arduino Nano"
        assert nano.fqbn() == "arduino:avr:nano"
        assert str(nano) == "arduino:avr:nano"

    def test_name_defaults_to_id(self, avr_release):
        """Test a board without a name is named after its id."""
        assert avr_release.get_or_create_board("bare").name() == "bare"

    def test_usb_ids(self, avr_release):
        """Test USB ids are matched case-insensitively."""
        nano = avr_release.boards["nano"]

        assert nano.usb_ids() == [("0x2341", "0x0043")]
        assert nano.has_usb_id("0X2341", "0x0043")
        assert not nano.has_usb_id("0x2341", "0x0001")

    def test_config_menus(self, avr_release):
        """Test declared menus and their options in order."""
        assert avr_release.boards["nano"].config_menus() == {
            "cpu": ["atmega328", "atmega328old", "atmega168"],
        }


class TestBuildProperties:
    """Test merged build properties."""

    def test_defaults_to_first_menu_option(self, avr_release):
        """Test the first option of every menu applies when none is selected."""
        props = avr_release.boards["nano"].get_build_properties()

        assert props["build.mcu"] == "atmega328p"
        assert "upload.speed" not in props
        assert props["compiler.c.cmd"] == "avr-gcc"

    def test_selected_option(self, avr_release):
        """Test a selected option overrides board and platform values."""
        props = avr_release.boards["nano"].get_build_properties({"cpu": "atmega328old"})

        assert props["upload.speed"] == "57600"

        props = avr_release.boards["nano"].get_build_properties([("cpu", "atmega168")])
        assert props["build.mcu"] == "atmega168"

    def test_menu_keys_not_copied(self, avr_release):
        """Test menu.* board properties don't leak into build properties."""
        props = avr_release.boards["nano"].get_build_properties()

        assert not any(key.startswith("menu.") for key in props)

    def test_runtime_properties(self, avr_release):
        """Test build.fqbn, build.arch, build.board and runtime paths."""
        props = avr_release.boards["nano"].get_build_properties()

        assert props["build.fqbn"] == "arduino:avr:nano"
        assert props["build.arch"] == "AVR"
        assert props["build.board"] == "AVR_NANO"
        assert props["runtime.platform.path"] == str(avr_release.install_dir)
        assert props["runtime.hardware.path"] == str(avr_release.install_dir.parent)

    def test_explicit_build_board_kept(self, avr_release):
        """Test a declared build.board is not overwritten."""
        nano = avr_release.boards["nano"]
        nano.properties["build.board"] = "AVR_NANO_EVERY"

        assert nano.get_build_properties()["build.board"] == "AVR_NANO_EVERY"

    def test_properties_are_a_copy(self, avr_release):
        """Test resolution never mutates the registry."""
        nano = avr_release.boards["nano"]
        props = nano.get_build_properties()
        props["compiler.c.cmd"] = "changed"

        assert avr_release.properties["compiler.c.cmd"] == "avr-gcc"

    @pytest.mark.parametrize(
        "options,message",
        [
            ({"speed": "fast"}, "invalid option 'speed'"),
            ({"cpu": ""}, "invalid empty value"),
            ({"cpu": "atmega2560"}, "invalid value 'atmega2560'"),
        ],
    )
    def test_invalid_options(self, avr_release, options, message):
        """Test undeclared menus and options are rejected."""
        with pytest.raises(InvalidBuildPropertiesError, match=message):
            avr_release.boards["nano"].get_build_properties(options)


class TestPlatform:
    """Test suite for Platform and its releases."""

    def test_mark_installed_is_exclusive(self):
        """Test at most one release is installed at a time."""
        platform = Packages().get_or_create_package("arduino").get_or_create_platform("avr")
        old = platform.mark_installed("1.8.5", Path("/hw/1.8.5"))
        new = platform.mark_installed("1.8.6", Path("/hw/1.8.6"))

        assert not old.is_installed()
        assert new.is_installed()
        assert platform.get_installed() is new

    def test_get_latest_release(self):
        """Test the latest release is picked by version, not insertion order."""
        platform = Packages().get_or_create_package("arduino").get_or_create_platform("avr")
        for version in ["1.8.10", "1.8.9", "1.6.23"]:
            platform.get_or_create_release(version)

        assert platform.get_latest_release().version == "1.8.10"
        assert platform.get_installed() is None


class TestTool:
    """Test suite for Tool and its releases."""

    def test_latest_installed(self):
        """Test get_latest_installed ignores releases that aren't installed."""
        tool = Packages().get_or_create_package("arduino").get_or_create_tool("avr-gcc")
        tool.get_or_create_release("5.4.0-atmel3.6.1-arduino2").mark_installed(Path("/t/5.4.0"))
        tool.get_or_create_release("7.3.0-atmel3.6.1-arduino7")

        assert tool.is_installed()
        assert tool.get_latest_installed().version == "5.4.0-atmel3.6.1-arduino2"

        tool.releases["7.3.0-atmel3.6.1-arduino7"].mark_installed(Path("/t/7.3.0"))
        assert tool.get_latest_installed().version == "7.3.0-atmel3.6.1-arduino7"

    def test_no_installed_release(self):
        """Test a tool known only from an index is not installed."""
        tool = Packages().get_or_create_package("arduino").get_or_create_tool("bossac")
        tool.get_or_create_release("1.7.0")

        assert not tool.is_installed()
        assert tool.get_latest_installed() is None

    def test_string_forms(self):
        """Test tool, release and dependency string forms."""
        tool = Packages().get_or_create_package("arduino").get_or_create_tool("avrdude")
        release = tool.get_or_create_release("6.3.0-arduino17")
        dep = ToolDependency("arduino", "avrdude", "6.3.0-arduino17")

        assert str(tool) == "arduino:avrdude"
        assert str(release) == "arduino:avrdude@6.3.0-arduino17"
        assert str(dep) == "arduino:avrdude@6.3.0-arduino17"


class TestPackages:
    """Test suite for the Packages container."""

    def test_get_or_create_is_idempotent(self):
        """Test repeated lookups return the same objects."""
        packages = Packages()
        package = packages.get_or_create_package("arduino")

        assert packages.get_or_create_package("arduino") is package
        assert package.get_or_create_platform("avr") is package.get_or_create_platform("avr")
        assert package.get_or_create_tool("avrdude") is package.get_or_create_tool("avrdude")
        assert list(packages) == [package]
        assert len(packages) == 1
        assert packages.get("missing") is None
