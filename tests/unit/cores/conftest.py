"""
Shared fixtures for package registry tests.

Builds an on-disk data directory with installed platforms and tools:

    packages/arduino/hardware/avr/1.8.6      uno, nano (cpu menu)
    packages/arduino/tools/avr-gcc/{5.4.0-atmel3.6.1-arduino2,7.3.0-atmel3.6.1-arduino7}
    packages/arduino/tools/avrdude/6.3.0-arduino17
    packages/acme/hardware/avr/1.0.0         acmeboard (arduino core), megacore (megaavr core)
"""

from pathlib import Path

import pytest

from sketchbuild.config.directories import DataDirectory
from sketchbuild.cores.package_manager import PackageManager

AVR_PLATFORM_TXT = """
name=Arduino AVR Boards
version=1.8.6
compiler.path={runtime.tools.avr-gcc.path}/bin/
compiler.c.cmd=avr-gcc
compiler.optimization_flags.release=-Os
compiler.optimization_flags.debug=-Og -g
"""

AVR_BOARDS_TXT = """
menu.cpu=Processor

uno.name=Arduino Uno
uno.vid.0=0x2341
uno.pid.0=0x0043
uno.vid.1=0x2A03
uno.pid.1=0x0043
uno.build.mcu=atmega328p
uno.build.core=arduino
uno.build.variant=standard
uno.upload.maximum_size=32256

nano.name=Arduino Nano
nano.build.core=arduino
nano.build.variant=eightanaloginputs
nano.menu.cpu.atmega328=ATmega328P
nano.menu.cpu.atmega328.build.mcu=atmega328p
nano.menu.cpu.atmega328.upload.speed=115200
nano.menu.cpu.atmega328old=ATmega328P (Old Bootloader)
nano.menu.cpu.atmega328old.build.mcu=atmega328p
nano.menu.cpu.atmega328old.upload.speed=57600
nano.menu.cpu.atmega168=ATmega168
nano.menu.cpu.atmega168.build.mcu=atmega168
"""

ACME_BOARDS_TXT = """
acmeboard.name=Acme Board
acmeboard.build.core=arduino:arduino
acmeboard.build.variant=arduino:standard

megacore.name=Acme Mega Core
megacore.build.core=megaavr:core
megacore.build.variant=standard
"""


def write_platform(packages_dir: Path, packager: str, arch: str, version: str, boards: str, platform: str = "") -> Path:
    """Write an installed platform release and return its directory."""
    release_dir = packages_dir / packager / "hardware" / arch / version
    release_dir.mkdir(parents=True)
    (release_dir / "boards.txt").write_text(boards)
    if platform:
        (release_dir / "platform.txt").write_text(platform)
    return release_dir


def write_tool(packages_dir: Path, packager: str, name: str, version: str) -> Path:
    """Write an installed tool release and return its directory."""
    tool_dir = packages_dir / packager / "tools" / name / version
    (tool_dir / "bin").mkdir(parents=True)
    return tool_dir


@pytest.fixture
def data_dir(tmp_path):
    """Data directory populated with the installed hardware described above."""
    data = DataDirectory(tmp_path / "data")
    packages_dir = data.packages_dir
    write_platform(packages_dir, "arduino", "avr", "1.8.6", AVR_BOARDS_TXT, AVR_PLATFORM_TXT)
    write_tool(packages_dir, "arduino", "avr-gcc", "5.4.0-atmel3.6.1-arduino2")
    write_tool(packages_dir, "arduino", "avr-gcc", "7.3.0-atmel3.6.1-arduino7")
    write_tool(packages_dir, "arduino", "avrdude", "6.3.0-arduino17")
    write_platform(packages_dir, "acme", "avr", "1.0.0", ACME_BOARDS_TXT)
    return data


@pytest.fixture
def package_manager(data_dir):
    """PackageManager with the installed hardware loaded."""
    pm = PackageManager(data_dir)
    pm.load_hardware()
    return pm


@pytest.fixture
def platform_writer():
    """Helper writing extra platform releases into a packages dir."""
    return write_platform


@pytest.fixture
def tool_writer():
    """Helper writing extra tool releases into a packages dir."""
    return write_tool
