"""
Shared fixtures for build tests.

Provides a sketch, a minimal core/variant tree and build properties whose
recipes invoke fake compiler commands. The ``fake_toolchain`` fixture
replaces command execution so that every ``-o <file>`` output is created
and ``size`` prints avr-size style output.
"""

from pathlib import Path
from unittest.mock import patch

import pytest

from sketchbuild.build.recipe_runner import CommandResult
from sketchbuild.build.sketch import Sketch
from sketchbuild.config.properties import PropertiesMap

BLINK_INO = """// Blink
int led = 13;

void setup() {
  pinMode(led, OUTPUT);
}

void loop() {
  blinkOnce(500);
}
"""

HELPERS_INO = """void blinkOnce(int ms)
{
  digitalWrite(led, HIGH);
  delay(ms);
  digitalWrite(led, LOW);
}
"""

SIZE_OUTPUT = """Blink.ino.elf  :
section           size      addr
.data                0   8388864
.text              924         0
.bss                 9   8388864
.comment            17         0
.eeprom              0   8454144
Total              950
"""


@pytest.fixture
def sketch_dir(tmp_path):
    """Blink sketch with a second .ino file and a C++ helper."""
    path = tmp_path / "Blink"
    path.mkdir()
    (path / "Blink.ino").write_text(BLINK_INO)
    (path / "helpers.ino").write_text(HELPERS_INO)
    (path / "util.cpp").write_text('#include "util.h"\nint twice(int x) { return 2 * x; }\n')
    (path / "util.h").write_text("int twice(int x);\n")
    return path


@pytest.fixture
def sketch(sketch_dir):
    return Sketch.load(sketch_dir)


@pytest.fixture
def platform_dir(tmp_path):
    """Installed platform with an arduino core and a standard variant."""
    path = tmp_path / "hardware" / "avr" / "1.8.6"
    core = path / "cores" / "arduino"
    core.mkdir(parents=True)
    (core / "Arduino.h").write_text("#pragma once\n")
    (core / "main.cpp").write_text('#include "Arduino.h"\nint main() { return 0; }\n')
    (core / "wiring.c").write_text('#include "Arduino.h"\n')
    variant = path / "variants" / "standard"
    variant.mkdir(parents=True)
    (variant / "pins_arduino.h").write_text("#define NUM_DIGITAL_PINS 20\n")
    return path


@pytest.fixture
def build_path(tmp_path):
    return tmp_path / "build"


@pytest.fixture
def build_props(platform_dir, build_path, sketch):
    """Build properties as build_properties_for would produce them."""
    return PropertiesMap(
        {
            "build.mcu": "atmega328p",
            "build.path": str(build_path),
            "build.project_name": sketch.main_file.name,
            "build.core.path": str(platform_dir / "cores" / "arduino"),
            "build.variant.path": str(platform_dir / "variants" / "standard"),
            "runtime.platform.path": str(platform_dir),
            "recipe.c.o.pattern": 'gcc -c -mmcu={build.mcu} {includes} "{source_file}" -o "{object_file}"',
            "recipe.cpp.o.pattern": 'g++ -c -mmcu={build.mcu} -DARDUINO=10607 -DF_CPU=16000000L {includes} "{source_file}" -o "{object_file}"',
            "recipe.S.o.pattern": 'gcc -c -x assembler-with-cpp {includes} "{source_file}" -o "{object_file}"',
            "recipe.ar.pattern": 'ar rcs "{archive_file_path}" "{object_file}"',
            "recipe.c.combine.pattern": 'gcc -o "{build.path}/{build.project_name}.elf" {object_files} "{build.path}/{archive_file}"',
            "recipe.size.pattern": 'size -A "{build.path}/{build.project_name}.elf"',
            "recipe.size.regex": r"^(?:\.text|\.data|\.bootloader)\s+([0-9]+).*",
            "recipe.size.regex.data": r"^(?:\.data|\.bss|\.noinit)\s+([0-9]+).*",
            "recipe.size.regex.eeprom": r"^(?:\.eeprom)\s+([0-9]+).*",
            "upload.maximum_size": "32256",
            "upload.maximum_data_size": "2048",
        }
    )


def _fake_run(command, cwd=None, timeout=None):
    if "-o" in command:
        output = Path(command[command.index("-o") + 1])
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text("")
    if command[0] == "ar":
        Path(command[2]).write_text("")
    stdout = SIZE_OUTPUT if command[0] == "size" else ""
    return CommandResult(command=list(command), returncode=0, stdout=stdout, stderr="")


@pytest.fixture
def fake_toolchain():
    """Patch command execution in the builder; yields the mock."""
    with patch("sketchbuild.build.builder.run_command", side_effect=_fake_run) as mock_run:
        yield mock_run
