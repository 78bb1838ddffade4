"""Firmware size reporting.

The platform declares how to measure the linked program:

    recipe.size.pattern="{compiler.path}{compiler.size.cmd}" -A "{build.path}/{build.project_name}.elf"
    recipe.size.regex=^(?:\\.text|\\.data|\\.bootloader)\\s+([0-9]+).*
    recipe.size.regex.data=^(?:\\.data|\\.bss|\\.noinit)\\s+([0-9]+).*
    recipe.size.regex.eeprom=^(?:\\.eeprom)\\s+([0-9]+).*

Each regex is applied line by line to the tool output and the first group
of every match is summed. The totals are checked against
``upload.maximum_size`` and ``upload.maximum_data_size``.
"""

import re
from dataclasses import dataclass
from typing import Optional

from ..config.properties import PropertiesMap


class SizeError(Exception):
    """Raised when the program does not fit the board or can't be measured."""

    pass


@dataclass
class SizeInfo:
    """Firmware size information."""

    text: int  # Program storage (flash) in bytes
    data: int  # Dynamic memory (RAM) in bytes
    eeprom: int
    max_text: Optional[int] = None
    max_data: Optional[int] = None

    @property
    def text_percent(self) -> Optional[float]:
        if self.max_text:
            return (self.text / self.max_text) * 100
        return None

    @property
    def data_percent(self) -> Optional[float]:
        if self.max_data:
            return (self.data / self.max_data) * 100
        return None


def _sum_matches(pattern: Optional[str], output: str) -> int:
    if not pattern:
        return 0
    try:
        regex = re.compile(pattern, re.MULTILINE)
    except re.error as e:
        raise SizeError(f"Invalid size regexp '{pattern}': {e}") from e
    total = 0
    for match in regex.finditer(output):
        value = match.group(1) if regex.groups else match.group(0)
        try:
            total += int(value)
        except (TypeError, ValueError):
            continue
    return total


def _int_property(properties: PropertiesMap, key: str) -> Optional[int]:
    value = properties.get(key, "").strip()
    if not value:
        return None
    try:
        return int(value, 0)
    except ValueError as e:
        raise SizeError(f"Invalid {key}: {value}") from e


def parse_size_output(output: str, properties: PropertiesMap) -> SizeInfo:
    """
    Apply the platform's size regexps to the size tool output.

    Raises:
        SizeError: If a regexp or a maximum size property is invalid
    """
    return SizeInfo(
        text=_sum_matches(properties.get("recipe.size.regex"), output),
        data=_sum_matches(properties.get("recipe.size.regex.data"), output),
        eeprom=_sum_matches(properties.get("recipe.size.regex.eeprom"), output),
        max_text=_int_property(properties, "upload.maximum_size"),
        max_data=_int_property(properties, "upload.maximum_data_size"),
    )


def format_size_report(size_info: SizeInfo) -> str:
    lines = []
    if size_info.max_text:
        lines.append(
            f"Sketch uses {size_info.text} bytes ({size_info.text_percent:.0f}%) of program storage space. "
            f"Maximum is {size_info.max_text} bytes."
        )
    else:
        lines.append(f"Sketch uses {size_info.text} bytes of program storage space.")

    if size_info.max_data:
        remaining = size_info.max_data - size_info.data
        lines.append(
            f"Global variables use {size_info.data} bytes ({size_info.data_percent:.0f}%) of dynamic memory, "
            f"leaving {remaining} bytes for local variables. Maximum is {size_info.max_data} bytes."
        )
    elif size_info.data:
        lines.append(f"Global variables use {size_info.data} bytes of dynamic memory.")
    return "\n".join(lines)


TOO_BIG_TIP = (
    "Sketch too big; see https://support.arduino.cc/hc/en-us/articles/360013825179 "
    "for tips on reducing it."
)
NOT_ENOUGH_MEMORY_TIP = (
    "Not enough memory; see https://support.arduino.cc/hc/en-us/articles/360013825179 "
    "for tips on reducing your footprint."
)
LOW_MEMORY_WARNING = "Low memory available, stability problems may occur."


def check_size(size_info: SizeInfo) -> None:
    """
    Check the sizes against the board limits.

    Raises:
        SizeError: If the program or its data exceed the maximum
    """
    if size_info.max_text is not None and size_info.text > size_info.max_text:
        raise SizeError("text section exceeds available space in board")
    if size_info.max_data and size_info.data > size_info.max_data:
        raise SizeError("data section exceeds available space in board")


def is_low_on_memory(size_info: SizeInfo, warn_data_percentage: Optional[int]) -> bool:
    if not warn_data_percentage or not size_info.max_data:
        return False
    return size_info.data > size_info.max_data * warn_data_percentage / 100
