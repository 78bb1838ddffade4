"""
Dotted-key property maps.

Arduino-style platforms describe boards and build recipes in flat
``key=value`` text files (boards.txt, platform.txt, programmers.txt):

    uno.name=Arduino Uno
    uno.build.mcu=atmega328p
    recipe.c.o.pattern="{compiler.path}{compiler.c.cmd}" {compiler.c.flags} ...

PropertiesMap keeps insertion order, supports sub-tree extraction by key
prefix and expands ``{key}`` placeholders in recipe patterns.

Keys suffixed with the host OS (``.linux``, ``.windows``, ``.macosx``)
override their generic key when a file is loaded:

    tools.avrdude.cmd.path={path}/bin/avrdude
    tools.avrdude.cmd.path.windows={path}/bin/avrdude.exe
"""

import platform as host_platform
import re
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, MutableMapping, Optional


class PropertiesError(Exception):
    """Exception raised for property file errors."""

    pass


_PLACEHOLDER_RE = re.compile(r"\{([^{}\s]+)\}")

# Maximum number of expansion passes, guards against self-referencing keys
_MAX_EXPANSION_PASSES = 10


def runtime_os() -> str:
    """Return the host OS name used in property key suffixes and ``runtime.os``."""
    system = host_platform.system().lower()
    if system == "darwin":
        return "macosx"
    return system or "linux"


class PropertiesMap(MutableMapping[str, str]):
    """
    Ordered mapping of dotted property keys to string values.

    Usage:
        props = PropertiesMap.load(Path("boards.txt"))
        uno = props.sub_tree("uno")
        uno["build.mcu"]  # 'atmega328p'

        props = PropertiesMap({"compiler.path": "/usr/bin/", "cmd": "{compiler.path}gcc"})
        props.expand_props_in_string(props["cmd"])  # '/usr/bin/gcc'
    """

    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        self._data: Dict[str, str] = {}
        if initial:
            self.merge(initial)

    @classmethod
    def load(cls, path: Path) -> "PropertiesMap":
        """
        Load a properties file.

        Blank lines and lines starting with ``#`` are skipped. Lines without
        ``=`` are ignored. Keys and values are stripped. Keys for the host
        OS then override their generic key.

        Args:
            path: Path to the file

        Returns:
            PropertiesMap with the file's properties

        Raises:
            PropertiesError: If the file cannot be read
        """
        props = cls()
        try:
            with open(path, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith("#"):
                        continue
                    if "=" not in line:
                        continue
                    key, value = line.split("=", 1)
                    props[key.strip()] = value.strip()
            props._apply_os_overrides()
        except KeyboardInterrupt as ke:
            from sketchbuild.interrupt_utils import handle_keyboard_interrupt_properly

            handle_keyboard_interrupt_properly(ke)
        except OSError as e:
            raise PropertiesError(f"Failed to read {path}: {e}") from e
        return props

    def _apply_os_overrides(self) -> None:
        suffix = "." + runtime_os()
        for key in [k for k in self._data if k.endswith(suffix) and len(k) > len(suffix)]:
            self._data[key[: -len(suffix)]] = self._data[key]

    def __getitem__(self, key: str) -> str:
        return self._data[key]

    def __setitem__(self, key: str, value: str) -> None:
        self._data[key] = value

    def __delitem__(self, key: str) -> None:
        del self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"PropertiesMap({self._data!r})"

    def clone(self) -> "PropertiesMap":
        return PropertiesMap(self._data)

    def merge(self, *sources: Mapping[str, str]) -> "PropertiesMap":
        """Overlay the given maps onto this one, later sources win."""
        for source in sources:
            for key, value in source.items():
                self._data[key] = value
        return self

    def sub_tree(self, root: str) -> "PropertiesMap":
        """
        Extract the properties below ``root.``, with the prefix removed.

        Example:
            {"uno.name": "Uno", "uno.build.mcu": "m328"}.sub_tree("uno")
            -> {"name": "Uno", "build.mcu": "m328"}
        """
        prefix = root + "."
        return PropertiesMap(
            {k[len(prefix):]: v for k, v in self._data.items() if k.startswith(prefix)}
        )

    def first_level_keys(self) -> List[str]:
        """Return the distinct first key components, in order of appearance."""
        keys: List[str] = []
        for key in self._data:
            first = key.split(".", 1)[0]
            if first not in keys:
                keys.append(first)
        return keys

    def first_level_of(self) -> Dict[str, "PropertiesMap"]:
        """Group properties by their first key component."""
        return {first: self.sub_tree(first) for first in self.first_level_keys()}

    def get_path(self, key: str) -> Optional[Path]:
        """Return the value of ``key`` as a Path, or None if unset or empty."""
        value = self._data.get(key, "")
        if not value:
            return None
        return Path(value)

    def expand_props_in_string(self, text: str) -> str:
        """
        Replace ``{key}`` placeholders with property values.

        Expansion repeats until the string is stable, so values may refer to
        other properties. Placeholders naming unknown keys are left untouched.
        """
        for _ in range(_MAX_EXPANSION_PASSES):
            expanded = _PLACEHOLDER_RE.sub(self._replace_placeholder, text)
            if expanded == text:
                break
            text = expanded
        return text

    def _replace_placeholder(self, match: "re.Match[str]") -> str:
        key = match.group(1)
        if key in self._data:
            return self._data[key]
        return match.group(0)
