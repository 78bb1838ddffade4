"""
Fully Qualified Board Names.

An FQBN names a board and optionally its configuration menu selections:

    arduino:avr:uno
    arduino:avr:nano:cpu=atmega328old
    esp8266:esp8266:generic:xtal=160,baud=921600
"""

from dataclasses import dataclass, field
from typing import Dict, Tuple


class FQBNError(ValueError):
    """Raised when an FQBN string is malformed."""

    pass


@dataclass(frozen=True)
class FQBN:
    """Parsed, immutable FQBN.

    ``configs`` keeps the order in which options were given.
    """

    package: str
    platform_arch: str
    board_id: str
    configs: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    @classmethod
    def parse(cls, fqbn: str) -> "FQBN":
        """
        Parse an FQBN string.

        Args:
            fqbn: String in the form package:arch:board[:key=value[,key=value...]]

        Returns:
            FQBN instance

        Raises:
            FQBNError: If the string is malformed
        """
        parts = fqbn.strip().split(":")
        if len(parts) < 3 or len(parts) > 4:
            raise FQBNError(f"Invalid FQBN '{fqbn}': expected package:arch:board[:options]")

        package, arch, board_id = parts[0], parts[1], parts[2]
        for label, value in (("package", package), ("architecture", arch), ("board", board_id)):
            if not value:
                raise FQBNError(f"Invalid FQBN '{fqbn}': empty {label}")

        configs = []
        seen = set()
        if len(parts) == 4:
            if not parts[3]:
                raise FQBNError(f"Invalid FQBN '{fqbn}': empty config options")
            for pair in parts[3].split(","):
                if "=" not in pair:
                    raise FQBNError(f"Invalid FQBN '{fqbn}': config option '{pair}' has no value")
                key, value = pair.split("=", 1)
                if not key:
                    raise FQBNError(f"Invalid FQBN '{fqbn}': config option with empty key")
                if key in seen:
                    raise FQBNError(f"Invalid FQBN '{fqbn}': duplicate config option '{key}'")
                seen.add(key)
                configs.append((key, value))

        return cls(package=package, platform_arch=arch, board_id=board_id, configs=tuple(configs))

    @property
    def config_map(self) -> Dict[str, str]:
        return dict(self.configs)

    @property
    def base(self) -> str:
        """FQBN without configuration options."""
        return f"{self.package}:{self.platform_arch}:{self.board_id}"

    def __str__(self) -> str:
        if not self.configs:
            return self.base
        options = ",".join(f"{k}={v}" for k, v in self.configs)
        return f"{self.base}:{options}"
