"""Build options and security levels."""

import re
import secrets
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Optional

from .codegen import HOST_SEQUENCES
from .errors import SeclevelError
from .markers import HOST_NAME, marker_prefix

UNIQUE_ID_LENGTH = 11

# resolve_module(specifier, importer) -> module source, or None if unknown
ModuleResolver = Callable[[str, str], Optional[str]]


class Seclevel(IntEnum):
    """Security levels, lowest trust first."""

    NULLSEC = 0
    LOWSEC = 1
    MIDSEC = 2
    HIGHSEC = 3
    FULLSEC = 4


SECLEVEL_NAMES = {
    Seclevel.FULLSEC: ("fullsec", "full", "fs", "4s", "f", "4"),
    Seclevel.HIGHSEC: ("highsec", "high", "hs", "3s", "h", "3"),
    Seclevel.MIDSEC: ("midsec", "mid", "ms", "2s", "m", "2"),
    Seclevel.LOWSEC: ("lowsec", "low", "ls", "1s", "l", "1"),
    Seclevel.NULLSEC: ("nullsec", "null", "ns", "0s", "n", "0"),
}


def parse_seclevel(name: str) -> Seclevel:
    """Parse a seclevel name such as ``highsec``, ``hs`` or ``3``."""
    wanted = name.strip().lower()
    for level, names in SECLEVEL_NAMES.items():
        if wanted in names:
            return level
    raise SeclevelError(f'unrecognised seclevel "{name.strip()}"')


def generate_unique_id() -> str:
    """Random 52 bit build id in base 36, zero padded to 11 characters."""
    number = secrets.randbits(52)
    digits = ""
    while number:
        number, digit = divmod(number, 36)
        digits = "0123456789abcdefghijklmnopqrstuvwxyz"[digit] + digits
    return digits.rjust(UNIQUE_ID_LENGTH, "0")


@dataclass
class BuildOptions:
    """Options for one build of one script.

    ``script_user`` and ``script_name`` may be None when the destination is
    not known yet; the output then carries placeholders that a deployment
    step fills in. ``force_quine_cheats`` forces the constant pool on
    (True) or off (False) instead of picking the smaller output.
    """

    unique_id: Optional[str] = None
    script_user: Optional[str] = None
    script_name: Optional[str] = None
    minify: bool = True
    mangle_names: bool = False
    force_quine_cheats: Optional[bool] = None
    seclevel: Optional[int] = None
    resolve_module: Optional[ModuleResolver] = None
    file_path: str = "<script>"

    def __post_init__(self):
        if self.unique_id is None:
            self.unique_id = generate_unique_id()
        if not re.fullmatch(r"[A-Za-z0-9_]{%d}" % UNIQUE_ID_LENGTH, self.unique_id):
            raise ValueError(f"unique_id must be {UNIQUE_ID_LENGTH} characters of [A-Za-z0-9_], got {self.unique_id!r}")
        prefix = marker_prefix(self.unique_id)
        if any(sequence in prefix for sequence, _ in HOST_SEQUENCES):
            raise ValueError(f"unique_id {self.unique_id!r} would spell a reserved host sequence")
        for field_name in ("script_user", "script_name"):
            value = getattr(self, field_name)
            if value is not None and not HOST_NAME.fullmatch(value):
                raise ValueError(f"{field_name} {value!r} is not a valid host name")
        if self.seclevel is not None:
            if isinstance(self.seclevel, str):
                self.seclevel = parse_seclevel(self.seclevel)
            elif self.seclevel not in range(5):
                raise ValueError(f"seclevel must be between 0 and 4, got {self.seclevel!r}")
            self.seclevel = Seclevel(self.seclevel)
        if self.force_quine_cheats not in (None, True, False):
            raise ValueError("force_quine_cheats must be None, True or False")
