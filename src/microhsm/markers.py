"""Marker tokens.

Host intrinsics such as ``#fs.scripts.trust(...)`` or ``#G`` are not
legal syntax for the parser, so between preprocessing and postprocessing
they travel through the pipeline as ordinary identifiers of the form
``$<build id>$<KIND>$<arg>$...$``. The build id makes them impossible to
spoof from user code and keeps concurrent builds apart.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional, Pattern, Tuple


class MarkerKind(Enum):
    """What a marker stands for."""

    MAYBE_PRIVATE = "MAYBE_PRIVATE"  # private-name token not yet resolved
    SUBSCRIPT = "SUBSCRIPT"  # tier, namespace, name
    DEBUG = "DEBUG"
    FMCL = "FMCL"
    GLOBAL = "GLOBAL"
    DB = "DB"  # method
    SPLIT_INDEX = "SPLIT_INDEX"
    SCRIPT_NAME = "SCRIPT_NAME"


ARITY = {
    MarkerKind.MAYBE_PRIVATE: 1,
    MarkerKind.SUBSCRIPT: 3,
    MarkerKind.DEBUG: 0,
    MarkerKind.FMCL: 0,
    MarkerKind.GLOBAL: 0,
    MarkerKind.DB: 1,
    MarkerKind.SPLIT_INDEX: 0,
    MarkerKind.SCRIPT_NAME: 0,
}

# Subscript namespace spellings and the tier each one demands.
# The generic "s" places no demand of its own.
TIER_NAMESPACES = {
    "s": None,
    "fs": 4, "4s": 4,
    "hs": 3, "3s": 3,
    "ms": 2, "2s": 2,
    "ls": 1, "1s": 1,
    "ns": 0, "0s": 0,
}
TIER_CHARS = "nlmhf"

DB_METHODS = frozenset({"i", "r", "f", "u", "u1", "us", "ObjectId"})

# Private-name tokens the preprocessor treats as host intrinsics
RESERVED_PRIVATE_NAME = re.compile(r"[0-4fhmln]?s|D|G|FMCL|db")

# A user or script name as the host accepts it
HOST_NAME = re.compile(r"[_a-z][_a-z0-9]{0,24}")

_ARG = re.compile(r"[A-Za-z0-9_]+")


def marker_prefix(unique_id: str) -> str:
    return f"${unique_id}$"


def marker_pattern(unique_id: str) -> Pattern:
    """Regex matching every marker of a build, capturing kind and args."""
    return re.compile(
        re.escape(marker_prefix(unique_id)) + r"([A-Z_]+)((?:\$[A-Za-z0-9_]+)*)\$"
    )


@dataclass(frozen=True)
class Marker:
    """A host intrinsic standing in as an identifier."""

    kind: MarkerKind
    args: Tuple[str, ...] = ()

    def __post_init__(self):
        if len(self.args) != ARITY[self.kind]:
            raise ValueError(f"{self.kind.name} marker takes {ARITY[self.kind]} argument(s), got {len(self.args)}")
        for arg in self.args:
            if not _ARG.fullmatch(arg):
                raise ValueError(f"invalid marker argument {arg!r}")

    def token(self, unique_id: str) -> str:
        """Identifier spelling of this marker."""
        return marker_prefix(unique_id) + "$".join((self.kind.value,) + self.args) + "$"

    @classmethod
    def parse(cls, text: str, unique_id: str) -> Optional["Marker"]:
        """Inverse of token(); None if text is not exactly one marker."""
        match = marker_pattern(unique_id).fullmatch(text)
        if match is None:
            return None
        return cls._from_match(match)

    @classmethod
    def _from_match(cls, match) -> Optional["Marker"]:
        try:
            kind = MarkerKind(match.group(1))
        except ValueError:
            return None
        args = tuple(match.group(2).split("$")[1:])
        if len(args) != ARITY[kind]:
            return None
        return cls(kind, args)


def find_markers(text: str, unique_id: str) -> Iterator[Tuple[int, int, Marker]]:
    """Yield (start, end, marker) for every well-formed marker in text."""
    for match in marker_pattern(unique_id).finditer(text):
        marker = Marker._from_match(match)
        if marker is not None:
            yield match.start(), match.end(), marker
