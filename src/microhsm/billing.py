"""Character billing.

The host charges a script for every character except line comments and
whitespace, so every size decision in the pipeline is made with
``billable_length`` rather than ``len``.
"""

import re
from dataclasses import dataclass

# Every character the host does not bill for
WHITESPACE = (
    " \t\n\r\v\f\u00a0\u1680"
    "\u2000\u2001\u2002\u2003\u2004\u2005\u2006\u2007\u2008\u2009\u200a"
    "\u2028\u2029\u202f\u205f\u3000\ufeff"
)

_LINE_COMMENT = re.compile(r"//[^\n]*")
_WHITESPACE = re.compile("[" + re.escape(WHITESPACE) + "]")


def strip_unbilled(text: str) -> str:
    """Remove line comments, then whitespace."""
    return _WHITESPACE.sub("", _LINE_COMMENT.sub("", text))


def billable_length(text: str) -> int:
    """Number of characters the host charges for text."""
    return len(strip_unbilled(text))


@dataclass
class CompressionStats:
    """Billed size of a script before and after compilation."""

    source_length: int
    output_length: int

    @property
    def ratio(self) -> float:
        if not self.source_length:
            return 1.0
        return self.output_length / self.source_length

    @property
    def saved(self) -> int:
        return self.source_length - self.output_length


def compression_stats(source: str, script: str) -> CompressionStats:
    return CompressionStats(billable_length(source), billable_length(script))
