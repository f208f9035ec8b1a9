"""Sigil postprocessing.

Works on the final text rather than the tree: marker identifiers are
expanded into the host sigils they stand for, and the synthetic name of
the entry function is removed so the script starts ``function(``.
"""

import re

import structlog

from .codegen import HOST_SEQUENCES
from .errors import InternalConsistencyError
from .markers import HOST_NAME, TIER_CHARS, Marker, MarkerKind, find_markers, marker_prefix

logger = structlog.get_logger(__name__)

# Left in the script when the script name is not known at build time
SCRIPT_NAME_PLACEHOLDER = "$SCRIPT_NAME$"

_ENTRY_SIGNATURE = re.compile(r"^((?:async\s+)?function)\s*\w+\s*\(")
_HOST_SIGIL = re.compile(r"(?<!\\)#(?:[0-4fhmln]?s\.|db\.|D\(|FMCL\b|G\b)")
_LINE_COMMENT = re.compile(r"//[^\n]*")


def expand_marker(marker: Marker, seclevel: int) -> str:
    """Host syntax for one marker."""
    if marker.kind is MarkerKind.SUBSCRIPT:
        _, user, script = marker.args
        return f"#{TIER_CHARS[seclevel]}s.{user}.{script}"
    if marker.kind is MarkerKind.DEBUG:
        return "#D"
    if marker.kind is MarkerKind.FMCL:
        return "#FMCL"
    if marker.kind is MarkerKind.GLOBAL:
        return "#G"
    if marker.kind is MarkerKind.DB:
        return f"#db.{marker.args[0]}"
    if marker.kind is MarkerKind.SCRIPT_NAME:
        return SCRIPT_NAME_PLACEHOLDER
    raise InternalConsistencyError(f"{marker.kind.name} marker reached postprocessing")


def strip_entry_name(code: str) -> str:
    return _ENTRY_SIGNATURE.sub(r"\1(", code, count=1)


def expand_markers(code: str, unique_id: str, seclevel: int) -> str:
    """Replace every marker in code, last first so earlier offsets stay valid."""
    for start, end, marker in reversed(list(find_markers(code, unique_id))):
        code = code[:start] + expand_marker(marker, seclevel) + code[end:]
    return code


def check_consistency(code: str, unique_id: str) -> None:
    """Fail if code carries sigils that marker expansion would not produce.

    ``code`` is the text before expansion.
    """
    bare = code
    for start, end, _ in reversed(list(find_markers(code, unique_id))):
        bare = bare[:start] + bare[end:]
    prefix = marker_prefix(unique_id)
    if prefix in bare:
        index = bare.index(prefix)
        raise InternalConsistencyError(f"malformed marker {bare[index:index + 40]!r}")
    for sequence, _ in HOST_SEQUENCES:
        if sequence in bare:
            raise InternalConsistencyError(f'output contains the reserved sequence "{sequence}"')
    sigil = _HOST_SIGIL.search(_LINE_COMMENT.sub("", bare))
    if sigil is not None:
        raise InternalConsistencyError(f'output contains the host sigil "{sigil.group()}" outside a marker')


def postprocess(code: str, unique_id: str, seclevel: int) -> str:
    """Turn compiled text with markers into the script the host runs."""
    code = strip_entry_name(code)
    check_consistency(code, unique_id)
    code = expand_markers(code, unique_id, seclevel)
    logger.debug("postprocess.complete", length=len(code))
    return code


def substitute_identity(script: str, script_name: str) -> str:
    """Fill in the script name of a build made before the name was known."""
    if not HOST_NAME.fullmatch(script_name):
        raise ValueError(f"{script_name!r} is not a valid script name")
    return script.replace(SCRIPT_NAME_PLACEHOLDER, script_name)
