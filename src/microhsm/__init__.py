"""
microhsm - a compiler for hackmud scripts

Takes JavaScript or TypeScript written with the host's sigils
(``#fs.user.script``, ``#db``, ``#D``, ``#G``, ``#FMCL``) and emits a single
function the host accepts, as small as the host's billing allows.
"""

__version__ = "0.1.0"

from .errors import (
    CompileError,
    ConstReassignmentError,
    GrammarError,
    InternalConsistencyError,
    JSSyntaxError,
    SeclevelError,
    SemanticError,
    Warning,
)
from .options import BuildOptions, Seclevel, generate_unique_id, parse_seclevel
from .postprocess import substitute_identity
from .process import ProcessResult, process_script

__all__ = [
    "BuildOptions",
    "CompileError",
    "ConstReassignmentError",
    "GrammarError",
    "InternalConsistencyError",
    "JSSyntaxError",
    "ProcessResult",
    "Seclevel",
    "SeclevelError",
    "SemanticError",
    "Warning",
    "generate_unique_id",
    "parse_seclevel",
    "process_script",
    "substitute_identity",
]
