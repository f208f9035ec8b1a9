"""Sigil preprocessing.

Host sigils (``#fs.user.script(...)``, ``#db.f(...)``, ``#D``, ``#G`` ...)
look like private names to a parser. They are rewritten in two passes: a
lexical pass swaps every reserved private-name token for a MAYBE_PRIVATE
marker identifier so the source parses, then a structural pass decides
from the surrounding tree what each marker really was.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional

import structlog

from .ast_nodes import (
    Node, Program, Identifier, PrivateName, StringLiteral, MemberExpression,
    CallExpression, BinaryExpression, Property, MethodDefinition,
    PropertyDefinition, FunctionDeclaration, ImportDeclaration,
    ImportSpecifier, ImportDefaultSpecifier,
)
from .codegen import generate
from .errors import GrammarError, Warning
from .lexer import Lexer
from .markers import (
    DB_METHODS, HOST_NAME, RESERVED_PRIVATE_NAME, TIER_NAMESPACES, Marker,
    MarkerKind,
)
from .options import Seclevel, parse_seclevel
from .parser import parse
from .scope import analyze
from .tokens import TokenType
from .visitor import NodeTransformer

logger = structlog.get_logger(__name__)

RESERVED_IDENTIFIER_SEQUENCES = ("SC$", "DB$")

RECORD_TUPLE_POLYFILL = "@bloomberg/record-tuple-polyfill"
PROXY_POLYFILL = "proxy-polyfill/src/proxy.js"

_LEGACY_HEADER = re.compile(r"function\s*\(.+//(.+)")
_HEADER_COMMENT = re.compile(r"\s*//(.+)")
_LEADING_TRIVIA = re.compile(r"(?:\s+|//[^\n]*|/\*.*?\*/)*", re.S)
_BARE_FUNCTION = re.compile(r"function\s*\(")

_SIMPLE_MARKERS = {
    "D": MarkerKind.DEBUG,
    "FMCL": MarkerKind.FMCL,
    "G": MarkerKind.GLOBAL,
}

# Private names that would read as a host sigil wherever they are printed
_SIGIL_ONLY_NAMES = {"D", "FMCL", "G", "db"}


@dataclass
class PreprocessResult:
    """Output of preprocess().

    ``seclevel`` is the level stated in the source header, if any.
    """

    code: str
    program: Program
    autocomplete: Optional[str] = None
    seclevel: Optional[Seclevel] = None
    warnings: List[Warning] = field(default_factory=list)


def read_header(code: str):
    """Return (autocomplete, seclevel) from the leading comment lines."""
    legacy = _LEGACY_HEADER.match(code)
    if legacy:
        return legacy.group(1).strip(), None

    autocomplete = None
    seclevel = None
    for line in code.split("\n"):
        comment = _HEADER_COMMENT.match(line)
        if not comment:
            break
        content = comment.group(1).strip()
        if content.startswith("@autocomplete "):
            autocomplete = content[len("@autocomplete "):].lstrip()
        elif content.startswith("@seclevel "):
            seclevel = parse_seclevel(content[len("@seclevel "):])
    return autocomplete, seclevel


def mark_private_names(code: str, unique_id: str) -> str:
    """Replace reserved private-name tokens with MAYBE_PRIVATE markers."""
    replacements = []
    for token in Lexer(code).tokenize():
        if token.type == TokenType.IDENTIFIER:
            for sequence in RESERVED_IDENTIFIER_SEQUENCES:
                if sequence in token.value:
                    raise GrammarError(
                        f'identifier "{token.value}" contains the reserved sequence "{sequence}"',
                        "an identifier without SC$ or DB$",
                        token.line,
                    )
        elif token.type == TokenType.PRIVATE_NAME and RESERVED_PRIVATE_NAME.fullmatch(token.value):
            marker = Marker(MarkerKind.MAYBE_PRIVATE, (token.value,))
            replacements.append((token.start, token.end, marker.token(unique_id)))

    for start, end, text in reversed(replacements):
        code = code[:start] + text + code[end:]
    return code


def wrap_bare_function(code: str) -> str:
    """Turn a source that starts with ``function (`` into a default export."""
    start = _LEADING_TRIVIA.match(code).end()
    if _BARE_FUNCTION.match(code, start):
        return code[:start] + "export default " + code[start:]
    return code


class _SigilResolver(NodeTransformer):
    """Decides what each MAYBE_PRIVATE marker was from where it sits."""

    def __init__(self, unique_id: str, source_code: str):
        self.unique_id = unique_id
        self.source_code = source_code

    def _private_name(self, node: Node) -> Optional[str]:
        if isinstance(node, Identifier):
            marker = Marker.parse(node.name, self.unique_id)
            if marker is not None and marker.kind is MarkerKind.MAYBE_PRIVATE:
                return marker.args[0]
        return None

    def _identifier(self, marker: Marker, line: int) -> Identifier:
        return Identifier(marker.token(self.unique_id), line=line)

    def _member(self, name: str, line: int) -> PrivateName:
        if name in _SIGIL_ONLY_NAMES:
            raise GrammarError(f"#{name} cannot name a private class member", "a private name other than "
                               + ", ".join("#" + reserved for reserved in sorted(_SIGIL_ONLY_NAMES)), line)
        return PrivateName(name, line=line)

    def _subscript(self, call: CallExpression) -> Optional[Node]:
        """Resolve ``#<tier>.<user>.<script>(`` callees, or None."""
        callee = call.callee
        if not (isinstance(callee, MemberExpression) and isinstance(callee.object, MemberExpression)):
            return None
        tier = self._private_name(callee.object.object)
        if tier is None or tier not in TIER_NAMESPACES:
            return None
        expected = f"#{tier}.<user>.<script>(...)"
        inner = callee.object
        if inner.computed or callee.computed or inner.optional or callee.optional:
            raise GrammarError(f"invalid use of #{tier}", expected, call.line)
        user, script = inner.property.name, callee.property.name
        if not HOST_NAME.fullmatch(user) or not HOST_NAME.fullmatch(script):
            raise GrammarError(f'"{user}.{script}" is not a valid script name', expected, call.line)
        if user == "scripts" and script == "quine" and not call.arguments:
            return StringLiteral(self.source_code, line=call.line)
        call.callee = self._identifier(Marker(MarkerKind.SUBSCRIPT, (tier, user, script)), call.line)
        return call

    def _db_call(self, call: CallExpression) -> Optional[Node]:
        callee = call.callee
        if not isinstance(callee, MemberExpression) or self._private_name(callee.object) != "db":
            return None
        method = None if callee.computed else callee.property.name
        if method not in DB_METHODS or callee.optional:
            raise GrammarError("invalid use of #db", "#db.<i|r|f|u|u1|us|ObjectId>(...)", call.line)
        call.callee = self._identifier(Marker(MarkerKind.DB, (method,)), call.line)
        return call

    def visit_CallExpression(self, node: CallExpression) -> Node:
        resolved = self._subscript(node)
        if resolved is None:
            resolved = self._db_call(node)
        if isinstance(resolved, StringLiteral):
            return resolved
        return self.generic_visit(node)

    def visit_MemberExpression(self, node: MemberExpression) -> Node:
        name = None if node.computed else self._private_name(node.property)
        if name is not None:
            node.property = self._member(name, node.property.line)
        node.object = self.visit(node.object)
        inner = node.object
        if (not node.computed and not node.optional and isinstance(inner, MemberExpression)
                and isinstance(inner.property, PrivateName) and inner.property.name in TIER_NAMESPACES):
            raise GrammarError(f"#{inner.property.name} cannot be followed by a property access",
                               f"#{inner.property.name}?.<name> or a different private name", node.line)
        if node.computed:
            node.property = self.visit(node.property)
        return node

    def _class_member(self, node: Node) -> Node:
        name = None if node.computed else self._private_name(node.key)
        if name is not None:
            node.key = self._member(name, node.key.line)
        return self.generic_visit(node)

    visit_MethodDefinition = _class_member
    visit_PropertyDefinition = _class_member

    def visit_Property(self, node: Property) -> Node:
        name = None if node.computed else self._private_name(node.key)
        if name is not None:
            raise GrammarError(f"#{name} cannot be used as an object key", f"#{name} as a class member", node.line)
        return self.generic_visit(node)

    def visit_BinaryExpression(self, node: BinaryExpression) -> Node:
        name = self._private_name(node.left)
        if name is not None and node.operator == "in":
            node.left = self._member(name, node.left.line)
        return self.generic_visit(node)

    def visit_Identifier(self, node: Identifier) -> Node:
        name = self._private_name(node)
        if name is None:
            return node
        if name in _SIMPLE_MARKERS:
            return self._identifier(Marker(_SIMPLE_MARKERS[name]), node.line)
        if name == "db":
            raise GrammarError("invalid use of #db", "#db.<i|r|f|u|u1|us|ObjectId>(...)", node.line)
        raise GrammarError(f"invalid use of #{name}", f"#{name}.<user>.<script>(...)", node.line)


def add_polyfill_imports(program: Program) -> List[str]:
    """Import polyfills for referenced globals the host lacks."""
    unresolved = analyze(program).unresolved
    imports = []
    record_tuple = [name for name in ("Record", "Tuple") if name in unresolved]
    if record_tuple:
        imports.append(ImportDeclaration(
            [ImportSpecifier(Identifier(name), Identifier(name)) for name in record_tuple],
            StringLiteral(RECORD_TUPLE_POLYFILL),
        ))
    if "Proxy" in unresolved:
        imports.append(ImportDeclaration(
            [ImportDefaultSpecifier(Identifier("Proxy"))],
            StringLiteral(PROXY_POLYFILL),
        ))
    program.body[:0] = imports
    return [declaration.source.value for declaration in imports]


def preprocess(code: str, unique_id: str) -> PreprocessResult:
    """Turn script source with host sigils into a parsed program with markers."""
    source_code = code
    autocomplete, seclevel = read_header(code)

    code = mark_private_names(code, unique_id)
    code = wrap_bare_function(code)
    program, warnings = parse(code)

    program = _SigilResolver(unique_id, source_code).visit(program)
    polyfills = add_polyfill_imports(program)

    if len(program.body) == 1 and isinstance(program.body[0], FunctionDeclaration):
        raise GrammarError(
            "a script cannot be a lone function declaration",
            "export default function (context, args) { ... }",
            program.body[0].line,
        )

    logger.debug("preprocess.complete", autocomplete=autocomplete, seclevel=seclevel,
                 polyfills=polyfills, warnings=len(warnings))
    return PreprocessResult(generate(program), program, autocomplete, seclevel, warnings)
