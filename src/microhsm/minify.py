"""Size-minimizing rewrite.

Produces two compact renditions of a lowered program and keeps whichever
the host bills less for:

* the inline candidate, the program squeezed as hard as the generic passes
  allow;
* the pool candidate, where literals are moved into a JSON constant pool.
  The pool is written into a line comment at the top of the entry function,
  which the host does not bill, and read back at run time by splitting the
  script's own source (the quine subscript) on tab characters.
"""

import json
import math
from typing import Dict, List, Optional, Tuple

import structlog

from .ast_nodes import (
    Node, Program, Identifier, NumericLiteral, StringLiteral, BooleanLiteral,
    NullLiteral, TemplateLiteral, TemplateElement, TaggedTemplateExpression,
    ArrayExpression, ObjectExpression, Property, UnaryExpression,
    BinaryExpression, MemberExpression, CallExpression, ArrayPattern,
    VariableDeclaration, VariableDeclarator, FunctionDeclaration,
    FunctionExpression, ArrowFunctionExpression, UpdateExpression,
    WhileStatement, DoWhileStatement, ForStatement, ForInStatement,
    ForOfStatement,
)
from .billing import billable_length
from .codegen import HOST_SEQUENCES, format_number, format_string, generate
from .lexer import Lexer
from .markers import Marker, MarkerKind
from .postprocess import expand_markers
from .scope import analyze
from .squeeze import replace_undefined, squeeze
from .tokens import TokenType
from .visitor import NodeTransformer, clone, iter_fields, parent_map, replace_child, walk

logger = structlog.get_logger(__name__)

_LOOPS = (WhileStatement, DoWhileStatement, ForStatement, ForInStatement, ForOfStatement)
_FUNCTIONS = (FunctionDeclaration, FunctionExpression, ArrowFunctionExpression)
_NO_JSON = object()

# Characters that must not appear raw in the pool comment
_COMMENT_HAZARDS = ("\t", "\n", "\r", "\u2028", "\u2029", "#")


def function_body_start(code: str) -> int:
    """Offset of the ``{`` opening the body of the first function in code."""
    depth = 0
    seen_params = False
    for token in Lexer(code).tokenize():
        if token.type == TokenType.LPAREN:
            depth += 1
            seen_params = True
        elif token.type == TokenType.RPAREN:
            depth -= 1
        elif token.type == TokenType.LBRACE and seen_params and depth == 0:
            return token.start
        elif token.type == TokenType.EOF:
            break
    raise ValueError("code does not start with a function")


def insert_after_body_start(code: str, text: str) -> str:
    index = function_body_start(code) + 1
    return code[:index] + text + code[index:]


def alias_globals(program: Program, unique_id: str) -> List[str]:
    """Bind globals read often enough to a local when that bills less.

    A global named ``name`` read ``n`` times costs ``len(name) * n``; a local
    alias costs the declaration plus ``n`` one character reads once mangled.
    """
    entry = program.body[0]
    analysis = analyze(program)
    parents = parent_map(program)
    # a let in the body is not visible to parameter defaults
    in_params = {id(node) for param in entry.params for node in walk(param)}
    aliased = []
    for name, references in sorted(analysis.unresolved.items()):
        if name in ("arguments", "undefined") or "$" in name or name.endswith(f"_{unique_id}_"):
            continue
        if any(id(ident) in in_params or isinstance(parents.get(id(ident)), UpdateExpression)
               or getattr(parents.get(id(ident)), "operator", None) == "typeof"
               or getattr(parents.get(id(ident)), "left", None) is ident for ident in references):
            continue
        if 5 + len(name) + len(references) >= len(name) * len(references):
            continue
        alias = f"_GLOBAL_{name}_{unique_id}_"
        for ident in references:
            replace_child(parents[id(ident)], ident, Identifier(alias, line=ident.line))
        entry.body.body.insert(0, VariableDeclaration(
            [VariableDeclarator(Identifier(alias), Identifier(name))], "let"
        ))
        aliased.append(name)
    return aliased


# ---- inline candidate ----


_PROTECTED_PROPERTIES = {"prototype": "PROTOTYPE", "__proto__": "PROTO"}


def _protect_properties(program: Program, unique_id: str) -> Dict[str, str]:
    """Swap prototype/__proto__ accesses for placeholders the passes leave alone."""
    placeholders = {}
    for node in list(_walk_members(program)):
        name = None
        if not node.computed and isinstance(node.property, Identifier):
            name = node.property.name
        elif node.computed and isinstance(node.property, StringLiteral):
            name = node.property.value
        if name in _PROTECTED_PROPERTIES:
            placeholder = f"_{_PROTECTED_PROPERTIES[name]}_PROPERTY_{unique_id}_"
            node.property = Identifier(placeholder, line=node.property.line)
            node.computed = True
            placeholders[placeholder] = format_string(name)
    return placeholders


def _walk_members(program: Program):
    for node in walk(program):
        if isinstance(node, MemberExpression):
            yield node


def inline_candidate(program: Program, unique_id: str, mangle_names: bool) -> str:
    program = clone(program)
    placeholders = _protect_properties(program, unique_id)
    squeeze(program, keep_names=not mangle_names, unsafe=True, mangle=True)
    code = generate(program, compact=True)
    for placeholder, text in placeholders.items():
        code = code.replace(placeholder, text)
    return code


# ---- pool candidate ----


def json_value(node: Node):
    """The JSON value a literal expression denotes, or _NO_JSON."""
    if isinstance(node, StringLiteral):
        return node.value
    if isinstance(node, BooleanLiteral):
        return node.value
    if isinstance(node, NullLiteral):
        return None
    if isinstance(node, NumericLiteral):
        return node.value if math.isfinite(node.value) else _NO_JSON
    if (isinstance(node, UnaryExpression) and node.operator == "-"
            and isinstance(node.argument, NumericLiteral) and math.isfinite(node.argument.value)):
        return -node.argument.value
    if isinstance(node, TemplateLiteral) and not node.expressions and node.quasis[0].cooked is not None:
        return node.quasis[0].cooked
    if isinstance(node, ArrayExpression):
        if not node.elements:
            return _NO_JSON
        values = []
        for element in node.elements:
            value = _NO_JSON if element is None else json_value(element)
            if value is _NO_JSON:
                return _NO_JSON
            values.append(value)
        return values
    if isinstance(node, ObjectExpression):
        if not node.properties:
            return _NO_JSON
        result = {}
        for prop in node.properties:
            if not isinstance(prop, Property) or prop.computed or prop.kind != "init" or prop.method or prop.shorthand:
                return _NO_JSON
            if isinstance(prop.key, Identifier):
                key = prop.key.name
            elif isinstance(prop.key, StringLiteral):
                key = prop.key.value
            elif isinstance(prop.key, NumericLiteral) and isinstance(prop.key.value, int):
                key = str(prop.key.value)
            else:
                return _NO_JSON
            if key == "__proto__":
                return _NO_JSON
            value = json_value(prop.value)
            if value is _NO_JSON:
                return _NO_JSON
            result[key] = value
        return result
    return _NO_JSON


def pool_json(value) -> str:
    """JSON text of value that is safe inside a line comment of a script."""
    text = json.dumps(value, ensure_ascii=True, separators=(",", ":"))
    text = text.replace("#", "\\u0023")
    for sequence, _ in HOST_SEQUENCES:
        text = text.replace(sequence, sequence[:-1] + "\\u%04x" % ord(sequence[-1]))
    return text


class ConstantPool:
    """Literal values moved out of the code, in slot order."""

    def __init__(self, unique_id: str):
        self.unique_id = unique_id
        self.values: list = []
        self._slots: Dict[Tuple[type, object], int] = {}

    def __len__(self) -> int:
        return len(self.values)

    def name(self, index: int) -> str:
        return f"_JSON_VALUE_{index}_{self.unique_id}_"

    def add(self, value) -> Identifier:
        """Slot for value; primitives share slots, objects and arrays never do."""
        if isinstance(value, (dict, list)):
            self.values.append(value)
            return Identifier(self.name(len(self.values) - 1))
        key = (type(value), value)
        if key not in self._slots:
            self._slots[key] = len(self.values)
            self.values.append(value)
        return Identifier(self.name(self._slots[key]))


def _desugar_template(node: TemplateLiteral) -> Node:
    result: Node = StringLiteral(node.quasis[0].cooked, line=node.line)
    for expression, quasi in zip(node.expressions, node.quasis[1:]):
        result = BinaryExpression("+", result, expression, line=node.line)
        if quasi.cooked:
            result = BinaryExpression("+", result, StringLiteral(quasi.cooked, line=node.line), line=node.line)
    return result


def _property_key(node: Property) -> Optional[str]:
    if isinstance(node.key, Identifier):
        return node.key.name
    if isinstance(node.key, StringLiteral):
        return node.key.value
    return None


class _LiteralCollector:
    """Moves object and array literals into the pool.

    Literals evaluated more than once per run (inside loops or functions that
    are not called in place) keep their own identity and are left alone.
    """

    def __init__(self, pool: ConstantPool):
        self.pool = pool

    def visit(self, node: Node) -> None:
        for _, value in iter_fields(node):
            children = value if isinstance(value, list) else [value]
            for child in children:
                if not isinstance(child, Node):
                    continue
                if isinstance(child, _LOOPS):
                    continue
                if isinstance(child, _FUNCTIONS) and not (isinstance(node, CallExpression) and node.callee is child):
                    continue
                if isinstance(child, (ObjectExpression, ArrayExpression)):
                    pooled = json_value(child)
                    if pooled is not _NO_JSON:
                        replace_child(node, child, self.pool.add(pooled))
                        continue
                self.visit(child)


class _PrimitiveCollector(NodeTransformer):
    """Moves strings, long numbers, booleans, null and long property names into the pool."""

    def __init__(self, pool: ConstantPool, unique_id: str):
        self.pool = pool
        self.undefined_name = f"_UNDEFINED_{unique_id}_"
        self.uses_undefined = False

    def _pooled_key(self, owner: Node, key: Node) -> Node:
        """Pool a literal property key, making the owner computed."""
        result = self.visit(key)
        if result is not key:
            owner.computed = True
        return result

    def visit_TaggedTemplateExpression(self, node: TaggedTemplateExpression) -> Node:
        node.tag = self.visit(node.tag)
        for index, expression in enumerate(node.quasi.expressions):
            node.quasi.expressions[index] = self.visit(expression)
        return node

    def visit_TemplateLiteral(self, node: TemplateLiteral) -> Node:
        if any(quasi.cooked is None for quasi in node.quasis):
            return self.generic_visit(node)
        return self.visit(_desugar_template(node))

    def visit_MemberExpression(self, node: MemberExpression) -> Node:
        node.object = self.visit(node.object)
        prop = node.property
        if not node.computed and isinstance(prop, Identifier) and len(prop.name) >= 3:
            node.property = StringLiteral(prop.name, line=prop.line)
            node.computed = True
        if node.computed:
            node.property = self.visit(node.property)
        return node

    def visit_Property(self, node: Property) -> Node:
        # a literal __proto__ key sets the prototype, a computed one does not
        if not node.computed and _property_key(node) == "__proto__":
            node.value = self.visit(node.value)
            return node
        if not node.computed and not node.method and node.kind == "init" and (
            (isinstance(node.key, Identifier) and len(node.key.name) >= 4) or isinstance(node.key, StringLiteral)
        ):
            key = node.key.name if isinstance(node.key, Identifier) else node.key.value
            if len(format_string(key)) >= 4 and "\0" not in key:
                node.key = self.pool.add(key)
                node.computed = True
        elif not node.computed and isinstance(node.key, (StringLiteral, NumericLiteral)):
            node.key = self._pooled_key(node, node.key)
        elif node.computed:
            node.key = self.visit(node.key)
        if node.shorthand:
            node.shorthand = False
        node.value = self.visit(node.value)
        return node

    def _class_member(self, node: Node) -> Node:
        if not node.computed and isinstance(node.key, (StringLiteral, NumericLiteral)):
            node.key = self._pooled_key(node, node.key)
        elif node.computed:
            node.key = self.visit(node.key)
        if node.value is not None:
            node.value = self.visit(node.value)
        return node

    visit_MethodDefinition = _class_member
    visit_PropertyDefinition = _class_member

    def visit_UnaryExpression(self, node: UnaryExpression) -> Node:
        argument = node.argument
        if node.operator == "void" and isinstance(argument, NumericLiteral) and argument.value == 0:
            self.uses_undefined = True
            return Identifier(self.undefined_name, line=node.line)
        if node.operator == "-" and isinstance(argument, NumericLiteral):
            if math.isfinite(argument.value) and len("-" + format_number(argument.value)) > 3:
                return self.pool.add(-argument.value)
            return node
        return self.generic_visit(node)

    def visit_NullLiteral(self, node: NullLiteral) -> Node:
        return self.pool.add(None)

    def visit_BooleanLiteral(self, node: BooleanLiteral) -> Node:
        return self.pool.add(node.value)

    def visit_NumericLiteral(self, node: NumericLiteral) -> Node:
        if not math.isfinite(node.value) or len(format_number(node.value)) <= 3:
            return node
        return self.pool.add(node.value)

    def visit_StringLiteral(self, node: StringLiteral) -> Node:
        if "\0" in node.value or len(format_string(node.value)) < 4:
            return node
        return self.pool.add(node.value)


def _quine_split(unique_id: str) -> Node:
    """``<quine>().split`\\t`[<split index>]``"""
    quine = Identifier(Marker(MarkerKind.SUBSCRIPT, ("fs", "scripts", "quine")).token(unique_id))
    split = TaggedTemplateExpression(
        MemberExpression(CallExpression(quine, []), Identifier("split"), False),
        TemplateLiteral([TemplateElement("\t", "\\t")], []),
    )
    return MemberExpression(split, Identifier(Marker(MarkerKind.SPLIT_INDEX).token(unique_id)), True)


def _raw_comment_safe(value) -> bool:
    return (isinstance(value, str) and not any(hazard in value for hazard in _COMMENT_HAZARDS)
            and not any(sequence in value for sequence, _ in HOST_SEQUENCES))


def pool_declaration(pool: ConstantPool, unique_id: str, uses_undefined: bool):
    """The declaration that rebuilds the pool, and the comment text it reads."""
    declarators = []
    comment = None
    if len(pool) == 1 and _raw_comment_safe(pool.values[0]):
        comment = pool.values[0]
        declarators.append(VariableDeclarator(Identifier(pool.name(0)), _quine_split(unique_id)))
    elif len(pool):
        parse = CallExpression(MemberExpression(Identifier("JSON"), Identifier("parse"), False),
                               [_quine_split(unique_id)])
        if len(pool) == 1:
            comment = pool_json(pool.values[0])
            target: Node = Identifier(pool.name(0))
        else:
            comment = pool_json(pool.values)
            target = ArrayPattern([Identifier(pool.name(index)) for index in range(len(pool))])
        declarators.append(VariableDeclarator(target, parse))
    if uses_undefined:
        declarators.append(VariableDeclarator(Identifier(f"_UNDEFINED_{unique_id}_"), None))
    if not declarators:
        return None, None
    return VariableDeclaration(declarators, "let"), comment


def pool_candidate(program: Program, unique_id: str, mangle_names: bool, autocomplete: Optional[str]):
    """Returns (code, pool size)."""
    program = clone(program)
    entry = program.body[0]
    replace_undefined(program)
    pool = ConstantPool(unique_id)
    _LiteralCollector(pool).visit(entry.body)
    collector = _PrimitiveCollector(pool, unique_id)
    collector.visit(entry.body)

    declaration, comment = pool_declaration(pool, unique_id, collector.uses_undefined)
    if declaration is not None:
        entry.body.body.insert(0, declaration)
    squeeze(program, keep_names=not mangle_names, unsafe=True, mangle=True)
    code = generate(program, compact=True)

    if comment is not None:
        header = f"//{autocomplete}\n" if autocomplete else ""
        code = insert_after_body_start(code, f"{header}\n//\t{comment}\t\n")
        index = code.split("\t").index(comment)
        code = code.replace(Marker(MarkerKind.SPLIT_INDEX).token(unique_id), format_number(index), 1)
    elif autocomplete:
        code = insert_after_body_start(code, f"//{autocomplete}\n")
    return code, len(pool)


def minify(program: Program, unique_id: str, seclevel: int, mangle_names: bool = False,
           force_quine_cheats: Optional[bool] = None, autocomplete: Optional[str] = None) -> str:
    """Compact text of a lowered program, still carrying markers.

    force_quine_cheats picks the pool candidate (True) or the inline
    candidate (False) instead of comparing billed lengths.
    """
    squeeze(program)
    aliased = alias_globals(program, unique_id)

    inline = inline_candidate(program, unique_id, mangle_names)
    pooled, pool_size = pool_candidate(program, unique_id, mangle_names, autocomplete)

    inline_length = billable_length(expand_markers(inline, unique_id, seclevel))
    pooled_length = billable_length(expand_markers(pooled, unique_id, seclevel))
    # reading the quine costs the pool one character of margin
    penalty = 1 if pool_size else 0

    if force_quine_cheats is None:
        use_pool = pooled_length + penalty < inline_length
    else:
        use_pool = force_quine_cheats
    logger.debug("minify.candidate_selected", candidate="pool" if use_pool else "inline",
                 inline_length=inline_length, pool_length=pooled_length, pool_size=pool_size,
                 aliased=aliased, forced=force_quine_cheats is not None)

    if use_pool:
        return pooled
    if autocomplete:
        inline = insert_after_body_start(inline, f"//{autocomplete}\n")
    return inline
