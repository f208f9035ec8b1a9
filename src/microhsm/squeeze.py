"""Generic size reductions.

The passes here know nothing about the host: they remove code that can
never run, fold constant branches, drop unused side-effect free locals,
shorten property access and, on request, give local bindings the shortest
names available. The size-minimizing rewrite in ``minify`` builds on them.
"""

import itertools
import string
from typing import Iterator, List, Optional, Set

import structlog

from .ast_nodes import (
    Node, Program, Identifier, NumericLiteral, StringLiteral, BooleanLiteral,
    NullLiteral, UnaryExpression, UpdateExpression, ConditionalExpression,
    MemberExpression, BlockStatement, EmptyStatement, VariableDeclaration,
    IfStatement, ReturnStatement, ThrowStatement, BreakStatement,
    ContinueStatement, FunctionDeclaration, SwitchCase,
)
from .codegen import COMPUTED_ONLY_PROPERTIES, is_identifier_name
from .scope import Scope, analyze, is_pure
from .tokens import RESERVED_WORDS
from .visitor import NodeTransformer, parent_map, replace_child

logger = structlog.get_logger(__name__)

_TERMINATORS = (ReturnStatement, ThrowStatement, BreakStatement, ContinueStatement)

# Globals a renamed binding must never shadow even when nothing reads them yet
_UNSHADOWABLE = frozenset({"arguments", "eval", "undefined", "NaN", "Infinity", "let", "of", "async"})

_FIRST_CHARS = string.ascii_letters + "_"
_CHARS = _FIRST_CHARS + string.digits


def short_names() -> Iterator[str]:
    """Yield identifier names, shortest first."""
    for length in itertools.count(1):
        for first in _FIRST_CHARS:
            for rest in itertools.product(_CHARS, repeat=length - 1):
                name = first + "".join(rest)
                if name not in RESERVED_WORDS and name not in _UNSHADOWABLE:
                    yield name


def literal_truth(node: Node) -> Optional[bool]:
    """Truthiness of a constant test expression, or None if not constant."""
    if isinstance(node, BooleanLiteral):
        return node.value
    if isinstance(node, NumericLiteral):
        return node.value != 0
    if isinstance(node, StringLiteral):
        return node.value != ""
    if isinstance(node, NullLiteral):
        return False
    if isinstance(node, UnaryExpression) and node.operator == "!":
        inner = literal_truth(node.argument)
        return None if inner is None else not inner
    return None


class _Simplifier(NodeTransformer):
    """Statement level cleanups and property access shortening."""

    def __init__(self, unsafe: bool):
        self.unsafe = unsafe
        self.changed = False

    def _prune(self, statements: List[Node]) -> None:
        """Drop statements after an unconditional jump."""
        for index, statement in enumerate(statements):
            if isinstance(statement, _TERMINATORS):
                dead = statements[index + 1:]
                # function declarations are hoisted, var names must keep existing
                kept = [stmt for stmt in dead if isinstance(stmt, FunctionDeclaration)]
                for stmt in dead:
                    if isinstance(stmt, VariableDeclaration) and stmt.kind == "var":
                        for declarator in stmt.declarations:
                            declarator.init = None
                        kept.append(stmt)
                if len(kept) != len(dead):
                    self.changed = True
                statements[index + 1:] = kept
                return

    def _statements(self, statements: List[Node]) -> None:
        self._prune(statements)
        result = []
        for statement in statements:
            if isinstance(statement, EmptyStatement):
                self.changed = True
                continue
            result.append(statement)
        statements[:] = result

    def visit_Program(self, node: Program) -> Node:
        self.generic_visit(node)
        self._statements(node.body)
        return node

    def visit_BlockStatement(self, node: BlockStatement) -> Node:
        self.generic_visit(node)
        self._statements(node.body)
        return node

    def visit_SwitchCase(self, node: SwitchCase) -> Node:
        self.generic_visit(node)
        self._prune(node.consequent)
        return node

    def visit_IfStatement(self, node: IfStatement) -> Node:
        self.generic_visit(node)
        truth = literal_truth(node.test)
        if truth is None:
            return node
        self.changed = True
        branch = node.consequent if truth else node.alternate
        if branch is None:
            return EmptyStatement(line=node.line)
        return branch

    def visit_ConditionalExpression(self, node: ConditionalExpression) -> Node:
        self.generic_visit(node)
        truth = literal_truth(node.test)
        if truth is None:
            return node
        self.changed = True
        return node.consequent if truth else node.alternate

    def visit_MemberExpression(self, node: MemberExpression) -> Node:
        self.generic_visit(node)
        key = node.property
        if (node.computed and isinstance(key, StringLiteral) and is_identifier_name(key.value)
                and key.value not in COMPUTED_ONLY_PROPERTIES):
            node.property = Identifier(key.value, line=key.line)
            node.computed = False
            self.changed = True
        return node

    def visit_BooleanLiteral(self, node: BooleanLiteral) -> Node:
        if not self.unsafe:
            return node
        return UnaryExpression("!", NumericLiteral(0 if node.value else 1, line=node.line), line=node.line)


def replace_undefined(program: Program) -> None:
    parents = parent_map(program)
    for ident in analyze(program).globals("undefined"):
        parent = parents.get(id(ident))
        # leave assignments to the global alone
        if parent is None or isinstance(parent, UpdateExpression) or getattr(parent, "left", None) is ident:
            continue
        replace_child(parent, ident, UnaryExpression("void", NumericLiteral(0, line=ident.line), line=ident.line))


def _remove_unused_locals(program: Program) -> bool:
    """Drop side-effect free declarations of function locals nothing reads."""
    analysis = analyze(program)
    parents = parent_map(program)
    removed = False
    for scope in analysis.root.descendants():
        if scope is analysis.root:
            continue
        for binding in list(scope.bindings.values()):
            if binding.references or binding.kind not in ("let", "const", "var", "function"):
                continue
            for ident in binding.identifiers:
                declarator = binding.declarator
                if binding.kind == "function":
                    owner = parents.get(id(declarator))
                    if owner is not None and _remove_from_body(owner, declarator):
                        removed = True
                    continue
                declaration = parents.get(id(declarator))
                if not isinstance(declaration, VariableDeclaration) or declarator.id is not ident:
                    continue
                if not is_pure(declarator.init):
                    continue
                holder = parents.get(id(declaration))
                if not isinstance(holder, (BlockStatement, Program, SwitchCase)):
                    continue
                declaration.declarations.remove(declarator)
                if not declaration.declarations:
                    _remove_from_body(holder, declaration)
                removed = True
    return removed


def _remove_from_body(owner: Node, statement: Node) -> bool:
    for name in ("body", "consequent"):
        body = getattr(owner, name, None)
        if isinstance(body, list):
            for index, item in enumerate(body):
                if item is statement:
                    del body[index]
                    return True
    return False


class _Mangler:
    """Renames local bindings to the shortest names that keep resolution intact."""

    def __init__(self, program: Program, keep_names: bool):
        self.analysis = analyze(program)
        self.keep_names = keep_names
        top_level = self.analysis.root
        # Top-level bindings and the parameters of top-level functions keep their names
        self.fixed: Set[int] = {id(binding) for binding in top_level.bindings.values()}
        for child in top_level.children:
            if child.kind == "function":
                self.fixed.update(
                    id(binding) for binding in child.bindings.values() if binding.kind == "param"
                )
        for binding in self.analysis.all_bindings():
            if keep_names and binding.kind in ("function", "class", "fname"):
                self.fixed.add(id(binding))
        self.avoid = set(self.analysis.unresolved) | {
            binding.name for binding in self.analysis.all_bindings() if id(binding) in self.fixed
        }

    def run(self) -> int:
        renamed = 0
        for child in self.analysis.root.children:
            renamed += self._scope(child, set())
        return renamed

    def _scope(self, scope: Scope, outer: Set[str]) -> int:
        bindings = sorted(
            (binding for binding in scope.bindings.values() if id(binding) not in self.fixed),
            key=lambda binding: -len(binding.references),
        )
        taken = outer | {binding.name for binding in scope.bindings.values() if id(binding) in self.fixed}
        names = (name for name in short_names() if name not in self.avoid and name not in taken)
        renamed = 0
        for binding in bindings:
            new_name = next(names)
            if new_name != binding.name:
                binding.rename(new_name)
                renamed += 1
            taken.add(new_name)
        for child in scope.children:
            renamed += self._scope(child, taken)
        return renamed


def squeeze(program: Program, keep_names: bool = True, unsafe: bool = False, mangle: bool = False) -> Program:
    """Shrink program in place and return it."""
    passes = 0
    while True:
        passes += 1
        simplifier = _Simplifier(unsafe=False)
        simplifier.visit(program)
        removed = _remove_unused_locals(program)
        if not (simplifier.changed or removed):
            break

    if unsafe:
        replace_undefined(program)
        _Simplifier(unsafe=True).visit(program)

    renamed = 0
    if mangle:
        if "eval" in analyze(program).unresolved:
            logger.info("squeeze.mangle_skipped", reason="eval")
        else:
            renamed = _Mangler(program, keep_names).run()
    logger.debug("squeeze.complete", passes=passes, renamed=renamed, unsafe=unsafe)
    return program
