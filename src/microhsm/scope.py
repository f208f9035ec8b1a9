"""Lexical scope analysis.

Builds the scope tree of a program, records every binding with its
declaring identifiers, and resolves each identifier reference to the
binding it reads or writes. References that resolve to nothing are
globals, which is how every host intrinsic is recognised.
"""

from typing import Dict, Iterator, List, Optional

from .ast_nodes import (
    Node, Program, Identifier, MemberExpression, Property, AssignmentPattern,
    ArrayPattern, ObjectPattern, RestElement, AssignmentExpression,
    UpdateExpression, VariableDeclaration, BlockStatement, ForStatement,
    ForInStatement, ForOfStatement, CatchClause, SwitchStatement,
    LabeledStatement, BreakStatement, ContinueStatement,
    FunctionDeclaration, FunctionExpression, ArrowFunctionExpression,
    ClassDeclaration, ClassExpression, MethodDefinition, PropertyDefinition,
    StaticBlock, ImportDeclaration, ExportNamedDeclaration, ExportDefaultDeclaration,
    ExportAllDeclaration, ExportSpecifier, ExpressionStatement,
)
from .visitor import iter_child_nodes


class Binding:
    """A declared name and every place it is used."""

    def __init__(self, name: str, kind: str, scope: "Scope", declarator: Optional[Node]):
        self.name = name
        # var, let, const, function, class, param, catch, import or fname
        self.kind = kind
        self.scope = scope
        self.declarator = declarator
        self.identifiers: List[Identifier] = []
        self.references: List[Identifier] = []
        self.writes: List[Identifier] = []

    @property
    def reads(self) -> List[Identifier]:
        written = {id(ident) for ident in self.writes}
        return [ident for ident in self.references if id(ident) not in written]

    def rename(self, new_name: str) -> None:
        """Rename the binding at every declaration and reference."""
        self.name = new_name
        for ident in self.identifiers:
            ident.name = new_name
        for ident in self.references:
            ident.name = new_name

    def __repr__(self) -> str:
        return f"Binding({self.name!r}, {self.kind}, refs={len(self.references)})"


class Scope:
    """One lexical scope: program, function, block, class or catch."""

    def __init__(self, kind: str, node: Node, parent: Optional["Scope"]):
        self.kind = kind
        self.node = node
        self.parent = parent
        self.children: List["Scope"] = []
        self.bindings: Dict[str, Binding] = {}
        # Identifiers referenced directly in this scope (not in children)
        self.references: List[Identifier] = []
        if parent is not None:
            parent.children.append(self)

    def lookup(self, name: str) -> Optional[Binding]:
        scope: Optional[Scope] = self
        while scope is not None:
            binding = scope.bindings.get(name)
            if binding is not None:
                return binding
            scope = scope.parent
        return None

    def function_scope(self) -> "Scope":
        """Nearest enclosing scope that hoists var declarations."""
        scope = self
        while scope.kind not in ("function", "program"):
            scope = scope.parent
        return scope

    def is_within(self, other: "Scope") -> bool:
        scope: Optional[Scope] = self
        while scope is not None:
            if scope is other:
                return True
            scope = scope.parent
        return False

    def descendants(self) -> Iterator["Scope"]:
        """Yield this scope and all nested scopes, parents first."""
        yield self
        for child in self.children:
            yield from child.descendants()

    def __repr__(self) -> str:
        return f"Scope({self.kind}, {sorted(self.bindings)})"


class ScopeAnalysis:
    """Result of analyze(): the scope tree and the reference resolution."""

    def __init__(self, root: Scope):
        self.root = root
        self.scopes: Dict[int, Scope] = {}
        self.bindings: Dict[int, Binding] = {}
        self.reference_scopes: Dict[int, Scope] = {}
        self.unresolved: Dict[str, List[Identifier]] = {}

    def scope_of(self, node: Node) -> Optional[Scope]:
        """Scope created by node, for functions, blocks and the program."""
        return self.scopes.get(id(node))

    def binding_of(self, ident: Identifier) -> Optional[Binding]:
        """Binding a reference or declaring identifier belongs to."""
        return self.bindings.get(id(ident))

    def is_global(self, ident: Identifier) -> bool:
        return id(ident) in self.reference_scopes and id(ident) not in self.bindings

    def globals(self, name: str) -> List[Identifier]:
        return self.unresolved.get(name, [])

    def all_bindings(self) -> Iterator[Binding]:
        for scope in self.root.descendants():
            yield from scope.bindings.values()

    def declared_names(self) -> set:
        return {binding.name for binding in self.all_bindings()}

    def reference_scope(self, ident: Identifier) -> Optional[Scope]:
        return self.reference_scopes.get(id(ident))


class _Analyzer:
    """Walks the tree once, declaring as it goes and resolving at the end."""

    def __init__(self, program: Program):
        self.analysis = ScopeAnalysis(Scope("program", program, None))
        self.analysis.scopes[id(program)] = self.analysis.root
        self.pending: List[tuple] = []  # (identifier, scope, is_write)

    def run(self) -> ScopeAnalysis:
        program = self.analysis.root.node
        for statement in program.body:
            self.visit(statement, self.analysis.root)
        for ident, scope, is_write in self.pending:
            scope.references.append(ident)
            self.analysis.reference_scopes[id(ident)] = scope
            binding = scope.lookup(ident.name)
            if binding is None:
                self.analysis.unresolved.setdefault(ident.name, []).append(ident)
                continue
            self.analysis.bindings[id(ident)] = binding
            binding.references.append(ident)
            if is_write:
                binding.writes.append(ident)
        return self.analysis

    # ---- declarations ----

    def new_scope(self, kind: str, node: Node, parent: Scope) -> Scope:
        scope = Scope(kind, node, parent)
        self.analysis.scopes[id(node)] = scope
        return scope

    def declare(self, ident: Identifier, kind: str, scope: Scope, declarator: Optional[Node]) -> None:
        binding = scope.bindings.get(ident.name)
        if binding is None:
            binding = Binding(ident.name, kind, scope, declarator)
            scope.bindings[ident.name] = binding
        binding.identifiers.append(ident)
        self.analysis.bindings[id(ident)] = binding

    def declare_pattern(self, pattern: Node, kind: str, scope: Scope, declarator: Optional[Node], value_scope: Scope) -> None:
        """Declare every name bound by pattern; defaults are evaluated in value_scope."""
        if isinstance(pattern, Identifier):
            self.declare(pattern, kind, scope, declarator)
        elif isinstance(pattern, AssignmentPattern):
            self.declare_pattern(pattern.left, kind, scope, declarator, value_scope)
            self.visit(pattern.right, value_scope)
        elif isinstance(pattern, ArrayPattern):
            for element in pattern.elements:
                if element is not None:
                    self.declare_pattern(element, kind, scope, declarator, value_scope)
        elif isinstance(pattern, ObjectPattern):
            for prop in pattern.properties:
                if isinstance(prop, RestElement):
                    self.declare_pattern(prop.argument, kind, scope, declarator, value_scope)
                else:
                    if prop.computed:
                        self.visit(prop.key, value_scope)
                    self.declare_pattern(prop.value, kind, scope, declarator, value_scope)
        elif isinstance(pattern, RestElement):
            self.declare_pattern(pattern.argument, kind, scope, declarator, value_scope)
        else:
            self.visit(pattern, value_scope)

    def reference(self, ident: Identifier, scope: Scope, is_write: bool = False) -> None:
        self.pending.append((ident, scope, is_write))

    def assign_target(self, target: Node, scope: Scope) -> None:
        """Record writes for an assignment or destructuring target."""
        if isinstance(target, Identifier):
            self.reference(target, scope, is_write=True)
        elif isinstance(target, AssignmentPattern):
            self.assign_target(target.left, scope)
            self.visit(target.right, scope)
        elif isinstance(target, ArrayPattern):
            for element in target.elements:
                if element is not None:
                    self.assign_target(element, scope)
        elif isinstance(target, ObjectPattern):
            for prop in target.properties:
                if isinstance(prop, RestElement):
                    self.assign_target(prop.argument, scope)
                else:
                    if prop.computed:
                        self.visit(prop.key, scope)
                    self.assign_target(prop.value, scope)
        elif isinstance(target, RestElement):
            self.assign_target(target.argument, scope)
        else:
            self.visit(target, scope)

    # ---- traversal ----

    def visit(self, node: Optional[Node], scope: Scope) -> None:
        if node is None:
            return
        method = getattr(self, "visit_" + node.__class__.__name__, None)
        if method is not None:
            method(node, scope)
        else:
            for child in iter_child_nodes(node):
                self.visit(child, scope)

    def visit_Identifier(self, node: Identifier, scope: Scope) -> None:
        self.reference(node, scope)

    def visit_MemberExpression(self, node: MemberExpression, scope: Scope) -> None:
        self.visit(node.object, scope)
        if node.computed:
            self.visit(node.property, scope)

    def visit_Property(self, node: Property, scope: Scope) -> None:
        if node.computed:
            self.visit(node.key, scope)
        self.visit(node.value, scope)

    def visit_AssignmentExpression(self, node: AssignmentExpression, scope: Scope) -> None:
        self.assign_target(node.left, scope)
        self.visit(node.right, scope)

    def visit_UpdateExpression(self, node: UpdateExpression, scope: Scope) -> None:
        self.assign_target(node.argument, scope)

    def visit_VariableDeclaration(self, node: VariableDeclaration, scope: Scope) -> None:
        kind = "const" if node.kind == "const" or node.from_const else node.kind
        target = scope.function_scope() if node.kind == "var" else scope
        for declarator in node.declarations:
            self.declare_pattern(declarator.id, kind, target, declarator, scope)
            self.visit(declarator.init, scope)

    def visit_BlockStatement(self, node: BlockStatement, scope: Scope) -> None:
        block = self.new_scope("block", node, scope)
        for statement in node.body:
            self.visit(statement, block)

    def _visit_loop(self, node: Node, scope: Scope) -> None:
        loop = self.new_scope("block", node, scope)
        if isinstance(node, ForStatement):
            self.visit(node.init, loop)
            self.visit(node.test, loop)
            self.visit(node.update, loop)
        else:
            if isinstance(node.left, VariableDeclaration):
                self.visit(node.left, loop)
            else:
                self.assign_target(node.left, loop)
            self.visit(node.right, loop)
        self.visit(node.body, loop)

    visit_ForStatement = _visit_loop
    visit_ForInStatement = _visit_loop
    visit_ForOfStatement = _visit_loop

    def visit_CatchClause(self, node: CatchClause, scope: Scope) -> None:
        catch = self.new_scope("catch", node, scope)
        if node.param is not None:
            self.declare_pattern(node.param, "catch", catch, node, catch)
        self.analysis.scopes[id(node.body)] = catch
        for statement in node.body.body:
            self.visit(statement, catch)

    def visit_SwitchStatement(self, node: SwitchStatement, scope: Scope) -> None:
        self.visit(node.discriminant, scope)
        block = self.new_scope("block", node, scope)
        for case in node.cases:
            self.visit(case.test, block)
            for statement in case.consequent:
                self.visit(statement, block)

    def visit_LabeledStatement(self, node: LabeledStatement, scope: Scope) -> None:
        self.visit(node.body, scope)

    def visit_BreakStatement(self, node: BreakStatement, scope: Scope) -> None:
        pass

    visit_ContinueStatement = visit_BreakStatement

    def _visit_function(self, node: Node, scope: Scope) -> None:
        if isinstance(node, FunctionDeclaration) and node.id is not None:
            self.declare(node.id, "function", scope, node)
        inner = self.new_scope("function", node, scope)
        if isinstance(node, FunctionExpression) and node.id is not None:
            self.declare(node.id, "fname", inner, node)
        for param in node.params:
            self.declare_pattern(param, "param", inner, node, inner)
        if isinstance(node.body, BlockStatement):
            self.analysis.scopes[id(node.body)] = inner
            for statement in node.body.body:
                self.visit(statement, inner)
        else:
            self.visit(node.body, inner)

    visit_FunctionDeclaration = _visit_function
    visit_FunctionExpression = _visit_function
    visit_ArrowFunctionExpression = _visit_function

    def _visit_class(self, node: Node, scope: Scope) -> None:
        if isinstance(node, ClassDeclaration) and node.id is not None:
            self.declare(node.id, "class", scope, node)
        self.visit(node.superclass, scope)
        inner = self.new_scope("class", node, scope)
        if isinstance(node, ClassExpression) and node.id is not None:
            self.declare(node.id, "class", inner, node)
        for member in node.body.body:
            if isinstance(member, (MethodDefinition, PropertyDefinition)):
                if member.computed:
                    self.visit(member.key, inner)
                self.visit(member.value, inner)
            elif isinstance(member, StaticBlock):
                block = self.new_scope("function", member, inner)
                for statement in member.body:
                    self.visit(statement, block)

    visit_ClassDeclaration = _visit_class
    visit_ClassExpression = _visit_class

    def visit_ImportDeclaration(self, node: ImportDeclaration, scope: Scope) -> None:
        for specifier in node.specifiers:
            self.declare(specifier.local, "import", scope, node)

    def visit_ExportNamedDeclaration(self, node: ExportNamedDeclaration, scope: Scope) -> None:
        if node.declaration is not None:
            self.visit(node.declaration, scope)
        if node.source is None:
            for specifier in node.specifiers:
                if isinstance(specifier.local, Identifier):
                    self.reference(specifier.local, scope)

    def visit_ExportDefaultDeclaration(self, node: ExportDefaultDeclaration, scope: Scope) -> None:
        self.visit(node.declaration, scope)

    def visit_ExportAllDeclaration(self, node: ExportAllDeclaration, scope: Scope) -> None:
        pass


def analyze(program: Program) -> ScopeAnalysis:
    """Analyze the scopes of a program."""
    return _Analyzer(program).run()


def is_pure(node: Optional[Node]) -> bool:
    """True if evaluating node can have no side effects."""
    from .ast_nodes import (
        NumericLiteral, StringLiteral, BooleanLiteral, NullLiteral, BigIntLiteral,
        RegexLiteral, TemplateLiteral, ArrayExpression, ObjectExpression,
        SpreadElement, UnaryExpression, BinaryExpression, LogicalExpression,
        ConditionalExpression, SequenceExpression,
    )

    if node is None:
        return True
    if isinstance(node, (NumericLiteral, StringLiteral, BooleanLiteral, NullLiteral, BigIntLiteral,
                         RegexLiteral, Identifier, FunctionExpression, ArrowFunctionExpression)):
        return True
    if isinstance(node, TemplateLiteral):
        return all(is_pure(expr) for expr in node.expressions)
    if isinstance(node, ArrayExpression):
        return all(element is None or (not isinstance(element, SpreadElement) and is_pure(element))
                   for element in node.elements)
    if isinstance(node, ObjectExpression):
        return all(isinstance(prop, Property) and (not prop.computed or is_pure(prop.key)) and is_pure(prop.value)
                   for prop in node.properties)
    if isinstance(node, UnaryExpression):
        return node.operator not in ("delete",) and is_pure(node.argument)
    if isinstance(node, (BinaryExpression, LogicalExpression)):
        return is_pure(node.left) and is_pure(node.right)
    if isinstance(node, ConditionalExpression):
        return is_pure(node.test) and is_pure(node.consequent) and is_pure(node.alternate)
    if isinstance(node, SequenceExpression):
        return all(is_pure(expr) for expr in node.expressions)
    if isinstance(node, ClassExpression):
        return node.superclass is None and all(
            isinstance(member, MethodDefinition) and not member.computed for member in node.body.body
        )
    return False


def pattern_identifiers(pattern: Node) -> List[Identifier]:
    """Every identifier a binding pattern declares."""
    if isinstance(pattern, Identifier):
        return [pattern]
    if isinstance(pattern, AssignmentPattern):
        return pattern_identifiers(pattern.left)
    if isinstance(pattern, RestElement):
        return pattern_identifiers(pattern.argument)
    if isinstance(pattern, ArrayPattern):
        return [ident for element in pattern.elements if element is not None
                for ident in pattern_identifiers(element)]
    if isinstance(pattern, ObjectPattern):
        result = []
        for prop in pattern.properties:
            target = prop.argument if isinstance(prop, RestElement) else prop.value
            result.extend(pattern_identifiers(target))
        return result
    return []
