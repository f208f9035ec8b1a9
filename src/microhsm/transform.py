"""Semantic lowering.

Rewrites a preprocessed, bundled program into a single function the host
will run. Host intrinsics become marker identifiers, the default export
becomes the entry function, every other top-level statement is folded into
that function, and the constructs the host rejects (``this``, ``const``,
``Function``, bigint literals) are rewritten into ones it accepts.
"""

import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import structlog

from .ast_nodes import (
    Node, Program, Identifier, StringLiteral, NumericLiteral, BigIntLiteral,
    ThisExpression, Super, ArrayExpression, ObjectExpression, Property,
    SpreadElement, UnaryExpression, AssignmentExpression, SequenceExpression,
    MemberExpression, CallExpression, TaggedTemplateExpression,
    ArrayPattern, AssignmentPattern, RestElement, ExpressionStatement,
    BlockStatement, VariableDeclaration, VariableDeclarator, IfStatement,
    WhileStatement, DoWhileStatement, ForStatement, ForInStatement,
    ForOfStatement, LabeledStatement, ReturnStatement, SwitchCase,
    FunctionDeclaration, FunctionExpression, ArrowFunctionExpression,
    ClassDeclaration, ClassExpression, MethodDefinition, PropertyDefinition,
    PrivateName, StaticBlock, ImportDeclaration, ExportNamedDeclaration,
    ExportDefaultDeclaration, ExportAllDeclaration,
)
from .bundle import BundleError
from .codegen import is_identifier_name
from .errors import ConstReassignmentError, GrammarError, SemanticError, Warning
from .markers import DB_METHODS, HOST_NAME, TIER_NAMESPACES, Marker, MarkerKind
from .options import Seclevel
from .scope import Binding, ScopeAnalysis, analyze, is_pure, pattern_identifiers
from .visitor import NodeTransformer, iter_fields, parent_map, replace_child, walk

logger = structlog.get_logger(__name__)

# Built-in functions short enough to reach Function.prototype through,
# shortest first
SHORT_FUNCTION_NAMES = (
    "Map", "Set", "Date", "Array", "Error", "isNaN",
    "Number", "Object", "RegExp", "String", "Symbol", "BigInt",
)

TIER_GLOBALS = {"$" + namespace: namespace for namespace in TIER_NAMESPACES}

# Largest integer a double holds exactly
MAX_SAFE_INTEGER = 2 ** 53 - 1

_STATEMENT_SLOTS = {
    IfStatement: ("consequent", "alternate"),
    WhileStatement: ("body",),
    DoWhileStatement: ("body",),
    ForStatement: ("body",),
    ForInStatement: ("body",),
    ForOfStatement: ("body",),
    LabeledStatement: ("body",),
}


def entry_name(unique_id: str) -> str:
    """Name the entry function carries until postprocessing strips it."""
    return f"_SCRIPT_{unique_id}_"


@dataclass
class TransformResult:
    """Output of transform(): the lowered program and the effective tier."""

    program: Program
    seclevel: Seclevel
    warnings: List[Warning] = field(default_factory=list)


def _member(obj: Node, name: str, line: int = 0) -> MemberExpression:
    return MemberExpression(obj, Identifier(name, line=line), False, line=line)


def _let(name: str, init: Optional[Node], line: int = 0) -> VariableDeclaration:
    return VariableDeclaration([VariableDeclarator(Identifier(name, line=line), init)], "let", line=line)


def _property_name(member: MemberExpression) -> Optional[str]:
    if not member.computed and isinstance(member.property, Identifier):
        return member.property.name
    if member.computed and isinstance(member.property, StringLiteral):
        return member.property.value
    return None


def _argument_users(analysis: ScopeAnalysis) -> set:
    """ids of the non-arrow functions whose own ``arguments`` is read."""
    users = set()
    for ident in analysis.globals("arguments"):
        scope = analysis.reference_scope(ident)
        while scope is not None and not (
            scope.kind == "function" and isinstance(scope.node, (FunctionDeclaration, FunctionExpression))
        ):
            scope = scope.parent
        if scope is not None:
            users.add(id(scope.node))
    return users


def _function_value(node: FunctionDeclaration, argument_users: set) -> Node:
    """Expression form of a function declaration, as an arrow where possible."""
    if node.generator or id(node) in argument_users:
        return FunctionExpression(None, node.params, node.body, node.is_async, node.generator, line=node.line)
    return ArrowFunctionExpression(node.params, node.body, False, node.is_async, line=node.line)


# ---- this elimination ----


class _UndefinedThis:
    """``this`` where the host would give undefined."""

    def replace(self, node: ThisExpression) -> Node:
        return Identifier("undefined", line=node.line)


class _FreeThis:
    """``this`` inside a function expression nothing binds it for."""

    def replace(self, node: ThisExpression) -> Node:
        raise GrammarError(
            "this cannot be used in a function expression",
            "an arrow function, a method, or a function stored in an object or array literal",
            node.line,
        )


class _SharedThis:
    """``this`` that resolves to one synthetic binding."""

    def __init__(self, name: str = ""):
        self.name = name
        self.identifiers: List[Identifier] = []

    def replace(self, node: ThisExpression) -> Node:
        ident = Identifier(self.name, line=node.line)
        self.identifiers.append(ident)
        return ident

    @property
    def used(self) -> bool:
        return bool(self.identifiers)

    def bind(self, name: str) -> None:
        self.name = name
        for ident in self.identifiers:
            ident.name = name


class _StaticThis:
    """``this`` in static members, which is the class itself."""

    def __init__(self, class_node: Node):
        self.class_node = class_node

    def replace(self, node: ThisExpression) -> Node:
        if self.class_node.id is None:
            raise GrammarError("this cannot be used in static members of an anonymous class",
                               "a named class", node.line)
        return Identifier(self.class_node.id.name, line=node.line)


class _ThisEliminator:
    """Replaces every ``this`` with a binding the host can express.

    Also turns nested function declarations into ``let`` arrow functions,
    moved to the top of their block so they stay callable before their
    original position.
    """

    def __init__(self, program: Program, unique_id: str):
        self.program = program
        self.unique_id = unique_id
        self.analysis = analyze(program)
        self.argument_users = _argument_users(self.analysis)
        self.literal_count = 0
        self._frames: List[List[Node]] = []
        self._reuse: Dict[int, str] = {}
        self._top_level = set()
        for statement in program.body:
            if isinstance(statement, (ExportDefaultDeclaration, ExportNamedDeclaration)):
                statement = statement.declaration
            if isinstance(statement, (FunctionDeclaration, FunctionExpression)):
                self._top_level.add(id(statement))

    def run(self) -> None:
        self._visit_statements(self.program.body, _UndefinedThis(), block=False)

    def _this_name(self) -> str:
        return f"_THIS_{self.unique_id}_"

    # ---- traversal ----

    def _visit(self, node: Node, ctx) -> Node:
        method = getattr(self, "_visit_" + node.__class__.__name__, None)
        if method is not None:
            return method(node, ctx)
        slots = _STATEMENT_SLOTS.get(type(node), ())
        for name, value in iter_fields(node):
            if isinstance(value, list):
                for index, item in enumerate(value):
                    if isinstance(item, Node):
                        value[index] = self._visit(item, ctx)
            elif isinstance(value, Node):
                if name in slots and not isinstance(value, BlockStatement):
                    setattr(node, name, self._visit_slot(value, ctx))
                else:
                    setattr(node, name, self._visit(value, ctx))
        return node

    def _visit_statements(self, statements: List[Node], ctx, block: bool = True) -> None:
        if block:
            functions = []
            for index, statement in enumerate(statements):
                if isinstance(statement, FunctionDeclaration) and not (
                    statement.generator or id(statement) in self.argument_users
                ):
                    functions.append(_let(statement.id.name, _function_value(statement, self.argument_users),
                                          statement.line))
                    functions[-1].declarations[0].id = statement.id
                    statements[index] = None
            statements[:] = functions + [statement for statement in statements if statement is not None]

        result = []
        for statement in statements:
            self._frames.append([])
            statement = self._visit(statement, ctx)
            result.extend(self._frames.pop())
            result.append(statement)
        statements[:] = result

    def _visit_slot(self, statement: Node, ctx) -> Node:
        """A lone statement in a loop or if body."""
        self._frames.append([])
        statement = self._visit(statement, ctx)
        hoisted = self._frames.pop()
        if hoisted:
            return BlockStatement(hoisted + [statement], line=statement.line)
        return statement

    def _visit_BlockStatement(self, node: BlockStatement, ctx) -> Node:
        self._visit_statements(node.body, ctx)
        return node

    def _visit_SwitchCase(self, node: SwitchCase, ctx) -> Node:
        if node.test is not None:
            node.test = self._visit(node.test, ctx)
        self._visit_statements(node.consequent, ctx, block=False)
        return node

    def _visit_ThisExpression(self, node: ThisExpression, ctx) -> Node:
        return ctx.replace(node)

    # ---- functions ----

    def _visit_function(self, node: Node, ctx) -> Node:
        for index, param in enumerate(node.params):
            node.params[index] = self._visit(param, ctx)
        if isinstance(node.body, BlockStatement):
            self._visit_statements(node.body.body, ctx)
        else:
            self._frames.append([])
            body = self._visit(node.body, ctx)
            hoisted = self._frames.pop()
            if hoisted:
                node.body = BlockStatement(hoisted + [ReturnStatement(body, line=body.line)], line=body.line)
                node.expression = False
            else:
                node.body = body
        return node

    def _visit_FunctionDeclaration(self, node: FunctionDeclaration, ctx) -> Node:
        inner = _UndefinedThis() if id(node) in self._top_level else _FreeThis()
        return self._visit_function(node, inner)

    def _visit_FunctionExpression(self, node: FunctionExpression, ctx) -> Node:
        inner = _UndefinedThis() if id(node) in self._top_level else _FreeThis()
        return self._visit_function(node, inner)

    def _visit_ArrowFunctionExpression(self, node: ArrowFunctionExpression, ctx) -> Node:
        return self._visit_function(node, ctx)

    # ---- object and array literals ----

    def _visit_VariableDeclaration(self, node: VariableDeclaration, ctx) -> Node:
        if len(node.declarations) == 1:
            declarator = node.declarations[0]
            if (isinstance(declarator.id, Identifier)
                    and isinstance(declarator.init, (ObjectExpression, ArrayExpression))
                    and self._reusable(declarator.id, declarator.init)):
                self._reuse[id(declarator.init)] = declarator.id.name
        for declarator in node.declarations:
            declarator.id = self._visit(declarator.id, ctx)
            if declarator.init is not None:
                declarator.init = self._visit(declarator.init, ctx)
        return node

    def _reusable(self, ident: Identifier, literal: Node) -> bool:
        """Whether methods of literal can name it through ident."""
        binding = self.analysis.binding_of(ident)
        if binding is None or binding.writes or len(binding.identifiers) != 1:
            return False
        for node in walk(literal):
            if isinstance(node, Identifier) and node.name == ident.name:
                other = self.analysis.binding_of(node)
                if other is not None and other is not binding:
                    return False
        return True

    def _visit_ObjectExpression(self, node: ObjectExpression, ctx) -> Node:
        shared = _SharedThis()
        for prop in node.properties:
            if isinstance(prop, SpreadElement):
                prop.argument = self._visit(prop.argument, ctx)
                continue
            if prop.computed:
                prop.key = self._visit(prop.key, ctx)
            if isinstance(prop.value, FunctionExpression):
                self._visit_function(prop.value, shared)
            else:
                prop.value = self._visit(prop.value, ctx)
        return self._bind_literal(node, shared)

    def _visit_ArrayExpression(self, node: ArrayExpression, ctx) -> Node:
        shared = _SharedThis()
        for index, element in enumerate(node.elements):
            if isinstance(element, FunctionExpression):
                self._visit_function(element, shared)
            elif element is not None:
                node.elements[index] = self._visit(element, ctx)
        return self._bind_literal(node, shared)

    def _bind_literal(self, node: Node, shared: _SharedThis) -> Node:
        if not shared.used:
            return node
        name = self._reuse.get(id(node))
        if name is not None:
            shared.bind(name)
            return node
        self.literal_count += 1
        name = f"_THIS_{self.literal_count}_{self.unique_id}_"
        shared.bind(name)
        self._frames[-1].append(_let(name, None, node.line))
        return AssignmentExpression("=", Identifier(name, line=node.line), node, line=node.line)

    # ---- classes ----

    def _visit_class(self, node: Node, ctx) -> Node:
        if node.superclass is not None:
            node.superclass = self._visit(node.superclass, ctx)
        name = self._this_name()
        static = _StaticThis(node)
        constructor = None
        fields = []  # (member, shared) for instance fields with an initializer

        for member in node.body.body:
            if isinstance(member, StaticBlock):
                self._visit_statements(member.body, static)
                continue
            if member.computed:
                member.key = self._visit(member.key, ctx)
            if isinstance(member, PropertyDefinition):
                if member.value is None:
                    continue
                if member.static:
                    member.value = self._visit(member.value, static)
                else:
                    shared = _SharedThis(name)
                    member.value = self._visit(member.value, shared)
                    fields.append((member, shared))
            elif member.static:
                self._visit_function(member.value, static)
            elif member.kind == "constructor":
                constructor = member
            else:
                self._lower_method(member.value, name)

        if any(shared.used for _, shared in fields):
            initializers = self._move_fields(node, fields, name)
        else:
            initializers = []
        if constructor is None and initializers:
            constructor = self._default_constructor(node)
        if constructor is not None:
            self._lower_constructor(node, constructor.value, name, initializers)
        return node

    _visit_ClassDeclaration = _visit_class
    _visit_ClassExpression = _visit_class

    def _move_fields(self, node: Node, fields: list, name: str) -> List[Node]:
        """Turn instance field initializers into constructor assignments."""
        statements = []
        for member, _ in fields:
            key = member.key
            if isinstance(key, PrivateName):
                target = MemberExpression(Identifier(name), PrivateName(key.name), False, line=member.line)
            else:
                target = MemberExpression(Identifier(name), key, member.computed, line=member.line)
            statements.append(ExpressionStatement(AssignmentExpression("=", target, member.value), line=member.line))
            member.value = None
        node.body.body = [
            member for member in node.body.body
            if not (isinstance(member, PropertyDefinition) and not member.static
                    and member.value is None and not isinstance(member.key, PrivateName)
                    and any(member is moved for moved, _ in fields))
        ]
        return statements

    def _default_constructor(self, node: Node) -> MethodDefinition:
        if node.superclass is not None:
            args = Identifier("args")
            body = [ExpressionStatement(CallExpression(Super(), [SpreadElement(Identifier("args"))]))]
            params = [RestElement(args)]
        else:
            body, params = [], []
        constructor = MethodDefinition(
            Identifier("constructor"),
            FunctionExpression(None, params, BlockStatement(body)),
            "constructor",
            line=node.line,
        )
        node.body.body.insert(0, constructor)
        return constructor

    def _rewrite_params(self, function: FunctionExpression, params_ctx: "_SharedThis") -> Optional[Node]:
        """Move parameters that read ``this`` into the body.

        Returns the destructuring declaration to place after ``this`` is
        initialized, or None if the parameters do not read ``this``.
        """
        if not params_ctx.used:
            return None
        args = f"_ARGS_{self.unique_id}_"
        declaration = VariableDeclaration(
            [VariableDeclarator(ArrayPattern(function.params), Identifier(args))], "let", line=function.line
        )
        function.params = [RestElement(Identifier(args))]
        return declaration

    def _lower_method(self, function: FunctionExpression, name: str) -> None:
        params_ctx = _SharedThis(name)
        for index, param in enumerate(function.params):
            function.params[index] = self._visit(param, params_ctx)
        body_ctx = _SharedThis(name)
        self._visit_statements(function.body.body, body_ctx)
        if not (params_ctx.used or body_ctx.used):
            return
        prologue = [_let(name, CallExpression(MemberExpression(Super(), Identifier("valueOf"), False), []),
                         function.line)]
        destructure = self._rewrite_params(function, params_ctx)
        if destructure is not None:
            prologue.append(destructure)
        function.body.body[:0] = prologue

    def _lower_constructor(self, node: Node, function: FunctionExpression, name: str,
                           initializers: List[Node]) -> None:
        params_ctx = _SharedThis(name)
        for index, param in enumerate(function.params):
            function.params[index] = self._visit(param, params_ctx)
        body_ctx = _SharedThis(name)
        self._visit_statements(function.body.body, body_ctx)
        if not (params_ctx.used or body_ctx.used or initializers):
            return
        if node.superclass is None:
            node.superclass = Identifier("Object", line=node.line)

        destructure = self._rewrite_params(function, params_ctx)
        body = function.body.body
        calls = self._super_calls(function.body)

        if not calls:
            prologue = [_let(name, CallExpression(Super(), []), function.line)]
            if destructure is not None:
                prologue.append(destructure)
            body[:0] = prologue + initializers
            return

        if destructure is not None:
            body.insert(0, destructure)
        single = calls[0] if len(calls) == 1 else None
        statement = next((stmt for stmt in body if isinstance(stmt, ExpressionStatement)
                          and stmt.expression is single), None)
        if statement is not None:
            index = body.index(statement)
            body[index:index + 1] = [_let(name, single, statement.line)] + initializers
            return

        parents = parent_map(function.body)
        for call in calls:
            assign = AssignmentExpression("=", Identifier(name), call, line=call.line)
            if initializers:
                assign = SequenceExpression(
                    [assign] + [stmt.expression for stmt in initializers] + [Identifier(name)], line=call.line
                )
            replace_child(parents[id(call)], call, assign)
        body.insert(0, _let(name, None, function.line))

    def _super_calls(self, body: BlockStatement) -> List[CallExpression]:
        calls = []
        todo = [body]
        while todo:
            current = todo.pop()
            if isinstance(current, CallExpression) and isinstance(current.callee, Super):
                calls.append(current)
            for _, value in iter_fields(current):
                children = value if isinstance(value, list) else [value]
                for child in children:
                    if isinstance(child, Node) and not isinstance(
                        child, (FunctionExpression, FunctionDeclaration, ClassDeclaration, ClassExpression)
                    ):
                        todo.append(child)
        calls.sort(key=lambda call: call.line)
        return calls


class _Finalizer(NodeTransformer):
    """``const`` to ``let`` with provenance, bigint literals to calls."""

    def visit_VariableDeclaration(self, node: VariableDeclaration) -> Node:
        if node.kind == "const":
            node.kind = "let"
            node.from_const = True
        return self.generic_visit(node)

    def visit_BigIntLiteral(self, node: BigIntLiteral) -> Node:
        if int(node.value) <= MAX_SAFE_INTEGER:
            argument = NumericLiteral(int(node.value), line=node.line)
        else:
            argument = StringLiteral(node.value, line=node.line)
        return CallExpression(Identifier("BigInt", line=node.line), [argument], line=node.line)


class Transformer:
    """Lowers one program. Use transform() rather than this class directly."""

    def __init__(self, program: Program, source_code: str, unique_id: str,
                 script_user: Optional[str] = None, script_name: Optional[str] = None,
                 seclevel: Optional[int] = None):
        self.program = program
        self.source_code = source_code
        self.unique_id = unique_id
        self.script_user = script_user
        self.script_name = script_name
        self.stated_seclevel = None if seclevel is None else Seclevel(seclevel)
        self.detected_seclevel = Seclevel.FULLSEC
        self.seclevel = Seclevel.FULLSEC
        self.warnings: List[Warning] = []
        # name -> initializer, for the locals placed at the top of the entry
        self.identity: Dict[str, Callable[[str], Node]] = {}
        self.wrappers: Dict[str, Node] = {}
        self.shims: Dict[str, Node] = {}
        self._short_name: Optional[str] = None

    def run(self) -> TransformResult:
        self.check_const_assignments()
        self.substitute_identity()
        self.lower_function_prototype()
        self.lower_subscripts()
        self.lower_db()
        self.lower_intrinsics()
        self.lower_object_methods()
        self.redirect_console()
        # Runs before partitioning so the names it introduces get partitioned too
        _ThisEliminator(self.program, self.unique_id).run()
        entry, statements = self.extract_entry()
        guard, hoisted = self.partition_globals(entry, statements)
        self.assemble(entry, hoisted, guard)
        _Finalizer().visit(self.program)
        self.drop_unused_params(entry)
        logger.debug("transform.complete", seclevel=self.seclevel.name, wrappers=list(self.wrappers),
                     shims=list(self.shims), hoisted=len(hoisted), guarded=len(guard))
        return TransformResult(self.program, self.seclevel, self.warnings)

    # ---- helpers ----

    def _local(self, *parts: str) -> str:
        return "_" + "_".join(parts) + f"_{self.unique_id}_"

    def _marker(self, kind: MarkerKind, *args: str, line: int = 0) -> Identifier:
        return Identifier(Marker(kind, args).token(self.unique_id), line=line)

    def _tree(self):
        return analyze(self.program), parent_map(self.program)

    def _short_function_name(self, analysis: ScopeAnalysis) -> str:
        if self._short_name is None:
            declared = analysis.declared_names()
            for name in SHORT_FUNCTION_NAMES:
                if name not in declared:
                    self._short_name = name
                    break
            else:
                raise SemanticError("every short built-in function name is shadowed, rename one of "
                                    + ", ".join(SHORT_FUNCTION_NAMES))
        return self._short_name

    # ---- step 0: const ----

    def check_const_assignments(self) -> None:
        for binding in analyze(self.program).all_bindings():
            if binding.kind == "const" and binding.writes:
                raise ConstReassignmentError(binding.name, binding.writes[0].line)

    # ---- step 1: identity and build constants ----

    def substitute_identity(self) -> None:
        analysis, parents = self._tree()
        build_date = int(time.time() * 1000)
        substitutions = {
            "_START": lambda line: Identifier("_ST", line=line),
            "_TIMEOUT": lambda line: Identifier("_TO", line=line),
            "_SOURCE": lambda line: StringLiteral(self.source_code, line=line),
            "_BUILD_DATE": lambda line: NumericLiteral(build_date, line=line),
            "_SCRIPT_USER": self._script_user,
            "_SCRIPT_NAME": self._script_name,
            "_FULL_SCRIPT_NAME": self._full_script_name,
        }
        for name, make in substitutions.items():
            for ident in analysis.globals(name):
                replace_child(parents[id(ident)], ident, make(ident.line))

    def _this_script(self, context: str) -> Node:
        return _member(Identifier(context), "this_script")

    def _script_user(self, line: int) -> Node:
        if self.script_user is not None:
            return StringLiteral(self.script_user, line=line)
        name = self._local("SCRIPT_USER")
        self.identity[name] = lambda context: MemberExpression(
            CallExpression(_member(self._this_script(context), "split"), [StringLiteral(".")]), NumericLiteral(0), True
        )
        return Identifier(name, line=line)

    def _script_name_text(self) -> str:
        if self.script_name is not None:
            return self.script_name
        return Marker(MarkerKind.SCRIPT_NAME).token(self.unique_id)

    def _script_name(self, line: int) -> Node:
        return StringLiteral(self._script_name_text(), line=line)

    def _full_script_name(self, line: int) -> Node:
        if self.script_user is not None:
            return StringLiteral(f"{self.script_user}.{self._script_name_text()}", line=line)
        name = self._local("FULL_SCRIPT_NAME")
        self.identity[name] = self._this_script
        return Identifier(name, line=line)

    # ---- step 2: Function ----

    def lower_function_prototype(self) -> None:
        analysis, parents = self._tree()
        members = []
        for ident in analysis.globals("Function"):
            member = parents.get(id(ident))
            if not (isinstance(member, MemberExpression) and member.object is ident
                    and _property_name(member) == "prototype"):
                raise GrammarError("Function is not available to scripts", "Function.prototype", ident.line)
            members.append(member)
        if not members:
            return
        short = self._short_function_name(analysis)
        if len(members) == 1:
            member = members[0]
            replace_child(parents[id(member)], member, _member(Identifier(short), "__proto__", member.line))
            return
        name = self._local("FUNCTION_PROTOTYPE")
        self.wrappers[name] = _member(Identifier(short), "__proto__")
        for member in members:
            replace_child(parents[id(member)], member, Identifier(name, line=member.line))

    # ---- step 3: subscripts and the security level ----

    def lower_subscripts(self) -> None:
        analysis, parents = self._tree()
        for global_name, namespace in TIER_GLOBALS.items():
            for ident in analysis.globals(global_name):
                self._lower_subscript(ident, global_name, namespace, parents)

        for token in analysis.unresolved:
            marker = Marker.parse(token, self.unique_id)
            if marker is not None and marker.kind is MarkerKind.SUBSCRIPT:
                self._demand(marker.args[0], analysis.unresolved[token][0].line)

        self.seclevel = self.detected_seclevel
        if self.stated_seclevel is not None:
            if self.detected_seclevel < self.stated_seclevel:
                self.warnings.append(Warning(
                    f"stated seclevel {self.stated_seclevel.name.lower()} lowered to "
                    f"{self.detected_seclevel.name.lower()} by the subscripts the script calls"
                ))
            self.seclevel = min(self.stated_seclevel, self.detected_seclevel)

        analysis, parents = self._tree()
        for ident in analysis.globals("_SECLEVEL"):
            replace_child(parents[id(ident)], ident, NumericLiteral(int(self.seclevel), line=ident.line))

    def _demand(self, namespace: str, line: int) -> None:
        tier = TIER_NAMESPACES[namespace]
        if tier is not None and tier < self.detected_seclevel:
            logger.debug("transform.seclevel_detected", namespace=namespace, line=line)
            self.detected_seclevel = Seclevel(tier)

    def _lower_subscript(self, ident: Identifier, global_name: str, namespace: str, parents: dict) -> None:
        expected = f"{global_name}.<user>.<script>(...)"
        inner = parents.get(id(ident))
        outer = parents.get(id(inner))
        if not (isinstance(inner, MemberExpression) and inner.object is ident and not inner.computed
                and not inner.optional and isinstance(outer, MemberExpression) and outer.object is inner
                and not outer.computed and not outer.optional and isinstance(outer.property, Identifier)):
            raise GrammarError(f"invalid use of {global_name}", expected, ident.line)
        user, script = inner.property.name, outer.property.name
        if not HOST_NAME.fullmatch(user) or not HOST_NAME.fullmatch(script):
            raise GrammarError(f'"{user}.{script}" is not a valid script name', expected, ident.line)
        self._demand(namespace, ident.line)

        holder = parents.get(id(outer))
        if isinstance(holder, TaggedTemplateExpression) and holder.tag is outer:
            raise GrammarError(f"{global_name}.{user}.{script} cannot tag a template", expected, ident.line)
        if isinstance(holder, CallExpression) and holder.callee is outer and not holder.optional:
            if user == "scripts" and script == "quine" and not holder.arguments:
                replace_child(parents[id(holder)], holder, StringLiteral(self.source_code, line=holder.line))
            else:
                holder.callee = self._marker(MarkerKind.SUBSCRIPT, namespace, user, script, line=ident.line)
            return

        name = self._local("SUBSCRIPT", user, script)
        if name not in self.wrappers:
            self.warnings.append(Warning(f"{global_name}.{user}.{script} is used as a value", ident.line))
            argument = Identifier("a")
            self.wrappers[name] = ArrowFunctionExpression(
                [argument],
                CallExpression(self._marker(MarkerKind.SUBSCRIPT, namespace, user, script), [Identifier("a")]),
                True,
            )
        replace_child(holder, outer, Identifier(name, line=ident.line))

    # ---- step 4: database ----

    def lower_db(self) -> None:
        analysis, parents = self._tree()
        expected = "$db.<" + "|".join(sorted(DB_METHODS)) + ">(...)"
        for ident in analysis.globals("$db"):
            member = parents.get(id(ident))
            if not (isinstance(member, MemberExpression) and member.object is ident and not member.computed
                    and not member.optional and isinstance(member.property, Identifier)
                    and member.property.name in DB_METHODS):
                raise GrammarError("invalid use of $db", expected, ident.line)
            method = member.property.name
            holder = parents.get(id(member))
            if isinstance(holder, TaggedTemplateExpression) and holder.tag is member:
                raise GrammarError(f"$db.{method} cannot tag a template", expected, ident.line)
            if isinstance(holder, CallExpression) and holder.callee is member and not holder.optional:
                holder.callee = self._marker(MarkerKind.DB, method, line=ident.line)
                continue
            name = self._local("DB", method)
            if name not in self.wrappers:
                self.wrappers[name] = ArrowFunctionExpression(
                    [RestElement(Identifier("a"))],
                    CallExpression(self._marker(MarkerKind.DB, method), [SpreadElement(Identifier("a"))]),
                    True,
                )
            replace_child(holder, member, Identifier(name, line=ident.line))

    # ---- step 5: debug, guard and persistent object ----

    def lower_intrinsics(self) -> None:
        analysis, parents = self._tree()
        for name in ("$D", Marker(MarkerKind.DEBUG).token(self.unique_id)):
            for ident in analysis.globals(name):
                holder = parents.get(id(ident))
                if isinstance(holder, CallExpression) and holder.callee is ident:
                    holder.callee = self._marker(MarkerKind.DEBUG, line=ident.line)
                elif (isinstance(holder, MemberExpression) and holder.object is ident) or (
                    isinstance(holder, TaggedTemplateExpression) and holder.tag is ident
                ):
                    raise GrammarError("invalid use of $D", "$D(value)", ident.line)
                else:
                    wrapper = self._local("DEBUG")
                    if wrapper not in self.wrappers:
                        self.wrappers[wrapper] = ArrowFunctionExpression(
                            [Identifier("a")], CallExpression(self._marker(MarkerKind.DEBUG), [Identifier("a")]), True
                        )
                    replace_child(holder, ident, Identifier(wrapper, line=ident.line))

        for name, kind in (("$FMCL", MarkerKind.FMCL), ("$G", MarkerKind.GLOBAL)):
            for ident in analysis.globals(name):
                replace_child(parents[id(ident)], ident, self._marker(kind, line=ident.line))

    # ---- step 6: Object shims ----

    def lower_object_methods(self) -> None:
        analysis, parents = self._tree()
        builders = {
            "getPrototypeOf": ("GET_PROTOTYPE_OF", lambda fn: CallExpression(
                _member(_member(Identifier(fn), "call"), "bind"),
                [CallExpression(_member(Identifier(fn), "__lookupGetter__"), [StringLiteral("__proto__")])],
            )),
            "hasOwn": ("HAS_OWN", lambda fn: CallExpression(
                _member(_member(Identifier(fn), "call"), "bind"),
                [_member(Identifier(fn), "hasOwnProperty")],
            )),
        }
        for ident in analysis.globals("Object"):
            member = parents.get(id(ident))
            if not (isinstance(member, MemberExpression) and member.object is ident):
                continue
            method = _property_name(member)
            if method not in builders:
                continue
            label, build = builders[method]
            name = self._local(label)
            if name not in self.shims:
                self.shims[name] = build(self._short_function_name(analysis))
            replace_child(parents[id(member)], member, Identifier(name, line=member.line))

    # ---- step 7: console ----

    def redirect_console(self) -> None:
        analysis, parents = self._tree()
        for ident in analysis.globals("console"):
            member = parents.get(id(ident))
            call = parents.get(id(member))
            if not (isinstance(member, MemberExpression) and member.object is ident
                    and isinstance(call, CallExpression) and call.callee is member):
                raise GrammarError("console can only be called", "console.<method>(...)", ident.line)
            arguments = call.arguments
            if len(arguments) != 1 or isinstance(arguments[0], SpreadElement):
                arguments = [ArrayExpression(arguments, line=call.line)]
            debug = CallExpression(self._marker(MarkerKind.DEBUG, line=call.line), arguments, line=call.line)
            holder = parents[id(call)]
            if not isinstance(holder, ExpressionStatement):
                debug = UnaryExpression("void", debug, line=call.line)
            replace_child(holder, call, debug)

    # ---- step 8: entry point and global block ----

    def extract_entry(self):
        """Split the program into the entry function and the global statements."""
        name = entry_name(self.unique_id)
        statements: List[Node] = []
        entry: Optional[FunctionDeclaration] = None
        default_name: Optional[str] = None
        exports: Dict[str, str] = {}  # exported -> local

        for statement in self.program.body:
            if isinstance(statement, (ImportDeclaration, ExportAllDeclaration)) or (
                isinstance(statement, ExportNamedDeclaration) and statement.source is not None
            ):
                raise BundleError(f'import of "{statement.source.value}" was not bundled')

            if isinstance(statement, ExportDefaultDeclaration):
                declaration = statement.declaration
                if isinstance(declaration, (FunctionDeclaration, FunctionExpression)) and declaration.id is not None:
                    statements.append(FunctionDeclaration(
                        declaration.id, declaration.params, declaration.body,
                        declaration.is_async, declaration.generator, line=declaration.line,
                    ))
                    default_name = declaration.id.name
                elif isinstance(declaration, (FunctionDeclaration, FunctionExpression, ArrowFunctionExpression)):
                    entry = self._entry_from_function(declaration)
                elif isinstance(declaration, (ClassDeclaration, ClassExpression)):
                    raise GrammarError("the default export cannot be a class",
                                       "export default function (context, args) { ... }", statement.line)
                elif isinstance(declaration, Identifier):
                    default_name = declaration.name
                else:
                    entry = self._entry_calling(declaration)
            elif isinstance(statement, ExportNamedDeclaration):
                if statement.declaration is not None:
                    declaration = statement.declaration
                    statements.append(declaration)
                    if isinstance(declaration, VariableDeclaration):
                        for declarator in declaration.declarations:
                            for ident in pattern_identifiers(declarator.id):
                                exports[ident.name] = ident.name
                    else:
                        exports[declaration.id.name] = declaration.id.name
                for specifier in statement.specifiers:
                    exported = getattr(specifier.exported, "name", None) or specifier.exported.value
                    local = specifier.local.name
                    if exported == "default":
                        default_name = local
                    else:
                        exports[exported] = local
            else:
                statements.append(statement)

        if entry is None and default_name is not None:
            entry, statements = self._entry_from_name(default_name, statements)
        if entry is None:
            entry = FunctionDeclaration(Identifier(name), [Identifier("context"), Identifier("args")],
                                        BlockStatement([]))
            self._export_object(entry, exports, statements)
        self._substitute_exports(entry, exports, statements)
        return entry, statements

    def _entry_from_function(self, function: Node) -> FunctionDeclaration:
        body = function.body
        if not isinstance(body, BlockStatement):
            body = BlockStatement([ReturnStatement(body, line=body.line)], line=body.line)
        return FunctionDeclaration(Identifier(entry_name(self.unique_id)), function.params, body,
                                   function.is_async, getattr(function, "generator", False), line=function.line)

    def _entry_calling(self, callee: Node) -> FunctionDeclaration:
        call = CallExpression(callee, [Identifier("context"), Identifier("args")], line=callee.line)
        return FunctionDeclaration(
            Identifier(entry_name(self.unique_id)), [Identifier("context"), Identifier("args")],
            BlockStatement([ReturnStatement(call, line=callee.line)]), line=callee.line,
        )

    def _entry_from_name(self, name: str, statements: List[Node]):
        """Use the function bound to name as the entry when nothing else refers to it."""
        analysis = analyze(Program(statements))
        binding = analysis.root.bindings.get(name)
        if binding is not None and not binding.references and len(binding.identifiers) == 1:
            declaration = binding.declarator
            function = None
            if isinstance(declaration, FunctionDeclaration):
                function = declaration
            elif (isinstance(declaration, VariableDeclarator)
                  and isinstance(declaration.init, (FunctionExpression, ArrowFunctionExpression))):
                function = declaration.init
            if function is not None:
                remaining = []
                for statement in statements:
                    if statement is declaration:
                        continue
                    if isinstance(statement, VariableDeclaration) and declaration in statement.declarations:
                        statement.declarations.remove(declaration)
                        if not statement.declarations:
                            continue
                    remaining.append(statement)
                return self._entry_from_function(function), remaining
        return self._entry_calling(Identifier(name)), statements

    def _export_object(self, entry: FunctionDeclaration, exports: Dict[str, str], statements: List[Node]) -> None:
        """Return the named exports from an entry that has no default export."""
        bindings = analyze(Program(statements)).root.bindings
        properties = []
        for exported, local in exports.items():
            key = Identifier(exported) if is_identifier_name(exported) else StringLiteral(exported)
            binding = bindings.get(local)
            if binding is not None and binding.kind in ("let", "var"):
                # live binding
                getter = FunctionExpression(None, [], BlockStatement([ReturnStatement(Identifier(local))]))
                properties.append(Property(key, getter, "get"))
            else:
                properties.append(Property(key, Identifier(local), shorthand=exported == local))
        if properties:
            entry.body.body.append(ReturnStatement(ObjectExpression(properties)))

    def _substitute_exports(self, entry: FunctionDeclaration, exports: Dict[str, str],
                            statements: List[Node]) -> None:
        program = Program(statements + [entry])
        parents = parent_map(program)
        for ident in analyze(program).globals("_EXPORTS"):
            names = ArrayExpression([StringLiteral(exported) for exported in exports], line=ident.line)
            replace_child(parents[id(ident)], ident, names)

    def _normalize_globals(self, statements: List[Node]) -> List[Node]:
        """One binding per declaration; function declarations first, as let bindings."""
        argument_users = _argument_users(analyze(Program(statements)))
        functions, rest = [], []
        for statement in statements:
            if isinstance(statement, FunctionDeclaration):
                declaration = _let(statement.id.name, _function_value(statement, argument_users), statement.line)
                declaration.declarations[0].id = statement.id
                functions.append(declaration)
            elif isinstance(statement, VariableDeclaration):
                for declarator in statement.declarations:
                    if isinstance(declarator.id, Identifier):
                        rest.append(VariableDeclaration([declarator], statement.kind, statement.from_const,
                                                        line=statement.line))
                        continue
                    for ident in pattern_identifiers(declarator.id):
                        split = _let(ident.name, None, statement.line)
                        split.from_const = statement.kind == "const" or statement.from_const
                        rest.append(split)
                    if declarator.init is not None:
                        rest.append(ExpressionStatement(
                            AssignmentExpression("=", declarator.id, declarator.init, line=statement.line),
                            line=statement.line,
                        ))
            else:
                rest.append(statement)
        return functions + rest

    def _declared_binding(self, analysis: ScopeAnalysis, statement: Node) -> Optional[Binding]:
        if isinstance(statement, VariableDeclaration) and isinstance(statement.declarations[0].id, Identifier):
            return analysis.binding_of(statement.declarations[0].id)
        if isinstance(statement, ClassDeclaration) and statement.id is not None:
            return analysis.binding_of(statement.id)
        return None

    def _removable(self, statement: Node) -> bool:
        if isinstance(statement, VariableDeclaration):
            return is_pure(statement.declarations[0].init)
        if isinstance(statement, ClassDeclaration):
            return statement.superclass is None and all(
                isinstance(member, MethodDefinition) and not member.computed for member in statement.body.body
            )
        return False

    def _drop_unused(self, entry: FunctionDeclaration) -> ScopeAnalysis:
        while True:
            analysis = analyze(self.program)
            body = []
            for statement in self.program.body:
                binding = self._declared_binding(analysis, statement)
                if binding is not None and not binding.references and self._removable(statement):
                    logger.debug("transform.global_dropped", name=binding.name, line=statement.line)
                    continue
                body.append(statement)
            if len(body) == len(self.program.body):
                return analysis
            self.program.body = body

    def _separate_names(self, entry: FunctionDeclaration, analysis: ScopeAnalysis) -> bool:
        """Rename global-block bindings the entry function would shadow.

        Returns True if anything was renamed.
        """
        entry_scope = analysis.scope_of(entry)
        taken = analysis.declared_names() | set(analysis.unresolved)
        renamed = False
        for binding in list(analysis.root.bindings.values()):
            if binding.name == entry.id.name or binding.name not in entry_scope.bindings:
                continue
            counter = 1
            while f"{binding.name}_{counter}" in taken:
                counter += 1
            new_name = f"{binding.name}_{counter}"
            taken.add(new_name)
            binding.rename(new_name)
            renamed = True
        # Globals read by the global block must not resolve to entry locals
        for name, references in analysis.unresolved.items():
            if name in entry_scope.bindings and any(
                not analysis.reference_scope(ident).is_within(entry_scope) for ident in references
            ):
                counter = 1
                while f"{name}_{counter}" in taken:
                    counter += 1
                taken.add(f"{name}_{counter}")
                entry_scope.bindings[name].rename(f"{name}_{counter}")
                renamed = True
        return renamed

    def partition_globals(self, entry: FunctionDeclaration, statements: List[Node]):
        """Decide where each global statement ends up.

        Returns (guarded statements, hoisted declarations).
        """
        self.program.body = self._normalize_globals(statements) + [entry]
        analysis = self._drop_unused(entry)
        if self._separate_names(entry, analysis):
            analysis = analyze(self.program)
        entry_scope = analysis.scope_of(entry)

        declarations: Dict[Binding, List[Node]] = {}
        for statement in self.program.body:
            binding = self._declared_binding(analysis, statement)
            if binding is not None:
                declarations.setdefault(binding, []).append(statement)

        queue = [
            binding for binding in declarations
            if any(analysis.reference_scope(ident).is_within(entry_scope) for ident in binding.references)
        ]
        hoisted, promoted, seen = [], [], set()
        while queue:
            binding = queue.pop(0)
            if binding in seen:
                continue
            seen.add(binding)
            statement = declarations[binding][0]
            if self._hoistable(binding, declarations[binding]):
                hoisted.append(binding)
                for node in walk(statement):
                    if isinstance(node, Identifier):
                        other = analysis.binding_of(node)
                        if other is not None and other is not binding and other in declarations:
                            queue.append(other)
            else:
                promoted.append(binding)

        parents = parent_map(self.program)
        for binding in promoted:
            logger.debug("transform.global_promoted", name=binding.name)
            for ident in binding.references:
                access = _member(self._marker(MarkerKind.GLOBAL, line=ident.line), binding.name, ident.line)
                replace_child(parents[id(ident)], ident, access)
        replacements = {}
        for binding in promoted:
            for statement in declarations[binding]:
                replacements[id(statement)] = self._promoted_declaration(binding, statement)

        hoisted_statements = {id(declarations[binding][0]) for binding in hoisted}
        guard, hoisted_list = [], []
        for statement in self.program.body:
            if statement is entry:
                continue
            if id(statement) in hoisted_statements:
                hoisted_list.append(statement)
            elif id(statement) in replacements:
                if replacements[id(statement)] is not None:
                    guard.append(replacements[id(statement)])
            else:
                guard.append(statement)
        self.program.body = [entry]
        return guard, hoisted_list

    def _hoistable(self, binding: Binding, statements: List[Node]) -> bool:
        if len(statements) != 1 or binding.writes or not isinstance(statements[0], VariableDeclaration):
            return False
        return isinstance(statements[0].declarations[0].init, (FunctionExpression, ArrowFunctionExpression))

    def _promoted_declaration(self, binding: Binding, statement: Node) -> Optional[Node]:
        target = _member(self._marker(MarkerKind.GLOBAL, line=statement.line), binding.name, statement.line)
        if isinstance(statement, ClassDeclaration):
            value = ClassExpression(None, statement.superclass, statement.body, line=statement.line)
        else:
            value = statement.declarations[0].init
            if value is None:
                return None
        return ExpressionStatement(AssignmentExpression("=", target, value, line=statement.line),
                                   line=statement.line)

    # ---- step 12: assembly ----

    def assemble(self, entry: FunctionDeclaration, hoisted: List[Node], guard: List[Node]) -> None:
        prologue: List[Node] = []
        if self.identity:
            context = self._context_name(entry, prologue)
            for name, build in self.identity.items():
                prologue.append(_let(name, build(context)))

        global_token = Marker(MarkerKind.GLOBAL).token(self.unique_id)
        if guard:
            fmcl = self._marker(MarkerKind.FMCL)
            guard = [IfStatement(UnaryExpression("!", fmcl), BlockStatement(guard), None)]
        entry.body.body[:0] = hoisted + guard

        analysis, parents = self._tree()
        references = analysis.globals(global_token)
        if len(references) > 3:
            name = self._local("G")
            for ident in references:
                replace_child(parents[id(ident)], ident, Identifier(name, line=ident.line))
            prologue.append(_let(name, self._marker(MarkerKind.GLOBAL)))

        prologue.extend(_let(name, init) for name, init in self.wrappers.items())
        prologue.extend(_let(name, init) for name, init in self.shims.items())
        entry.body.body[:0] = prologue

    def _context_name(self, entry: FunctionDeclaration, prologue: List[Node]) -> str:
        params = entry.params
        if params and isinstance(params[0], Identifier):
            return params[0].name
        if params and isinstance(params[0], AssignmentPattern) and isinstance(params[0].left, Identifier):
            return params[0].left.name
        name = self._local("CONTEXT")
        if params:
            prologue.append(VariableDeclaration([VariableDeclarator(params[0], Identifier(name))], "let"))
            params[0] = Identifier(name)
        else:
            params.append(Identifier(name))
        return name

    def drop_unused_params(self, entry: FunctionDeclaration) -> None:
        scope = analyze(self.program).scope_of(entry)
        while entry.params and isinstance(entry.params[-1], Identifier):
            binding = scope.bindings.get(entry.params[-1].name)
            if binding is not None and binding.references:
                break
            entry.params.pop()


def transform(program: Program, source_code: str, unique_id: str, script_user: Optional[str] = None,
              script_name: Optional[str] = None, seclevel: Optional[int] = None) -> TransformResult:
    """Lower a preprocessed, bundled program into a single host function.

    script_user and script_name are None when the destination is not known
    yet. seclevel is the stated security level, if any; the result carries
    the effective one.
    """
    return Transformer(program, source_code, unique_id, script_user, script_name, seclevel).run()
