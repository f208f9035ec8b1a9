"""AST node types for the script parser.

Node names and fields follow the ESTree conventions so the tree reads the
same way in every stage of the pipeline.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Union


@dataclass
class Node:
    """Base class for all AST nodes."""

    line: int = field(default=0, kw_only=True, compare=False, repr=False)

    def to_dict(self) -> dict:
        """Convert node to dictionary for testing/serialization."""
        result = {"type": self.__class__.__name__}
        for key, value in self.__dict__.items():
            if key == "line":
                continue
            if isinstance(value, Node):
                result[key] = value.to_dict()
            elif isinstance(value, list):
                result[key] = [
                    v.to_dict() if isinstance(v, Node) else v
                    for v in value
                ]
            else:
                result[key] = value
        return result


# Literals
@dataclass
class NumericLiteral(Node):
    """Numeric literal: 42, 3.14, etc."""
    value: Union[int, float]


@dataclass
class BigIntLiteral(Node):
    """BigInt literal: 10n. The value is the decimal digit string."""
    value: str


@dataclass
class StringLiteral(Node):
    """String literal: "hello", 'world'"""
    value: str


@dataclass
class BooleanLiteral(Node):
    """Boolean literal: true, false"""
    value: bool


@dataclass
class NullLiteral(Node):
    """Null literal: null"""
    pass


@dataclass
class RegexLiteral(Node):
    """Regex literal: /pattern/flags"""
    pattern: str
    flags: str


@dataclass
class TemplateElement(Node):
    """Static chunk of a template literal.

    ``cooked`` is None for chunks with escapes that are only legal in
    tagged templates.
    """
    cooked: Optional[str]
    raw: str


@dataclass
class TemplateLiteral(Node):
    """Template literal: `a${b}c`"""
    quasis: List[TemplateElement]
    expressions: List[Node]


@dataclass
class TaggedTemplateExpression(Node):
    """Tagged template: tag`a${b}`"""
    tag: Node
    quasi: TemplateLiteral


@dataclass
class Identifier(Node):
    """Identifier: variable names, property names"""
    name: str


@dataclass
class PrivateName(Node):
    """Private class member name: #x"""
    name: str


@dataclass
class ThisExpression(Node):
    """The 'this' keyword."""
    pass


@dataclass
class Super(Node):
    """The 'super' keyword."""
    pass


# Expressions
@dataclass
class ArrayExpression(Node):
    """Array literal: [1, 2, 3]. Holes are None."""
    elements: List[Optional[Node]]


@dataclass
class ObjectExpression(Node):
    """Object literal: {a: 1, b: 2}"""
    properties: List[Node]  # Property or SpreadElement


@dataclass
class Property(Node):
    """Object property: key: value"""
    key: Node  # Identifier or Literal
    value: Node
    kind: str = "init"  # "init", "get", or "set"
    computed: bool = False
    shorthand: bool = False
    method: bool = False


@dataclass
class SpreadElement(Node):
    """Spread: ...x"""
    argument: Node


@dataclass
class UnaryExpression(Node):
    """Unary expression: -x, !x, typeof x, etc."""
    operator: str
    argument: Node
    prefix: bool = True


@dataclass
class UpdateExpression(Node):
    """Update expression: ++x, x++, --x, x--"""
    operator: str  # "++" or "--"
    argument: Node
    prefix: bool


@dataclass
class BinaryExpression(Node):
    """Binary expression: a + b, a * b, etc."""
    operator: str
    left: Node
    right: Node


@dataclass
class LogicalExpression(Node):
    """Logical expression: a && b, a || b, a ?? b"""
    operator: str
    left: Node
    right: Node


@dataclass
class ConditionalExpression(Node):
    """Conditional (ternary) expression: a ? b : c"""
    test: Node
    consequent: Node
    alternate: Node


@dataclass
class AssignmentExpression(Node):
    """Assignment expression: a = b, a += b, etc."""
    operator: str
    left: Node
    right: Node


@dataclass
class SequenceExpression(Node):
    """Sequence expression: a, b, c"""
    expressions: List[Node]


@dataclass
class MemberExpression(Node):
    """Member expression: a.b, a[b], a?.b"""
    object: Node
    property: Node
    computed: bool  # True for a[b], False for a.b
    optional: bool = False


@dataclass
class CallExpression(Node):
    """Call expression: f(a, b), f?.(a)"""
    callee: Node
    arguments: List[Node]
    optional: bool = False


@dataclass
class ChainExpression(Node):
    """Wraps a member/call chain that contains an optional link."""
    expression: Node


@dataclass
class NewExpression(Node):
    """New expression: new Foo(a, b)"""
    callee: Node
    arguments: List[Node]


@dataclass
class AwaitExpression(Node):
    """Await expression: await x"""
    argument: Node


@dataclass
class YieldExpression(Node):
    """Yield expression: yield x, yield* x"""
    argument: Optional[Node]
    delegate: bool = False


# Patterns
@dataclass
class AssignmentPattern(Node):
    """Default value in a binding: (a = 1) => a"""
    left: Node
    right: Node


@dataclass
class ArrayPattern(Node):
    """Array destructuring: [a, , b] = x"""
    elements: List[Optional[Node]]


@dataclass
class ObjectPattern(Node):
    """Object destructuring: {a, b: c} = x"""
    properties: List[Node]  # Property or RestElement


@dataclass
class RestElement(Node):
    """Rest binding: ...rest"""
    argument: Node


# Statements
@dataclass
class Program(Node):
    """Program node - root of AST."""
    body: List[Node]


@dataclass
class ExpressionStatement(Node):
    """Expression statement: expression;"""
    expression: Node


@dataclass
class BlockStatement(Node):
    """Block statement: { ... }"""
    body: List[Node]


@dataclass
class EmptyStatement(Node):
    """Empty statement: ;"""
    pass


@dataclass
class VariableDeclaration(Node):
    """Variable declaration: var a = 1, b = 2;

    ``from_const`` remembers a ``const`` that has been lowered to ``let``.
    """
    declarations: List["VariableDeclarator"]
    kind: str = "var"
    from_const: bool = False


@dataclass
class VariableDeclarator(Node):
    """Variable declarator: a = 1"""
    id: Node  # Identifier or pattern
    init: Optional[Node]


@dataclass
class IfStatement(Node):
    """If statement: if (test) consequent else alternate"""
    test: Node
    consequent: Node
    alternate: Optional[Node]


@dataclass
class WhileStatement(Node):
    """While statement: while (test) body"""
    test: Node
    body: Node


@dataclass
class DoWhileStatement(Node):
    """Do-while statement: do body while (test)"""
    body: Node
    test: Node


@dataclass
class ForStatement(Node):
    """For statement: for (init; test; update) body"""
    init: Optional[Node]  # VariableDeclaration or Expression
    test: Optional[Node]
    update: Optional[Node]
    body: Node


@dataclass
class ForInStatement(Node):
    """For-in statement: for (left in right) body"""
    left: Node  # VariableDeclaration or Pattern
    right: Node
    body: Node


@dataclass
class ForOfStatement(Node):
    """For-of statement: for (left of right) body"""
    left: Node
    right: Node
    body: Node
    is_await: bool = False


@dataclass
class BreakStatement(Node):
    """Break statement: break; or break label;"""
    label: Optional[Identifier]


@dataclass
class ContinueStatement(Node):
    """Continue statement: continue; or continue label;"""
    label: Optional[Identifier]


@dataclass
class ReturnStatement(Node):
    """Return statement: return; or return expr;"""
    argument: Optional[Node]


@dataclass
class ThrowStatement(Node):
    """Throw statement: throw expr;"""
    argument: Node


@dataclass
class TryStatement(Node):
    """Try statement: try { } catch (e) { } finally { }"""
    block: BlockStatement
    handler: Optional["CatchClause"]
    finalizer: Optional[BlockStatement]


@dataclass
class CatchClause(Node):
    """Catch clause: catch (param) { body }. The param is optional."""
    param: Optional[Node]
    body: BlockStatement


@dataclass
class SwitchStatement(Node):
    """Switch statement: switch (discriminant) { cases }"""
    discriminant: Node
    cases: List["SwitchCase"]


@dataclass
class SwitchCase(Node):
    """Switch case: case test: consequent or default: consequent"""
    test: Optional[Node]  # None for default
    consequent: List[Node]


@dataclass
class LabeledStatement(Node):
    """Labeled statement: label: statement"""
    label: Identifier
    body: Node


# Functions
@dataclass
class FunctionDeclaration(Node):
    """Function declaration: function name(params) { body }"""
    id: Optional[Identifier]
    params: List[Node]
    body: BlockStatement
    is_async: bool = False
    generator: bool = False


@dataclass
class FunctionExpression(Node):
    """Function expression: function name(params) { body }"""
    id: Optional[Identifier]
    params: List[Node]
    body: BlockStatement
    is_async: bool = False
    generator: bool = False


@dataclass
class ArrowFunctionExpression(Node):
    """Arrow function: (params) => body

    ``expression`` is True when the body is an expression rather than a
    block.
    """
    params: List[Node]
    body: Node
    expression: bool = False
    is_async: bool = False


# Classes
@dataclass
class ClassBody(Node):
    """Members of a class."""
    body: List[Node]


@dataclass
class ClassDeclaration(Node):
    """Class declaration: class Name extends Base { ... }"""
    id: Optional[Identifier]
    superclass: Optional[Node]
    body: ClassBody


@dataclass
class ClassExpression(Node):
    """Class expression: (class extends Base { ... })"""
    id: Optional[Identifier]
    superclass: Optional[Node]
    body: ClassBody


@dataclass
class MethodDefinition(Node):
    """Class method: kind is constructor, method, get or set."""
    key: Node
    value: FunctionExpression
    kind: str = "method"
    computed: bool = False
    static: bool = False


@dataclass
class PropertyDefinition(Node):
    """Class field: x = 1, static y, #z"""
    key: Node
    value: Optional[Node]
    computed: bool = False
    static: bool = False


@dataclass
class StaticBlock(Node):
    """Class static initialization block: static { ... }"""
    body: List[Node]


# Modules
@dataclass
class ImportSpecifier(Node):
    """Named import: { imported as local }"""
    imported: Node  # Identifier or StringLiteral
    local: Identifier


@dataclass
class ImportDefaultSpecifier(Node):
    """Default import: import local from "x" """
    local: Identifier


@dataclass
class ImportNamespaceSpecifier(Node):
    """Namespace import: import * as local from "x" """
    local: Identifier


@dataclass
class ImportDeclaration(Node):
    """Import declaration: import a, { b } from "source" """
    specifiers: List[Node]
    source: StringLiteral


@dataclass
class ExportSpecifier(Node):
    """Named export: export { local as exported }"""
    local: Node
    exported: Node


@dataclass
class ExportNamedDeclaration(Node):
    """Named export of a declaration or a specifier list."""
    declaration: Optional[Node]
    specifiers: List[ExportSpecifier] = field(default_factory=list)
    source: Optional[StringLiteral] = None


@dataclass
class ExportDefaultDeclaration(Node):
    """Default export: export default <declaration or expression>"""
    declaration: Node


@dataclass
class ExportAllDeclaration(Node):
    """Re-export: export * from "source" """
    source: StringLiteral
    exported: Optional[Node] = None


FUNCTION_TYPES = (FunctionDeclaration, FunctionExpression, ArrowFunctionExpression)
LITERAL_TYPES = (NumericLiteral, StringLiteral, BooleanLiteral, NullLiteral, BigIntLiteral, RegexLiteral)
