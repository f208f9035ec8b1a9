"""Code generation - turns an AST back into script source.

Two layouts are supported. The pretty layout indents with two spaces and
puts every statement on its own line. The compact layout drops every
optional space and separates statements with a newline wherever automatic
semicolon insertion makes that safe, because newlines are not billed.

Whatever the layout, the output never contains text the host would read as
one of its own sigils: string contents are escaped and ``prototype`` /
``__proto__`` are always accessed with a computed string key.
"""

import math
import re
from typing import List

from .ast_nodes import (
    Node, Program, NumericLiteral, BigIntLiteral, StringLiteral, BooleanLiteral,
    NullLiteral, RegexLiteral, TemplateLiteral, TaggedTemplateExpression,
    Identifier, PrivateName, ThisExpression, Super, ArrayExpression,
    ObjectExpression, Property, SpreadElement, UnaryExpression,
    UpdateExpression, BinaryExpression, LogicalExpression,
    ConditionalExpression, AssignmentExpression, SequenceExpression,
    MemberExpression, CallExpression, ChainExpression, NewExpression,
    AwaitExpression, YieldExpression, AssignmentPattern, ArrayPattern,
    ObjectPattern, RestElement, ExpressionStatement, BlockStatement,
    EmptyStatement, VariableDeclaration, IfStatement,
    WhileStatement, DoWhileStatement, ForStatement, ForInStatement,
    ForOfStatement, BreakStatement, ContinueStatement, ReturnStatement,
    ThrowStatement, TryStatement, SwitchStatement, LabeledStatement,
    FunctionDeclaration, FunctionExpression, ArrowFunctionExpression,
    ClassDeclaration, ClassExpression, MethodDefinition, PropertyDefinition,
    StaticBlock, ImportDeclaration, ImportDefaultSpecifier,
    ImportNamespaceSpecifier, ExportNamedDeclaration, ExportDefaultDeclaration,
    ExportAllDeclaration,
)
from .lexer import is_identifier_part
from .parser import PRECEDENCE


# Expression precedence levels (higher binds tighter)
SEQUENCE = 0
ASSIGNMENT = 1
CONDITIONAL = 2
BINARY_OFFSET = 2
UNARY = 14
UPDATE = 15
CALL = 16
PRIMARY = 17

# Property names the host only accepts through a computed string key
COMPUTED_ONLY_PROPERTIES = frozenset({"prototype", "__proto__"})

# Sequences the host reserves, paired with an escaped spelling
HOST_SEQUENCES = (
    ("SC$", "S\\C$"),
    ("DB$", "D\\B$"),
    ("__D_S", "_\\_D_S"),
    ("__FMCL_", "_\\_FMCL_"),
    ("__G_", "_\\_G_"),
)

_STATEMENT_HAZARD = re.compile(r"(?:\{|function\b|async\s+function\b|class\b|let\s*\[)")
_ASI_HAZARD = "([+-/`"
_ESCAPES = {
    "\\": "\\\\",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\b": "\\b",
    "\f": "\\f",
    "\v": "\\v",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def format_number(value) -> str:
    """Shortest source text for a non-negative number."""
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "(1/0)"
        if value.is_integer() and abs(value) < 1e21:
            value = int(value)
    if isinstance(value, int):
        text = str(value)
        digits = text.rstrip("0")
        candidates = [text]
        if len(text) - len(digits) > 2:
            candidates.append(f"{digits}e{len(text) - len(digits)}")
        if value >= 10 ** 12:
            candidates.append(hex(value))
        return min(candidates, key=len)

    mantissa, _, exponent = repr(value).partition("e")
    int_part, _, fraction = mantissa.partition(".")
    digits = int_part + fraction
    point = len(int_part) + int(exponent or 0)
    stripped = digits.lstrip("0")
    point -= len(digits) - len(stripped)
    digits = stripped.rstrip("0") or "0"
    if point <= 0:
        plain = "." + "0" * -point + digits
    elif point >= len(digits):
        plain = digits + "0" * (point - len(digits))
    else:
        plain = digits[:point] + "." + digits[point:]
    scientific = f"{digits}e{point - len(digits)}"
    return plain if len(plain) <= len(scientific) else scientific


def escape_host_sequences(text: str) -> str:
    """Escape already-quoted string text so the host sees no sigils in it."""
    text = re.sub(r"/(?=/)", "/\\\\", text)
    text = re.sub(r"#(?=[A-Za-z0-9])", "\\\\#", text)
    for sequence, escaped in HOST_SEQUENCES:
        text = text.replace(sequence, escaped)
    return text


def format_string(value: str) -> str:
    """Quote a string, picking whichever quote character needs fewer escapes."""
    quote = "'" if value.count('"') > value.count("'") else '"'
    out = []
    for index, ch in enumerate(value):
        if ch in _ESCAPES:
            out.append(_ESCAPES[ch])
        elif ch == quote:
            out.append("\\" + ch)
        elif ch == "\0":
            following = value[index + 1:index + 2]
            out.append("\\x00" if following.isdigit() else "\\0")
        elif ord(ch) < 0x20 or ord(ch) == 0x7f:
            out.append(f"\\x{ord(ch):02x}")
        else:
            out.append(ch)
    return quote + escape_host_sequences("".join(out)) + quote


def is_identifier_name(name: str) -> bool:
    return bool(re.fullmatch(r"[A-Za-z_$][A-Za-z0-9_$]*", name))


def precedence(node: Node) -> int:
    """Binding strength of an expression node."""
    if isinstance(node, SequenceExpression):
        return SEQUENCE
    if isinstance(node, (AssignmentExpression, ArrowFunctionExpression, YieldExpression)):
        return ASSIGNMENT
    if isinstance(node, ConditionalExpression):
        return CONDITIONAL
    if isinstance(node, (BinaryExpression, LogicalExpression)):
        return BINARY_OFFSET + PRECEDENCE[node.operator]
    if isinstance(node, (UnaryExpression, AwaitExpression)):
        return UNARY
    if isinstance(node, UpdateExpression):
        return UPDATE
    if isinstance(node, NumericLiteral) and node.value < 0:
        return UNARY
    if isinstance(node, (CallExpression, MemberExpression, NewExpression,
                         TaggedTemplateExpression, ChainExpression)):
        return CALL
    return PRIMARY


def _contains_call(node: Node) -> bool:
    while True:
        if isinstance(node, CallExpression):
            return True
        if isinstance(node, (MemberExpression, TaggedTemplateExpression)):
            node = node.object if isinstance(node, MemberExpression) else node.tag
        elif isinstance(node, ChainExpression):
            return True
        else:
            return False


class CodeGenerator:
    """Generates source text from an AST."""

    def __init__(self, compact: bool = False, indent: str = "  "):
        self.compact = compact
        self.indent_unit = indent
        self._depth = 0
        self._in_for_init = False

    def generate(self, node: Node) -> str:
        if isinstance(node, Program):
            return self._statement_list(node.body)
        if node.__class__.__name__.endswith(("Statement", "Declaration")):
            text = self._statement(node)
            if self._needs_terminator(node):
                text += ";"
            return text
        return self._expr(node)

    # ---- layout helpers ----

    @property
    def _indent(self) -> str:
        return "" if self.compact else self.indent_unit * self._depth

    def _space(self) -> str:
        return "" if self.compact else " "

    def _concat(self, left: str, right: str) -> str:
        """Join two pieces of code, adding a space only where tokens would merge."""
        if not left or not right:
            return left + right
        a, b = left[-1], right[0]
        if (
            (is_identifier_part(a) or a == "\\") and (is_identifier_part(b) or b == "\\")
            or a == b and a in "+-"
            or a == "/" and b in "/*"
            or a == "<" and right.startswith("!--")
            or a.isdigit() and b == "."
        ):
            return left + " " + right
        return left + right

    def _word(self, keyword: str, rest: str) -> str:
        """Keyword followed by more code, e.g. ``return x``."""
        if self.compact:
            return self._concat(keyword, rest)
        return keyword + " " + rest

    def _block(self, statements: List[Node]) -> str:
        if not statements:
            return "{}"
        if self.compact:
            return "{" + self._statement_list(statements) + "}"
        self._depth += 1
        inner = self._statement_list(statements)
        self._depth -= 1
        return "{\n" + inner + "\n" + self._indent + "}"

    def _statement_list(self, statements: List[Node], trailing: bool = False) -> str:
        texts = [self._statement(stmt) for stmt in statements]
        if not self.compact:
            lines = []
            for stmt, text in zip(statements, texts):
                if self._needs_terminator(stmt):
                    text += ";"
                lines.append(self._indent + text)
            return "\n".join(lines)

        out = []
        for index, (stmt, text) in enumerate(zip(statements, texts)):
            out.append(text)
            last = index == len(statements) - 1
            if not self._needs_terminator(stmt) or (last and not trailing):
                continue
            following = "" if last else texts[index + 1][:1]
            out.append(";" if following and following in _ASI_HAZARD else "\n")
        return "".join(out)

    def _needs_terminator(self, node: Node) -> bool:
        """Whether a statement must be followed by a separator."""
        if isinstance(node, (ExpressionStatement, VariableDeclaration, ReturnStatement,
                             ThrowStatement, BreakStatement, ContinueStatement,
                             DoWhileStatement, ImportDeclaration, ExportAllDeclaration)):
            return True
        if isinstance(node, IfStatement):
            return self._needs_terminator(node.alternate or node.consequent)
        if isinstance(node, (WhileStatement, ForStatement, ForInStatement,
                             ForOfStatement, LabeledStatement)):
            return self._needs_terminator(node.body)
        if isinstance(node, ExportNamedDeclaration):
            return node.declaration is None or self._needs_terminator(node.declaration)
        if isinstance(node, ExportDefaultDeclaration):
            return not isinstance(node.declaration, (FunctionDeclaration, ClassDeclaration))
        return False

    def _body(self, node: Node) -> str:
        """A statement in the body position of if/for/while/label."""
        if isinstance(node, (ClassDeclaration, FunctionDeclaration)) or (
            isinstance(node, VariableDeclaration) and node.kind != "var"
        ):
            return self._block([node])
        return self._statement(node)

    def _sub_statement(self, keyword_part: str, body: Node) -> str:
        text = self._body(body)
        if self.compact:
            return self._concat(keyword_part, text)
        return keyword_part + " " + text

    # ---- statements ----

    def _statement(self, node: Node) -> str:
        if isinstance(node, ExpressionStatement):
            text = self._expr(node.expression)
            if _STATEMENT_HAZARD.match(text):
                text = "(" + text + ")"
            return text

        elif isinstance(node, BlockStatement):
            return self._block(node.body)

        elif isinstance(node, EmptyStatement):
            return ";"

        elif isinstance(node, VariableDeclaration):
            return self._variable_declaration(node)

        elif isinstance(node, IfStatement):
            consequent = node.consequent
            if node.alternate is not None and self._ends_with_open_if(consequent):
                consequent = BlockStatement([consequent])
            text = self._sub_statement("if" + self._space() + "(" + self._expr(node.test) + ")", consequent)
            if node.alternate is None:
                return text
            if self._needs_terminator(consequent):
                text += "\n" if self.compact else ";"
            if self.compact:
                return self._concat(text, self._sub_statement("else", node.alternate))
            separator = " " if isinstance(consequent, BlockStatement) else "\n" + self._indent
            return text + separator + self._sub_statement("else", node.alternate)

        elif isinstance(node, WhileStatement):
            return self._sub_statement("while" + self._space() + "(" + self._expr(node.test) + ")", node.body)

        elif isinstance(node, DoWhileStatement):
            text = self._sub_statement("do", node.body)
            if self._needs_terminator(node.body):
                text += "\n" if self.compact else ";"
            tail = "while" + self._space() + "(" + self._expr(node.test) + ")"
            if self.compact:
                return self._concat(text, tail)
            return text + " " + tail

        elif isinstance(node, ForStatement):
            self._in_for_init = True
            if node.init is None:
                init = ""
            elif isinstance(node.init, VariableDeclaration):
                init = self._variable_declaration(node.init)
            else:
                init = self._expr(node.init)
            self._in_for_init = False
            sep = ";" + self._space()
            test = self._expr(node.test) if node.test is not None else ""
            update = self._expr(node.update) if node.update is not None else ""
            head = "for" + self._space() + "(" + init + sep + test + sep + update + ")"
            if not self.compact:
                head = head.replace("; ;", ";;").replace("; )", ";)")
            return self._sub_statement(head, node.body)

        elif isinstance(node, (ForInStatement, ForOfStatement)):
            if isinstance(node.left, VariableDeclaration):
                left = self._variable_declaration(node.left)
            else:
                left = self._expr(node.left, CALL)
            keyword = "in" if isinstance(node, ForInStatement) else "of"
            right = self._expr(node.right, ASSIGNMENT if keyword == "of" else SEQUENCE)
            if self.compact:
                inner = self._concat(self._concat(left, keyword), right)
            else:
                inner = f"{left} {keyword} {right}"
            prefix = "for" + (" await" if getattr(node, "is_await", False) else "")
            return self._sub_statement(prefix + self._space() + "(" + inner + ")", node.body)

        elif isinstance(node, BreakStatement):
            return "break" if node.label is None else "break " + node.label.name

        elif isinstance(node, ContinueStatement):
            return "continue" if node.label is None else "continue " + node.label.name

        elif isinstance(node, ReturnStatement):
            if node.argument is None:
                return "return"
            return self._word("return", self._expr(node.argument))

        elif isinstance(node, ThrowStatement):
            return self._word("throw", self._expr(node.argument))

        elif isinstance(node, TryStatement):
            text = "try" + self._space() + self._block(node.block.body)
            if node.handler is not None:
                handler = "catch"
                if node.handler.param is not None:
                    handler += self._space() + "(" + self._expr(node.handler.param) + ")"
                text += self._space() + handler + self._space() + self._block(node.handler.body.body)
            if node.finalizer is not None:
                text += self._space() + "finally" + self._space() + self._block(node.finalizer.body)
            return text

        elif isinstance(node, SwitchStatement):
            return self._switch(node)

        elif isinstance(node, LabeledStatement):
            return node.label.name + ":" + self._space() + self._body(node.body)

        elif isinstance(node, FunctionDeclaration):
            return self._function(node)

        elif isinstance(node, ClassDeclaration):
            return self._class(node)

        elif isinstance(node, ImportDeclaration):
            return self._import(node)

        elif isinstance(node, ExportNamedDeclaration):
            if node.declaration is not None:
                return self._word("export", self._statement(node.declaration))
            specifiers = []
            for specifier in node.specifiers:
                local = self._module_name(specifier.local)
                exported = self._module_name(specifier.exported)
                specifiers.append(local if local == exported else f"{local} as {exported}")
            text = "export" + self._space() + "{" + ("," + self._space()).join(specifiers) + "}"
            if node.source is not None:
                text += self._space() + "from" + self._space() + format_string(node.source.value)
            return text

        elif isinstance(node, ExportDefaultDeclaration):
            declaration = node.declaration
            if isinstance(declaration, (FunctionDeclaration, ClassDeclaration)):
                return self._word("export default", self._statement(declaration))
            return self._word("export default", self._expr(declaration, ASSIGNMENT))

        elif isinstance(node, ExportAllDeclaration):
            text = "export" + self._space() + "*"
            if node.exported is not None:
                text += " as " + self._module_name(node.exported)
            return text + self._space() + "from" + self._space() + format_string(node.source.value)

        raise TypeError(f"Cannot generate code for {type(node).__name__}")

    def _ends_with_open_if(self, node: Node) -> bool:
        """True if an ``else`` following node would attach to a nested if."""
        while True:
            if isinstance(node, IfStatement):
                if node.alternate is None:
                    return True
                node = node.alternate
            elif isinstance(node, (WhileStatement, ForStatement, ForInStatement,
                                   ForOfStatement, LabeledStatement)):
                node = node.body
            else:
                return False

    def _variable_declaration(self, node: VariableDeclaration) -> str:
        parts = []
        for declarator in node.declarations:
            text = self._expr(declarator.id, CALL)
            if declarator.init is not None:
                eq = "=" if self.compact else " = "
                text += eq + self._expr(declarator.init, ASSIGNMENT)
            parts.append(text)
        return self._word(node.kind, ("," + self._space()).join(parts))

    def _switch(self, node: SwitchStatement) -> str:
        head = "switch" + self._space() + "(" + self._expr(node.discriminant) + ")" + self._space()
        if not node.cases:
            return head + "{}"
        cases = []
        self._depth += 1
        for index, case in enumerate(node.cases):
            if case.test is None:
                label = "default:"
            else:
                label = self._word("case", self._expr(case.test)) + ":"
            if self.compact:
                last = index == len(node.cases) - 1
                cases.append(label + self._statement_list(case.consequent, trailing=not last))
            else:
                self._depth += 1
                body = self._statement_list(case.consequent)
                self._depth -= 1
                cases.append(self._indent + label + ("\n" + body if body else ""))
        self._depth -= 1
        if self.compact:
            return head + "{" + "".join(cases) + "}"
        return head + "{\n" + "\n".join(cases) + "\n" + self._indent + "}"

    def _import(self, node: ImportDeclaration) -> str:
        source = format_string(node.source.value)
        if not node.specifiers:
            return self._word("import", source)
        parts = []
        named = []
        for specifier in node.specifiers:
            if isinstance(specifier, ImportDefaultSpecifier):
                parts.append(specifier.local.name)
            elif isinstance(specifier, ImportNamespaceSpecifier):
                parts.append("* as " + specifier.local.name)
            else:
                imported = self._module_name(specifier.imported)
                local = specifier.local.name
                named.append(local if imported == local else f"{imported} as {local}")
        if named:
            parts.append("{" + ("," + self._space()).join(named) + "}")
        clause = ("," + self._space()).join(parts)
        if self.compact:
            return self._concat(self._concat(self._concat("import", clause), "from"), source)
        return f"import {clause} from {source}"

    def _module_name(self, node: Node) -> str:
        if isinstance(node, StringLiteral):
            return format_string(node.value)
        return node.name

    # ---- functions and classes ----

    def _params(self, params: List[Node]) -> str:
        return "(" + ("," + self._space()).join(self._expr(p, ASSIGNMENT) for p in params) + ")"

    def _function(self, node: Node) -> str:
        head = "async function" if node.is_async else "function"
        if node.generator:
            head += "*"
        if node.id is not None:
            head = head + ("" if node.generator and self.compact else " ") + node.id.name
        return head + self._params(node.params) + self._space() + self._block(node.body.body)

    def _arrow(self, node: ArrowFunctionExpression) -> str:
        params = node.params
        if self.compact and len(params) == 1 and isinstance(params[0], Identifier):
            head = params[0].name
        else:
            head = self._params(params)
        if node.is_async:
            head = self._word("async", head)
        arrow = "=>" if self.compact else " => "
        if isinstance(node.body, BlockStatement):
            return head + arrow + self._block(node.body.body)
        body = self._expr(node.body, ASSIGNMENT)
        if body.startswith("{"):
            body = "(" + body + ")"
        return head + arrow + body

    def _property_key(self, key: Node, computed: bool) -> str:
        if computed:
            return "[" + self._expr(key, ASSIGNMENT) + "]"
        if isinstance(key, Identifier):
            return key.name
        if isinstance(key, PrivateName):
            return "#" + key.name
        return self._expr(key)

    def _method(self, key_text: str, function: FunctionExpression, kind: str, is_static: bool) -> str:
        prefix = ""
        if is_static:
            prefix = "static "
        if kind in ("get", "set"):
            prefix += kind + " "
        if function.is_async:
            prefix += "async "
        if function.generator:
            prefix += "*"
        if self.compact and prefix.endswith(" ") and not is_identifier_part(key_text[:1]):
            prefix = prefix.rstrip()
        return (prefix + key_text + self._params(function.params) + self._space()
                + self._block(function.body.body))

    def _class(self, node: Node) -> str:
        head = "class"
        if node.id is not None:
            head += " " + node.id.name
        if node.superclass is not None:
            head = self._word(head + " extends", self._expr(node.superclass, CALL))
        members = []
        for member in node.body.body:
            if isinstance(member, MethodDefinition):
                key = self._property_key(member.key, member.computed)
                members.append(self._method(key, member.value, member.kind, member.static))
            elif isinstance(member, PropertyDefinition):
                text = ("static " if member.static else "") + self._property_key(member.key, member.computed)
                if member.value is not None:
                    text += ("=" if self.compact else " = ") + self._expr(member.value, ASSIGNMENT)
                members.append(text + ";")
            elif isinstance(member, StaticBlock):
                members.append("static" + self._space() + self._block(member.body))
        if not members:
            return head + self._space() + "{}"
        if self.compact:
            return head + "{" + "".join(members) + "}"
        self._depth += 1
        inner = "\n".join(self._indent + text for text in members)
        self._depth -= 1
        return head + " {\n" + inner + "\n" + self._indent + "}"

    # ---- expressions ----

    def _expr(self, node: Node, level: int = SEQUENCE) -> str:
        text = self._expression(node)
        if precedence(node) < level:
            return "(" + text + ")"
        return text

    def _operand(self, node: Node, level: int) -> str:
        """Object of a member access or callee of a call."""
        if isinstance(node, ChainExpression):
            return "(" + self._expression(node) + ")"
        text = self._expr(node, level)
        if isinstance(node, NumericLiteral) and text.isdigit():
            text += "."
        return text

    def _expression(self, node: Node) -> str:
        if isinstance(node, NumericLiteral):
            if node.value < 0:
                return "-" + format_number(-node.value)
            return format_number(node.value)

        elif isinstance(node, BigIntLiteral):
            return node.value + "n"

        elif isinstance(node, StringLiteral):
            return format_string(node.value)

        elif isinstance(node, BooleanLiteral):
            return "true" if node.value else "false"

        elif isinstance(node, NullLiteral):
            return "null"

        elif isinstance(node, RegexLiteral):
            return "/" + node.pattern + "/" + node.flags

        elif isinstance(node, TemplateLiteral):
            return self._template(node)

        elif isinstance(node, TaggedTemplateExpression):
            return self._operand(node.tag, CALL) + self._template(node.quasi)

        elif isinstance(node, Identifier):
            return node.name

        elif isinstance(node, PrivateName):
            return "#" + node.name

        elif isinstance(node, ThisExpression):
            return "this"

        elif isinstance(node, Super):
            return "super"

        elif isinstance(node, (ArrayExpression, ArrayPattern)):
            elements = [
                "" if element is None else self._expr(element, ASSIGNMENT)
                for element in node.elements
            ]
            text = ("," + self._space()).join(elements)
            if node.elements and node.elements[-1] is None:
                text += ","
            return "[" + text + "]"

        elif isinstance(node, (ObjectExpression, ObjectPattern)):
            props = [self._property(prop) for prop in node.properties]
            if not props:
                return "{}"
            return "{" + ("," + self._space()).join(props) + "}"

        elif isinstance(node, (SpreadElement, RestElement)):
            return "..." + self._expr(node.argument, ASSIGNMENT)

        elif isinstance(node, AssignmentPattern):
            eq = "=" if self.compact else " = "
            return self._expr(node.left, CALL) + eq + self._expr(node.right, ASSIGNMENT)

        elif isinstance(node, UnaryExpression):
            argument = self._expr(node.argument, UNARY)
            if node.operator.isalpha():
                return self._word(node.operator, argument)
            return self._concat(node.operator, argument)

        elif isinstance(node, UpdateExpression):
            if node.prefix:
                return self._concat(node.operator, self._expr(node.argument, UNARY))
            return self._expr(node.argument, CALL) + node.operator

        elif isinstance(node, (BinaryExpression, LogicalExpression)):
            return self._binary(node)

        elif isinstance(node, ConditionalExpression):
            q, c = ("?", ":") if self.compact else (" ? ", " : ")
            return (self._expr(node.test, CONDITIONAL + 1) + q
                    + self._expr(node.consequent, ASSIGNMENT) + c
                    + self._expr(node.alternate, ASSIGNMENT))

        elif isinstance(node, AssignmentExpression):
            op = node.operator if self.compact else " " + node.operator + " "
            return self._expr(node.left, CALL) + op + self._expr(node.right, ASSIGNMENT)

        elif isinstance(node, SequenceExpression):
            return ("," + self._space()).join(self._expr(e, ASSIGNMENT) for e in node.expressions)

        elif isinstance(node, MemberExpression):
            obj = self._operand(node.object, CALL)
            prop = node.property
            if not node.computed and isinstance(prop, Identifier) and prop.name in COMPUTED_ONLY_PROPERTIES:
                return obj + ("?." if node.optional else "") + "[" + format_string(prop.name) + "]"
            if node.computed:
                return obj + ("?." if node.optional else "") + "[" + self._expr(prop) + "]"
            name = "#" + prop.name if isinstance(prop, PrivateName) else prop.name
            return obj + ("?." if node.optional else ".") + name

        elif isinstance(node, CallExpression):
            callee = self._operand(node.callee, CALL)
            return callee + ("?." if node.optional else "") + self._arguments(node.arguments)

        elif isinstance(node, ChainExpression):
            return self._expression(node.expression)

        elif isinstance(node, NewExpression):
            callee = self._expr(node.callee, CALL)
            if _contains_call(node.callee):
                callee = "(" + callee + ")"
            return self._word("new", callee) + self._arguments(node.arguments)

        elif isinstance(node, AwaitExpression):
            return self._word("await", self._expr(node.argument, UNARY))

        elif isinstance(node, YieldExpression):
            keyword = "yield*" if node.delegate else "yield"
            if node.argument is None:
                return keyword
            argument = self._expr(node.argument, ASSIGNMENT)
            if node.delegate:
                return keyword + self._space() + argument
            return self._word(keyword, argument)

        elif isinstance(node, FunctionExpression):
            return self._function(node)

        elif isinstance(node, ArrowFunctionExpression):
            return self._arrow(node)

        elif isinstance(node, ClassExpression):
            return self._class(node)

        raise TypeError(f"Cannot generate code for {type(node).__name__}")

    def _arguments(self, arguments: List[Node]) -> str:
        return "(" + ("," + self._space()).join(self._expr(a, ASSIGNMENT) for a in arguments) + ")"

    def _binary(self, node: Node) -> str:
        op = node.operator
        level = precedence(node)
        if op == "**":
            left = self._expr(node.left, UPDATE)
            right = self._expr(node.right, level)
        else:
            left = self._expr(node.left, level)
            right = self._expr(node.right, level + 1)
        if op == "??" or op in ("||", "&&"):
            mixed = lambda child: (  # noqa: E731
                isinstance(child, LogicalExpression)
                and (child.operator == "??") != (op == "??")
            )
            if mixed(node.left) and not left.startswith("("):
                left = "(" + left + ")"
            if mixed(node.right) and not right.startswith("("):
                right = "(" + right + ")"
        if self.compact:
            text = self._concat(self._concat(left, op), right)
        else:
            text = f"{left} {op} {right}"
        if op == "in" and self._in_for_init:
            return "(" + text + ")"
        return text

    def _property(self, prop: Node) -> str:
        if isinstance(prop, (SpreadElement, RestElement)):
            return "..." + self._expr(prop.argument, ASSIGNMENT)
        key = self._property_key(prop.key, prop.computed)
        if prop.kind in ("get", "set") or prop.method:
            return self._method(key, prop.value, prop.kind, False)
        value = prop.value
        if not prop.computed and isinstance(prop.key, Identifier):
            if isinstance(value, Identifier) and value.name == prop.key.name:
                return key
            if (isinstance(value, AssignmentPattern) and isinstance(value.left, Identifier)
                    and value.left.name == prop.key.name):
                return self._expr(value)
        colon = ":" if self.compact else ": "
        return key + colon + self._expr(value, ASSIGNMENT)

    def _template(self, node: TemplateLiteral) -> str:
        parts = ["`"]
        for index, quasi in enumerate(node.quasis):
            parts.append(escape_host_sequences(quasi.raw))
            if index < len(node.expressions):
                parts.append("${" + self._expr(node.expressions[index]) + "}")
        parts.append("`")
        return "".join(parts)


def generate(node: Node, compact: bool = False) -> str:
    """Generate source code for node."""
    return CodeGenerator(compact=compact).generate(node)
