"""Script parser - produces an AST from tokens.

Accepts modern JavaScript plus TypeScript annotations. Type syntax is
skipped as it is read, so the tree never contains types.
"""

from typing import List, Optional, Tuple
from .lexer import Lexer
from .tokens import Token, TokenType, KEYWORDS
from .errors import JSSyntaxError, Warning
from .ast_nodes import (
    Node, Program, NumericLiteral, BigIntLiteral, StringLiteral, BooleanLiteral,
    NullLiteral, RegexLiteral, TemplateElement, TemplateLiteral,
    TaggedTemplateExpression, Identifier, PrivateName, ThisExpression, Super,
    ArrayExpression, ObjectExpression, Property, SpreadElement,
    UnaryExpression, UpdateExpression, BinaryExpression, LogicalExpression,
    ConditionalExpression, AssignmentExpression, SequenceExpression,
    MemberExpression, CallExpression, ChainExpression, NewExpression,
    AwaitExpression, YieldExpression,
    AssignmentPattern, ArrayPattern, ObjectPattern, RestElement,
    ExpressionStatement, BlockStatement, EmptyStatement,
    VariableDeclaration, VariableDeclarator,
    IfStatement, WhileStatement, DoWhileStatement, ForStatement,
    ForInStatement, ForOfStatement, BreakStatement, ContinueStatement,
    ReturnStatement, ThrowStatement, TryStatement, CatchClause,
    SwitchStatement, SwitchCase, LabeledStatement,
    FunctionDeclaration, FunctionExpression, ArrowFunctionExpression,
    ClassBody, ClassDeclaration, ClassExpression, MethodDefinition,
    PropertyDefinition, StaticBlock,
    ImportDeclaration, ImportSpecifier, ImportDefaultSpecifier,
    ImportNamespaceSpecifier, ExportNamedDeclaration, ExportSpecifier,
    ExportDefaultDeclaration, ExportAllDeclaration,
)


# Operator precedence (higher = binds tighter)
PRECEDENCE = {
    "??": 1,
    "||": 1,
    "&&": 2,
    "|": 3,
    "^": 4,
    "&": 5,
    "==": 6, "!=": 6, "===": 6, "!==": 6,
    "<": 7, ">": 7, "<=": 7, ">=": 7, "in": 7, "instanceof": 7,
    "<<": 8, ">>": 8, ">>>": 8,
    "+": 9, "-": 9,
    "*": 10, "/": 10, "%": 10,
    "**": 11,
}

BINARY_OPERATORS = {
    TokenType.PLUS: "+", TokenType.MINUS: "-", TokenType.STAR: "*",
    TokenType.SLASH: "/", TokenType.PERCENT: "%", TokenType.STARSTAR: "**",
    TokenType.LT: "<", TokenType.GT: ">", TokenType.LE: "<=", TokenType.GE: ">=",
    TokenType.EQ: "==", TokenType.NE: "!=", TokenType.EQEQ: "===",
    TokenType.NENE: "!==", TokenType.AND: "&&", TokenType.OR: "||",
    TokenType.NULLISH: "??", TokenType.AMPERSAND: "&", TokenType.PIPE: "|",
    TokenType.CARET: "^", TokenType.LSHIFT: "<<", TokenType.RSHIFT: ">>",
    TokenType.URSHIFT: ">>>", TokenType.IN: "in",
    TokenType.INSTANCEOF: "instanceof",
}

ASSIGNMENT_OPERATORS = frozenset({
    TokenType.ASSIGN, TokenType.PLUS_ASSIGN, TokenType.MINUS_ASSIGN,
    TokenType.STAR_ASSIGN, TokenType.SLASH_ASSIGN, TokenType.PERCENT_ASSIGN,
    TokenType.STARSTAR_ASSIGN, TokenType.AND_ASSIGN, TokenType.OR_ASSIGN,
    TokenType.XOR_ASSIGN, TokenType.LSHIFT_ASSIGN, TokenType.RSHIFT_ASSIGN,
    TokenType.URSHIFT_ASSIGN, TokenType.LOGICAL_AND_ASSIGN,
    TokenType.LOGICAL_OR_ASSIGN, TokenType.NULLISH_ASSIGN,
})

KEYWORD_TYPES = frozenset(KEYWORDS.values())

TS_MODIFIERS = frozenset({"public", "private", "protected", "readonly", "abstract", "override", "declare"})

# Tokens after a contextual word (get, set, static, async...) that mean the
# word is itself the member name.
_NAME_FOLLOWERS = frozenset({
    TokenType.LPAREN, TokenType.ASSIGN, TokenType.SEMICOLON, TokenType.COLON,
    TokenType.QUESTION, TokenType.RBRACE, TokenType.COMMA, TokenType.NOT,
    TokenType.LT, TokenType.EOF,
})

# Tokens that may appear between the angle brackets of a type argument list
_TYPE_TOKENS = frozenset({
    TokenType.IDENTIFIER, TokenType.TYPEOF, TokenType.VOID, TokenType.NULL,
    TokenType.THIS, TokenType.TRUE, TokenType.FALSE, TokenType.EXTENDS,
    TokenType.NEW, TokenType.IN, TokenType.COMMA, TokenType.DOT, TokenType.LT,
    TokenType.GT, TokenType.RSHIFT, TokenType.URSHIFT, TokenType.PIPE,
    TokenType.AMPERSAND, TokenType.LBRACKET, TokenType.RBRACKET,
    TokenType.QUESTION, TokenType.COLON, TokenType.ARROW, TokenType.STRING,
    TokenType.NUMBER, TokenType.BIGINT, TokenType.MINUS, TokenType.TEMPLATE,
    TokenType.ASSIGN,
})


class Parser:
    """Recursive descent parser for JavaScript and TypeScript."""

    def __init__(self, source: str):
        self.lexer = Lexer(source)
        self.warnings: List[Warning] = []
        self.current: Token = self.lexer.next_token()
        self.previous: Optional[Token] = None
        self._in_async = False
        self._in_generator = False

    def _error(self, message: str, token: Optional[Token] = None) -> JSSyntaxError:
        """Create a syntax error at current position."""
        token = token or self.current
        return JSSyntaxError(message, token.line, token.column)

    def _advance(self) -> Token:
        """Advance to next token and return previous."""
        self.previous = self.current
        self.current = self.lexer.next_token()
        return self.previous

    def _check(self, *types: TokenType) -> bool:
        """Check if current token is one of the given types."""
        return self.current.type in types

    def _check_word(self, *words: str) -> bool:
        """Check if current token is an identifier spelled as one of words."""
        return self.current.type == TokenType.IDENTIFIER and self.current.value in words

    def _match(self, *types: TokenType) -> bool:
        """If current token matches, advance and return True."""
        if self._check(*types):
            self._advance()
            return True
        return False

    def _expect(self, token_type: TokenType, message: str) -> Token:
        """Expect a specific token type or raise error."""
        if self.current.type != token_type:
            raise self._error(message)
        return self._advance()

    def _expect_word(self, word: str) -> Token:
        if not self._check_word(word):
            raise self._error(f"Expected '{word}'")
        return self._advance()

    def _is_at_end(self) -> bool:
        """Check if we've reached the end of input."""
        return self.current.type == TokenType.EOF

    def _save(self) -> tuple:
        return (self.lexer.save(), self.current, self.previous, len(self.warnings))

    def _restore(self, state: tuple) -> None:
        lexer_state, self.current, self.previous, warnings = state
        self.lexer.restore(lexer_state)
        del self.warnings[warnings:]

    def _peek_next(self) -> Token:
        """Peek at the next token without consuming it."""
        state = self._save()
        self._advance()
        next_token = self.current
        self._restore(state)
        return next_token

    def _warn(self, message: str, line: int) -> None:
        self.warnings.append(Warning(message, line))

    def parse(self) -> Program:
        """Parse the entire program."""
        body: List[Node] = []
        while not self._is_at_end():
            stmt = self._parse_statement()
            if stmt is not None:
                body.append(stmt)
        for message, line in self.lexer.diagnostics:
            self._warn(message, line)
        self.warnings.sort(key=lambda warning: warning.line)
        return Program(body, line=1)

    # ---- Statements ----

    def _parse_statement(self) -> Optional[Node]:
        """Parse a statement, or return None for erased type-only syntax."""
        token = self.current
        line = token.line

        if self._match(TokenType.SEMICOLON):
            return EmptyStatement(line=line)

        if self._check(TokenType.LBRACE):
            return self._parse_block_statement()

        if self._check(TokenType.VAR, TokenType.LET, TokenType.CONST):
            kind = self._advance().value
            if kind == "const" and self._check_word("enum"):
                raise self._error("enum declarations are not supported")
            return self._parse_variable_declaration(kind, line)

        if self._match(TokenType.IF):
            return self._parse_if_statement(line)

        if self._match(TokenType.WHILE):
            return self._parse_while_statement(line)

        if self._match(TokenType.DO):
            return self._parse_do_while_statement(line)

        if self._match(TokenType.FOR):
            return self._parse_for_statement(line)

        if self._match(TokenType.BREAK):
            return BreakStatement(self._parse_label(), line=line)

        if self._match(TokenType.CONTINUE):
            return ContinueStatement(self._parse_label(), line=line)

        if self._match(TokenType.RETURN):
            return self._parse_return_statement(line)

        if self._match(TokenType.THROW):
            argument = self._parse_expression()
            self._consume_semicolon()
            return ThrowStatement(argument, line=line)

        if self._match(TokenType.TRY):
            return self._parse_try_statement(line)

        if self._match(TokenType.SWITCH):
            return self._parse_switch_statement(line)

        if self._match(TokenType.FUNCTION):
            return self._parse_function(FunctionDeclaration, line)

        if self._match(TokenType.CLASS):
            return self._parse_class(ClassDeclaration, line)

        if self._check(TokenType.IMPORT) and self._peek_next().type not in (TokenType.LPAREN, TokenType.DOT):
            return self._parse_import_declaration()

        if self._check(TokenType.EXPORT):
            return self._parse_export_declaration()

        if self._match(TokenType.DEBUGGER):
            self._consume_semicolon()
            self._warn("debugger statement removed", line)
            return EmptyStatement(line=line)

        if self._check(TokenType.WITH):
            raise self._error("'with' statements are not supported")

        if self._check(TokenType.IDENTIFIER):
            next_token = self._peek_next()

            if token.value == "async" and next_token.type == TokenType.FUNCTION and not next_token.newline_before:
                self._advance()  # async
                self._advance()  # function
                return self._parse_function(FunctionDeclaration, line, is_async=True)

            if token.value == "abstract" and next_token.type == TokenType.CLASS and not next_token.newline_before:
                self._advance()  # abstract
                self._advance()  # class
                return self._parse_class(ClassDeclaration, line)

            if not next_token.newline_before and self._parse_type_only_statement(token, next_token):
                return None

            # Labeled statement: IDENTIFIER COLON statement
            if next_token.type == TokenType.COLON:
                label_token = self._advance()
                self._advance()  # :
                body = self._parse_statement() or EmptyStatement(line=line)
                return LabeledStatement(Identifier(label_token.value, line=line), body, line=line)

        # Expression statement
        expr = self._parse_expression()
        self._consume_semicolon()
        return ExpressionStatement(expr, line=line)

    def _parse_type_only_statement(self, token: Token, next_token: Token) -> bool:
        """Skip interface, type alias and ambient declarations."""
        word = token.value
        if word == "enum" and next_token.type == TokenType.IDENTIFIER:
            raise self._error("enum declarations are not supported")
        if word in ("namespace", "module") and next_token.type in (TokenType.IDENTIFIER, TokenType.STRING):
            raise self._error(f"{word} declarations are not supported")
        if word == "interface" and next_token.type == TokenType.IDENTIFIER:
            self._advance()  # interface
            self._advance()  # name
            self._skip_type_parameters()
            if self._match(TokenType.EXTENDS):
                self._skip_type()
                while self._match(TokenType.COMMA):
                    self._skip_type()
            self._skip_balanced(TokenType.LBRACE, TokenType.RBRACE)
            return True
        if word == "type" and next_token.type == TokenType.IDENTIFIER:
            self._advance()  # type
            self._advance()  # name
            self._skip_type_parameters()
            self._expect(TokenType.ASSIGN, "Expected '=' in type alias")
            self._skip_type()
            self._consume_semicolon()
            return True
        if word == "declare" and next_token.type in (
            TokenType.IDENTIFIER, TokenType.VAR, TokenType.LET, TokenType.CONST, TokenType.FUNCTION, TokenType.CLASS
        ):
            self._advance()  # declare
            if self._check_word("global", "module", "namespace"):
                while not self._check(TokenType.LBRACE):
                    self._advance()
                self._skip_balanced(TokenType.LBRACE, TokenType.RBRACE)
            else:
                self._parse_statement()
            return True
        return False

    def _parse_label(self) -> Optional[Identifier]:
        label = None
        if self._check(TokenType.IDENTIFIER) and not self.current.newline_before:
            token = self._advance()
            label = Identifier(token.value, line=token.line)
        self._consume_semicolon()
        return label

    def _parse_block_statement(self) -> BlockStatement:
        """Parse a block statement: { ... }"""
        line = self.current.line
        self._expect(TokenType.LBRACE, "Expected '{'")
        body: List[Node] = []
        while not self._check(TokenType.RBRACE) and not self._is_at_end():
            stmt = self._parse_statement()
            if stmt is not None:
                body.append(stmt)
        self._expect(TokenType.RBRACE, "Expected '}'")
        return BlockStatement(body, line=line)

    def _parse_variable_declaration(self, kind: str, line: int, in_for: bool = False) -> VariableDeclaration:
        """Parse variable declaration: let a = 1, b = 2;"""
        declarations: List[VariableDeclarator] = []

        while True:
            declarator_line = self.current.line
            target = self._parse_binding_target()
            self._match(TokenType.NOT)  # definite assignment assertion
            self._skip_type_annotation()
            init = None
            if self._match(TokenType.ASSIGN):
                init = self._parse_assignment_expression(exclude_in=in_for)
            declarations.append(VariableDeclarator(target, init, line=declarator_line))

            if not self._match(TokenType.COMMA):
                break

        if not in_for:
            self._consume_semicolon()
        return VariableDeclaration(declarations, kind, line=line)

    def _parse_binding_target(self) -> Node:
        if self._check(TokenType.LBRACKET):
            return self._parse_array_binding()
        if self._check(TokenType.LBRACE):
            return self._parse_object_binding()
        token = self._expect(TokenType.IDENTIFIER, "Expected variable name")
        return Identifier(token.value, line=token.line)

    def _parse_binding_element(self) -> Node:
        line = self.current.line
        target = self._parse_binding_target()
        if self._match(TokenType.ASSIGN):
            return AssignmentPattern(target, self._parse_assignment_expression(), line=line)
        return target

    def _parse_array_binding(self) -> ArrayPattern:
        line = self.current.line
        self._expect(TokenType.LBRACKET, "Expected '['")
        elements: List[Optional[Node]] = []
        while not self._check(TokenType.RBRACKET):
            if self._match(TokenType.COMMA):
                elements.append(None)
                continue
            if self._match(TokenType.ELLIPSIS):
                elements.append(RestElement(self._parse_binding_target(), line=line))
            else:
                elements.append(self._parse_binding_element())
            if not self._match(TokenType.COMMA):
                break
        self._expect(TokenType.RBRACKET, "Expected ']' after array pattern")
        return ArrayPattern(elements, line=line)

    def _parse_object_binding(self) -> ObjectPattern:
        line = self.current.line
        self._expect(TokenType.LBRACE, "Expected '{'")
        properties: List[Node] = []
        while not self._check(TokenType.RBRACE):
            if self._match(TokenType.ELLIPSIS):
                properties.append(RestElement(self._parse_binding_target(), line=line))
            else:
                key_token = self.current
                key, computed = self._parse_property_key()
                if self._match(TokenType.COLON):
                    properties.append(Property(key, self._parse_binding_element(), computed=computed, line=key_token.line))
                else:
                    if computed or key_token.type != TokenType.IDENTIFIER:
                        raise self._error("Expected ':' in object pattern")
                    value: Node = Identifier(key.name, line=key_token.line)
                    if self._match(TokenType.ASSIGN):
                        value = AssignmentPattern(value, self._parse_assignment_expression(), line=key_token.line)
                    properties.append(Property(key, value, shorthand=True, line=key_token.line))
            if not self._match(TokenType.COMMA):
                break
        self._expect(TokenType.RBRACE, "Expected '}' after object pattern")
        return ObjectPattern(properties, line=line)

    def _parse_if_statement(self, line: int) -> IfStatement:
        """Parse if statement: if (test) consequent else alternate"""
        self._expect(TokenType.LPAREN, "Expected '(' after 'if'")
        test = self._parse_expression()
        self._expect(TokenType.RPAREN, "Expected ')' after condition")
        consequent = self._parse_statement() or EmptyStatement(line=line)
        alternate = None
        if self._match(TokenType.ELSE):
            alternate = self._parse_statement() or EmptyStatement(line=line)
        return IfStatement(test, consequent, alternate, line=line)

    def _parse_while_statement(self, line: int) -> WhileStatement:
        """Parse while statement: while (test) body"""
        self._expect(TokenType.LPAREN, "Expected '(' after 'while'")
        test = self._parse_expression()
        self._expect(TokenType.RPAREN, "Expected ')' after condition")
        body = self._parse_statement() or EmptyStatement(line=line)
        return WhileStatement(test, body, line=line)

    def _parse_do_while_statement(self, line: int) -> DoWhileStatement:
        """Parse do-while statement: do body while (test);"""
        body = self._parse_statement() or EmptyStatement(line=line)
        self._expect(TokenType.WHILE, "Expected 'while' after do block")
        self._expect(TokenType.LPAREN, "Expected '(' after 'while'")
        test = self._parse_expression()
        self._expect(TokenType.RPAREN, "Expected ')' after condition")
        self._match(TokenType.SEMICOLON)
        return DoWhileStatement(body, test, line=line)

    def _parse_for_statement(self, line: int) -> Node:
        """Parse for/for-in/for-of statement."""
        is_await = False
        if self._check_word("await"):
            self._advance()
            is_await = True
        self._expect(TokenType.LPAREN, "Expected '(' after 'for'")

        init: Optional[Node] = None
        if not self._match(TokenType.SEMICOLON):
            if self._check(TokenType.VAR, TokenType.LET, TokenType.CONST):
                kind = self._advance().value
                declaration = self._parse_variable_declaration(kind, line, in_for=True)
                if len(declaration.declarations) == 1 and declaration.declarations[0].init is None:
                    loop = self._parse_for_in_of(declaration, line, is_await)
                    if loop is not None:
                        return loop
                init = declaration
            else:
                # Parse with exclude_in=True so 'in' isn't treated as binary operator
                expr = self._parse_expression(exclude_in=True)
                if self._check(TokenType.IN) or self._check_word("of"):
                    loop = self._parse_for_in_of(self._to_assignment_target(expr), line, is_await)
                    if loop is not None:
                        return loop
                init = expr
            self._expect(TokenType.SEMICOLON, "Expected ';' after for init")

        # Regular for loop
        test = None
        if not self._check(TokenType.SEMICOLON):
            test = self._parse_expression()
        self._expect(TokenType.SEMICOLON, "Expected ';' after for condition")

        update = None
        if not self._check(TokenType.RPAREN):
            update = self._parse_expression()
        self._expect(TokenType.RPAREN, "Expected ')' after for update")

        body = self._parse_statement() or EmptyStatement(line=line)
        return ForStatement(init, test, update, body, line=line)

    def _parse_for_in_of(self, left: Node, line: int, is_await: bool) -> Optional[Node]:
        if self._match(TokenType.IN):
            right = self._parse_expression()
            self._expect(TokenType.RPAREN, "Expected ')' after for-in")
            body = self._parse_statement() or EmptyStatement(line=line)
            return ForInStatement(left, right, body, line=line)
        if self._check_word("of"):
            self._advance()
            right = self._parse_assignment_expression()
            self._expect(TokenType.RPAREN, "Expected ')' after for-of")
            body = self._parse_statement() or EmptyStatement(line=line)
            return ForOfStatement(left, right, body, is_await, line=line)
        return None

    def _parse_return_statement(self, line: int) -> ReturnStatement:
        """Parse return statement."""
        argument = None
        if not self._check(TokenType.SEMICOLON, TokenType.RBRACE, TokenType.EOF) and not self.current.newline_before:
            argument = self._parse_expression()
        self._consume_semicolon()
        return ReturnStatement(argument, line=line)

    def _parse_try_statement(self, line: int) -> TryStatement:
        """Parse try statement."""
        block = self._parse_block_statement()
        handler = None
        finalizer = None

        if self._check(TokenType.CATCH):
            catch_line = self._advance().line
            param = None
            if self._match(TokenType.LPAREN):
                param = self._parse_binding_target()
                self._skip_type_annotation()
                self._expect(TokenType.RPAREN, "Expected ')' after catch parameter")
            catch_body = self._parse_block_statement()
            handler = CatchClause(param, catch_body, line=catch_line)

        if self._match(TokenType.FINALLY):
            finalizer = self._parse_block_statement()

        if handler is None and finalizer is None:
            raise self._error("Missing catch or finally clause")

        return TryStatement(block, handler, finalizer, line=line)

    def _parse_switch_statement(self, line: int) -> SwitchStatement:
        """Parse switch statement."""
        self._expect(TokenType.LPAREN, "Expected '(' after 'switch'")
        discriminant = self._parse_expression()
        self._expect(TokenType.RPAREN, "Expected ')' after switch expression")
        self._expect(TokenType.LBRACE, "Expected '{' before switch body")

        cases: List[SwitchCase] = []
        while not self._check(TokenType.RBRACE) and not self._is_at_end():
            case_line = self.current.line
            test = None
            if self._match(TokenType.CASE):
                test = self._parse_expression()
            elif self._match(TokenType.DEFAULT):
                pass
            else:
                raise self._error("Expected 'case' or 'default'")

            self._expect(TokenType.COLON, "Expected ':' after case expression")

            consequent: List[Node] = []
            while not self._check(TokenType.CASE, TokenType.DEFAULT, TokenType.RBRACE, TokenType.EOF):
                stmt = self._parse_statement()
                if stmt is not None:
                    consequent.append(stmt)

            cases.append(SwitchCase(test, consequent, line=case_line))

        self._expect(TokenType.RBRACE, "Expected '}' after switch body")
        return SwitchStatement(discriminant, cases, line=line)

    def _consume_semicolon(self) -> None:
        """Consume a semicolon, or accept an automatically inserted one."""
        if self._match(TokenType.SEMICOLON):
            return
        if self._check(TokenType.RBRACE, TokenType.EOF) or self.current.newline_before:
            return
        raise self._error(f"Expected ';' but found {self.current.type.name}")

    # ---- Functions and classes ----

    def _parse_function(self, node_type, line: int, is_async: bool = False, require_name: bool = True):
        """Parse the rest of a function after the 'function' keyword.

        Returns None for a body-less overload signature.
        """
        generator = self._match(TokenType.STAR)
        name = None
        if self._check(TokenType.IDENTIFIER):
            token = self._advance()
            name = Identifier(token.value, line=token.line)
        elif require_name and node_type is FunctionDeclaration:
            raise self._error("Expected function name")
        self._skip_type_parameters()

        saved = (self._in_async, self._in_generator)
        self._in_async, self._in_generator = is_async, generator
        try:
            params = self._parse_function_params()
            self._skip_type_annotation()
            if not self._check(TokenType.LBRACE):
                self._consume_semicolon()
                return None
            body = self._parse_block_statement()
        finally:
            self._in_async, self._in_generator = saved
        return node_type(name, params, body, is_async, generator, line=line)

    def _parse_method_function(self, line: int, is_async: bool, generator: bool) -> Optional[FunctionExpression]:
        self._skip_type_parameters()
        saved = (self._in_async, self._in_generator)
        self._in_async, self._in_generator = is_async, generator
        try:
            params = self._parse_function_params()
            self._skip_type_annotation()
            if not self._check(TokenType.LBRACE):
                self._consume_semicolon()
                return None
            body = self._parse_block_statement()
        finally:
            self._in_async, self._in_generator = saved
        return FunctionExpression(None, params, body, is_async, generator, line=line)

    def _parse_function_params(self) -> List[Node]:
        """Parse function parameters."""
        self._expect(TokenType.LPAREN, "Expected '(' before parameters")
        params: List[Node] = []
        while not self._check(TokenType.RPAREN):
            line = self.current.line
            if self._check_word(*TS_MODIFIERS) and self._peek_next().type in (
                TokenType.IDENTIFIER, TokenType.LBRACE, TokenType.LBRACKET
            ):
                raise self._error("parameter properties are not supported")
            if self._check(TokenType.THIS) and self._peek_next().type == TokenType.COLON:
                # Typed 'this' parameter only exists for the type checker
                self._advance()
                self._skip_type_annotation()
            elif self._match(TokenType.ELLIPSIS):
                target = self._parse_binding_target()
                self._match(TokenType.QUESTION)
                self._skip_type_annotation()
                params.append(RestElement(target, line=line))
            else:
                target = self._parse_binding_target()
                self._match(TokenType.QUESTION)
                self._skip_type_annotation()
                if self._match(TokenType.ASSIGN):
                    target = AssignmentPattern(target, self._parse_assignment_expression(), line=line)
                params.append(target)
            if not self._match(TokenType.COMMA):
                break
        self._expect(TokenType.RPAREN, "Expected ')' after parameters")
        return params

    def _parse_class(self, node_type, line: int, require_name: bool = True):
        """Parse the rest of a class after the 'class' keyword."""
        name = None
        if self._check(TokenType.IDENTIFIER) and not self._check_word("implements"):
            token = self._advance()
            name = Identifier(token.value, line=token.line)
        elif require_name and node_type is ClassDeclaration:
            raise self._error("Expected class name")
        self._skip_type_parameters()

        superclass = None
        if self._match(TokenType.EXTENDS):
            superclass = self._parse_call_tail(self._parse_primary_expression())
            self._skip_type_parameters()
        if self._check_word("implements"):
            self._advance()
            self._skip_type()
            while self._match(TokenType.COMMA):
                self._skip_type()

        body_line = self.current.line
        self._expect(TokenType.LBRACE, "Expected '{' before class body")
        members: List[Node] = []
        while not self._check(TokenType.RBRACE) and not self._is_at_end():
            member = self._parse_class_member()
            if member is not None:
                members.append(member)
        self._expect(TokenType.RBRACE, "Expected '}' after class body")
        return node_type(name, superclass, ClassBody(members, line=body_line), line=line)

    def _next_is_member_name(self) -> bool:
        """True when the current contextual word is followed by a member name."""
        next_token = self._peek_next()
        return next_token.type not in _NAME_FOLLOWERS and not next_token.newline_before

    def _parse_class_member(self) -> Optional[Node]:
        line = self.current.line
        if self._match(TokenType.SEMICOLON):
            return None

        if self._check(TokenType.LBRACKET) and self._is_index_signature():
            return None

        static = False
        declared = False
        while True:
            if self._check_word(*TS_MODIFIERS) and self._next_is_member_name():
                declared = declared or self.current.value == "declare"
                self._advance()
                continue
            if self._check_word("static") and not static and (
                self._next_is_member_name() or self._peek_next().type == TokenType.LBRACE
            ):
                self._advance()
                static = True
                if self._check(TokenType.LBRACE):
                    return StaticBlock(self._parse_block_statement().body, line=line)
                continue
            break

        is_async = False
        if self._check_word("async") and self._next_is_member_name():
            self._advance()
            is_async = True
        generator = self._match(TokenType.STAR)
        kind = "method"
        if self._check_word("get", "set") and self._next_is_member_name():
            kind = self._advance().value

        key, computed = self._parse_property_key(allow_private=True)
        if not self._match(TokenType.QUESTION):
            self._match(TokenType.NOT)

        if self._check(TokenType.LPAREN, TokenType.LT):
            value = self._parse_method_function(line, is_async, generator)
            if value is None:
                return None
            if not computed and not static and isinstance(key, Identifier) and key.name == "constructor":
                kind = "constructor"
            return MethodDefinition(key, value, kind, computed, static, line=line)

        self._skip_type_annotation()
        value = None
        if self._match(TokenType.ASSIGN):
            value = self._parse_assignment_expression()
        self._consume_semicolon()
        if declared:
            return None
        return PropertyDefinition(key, value, computed, static, line=line)

    def _is_index_signature(self) -> bool:
        """Skip a TypeScript index signature like [key: string]: T if present."""
        state = self._save()
        self._advance()  # [
        if self._check(TokenType.IDENTIFIER) and self._peek_next().type == TokenType.COLON:
            self._restore(state)
            self._skip_balanced(TokenType.LBRACKET, TokenType.RBRACKET)
            self._skip_type_annotation()
            self._consume_semicolon()
            return True
        self._restore(state)
        return False

    # ---- Modules ----

    def _parse_import_declaration(self) -> Optional[ImportDeclaration]:
        line = self._expect(TokenType.IMPORT, "Expected 'import'").line
        if self._check(TokenType.STRING):
            source = self._advance()
            self._skip_import_attributes()
            self._consume_semicolon()
            return ImportDeclaration([], StringLiteral(source.value, line=line), line=line)

        type_only = False
        if self._check_word("type") and self._peek_next().type != TokenType.COMMA and not (
            self._peek_next().type == TokenType.IDENTIFIER and self._peek_next().value == "from"
        ):
            self._advance()
            type_only = True

        specifiers: List[Node] = []
        if self._check(TokenType.IDENTIFIER):
            token = self._advance()
            specifiers.append(ImportDefaultSpecifier(Identifier(token.value, line=token.line), line=token.line))
            self._match(TokenType.COMMA)

        if self._match(TokenType.STAR):
            self._expect_word("as")
            token = self._expect(TokenType.IDENTIFIER, "Expected namespace name")
            specifiers.append(ImportNamespaceSpecifier(Identifier(token.value, line=token.line), line=token.line))
        elif self._match(TokenType.LBRACE):
            while not self._check(TokenType.RBRACE):
                specifier_line = self.current.line
                type_specifier = False
                if self._check_word("type") and self._peek_next().type not in (
                    TokenType.COMMA, TokenType.RBRACE
                ) and not (self._peek_next().type == TokenType.IDENTIFIER and self._peek_next().value == "as"):
                    self._advance()
                    type_specifier = True
                imported = self._parse_module_export_name()
                if self._check_word("as"):
                    self._advance()
                    token = self._expect(TokenType.IDENTIFIER, "Expected local name")
                    local = Identifier(token.value, line=token.line)
                elif isinstance(imported, Identifier):
                    local = Identifier(imported.name, line=specifier_line)
                else:
                    raise self._error("String import names need a local alias")
                if not type_specifier:
                    specifiers.append(ImportSpecifier(imported, local, line=specifier_line))
                if not self._match(TokenType.COMMA):
                    break
            self._expect(TokenType.RBRACE, "Expected '}' after import specifiers")

        self._expect_word("from")
        source = self._expect(TokenType.STRING, "Expected module specifier")
        self._skip_import_attributes()
        self._consume_semicolon()
        if type_only:
            return None
        return ImportDeclaration(specifiers, StringLiteral(source.value, line=line), line=line)

    def _skip_import_attributes(self) -> None:
        if (self._check(TokenType.WITH) or self._check_word("assert")) and not self.current.newline_before:
            self._advance()
            self._skip_balanced(TokenType.LBRACE, TokenType.RBRACE)

    def _parse_module_export_name(self) -> Node:
        token = self.current
        if token.type == TokenType.STRING:
            self._advance()
            return StringLiteral(token.value, line=token.line)
        if token.type == TokenType.IDENTIFIER or token.type in KEYWORD_TYPES:
            self._advance()
            return Identifier(token.value, line=token.line)
        raise self._error("Expected import or export name")

    def _parse_export_declaration(self) -> Optional[Node]:
        line = self._expect(TokenType.EXPORT, "Expected 'export'").line

        if self._match(TokenType.DEFAULT):
            if self._match(TokenType.FUNCTION):
                declaration = self._parse_function(FunctionDeclaration, line, require_name=False)
            elif self._check_word("async") and self._peek_next().type == TokenType.FUNCTION:
                self._advance()
                self._advance()
                declaration = self._parse_function(FunctionDeclaration, line, is_async=True, require_name=False)
            elif self._match(TokenType.CLASS):
                declaration = self._parse_class(ClassDeclaration, line, require_name=False)
            elif self._check_word("abstract") and self._peek_next().type == TokenType.CLASS:
                self._advance()
                self._advance()
                declaration = self._parse_class(ClassDeclaration, line, require_name=False)
            elif self._check_word("interface"):
                self._parse_type_only_statement(self.current, self._peek_next())
                return None
            else:
                declaration = self._parse_assignment_expression()
                self._consume_semicolon()
            if declaration is None:
                return None
            return ExportDefaultDeclaration(declaration, line=line)

        if self._match(TokenType.STAR):
            exported = None
            if self._check_word("as"):
                self._advance()
                exported = self._parse_module_export_name()
            self._expect_word("from")
            source = self._expect(TokenType.STRING, "Expected module specifier")
            self._consume_semicolon()
            return ExportAllDeclaration(StringLiteral(source.value, line=line), exported, line=line)

        type_only = False
        if self._check_word("type") and self._peek_next().type == TokenType.LBRACE:
            self._advance()
            type_only = True

        if self._match(TokenType.LBRACE):
            specifiers: List[ExportSpecifier] = []
            while not self._check(TokenType.RBRACE):
                specifier_line = self.current.line
                type_specifier = False
                if self._check_word("type") and self._peek_next().type not in (TokenType.COMMA, TokenType.RBRACE) and not (
                    self._peek_next().type == TokenType.IDENTIFIER and self._peek_next().value == "as"
                ):
                    self._advance()
                    type_specifier = True
                local = self._parse_module_export_name()
                exported = local
                if self._check_word("as"):
                    self._advance()
                    exported = self._parse_module_export_name()
                if not type_specifier:
                    specifiers.append(ExportSpecifier(local, exported, line=specifier_line))
                if not self._match(TokenType.COMMA):
                    break
            self._expect(TokenType.RBRACE, "Expected '}' after export specifiers")
            source = None
            if self._check_word("from"):
                self._advance()
                token = self._expect(TokenType.STRING, "Expected module specifier")
                source = StringLiteral(token.value, line=token.line)
            self._consume_semicolon()
            if type_only:
                return None
            return ExportNamedDeclaration(None, specifiers, source, line=line)

        declaration = self._parse_statement()
        if declaration is None:
            return None
        if not isinstance(declaration, (VariableDeclaration, FunctionDeclaration, ClassDeclaration)):
            raise JSSyntaxError("Expected a declaration after 'export'", line, 0)
        return ExportNamedDeclaration(declaration, line=line)

    # ---- Expressions ----

    def _parse_expression(self, exclude_in: bool = False) -> Node:
        """Parse an expression (includes comma operator)."""
        expr = self._parse_assignment_expression(exclude_in)

        if self._check(TokenType.COMMA):
            expressions = [expr]
            while self._match(TokenType.COMMA):
                expressions.append(self._parse_assignment_expression(exclude_in))
            return SequenceExpression(expressions, line=expr.line)

        return expr

    def _parse_assignment_expression(self, exclude_in: bool = False) -> Node:
        """Parse assignment expression."""
        arrow = self._try_parse_arrow_function(exclude_in)
        if arrow is not None:
            return arrow

        if self._in_generator and self._check_word("yield"):
            return self._parse_yield_expression(exclude_in)

        line = self.current.line
        expr = self._parse_conditional_expression(exclude_in)

        if self.current.type in ASSIGNMENT_OPERATORS:
            op = self._advance().value
            if op == "=":
                target = self._to_assignment_target(expr)
            elif isinstance(expr, (Identifier, MemberExpression)):
                target = expr
            else:
                raise self._error("Invalid assignment target")
            right = self._parse_assignment_expression(exclude_in)
            return AssignmentExpression(op, target, right, line=line)

        return expr

    def _parse_yield_expression(self, exclude_in: bool) -> YieldExpression:
        line = self._advance().line
        delegate = self._match(TokenType.STAR)
        argument = None
        if delegate or not (
            self.current.newline_before
            or self._check(TokenType.RPAREN, TokenType.RBRACKET, TokenType.RBRACE, TokenType.COMMA,
                           TokenType.SEMICOLON, TokenType.COLON, TokenType.EOF)
        ):
            argument = self._parse_assignment_expression(exclude_in)
        return YieldExpression(argument, delegate, line=line)

    def _try_parse_arrow_function(self, exclude_in: bool) -> Optional[ArrowFunctionExpression]:
        """Parse an arrow function if one starts here, else consume nothing."""
        if self._check_word("async"):
            next_token = self._peek_next()
            if not next_token.newline_before and next_token.type in (TokenType.IDENTIFIER, TokenType.LPAREN, TokenType.LT):
                state = self._save()
                line = self._advance().line
                arrow = self._parse_arrow_function_after(line, True, exclude_in)
                if arrow is not None:
                    return arrow
                self._restore(state)
        return self._parse_arrow_function_after(self.current.line, False, exclude_in)

    def _parse_arrow_function_after(self, line: int, is_async: bool, exclude_in: bool) -> Optional[ArrowFunctionExpression]:
        if self._check(TokenType.IDENTIFIER):
            next_token = self._peek_next()
            if next_token.type != TokenType.ARROW or next_token.newline_before:
                return None
            token = self._advance()
            self._advance()  # =>
            return self._parse_arrow_body([Identifier(token.value, line=token.line)], line, is_async, exclude_in)

        if not self._check(TokenType.LPAREN, TokenType.LT):
            return None

        state = self._save()
        try:
            self._skip_type_parameters()
            params = self._parse_function_params()
            self._skip_type_annotation()
            if not self._check(TokenType.ARROW) or self.current.newline_before:
                raise self._error("Expected '=>'")
        except JSSyntaxError:
            self._restore(state)
            return None
        self._advance()  # =>
        return self._parse_arrow_body(params, line, is_async, exclude_in)

    def _parse_arrow_body(self, params: List[Node], line: int, is_async: bool, exclude_in: bool) -> ArrowFunctionExpression:
        saved = (self._in_async, self._in_generator)
        self._in_async, self._in_generator = is_async, False
        try:
            if self._check(TokenType.LBRACE):
                body: Node = self._parse_block_statement()
                expression = False
            else:
                body = self._parse_assignment_expression(exclude_in)
                expression = True
        finally:
            self._in_async, self._in_generator = saved
        return ArrowFunctionExpression(params, body, expression, is_async, line=line)

    def _to_assignment_target(self, expr: Node) -> Node:
        """Reinterpret an expression as a destructuring/assignment target."""
        if isinstance(expr, (Identifier, MemberExpression)):
            return expr
        if isinstance(expr, (ArrayPattern, ObjectPattern, AssignmentPattern, RestElement)):
            return expr
        if isinstance(expr, ArrayExpression):
            elements: List[Optional[Node]] = []
            for element in expr.elements:
                if element is None:
                    elements.append(None)
                elif isinstance(element, SpreadElement):
                    elements.append(RestElement(self._to_assignment_target(element.argument), line=element.line))
                else:
                    elements.append(self._to_assignment_target(element))
            return ArrayPattern(elements, line=expr.line)
        if isinstance(expr, ObjectExpression):
            properties: List[Node] = []
            for prop in expr.properties:
                if isinstance(prop, SpreadElement):
                    properties.append(RestElement(self._to_assignment_target(prop.argument), line=prop.line))
                elif prop.kind != "init" or prop.method:
                    raise self._error("Invalid destructuring target")
                else:
                    properties.append(Property(
                        prop.key, self._to_assignment_target(prop.value), computed=prop.computed,
                        shorthand=prop.shorthand, line=prop.line,
                    ))
            return ObjectPattern(properties, line=expr.line)
        if isinstance(expr, AssignmentExpression) and expr.operator == "=":
            return AssignmentPattern(self._to_assignment_target(expr.left), expr.right, line=expr.line)
        raise self._error("Invalid assignment target")

    def _parse_conditional_expression(self, exclude_in: bool = False) -> Node:
        """Parse conditional (ternary) expression."""
        expr = self._parse_binary_expression(0, exclude_in)

        if self._match(TokenType.QUESTION):
            consequent = self._parse_assignment_expression()
            self._expect(TokenType.COLON, "Expected ':' in conditional expression")
            alternate = self._parse_assignment_expression(exclude_in)
            return ConditionalExpression(expr, consequent, alternate, line=expr.line)

        return expr

    def _parse_binary_expression(self, min_precedence: int = 0, exclude_in: bool = False) -> Node:
        """Parse binary expression with operator precedence."""
        left = self._parse_unary_expression()

        while True:
            # TypeScript "x as T" and "x satisfies T" bind like relational operators
            if self._check_word("as", "satisfies") and not self.current.newline_before:
                if PRECEDENCE["<"] < min_precedence:
                    break
                self._advance()
                if not self._match(TokenType.CONST):
                    self._skip_type()
                continue

            op = BINARY_OPERATORS.get(self.current.type)
            if op is None:
                break

            # Skip 'in' operator when parsing for-in left-hand side
            if exclude_in and op == "in":
                break

            precedence = PRECEDENCE[op]
            if precedence < min_precedence:
                break

            self._advance()

            # Handle right-associative operators
            if op == "**":
                right = self._parse_binary_expression(precedence, exclude_in)
            else:
                right = self._parse_binary_expression(precedence + 1, exclude_in)

            if op in ("&&", "||", "??"):
                left = LogicalExpression(op, left, right, line=left.line)
            else:
                left = BinaryExpression(op, left, right, line=left.line)

        return left

    def _parse_unary_expression(self) -> Node:
        """Parse unary expression."""
        line = self.current.line
        # Prefix operators
        if self._check(
            TokenType.MINUS, TokenType.PLUS, TokenType.NOT, TokenType.TILDE,
            TokenType.TYPEOF, TokenType.VOID, TokenType.DELETE,
        ):
            op = self._advance().value
            argument = self._parse_unary_expression()
            return UnaryExpression(op, argument, line=line)

        # Prefix increment/decrement
        if self._check(TokenType.PLUSPLUS, TokenType.MINUSMINUS):
            op = self._advance().value
            argument = self._parse_unary_expression()
            return UpdateExpression(op, argument, prefix=True, line=line)

        if self._in_async and self._check_word("await"):
            self._advance()
            return AwaitExpression(self._parse_unary_expression(), line=line)

        if self._check(TokenType.LT):
            raise self._error("Angle-bracket type assertions are not supported, use 'as'")

        return self._parse_postfix_expression()

    def _parse_postfix_expression(self) -> Node:
        """Parse postfix expression (member access, calls, postfix ++/--)."""
        if self._check(TokenType.NEW):
            expr = self._parse_call_tail(self._parse_new_expression())
        elif self._check(TokenType.SUPER):
            token = self._advance()
            if not self._check(TokenType.LPAREN, TokenType.DOT, TokenType.LBRACKET):
                raise self._error("'super' must be called or accessed")
            expr = self._parse_call_tail(Super(line=token.line))
        elif self._check(TokenType.IMPORT):
            raise self._error("Dynamic import and import.meta are not supported")
        else:
            expr = self._parse_call_tail(self._parse_primary_expression())

        if self._check(TokenType.PLUSPLUS, TokenType.MINUSMINUS) and not self.current.newline_before:
            op = self._advance().value
            expr = UpdateExpression(op, expr, prefix=False, line=expr.line)
        return expr

    def _parse_call_tail(self, expr: Node, allow_calls: bool = True) -> Node:
        """Parse member accesses, calls and tagged templates after expr."""
        chained = False
        while True:
            line = self.current.line
            if self._match(TokenType.DOT):
                expr = MemberExpression(expr, self._parse_member_name(), computed=False, line=line)
            elif self._check(TokenType.QUESTION_DOT) and allow_calls:
                self._advance()
                chained = True
                if self._match(TokenType.LPAREN):
                    args = self._parse_arguments()
                    expr = CallExpression(expr, args, optional=True, line=line)
                elif self._match(TokenType.LBRACKET):
                    prop = self._parse_expression()
                    self._expect(TokenType.RBRACKET, "Expected ']' after index")
                    expr = MemberExpression(expr, prop, computed=True, optional=True, line=line)
                else:
                    expr = MemberExpression(expr, self._parse_member_name(), computed=False, optional=True, line=line)
            elif self._match(TokenType.LBRACKET):
                # Computed member access: a[b]
                prop = self._parse_expression()
                self._expect(TokenType.RBRACKET, "Expected ']' after index")
                expr = MemberExpression(expr, prop, computed=True, line=line)
            elif self._check(TokenType.LPAREN) and allow_calls:
                self._advance()
                args = self._parse_arguments()
                expr = CallExpression(expr, args, line=line)
            elif self._check(TokenType.TEMPLATE, TokenType.TEMPLATE_HEAD):
                if chained:
                    raise self._error("Tagged template cannot be used in an optional chain")
                expr = TaggedTemplateExpression(expr, self._parse_template(tagged=True), line=line)
            elif self._check(TokenType.NOT) and not self.current.newline_before:
                # TypeScript non-null assertion: x!
                self._advance()
            elif self._check(TokenType.LT) and allow_calls and self._skip_type_arguments_before_call():
                continue
            else:
                break

        if chained:
            expr = ChainExpression(expr, line=expr.line)
        return expr

    def _skip_type_arguments_before_call(self) -> bool:
        """Skip f<T>(...) type arguments; leave '<' alone if it is a comparison."""
        state = self._save()
        try:
            self._skip_type_parameters()
        except JSSyntaxError:
            self._restore(state)
            return False
        if self._check(TokenType.LPAREN, TokenType.TEMPLATE, TokenType.TEMPLATE_HEAD):
            return True
        self._restore(state)
        return False

    def _parse_member_name(self) -> Node:
        token = self.current
        if token.type == TokenType.PRIVATE_NAME:
            self._advance()
            return PrivateName(token.value, line=token.line)
        if token.type == TokenType.IDENTIFIER or token.type in KEYWORD_TYPES:
            self._advance()
            return Identifier(token.value, line=token.line)
        raise self._error("Expected property name")

    def _parse_new_expression(self) -> Node:
        """Parse new expression."""
        line = self._expect(TokenType.NEW, "Expected 'new'").line
        if self._check(TokenType.DOT):
            raise self._error("new.target is not supported")
        if self._check(TokenType.NEW):
            callee = self._parse_new_expression()
        else:
            callee = self._parse_call_tail(self._parse_primary_expression(), allow_calls=False)
        if self._check(TokenType.LT):
            self._skip_type_arguments_before_call()
        args: List[Node] = []
        if self._match(TokenType.LPAREN):
            args = self._parse_arguments()
        return NewExpression(callee, args, line=line)

    def _parse_arguments(self) -> List[Node]:
        """Parse call arguments after '(' up to and including ')'."""
        args: List[Node] = []
        while not self._check(TokenType.RPAREN):
            if self._check(TokenType.ELLIPSIS):
                line = self._advance().line
                args.append(SpreadElement(self._parse_assignment_expression(), line=line))
            else:
                args.append(self._parse_assignment_expression())
            if not self._match(TokenType.COMMA):
                break
        self._expect(TokenType.RPAREN, "Expected ')' after arguments")
        return args

    def _parse_primary_expression(self) -> Node:
        """Parse primary expression (literals, identifiers, grouped)."""
        token = self.current
        line = token.line

        # Literals
        if self._match(TokenType.NUMBER):
            return NumericLiteral(token.value, line=line)

        if self._match(TokenType.BIGINT):
            return BigIntLiteral(token.value, line=line)

        if self._match(TokenType.STRING):
            return StringLiteral(token.value, line=line)

        if self._match(TokenType.TRUE):
            return BooleanLiteral(True, line=line)

        if self._match(TokenType.FALSE):
            return BooleanLiteral(False, line=line)

        if self._match(TokenType.NULL):
            return NullLiteral(line=line)

        if self._match(TokenType.THIS):
            return ThisExpression(line=line)

        if self._check(TokenType.IDENTIFIER):
            if token.value == "async":
                next_token = self._peek_next()
                if next_token.type == TokenType.FUNCTION and not next_token.newline_before:
                    self._advance()
                    self._advance()
                    return self._parse_function(FunctionExpression, line, is_async=True, require_name=False)
            self._advance()
            return Identifier(token.value, line=line)

        if self._match(TokenType.PRIVATE_NAME):
            # Only valid as the left operand of "in"
            return PrivateName(token.value, line=line)

        # Parenthesized expression
        if self._match(TokenType.LPAREN):
            expr = self._parse_expression()
            self._expect(TokenType.RPAREN, "Expected ')' after expression")
            return expr

        # Array literal
        if self._match(TokenType.LBRACKET):
            return self._parse_array_literal(line)

        # Object literal
        if self._match(TokenType.LBRACE):
            return self._parse_object_literal(line)

        # Function expression
        if self._match(TokenType.FUNCTION):
            return self._parse_function(FunctionExpression, line, require_name=False)

        if self._match(TokenType.CLASS):
            return self._parse_class(ClassExpression, line, require_name=False)

        if self._check(TokenType.TEMPLATE, TokenType.TEMPLATE_HEAD):
            return self._parse_template(tagged=False)

        # Regex literal - when we see / in primary expression context, it's a regex
        if self._check(TokenType.SLASH, TokenType.SLASH_ASSIGN):
            regex_token = self.lexer.read_regex_literal(self.current)
            self.previous = regex_token
            self.current = self.lexer.next_token()  # Move past the regex
            pattern, flags = regex_token.value
            return RegexLiteral(pattern, flags, line=line)

        raise self._error(f"Unexpected token: {self.current.type.name}")

    def _parse_template(self, tagged: bool) -> TemplateLiteral:
        line = self.current.line
        quasis: List[TemplateElement] = []
        expressions: List[Node] = []

        token = self._advance()
        quasis.append(self._template_element(token, tagged))
        if token.type == TokenType.TEMPLATE:
            return TemplateLiteral(quasis, expressions, line=line)

        while True:
            expressions.append(self._parse_expression())
            token = self.current
            if token.type not in (TokenType.TEMPLATE_MIDDLE, TokenType.TEMPLATE_TAIL):
                raise self._error("Expected '}' in template literal")
            self._advance()
            quasis.append(self._template_element(token, tagged))
            if token.type == TokenType.TEMPLATE_TAIL:
                break
        return TemplateLiteral(quasis, expressions, line=line)

    def _template_element(self, token: Token, tagged: bool) -> TemplateElement:
        cooked, raw = token.value
        if cooked is None and not tagged:
            raise self._error("Invalid escape sequence in template literal", token)
        return TemplateElement(cooked, raw, line=token.line)

    def _parse_array_literal(self, line: int) -> ArrayExpression:
        """Parse array literal: [a, b, c]"""
        elements: List[Optional[Node]] = []
        while not self._check(TokenType.RBRACKET):
            if self._match(TokenType.COMMA):
                elements.append(None)
                continue
            if self._check(TokenType.ELLIPSIS):
                spread_line = self._advance().line
                elements.append(SpreadElement(self._parse_assignment_expression(), line=spread_line))
            else:
                elements.append(self._parse_assignment_expression())
            if not self._match(TokenType.COMMA):
                break
        self._expect(TokenType.RBRACKET, "Expected ']' after array elements")
        return ArrayExpression(elements, line=line)

    def _parse_object_literal(self, line: int) -> ObjectExpression:
        """Parse object literal: {a: 1, b: 2}"""
        properties: List[Node] = []
        seen = set()
        while not self._check(TokenType.RBRACE):
            if self._check(TokenType.ELLIPSIS):
                spread_line = self._advance().line
                properties.append(SpreadElement(self._parse_assignment_expression(), line=spread_line))
            else:
                prop = self._parse_property()
                key = _static_key(prop)
                if key is not None:
                    if (key, prop.kind) in seen or (key, "init") in seen or (prop.kind == "init" and any(
                        (key, kind) in seen for kind in ("get", "set")
                    )):
                        self._warn(f'duplicate key "{key}" in object literal', prop.line)
                    seen.add((key, prop.kind))
                properties.append(prop)
            if not self._match(TokenType.COMMA):
                break
        self._expect(TokenType.RBRACE, "Expected '}' after object properties")
        return ObjectExpression(properties, line=line)

    def _parse_property_key(self, allow_private: bool = False) -> Tuple[Node, bool]:
        """Parse a property name, returning (key, computed)."""
        token = self.current
        line = token.line
        if self._match(TokenType.LBRACKET):
            key = self._parse_assignment_expression()
            self._expect(TokenType.RBRACKET, "Expected ']' after computed property name")
            return key, True
        if self._match(TokenType.STRING):
            return StringLiteral(token.value, line=line), False
        if self._match(TokenType.NUMBER):
            return NumericLiteral(token.value, line=line), False
        if self._match(TokenType.BIGINT):
            return StringLiteral(token.value, line=line), False
        if allow_private and self._match(TokenType.PRIVATE_NAME):
            return PrivateName(token.value, line=line), False
        if token.type == TokenType.IDENTIFIER or token.type in KEYWORD_TYPES:
            self._advance()
            return Identifier(token.value, line=line), False
        raise self._error("Expected property name")

    def _parse_property(self) -> Property:
        """Parse object property."""
        line = self.current.line
        is_async = False
        kind = "init"
        if self._check_word("async") and self._next_is_member_name():
            self._advance()
            is_async = True
        generator = self._match(TokenType.STAR)
        if self._check_word("get", "set") and self._next_is_member_name():
            kind = self._advance().value

        key_token = self.current
        key, computed = self._parse_property_key()

        if kind in ("get", "set") or is_async or generator or self._check(TokenType.LPAREN, TokenType.LT):
            value = self._parse_method_function(line, is_async, generator)
            if value is None:
                raise self._error("Expected method body")
            return Property(key, value, kind, computed=computed, method=kind == "init", line=line)

        if self._match(TokenType.COLON):
            value = self._parse_assignment_expression()
            return Property(key, value, computed=computed, line=line)

        # Shorthand property: {x} means {x: x}
        if computed or key_token.type != TokenType.IDENTIFIER:
            raise self._error("Expected ':' after property name")
        value = Identifier(key.name, line=line)
        if self._check(TokenType.ASSIGN):
            # Only valid once the literal is reinterpreted as a pattern
            self._advance()
            value = AssignmentPattern(value, self._parse_assignment_expression(), line=line)
        return Property(key, value, computed=False, shorthand=True, line=line)

    # ---- TypeScript type skipping ----

    def _skip_type_annotation(self) -> None:
        if self._match(TokenType.COLON):
            self._skip_type()

    def _skip_type_parameters(self) -> None:
        """Skip a <...> type parameter or argument list if present."""
        if not self._check(TokenType.LT):
            return
        depth = 0
        while True:
            token_type = self.current.type
            if token_type == TokenType.EOF:
                raise self._error("Unterminated type parameter list")
            if token_type == TokenType.LT:
                depth += 1
            elif token_type == TokenType.GT:
                depth -= 1
            elif token_type == TokenType.RSHIFT:
                depth -= 2
            elif token_type == TokenType.URSHIFT:
                depth -= 3
            elif token_type not in _TYPE_TOKENS and token_type not in (TokenType.LBRACE, TokenType.LPAREN):
                raise self._error("Unexpected token in type parameter list")
            elif token_type == TokenType.LBRACE:
                self._skip_balanced(TokenType.LBRACE, TokenType.RBRACE)
                continue
            elif token_type == TokenType.LPAREN:
                self._skip_balanced(TokenType.LPAREN, TokenType.RPAREN)
                continue
            self._advance()
            if depth < 0:
                raise self._error("Unbalanced '>' in type parameter list")
            if depth == 0:
                return

    def _skip_balanced(self, open_type: TokenType, close_type: TokenType) -> None:
        self._expect(open_type, f"Expected {open_type.name}")
        depth = 1
        while depth:
            if self._is_at_end():
                raise self._error(f"Expected {close_type.name}")
            if self.current.type == open_type:
                depth += 1
            elif self.current.type == close_type:
                depth -= 1
            self._advance()

    def _skip_type(self) -> None:
        """Skip a complete type expression."""
        if not self._match(TokenType.PIPE):
            self._match(TokenType.AMPERSAND)
        self._skip_type_operand()
        while self._check(TokenType.PIPE, TokenType.AMPERSAND):
            self._advance()
            self._skip_type_operand()
        if self._check(TokenType.EXTENDS) and not self.current.newline_before:
            # Conditional type: A extends B ? C : D
            self._advance()
            self._skip_type_operand()
            self._expect(TokenType.QUESTION, "Expected '?' in conditional type")
            self._skip_type()
            self._expect(TokenType.COLON, "Expected ':' in conditional type")
            self._skip_type()

    def _skip_type_operand(self) -> None:
        self._skip_type_primary()
        while self._check(TokenType.LBRACKET) and not self.current.newline_before:
            self._skip_balanced(TokenType.LBRACKET, TokenType.RBRACKET)

    def _skip_type_primary(self) -> None:
        token = self.current
        if token.type == TokenType.IDENTIFIER and token.value in ("keyof", "readonly", "unique", "infer", "asserts") \
                and self._next_is_member_name():
            self._advance()
            self._skip_type_operand()
            return
        if token.type == TokenType.TYPEOF:
            self._advance()
            self._parse_member_name()
            while self._match(TokenType.DOT):
                self._parse_member_name()
            return
        if token.type == TokenType.IDENTIFIER:
            self._advance()
            while self._match(TokenType.DOT):
                self._parse_member_name()
            if self._check(TokenType.LT) and not self.current.newline_before:
                self._skip_type_parameters()
            if self._check_word("is") and not self.current.newline_before:
                self._advance()
                self._skip_type()
            return
        if token.type in (
            TokenType.VOID, TokenType.NULL, TokenType.THIS, TokenType.TRUE, TokenType.FALSE,
            TokenType.NUMBER, TokenType.STRING, TokenType.BIGINT, TokenType.TEMPLATE,
        ):
            self._advance()
            return
        if token.type == TokenType.MINUS:
            self._advance()
            self._expect(TokenType.NUMBER, "Expected number in literal type")
            return
        if token.type == TokenType.TEMPLATE_HEAD:
            self._advance()
            while True:
                self._skip_type()
                if self._match(TokenType.TEMPLATE_TAIL):
                    return
                self._expect(TokenType.TEMPLATE_MIDDLE, "Expected '}' in template literal type")
        if token.type in (TokenType.NEW, TokenType.LT, TokenType.LPAREN):
            # Function or constructor type, or a parenthesized type
            self._match(TokenType.NEW)
            self._skip_type_parameters()
            self._skip_balanced(TokenType.LPAREN, TokenType.RPAREN)
            if self._match(TokenType.ARROW):
                self._skip_type()
            return
        if token.type == TokenType.LBRACE:
            self._skip_balanced(TokenType.LBRACE, TokenType.RBRACE)
            return
        if token.type == TokenType.LBRACKET:
            self._skip_balanced(TokenType.LBRACKET, TokenType.RBRACKET)
            return
        if token.type == TokenType.IMPORT:
            self._advance()
            self._skip_balanced(TokenType.LPAREN, TokenType.RPAREN)
            while self._match(TokenType.DOT):
                self._parse_member_name()
            return
        raise self._error("Expected type")


def _static_key(prop: Property) -> Optional[str]:
    """Name of a non-computed property key, for duplicate detection."""
    if prop.computed:
        return None
    key = prop.key
    if isinstance(key, Identifier):
        return key.name
    if isinstance(key, StringLiteral):
        return key.value
    if isinstance(key, NumericLiteral):
        return str(key.value)
    return None


def parse(source: str) -> Tuple[Program, List[Warning]]:
    """Parse source text, returning the program and any warnings."""
    parser = Parser(source)
    program = parser.parse()
    return program, parser.warnings
