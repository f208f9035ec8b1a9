"""JavaScript / TypeScript lexer (tokenizer)."""

from typing import Iterator, List, Optional, Tuple
from .tokens import Token, TokenType, KEYWORDS
from .errors import JSSyntaxError


LINE_TERMINATORS = "\n\r\u2028\u2029"

# Every character the host does not bill, which is also exactly the set the
# language treats as insignificant whitespace.
WHITESPACE = (
    " \t\n\r\v\f\u00a0\u1680\u2000\u2001\u2002\u2003\u2004\u2005\u2006"
    "\u2007\u2008\u2009\u200a\u2028\u2029\u202f\u205f\u3000\ufeff"
)

# Token types after which a "/" starts a division rather than a regex.
_DIVISION_CONTEXT = {
    TokenType.IDENTIFIER, TokenType.PRIVATE_NAME, TokenType.NUMBER,
    TokenType.BIGINT, TokenType.STRING, TokenType.REGEX, TokenType.TEMPLATE,
    TokenType.TEMPLATE_TAIL, TokenType.RPAREN, TokenType.RBRACKET,
    TokenType.RBRACE, TokenType.THIS, TokenType.SUPER, TokenType.TRUE,
    TokenType.FALSE, TokenType.NULL, TokenType.PLUSPLUS, TokenType.MINUSMINUS,
}


def is_identifier_start(ch: str) -> bool:
    return bool(ch) and (ch.isalpha() or ch in "_$")


def is_identifier_part(ch: str) -> bool:
    return bool(ch) and (ch.isalnum() or ch in "_$\u200c\u200d")


class Lexer:
    """Tokenizes script source code."""

    def __init__(self, source: str):
        self.source = source
        self.pos = 0
        self.line = 1
        self.column = 1
        self.length = len(source)
        # Tracks "{" versus "${" so a "}" can resume a template literal
        self.brace_stack: List[str] = []
        # (message, line) pairs for legal but suspicious input
        self.diagnostics: List[Tuple[str, int]] = []

        if source.startswith("#!"):
            while self._current() and self._current() not in LINE_TERMINATORS:
                self._advance()

    def save(self) -> tuple:
        """Snapshot the lexer position for backtracking."""
        return (self.pos, self.line, self.column, list(self.brace_stack), len(self.diagnostics))

    def restore(self, state: tuple) -> None:
        """Return to a snapshot taken with save()."""
        self.pos, self.line, self.column, brace_stack, diagnostics = state
        self.brace_stack = list(brace_stack)
        del self.diagnostics[diagnostics:]

    def _current(self) -> str:
        """Get current character or empty string if at end."""
        if self.pos >= self.length:
            return ""
        return self.source[self.pos]

    def _peek(self, offset: int = 1) -> str:
        """Peek ahead at character."""
        pos = self.pos + offset
        if pos >= self.length:
            return ""
        return self.source[pos]

    def _advance(self) -> str:
        """Advance and return current character."""
        if self.pos >= self.length:
            return ""
        ch = self.source[self.pos]
        self.pos += 1
        if ch == "\n" or ch in "\u2028\u2029" or (ch == "\r" and self._current() != "\n"):
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return ch

    def _skip_whitespace(self) -> bool:
        """Skip whitespace and comments, returning True if a line break was crossed."""
        newline = False
        while self.pos < self.length:
            ch = self._current()

            if ch in WHITESPACE:
                if ch in LINE_TERMINATORS:
                    newline = True
                self._advance()
                continue

            # Single-line comment
            if ch == "/" and self._peek() == "/":
                while self._current() and self._current() not in LINE_TERMINATORS:
                    self._advance()
                continue

            # Multi-line comment
            if ch == "/" and self._peek() == "*":
                line = self.line
                column = self.column
                self._advance()  # /
                self._advance()  # *
                while True:
                    if self.pos >= self.length:
                        raise JSSyntaxError("Unterminated comment", line, column)
                    if self._current() == "*" and self._peek() == "/":
                        self._advance()  # *
                        self._advance()  # /
                        break
                    if self._current() in LINE_TERMINATORS:
                        newline = True
                    self._advance()
                continue

            break
        return newline

    def _read_escape(self, result: List[str], in_template: bool) -> bool:
        """Read one escape sequence after the backslash.

        Returns False if the escape is not valid in cooked form, which is
        only tolerated inside templates.
        """
        line = self.line
        column = self.column
        escape = self._advance()
        simple = {"n": "\n", "r": "\r", "t": "\t", "b": "\b", "f": "\f", "v": "\v"}
        if escape in simple:
            result.append(simple[escape])
        elif escape == "\r":
            if self._current() == "\n":
                self._advance()
        elif escape in "\n\u2028\u2029":
            pass  # line continuation
        elif escape == "0" and not self._current().isdigit():
            result.append("\0")
        elif escape.isdigit():
            if in_template:
                return False
            digits = escape
            while len(digits) < 3 and self._current() and self._current() in "01234567":
                digits += self._advance()
            self.diagnostics.append(("legacy octal escape sequence in string", line))
            try:
                result.append(chr(int(digits, 8)))
            except ValueError:
                result.append(digits)
        elif escape == "x":
            hex_chars = self._advance() + self._advance()
            try:
                result.append(chr(int(hex_chars, 16)))
            except ValueError:
                if in_template:
                    return False
                raise JSSyntaxError(f"Invalid hex escape: \\x{hex_chars}", line, column)
        elif escape == "u":
            if self._current() == "{":
                self._advance()  # {
                hex_chars = ""
                while self._current() and self._current() != "}":
                    hex_chars += self._advance()
                self._advance()  # }
            else:
                hex_chars = ""
                for _ in range(4):
                    hex_chars += self._advance()
            try:
                result.append(chr(int(hex_chars, 16)))
            except ValueError:
                if in_template:
                    return False
                raise JSSyntaxError(f"Invalid unicode escape: \\u{hex_chars}", line, column)
        elif escape == "":
            raise JSSyntaxError("Unterminated escape sequence", line, column)
        else:
            # Unknown escape - just use the character
            result.append(escape)
        return True

    def _read_string(self, quote: str) -> str:
        """Read a string literal."""
        result: List[str] = []
        self._advance()  # Skip opening quote

        while self._current() and self._current() != quote:
            ch = self._advance()

            if ch == "\\":
                self._read_escape(result, in_template=False)
            elif ch in "\n\r":
                raise JSSyntaxError("Unterminated string literal", self.line, self.column)
            else:
                result.append(ch)

        if not self._current():
            raise JSSyntaxError("Unterminated string literal", self.line, self.column)

        self._advance()  # Skip closing quote
        return "".join(result)

    def _read_template_chunk(self, line: int, column: int, start: int, head: bool, newline: bool) -> Token:
        """Read template text up to the closing backtick or the next "${"."""
        cooked: Optional[List[str]] = []
        raw_start = self.pos

        while True:
            ch = self._current()
            if not ch:
                raise JSSyntaxError("Unterminated template literal", line, column)
            if ch == "`":
                raw = self.source[raw_start:self.pos]
                self._advance()
                token_type = TokenType.TEMPLATE if head else TokenType.TEMPLATE_TAIL
                break
            if ch == "$" and self._peek() == "{":
                raw = self.source[raw_start:self.pos]
                self._advance()
                self._advance()
                self.brace_stack.append("template")
                token_type = TokenType.TEMPLATE_HEAD if head else TokenType.TEMPLATE_MIDDLE
                break
            self._advance()
            if ch == "\\":
                scratch: List[str] = []
                if not self._read_escape(scratch, in_template=True):
                    cooked = None
                if cooked is not None:
                    cooked.extend(scratch)
            elif ch == "\r":
                if self._current() == "\n":
                    self._advance()
                if cooked is not None:
                    cooked.append("\n")
            elif cooked is not None:
                cooked.append(ch)

        value = ("".join(cooked) if cooked is not None else None, raw.replace("\r\n", "\n"))
        return Token(token_type, value, line, column, start, self.pos, newline)

    def _read_digits(self, allowed: str) -> str:
        digits = []
        while self._current() and (self._current() in allowed or self._current() == "_"):
            ch = self._advance()
            if ch != "_":
                digits.append(ch)
        return "".join(digits)

    def _read_number(self) -> Tuple[TokenType, object]:
        """Read a number literal."""
        line = self.line
        col = self.column

        # Check for hex, octal, or binary
        if self._current() == "0":
            next_ch = self._peek()
            for prefixes, base, allowed in (("xX", 16, "0123456789abcdefABCDEF"), ("oO", 8, "01234567"), ("bB", 2, "01")):
                if next_ch and next_ch in prefixes:
                    self._advance()  # 0
                    self._advance()  # prefix
                    digits = self._read_digits(allowed)
                    if not digits:
                        raise JSSyntaxError("Invalid number literal", line, col)
                    if self._current() == "n":
                        self._advance()
                        return TokenType.BIGINT, str(int(digits, base))
                    return TokenType.NUMBER, int(digits, base)
            if next_ch and next_ch.isdigit():
                digits = self._read_digits("0123456789")
                if all(d in "01234567" for d in digits):
                    self.diagnostics.append(("legacy octal literal", line))
                    return TokenType.NUMBER, int(digits, 8)
                return TokenType.NUMBER, int(digits)
            # Could be 0, 0.xxx, or 0e... - fall through to decimal handling

        # Decimal number (integer part)
        integer = self._read_digits("0123456789")

        if self._current() == "n":
            self._advance()
            return TokenType.BIGINT, str(int(integer))

        # Decimal point
        is_float = False
        fraction = ""
        if self._current() == ".":
            is_float = True
            self._advance()  # .
            fraction = self._read_digits("0123456789")

        # Exponent
        exponent = ""
        if self._current() and self._current() in "eE":
            is_float = True
            self._advance()
            sign = ""
            if self._current() in "+-":
                sign = self._advance()
            digits = self._read_digits("0123456789")
            if not digits:
                raise JSSyntaxError("Invalid number literal", line, col)
            exponent = f"e{sign}{digits}"

        if is_identifier_start(self._current()):
            raise JSSyntaxError("Identifier directly after number", line, col)

        num_str = f"{integer or '0'}.{fraction or '0'}{exponent}" if is_float else integer
        if is_float:
            value = float(num_str)
            if value.is_integer() and abs(value) < 2 ** 53:
                return TokenType.NUMBER, int(value)
            return TokenType.NUMBER, value
        return TokenType.NUMBER, int(num_str)

    def _read_identifier(self) -> str:
        """Read an identifier."""
        start = self.pos
        while is_identifier_part(self._current()):
            self._advance()
        return self.source[start : self.pos]

    def next_token(self) -> Token:
        """Get the next token."""
        newline = self._skip_whitespace()

        line = self.line
        column = self.column
        start = self.pos

        def make(token_type: TokenType, value) -> Token:
            return Token(token_type, value, line, column, start, self.pos, newline)

        if self.pos >= self.length:
            return make(TokenType.EOF, None)

        ch = self._current()

        # String literals
        if ch in "'\"":
            return make(TokenType.STRING, self._read_string(ch))

        # Template literals
        if ch == "`":
            self._advance()
            return self._read_template_chunk(line, column, start, True, newline)

        # Number literals
        if ch.isdigit() or (ch == "." and self._peek().isdigit()):
            token_type, value = self._read_number()
            return make(token_type, value)

        # Identifiers and keywords
        if is_identifier_start(ch):
            value = self._read_identifier()
            token_type = KEYWORDS.get(value, TokenType.IDENTIFIER)
            return make(token_type, value)

        if ch == "#":
            self._advance()
            # numbered seclevel sigils such as #4s
            numbered = self._current() in "01234" and self._peek() == "s"
            if not (is_identifier_start(self._current()) or numbered):
                raise JSSyntaxError(f"Unexpected character after '#': {self._current()!r}", line, column)
            return make(TokenType.PRIVATE_NAME, self._read_identifier())

        # Operators and punctuation
        self._advance()

        if ch == "{":
            self.brace_stack.append("brace")
            return make(TokenType.LBRACE, "{")

        if ch == "}":
            if self.brace_stack and self.brace_stack[-1] == "template":
                self.brace_stack.pop()
                return self._read_template_chunk(line, column, start, False, newline)
            if self.brace_stack:
                self.brace_stack.pop()
            return make(TokenType.RBRACE, "}")

        if ch == "." and self._current() == "." and self._peek() == ".":
            self._advance()
            self._advance()
            return make(TokenType.ELLIPSIS, "...")

        if ch == "?":
            if self._current() == "." and not self._peek().isdigit():
                self._advance()
                return make(TokenType.QUESTION_DOT, "?.")
            if self._current() == "?":
                self._advance()
                if self._current() == "=":
                    self._advance()
                    return make(TokenType.NULLISH_ASSIGN, "??=")
                return make(TokenType.NULLISH, "??")
            return make(TokenType.QUESTION, "?")

        # Two or three character operators
        if ch == "=" and self._current() == "=":
            self._advance()
            if self._current() == "=":
                self._advance()
                return make(TokenType.EQEQ, "===")
            return make(TokenType.EQ, "==")

        if ch == "=" and self._current() == ">":
            self._advance()
            return make(TokenType.ARROW, "=>")

        if ch == "!" and self._current() == "=":
            self._advance()
            if self._current() == "=":
                self._advance()
                return make(TokenType.NENE, "!==")
            return make(TokenType.NE, "!=")

        if ch == "<":
            if self._current() == "=":
                self._advance()
                return make(TokenType.LE, "<=")
            if self._current() == "<":
                self._advance()
                if self._current() == "=":
                    self._advance()
                    return make(TokenType.LSHIFT_ASSIGN, "<<=")
                return make(TokenType.LSHIFT, "<<")
            return make(TokenType.LT, "<")

        if ch == ">":
            if self._current() == "=":
                self._advance()
                return make(TokenType.GE, ">=")
            if self._current() == ">":
                self._advance()
                if self._current() == ">":
                    self._advance()
                    if self._current() == "=":
                        self._advance()
                        return make(TokenType.URSHIFT_ASSIGN, ">>>=")
                    return make(TokenType.URSHIFT, ">>>")
                if self._current() == "=":
                    self._advance()
                    return make(TokenType.RSHIFT_ASSIGN, ">>=")
                return make(TokenType.RSHIFT, ">>")
            return make(TokenType.GT, ">")

        if ch == "&":
            if self._current() == "&":
                self._advance()
                if self._current() == "=":
                    self._advance()
                    return make(TokenType.LOGICAL_AND_ASSIGN, "&&=")
                return make(TokenType.AND, "&&")
            if self._current() == "=":
                self._advance()
                return make(TokenType.AND_ASSIGN, "&=")
            return make(TokenType.AMPERSAND, "&")

        if ch == "|":
            if self._current() == "|":
                self._advance()
                if self._current() == "=":
                    self._advance()
                    return make(TokenType.LOGICAL_OR_ASSIGN, "||=")
                return make(TokenType.OR, "||")
            if self._current() == "=":
                self._advance()
                return make(TokenType.OR_ASSIGN, "|=")
            return make(TokenType.PIPE, "|")

        if ch == "+":
            if self._current() == "+":
                self._advance()
                return make(TokenType.PLUSPLUS, "++")
            if self._current() == "=":
                self._advance()
                return make(TokenType.PLUS_ASSIGN, "+=")
            return make(TokenType.PLUS, "+")

        if ch == "-":
            if self._current() == "-":
                self._advance()
                return make(TokenType.MINUSMINUS, "--")
            if self._current() == "=":
                self._advance()
                return make(TokenType.MINUS_ASSIGN, "-=")
            return make(TokenType.MINUS, "-")

        if ch == "*":
            if self._current() == "*":
                self._advance()
                if self._current() == "=":
                    self._advance()
                    return make(TokenType.STARSTAR_ASSIGN, "**=")
                return make(TokenType.STARSTAR, "**")
            if self._current() == "=":
                self._advance()
                return make(TokenType.STAR_ASSIGN, "*=")
            return make(TokenType.STAR, "*")

        if ch == "/":
            if self._current() == "=":
                self._advance()
                return make(TokenType.SLASH_ASSIGN, "/=")
            return make(TokenType.SLASH, "/")

        if ch == "%":
            if self._current() == "=":
                self._advance()
                return make(TokenType.PERCENT_ASSIGN, "%=")
            return make(TokenType.PERCENT, "%")

        if ch == "^":
            if self._current() == "=":
                self._advance()
                return make(TokenType.XOR_ASSIGN, "^=")
            return make(TokenType.CARET, "^")

        # Single character tokens
        single_char_tokens = {
            "(": TokenType.LPAREN,
            ")": TokenType.RPAREN,
            "[": TokenType.LBRACKET,
            "]": TokenType.RBRACKET,
            ";": TokenType.SEMICOLON,
            ",": TokenType.COMMA,
            ".": TokenType.DOT,
            ":": TokenType.COLON,
            "~": TokenType.TILDE,
            "!": TokenType.NOT,
            "=": TokenType.ASSIGN,
            "@": TokenType.AT,
        }

        if ch in single_char_tokens:
            return make(single_char_tokens[ch], ch)

        raise JSSyntaxError(f"Unexpected character: {ch!r}", line, column)

    def read_regex_literal(self, slash: Token) -> Token:
        """Re-read a "/" or "/=" token as the start of a regex literal.

        Called when the parser (or the defensive tokenizer) knows a regex is
        expected at the position of ``slash``.
        """
        self.pos = slash.start
        self.line = slash.line
        self.column = slash.column
        line = slash.line
        column = slash.column

        self._advance()  # Skip opening /

        # Read pattern
        pattern = []
        in_char_class = False

        while True:
            if self.pos >= self.length:
                raise JSSyntaxError("Unterminated regex literal", line, column)
            ch = self._current()

            if ch == "\\" and self.pos + 1 < self.length:
                # Escape sequence - include both characters
                pattern.append(self._advance())
                pattern.append(self._advance())
            elif ch == "[":
                in_char_class = True
                pattern.append(self._advance())
            elif ch == "]":
                in_char_class = False
                pattern.append(self._advance())
            elif ch == "/" and not in_char_class:
                # End of pattern
                self._advance()
                break
            elif ch in LINE_TERMINATORS:
                raise JSSyntaxError("Unterminated regex literal", line, column)
            else:
                pattern.append(self._advance())

        # Read flags
        flags = []
        while self._current() and self._current() in "dgimsuyv":
            flags.append(self._advance())

        return Token(
            TokenType.REGEX,
            ("".join(pattern), "".join(flags)),
            line,
            column,
            slash.start,
            self.pos,
            slash.newline_before,
        )

    def tokenize(self) -> Iterator[Token]:
        """Tokenize the entire source without a parser.

        Regex literals are told apart from division by the previous token,
        which is enough for scanning text that may not parse yet.
        """
        previous: Optional[Token] = None
        while True:
            token = self.next_token()
            if token.type in (TokenType.SLASH, TokenType.SLASH_ASSIGN) and (
                previous is None or previous.type not in _DIVISION_CONTEXT
            ):
                token = self.read_regex_literal(token)
            yield token
            if token.type == TokenType.EOF:
                break
            previous = token
