"""Build error types and warnings."""

from dataclasses import dataclass


class CompileError(Exception):
    """Base class for all build errors."""

    def __init__(self, message: str = "", name: str = "CompileError"):
        self.message = message
        self.name = name
        super().__init__(f"{name}: {message}" if message else name)


class JSSyntaxError(CompileError):
    """Source text that could not be tokenized or parsed."""

    def __init__(self, message: str = "", line: int = 0, column: int = 0):
        self.line = line
        self.column = column
        if line > 0:
            full_message = f"line {line}, column {column}: {message}"
        else:
            full_message = message
        super().__init__(full_message, "SyntaxError")


class GrammarError(CompileError):
    """Host intrinsic used in a shape the host dialect cannot express.

    ``expected`` describes the legal form so the message is corrective.
    """

    def __init__(self, message: str, expected: str = "", line: int = 0):
        self.expected = expected
        self.line = line
        if expected:
            message = f"{message} (expected {expected})"
        if line > 0:
            message = f"line {line}: {message}"
        super().__init__(message, "GrammarError")


class SemanticError(CompileError):
    """Source is well formed but contradicts itself or its build options."""

    def __init__(self, message: str = "", name: str = "SemanticError"):
        super().__init__(message, name)


class SeclevelError(SemanticError):
    """Stated security level could not be understood."""

    def __init__(self, message: str = ""):
        super().__init__(message, "SeclevelError")


class ConstReassignmentError(SemanticError):
    """A binding declared with ``const`` is assigned to."""

    def __init__(self, binding: str, line: int = 0):
        self.binding = binding
        self.line = line
        message = f'cannot reassign "{binding}", it was declared with const'
        if line > 0:
            message = f"line {line}: {message}"
        super().__init__(message, "ConstReassignmentError")


class InternalConsistencyError(CompileError):
    """The pipeline produced output it should never produce."""

    def __init__(self, message: str = ""):
        super().__init__(message, "InternalConsistencyError")


@dataclass
class Warning:
    """A non-fatal diagnostic with the source line it refers to."""

    message: str
    line: int = 0

    def __str__(self) -> str:
        return f"line {self.line}: {self.message}" if self.line else self.message
