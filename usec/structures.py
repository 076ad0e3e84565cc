"""
Shared data structures for the USEC tokenizer, parser and serializer.
"""

import re
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, List, Optional, Protocol, runtime_checkable

IDENTIFIER_RE = re.compile(r'[A-Za-z_][A-Za-z0-9_]*')
KEYWORDS = {'true': True, 'false': False, 'null': None}

# ==========================================
# Tokens
# ==========================================

class TokenType(Enum):
    # Separators
    NEWLINE = auto()
    SPACE = auto()
    COLON = auto()         # :
    EQUALS = auto()        # =
    EXCLAMATION = auto()   # !

    # Literals
    IDENTIFIER = auto()
    KEYWORD = auto()
    NUMBER = auto()
    STRING = auto()        # fragment between string delimiters
    CHAR = auto()

    # Structure
    STRING_START = auto()  # " or `
    STRING_END = auto()
    INTERP_OPEN = auto()   # $( , opener stack only
    INTERP_IDENTIFIER = auto()
    LBRACKET = auto()      # [
    RBRACKET = auto()      # ]
    LBRACE = auto()        # {
    RBRACE = auto()        # }

    # Paths
    DOLLAR = auto()        # $
    DOT = auto()           # .
    SLASH = auto()         # /
    TILDE = auto()         # ~

    # End
    EOF = auto()

@dataclass(frozen=True)
class Token:
    type: TokenType
    value: Any
    line: int
    col: int

# ==========================================
# Errors
# ==========================================

class USECError(Exception):
    kind = "USEC error"

    def __init__(self, message: str, line: int = 0, col: int = 0):
        if line:
            super().__init__(f"{self.kind} at {line}:{col}: {message}")
        else:
            super().__init__(f"{self.kind}: {message}")
        self.message = message
        self.line = line
        self.col = col

class LexerError(USECError):
    kind = "Lexer error"

class ParseError(USECError):
    kind = "Parse error"

class SerializeError(USECError):
    kind = "Serialize error"

# ==========================================
# Values
# ==========================================

class Char(str):
    """A string holding exactly one code point, written as 'c'."""

    def __new__(cls, value=''):
        if len(value) != 1:
            raise ValueError(f"Char must hold exactly one character, got {value!r}")
        return super().__new__(cls, value)

    def __repr__(self):
        return f"Char({str.__repr__(self)})"

class _Absent:
    """The value of a document holding a lone '!'."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return 'ABSENT'

    def __bool__(self):
        return False

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self

ABSENT = _Absent()

@runtime_checkable
class Convertible(Protocol):
    """Objects that can turn themselves into plain USEC values."""

    def to_usec(self) -> Any:
        ...

@dataclass
class TokenizeResult:
    tokens: List[Token]
    errors: List[LexerError]
    compact: bool = False

@dataclass
class ParseResult:
    value: Any
    errors: List[ParseError] = field(default_factory=list)
    lexical_errors: List[LexerError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors and not self.lexical_errors

# ==========================================
# Decorations (output only)
# ==========================================

@dataclass
class Newline:
    count: int = 1

    def render(self, indent: str) -> List[str]:
        return [''] * self.count

@dataclass
class Comment:
    text: str = ''

    def render(self, indent: str) -> List[str]:
        return [f"{indent}# {line}" for line in self.text.splitlines() or ['']]

@dataclass
class MultilineComment:
    text: str = ''

    def render(self, indent: str) -> List[str]:
        if '%%' in self.text:
            raise SerializeError("Block comment text cannot contain '%%'")
        if '\n' not in self.text:
            return [f"{indent}%% {self.text} %%"]
        body = [f"{indent}{line}" if line else '' for line in self.text.split('\n')]
        return [f"{indent}%%"] + body + [f"{indent}%%"]

@dataclass
class Format:
    """Wraps a value with decorations emitted around it in readable output."""
    node: Any
    before: List[Any] = field(default_factory=list)
    after: List[Any] = field(default_factory=list)

    def unwrap(self):
        """Merge nested wrappers into (node, before, after)."""
        before, after = list(self.before), list(self.after)
        node = self.node
        while isinstance(node, Format):
            before.extend(node.before)
            after[:0] = node.after
            node = node.node
        return node, before, after

def is_identifier(name: Optional[str]) -> bool:
    return bool(name) and IDENTIFIER_RE.fullmatch(name) is not None
