"""
USEC parser.

Recursive descent over the token stream with a single forward cursor.
Variables live in a ``ChainMap``: entering an object pushes a fresh child
map, so declarations made inside it never reach the parent or siblings.
"""

import copy
import logging
import re
from collections import ChainMap
from typing import Any, Dict, List, Mapping, NamedTuple, Optional

from .serializer import interpolation_text
from .structures import ABSENT, KEYWORDS, Char, ParseError, Token, TokenType

logger = logging.getLogger(__name__)

PATH_STARTS = (TokenType.DOT, TokenType.SLASH, TokenType.TILDE, TokenType.DOLLAR)
CLOSERS = (TokenType.RBRACE, TokenType.RBRACKET)

LITERAL_INTERP_RE = re.compile(r'(\\*)\$\(')

_UNDEFINED = object()

class _VariableRef(NamedTuple):
    token: Token

def new_scope(variables: Optional[Mapping[str, Any]] = None) -> ChainMap:
    """Top-level scope seeded with caller-provided variables."""
    return ChainMap({}, dict(variables or {}))

def variable_marker(name: str) -> str:
    return f"$(${name})"

def escape_literal(text: str) -> str:
    """Escape literal ``$(`` in retained text so it reads back as text, not a marker."""
    return LITERAL_INTERP_RE.sub(lambda m: m.group(1) * 2 + '\\$(', text)

# ==========================================
# Parser
# ==========================================

class _USECParser:
    def __init__(self, tokens: List[Token], pedantic: bool = True, keep_variables: bool = False,
                 compact: bool = False, variables: Optional[Mapping[str, Any]] = None,
                 debug: bool = False):
        # Whitespace only matters for telling path segments apart
        self.tokens = []
        self.spaced = set()
        for token in tokens:
            if token.type == TokenType.SPACE:
                self.spaced.add(len(self.tokens))
            else:
                self.tokens.append(token)

        self.pos = 0
        self.depth = 0
        self.pedantic = pedantic
        self.keep_variables = keep_variables
        self.compact = compact
        self.variables = variables
        self.debug = debug
        self.errors: List[ParseError] = []

    def error(self, message: str, token: Token = None):
        token = token or self.current()
        err = ParseError(message, token.line, token.col)
        if self.pedantic:
            raise err
        logger.warning(str(err))
        self.errors.append(err)

    def trace(self, token: Token, label: str, value):
        if self.debug:
            logger.debug(f"{'  ' * self.depth}{token.line}:{token.col} [{label}] {value!r}")

    # --- cursor ---

    def current(self) -> Token:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else self.tokens[-1]

    def peek(self, offset=0) -> Token:
        pos = self.pos + offset
        return self.tokens[pos] if pos < len(self.tokens) else self.tokens[-1]

    def advance(self):
        if self.pos < len(self.tokens) - 1:
            self.pos += 1
        return self.current()

    def check(self, *token_types) -> bool:
        return self.current().type in token_types

    def expect(self, token_type: TokenType, what: str) -> bool:
        if self.check(token_type):
            return True
        token = self.current()
        if token.type == TokenType.EOF:
            self.error(f"Unexpected end of input, expected {what}")
        else:
            self.error(f"Expected {what}, got {describe(token)}")
        return False

    def synchronize(self):
        """Skip to the next separator or closer at the current nesting depth."""
        depth = 0
        while not self.check(TokenType.EOF):
            if depth == 0 and self.check(TokenType.NEWLINE, *CLOSERS):
                return
            if self.check(TokenType.LBRACE, TokenType.LBRACKET):
                depth += 1
            elif self.check(*CLOSERS):
                depth -= 1
            self.advance()

    # --- variables ---

    def lookup(self, token: Token, scope: ChainMap):
        name = token.value
        if name not in scope:
            self.error(f"Undefined variable '{name}'", token)
            return _UNDEFINED
        return scope[name]

    def reference(self, token: Token, scope: ChainMap):
        value = self.lookup(token, scope)
        if value is _UNDEFINED:
            return None
        if self.keep_variables:
            return variable_marker(token.value)
        return copy.deepcopy(value)

    def splice(self, token: Token, scope: ChainMap) -> str:
        value = self.lookup(token, scope)
        if value is _UNDEFINED:
            return ''
        return interpolation_text(value)

    def join(self, pieces: list, scope: ChainMap) -> str:
        """Join literal text and variable references into one string."""
        if not self.keep_variables:
            return ''.join(
                self.splice(piece.token, scope) if isinstance(piece, _VariableRef) else piece
                for piece in pieces
            )

        text, run = '', ''
        for piece in pieces:
            if isinstance(piece, _VariableRef):
                self.lookup(piece.token, scope)
                run = escape_literal(run)
                # backslashes right before a marker must not escape it
                trailing = len(run) - len(run.rstrip('\\'))
                text += run + '\\' * trailing + f"$({piece.token.value})"
                run = ''
            else:
                run += piece
        return text + escape_literal(run)

    # --- containers ---

    def parse_body(self, closer: TokenType, parse_item):
        if self.check(TokenType.NEWLINE):
            if self.compact:
                self.error("Unnecessary newline")
            self.advance()

        while not self.check(closer, TokenType.EOF):
            parse_item()
            if self.check(TokenType.NEWLINE):
                if self.compact and self.peek(1).type == closer:
                    self.error("Unnecessary separator")
                self.advance()
            elif not self.check(closer):
                self.error(f"Expected ',' or newline, got {describe(self.current())}")
                start = self.pos
                self.synchronize()
                if self.check(TokenType.NEWLINE):
                    self.advance()
                elif self.pos == start and not self.check(closer, TokenType.EOF):
                    self.advance()

    def parse_array(self, scope: ChainMap) -> list:
        self.advance()  # [
        items = []
        self.depth += 1
        self.parse_body(TokenType.RBRACKET, lambda: items.append(self.parse_value(scope)))
        self.depth -= 1
        if self.expect(TokenType.RBRACKET, "']'"):
            self.advance()
        return items

    def parse_object(self, scope: ChainMap) -> dict:
        self.advance()  # {
        obj = {}
        child = scope.new_child()
        self.depth += 1
        self.parse_body(TokenType.RBRACE, lambda: self.parse_statement(obj, child))
        self.depth -= 1
        if self.expect(TokenType.RBRACE, "'}'"):
            self.advance()
        return obj

    def parse_file(self) -> dict:
        obj = {}
        scope = new_scope(self.variables)
        self.parse_body(TokenType.EOF, lambda: self.parse_statement(obj, scope))
        return obj

    # --- statements ---

    def parse_statement(self, obj: Dict[str, Any], scope: ChainMap):
        token = self.current()
        if token.type == TokenType.COLON:
            stmt = self.parse_declaration(scope)
            if stmt is None:
                return
            name, value = stmt
            scope.maps[0][name] = value
            if self.keep_variables:
                obj['$' + name] = value
            self.trace(token, 'Declaration', stmt)
        else:
            stmt = self.parse_assignment(scope)
            if stmt is None:
                return
            key, value = stmt
            if key in obj:
                self.error(f"Duplicate object key '{key}'", token)
            obj[key] = value
            self.trace(token, 'Assignment', stmt)

    def parse_declaration(self, scope: ChainMap):
        self.advance()  # :
        token = self.current()
        if token.type != TokenType.IDENTIFIER:
            self.error(f"Expected variable name after ':', got {describe(token)}")
            self.synchronize()
            return None
        self.advance()
        if token.value in scope.maps[0]:
            self.error(f"Variable '{token.value}' already declared in this scope", token)

        if not self.expect(TokenType.EQUALS, "'='"):
            self.synchronize()
            return None
        self.advance()
        return token.value, self.parse_value(scope)

    def parse_assignment(self, scope: ChainMap):
        token = self.current()
        if token.type in (TokenType.IDENTIFIER, TokenType.KEYWORD):
            key = token.value
            self.advance()
        elif token.type == TokenType.STRING_START:
            key = self.parse_string(scope)
            if self.keep_variables and key[:1] in ('$', '\\'):
                key = '\\' + key
        else:
            self.error(f"Expected assignment or declaration, got {describe(token)}")
            self.synchronize()
            return None

        if not self.expect(TokenType.EQUALS, "'='"):
            self.synchronize()
            return None
        self.advance()
        return key, self.parse_value(scope)

    # --- values ---

    def parse_value(self, scope: ChainMap):
        token = self.current()

        if token.type == TokenType.KEYWORD:
            self.advance()
            value = KEYWORDS[token.value]
        elif token.type == TokenType.NUMBER:
            self.advance()
            value = token.value
        elif token.type == TokenType.STRING_START:
            value = self.parse_string(scope)
        elif token.type == TokenType.CHAR:
            self.advance()
            value = Char(token.value)
        elif token.type == TokenType.IDENTIFIER:
            self.advance()
            value = self.reference(token, scope)
        elif token.type == TokenType.LBRACKET:
            value = self.parse_array(scope)
        elif token.type == TokenType.LBRACE:
            value = self.parse_object(scope)
        elif token.type in PATH_STARTS:
            value = self.parse_path(scope)
        else:
            self.error(f"Expected a value, got {describe(token)}")
            if not self.check(TokenType.NEWLINE, TokenType.EOF, *CLOSERS):
                self.advance()
            value = None

        self.trace(token, 'Value', value)
        return value

    def parse_string(self, scope: ChainMap) -> str:
        return self.join(self.parse_string_pieces(), scope)

    def parse_string_pieces(self) -> list:
        self.advance()  # opening quote
        parts = []
        while not self.check(TokenType.EOF):
            token = self.current()
            if token.type == TokenType.STRING:
                parts.append(token.value)
                self.advance()
            elif token.type == TokenType.INTERP_IDENTIFIER:
                self.advance()
                parts.append(_VariableRef(token))
            elif token.type == TokenType.STRING_END:
                self.advance()
                break
            else:
                self.error(f"Unexpected token in string: {describe(token)}")
                self.advance()
        return parts

    def parse_path(self, scope: ChainMap):
        parts = []
        first = True
        while True:
            token = self.current()
            if not first and self.pos in self.spaced:
                break
            if token.type == TokenType.TILDE and first:
                parts.append(token.value)
                self.advance()
            elif token.type in (TokenType.DOT, TokenType.SLASH, TokenType.IDENTIFIER, TokenType.KEYWORD):
                parts.append(token.value)
                self.advance()
            elif token.type == TokenType.STRING_START:
                parts.extend(self.parse_string_pieces())
            elif token.type == TokenType.DOLLAR:
                self.advance()
                name = self.current()
                if name.type != TokenType.IDENTIFIER or self.pos in self.spaced:
                    self.error(f"Expected variable name after '$', got {describe(name)}")
                    break
                self.advance()
                parts.append(_VariableRef(name))
            else:
                break
            first = False

        if len(parts) == 1 and isinstance(parts[0], _VariableRef):
            return self.reference(parts[0].token, scope)
        return self.join(parts, scope)

    def parse(self):
        if self.check(TokenType.EXCLAMATION):
            self.advance()
            if self.check(TokenType.NEWLINE) and not self.compact:
                self.advance()
            if self.check(TokenType.EOF):
                return ABSENT
            value = self.parse_value(new_scope(self.variables))
            if not self.check(TokenType.EOF):
                self.error(f"Unexpected content after value: {describe(self.current())}")
            return value
        return self.parse_file()

def describe(token: Token) -> str:
    if token.type == TokenType.EOF:
        return 'end of input'
    if token.value is None:
        return token.type.name
    return f"{token.type.name} {token.value!r}"
