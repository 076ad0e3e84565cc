"""
USEC tokenizer.

Scans a document once, left to right, and produces a flat token stream.
Brackets, string delimiters and interpolation openers are tracked on an
opener stack so that mismatched or unclosed pairs are reported with the
position of the offending character.
"""

import logging
import string
from typing import List, Optional

from .structures import KEYWORDS, LexerError, Token, TokenizeResult, TokenType

logger = logging.getLogger(__name__)

IDENT_START = string.ascii_letters + '_'
IDENT_CHARS = IDENT_START + string.digits
DIGITS = string.digits
WHITESPACE = ' \t'

ESCAPES = {'n': '\n', 'r': '\r', 't': '\t', '"': '"', "'": "'", '\\': '\\'}

# closer -> the opener it closes
INVERSE = {']': '[', '}': '{', ')': '$(', '"': '"', '`': '`'}

SIMPLE_TOKENS = {
    ':': TokenType.COLON,
    '=': TokenType.EQUALS,
    '!': TokenType.EXCLAMATION,
    '$': TokenType.DOLLAR,
    '.': TokenType.DOT,
    '/': TokenType.SLASH,
    '~': TokenType.TILDE,
}

# ==========================================
# Lexer
# ==========================================

class _USECLexer:
    def __init__(self, source: str, pedantic: bool = True, debug: bool = False):
        if source.startswith('\ufeff'):
            source = source[1:]
        self.source = source
        self.pedantic = pedantic
        self.debug = debug

        self.pos = 0
        self.line = 1
        self.col = 1
        self.length = len(self.source)

        self.compact = False
        self.tokens: List[Token] = []
        self.opener_stack: List[Token] = []
        self.errors: List[LexerError] = []

    # --- error handling ---

    def error(self, message: str, line: int = None, col: int = None):
        err = LexerError(message, line or self.line, col or self.col)
        if self.pedantic:
            raise err
        self.errors.append(err)

    def error_at(self, message: str, token: Token):
        self.error(message, token.line, token.col)

    # --- cursor ---

    def peek(self, offset=0):
        pos = self.pos + offset
        if pos >= self.length:
            return None
        return self.source[pos]

    def advance(self):
        if self.pos >= self.length:
            return None
        ch = self.source[self.pos]
        self.pos += 1
        if ch == '\n':
            self.line += 1
            self.col = 1
        else:
            self.col += 1
        return ch

    def at_newline(self):
        ch = self.peek()
        return ch == '\n' or (ch == '\r' and self.peek(1) == '\n')

    # --- token bookkeeping ---

    @property
    def last_token(self) -> Optional[Token]:
        return self.tokens[-1] if self.tokens else None

    @property
    def last_opener(self) -> Optional[Token]:
        return self.opener_stack[-1] if self.opener_stack else None

    def make_token(self, token_type: TokenType, value, line=None, col=None) -> Token:
        return Token(token_type, value, line or self.line, col or self.col)

    def add_token(self, token: Token):
        self.tokens.append(token)
        if self.debug:
            logger.debug(f"{token.line}:{token.col} [{token.type.name}] {token.value!r}")

    def replace_last(self, token: Token):
        self.tokens.pop()
        self.add_token(token)

    def open(self, token: Token, emit=True):
        if emit:
            self.add_token(token)
        self.opener_stack.append(token)

    def close(self, token: Token, emit=True):
        opener = self.last_opener
        if opener is not None and opener.value == INVERSE[token.value]:
            self.opener_stack.pop()
        else:
            self.error_at(f"Unopened closer '{token.value}'", token)
        if emit:
            self.add_token(token)

    def add_newline(self, value: str, line: int, col: int):
        last = self.last_token
        if last is None or last.type == TokenType.NEWLINE:
            return
        token = self.make_token(TokenType.NEWLINE, value, line, col)
        if last.type == TokenType.SPACE:
            self.replace_last(token)
        else:
            self.add_token(token)

    # --- readers ---

    def read_whitespace(self):
        line, col = self.line, self.col
        while self.peek() is not None and self.peek() in WHITESPACE:
            self.advance()
        if self.compact:
            self.error("Unnecessary space", line, col)
            return
        last = self.last_token
        if last is not None and last.type not in (TokenType.SPACE, TokenType.NEWLINE):
            self.add_token(self.make_token(TokenType.SPACE, ' ', line, col))

    def read_newline(self):
        line, col = self.line, self.col
        value = '\r\n' if self.peek() == '\r' else '\n'
        for _ in value:
            self.advance()
        if self.compact:
            self.error("Unnecessary newline", line, col)
            return
        self.add_newline(value, line, col)

    def read_comma(self):
        line, col = self.line, self.col
        last = self.last_token
        if last is None or last.type in (TokenType.SPACE, TokenType.NEWLINE):
            self.error("Invalid comma", line, col)
        self.advance()
        self.add_newline(',', line, col)

    def skip_line_comment(self):
        if self.compact:
            self.error("Comments are not allowed in compact mode")
        while self.peek() is not None and not self.at_newline():
            self.advance()

    def skip_block_comment(self):
        start_line, start_col = self.line, self.col
        if self.compact:
            self.error("Comments are not allowed in compact mode")
        self.advance(); self.advance()  # Consume %%
        while self.pos < self.length:
            if self.peek() == '%' and self.peek(1) == '%':
                self.advance(); self.advance()
                return
            self.advance()
        self.error("Unterminated block comment", start_line, start_col)

    def read_name(self) -> str:
        start = self.pos
        if self.peek() is None or self.peek() not in IDENT_START:
            return ''
        while self.peek() is not None and self.peek() in IDENT_CHARS:
            self.advance()
        return self.source[start:self.pos]

    def read_identifier_or_keyword(self):
        line, col = self.line, self.col
        name = self.read_name()
        token_type = TokenType.KEYWORD if name in KEYWORDS else TokenType.IDENTIFIER
        self.add_token(self.make_token(token_type, name, line, col))

    def read_number(self):
        line, col = self.line, self.col
        start = self.pos
        if self.peek() in '+-':
            self.advance()

        digit_seen = False
        dot_seen = False
        while self.peek() is not None:
            ch = self.peek()
            if ch in DIGITS:
                digit_seen = True
                self.advance()
            elif ch == '.' and not dot_seen:
                dot_seen = True
                self.advance()
            else:
                break

        raw = self.source[start:self.pos]
        if not digit_seen:
            self.error(f"Invalid number: '{raw}'", line, col)
            return
        value = float(raw) if dot_seen else int(raw)
        self.add_token(self.make_token(TokenType.NUMBER, value, line, col))

    def read_escape(self) -> Optional[str]:
        self.advance()  # backslash
        ch = self.peek()
        if ch is None:
            return None
        self.advance()
        return ESCAPES.get(ch, ch)

    def read_char(self):
        line, col = self.line, self.col
        self.advance()  # opening quote
        chars = []
        while self.peek() is not None and self.peek() != "'" and not self.at_newline():
            if self.peek() == '\\':
                escaped = self.read_escape()
                if escaped is None:
                    break
                chars.append(escaped)
            else:
                chars.append(self.advance())

        if self.peek() == "'":
            self.advance()
        else:
            self.error("Missing closing single quote after character literal")

        if len(chars) != 1:
            self.error("Character literal must be a single character", line, col)
            return
        self.add_token(self.make_token(TokenType.CHAR, chars[0], line, col))

    def read_interpolation(self):
        opener = self.make_token(TokenType.INTERP_OPEN, '$(')
        self.open(opener, emit=False)
        self.advance(); self.advance()  # Consume $(

        name = self.read_name()
        if not name:
            self.error("Expected identifier in interpolation")

        if self.peek() == ')':
            self.close(self.make_token(TokenType.INTERP_OPEN, ')'), emit=False)
            self.advance()
        else:
            self.error_at("Unclosed interpolation", opener)
            self.opener_stack.pop()

        if name:
            self.add_token(self.make_token(TokenType.INTERP_IDENTIFIER, name, opener.line, opener.col))

    def read_fragment(self, opener: Token):
        quote = opener.value
        multiline = quote == '`'
        line, col = self.line, self.col

        # A newline right after the opening backtick is not content
        if multiline and not self.compact and self.last_token is opener and self.at_newline():
            if self.peek() == '\r':
                self.advance()
            self.advance()

        chars = []
        trailing_newline = 0
        while self.pos < self.length:
            ch = self.peek()
            if ch == quote or (ch == '$' and self.peek(1) == '('):
                break
            if not multiline and self.at_newline():
                break
            if ch == '\\':
                escaped = self.read_escape()
                if escaped is None:
                    break
                chars.append(escaped)
                trailing_newline = 0
                continue
            if self.at_newline():
                trailing_newline = 2 if ch == '\r' else 1
                for _ in range(trailing_newline):
                    chars.append(self.advance())
                continue
            chars.append(self.advance())
            trailing_newline = 0

        # ... and neither is one right before the closing backtick
        if multiline and not self.compact and trailing_newline and self.peek() == quote:
            del chars[-trailing_newline:]

        self.add_token(self.make_token(TokenType.STRING, ''.join(chars), line, col))

    def read_string_part(self, opener: Token):
        ch = self.peek()
        if ch == opener.value:
            token = self.make_token(TokenType.STRING_END, ch)
            self.advance()
            self.close(token)
        elif ch == '$' and self.peek(1) == '(':
            self.read_interpolation()
        elif opener.value == '"' and self.at_newline():
            self.error_at("Unterminated string", opener)
            self.opener_stack.pop()
        else:
            self.read_fragment(opener)

    def read_token(self):
        ch = self.peek()

        if ch in WHITESPACE:
            self.read_whitespace()
        elif self.at_newline():
            self.read_newline()
        elif ch == ',':
            self.read_comma()
        elif ch == '#':
            self.skip_line_comment()
        elif ch == '%' and self.peek(1) == '%':
            self.skip_block_comment()
        elif ch in IDENT_START:
            self.read_identifier_or_keyword()
        elif ch in DIGITS or ch in '+-':
            self.read_number()
        elif ch in SIMPLE_TOKENS:
            self.add_token(self.make_token(SIMPLE_TOKENS[ch], ch))
            self.advance()
        elif ch in '[{':
            token_type = TokenType.LBRACKET if ch == '[' else TokenType.LBRACE
            self.open(self.make_token(token_type, ch))
            self.advance()
        elif ch in ']}':
            token_type = TokenType.RBRACKET if ch == ']' else TokenType.RBRACE
            token = self.make_token(token_type, ch)
            self.advance()
            self.close(token)
        elif ch == ')':
            self.error(f"Unopened closer '{ch}'")
            self.advance()
        elif ch in '"`':
            self.open(self.make_token(TokenType.STRING_START, ch))
            self.advance()
        elif ch == "'":
            self.read_char()
        else:
            self.error(f"Unexpected character '{ch}'")
            self.advance()

    def tokenize(self) -> TokenizeResult:
        if self.source.startswith('%') and not self.source.startswith('%%'):
            self.compact = True
            self.advance()

        while self.pos < self.length:
            opener = self.last_opener
            if opener is not None and opener.type == TokenType.STRING_START:
                self.read_string_part(opener)
            else:
                self.read_token()

        last = self.last_token
        if last is not None and last.type in (TokenType.SPACE, TokenType.NEWLINE):
            self.tokens.pop()
            if self.compact and last.type == TokenType.NEWLINE:
                self.error_at("Unnecessary separator", last)

        for opener in self.opener_stack:
            if opener.type == TokenType.STRING_START:
                self.error_at("Unterminated string", opener)
            else:
                self.error_at(f"Unclosed opener '{opener.value}'", opener)
        self.opener_stack.clear()

        self.add_token(self.make_token(TokenType.EOF, None))
        return TokenizeResult(self.tokens, self.errors, self.compact)

def tokenize(source: str, *, pedantic: bool = True, debug: bool = False) -> TokenizeResult:
    """Split USEC source into tokens."""
    return _USECLexer(source, pedantic=pedantic, debug=debug).tokenize()
