"""
USEC - a configuration format between JSON and a small templating language.

Documents come in two encodings: a readable one (indented, newline
separated, comments allowed) and a compact one (``%``-prefixed, comma
separated, single line). Variables declared with a leading ``:`` are
resolved at parse time, inside their object and its children only.

Usage:
    import usec

    data = usec.loads('''
    :port = 8080
    server = {
      host = "localhost"
      url = "http://localhost:$(port)"
      port = port  # Default port
    }
    ''')

    usec.dumps(data)                 # '%server={host="localhost",...}'
    usec.dumps(data, readable=True)

    with open('config.usec', 'r') as f:
        data = usec.load(f)
"""

import logging
from typing import Any, Mapping, Optional, TextIO

from .lexer import tokenize
from .parser import _USECParser
from .serializer import _USECSerializer
from .structures import (ABSENT, Char, Comment, Convertible, Format, LexerError,
                         MultilineComment, Newline, ParseError, ParseResult, SerializeError,
                         Token, TokenizeResult, TokenType, USECError)

__version__ = '1.0.0'

__all__ = [
    'parse', 'load', 'loads', 'dump', 'dumps', 'equals', 'tokenize',
    'ABSENT', 'Char', 'Convertible', 'Format', 'Newline', 'Comment', 'MultilineComment',
    'Token', 'TokenType', 'TokenizeResult', 'ParseResult',
    'USECError', 'LexerError', 'ParseError', 'SerializeError',
]

logger = logging.getLogger(__name__)

# ==========================================
# Public API
# ==========================================

def parse(source: str, *, pedantic: bool = True, keep_variables: bool = False,
          variables: Optional[Mapping[str, Any]] = None,
          debug_tokens: bool = False, debug_parser: bool = False) -> ParseResult:
    """Parse USEC source and report every error found along the way.

    In pedantic mode the first error raises. Otherwise lexical errors
    abandon the parse (``value`` is None) while parser errors leave a
    best-effort value behind.
    """
    lexed = tokenize(source, pedantic=pedantic, debug=debug_tokens)
    if lexed.errors:
        logger.debug(f"Tokenizer reported {len(lexed.errors)} error(s), skipping parse")
        return ParseResult(None, lexical_errors=lexed.errors)

    parser = _USECParser(lexed.tokens, pedantic=pedantic, keep_variables=keep_variables,
                         compact=lexed.compact, variables=variables, debug=debug_parser)
    value = parser.parse()
    return ParseResult(value, errors=parser.errors)

def loads(source: str, **options) -> Any:
    """Parse a USEC source string."""
    return parse(source, **options).value

def load(fp: TextIO, **options) -> Any:
    """Parse USEC from a file-like object."""
    return loads(fp.read(), **options)

def dumps(value: Any, *, readable: bool = False, enable_variables: bool = False) -> str:
    """Serialize a value to USEC text."""
    return _USECSerializer(readable=readable, enable_variables=enable_variables).serialize(value)

def dump(value: Any, fp: TextIO, **options):
    """Serialize a value to a file-like object."""
    fp.write(dumps(value, **options))

def equals(a: Any, b: Any) -> bool:
    """Values are equal when their compact encodings are identical."""
    return dumps(a) == dumps(b)
