"""
USEC serializer.

Renders plain Python values as compact (``%``-prefixed, single line) or
readable (two-space indented) USEC text. ``Format`` wrappers attach
comments and blank lines around values in readable output.
"""

import math
import re
from decimal import Decimal
from typing import Any, List, Mapping

from .structures import (ABSENT, KEYWORDS, Char, Convertible, Format, SerializeError,
                         is_identifier)

MARKER_RE = re.compile(r'\$\(\$([A-Za-z_][A-Za-z0-9_]*)\)')
RETAINED_RE = re.compile(r'(\\*)\$\(')
INDENT = '  '

# ==========================================
# Serializer
# ==========================================

class _USECSerializer:
    def __init__(self, readable: bool = False, enable_variables: bool = False):
        self.readable = readable
        self.enable_variables = enable_variables
        self.separator = '\n' if readable else ','
        self.assign = ' = ' if readable else '='

    def indent(self, level: int) -> str:
        return INDENT * level if self.readable else ''

    def convert(self, value):
        while isinstance(value, Convertible):
            value = value.to_usec()
        return value

    def unwrap(self, value):
        value = self.convert(value)
        if isinstance(value, Format):
            node, before, after = value.unwrap()
            return self.convert(node), before, after
        return value, [], []

    def decorate(self, decorations, level: int) -> List[str]:
        if not self.readable:
            return []
        lines = []
        for decoration in decorations:
            if not hasattr(decoration, 'render'):
                raise SerializeError(f"Unsupported decoration: {type(decoration).__name__}")
            lines.extend(decoration.render(self.indent(level)))
        return lines

    # --- scalars ---

    def escape(self, text: str) -> str:
        return (text.replace('\\', '\\\\')
                    .replace('"', '\\"')
                    .replace('\n', '\\n')
                    .replace('\r', '\\r')
                    .replace('\t', '\\t'))

    def encode_string(self, text: str) -> str:
        if not self.enable_variables:
            return self.escape(text).replace('$(', '\\$(')

        # Retained text: an odd run of backslashes before $( marks a literal $(
        parts, pos = [], 0
        for m in RETAINED_RE.finditer(text):
            slashes = len(m.group(1))
            parts.append(self.escape(text[pos:m.start()]))
            parts.append('\\\\' * (slashes // 2))
            parts.append('\\$(' if slashes % 2 else '$(')
            pos = m.end()
        parts.append(self.escape(text[pos:]))
        return ''.join(parts)

    def encode_char(self, char: str) -> str:
        escapes = {'\\': '\\\\', "'": "\\'", '\n': '\\n', '\r': '\\r', '\t': '\\t'}
        return "'" + escapes.get(char, char) + "'"

    def encode_number(self, number) -> str:
        if isinstance(number, int):
            return str(number)
        if math.isnan(number) or math.isinf(number):
            raise SerializeError(f"Cannot represent number {number!r}")
        if number.is_integer():
            return str(int(number))
        return format(Decimal(repr(number)), 'f')

    def encode_key(self, key) -> str:
        if not isinstance(key, str):
            raise SerializeError(f"Object keys must be strings, got {type(key).__name__}")

        declaration = False
        if self.enable_variables:
            if key.startswith('\\$') or key.startswith('\\\\'):
                key = key[1:]
            elif key.startswith('$'):
                key = key[1:]
                declaration = True

        if declaration:
            if not is_identifier(key) or key in KEYWORDS:
                raise SerializeError(f"Invalid variable key: {key!r}")
            return ':' + key
        if is_identifier(key):
            return key
        return '"' + self.encode_string(key) + '"'

    # --- containers ---

    def render_entries(self, mapping: Mapping, level: int) -> List[str]:
        lines = []
        for key, item in mapping.items():
            node, before, after = self.unwrap(item)
            if node is ABSENT:
                continue
            lines.extend(self.decorate(before, level))
            lines.append(self.indent(level) + self.encode_key(key) + self.assign + self.render(node, level))
            lines.extend(self.decorate(after, level))
        return lines

    def render_items(self, items, level: int) -> List[str]:
        lines = []
        for item in items:
            node, before, after = self.unwrap(item)
            if node is ABSENT:
                continue
            lines.extend(self.decorate(before, level))
            lines.append(self.indent(level) + self.render(node, level))
            lines.extend(self.decorate(after, level))
        return lines

    def enclose(self, opener: str, lines: List[str], closer: str, level: int) -> str:
        if not lines:
            return opener + closer
        if not self.readable:
            return opener + ','.join(lines) + closer
        return opener + '\n' + '\n'.join(lines) + '\n' + self.indent(level) + closer

    def render(self, value: Any, level: int = 0) -> str:
        value, _, _ = self.unwrap(value)

        if value is ABSENT:
            raise SerializeError("ABSENT can only appear at the top level")
        if value is None:
            return 'null'
        if value is True:
            return 'true'
        if value is False:
            return 'false'
        if isinstance(value, Char):
            return self.encode_char(value)
        if isinstance(value, str):
            if self.enable_variables:
                match = MARKER_RE.fullmatch(value)
                if match:
                    return match.group(1)
            return '"' + self.encode_string(value) + '"'
        if isinstance(value, (int, float)):
            return self.encode_number(value)
        if isinstance(value, Mapping):
            return self.enclose('{', self.render_entries(value, level + 1), '}', level)
        if isinstance(value, (list, tuple)):
            return self.enclose('[', self.render_items(value, level + 1), ']', level)

        raise SerializeError(f"Unsupported type: {type(value).__name__}")

    def serialize(self, value: Any) -> str:
        prefix = '' if self.readable else '%'
        if value is ABSENT:
            return prefix + '!'

        node, before, after = self.unwrap(value)
        if node is ABSENT:
            body = ['!']
        elif isinstance(node, Mapping):
            body = self.render_entries(node, 0)
        else:
            body = []
        if not body:
            body = ['!' + self.render(node, 0)]

        lines = self.decorate(before, 0) + body + self.decorate(after, 0)
        return prefix + self.separator.join(lines)

def interpolation_text(value: Any) -> str:
    """Text spliced into a string for an interpolated variable."""
    if isinstance(value, str):
        return str(value)
    return _USECSerializer().render(value)
