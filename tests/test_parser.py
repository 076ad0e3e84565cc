"""
USEC parser tests.
Run with: pytest tests/test_parser.py
"""
import sys
import os
import logging
import pytest
from textwrap import dedent

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
import usec
from usec import ABSENT, Char, LexerError, ParseError

# ==========================================
# 1. Statements & Values
# ==========================================

def test_assignments():
    src = dedent("""
    a = 1
    b = "two"
    c = true
    d = null
    e = false
    """)
    assert usec.loads(src) == {"a": 1, "b": "two", "c": True, "d": None, "e": False}

def test_assignment_order_is_kept():
    assert list(usec.loads("z = 1\na = 2\nm = 3")) == ["z", "a", "m"]

def test_spaces_around_equals_are_optional():
    assert usec.loads("a=1\nb = 2") == {"a": 1, "b": 2}

def test_empty_document():
    assert usec.loads("") == {}
    assert usec.loads("# Comment") == {}

def test_numbers():
    data = usec.loads("i = 42\nf = -1.5\np = +3")
    assert data == {"i": 42, "f": -1.5, "p": 3}
    assert isinstance(data["i"], int)

def test_char_value():
    data = usec.loads("c = 'x'")
    assert data == {"c": "x"}
    assert isinstance(data["c"], Char)

def test_quoted_and_keyword_keys():
    assert usec.loads('"my key" = 1\nnull = 2') == {"my key": 1, "null": 2}

def test_nested_containers():
    src = dedent("""
    server = {
      host = "localhost"
      ports = [
        80
        443
      ]
    }
    """)
    assert usec.loads(src) == {"server": {"host": "localhost", "ports": [80, 443]}}

def test_inline_containers():
    assert usec.loads("a = {k = 1}\nb = [ 1, 2 ]") == {"a": {"k": 1}, "b": [1, 2]}

def test_readable_trailing_comma():
    assert usec.loads("a = [1,]") == {"a": [1]}

def test_multiline_string():
    assert usec.loads("a = `\nhello\n`") == {"a": "hello"}

# ==========================================
# 2. Bare Values
# ==========================================

def test_bare_array():
    assert usec.loads('! [1, "a", null]') == [1, "a", None]

def test_bare_scalar():
    assert usec.loads("!42") == 42

def test_lone_exclamation_is_absent():
    assert usec.loads("!") is ABSENT
    assert usec.loads("%!") is ABSENT

def test_reject_trailing_junk_after_value():
    with pytest.raises(ParseError, match="Unexpected content after value"):
        usec.loads("!5 6")

# ==========================================
# 3. Compact Documents
# ==========================================

def test_compact_document():
    assert usec.loads("%a=1,b=2") == {"a": 1, "b": 2}

def test_compact_nested():
    assert usec.loads('%a={b=[1,2]},c="x y"') == {"a": {"b": [1, 2]}, "c": "x y"}

def test_compact_rejects_trailing_element_separator():
    with pytest.raises(ParseError, match="Unnecessary separator"):
        usec.loads("%a=[1,]")

def test_compact_rejects_leading_element_separator():
    with pytest.raises(ParseError, match="Unnecessary newline"):
        usec.loads("%a=[,1]")

def test_compact_rejects_whitespace():
    with pytest.raises(LexerError):
        usec.loads("%a=1 \n")

# ==========================================
# 4. Variables & Scoping
# ==========================================

def test_declaration_is_not_a_member():
    assert usec.loads(":x=5\na=$x\nb=[1,2,3]") == {"a": 5, "b": [1, 2, 3]}

def test_bare_identifier_reference():
    assert usec.loads(":x = 5\na = x") == {"a": 5}

def test_nested_scope_sees_parent():
    src = dedent("""
    :x = 1
    obj = {
      :y = 2
      a = x
      b = y
    }
    """)
    assert usec.loads(src) == {"obj": {"a": 1, "b": 2}}

def test_array_of_objects_sees_scope():
    assert usec.loads(":x = 1\nitems = [\n  {a = x}\n]") == {"items": [{"a": 1}]}

def test_child_declaration_invisible_to_parent():
    with pytest.raises(ParseError, match="Undefined variable 'y'"):
        usec.loads("obj = {\n  :y = 2\n}\nc = y")

def test_sibling_scopes_are_isolated():
    with pytest.raises(ParseError, match="Undefined variable 'y'"):
        usec.loads("a = {\n  :y = 2\n}\nb = {\n  c = y\n}")

def test_no_forward_reference():
    with pytest.raises(ParseError, match="Undefined variable 'x'"):
        usec.loads("a = x\n:x = 1")

def test_shadowing_in_child_scope():
    src = dedent("""
    :x = 1
    obj = {
      :x = 2
      a = x
    }
    b = x
    """)
    assert usec.loads(src) == {"obj": {"a": 2}, "b": 1}

def test_reject_redeclaration_in_same_scope():
    with pytest.raises(ParseError, match="already declared"):
        usec.loads(":x = 1\n:x = 2")

def test_reject_keyword_as_variable_name():
    with pytest.raises(ParseError, match="Expected variable name"):
        usec.loads(":true = 1")

def test_resolved_values_are_copies():
    data = usec.loads(":v = [1]\na = v\nb = v")
    assert data["a"] == data["b"]
    assert data["a"] is not data["b"]

def test_seeded_variables():
    assert usec.loads("a = x", variables={"x": 7}) == {"a": 7}
    assert usec.loads(":x = 1\na = x", variables={"x": 7}) == {"a": 1}

# ==========================================
# 5. Interpolation & Paths
# ==========================================

def test_string_interpolation():
    src = ':name = "World"\ngreeting = "Hello, $(name)!"'
    assert usec.loads(src) == {"greeting": "Hello, World!"}

def test_interpolating_numbers():
    assert usec.loads(':n = 3\ns = "n=$(n)"') == {"s": "n=3"}

def test_interpolation_in_keys():
    assert usec.loads(':k = "port"\n"$(k)_1" = 1') == {"port_1": 1}

def test_undefined_interpolation():
    with pytest.raises(ParseError, match="Undefined variable 'missing'"):
        usec.loads('s = "$(missing)"')

def test_paths():
    src = ':home = "/home/me"\nsrc = $home/src/main.py\ncfg = ~/.config'
    assert usec.loads(src) == {"src": "/home/me/src/main.py", "cfg": "~/.config"}

def test_paths_in_arrays():
    assert usec.loads("a = [./x, ./y]") == {"a": ["./x", "./y"]}

def test_path_ends_at_whitespace():
    with pytest.raises(ParseError, match="Expected ',' or newline"):
        usec.loads("a = ./x ./y")

# ==========================================
# 6. Keeping Variables
# ==========================================

def test_keep_variables():
    data = usec.loads(":x=5\na=$x\nb=[1,2,3]", keep_variables=True)
    assert data == {"$x": 5, "a": "$($x)", "b": [1, 2, 3]}

def test_keep_variables_in_strings_and_paths():
    data = usec.loads(':n = "x"\ns = "a$(n)b"\np = $n/y', keep_variables=True)
    assert data == {"$n": "x", "s": "a$(n)b", "p": "$(n)/y"}

def test_keep_variables_escapes_literal_interpolation():
    assert usec.loads('s = "\\$(x) costs"', keep_variables=True) == {"s": "\\$(x) costs"}

def test_keep_variables_backslash_before_interpolation():
    data = usec.loads(':n = 1\ns = "\\\\$(n)"', keep_variables=True)
    assert data == {"$n": 1, "s": "\\\\$(n)"}

def test_keep_variables_still_validates():
    with pytest.raises(ParseError, match="Undefined variable"):
        usec.loads("a = nope", keep_variables=True)

def test_keep_variables_escapes_dollar_keys():
    assert usec.loads('"$odd" = 1', keep_variables=True) == {"\\$odd": 1}

# ==========================================
# 7. Errors
# ==========================================

def test_duplicate_key():
    with pytest.raises(ParseError, match="Duplicate object key 'a'"):
        usec.loads("a = 1\na = 2")

def test_same_key_in_sibling_objects():
    assert usec.loads("a = {k = 1}\nb = {k = 2}") == {"a": {"k": 1}, "b": {"k": 2}}

def test_error_position():
    with pytest.raises(ParseError) as info:
        usec.loads("a = 1\nb = zz")
    assert (info.value.line, info.value.col) == (2, 5)

def test_expected_statement():
    with pytest.raises(ParseError, match="Expected assignment or declaration"):
        usec.loads("a = 1\n= 2")

def test_missing_separator():
    with pytest.raises(ParseError, match="Expected ',' or newline"):
        usec.loads("a = [1 2]")

# ==========================================
# 8. Lenient Mode
# ==========================================

def test_lenient_duplicate_key_warns():
    result = usec.parse("a = 1\na = 2\nb = 3", pedantic=False)
    assert len(result.errors) == 1
    assert result.value == {"a": 2, "b": 3}

def test_lenient_skips_bad_statement():
    result = usec.parse("a = 1\n= 2\nc = 3", pedantic=False)
    assert not result.ok
    assert result.value == {"a": 1, "c": 3}

def test_lenient_undefined_variable():
    result = usec.parse("a = y\nb = 1", pedantic=False)
    assert result.value == {"a": None, "b": 1}
    assert [e.message for e in result.errors] == ["Undefined variable 'y'"]

def test_lenient_recovery_terminates():
    result = usec.parse("a = [1 2 3]\nb = {c d}\n:e", pedantic=False)
    assert isinstance(result.value, dict)
    assert len(result.errors) >= 3

def test_lenient_lexical_errors_abandon_parse():
    result = usec.parse("a = [1", pedantic=False)
    assert result.value is None
    assert len(result.lexical_errors) == 1
    assert result.errors == []
    assert usec.loads("a = [1", pedantic=False) is None

def test_lenient_warnings_are_logged(caplog):
    caplog.set_level(logging.WARNING, logger='usec.parser')
    usec.parse("a = 1\na = 2", pedantic=False)
    assert "Duplicate object key" in caplog.text

def test_debug_parser_traces(caplog):
    caplog.set_level(logging.DEBUG, logger='usec.parser')
    usec.parse("a = 1", debug_parser=True)
    assert "[Assignment]" in caplog.text
