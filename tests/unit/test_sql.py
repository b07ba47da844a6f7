"""Unit tests for SQL placeholder parsing.

Tests the public API:
- parse_placeholders(sql, positional_allowed, named_allowed) - Main entry point
- tokenize_sql(sql) / strip_quoted(sql) - Quoted region handling
- rewrite_placeholders(sequence, positional, named) - Native paramstyles
- quote_identifier(name) / quote_value(value) - Quoting helpers
"""
import pytest
from dbadapter.exceptions import ParseError
from dbadapter.sql import ANSI_VALUE_QUOTE, QuoteStyle, TokenType
from dbadapter.sql import parse_placeholders, quote_identifier, quote_value
from dbadapter.sql import rewrite_placeholders, strip_quoted, tokenize_sql


class TestPositionalTargets:
    """Positional placeholders outside quoted regions become targets 1..N."""

    @pytest.mark.parametrize(('sql', 'expected'), [
        ('SELECT * FROM t WHERE a = ? AND b = ?', (1, 2)),
        ("SELECT '?' FROM t WHERE a = ?", (1,)),
        ('SELECT "col?" FROM t WHERE a = ?', (1,)),
        ("SELECT 'it''s ?' FROM t WHERE a = ? AND b = ?", (1, 2)),
        ('SELECT 1 -- where x = ?\nFROM t WHERE a = ?', (1,)),
        ('SELECT /* ? ? */ a FROM t WHERE b = ?', (1,)),
        ("SELECT 'a\nb ?' FROM t", ()),
        ('SELECT 1', ()),
    ], ids=['plain', 'value_quote', 'identifier_quote', 'doubled_escape',
            'line_comment', 'block_comment', 'multiline_literal', 'none'])
    def test_targets(self, sql, expected):
        tokens = parse_placeholders(sql)
        assert tokens.targets == expected
        assert len(tokens) == len(expected)

    def test_backslash_escape_style(self):
        """Drivers using backslash escapes keep the literal intact."""
        quote = QuoteStyle("'", "\\'")
        tokens = parse_placeholders("SELECT 'it\\'s ?' FROM t WHERE a = ?", value_quote=quote)
        assert tokens.targets == (1,)

    def test_doubled_style_does_not_honour_backslash(self):
        """With doubled-quote escaping a backslash does not protect the quote."""
        tokens = parse_placeholders("SELECT 'a\\' , ? FROM t", value_quote=ANSI_VALUE_QUOTE)
        assert tokens.targets == (1,)


class TestNamedTargets:
    """Named placeholders keep their leading colon and may repeat."""

    def test_repeated_names(self):
        tokens = parse_placeholders('SELECT * FROM t WHERE a = :a OR b = :b OR c = :a')
        assert tokens.targets == (':a', ':b', ':a')
        assert tokens.names == (':a', ':b')
        assert tokens.has_named
        assert not tokens.has_positional

    def test_cast_is_not_a_placeholder(self):
        tokens = parse_placeholders('SELECT x::int FROM t WHERE y = :y::text')
        assert tokens.targets == (':y',)

    def test_name_inside_literal_ignored(self):
        tokens = parse_placeholders("SELECT ':fake' FROM t WHERE a = :real")
        assert tokens.targets == (':real',)

    def test_contains(self):
        tokens = parse_placeholders('SELECT :name')
        assert ':name' in tokens
        assert 'name' not in tokens


class TestUnsupportedStyles:
    """Placeholder styles the driver lacks fail at parse time."""

    def test_positional_not_allowed(self):
        with pytest.raises(ParseError, match=r"position '\?'"):
            parse_placeholders('SELECT * FROM t WHERE a = ?', positional_allowed=False)

    def test_named_not_allowed(self):
        with pytest.raises(ParseError, match="name ':b'"):
            parse_placeholders('SELECT * FROM t WHERE b = :b', named_allowed=False)

    def test_quoted_placeholder_not_checked(self):
        tokens = parse_placeholders("SELECT '?' FROM t", positional_allowed=False)
        assert tokens.targets == ()

    def test_non_string_sql(self):
        with pytest.raises(ParseError):
            parse_placeholders(None)


class TestTokenSequence:

    def test_split_drops_quoted_regions(self):
        tokens = parse_placeholders("SELECT * FROM t WHERE a = ? AND b = 'x?'")
        assert tokens.split == ('SELECT * FROM t WHERE a = ', '?', ' AND b = ')

    def test_split_keeps_adjacent_placeholders(self):
        tokens = parse_placeholders('VALUES (?,?)')
        assert tokens.split == ('VALUES (', '?', ',', '?', ')')

    def test_token_offsets_point_into_original(self):
        sql = "SELECT 'q' , :name"
        tokens = tokenize_sql(sql)
        named = [t for t in tokens if t.type == TokenType.NAMED_PH][0]
        assert sql[named.start:named.end] == ':name'
        assert ''.join(t.text for t in tokens) == sql

    def test_sequence_is_immutable(self):
        tokens = parse_placeholders('SELECT ?')
        with pytest.raises(AttributeError):
            tokens.sql = 'SELECT 1'


def test_strip_quoted():
    assert strip_quoted("a 'b' \"c\" d") == 'a   d'
    assert strip_quoted('a /* b */ c -- d') == 'a  c '


class TestRewritePlaceholders:
    """Rendering parsed SQL in a driver's native paramstyle."""

    def test_pyformat_positional(self):
        tokens = parse_placeholders('SELECT * FROM t WHERE a = ? AND b = ?')
        assert rewrite_placeholders(tokens, '%s', '%({name})s') == 'SELECT * FROM t WHERE a = %s AND b = %s'

    def test_pyformat_named(self):
        tokens = parse_placeholders('SELECT * FROM t WHERE a = :a AND b = :a')
        assert rewrite_placeholders(tokens, '%s', '%({name})s') == 'SELECT * FROM t WHERE a = %(a)s AND b = %(a)s'

    def test_percent_escaped_everywhere_but_placeholders(self):
        tokens = parse_placeholders("SELECT a % 2 FROM t WHERE b LIKE 'x%' AND c = ?")
        result = rewrite_placeholders(tokens, '%s', '%({name})s', escape_percent=True)
        assert result == "SELECT a %% 2 FROM t WHERE b LIKE 'x%%' AND c = %s"

    def test_qmark_passthrough(self):
        sql = "SELECT '?', a FROM t WHERE b = ?"
        assert rewrite_placeholders(parse_placeholders(sql), '?', ':{name}') == sql


class TestQuoting:

    @pytest.mark.parametrize(('identifier', 'expected'), [
        ('users', '"users"'),
        ('public.users', '"public"."users"'),
        (['my.schema', 'users'], '"my.schema"."users"'),
        ('we"ird', '"we""ird"'),
    ], ids=['simple', 'dotted', 'segments', 'embedded_quote'])
    def test_quote_identifier(self, identifier, expected):
        assert quote_identifier(identifier) == expected

    @pytest.mark.parametrize(('value', 'expected'), [
        (None, 'NULL'),
        (True, '1'),
        (42, '42'),
        (1.5, '1.500000'),
        ("O'Reilly", "'O''Reilly'"),
        ([1, 'a'], "1, 'a'"),
    ], ids=['null', 'bool', 'int', 'float', 'string', 'sequence'])
    def test_quote_value(self, value, expected):
        assert quote_value(value) == expected

    def test_backslash_quote_escapes_backslash(self):
        quote = QuoteStyle("'", "\\'")
        assert quote_value("a\\b'c", quote) == "'a\\\\b\\'c'"

    def test_invalid_quote_style(self):
        with pytest.raises(ValueError):
            QuoteStyle("'", '"')
