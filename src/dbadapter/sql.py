"""
SQL placeholder parsing with single-pass tokenization.

    SQL → Tokenize (quoted regions, comments, placeholders) → TokenSequence

Quoted value literals, delimited identifiers and comments are recognised in
the same scan as placeholders, so placeholder-like characters inside them are
never reported as bind targets. Each driver declares one canonical escape
convention per quote kind through `QuoteStyle`.

Main entry points:
- `parse_placeholders(sql, positional_allowed, named_allowed)` - Build the
  immutable `TokenSequence` for a statement
- `tokenize_sql(sql)` - Raw token list with offsets into the original SQL
- `strip_quoted(sql)` - SQL text with quoted regions and comments removed
- `quote_identifier()` / `quote_value()` - Quote names and values
"""
import re
from dataclasses import dataclass, field
from enum import Enum, auto
from functools import cached_property
from typing import Any

from dbadapter.exceptions import ParseError

POSITIONAL = 'positional'
NAMED = 'named'

# =============================================================================
# Data Structures
# =============================================================================


class TokenType(Enum):
    """Token types identified during SQL parsing."""
    SQL_TEXT = auto()
    QUOTED = auto()             # 'value', "ident", comments
    POSITIONAL_PH = auto()      # ?
    NAMED_PH = auto()           # :name


@dataclass(frozen=True, slots=True)
class QuoteStyle:
    """A quote character and the one escape sequence accepted inside it.

    ``escape`` is either the doubled quote character (``''``) or a
    backslash followed by the quote (``\\'``).
    """
    char: str
    escape: str

    def __post_init__(self):
        if len(self.char) != 1:
            raise ValueError(f'Quote must be a single character, got {self.char!r}')
        if self.escape not in {self.char * 2, '\\' + self.char}:
            raise ValueError(f'Unsupported escape {self.escape!r} for quote {self.char!r}')

    @property
    def backslash(self) -> bool:
        return self.escape.startswith('\\')

    def pattern(self) -> str:
        """Regex matching one complete quoted region."""
        q = re.escape(self.char)
        if self.backslash:
            return rf'{q}(?:\\.|[^{q}\\])*{q}'
        return rf'{q}(?:[^{q}]|{q}{q})*{q}'

    def quote(self, text: str) -> str:
        """Wrap text in this quote, escaping embedded quote characters."""
        if self.backslash:
            text = text.replace('\\', '\\\\')
        return f'{self.char}{text.replace(self.char, self.escape)}{self.char}'


ANSI_VALUE_QUOTE = QuoteStyle("'", "''")
ANSI_IDENTIFIER_QUOTE = QuoteStyle('"', '""')


@dataclass(frozen=True, slots=True)
class Token:
    """Token from SQL parsing."""
    type: TokenType
    text: str
    start: int
    end: int

    @property
    def is_placeholder(self) -> bool:
        return self.type in {TokenType.POSITIONAL_PH, TokenType.NAMED_PH}


@dataclass(frozen=True)
class TokenSequence:
    """Parsed form of a statement's SQL text.

    The sequence is built once per statement and never changes. Its
    `targets` list is what every later bind call is validated against:
    1-based positions for ``?`` placeholders and ``:name`` strings for named
    ones, in left-to-right order.
    """
    sql: str
    tokens: tuple[Token, ...]
    targets: tuple[int | str, ...] = field(init=False)

    def __post_init__(self):
        targets: list[int | str] = []
        position = 0
        for token in self.placeholders:
            if token.type == TokenType.POSITIONAL_PH:
                position += 1
                targets.append(position)
            else:
                targets.append(token.text)
        object.__setattr__(self, 'targets', tuple(targets))

    @cached_property
    def placeholders(self) -> tuple[Token, ...]:
        return tuple(t for t in self.tokens if t.is_placeholder)

    @cached_property
    def split(self) -> tuple[str, ...]:
        """Literal text segments interleaved with placeholders, quoted regions removed."""
        parts: list[str] = []
        buf = ''
        for token in self.tokens:
            if token.type == TokenType.QUOTED:
                continue
            if token.type == TokenType.SQL_TEXT:
                buf += token.text
                continue
            if buf:
                parts.append(buf)
                buf = ''
            parts.append(token.text)
        if buf:
            parts.append(buf)
        return tuple(parts)

    @property
    def has_positional(self) -> bool:
        return any(t.type == TokenType.POSITIONAL_PH for t in self.placeholders)

    @property
    def has_named(self) -> bool:
        return any(t.type == TokenType.NAMED_PH for t in self.placeholders)

    @property
    def names(self) -> tuple[str, ...]:
        """Distinct named targets in order of first appearance."""
        return tuple(dict.fromkeys(t for t in self.targets if isinstance(t, str)))

    def __len__(self) -> int:
        return len(self.targets)

    def __contains__(self, target: object) -> bool:
        return target in self.targets


# =============================================================================
# Regex Patterns
# =============================================================================

_COMMENT = r'--[^\n]*|/\*.*?\*/'
_POSITIONAL = r'\?'
# `::type` casts are not named placeholders
_NAMED = r'(?<!:):[A-Za-z0-9_]+'

_PATTERN_CACHE: dict[tuple[QuoteStyle, QuoteStyle], re.Pattern] = {}


def _tokenizer(value_quote: QuoteStyle, identifier_quote: QuoteStyle) -> re.Pattern:
    key = (value_quote, identifier_quote)
    if key not in _PATTERN_CACHE:
        _PATTERN_CACHE[key] = re.compile(
            rf'(?P<quoted>{identifier_quote.pattern()}|{value_quote.pattern()}|{_COMMENT})'
            rf'|(?P<positional>{_POSITIONAL})'
            rf'|(?P<named>{_NAMED})',
            re.DOTALL)
    return _PATTERN_CACHE[key]


# =============================================================================
# Core Functions
# =============================================================================

def tokenize_sql(sql: str, value_quote: QuoteStyle = ANSI_VALUE_QUOTE,
                 identifier_quote: QuoteStyle = ANSI_IDENTIFIER_QUOTE) -> list[Token]:
    """Parse SQL into tokens in a single pass.

    Parameters
        sql: SQL query string
        value_quote: quoting convention for string literals
        identifier_quote: quoting convention for delimited identifiers

    Returns
        List of tokens preserving all SQL text
    """
    tokens = []
    last_end = 0

    for match in _tokenizer(value_quote, identifier_quote).finditer(sql):
        start, end = match.span()

        if start > last_end:
            tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:start], last_end, start))

        if match.group('quoted'):
            ttype = TokenType.QUOTED
        elif match.group('positional'):
            ttype = TokenType.POSITIONAL_PH
        else:
            ttype = TokenType.NAMED_PH

        tokens.append(Token(ttype, match.group(0), start, end))
        last_end = end

    if last_end < len(sql):
        tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:], last_end, len(sql)))

    return tokens


def strip_quoted(sql: str, value_quote: QuoteStyle = ANSI_VALUE_QUOTE,
                 identifier_quote: QuoteStyle = ANSI_IDENTIFIER_QUOTE) -> str:
    """Remove quoted values, delimited identifiers and comments from SQL.
    """
    return ''.join(t.text for t in tokenize_sql(sql, value_quote, identifier_quote)
                   if t.type != TokenType.QUOTED)


def parse_placeholders(sql: str, positional_allowed: bool = True,
                       named_allowed: bool = True,
                       value_quote: QuoteStyle = ANSI_VALUE_QUOTE,
                       identifier_quote: QuoteStyle = ANSI_IDENTIFIER_QUOTE) -> TokenSequence:
    """Tokenize a statement and validate its placeholder styles.

    Raises ParseError when the SQL uses a placeholder style the driver does
    not support.
    """
    if not isinstance(sql, str):
        raise ParseError(f'SQL must be a string, got {type(sql).__name__}')

    tokens = tokenize_sql(sql, value_quote, identifier_quote)

    for token in tokens:
        if token.type == TokenType.POSITIONAL_PH and not positional_allowed:
            raise ParseError(f"Invalid bind-variable position '{token.text}'")
        if token.type == TokenType.NAMED_PH and not named_allowed:
            raise ParseError(f"Invalid bind-variable name '{token.text}'")

    return TokenSequence(sql, tuple(tokens))


def rewrite_placeholders(sequence: TokenSequence, positional: str, named: str,
                         escape_percent: bool = False) -> str:
    """Render the statement with placeholders in a driver's native format.

    ``positional`` is the replacement for ``?``; ``named`` is a format string
    receiving ``name`` (e.g. ``'%({name})s'``). With ``escape_percent``,
    literal ``%`` characters are doubled for pyformat drivers.
    """
    out = []
    for token in sequence.tokens:
        if token.type == TokenType.POSITIONAL_PH:
            out.append(positional)
        elif token.type == TokenType.NAMED_PH:
            out.append(named.format(name=token.text[1:]))
        elif escape_percent:
            out.append(token.text.replace('%', '%%'))
        else:
            out.append(token.text)
    return ''.join(out)


def infer_query_type_keyword(sql: str) -> str:
    """Lower-cased first six significant characters of a statement."""
    return sql.lstrip()[:6].lower()


def quote_identifier(identifier: str | list[str] | tuple[str, ...],
                     quote: QuoteStyle = ANSI_IDENTIFIER_QUOTE) -> str:
    """Quote a (possibly dotted) identifier.

    ``'schema.table'`` and ``['schema', 'table']`` both become
    ``"schema"."table"``.
    """
    if isinstance(identifier, str):
        identifier = identifier.split('.')
    return '.'.join(quote.quote(str(segment)) for segment in identifier)


def quote_value(value: Any, quote: QuoteStyle = ANSI_VALUE_QUOTE) -> str:
    """Render a Python value as an SQL literal.

    Sequences are quoted element-wise and joined with commas.
    """
    if value is None:
        return 'NULL'
    if isinstance(value, bool):
        return '1' if value else '0'
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return f'{value:F}'
    if isinstance(value, (list, tuple, set, frozenset)):
        return ', '.join(quote_value(v, quote) for v in value)
    return quote.quote(str(value))


__all__ = [
    'POSITIONAL',
    'NAMED',
    'TokenType',
    'Token',
    'QuoteStyle',
    'TokenSequence',
    'ANSI_VALUE_QUOTE',
    'ANSI_IDENTIFIER_QUOTE',
    'tokenize_sql',
    'strip_quoted',
    'parse_placeholders',
    'rewrite_placeholders',
    'infer_query_type_keyword',
    'quote_identifier',
    'quote_value',
]
