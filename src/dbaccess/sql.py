"""
SQL text helpers.

The statements callers hand us are passed to the driver untouched apart from
placeholder normalization. Both `?` and `%s` are accepted for positional
parameters; each dialect gets the marker its driver expects.

- `tokenize_sql()` - Split SQL into literal and non-literal tokens
- `has_placeholders()` - Check if SQL has placeholders
- `standardize_placeholders()` - Convert %s <-> ? for a dialect
- `is_insert()` - Check if a statement inserts rows
- `quote_identifier()` - Quote table/column/savepoint names
"""
import re
import threading
from dataclasses import dataclass
from enum import Enum, auto

import cachetools


class TokenType(Enum):
    """Token types identified during SQL parsing."""
    SQL_TEXT = auto()
    STRING_LITERAL = auto()
    POSITIONAL_PH = auto()      # %s or ?
    NAMED_PH = auto()           # %(name)s
    ESCAPED_PERCENT = auto()    # %%


@dataclass(slots=True)
class Token:
    """Token from SQL parsing."""
    type: TokenType
    text: str
    start: int
    end: int


# Quoted text is matched first so markers inside literals or quoted
# identifiers are never treated as placeholders
_TOKENIZE = re.compile(r"""
    (?P<string>'(?:[^']|'')*'|"(?:[^"]|"")*")
    |(?P<named>%\((?P<pname>[^)]+)\)s)
    |(?P<escaped>%%)
    |(?P<percent_s>%s)
    |(?P<qmark>\?)
""", re.VERBOSE)

# Unescaped percent signs in string content
_UNESCAPED_PERCENT = re.compile(r'(?<!%)%(?![%s(])')

_HAS_PLACEHOLDER = re.compile(r'%s|\?|%\([^)]+\)s')

_INSERT_STATEMENT = re.compile(r'^\s*(?:--[^\n]*\n\s*)*(insert|replace)\b', re.IGNORECASE)

_standardize_cache = cachetools.LRUCache(maxsize=512)
_standardize_lock = threading.RLock()


def tokenize_sql(sql: str) -> list[Token]:
    """Parse SQL into tokens in a single pass.

    Parameters
        sql: SQL query string

    Returns
        List of tokens preserving all SQL text
    """
    tokens = []
    last_end = 0

    for match in _TOKENIZE.finditer(sql):
        start, end = match.span()

        if start > last_end:
            tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:start], last_end, start))

        if match.group('string'):
            ttype = TokenType.STRING_LITERAL
        elif match.group('named'):
            ttype = TokenType.NAMED_PH
        elif match.group('escaped'):
            ttype = TokenType.ESCAPED_PERCENT
        else:
            ttype = TokenType.POSITIONAL_PH

        tokens.append(Token(ttype, match.group(0), start, end))
        last_end = end

    if last_end < len(sql):
        tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:], last_end, len(sql)))

    return tokens


def has_placeholders(sql: str | None) -> bool:
    """Check if SQL has any parameter placeholders outside string literals.
    """
    if not sql:
        return False

    if '%' not in sql and '?' not in sql:
        return False

    if not _HAS_PLACEHOLDER.search(sql):
        return False

    return any(token.type in {TokenType.POSITIONAL_PH, TokenType.NAMED_PH}
               for token in tokenize_sql(sql))


def _escape_percent_in_literal(literal: str) -> str:
    """Escape unescaped percent signs in string literal."""
    quote = literal[0]
    content = literal[1:-1]
    escaped = _UNESCAPED_PERCENT.sub('%%', content)
    return f'{quote}{escaped}{quote}'


@cachetools.cached(cache=_standardize_cache, lock=_standardize_lock)
def standardize_placeholders(sql: str, dialect: str = 'postgresql',
                             escape_percent: bool = False) -> str:
    """Convert positional placeholders to the marker a dialect expects.

    Parameters
        sql: SQL query string
        dialect: 'postgresql' (`%s`) or 'sqlite' (`?`)
        escape_percent: Escape `%` inside string literals (needed by psycopg
            when the statement is executed with parameters)

    Returns
        SQL with standardized placeholders
    """
    if not sql:
        return sql

    if dialect == 'sqlite':
        if '%s' not in sql:
            return sql
        target = '?'
    elif dialect == 'postgresql':
        if '?' not in sql and not (escape_percent and '%' in sql):
            return sql
        target = '%s'
    else:
        return sql

    result = []
    for token in tokenize_sql(sql):
        if token.type == TokenType.POSITIONAL_PH:
            result.append(target)
        elif token.type == TokenType.STRING_LITERAL and escape_percent and token.text[0] == "'":
            result.append(_escape_percent_in_literal(token.text))
        else:
            result.append(token.text)
    return ''.join(result)


def is_insert(sql: str) -> bool:
    """Check if a statement is an INSERT or REPLACE."""
    return bool(_INSERT_STATEMENT.match(sql or ''))


def quote_identifier(identifier: str, dialect: str = 'postgresql') -> str:
    """Safely quote database identifiers.

    Parameters
        identifier: Table, column or savepoint name
        dialect: Database dialect

    Returns
        Quoted identifier

    Raises
        ValueError: If dialect is unsupported
    """
    if dialect in {'postgresql', 'sqlite'}:
        return '"' + identifier.replace('"', '""') + '"'

    raise ValueError(f'Unknown dialect: {dialect}')
