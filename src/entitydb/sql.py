"""
SQL parameter processing.

Statements are written with positional ``?`` placeholders (``%s`` is accepted
too) and rewritten into the driver paramstyle of the connection dialect:

    SQL + Args → Tokenize → Rewrite placeholders → (sql, params)

String literals are never touched except for percent escaping on drivers
that use the ``format`` paramstyle.
"""
import re
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

__all__ = [
    'tokenize_sql',
    'has_placeholders',
    'standardize_placeholders',
    'escape_percent_signs_in_literals',
    'prepare_query',
]


class TokenType(Enum):
    """Token types identified during SQL parsing."""
    SQL_TEXT = auto()
    STRING_LITERAL = auto()
    POSITIONAL_PH = auto()      # %s or ?


@dataclass(slots=True)
class Token:
    """Token from SQL parsing."""
    type: TokenType
    text: str


_TOKENIZE = re.compile(r"""
    (?P<string>'(?:[^']|'')*'|"(?:[^"]|"")*")
    |(?P<percent_s>%s)
    |(?P<qmark>\?)
""", re.VERBOSE)

_HAS_PLACEHOLDER = re.compile(r'%s|\?')

# Unescaped percent that is not a placeholder
_UNESCAPED_PERCENT = re.compile(r'(?<!%)%(?![%s])')

_PLACEHOLDERS = {
    'postgresql': '%s',
    'sqlite': '?',
}


def tokenize_sql(sql: str) -> list[Token]:
    """Split SQL into text, string literal and placeholder tokens.

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
            tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:start]))
        if match.group('string'):
            tokens.append(Token(TokenType.STRING_LITERAL, match.group(0)))
        else:
            tokens.append(Token(TokenType.POSITIONAL_PH, match.group(0)))
        last_end = end

    if last_end < len(sql):
        tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:]))

    return tokens


def has_placeholders(sql: str | None) -> bool:
    """Check if SQL has positional placeholders outside of string literals.

    >>> has_placeholders('select * from t where id = ?')
    True
    >>> has_placeholders("select '?' from t")
    False
    >>> has_placeholders(None)
    False
    """
    if not sql or not _HAS_PLACEHOLDER.search(sql):
        return False
    return any(t.type == TokenType.POSITIONAL_PH for t in tokenize_sql(sql))


def standardize_placeholders(sql: str, dialect: str = 'postgresql') -> str:
    """Convert positional placeholders to the style used by the dialect.

    >>> standardize_placeholders('select * from t where a = ? and b = %s', 'postgresql')
    'select * from t where a = %s and b = %s'
    >>> standardize_placeholders("select '%s', a from t where b = %s", 'sqlite')
    "select '%s', a from t where b = ?"
    """
    placeholder = _PLACEHOLDERS.get(dialect, '?')
    return ''.join(
        placeholder if t.type == TokenType.POSITIONAL_PH else t.text
        for t in tokenize_sql(sql)
    )


def escape_percent_signs_in_literals(sql: str) -> str:
    """Double bare percent signs inside string literals.

    Needed for ``format`` paramstyle drivers when parameters are passed.

    >>> escape_percent_signs_in_literals("select * from t where a like 'x%' and b = %s")
    "select * from t where a like 'x%%' and b = %s"
    """
    return ''.join(
        _UNESCAPED_PERCENT.sub('%%', t.text) if t.type == TokenType.STRING_LITERAL else t.text
        for t in tokenize_sql(sql)
    )


def prepare_query(sql: str, args: tuple | list | None, dialect: str) -> tuple[str, tuple]:
    """Prepare a statement and its positional parameters for execution.

    A single list or tuple argument is unwrapped so that
    ``prepare_query(sql, ([1, 2],), ...)`` and ``prepare_query(sql, (1, 2), ...)``
    are equivalent.
    """
    args = tuple(args or ())
    if len(args) == 1 and isinstance(args[0], (list, tuple)):
        args = tuple(args[0])

    sql = standardize_placeholders(sql, dialect)
    if args and _PLACEHOLDERS.get(dialect) == '%s':
        sql = escape_percent_signs_in_literals(sql)

    return sql, args
