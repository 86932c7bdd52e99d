"""Quoting helpers for the handful of statements the pipeline sends to the database."""
from __future__ import annotations

from pathlib import PurePath


def quote_identifier(name: str) -> str:
    """Bracket-quote an identifier, escaping embedded closing brackets.

    >>> quote_identifier("Sales]Db")
    '[Sales]]Db]'
    """
    return "[" + name.replace("]", "]]") + "]"


def quote_literal(value: str | PurePath) -> str:
    """Render a Unicode string literal, escaping embedded single quotes.

    >>> quote_literal("O'Brien")
    "N'O''Brien'"
    """
    return "N'" + str(value).replace("'", "''") + "'"
