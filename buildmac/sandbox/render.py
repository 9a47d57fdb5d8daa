"""Rendering evaluated values back into Python source."""

import ast

QUOTES = ("'", '"')


def render_value(value, avoid_quotes=()) -> str:
    """
    Render a value as a Python literal that evaluates back to an equal value.

    Supports None, bools, numbers, strings, bytes and lists/tuples/dicts/sets
    of those.

    `avoid_quotes` lists quote characters the literal must not contain, for
    text placed inside an f-string replacement field. Such text may not hold
    a backslash either.

    Raises:
        ValueError: if the value has no literal form (functions, class
            instances, nan/inf, frozensets, ...), or cannot be written
            without the avoided quotes
    """
    text = repr(value)
    try:
        parsed = ast.literal_eval(text)
    except (ValueError, TypeError, SyntaxError, MemoryError, RecursionError):
        raise ValueError(f"{type(value).__name__} value has no Python literal form: {_shorten(text)}")
    try:
        equal = parsed == value
    except (ValueError, TypeError):
        equal = False
    if not equal:
        raise ValueError(f"{type(value).__name__} value does not round-trip through its repr: {_shorten(text)}")
    if avoid_quotes and (any(q in text for q in avoid_quotes) or "\\" in text):
        text = _requote(value, text, avoid_quotes)
    return text


def _requote(value, text: str, avoid_quotes) -> str:
    """Rewrite a string or bytes literal with a quote character that is allowed."""
    if isinstance(value, (str, bytes)) and "\\" not in text:
        prefix = "b" if isinstance(value, bytes) else ""
        body = text[len(prefix) + 1:-1]
        for quote in QUOTES:
            if quote not in avoid_quotes and quote not in body:
                return f"{prefix}{quote}{body}{quote}"
    raise ValueError(f"{type(value).__name__} value cannot be written inside an f-string: {_shorten(text)}")


def _shorten(text: str, limit: int = 60) -> str:
    if len(text) <= limit:
        return text
    return text[:limit - 3] + "..."
