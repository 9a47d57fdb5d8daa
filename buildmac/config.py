"""Build-time define parsing."""

import ast
from typing import Any, Dict, Iterable, Union


def parse_define_value(value: str) -> Any:
    """Convert the VALUE part of NAME=VALUE into a Python value."""
    value = value.strip()
    if value.lower() == 'true':
        return True
    if value.lower() == 'false':
        return False
    try:
        return ast.literal_eval(value)
    except (ValueError, SyntaxError):
        return value


def parse_defines(defines: Union[str, Iterable[str], None]) -> Dict[str, Any]:
    """
    Parse NAME[=VALUE] strings into a define map.

    Accepts a list such as ["DEBUG", "LEVEL=2", "FAST=false"] or a single
    comma-separated string "DEBUG,LEVEL=2". A bare name is defined as True.
    Later entries override earlier ones.
    """
    if not defines:
        return {}
    if isinstance(defines, str):
        defines = defines.split(',')

    result: Dict[str, Any] = {}
    for item in defines:
        item = item.strip()
        if not item:
            continue
        if '=' in item:
            name, value = item.split('=', 1)
            name = name.strip()
            if not name:
                raise ValueError(f"Define without a name: {item!r}")
            result[name] = parse_define_value(value)
        else:
            result[item] = True
    return result
