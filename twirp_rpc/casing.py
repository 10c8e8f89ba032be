# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Rewrite JSON object keys from snake_case to camelCase.

Twirp's JSON wire convention uses the original proto field names
(``a_long_key``) while application code expects the JSON names
(``aLongKey``).  Only object keys change; string values, array order,
scalars and ``null`` pass through untouched.
"""

from __future__ import annotations

from typing import Any

__all__ = ["camelize_keys", "snake_to_camel"]


def snake_to_camel(name: str) -> str:
    """Convert a snake_case field name to its lowerCamelCase JSON name.

    Follows protobuf's JSON name derivation: every underscore is dropped
    and the character after it is upper-cased.  Names without underscores
    are returned unchanged.
    """
    if "_" not in name:
        return name
    out: list[str] = []
    upper_next = False
    for ch in name:
        if ch == "_":
            upper_next = True
        elif upper_next:
            out.append(ch.upper())
            upper_next = False
        else:
            out.append(ch)
    return "".join(out)


def camelize_keys(value: Any) -> Any:
    """Return a copy of a decoded JSON value with every object key camelCased."""
    if isinstance(value, dict):
        return {snake_to_camel(key): camelize_keys(item) for key, item in value.items()}
    if isinstance(value, list):
        return [camelize_keys(item) for item in value]
    return value
