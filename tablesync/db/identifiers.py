from __future__ import annotations

import re
from collections.abc import Collection

"""SQL identifier quoting.

Identifiers are never taken from user input verbatim: a name is accepted only
if it matches IDENTIFIER_PATTERN or is a member of an explicit allow-list
(names read back from the live catalog). Values always travel as %s params.
"""

__all__ = [
    "IDENTIFIER_PATTERN",
    "IdentifierError",
    "is_identifier",
    "quote_identifier",
    "qualified_name",
]

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class IdentifierError(ValueError):
    pass


def is_identifier(name: str) -> bool:
    return bool(IDENTIFIER_PATTERN.match(name))


def quote_identifier(name: str, allowed: Collection[str] | None = None) -> str:
    """Return ``name`` double-quoted for interpolation into SQL.

    Raises:
        IdentifierError: name neither matches the pattern nor is allow-listed
    """
    name = str(name)
    if not is_identifier(name) and (allowed is None or name not in allowed):
        raise IdentifierError(f"invalid identifier: {name!r}")
    return '"' + name.replace('"', '""') + '"'


def qualified_name(schema: str, table: str, allowed_tables: Collection[str] | None = None) -> str:
    return f"{quote_identifier(schema)}.{quote_identifier(table, allowed_tables)}"
