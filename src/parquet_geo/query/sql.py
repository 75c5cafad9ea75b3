"""
SQL text helpers: quoting, sanitization and geometry column expressions.

Every value interpolated into a statement goes through one of these.
"""

import re
from typing import Iterable, Optional

from .errors import TranslationError

_FORBIDDEN_KEYWORDS = re.compile(
    r"\b(DROP|DELETE|INSERT|UPDATE|CREATE|ALTER|EXEC|EXECUTE|UNION|"
    r"TRUNCATE|GRANT|REVOKE|MERGE|CALL|COPY|ATTACH|DETACH|PRAGMA|"
    r"INSTALL|LOAD)\b",
    re.IGNORECASE,
)

_FORBIDDEN_PATTERNS = re.compile(r"(--|/\*|\*/|;)")

_SUBQUERY = re.compile(r"\bSELECT\b", re.IGNORECASE)

# DuckDB table functions that could read arbitrary files or URLs
_FORBIDDEN_FUNCTIONS = re.compile(
    r"\b(read_\w+|parquet_scan|iceberg_scan|delta_scan|glob|getenv)\s*\(",
    re.IGNORECASE,
)

_IDENTIFIER = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def quote_identifier(name: str) -> str:
    """Double-quote an identifier, doubling embedded quotes."""
    return '"' + str(name).replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    """Single-quote a string literal, doubling embedded quotes."""
    return "'" + str(value).replace("'", "''") + "'"


def geometry_expression(geometry_field: str, encoding: str = "native") -> str:
    """SQL expression yielding a GEOMETRY for the layer's geometry column."""
    column = quote_identifier(geometry_field)
    if encoding == "wkb":
        return f"ST_GeomFromWKB({column})"
    return column


def parquet_source(dataset: str) -> str:
    """The FROM item scanning a (hive-partitioned) Parquet dataset."""
    return (
        f"read_parquet({quote_literal(dataset)}, "
        f"filename=true, hive_partitioning=1) AS data"
    )


def sanitize_where(where: Optional[str]) -> Optional[str]:
    """
    Check a free-form WHERE expression from user input.

    Uses a conservative denylist approach:
    - Reject forbidden keywords (DDL, DML, extension management)
    - Reject dangerous patterns (comments, semicolons)
    - Reject subqueries and file-reading table functions
    """
    if where is None or where.strip() == "":
        return None

    if _FORBIDDEN_PATTERNS.search(where):
        raise TranslationError(f"Forbidden pattern in where clause: {where}")

    if _FORBIDDEN_KEYWORDS.search(where):
        raise TranslationError(f"Forbidden keyword in where clause: {where}")

    if _SUBQUERY.search(where):
        raise TranslationError(f"Subqueries not allowed in where clause: {where}")

    if _FORBIDDEN_FUNCTIONS.search(where):
        raise TranslationError(f"Table functions not allowed in where clause: {where}")

    return where.strip()


def sanitize_order(order_by: Optional[str], known_fields: Iterable[str]) -> str:
    """Validate ORDER BY text. Only known column names + ASC/DESC are allowed."""
    if not order_by or not order_by.strip():
        return ""

    if _FORBIDDEN_PATTERNS.search(order_by):
        raise TranslationError(f"Forbidden pattern in orderByFields: {order_by}")

    # DuckDB resolves identifiers case-insensitively
    known = {name.lower(): name for name in known_fields}

    sanitized = []
    for part in order_by.split(","):
        tokens = part.split()
        if len(tokens) == 0:
            continue
        if len(tokens) > 2:
            raise TranslationError(f"Invalid orderByFields entry: {part.strip()}")
        col_name = tokens[0]
        if not _IDENTIFIER.match(col_name):
            raise TranslationError(f"Invalid column name in orderByFields: {col_name}")
        if col_name.lower() not in known:
            raise TranslationError(f"Unknown field in orderByFields: {col_name}")
        direction = ""
        if len(tokens) > 1:
            direction = tokens[1].upper()
            if direction not in ("ASC", "DESC"):
                raise TranslationError(f"Invalid sort direction: {tokens[1]}")
        sanitized.append(f"{quote_identifier(known[col_name.lower()])} {direction}".strip())

    return ", ".join(sanitized)
