"""
Namespace rules for CREATE DATABASE/SCHEMA/NAMESPACE statements.

Users may only create databases whose names start with one of their
governance-assigned prefixes (user prefix or writable tenant prefix). The
``default`` database is always allowed.
"""

import re
from collections.abc import Sequence

import grpc

from spark_connect_guard.decision import ALLOW, Decision

# Handles, case-insensitively:
#   CREATE DATABASE mydb
#   CREATE SCHEMA IF NOT EXISTS mydb
#   CREATE NAMESPACE mydb              (Spark 4.0 synonym)
#   CREATE DATABASE `my_db`
#   CREATE DATABASE "my_db"
# Group 3 captures the database name with its quoting.
CREATE_DB_PATTERN = re.compile(
    r"\bCREATE\s+(DATABASE|SCHEMA|NAMESPACE)\s+(IF\s+NOT\s+EXISTS\s+)?(`[^`]+`|\"[^\"]+\"|\S+)",
    re.IGNORECASE,
)

DEFAULT_DATABASE = "default"


def find_created_database(sql: str) -> str | None:
    """Return the raw target name of the first CREATE DATABASE/SCHEMA/NAMESPACE, if any."""
    match = CREATE_DB_PATTERN.search(sql)
    if match is None:
        return None
    return match.group(3)


def normalize_database_name(name: str) -> str:
    """Strip one layer of quoting and a trailing semicolon, then lower-case."""
    if len(name) >= 2 and (
        (name.startswith("`") and name.endswith("`"))
        or (name.startswith('"') and name.endswith('"'))
    ):
        name = name[1:-1]

    if name.endswith(";"):
        name = name[:-1]

    # Hive stores database names in lowercase
    return name.lower()


def is_allowed_database(name: str, allowed_prefixes: Sequence[str]) -> bool:
    """Check a normalized database name against the allowed prefixes."""
    if name == DEFAULT_DATABASE:
        return True
    return any(name.startswith(prefix.lower()) for prefix in allowed_prefixes)


def format_prefixes(allowed_prefixes: Sequence[str]) -> str:
    return "[" + ", ".join(allowed_prefixes) + "]"


def validate_create_database(sql: str, allowed_prefixes: Sequence[str]) -> Decision:
    """
    Validate a SQL statement for namespace creation rules.

    Statements other than CREATE DATABASE/SCHEMA/NAMESPACE are allowed.

    Returns:
        ALLOW, or a PERMISSION_DENIED decision naming the database and the
        allowed prefixes.
    """
    raw_name = find_created_database(sql)
    if raw_name is None:
        return ALLOW

    db_name = normalize_database_name(raw_name)
    if is_allowed_database(db_name, allowed_prefixes):
        return ALLOW

    return Decision.deny(
        grpc.StatusCode.PERMISSION_DENIED,
        f"Database name '{db_name}' is not allowed. "
        "Database names must start with one of the following prefixes: "
        f"{format_prefixes(allowed_prefixes)}. "
        "Use create_namespace_if_not_exists() to create databases with the correct prefix.",
    )
