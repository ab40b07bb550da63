"""
Strategies for pulling SQL text out of Spark Connect request messages.

The namespace interceptor only needs the SQL string of an ExecutePlan
request. ``PlanSqlExtractor`` reads it through the protobuf field accessors
of the Spark Connect plan, and ``TextFormatSqlExtractor`` scans the message's
text rendering for a ``query: "..."`` field for messages the plan walk does
not understand. Neither imports the Spark Connect proto classes.

In Spark 4.0, SQL is in a ``query`` field within a ``sql`` relation:

    plan { command { sql_command { input { sql { query: "..." } } } } }   (DDL/commands)
    plan { root { sql { query: "..." } } }                                (queries)

Older clients may still send ``plan { command { sql_command { sql: "..." } } }``.
"""

import logging
from collections.abc import Sequence
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class SqlExtractor(Protocol):
    """Returns the SQL text carried by a request message, or None."""

    def extract(self, message: Any) -> str | None: ...


def _which_oneof(message: Any, group: str) -> str | None:
    which = getattr(message, "WhichOneof", None)
    if which is None:
        return None
    try:
        return which(group)
    except ValueError:
        return None


def _has_field(message: Any, name: str) -> bool:
    has_field = getattr(message, "HasField", None)
    if has_field is None:
        return False
    try:
        return has_field(name)
    except ValueError:
        return False


def _sql_from_relation(relation: Any) -> str | None:
    if _which_oneof(relation, "rel_type") != "sql":
        return None
    return relation.sql.query


class PlanSqlExtractor:
    """Read SQL through the protobuf accessors of an ExecutePlanRequest plan."""

    def extract(self, message: Any) -> str | None:
        if not _has_field(message, "plan"):
            return None

        plan = message.plan
        op_type = _which_oneof(plan, "op_type")
        if op_type == "root":
            return _sql_from_relation(plan.root)
        if op_type == "command":
            command = plan.command
            if _which_oneof(command, "command_type") != "sql_command":
                return None
            sql_command = command.sql_command
            if _has_field(sql_command, "input"):
                return _sql_from_relation(sql_command.input)
            return sql_command.sql or None
        return None


def extract_quoted_field(text: str, field_name: str) -> str | None:
    """
    Extract a quoted string field value from protobuf text format.

    Looks for ``field_name: "value"`` and returns the value. A backslash makes
    the following character literal; the first unescaped quote ends the value.
    """
    search_pattern = f'{field_name}: "'
    start = text.find(search_pattern)
    if start == -1:
        return None
    start += len(search_pattern)

    chars = []
    i = start
    while i < len(text):
        c = text[i]
        if c == "\\" and i + 1 < len(text):
            chars.append(text[i + 1])
            i += 2
            continue
        if c == '"':
            break
        chars.append(c)
        i += 1
    return "".join(chars)


class TextFormatSqlExtractor:
    """Scan ``str(message)`` for a ``query`` field."""

    field_name = "query"

    def extract(self, message: Any) -> str | None:
        text = str(message)
        if f"{self.field_name}:" not in text:
            return None
        return extract_quoted_field(text, self.field_name)


class FirstMatchSqlExtractor:
    """Try extractors in order and return the first SQL found."""

    def __init__(self, extractors: Sequence[SqlExtractor]):
        self._extractors = tuple(extractors)

    def extract(self, message: Any) -> str | None:
        for extractor in self._extractors:
            sql = extractor.extract(message)
            if sql is not None:
                return sql
        return None


def default_sql_extractor() -> SqlExtractor:
    return FirstMatchSqlExtractor([PlanSqlExtractor(), TextFormatSqlExtractor()])
