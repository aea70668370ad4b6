"""Translate CMS ``where`` filters into SQLAlchemy expressions.

Supported shape::

    {"createdAt": {"less_than": "2026-01-01T00:00:00Z"},
     "or": [{"owner": {"exists": False}}, {"owner.value": {"equals": "abc"}}]}
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from sqlalchemy import DateTime, and_, or_, true
from sqlalchemy.sql.elements import ColumnElement

from ..exceptions import RepositoryError

FieldMap = Mapping[str, Any]


class InvalidQueryError(RepositoryError):
    """Raised for filters referencing unknown fields or operators."""


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _coerce(column: Any, value: Any) -> Any:
    if isinstance(column.type, DateTime):
        if isinstance(value, str):
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if isinstance(value, datetime):
            return to_naive_utc(value)
    return value


def _condition(column: Any, operator: str, value: Any) -> ColumnElement[bool]:
    if operator == "exists":
        return column.is_not(None) if value else column.is_(None)
    if operator == "in":
        return column.in_([_coerce(column, item) for item in value])
    coerced = _coerce(column, value)
    if operator == "equals":
        return column.is_(None) if coerced is None else column == coerced
    if operator == "not_equals":
        return column.is_not(None) if coerced is None else column != coerced
    if operator == "less_than":
        return column < coerced
    if operator == "less_than_equal":
        return column <= coerced
    if operator == "greater_than":
        return column > coerced
    if operator == "greater_than_equal":
        return column >= coerced
    raise InvalidQueryError(f"unsupported operator '{operator}'")


def build_where(where: Mapping[str, Any] | None, fields: FieldMap) -> ColumnElement[bool]:
    """Return a single boolean clause for ``where`` over ``fields``."""
    if not where:
        return true()

    clauses: list[ColumnElement[bool]] = []
    for key, condition in where.items():
        if key in ("and", "or"):
            nested = [build_where(item, fields) for item in condition]
            if nested:
                clauses.append(and_(*nested) if key == "and" else or_(*nested))
            continue
        column = fields.get(key)
        if column is None:
            raise InvalidQueryError(f"unknown field '{key}'")
        if not isinstance(condition, Mapping):
            raise InvalidQueryError(f"filter for '{key}' must map operators to values")
        for operator, value in condition.items():
            clauses.append(_condition(column, operator, value))
    return and_(*clauses) if clauses else true()
