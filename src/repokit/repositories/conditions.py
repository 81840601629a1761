"""
`find_where` condition building.

A where mapping holds either plain equality or an explicit (field, operator, value)
triple, which may be a tuple or a list:

    {"status": "published"}                       # status = 'published'
    {"age": ("age", ">", 18)}                     # age > 18
    {"title": ["title", "like", "%python%"]}      # title LIKE '%python%'

For triples the key is only a label; the field named inside the triple is used.
"""
import operator
from collections.abc import Iterable, Mapping
from typing import Any, Callable

from sqlalchemy import Select

from repokit.database.inspection import get_column_attribute
from repokit.exceptions.base import RepositoryError

OPERATORS: dict[str, Callable[[Any, Any], Any]] = {
    "=": operator.eq,
    "==": operator.eq,
    "!=": operator.ne,
    "<>": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "like": lambda col, v: col.like(v),
    "not like": lambda col, v: col.not_like(v),
    "ilike": lambda col, v: col.ilike(v),
    "not ilike": lambda col, v: col.not_ilike(v),
    "in": lambda col, v: col.in_(list(v)),
    "not in": lambda col, v: col.not_in(list(v)),
    "is": lambda col, v: col.is_(v),
    "is not": lambda col, v: col.is_not(v),
}

COLLECTION_OPERATORS = {"in", "not in"}


def build_criterion(model, field: str, op: str, value: Any):
    """
    Raises:
        InvalidFieldError: `field` is not a column of `model`.
        RepositoryError: `op` is not a supported operator, or `in`/`not in` got a
            scalar instead of a collection (code `invalid_input`).
    """
    column = get_column_attribute(model, field)
    normalized = " ".join(str(op).lower().split())
    try:
        fn = OPERATORS[normalized]
    except KeyError:
        raise RepositoryError(
            f"Unsupported operator '{op}' for field '{field}'", fields=[field], error_code="invalid_input"
        ) from None
    if normalized in COLLECTION_OPERATORS and (isinstance(value, (str, bytes)) or not isinstance(value, Iterable)):
        raise RepositoryError(
            f"Operator '{op}' on field '{field}' needs a list of values", fields=[field], error_code="invalid_input"
        )
    return fn(column, value)


def apply_conditions(query: Select, model, where: Mapping[str, Any]) -> Select:
    for key, value in where.items():
        if isinstance(value, (tuple, list)):
            if len(value) != 3:
                raise RepositoryError(
                    f"Condition for '{key}' must be (field, operator, value)", fields=[key], error_code="invalid_input"
                )
            field, op, val = value
            query = query.where(build_criterion(model, field, op, val))
        else:
            query = query.where(build_criterion(model, key, "=", value))
    return query
