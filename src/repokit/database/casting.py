"""
Cast step: coerce raw input attributes through the model's column types.

Validation runs on the output of `cast_attributes`, so rules see the values the
ORM would store (`"42"` for an Integer column becomes `42`) rather than raw
request input.

The cast is a forced fill of a blank instance: the instance is created through
the class manager (the model's `__init__` is not called), every column value is
assigned to it, and the values are read back. Relationship values are passed
through untouched so no backref ever fires on objects already in a session.
"""
import logging
import uuid
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import inspect as sa_inspect

from repokit.exceptions.base import InvalidFieldError
from .inspection import find_unknown_model_kwargs

logger = logging.getLogger(__name__)

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off"}


def cast_attributes(model, attributes: dict[str, Any]) -> dict[str, Any]:
    """
    Return a new dict with every column value coerced to its column's Python type.

    Raises:
        InvalidFieldError: if any key is not a mapped attribute of `model`.
    """
    unknown = find_unknown_model_kwargs(model, attributes)
    if unknown:
        raise InvalidFieldError(
            f"Unknown field(s) for {model.__name__}: {', '.join(sorted(unknown))}", fields=sorted(unknown)
        )

    mapper = sa_inspect(model)
    blank = mapper.class_manager.new_instance()

    cast: dict[str, Any] = {}
    for key, value in attributes.items():
        if key not in mapper.column_attrs:
            cast[key] = value
            continue
        column = mapper.column_attrs[key].columns[0]
        setattr(blank, key, coerce_value(_python_type(column), value))
        cast[key] = getattr(blank, key)
    return cast


def _python_type(column) -> type | None:
    try:
        return column.type.python_type
    except NotImplementedError:
        return None


def coerce_value(target: type | None, value: Any) -> Any:
    """
    Coerce `value` to `target`. Values that cannot be coerced are returned unchanged
    so the validator can report them instead of the cast step raising.
    """
    if value is None or target is None or isinstance(value, target):
        # bool is a subclass of int; an Integer column should still reject True/False at validation
        if target is int and isinstance(value, bool):
            return value
        return value

    try:
        if target is bool:
            return _to_bool(value)
        if target is int:
            if isinstance(value, str) and value.strip().lstrip("+-").isdigit():
                return int(value.strip())
            if isinstance(value, float) and value.is_integer():
                return int(value)
            return value
        if target is float:
            if isinstance(value, (int, Decimal)) and not isinstance(value, bool):
                return float(value)
            if isinstance(value, str):
                return float(value.strip())
            return value
        if target is Decimal:
            if isinstance(value, (int, float, str)) and not isinstance(value, bool):
                return Decimal(str(value).strip())
            return value
        if target is str:
            if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
                return str(value)
            return value
        if target is datetime and isinstance(value, str):
            return datetime.fromisoformat(value.strip())
        if target is date and isinstance(value, str):
            return date.fromisoformat(value.strip())
        if target is uuid.UUID and isinstance(value, str):
            return uuid.UUID(value.strip())
    except (ValueError, InvalidOperation):
        logger.debug("cast.uncoercible_value", extra={"target": target.__name__})
        return value

    return value


def _to_bool(value: Any) -> Any:
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return value
