"""
Mapper introspection helpers shared by the repository, the cast step and the
condition builder.

Everything here works on the mapped *class*, never on instances, and relies only
on SQLAlchemy's public inspection API (`sqlalchemy.inspect`).
"""
import importlib
from typing import Any

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import NoInspectionAvailable
from sqlalchemy.orm import Mapper, RelationshipProperty, registry as orm_registry

from repokit.exceptions.base import InvalidFieldError, RepositoryConfigurationError


def resolve_model(model_ref: Any, registry: orm_registry | None = None) -> type:
    """
    Turn a model reference into a mapped class.

    Accepted references:
      - the mapped class itself: `Post`
      - a dotted import path: `"blog.models.Post"` or `"blog.models:Post"`
      - a bare class name, looked up among the mappers of `registry`: `"Post"`

    Raises:
        RepositoryConfigurationError: if the reference cannot be imported/found or
            is not a mapped SQLAlchemy class.
    """
    candidate = model_ref
    if isinstance(model_ref, str):
        candidate = _import_model(model_ref, registry)

    if not isinstance(candidate, type):
        raise RepositoryConfigurationError(f"Model {model_ref!r} must be a class, got {type(candidate).__name__}")

    try:
        mapper = sa_inspect(candidate)
    except NoInspectionAvailable:
        mapper = None
    if not isinstance(mapper, Mapper):
        raise RepositoryConfigurationError(f"Class {candidate.__name__} must be a mapped SQLAlchemy model")
    return candidate


def _import_model(path: str, registry: orm_registry | None) -> Any:
    module_name, sep, attr = path.replace(":", ".").rpartition(".")
    if not sep:
        if registry is not None:
            for mapper in registry.mappers:
                if mapper.class_.__name__ == path:
                    return mapper.class_
        raise RepositoryConfigurationError(f"Model {path!r} is not registered")

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise RepositoryConfigurationError(f"Cannot import module {module_name!r} for model {path!r}") from exc
    try:
        return getattr(module, attr)
    except AttributeError as exc:
        raise RepositoryConfigurationError(f"Module {module_name!r} has no model {attr!r}") from exc


def column_attribute_names(model) -> list[str]:
    """Attribute keys of the mapped columns (what callers pass as field names)."""
    return [attr.key for attr in sa_inspect(model).column_attrs]


def find_unknown_model_kwargs(model, kwargs: dict) -> list[str]:
    """
    Return the keys of `kwargs` that are not mapped attributes (columns or relationships).
    """
    allowed = {attr.key for attr in sa_inspect(model).attrs}
    return [k for k in kwargs.keys() if k not in allowed]


def get_column_attribute(model, field: str):
    """
    Return the instrumented column attribute `model.<field>`.

    Raises:
        InvalidFieldError: if `field` is not a mapped column.
    """
    if field not in sa_inspect(model).column_attrs:
        raise InvalidFieldError(f"{model.__name__} has no field '{field}'", fields=[field])
    return getattr(model, field)


def primary_key_attribute(model):
    """The instrumented attribute of the single-column primary key."""
    mapper = sa_inspect(model)
    if len(mapper.primary_key) != 1:
        raise RepositoryConfigurationError(
            f"{model.__name__} must have a single-column primary key to be used with a repository"
        )
    return getattr(model, mapper.get_property_by_column(mapper.primary_key[0]).key)


def get_relationship(model, name: str) -> RelationshipProperty:
    """
    Raises:
        InvalidFieldError: if `name` is not a relationship of `model`.
    """
    relationships = sa_inspect(model).relationships
    if name not in relationships:
        raise InvalidFieldError(f"{model.__name__} has no relationship '{name}'", fields=[name])
    return relationships[name]
