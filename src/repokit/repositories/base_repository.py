"""
Base repository class providing common database operations.

Application repositories subclass `BaseRepository`, name their model and,
optionally, their validation rules:

    class PostRepository(BaseRepository[Post]):
        model = Post                      # or "blog.models.Post" / "Post"

        def rules(self, entity=None):
            return {"title": "required|string|max:120"}

    repo = PostRepository(db)
    await repo.order_by("created_at", "desc").with_("author").paginate(10)

Query scoping
-------------
Chainable methods (`scope_query`, `order_by`, `with_`, `has`, ...) only queue
scopes: callables `Select -> Select`. Every terminal operation builds a fresh
`select(model)`, folds the queued scopes over it in insertion order, runs it,
and then clears the queue (also when it raises). A later call never sees the
scopes of an earlier one.

Writes
------
`create`, `update` and `delete` cast input through the model's column types,
run the lifecycle hooks (see `hooks.py`), validate, and `flush`. They never
`commit`: the caller owns the transaction.
"""
import functools
import logging
import time
from typing import Any, Callable, Generic, Iterable, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import defer, load_only, selectinload

from repokit.config.settings import Settings, get_settings
from repokit.database.base import Base
from repokit.database.casting import cast_attributes, coerce_value
from repokit.database.inspection import (
    get_column_attribute,
    get_relationship,
    primary_key_attribute,
    resolve_model,
)
from repokit.database.soft_deletes import INCLUDE_TRASHED, SoftDeleteMixin
from repokit.exceptions.base import (
    InvalidFieldError,
    NotFoundError,
    RepositoryConfigurationError,
    RepositoryError,
    ValidationError,
)
from repokit.exceptions.mapper import db_error_handler, read_error_handler
from repokit.validation.rules import resolve_rule_set
from repokit.validation.validator import ValidationFactory
from .conditions import apply_conditions
from .hooks import RepositoryHooks, call_hook
from .pagination import Page, SimplePage, resolve_page

ModelType = TypeVar("ModelType")

Scope = Callable[[Select], Select]

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def resets_scope(method):
    """Clear the scope queue once the wrapped terminal operation finishes, successfully or not."""

    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        try:
            return await method(self, *args, **kwargs)
        finally:
            self.reset_scope()

    return wrapper


class BaseRepository(RepositoryHooks, Generic[ModelType]):
    """
    Generic repository for one mapped model, bound to one `AsyncSession`.

    Class attributes:
        model: the mapped class, a dotted import path, or a class name registered
            in `registry`. Resolved once per instance in `__init__`.
        registry: SQLAlchemy registry used to look up bare class names.
    """

    model: Any = None
    registry = Base.registry

    def __init__(self, db: AsyncSession, validation: ValidationFactory | None = None,
                 settings: Settings | None = None):
        """
        Args:
            db: the async session every operation runs in (usually injected per request).
            validation: factory used to build validators; a private one when omitted.
            settings: defaults to `get_settings()`.

        Raises:
            RepositoryConfigurationError: `model` is missing or is not a mapped class.
        """
        self.db = db
        self.validation = validation or ValidationFactory()
        self.settings = settings or get_settings()
        self._scopes: list[Scope] = []
        self.model = self.make_model()
        self.boot()

    def make_model(self) -> type:
        model_ref = type(self).model
        if model_ref is None:
            raise RepositoryConfigurationError(f"{type(self).__name__} must declare a `model`")
        return resolve_model(model_ref, self.registry)

    def rules(self, entity: Any = None) -> Any:
        """
        Validation rules: a mapping `{field: "rule|rule:arg"}` or a `BaseRules` subclass.
        `entity` is the row being updated, None on create. No rules by default.
        """
        return {}

    @property
    def model_name(self) -> str:
        return self.model.__name__

    # =================================================================================================================
    # Scope queue
    # =================================================================================================================

    def scope_query(self, scope: Scope) -> "BaseRepository[ModelType]":
        self._scopes.append(scope)
        return self

    def reset_scope(self) -> "BaseRepository[ModelType]":
        self._scopes = []
        return self

    def apply_scope(self, query: Select) -> Select:
        for scope in self._scopes:
            if callable(scope):
                query = scope(query)
        return query

    def _build_query(self, columns: Iterable[str] | None = None) -> Select:
        query = self.apply_scope(select(self.model))
        options = self._column_options(columns)
        if options:
            query = query.options(*options)
        return query

    def _column_options(self, columns: Iterable[str] | None) -> list:
        if columns is None:
            return []
        columns = list(columns)
        if not columns or columns == ["*"]:
            return []
        attrs = [get_column_attribute(self.model, c) for c in columns]
        return [load_only(*attrs)]

    # =================================================================================================================
    # Chainable scopes
    # =================================================================================================================

    def order_by(self, column: str, direction: str = "asc") -> "BaseRepository[ModelType]":
        attr = get_column_attribute(self.model, column)
        normalized = str(direction).lower()
        if normalized not in ("asc", "desc"):
            raise RepositoryError(
                f"Order direction must be 'asc' or 'desc', got '{direction}'", fields=[column], error_code="invalid_input"
            )
        clause = attr.desc() if normalized == "desc" else attr.asc()
        return self.scope_query(lambda q: q.order_by(clause))

    def with_(self, relations: str | Iterable[str]) -> "BaseRepository[ModelType]":
        """Eager-load relationships; "author.profile" loads nested relations."""
        if isinstance(relations, str):
            relations = [relations]
        options = [self._eager_load(path) for path in relations]
        return self.scope_query(lambda q: q.options(*options))

    def _eager_load(self, path: str):
        option = None
        current = self.model
        for name in path.split("."):
            prop = get_relationship(current, name)
            attr = getattr(current, name)
            option = selectinload(attr) if option is None else option.selectinload(attr)
            current = prop.mapper.class_
        return option

    def has(self, relation: str) -> "BaseRepository[ModelType]":
        return self.scope_query(lambda q: q.where(self._relation_exists(relation)))

    def where_has(self, relation: str, callback: Callable[[type], Any]) -> "BaseRepository[ModelType]":
        """`callback(RelatedModel)` returns the criterion related rows must satisfy."""
        prop = get_relationship(self.model, relation)
        criterion = callback(prop.mapper.class_)
        return self.scope_query(lambda q: q.where(self._relation_exists(relation, criterion)))

    def _relation_exists(self, relation: str, criterion: Any = None):
        prop = get_relationship(self.model, relation)
        attr = getattr(self.model, relation)
        args = () if criterion is None else (criterion,)
        return attr.any(*args) if prop.uselist else attr.has(*args)

    def with_count(self, relations: str | Iterable[str]) -> "BaseRepository[ModelType]":
        """Adds `<relation>_count` to each returned entity."""
        if isinstance(relations, str):
            relations = [relations]
        labels = [self._count_subquery(name).label(f"{name}_count") for name in relations]
        return self.scope_query(lambda q: q.add_columns(*labels))

    def _count_subquery(self, relation: str):
        prop = get_relationship(self.model, relation)
        target = prop.mapper.class_
        if prop.secondary is not None:
            query = (
                select(func.count())
                .select_from(prop.secondary)
                .join(target, prop.secondaryjoin)
                .where(prop.primaryjoin)
            )
        else:
            query = select(func.count()).select_from(target).where(prop.primaryjoin)
        if issubclass(target, SoftDeleteMixin):
            query = query.where(target.deleted_at.is_(None))
        return query.scalar_subquery()

    def hidden(self, fields: Iterable[str]) -> "BaseRepository[ModelType]":
        """Defer the listed columns; reading them on a returned entity raises."""
        options = [defer(get_column_attribute(self.model, f), raiseload=True) for f in fields]
        return self.scope_query(lambda q: q.options(*options))

    def visible(self, fields: Iterable[str]) -> "BaseRepository[ModelType]":
        """Load only the listed columns (the primary key is always loaded)."""
        attrs = [get_column_attribute(self.model, f) for f in fields]
        return self.scope_query(lambda q: q.options(load_only(*attrs, raiseload=True)))

    # =================================================================================================================
    # Execution helpers
    # =================================================================================================================

    async def _fetch(self, query: Select) -> list[ModelType]:
        """
        Run `query` and return the entities. Extra labeled columns (from `with_count`)
        are set as plain attributes on their entity.
        """
        async with read_error_handler(self.model_name):
            result = await self.db.execute(query)
            rows = result.unique().all()

        entities = []
        for row in rows:
            entity = row[0]
            for key, value in zip(row._fields[1:], row[1:]):
                setattr(entity, key, value)
            entities.append(entity)
        return entities

    async def _count(self, query: Select) -> int:
        counted = query.order_by(None)
        if issubclass(self.model, SoftDeleteMixin) and not counted.get_execution_options().get(INCLUDE_TRASHED, False):
            # loader criteria do not reach a subquery, so filter the column directly
            counted = counted.where(self.model.deleted_at.is_(None))
        stmt = select(func.count()).select_from(counted.subquery()).execution_options(**{INCLUDE_TRASHED: True})
        async with read_error_handler(self.model_name):
            result = await self.db.execute(stmt)
        return int(result.scalar_one())

    async def _find_or_fail(self, query: Select, id: Any, operation: str) -> ModelType:
        pk = primary_key_attribute(self.model)
        entities = await self._fetch(query.where(pk == id))
        if not entities:
            logger.info(
                "repo.find.not_found",
                extra={"model": self.model_name, "operation": operation, "id": str(id)},
            )
            raise NotFoundError(f"{self.model_name} not found", fields=[pk.key])
        return entities[0]

    def _cast(self, attributes: dict[str, Any], operation: str) -> dict[str, Any]:
        try:
            return cast_attributes(self.model, dict(attributes))
        except InvalidFieldError as exc:
            logger.info(
                f"repo.{operation}.invalid_fields",
                extra={"model": self.model_name, "operation": operation, "invalid_fields": exc.fields},
            )
            raise

    def passes_or_fails_validation(self, attributes: dict[str, Any], entity: Any = None) -> None:
        """
        Raises:
            ValidationError: the attributes fail `rules(entity)`.
        """
        rules, messages = resolve_rule_set(self.rules(entity))
        if not rules:
            return
        validator = self.validation.make(attributes, rules, messages)
        if validator.fails():
            errors = validator.errors()
            logger.info(
                "repo.validation.failed",
                extra={"model": self.model_name, "invalid_fields": sorted(errors)},
            )
            raise ValidationError(errors)

    @staticmethod
    def _fill(entity: Any, attributes: dict[str, Any]) -> None:
        for key, value in attributes.items():
            setattr(entity, key, value)

    # =================================================================================================================
    # Read Operations
    # =================================================================================================================

    @resets_scope
    async def all(self, columns: Iterable[str] | None = None) -> list[ModelType]:
        entities = await self._fetch(self._build_query(columns))
        logger.debug("repo.all.success", extra={"model": self.model_name, "count": len(entities)})
        return entities

    @resets_scope
    async def find(self, id: Any, columns: Iterable[str] | None = None) -> ModelType:
        """
        Raises:
            NotFoundError: no row with this primary key passes the queued scopes.
        """
        return await self._find_or_fail(self._build_query(columns), id, "find")

    @resets_scope
    async def find_by_field(self, field: str, value: Any, columns: Iterable[str] | None = None) -> list[ModelType]:
        attr = get_column_attribute(self.model, field)
        return await self._fetch(self._build_query(columns).where(attr == value))

    @resets_scope
    async def find_where(self, where: dict[str, Any], columns: Iterable[str] | None = None) -> list[ModelType]:
        """
        `where` maps fields to values (equality) or labels to (field, operator, value):

            await repo.find_where({"status": "published", "age": ("age", ">=", 18)})
        """
        query = apply_conditions(self._build_query(columns), self.model, where)
        return await self._fetch(query)

    @resets_scope
    async def find_where_in(self, field: str, values: Iterable[Any],
                            columns: Iterable[str] | None = None) -> list[ModelType]:
        attr = get_column_attribute(self.model, field)
        return await self._fetch(self._build_query(columns).where(attr.in_(list(values))))

    @resets_scope
    async def find_where_not_in(self, field: str, values: Iterable[Any],
                                columns: Iterable[str] | None = None) -> list[ModelType]:
        attr = get_column_attribute(self.model, field)
        return await self._fetch(self._build_query(columns).where(attr.not_in(list(values))))

    @resets_scope
    async def pluck(self, column: str, key: str | None = None) -> list[Any] | dict[Any, Any]:
        """
        Values of one column, or a dict `{key_value: column_value}` when `key` is given.
        """
        get_column_attribute(self.model, column)
        if key is not None:
            get_column_attribute(self.model, key)
        entities = await self._fetch(self._build_query())
        if key is None:
            return [getattr(e, column) for e in entities]
        return {getattr(e, key): getattr(e, column) for e in entities}

    lists = pluck

    @resets_scope
    async def paginate(self, limit: int | None = None, columns: Iterable[str] | None = None,
                       page: int | None = None) -> Page:
        limit = limit or self.settings.PAGINATION_DEFAULT_LIMIT
        page_param = self.settings.PAGINATION_PAGE_PARAM
        current = resolve_page(page, page_param)

        query = self._build_query(columns)
        total = await self._count(query)
        items = await self._fetch(query.limit(limit).offset((current - 1) * limit))

        logger.debug(
            "repo.paginate.success",
            extra={"model": self.model_name, "page": current, "per_page": limit, "total": total},
        )
        return Page(
            items=items,
            total=total,
            per_page=limit,
            current_page=current,
            has_more_pages=current * limit < total,
            page_param=page_param,
        )

    @resets_scope
    async def simple_paginate(self, limit: int | None = None, columns: Iterable[str] | None = None,
                              page: int | None = None) -> SimplePage:
        limit = limit or self.settings.PAGINATION_DEFAULT_LIMIT
        page_param = self.settings.PAGINATION_PAGE_PARAM
        current = resolve_page(page, page_param)

        # one extra row tells whether another page exists
        query = self._build_query(columns).limit(limit + 1).offset((current - 1) * limit)
        items = await self._fetch(query)

        return SimplePage(
            items=items[:limit],
            per_page=limit,
            current_page=current,
            has_more_pages=len(items) > limit,
            page_param=page_param,
        )

    # =================================================================================================================
    # Create / Update / Delete
    # =================================================================================================================

    @resets_scope
    async def create(self, attributes: dict[str, Any]) -> ModelType:
        """
        cast -> before_create -> validate -> add/flush/refresh -> after_create

        Raises:
            InvalidFieldError: unknown attribute names.
            ValidationError: the attributes fail `rules()`; nothing is added to the session.
            DuplicateError / RepositoryError: the flush failed (session rolled back).
        """
        logger.debug(
            "repo.create.start",
            extra={"model": self.model_name, "operation": "create", "provided_keys": sorted(attributes)},
        )
        attributes = self._cast(attributes, "create")
        await call_hook(self.before_create, attributes)
        self.passes_or_fails_validation(attributes)

        start = time.perf_counter()
        async with db_error_handler(self.db, self.model_name):
            entity = await self.db.run_sync(lambda _: self.model(**attributes))
            self.db.add(entity)
            await self.db.flush()
            await self.db.refresh(entity)

        logger.info(
            "repo.create.success",
            extra={
                "model": self.model_name,
                "operation": "create",
                "id": str(getattr(entity, primary_key_attribute(self.model).key)),
                "duration_ms": _elapsed_ms(start),
            },
        )
        await call_hook(self.after_create, entity, attributes)
        return entity

    @resets_scope
    async def update(self, attributes: dict[str, Any], id: Any) -> ModelType:
        """
        cast -> lookup (scoped) -> before_update -> validate -> fill/flush/refresh -> after_update

        Raises:
            NotFoundError: before any hook runs.
            ValidationError: the attributes fail `rules(entity)`.
        """
        logger.debug(
            "repo.update.start",
            extra={"model": self.model_name, "operation": "update", "id": str(id), "provided_keys": sorted(attributes)},
        )
        attributes = self._cast(attributes, "update")
        entity = await self._find_or_fail(self._build_query(), id, "update")

        await call_hook(self.before_update, entity, attributes)
        self.passes_or_fails_validation(attributes, entity)

        start = time.perf_counter()
        async with db_error_handler(self.db, self.model_name):
            await self.db.run_sync(lambda _: self._fill(entity, attributes))
            await self.db.flush()
            await self.db.refresh(entity)

        logger.info(
            "repo.update.success",
            extra={
                "model": self.model_name,
                "operation": "update",
                "id": str(id),
                "updated_keys": sorted(attributes),
                "duration_ms": _elapsed_ms(start),
            },
        )
        await call_hook(self.after_update, entity, attributes)
        return entity

    @resets_scope
    async def delete(self, id: Any) -> bool:
        """
        lookup (scoped) -> before_delete -> delete/flush -> after_delete(entity, True)
        """
        entity = await self._find_or_fail(self._build_query(), id, "delete")
        await call_hook(self.before_delete, entity)

        start = time.perf_counter()
        async with db_error_handler(self.db, self.model_name):
            await self.db.delete(entity)
            await self.db.flush()

        logger.info(
            "repo.delete.success",
            extra={"model": self.model_name, "operation": "delete", "id": str(id), "duration_ms": _elapsed_ms(start)},
        )
        await call_hook(self.after_delete, entity, True)
        return True

    # =================================================================================================================
    # Relations
    # =================================================================================================================

    @resets_scope
    async def sync(self, id: Any, relation: str, ids: Iterable[Any], detaching: bool = True) -> dict[str, list]:
        """
        Make the `relation` collection of entity `id` contain exactly the rows `ids`
        (or at least them, when `detaching` is False).

        Returns:
            {"attached": [...], "detached": [...], "updated": []}

        Raises:
            NotFoundError: the entity, or one of the related ids, does not exist.
        """
        prop = get_relationship(self.model, relation)
        if not prop.uselist:
            raise RepositoryError(
                f"{self.model_name}.{relation} is not a collection", fields=[relation], error_code="invalid_input"
            )
        target = prop.mapper.class_
        target_pk = primary_key_attribute(target)
        target_type = target_pk.property.columns[0].type.python_type

        query = (
            self._build_query()
            .options(selectinload(getattr(self.model, relation)))
            .execution_options(populate_existing=True)
        )
        entity = await self._find_or_fail(query, id, "sync")
        collection = getattr(entity, relation)

        wanted = []
        for raw in ids:
            value = coerce_value(target_type, raw)
            if value not in wanted:
                wanted.append(value)

        current = {getattr(obj, target_pk.key): obj for obj in collection}
        to_attach = [value for value in wanted if value not in current]
        to_detach = [key for key in current if key not in wanted] if detaching else []

        related = {}
        if to_attach:
            related = {
                getattr(obj, target_pk.key): obj
                for obj in await self._fetch_related(target, target_pk.in_(to_attach))
            }
            missing = [value for value in to_attach if value not in related]
            if missing:
                raise NotFoundError(
                    f"{target.__name__} not found: {', '.join(str(m) for m in missing)}", fields=[relation]
                )

        start = time.perf_counter()
        async with db_error_handler(self.db, self.model_name):
            for key in to_detach:
                collection.remove(current[key])
            for value in to_attach:
                if isinstance(collection, set):
                    collection.add(related[value])
                else:
                    collection.append(related[value])
            await self.db.flush()

        logger.info(
            "repo.sync.success",
            extra={
                "model": self.model_name,
                "operation": "sync",
                "id": str(id),
                "relation": relation,
                "attached": len(to_attach),
                "detached": len(to_detach),
                "duration_ms": _elapsed_ms(start),
            },
        )
        return {"attached": to_attach, "detached": to_detach, "updated": []}

    async def sync_without_detaching(self, id: Any, relation: str, ids: Iterable[Any]) -> dict[str, list]:
        return await self.sync(id, relation, ids, detaching=False)

    async def _fetch_related(self, target: type, criterion: Any) -> list:
        async with read_error_handler(target.__name__):
            result = await self.db.execute(select(target).where(criterion))
        return list(result.scalars().all())
