"""
Translate SQLAlchemy errors raised while flushing into repository errors.

Two levels:
  - classification: decide which kind of constraint an `IntegrityError` violated,
    from the Postgres SQLSTATE when the driver exposes one, else from the message
    text (SQLite, MySQL).
  - mapping: raise the public error (`DuplicateError` or `RepositoryError`) with the
    offending columns attached when they can be parsed out of the message.

Repositories never catch `IntegrityError` themselves; they wrap the flush in
`db_error_handler` instead:

    async with db_error_handler(self.db, self.model_name):
        self.db.add(entity)
        await self.db.flush()
"""
import re
import logging
from contextlib import asynccontextmanager
from enum import Enum

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .base import DuplicateError, RepositoryError

logger = logging.getLogger(__name__)


class ConstraintKind(str, Enum):
    UNIQUE = "unique"
    NOT_NULL = "not_null"
    FOREIGN_KEY = "foreign_key"
    CHECK = "check"
    UNKNOWN = "unknown"


# https://www.postgresql.org/docs/current/errcodes-appendix.html
PGCODE_TO_KIND = {
    "23505": ConstraintKind.UNIQUE,
    "23502": ConstraintKind.NOT_NULL,
    "23503": ConstraintKind.FOREIGN_KEY,
    "23514": ConstraintKind.CHECK,
}

MESSAGE_KEYWORDS = (
    (ConstraintKind.UNIQUE, ("unique constraint", "unique failed", "unique violation", "duplicate")),
    (ConstraintKind.NOT_NULL, ("not null constraint", "not null", "null value in column")),
    (ConstraintKind.FOREIGN_KEY, ("foreign key constraint", "foreign key", "is not present in table")),
    (ConstraintKind.CHECK, ("check constraint", "check failed")),
)


# =================================================================================================================
# Classification
# =================================================================================================================

def classify_integrity_error(exc: IntegrityError) -> tuple[ConstraintKind, str | None]:
    """
    Return (kind, constraint_name). The constraint name is only known for Postgres.
    """
    orig = exc.orig
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if pgcode:
        diag = getattr(orig, "diag", None)
        constraint_name = getattr(diag, "constraint_name", None) if diag else None
        kind = PGCODE_TO_KIND.get(pgcode, ConstraintKind.UNKNOWN)
        logger.debug("mapper.pg_diagnostic", extra={"pgcode": pgcode, "constraint_name": constraint_name})
        return kind, constraint_name

    normalized = str(orig).lower()
    for kind, keywords in MESSAGE_KEYWORDS:
        if any(keyword in normalized for keyword in keywords):
            return kind, None

    logger.warning("mapper.unclassified_integrity_error", extra={"message_snippet": normalized[:200]})
    return ConstraintKind.UNKNOWN, None


def extract_columns(exc: IntegrityError) -> list[str] | None:
    """
    Best-effort extraction of column names from driver messages:
      - Postgres: 'null value in column "title"' / 'Key (email, slug)=(...) already exists'
      - SQLite:   'UNIQUE constraint failed: posts.slug, posts.author_id'
      - MySQL:    "Duplicate entry 'x' for key 'posts.slug'"
    """
    msg = str(exc.orig) if exc.orig is not None else str(exc)

    m = re.search(r'null value in column "(?P<col>[^"]+)"', msg, flags=re.IGNORECASE)
    if m:
        return [m.group("col")]

    m = re.search(r'key \((?P<cols>[^)]+)\)=', msg, flags=re.IGNORECASE)
    if m:
        return [c.strip().strip('"') for c in m.group("cols").split(",")]

    m = re.search(r'(?:UNIQUE|NOT NULL) constraint failed: (?P<cols>.+)$', msg, flags=re.IGNORECASE)
    if m:
        return [c.split(".")[-1].strip() for c in re.split(r",\s*", m.group("cols"))]

    m = re.search(r"Duplicate entry .* for key '?(?P<key>[^']+)'?", msg, flags=re.IGNORECASE)
    if m:
        return [m.group("key").split(".")[-1]]

    return None


# =================================================================================================================
# Mapping
# =================================================================================================================

def raise_mapped_integrity_error(exc: IntegrityError, model_name: str | None = None) -> None:
    """
    Raise the public error matching `exc`. Raw driver text only ever reaches DEBUG logs.
    """
    kind, constraint_name = classify_integrity_error(exc)
    columns = extract_columns(exc)
    subject = model_name or "Record"
    context = {"model": subject, "fields": columns, "constraint": constraint_name}

    if kind is ConstraintKind.UNIQUE:
        logger.info("mapper.duplicate_detected", extra=context)
        if columns:
            raise DuplicateError(f"{subject} already exists for field(s): {', '.join(columns)}",
                                 fields=columns, constraint=constraint_name) from exc
        raise DuplicateError(f"{subject} already exists", constraint=constraint_name) from exc

    if kind is ConstraintKind.NOT_NULL:
        logger.info("mapper.not_null_violation", extra=context)
        detail = f": {', '.join(columns)}" if columns else ""
        raise RepositoryError(f"Missing required field(s){detail} for {subject}",
                              fields=columns, constraint=constraint_name) from exc

    if kind is ConstraintKind.FOREIGN_KEY:
        logger.info("mapper.foreign_key_violation", extra=context)
        raise RepositoryError(f"{subject} references a record that does not exist",
                              fields=columns, constraint=constraint_name) from exc

    if kind is ConstraintKind.CHECK:
        logger.debug("mapper.check_constraint_failure", extra={**context, "raw": str(exc.orig)})
        raise RepositoryError(f"{subject} business rule violated (check constraint).",
                              constraint=constraint_name) from exc

    logger.debug("mapper.unknown_integrity_raw", extra={"model": subject, "raw": str(exc.orig)})
    raise RepositoryError(f"{subject} database integrity error.") from exc


# -----------------------
# Async context manager to DRY error handling in repositories
# -----------------------
@asynccontextmanager
async def db_error_handler(db: AsyncSession, model_name: str | None = None):
    """
    Roll the session back and raise a repository error when the wrapped block fails.

    RepositoryError raised inside the block passes through untouched; any other
    exception is logged with its stack and converted to a generic RepositoryError.
    """
    try:
        yield
    except RepositoryError:
        raise
    except IntegrityError as exc:
        await _safe_rollback(db, model_name)
        raise_mapped_integrity_error(exc, model_name)
    except Exception as exc:
        await _safe_rollback(db, model_name)
        logger.exception("mapper.unexpected_db_error", extra={"model": model_name})
        raise RepositoryError(f"Failed to operate on {model_name or 'database'}") from exc


async def _safe_rollback(db: AsyncSession, model_name: str | None) -> None:
    try:
        await db.rollback()
    except Exception:
        logger.exception("mapper.rollback_failed", extra={"model": model_name})


@asynccontextmanager
async def read_error_handler(model_name: str | None = None):
    """
    Wrap a SELECT round trip. Unlike `db_error_handler` the session is not rolled
    back: a failed read leaves the caller's pending writes alone.
    """
    try:
        yield
    except RepositoryError:
        raise
    except Exception as exc:
        logger.exception("mapper.unexpected_read_error", extra={"model": model_name})
        raise RepositoryError(f"Failed to read {model_name or 'records'}") from exc
