import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from repokit.exceptions.base import (
    DuplicateError,
    InvalidFieldError,
    NotFoundError,
    RepositoryConfigurationError,
    RepositoryError,
    ValidationError,
)
from repokit.exceptions.mapper import (
    ConstraintKind,
    classify_integrity_error,
    db_error_handler,
    extract_columns,
    raise_mapped_integrity_error,
)


class FakePgError(Exception):
    """Stands in for a psycopg/asyncpg error carrying a SQLSTATE."""

    def __init__(self, message, pgcode, constraint_name=None):
        super().__init__(message)
        self.pgcode = pgcode
        self.diag = type("Diag", (), {"constraint_name": constraint_name})()


def integrity_error(orig: Exception) -> IntegrityError:
    return IntegrityError("INSERT INTO posts ...", {}, orig)


class TestRepositoryErrors:

    @pytest.mark.parametrize(
        "exc, status, code",
        [
            (NotFoundError(), 404, "not_found"),
            (DuplicateError("Post already exists"), 409, "duplicate"),
            (InvalidFieldError("Post has no field 'x'"), 422, "invalid_field"),
            (ValidationError({"title": ["The title field is required."]}), 422, "invalid_input"),
            (RepositoryConfigurationError("Model 'Nope' is not registered"), 500, "configuration"),
            (RepositoryError("Something broke"), 400, None),
            (RepositoryError("Odd", error_code="teapot"), 400, "teapot"),
        ],
    )
    def test_status_and_code(self, exc, status, code):
        assert exc.http_status() == status
        assert exc.error_code == code

    def test_default_messages(self):
        assert NotFoundError().message == "Not found"
        assert ValidationError({}).message == "The given data was invalid."

    def test_str_includes_details_for_logs(self):
        exc = DuplicateError("Author already exists", fields=["email"], constraint="uq_authors_email")
        assert str(exc) == "Author already exists (fields: email; constraint: uq_authors_email; code: duplicate)"
        assert str(RepositoryError("Plain")) == "Plain"

    def test_payload_leaves_constraint_out(self):
        exc = DuplicateError("Author already exists", fields=["email"], constraint="uq_authors_email")
        assert exc.to_payload() == {"detail": "Author already exists", "code": "duplicate", "fields": ["email"]}

    def test_validation_payload_and_sorted_fields(self):
        exc = ValidationError({"title": ["A"], "body": ["B"]})
        assert exc.fields == ["body", "title"]
        assert exc.to_payload()["errors"] == {"title": ["A"], "body": ["B"]}


class TestIntegrityClassification:

    @pytest.mark.parametrize(
        "message, kind, columns",
        [
            ("UNIQUE constraint failed: authors.email", ConstraintKind.UNIQUE, ["email"]),
            ("UNIQUE constraint failed: posts.slug, posts.author_id", ConstraintKind.UNIQUE, ["slug", "author_id"]),
            ("NOT NULL constraint failed: posts.title", ConstraintKind.NOT_NULL, ["title"]),
            ("FOREIGN KEY constraint failed", ConstraintKind.FOREIGN_KEY, None),
            ("CHECK constraint failed: views_positive", ConstraintKind.CHECK, None),
            ("Duplicate entry 'ada' for key 'authors.email'", ConstraintKind.UNIQUE, ["email"]),
            ("something nobody expected", ConstraintKind.UNKNOWN, None),
        ],
    )
    def test_message_based(self, message, kind, columns):
        exc = integrity_error(Exception(message))
        assert classify_integrity_error(exc) == (kind, None)
        assert extract_columns(exc) == columns

    def test_postgres_sqlstate_wins(self):
        orig = FakePgError(
            'duplicate key value violates unique constraint "uq_authors_email"\n'
            "DETAIL:  Key (email)=(ada@example.com) already exists.",
            pgcode="23505",
            constraint_name="uq_authors_email",
        )
        exc = integrity_error(orig)

        assert classify_integrity_error(exc) == (ConstraintKind.UNIQUE, "uq_authors_email")
        assert extract_columns(exc) == ["email"]

    @pytest.mark.parametrize(
        "message, expected",
        [
            ("UNIQUE constraint failed: authors.email", DuplicateError),
            ("NOT NULL constraint failed: posts.title", RepositoryError),
            ("FOREIGN KEY constraint failed", RepositoryError),
        ],
    )
    def test_mapped_exception_types(self, message, expected):
        with pytest.raises(expected) as exc_info:
            raise_mapped_integrity_error(integrity_error(Exception(message)), "Post")
        assert type(exc_info.value) is expected
        assert isinstance(exc_info.value.__cause__, IntegrityError)


class FakeSession:
    def __init__(self):
        self.rolled_back = False

    async def rollback(self):
        self.rolled_back = True


@pytest.mark.asyncio
class TestDbErrorHandler:

    async def test_integrity_error_rolls_back_and_maps(self):
        db = FakeSession()
        with pytest.raises(DuplicateError) as exc_info:
            async with db_error_handler(db, "Author"):
                raise integrity_error(Exception("UNIQUE constraint failed: authors.email"))

        assert db.rolled_back
        assert exc_info.value.fields == ["email"]

    async def test_driver_error_becomes_generic_repository_error(self):
        db = FakeSession()
        with pytest.raises(RepositoryError, match="Failed to operate on Author"):
            async with db_error_handler(db, "Author"):
                raise OperationalError("SELECT 1", {}, Exception("database is locked"))
        assert db.rolled_back

    async def test_repository_errors_pass_through_without_rollback(self):
        db = FakeSession()
        with pytest.raises(NotFoundError):
            async with db_error_handler(db, "Author"):
                raise NotFoundError("Author not found")
        assert not db.rolled_back
