"""
Declarative base for models managed by repokit repositories.

Applications may use their own `DeclarativeBase`; repositories only need a mapped
class. This one adds a constraint naming convention so Alembic migrations and
IntegrityError messages carry stable constraint names.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


Base.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
}
