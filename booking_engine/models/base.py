from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Models are declared through the ORM but queried with SQLAlchemy Core
    (``insert(Model)``, ``select(Model.__table__)``) on plain connections.
    """

    pass
