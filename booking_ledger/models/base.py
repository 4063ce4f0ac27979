from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for all ledger ORM models.

    Alembic autogeneration and the test fixtures both build the schema from
    Base.metadata, so every model module must be imported through
    booking_ledger.models.registry before the metadata is used.
    """

    pass
