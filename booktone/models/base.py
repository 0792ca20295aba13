"""
Declarative base shared by every table.

Table names are derived from class names (BatchJobDetail ->
batch_job_details) unless a model sets __tablename__ itself.
"""
import re
from datetime import datetime, timezone

from sqlalchemy import Integer, DateTime
from sqlalchemy.ext.declarative import declared_attr
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):

    @declared_attr.directive
    def __tablename__(cls) -> str:
        return _CAMEL_BOUNDARY.sub("_", cls.__name__).lower() + "s"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True, autoincrement=True)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(id={self.id})>"


class CreatedAtMixin:
    """
    Creation timestamp.

    Rows in this service are append-only or mutated only by the batch worker,
    so there is no updated_at.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False,
        index=True
    )
