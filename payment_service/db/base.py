"""Базовый класс декларативных моделей."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Общий `MetaData` для моделей и Alembic."""
