"""Declarative base shared by every notifyhub model and the Alembic env."""
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass
