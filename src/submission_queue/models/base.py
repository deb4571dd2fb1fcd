"""Declarative base shared by all queue models."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass
