"""Durable storage for the destination registry.

Backends exchange raw records: the JSON file backend returns whatever the file
holds (current or legacy shape); the SQLAlchemy backend always returns
current-shape records. Shape decoding lives in the registry.
"""

from __future__ import annotations

import re
from typing import Any

from loguru import logger
from sqlalchemy import BigInteger, Column, MetaData, String, Table, create_engine, delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .core import read_json, write_json

_INT_ID_RE = re.compile(r"^-?\d+$")


class RegistryIOError(Exception):
    pass


class BaseRegistryStorage:
    def read(self) -> list[Any] | None:  # pragma: no cover - interface
        """Return stored records, or None when nothing has been stored yet."""
        raise NotImplementedError

    def write(self, records: list[dict[str, Any]]) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class FileRegistryStorage(BaseRegistryStorage):
    def __init__(self, path: str):
        self.path = path

    def read(self) -> list[Any] | None:
        try:
            data = read_json(self.path, default=None)
        except (OSError, ValueError) as e:
            raise RegistryIOError(f"cannot read {self.path}: {e}") from e
        if data is None:
            return None
        if not isinstance(data, list):
            raise RegistryIOError(f"{self.path} does not hold a JSON array")
        return data

    def write(self, records: list[dict[str, Any]]) -> None:
        try:
            write_json(self.path, records)
        except (OSError, TypeError, ValueError) as e:
            raise RegistryIOError(f"cannot write {self.path}: {e}") from e

    def __repr__(self) -> str:
        return f"FileRegistryStorage({self.path!r})"


def _coerce_chat_id(raw: str) -> int | str:
    return int(raw) if _INT_ID_RE.match(raw) else raw


class SARegistryStorage(BaseRegistryStorage):
    """SQLAlchemy-based store (PostgreSQL in production)."""

    def __init__(self, database_url: str):
        self.database_url = self._normalize_url(database_url)
        self.engine: Engine = create_engine(self.database_url, future=True, pool_pre_ping=True)
        self.meta = MetaData()
        self.destinations = Table(
            "destinations",
            self.meta,
            Column("chat_id", String, primary_key=True),
            Column("topic_id", BigInteger, nullable=True),
        )
        self.meta.create_all(self.engine, tables=[self.destinations])

    @staticmethod
    def _normalize_url(url: str) -> str:
        # If driver not specified, default to pg8000 to avoid psycopg dependency
        if url.startswith("postgres://"):
            url = "postgresql://" + url[len("postgres://") :]
        if url.startswith("postgresql://") and "+" not in url.split("://", 1)[1].split(":", 1)[0]:
            return url.replace("postgresql://", "postgresql+pg8000://", 1)
        return url

    def read(self) -> list[Any] | None:
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(
                    select(self.destinations.c.chat_id, self.destinations.c.topic_id)
                ).fetchall()
        except SQLAlchemyError as e:
            raise RegistryIOError(f"cannot read destinations table: {e}") from e
        return [{"chatId": _coerce_chat_id(r[0]), "topicId": r[1]} for r in rows]

    def write(self, records: list[dict[str, Any]]) -> None:
        rows = [{"chat_id": str(r["chatId"]), "topic_id": r["topicId"]} for r in records]
        try:
            with self.engine.begin() as conn:
                conn.execute(delete(self.destinations))
                if rows:
                    conn.execute(self.destinations.insert(), rows)
        except SQLAlchemyError as e:
            raise RegistryIOError(f"cannot write destinations table: {e}") from e

    def __repr__(self) -> str:
        return f"SARegistryStorage({self.engine.url.render_as_string(hide_password=True)!r})"


def get_storage(database_url: str | None, path: str) -> BaseRegistryStorage:
    if database_url:
        try:
            return SARegistryStorage(database_url)
        except (SQLAlchemyError, ImportError):
            logger.exception("Database storage (SQLAlchemy) unavailable; using file {}", path)
    return FileRegistryStorage(path)
