"""Guarded Alembic operations with explicit table/index existence checks."""

from __future__ import annotations

from typing import Any

import sqlalchemy as sa
from alembic import op


def table_exists(*, table_name: str, schema: str | None = None) -> bool:
  """Return True when a table exists in the target schema."""
  return sa.inspect(op.get_bind()).has_table(table_name, schema=schema)


def index_exists(*, table_name: str, index_name: str, schema: str | None = None) -> bool:
  """Return True when the named index exists on the table."""
  indexes = sa.inspect(op.get_bind()).get_indexes(table_name, schema=schema)
  return any(index["name"] == index_name for index in indexes)


def guarded_create_table(table_name: str, *args: Any, **kwargs: Any) -> None:
  """Create a table only when it does not already exist."""
  if table_exists(table_name=table_name, schema=kwargs.get("schema")):
    return
  op.create_table(table_name, *args, **kwargs)


def guarded_drop_table(table_name: str, *args: Any, **kwargs: Any) -> None:
  """Drop a table only when it exists."""
  if not table_exists(table_name=table_name, schema=kwargs.get("schema")):
    return
  op.drop_table(table_name, *args, **kwargs)


def guarded_create_index(index_name: str, table_name: str, *args: Any, **kwargs: Any) -> None:
  """Create an index only when the table exists and the index is missing."""
  schema = kwargs.get("schema")
  if not table_exists(table_name=table_name, schema=schema):
    return
  if index_exists(table_name=table_name, index_name=index_name, schema=schema):
    return
  op.create_index(index_name, table_name, *args, **kwargs)


def guarded_drop_index(index_name: str, *args: Any, **kwargs: Any) -> None:
  """Drop an index only when it exists."""
  schema = kwargs.get("schema")
  table_name = kwargs.get("table_name")
  if table_name and not table_exists(table_name=table_name, schema=schema):
    return
  if table_name and not index_exists(table_name=table_name, index_name=index_name, schema=schema):
    return
  op.drop_index(index_name, *args, **kwargs)
