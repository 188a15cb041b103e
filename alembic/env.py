import asyncio
import logging
from logging.config import fileConfig
from time import perf_counter

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

import compliance_engine.schema.sql  # noqa: F401
from compliance_engine.core.database import Base, _database_url

config = context.config

if config.config_file_name is not None:
  fileConfig(config.config_file_name)

target_metadata = Base.metadata


class _RevisionTimer:
  """Log how long each applied revision took."""

  def __init__(self) -> None:
    self._started: float | None = None

  def start(self) -> None:
    self._started = perf_counter()

  def on_version_apply(self, *, ctx: object, step: object, heads: set[str], run_args: dict[str, object]) -> None:
    revision = getattr(step, "up_revision_id", None) or getattr(step, "down_revision_id", None) or "unknown"
    if self._started is None:
      _migration_logger.info("Applied revision %s", revision)
    else:
      _migration_logger.info("Applied revision %s in %.3fs", revision, perf_counter() - self._started)
    self.start()


_migration_logger = logging.getLogger("alembic.runtime.migration")


def _require_url() -> str:
  url = _database_url()
  if not url:
    raise RuntimeError("COMPLIANCE_PG_DSN must be set to run migrations.")
  return url


def run_migrations_offline() -> None:
  context.configure(url=_require_url(), target_metadata=target_metadata, literal_binds=True, dialect_opts={"paramstyle": "named"}, compare_type=True)
  with context.begin_transaction():
    context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
  timer = _RevisionTimer()
  context.configure(connection=connection, target_metadata=target_metadata, compare_type=True, on_version_apply=timer.on_version_apply)
  migration_context = context.get_context()
  _migration_logger.info("Upgrading generation tables from %s", migration_context.get_current_revision() or "base")

  timer.start()
  with context.begin_transaction():
    context.run_migrations()
  _migration_logger.info("Schema now at %s", ", ".join(migration_context.get_current_heads()) or "none")


async def run_async_migrations() -> None:
  section = dict(config.get_section(config.config_ini_section) or {})
  section["sqlalchemy.url"] = _require_url()
  engine = async_engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
  try:
    async with engine.connect() as connection:
      await connection.run_sync(do_run_migrations)
  finally:
    await engine.dispose()


if context.is_offline_mode():
  run_migrations_offline()
else:
  asyncio.run(run_async_migrations())
