"""Alembic environment for flora's PostgreSQL storage.

Connection parameters come from the same ``DATABASE_*`` settings the app
reads. Autogenerate only looks at the ``flora`` schema and only at tables
declared on ``flora.memory.records.Base``.
"""

from logging.config import fileConfig

from sqlalchemy import create_engine, pool, text

from alembic import context
from flora.config.settings import DatabaseSettings
from flora.constants import DB_SCHEMA
from flora.memory.records import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata
_FLORA_TABLES = {table.name for table in target_metadata.sorted_tables}


def _database_url() -> str:
    """Sync psycopg URL; the app itself connects through asyncpg."""
    override = config.get_main_option("sqlalchemy.url")
    if override:
        return override
    db = DatabaseSettings()
    return f"postgresql+psycopg://{db.user}:{db.password}@{db.host}:{db.port}/{db.name}"


def include_name(name, type_, parent_names):
    if type_ == "schema":
        return name == DB_SCHEMA
    return True


def include_object(object_, name, type_, reflected, compare_to):
    """Ignore tables other tools keep in the schema, e.g. alembic_version."""
    if type_ == "table":
        return name in _FLORA_TABLES
    return True


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        version_table_schema=DB_SCHEMA,
        include_schemas=True,
        include_name=include_name,
        include_object=include_object,
        **kwargs,
    )


def run_migrations_offline() -> None:
    _configure(
        url=_database_url(),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(_database_url(), poolclass=pool.NullPool)

    with connectable.connect() as connection:
        connection.execute(text(f"CREATE SCHEMA IF NOT EXISTS {DB_SCHEMA}"))
        connection.commit()

        _configure(connection=connection)

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
