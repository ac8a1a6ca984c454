from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

# Alembic Config object for the current invocation
config = context.config

# Interpret the config file for Python logging, when there is one
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# ORM metadata for 'autogenerate' support
from backend.chatbot.db.models import Base  # noqa: E402

target_metadata = Base.metadata

# Callers (tests, scripts) may pass a URL explicitly; otherwise use app settings
if not config.get_main_option("sqlalchemy.url"):
    from backend.chatbot.config import get_settings  # noqa: E402
    from backend.chatbot.db.engine import sync_database_url  # noqa: E402

    config.set_main_option("sqlalchemy.url", sync_database_url(get_settings()))


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode.

    Emits SQL to the script output using only the URL; no DBAPI needed.
    """
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode against a live connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            # SQLite cannot ALTER constraints in place
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
