import os
from logging.config import fileConfig
from sqlalchemy import create_engine
from alembic import context

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def planner_db_url() -> str:
    """PLANNER_DATABASE_PATH overrides the url in alembic.ini."""
    db_path = os.getenv("PLANNER_DATABASE_PATH")
    if db_path:
        return f"sqlite:///{db_path}"
    return config.get_main_option("sqlalchemy.url")


def run_migrations_offline(url: str) -> None:
    """Emit SQL for the planner tables without a live connection."""
    context.configure(
        url=url,
        target_metadata=None,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online(url: str) -> None:
    # Batch mode so SQLite can ALTER through table copies
    with create_engine(url).connect() as connection:
        context.configure(connection=connection, target_metadata=None, render_as_batch=True)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline(planner_db_url())
else:
    run_migrations_online(planner_db_url())
