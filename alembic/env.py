import logging
from logging.config import fileConfig

from alembic import context

# alembic.ini prepends the project root to sys.path
import models  # noqa: F401  registers the tables on Base.metadata
from config import get_settings
from database import Base, build_engine

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

DATABASE_URL = get_settings().database_url


def _configure(**kwargs) -> None:
    # sqlite cannot ALTER most constraints in place
    context.configure(
        target_metadata=Base.metadata,
        render_as_batch=DATABASE_URL.startswith("sqlite"),
        compare_type=True,
        **kwargs,
    )


def run_offline() -> None:
    _configure(
        url=DATABASE_URL,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_online() -> None:
    engine = build_engine(DATABASE_URL)
    try:
        with engine.connect() as connection:
            logger.info(f"migrations: url={engine.url.render_as_string()}")
            _configure(connection=connection)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
