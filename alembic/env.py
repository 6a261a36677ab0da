from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool

from app.core.config import settings
from app.db.session import Base, make_engine

# Every model module must be imported so autogenerate sees its table
from app.models.user import User  # noqa: F401
from app.models.motorcycle import Motorcycle  # noqa: F401
from app.models.reservation import Reservation  # noqa: F401
from app.models.transaction import Transaction  # noqa: F401
from app.models.payment import Payment  # noqa: F401
from app.models.notification import Notification  # noqa: F401
from app.models.propagation_failure import PropagationFailureLog  # noqa: F401
from app.models.audit_log import AuditLog  # noqa: F401

config = context.config

# The runtime DATABASE_URL wins over anything in alembic.ini
if not config.get_main_option("sqlalchemy.url"):
    config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of running it."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    # same connect args (statement timeout) as the app engine
    connectable = make_engine(config.get_main_option("sqlalchemy.url"), poolclass=pool.NullPool)
    with connectable.connect() as connection:
        # configure() must come before any DDL so begin_transaction() owns the commit
        context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
