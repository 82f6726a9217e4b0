"""Alembic environment for the per-service databases.

Each service owns its own database, so migrations are run once per service:

    alembic -x service=attendances upgrade attendances@head
    alembic -x service=shifts upgrade shifts@head
    alembic -x service=broker upgrade broker@head
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from guardforce import broker, models, shifts_models  # noqa: F401  registers tables on the metadata
from guardforce.db import AttendanceBase, BrokerBase, ShiftsBase
from guardforce.settings import get_settings

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

settings = get_settings()
SERVICES = {
    "attendances": (settings.attendance_database_url, AttendanceBase.metadata),
    "shifts": (settings.shifts_database_url, ShiftsBase.metadata),
    "broker": (settings.broker_database_url, BrokerBase.metadata),
}

service_name = context.get_x_argument(as_dictionary=True).get("service", "attendances")
if service_name not in SERVICES:
    raise RuntimeError(f"Unknown service '{service_name}'. Expected one of: {', '.join(SERVICES)}")

database_url, target_metadata = SERVICES[service_name]
config.set_main_option("sqlalchemy.url", database_url)


def run_migrations_offline() -> None:
    context.configure(
        url=database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
