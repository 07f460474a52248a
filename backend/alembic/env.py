import asyncio
import os
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context
from caseace.appointments.models import Appointment, AppointmentAttendee  # noqa: F401
from caseace.auth.models import AuditLog, User  # noqa: F401
from caseace.billing.models import Expense, Invoice, Payment  # noqa: F401
from caseace.cases.models import Case, CaseAssignment  # noqa: F401
from caseace.communications.models import DocumentRequest, Message  # noqa: F401

# Import all models so they register with Base.metadata
from caseace.database import Base
from caseace.documents.models import Document  # noqa: F401
from caseace.notifications.models import Notification  # noqa: F401
from caseace.tasks.models import Task  # noqa: F401
from caseace.time_tracking.models import ActiveTimer, TimeEntry  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# Override URL from environment if available
database_url = os.environ.get("DATABASE_URL")
if database_url:
    config.set_main_option("sqlalchemy.url", database_url)


def run_migrations_offline() -> None:
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url, target_metadata=target_metadata, literal_binds=True, dialect_opts={"paramstyle": "named"}
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection):
    context.configure(connection=connection, target_metadata=target_metadata)
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await connectable.dispose()


def run_migrations_online() -> None:
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
