"""
Alembic environment — runs migrations against clinic_crm.database.engine.
"""
import os
import sys
from logging.config import fileConfig

from alembic import context

# Project root on sys.path so `clinic_crm` imports when run via the alembic CLI
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from clinic_crm.database import engine, Base, url
from clinic_crm.models import clinic, stage, lead, ai_report, message  # noqa: F401 (populate metadata)

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={'paramstyle': 'named'},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    with engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
