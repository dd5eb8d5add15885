# migrations/env.py
from __future__ import annotations

import logging
from logging.config import fileConfig

from alembic import context
from flask import current_app

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)
logger = logging.getLogger("alembic.env")


def _flask_app():
    """`flask db ...` runs inside an app context; plain `alembic ...` builds the app from wsgi."""
    if current_app:
        return current_app._get_current_object()
    from shiftintel_api.wsgi import app
    return app


flask_app = _flask_app()
with flask_app.app_context():
    engine = flask_app.extensions["migrate"].db.engine
    target_metadata = flask_app.extensions["migrate"].db.metadata
    db_url = engine.url.render_as_string(hide_password=False).replace("%", "%%")

config.set_main_option("sqlalchemy.url", db_url)


def _configure(**kwargs):
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        # sqlite needs batch mode for ALTER TABLE
        render_as_batch=db_url.startswith("sqlite"),
        **kwargs,
    )


def run_migrations_offline() -> None:
    _configure(url=config.get_main_option("sqlalchemy.url"), literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    def skip_empty(context_, revision, directives):
        if getattr(config.cmd_opts, "autogenerate", False) and directives[0].upgrade_ops.is_empty():
            directives[:] = []
            logger.info("No changes in schema detected.")

    with engine.connect() as connection:
        _configure(connection=connection, process_revision_directives=skip_empty)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
