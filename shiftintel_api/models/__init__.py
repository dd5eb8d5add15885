# shiftintel_api/models/__init__.py


def load_all():
    """Import every model module so db.metadata knows all tables (create_all, alembic autogenerate)."""
    from shiftintel_api.models import employee, insight, shift, site  # noqa: F401
