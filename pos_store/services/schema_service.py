# Overview: Schema/migration manager; creates and upgrades the record stores in place.

from __future__ import annotations

from flask import current_app
from sqlalchemy import inspect, select

from ..errors import StorageFailure
from ..extensions import db
from ..models import Product, InventoryMovement, Transaction, Category, SchemaVersion
from ..time_utils import utcnow
from .concurrency import unit_of_work
"""
Schema Invariants (authoritative)

- Four record stores: products, inventory_movements, transactions, categories.
  Each has an auto-incrementing integer primary key plus the secondary
  indexes declared on its model (__table_args__).
- schema_version holds one row with the applied SCHEMA_VERSION.
- Upgrades are additive: missing stores and indexes are created, nothing
  existing is dropped or rewritten. Running upgrade_schema() on every start
  is safe.
- Versions only move forward. A database written by a newer build is refused.
- One upgrade is one database transaction: if any store or index fails to
  create, every store created earlier in the same upgrade is rolled back.
"""

# Bump when a model gains a store or an index.
SCHEMA_VERSION = 8

RECORD_STORES = (Product, InventoryMovement, Transaction, Category)


def _ensure_store(conn, inspector, table, existing_tables: set[str]) -> list[str]:
    """Create `table` or its missing indexes. Returns names of what was created."""
    if table.name not in existing_tables:
        table.create(bind=conn)
        return [table.name]

    created = []
    present = {ix["name"] for ix in inspector.get_indexes(table.name)}
    for index in sorted(table.indexes, key=lambda ix: ix.name):
        if index.name not in present:
            index.create(bind=conn)
            created.append(index.name)
    return created


def _read_version(conn, existing_tables: set[str]) -> int:
    if SchemaVersion.__tablename__ not in existing_tables:
        return 0
    version = conn.execute(
        select(SchemaVersion.version).where(SchemaVersion.id == 1)
    ).scalar()
    return int(version or 0)


def get_schema_version() -> int:
    conn = db.session.connection()
    return _read_version(conn, set(inspect(conn).get_table_names()))


def upgrade_schema() -> int:
    """
    Bring the database up to SCHEMA_VERSION. Idempotent.

    Returns the schema version now in effect.
    """
    created: list[str] = []

    with unit_of_work() as session:
        conn = session.connection()
        inspector = inspect(conn)
        existing = set(inspector.get_table_names())

        current = _read_version(conn, existing)
        if current > SCHEMA_VERSION:
            raise StorageFailure(
                f"Database schema version {current} is newer than supported version {SCHEMA_VERSION}",
                details={"database_version": current, "supported_version": SCHEMA_VERSION},
            )

        tables = [SchemaVersion.__table__] + [model.__table__ for model in RECORD_STORES]
        for table in tables:
            created.extend(_ensure_store(conn, inspector, table, existing))

        if current != SCHEMA_VERSION:
            row = session.get(SchemaVersion, 1)
            if row is None:
                session.add(SchemaVersion(id=1, version=SCHEMA_VERSION, applied_at=utcnow()))
            else:
                row.version = SCHEMA_VERSION
                row.applied_at = utcnow()

    if created or current != SCHEMA_VERSION:
        current_app.logger.info(
            "Schema upgraded from version %s to %s (created: %s)",
            current, SCHEMA_VERSION, ", ".join(created) or "nothing",
        )
    return SCHEMA_VERSION


def describe_schema() -> dict[str, list[str]]:
    """Record stores and their secondary index names, for inspection."""
    inspector = inspect(db.session.connection())
    existing = set(inspector.get_table_names())
    return {
        model.__tablename__: sorted(ix["name"] for ix in inspector.get_indexes(model.__tablename__))
        for model in RECORD_STORES
        if model.__tablename__ in existing
    }
