# Overview: Flask extension instance for the database, plus SQLite engine hooks.

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event

db = SQLAlchemy()


def configure_sqlite_transactions(engine) -> None:
    """
    Make pysqlite honour real transactions, including DDL.

    NOTE: The pysqlite driver only emits BEGIN before DML statements, so
    CREATE TABLE / CREATE INDEX would otherwise autocommit one by one. With
    these hooks every SQLAlchemy transaction starts with an explicit BEGIN,
    which lets a schema upgrade roll back as a whole.
    """
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")
