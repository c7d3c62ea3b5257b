# pos_store/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, configure_sqlite_transactions


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions (engines are built here, so config must be final)
    db.init_app(app)

    # Import models so table metadata is registered before the schema manager runs
    from . import models  # noqa: F401

    with app.app_context():
        configure_sqlite_transactions(db.engine)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
