from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import click
from flask import Flask
from flask_cors import CORS

from revsplit.api.routes import api_bp
from revsplit.api.splits import splits_bp
from revsplit.config import Config
from revsplit.db.repository import PostgresRepository


def _configure_logging(level: str) -> None:
    if not logging.getLogger().handlers:
        logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("revsplit").setLevel(level)


def create_app(config: Optional[Mapping[str, Any]] = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    if config:
        app.config.update(config)

    _configure_logging(app.config["LOG_LEVEL"])

    origins = [o.strip() for o in app.config["CORS_ORIGINS"].split(",") if o.strip()]
    CORS(app, resources={r"/api/*": {"origins": origins or "*"}})

    app.register_blueprint(api_bp)
    app.register_blueprint(splits_bp)

    @app.cli.command("init-db")
    def init_db():
        """Create the PostgreSQL tables (needs DATABASE_URL)."""
        if not app.config["DATABASE_URL"]:
            raise click.ClickException("DATABASE_URL is not set")
        PostgresRepository(app.config["DATABASE_URL"]).apply_schema()
        click.echo("schema applied")

    return app
