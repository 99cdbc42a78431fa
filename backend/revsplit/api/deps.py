from __future__ import annotations

from flask import current_app

from revsplit.db.repository import InMemoryRepository, PostgresRepository

STORE_KEY = "revsplit.store"


def get_repo():
    """
    PostgreSQL when DATABASE_URL is set, otherwise the app's in-memory store.
    Tests monkeypatch this.
    """
    database_url = current_app.config.get("DATABASE_URL", "")
    if database_url:
        return PostgresRepository(database_url)

    store = current_app.extensions.get(STORE_KEY)
    if store is None:
        store = current_app.extensions[STORE_KEY] = InMemoryRepository()
    return store
