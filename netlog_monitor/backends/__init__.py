# backends/__init__.py
from dynaconf import Dynaconf

from .base import BaseBucketStore, BucketStoreError
from .sqlite import SqliteBucketStore

__all__ = ["BaseBucketStore", "BucketStoreError", "SqliteBucketStore", "get_backend"]


def get_backend(config: Dynaconf) -> BaseBucketStore:
    """Backend factory: returns an open instance of the configured store engine."""

    backend_type = config.general.get("backend", "sqlite")
    db_path = config.general.get("db_path", "network-log.db")

    if backend_type == "sqlite":
        return SqliteBucketStore(db_path)
    else:
        raise ValueError(f"Unsupported backend type: {backend_type}")
