"""
Best-effort key/value storage for the session stores.

Two scopes, same interface (get_item / set_item / remove_item, string values):
- LocalStorage: persisted in the SQL store; survives restarts (store blobs).
- SessionStorage: in-memory for the lifetime of the process (refresh credential).

Every call returns a StorageResult; storage failures never raise to the caller so a
session can proceed in memory-only mode when persistence is unavailable.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import sessionmaker

from session_client.database import SessionLocal
from session_client.models import StoredItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageResult:
    ok: bool
    value: str | None = None
    error: str | None = None


class LocalStorage:
    """Persisted slots backed by the stored_items table."""

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self._session_factory = session_factory

    def get_item(self, key: str) -> StorageResult:
        try:
            db = self._session_factory()
            try:
                item = db.get(StoredItem, key)
                return StorageResult(ok=True, value=item.value if item is not None else None)
            finally:
                db.close()
        except Exception as e:
            logger.debug("Storage read failed for %s: %s", key, e)
            return StorageResult(ok=False, error=str(e))

    def set_item(self, key: str, value: str) -> StorageResult:
        try:
            db = self._session_factory()
            try:
                item = db.get(StoredItem, key)
                if item is None:
                    db.add(StoredItem(key=key, value=value))
                else:
                    item.value = value
                db.commit()
                return StorageResult(ok=True, value=value)
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()
        except Exception as e:
            logger.debug("Storage write failed for %s: %s", key, e)
            return StorageResult(ok=False, error=str(e))

    def remove_item(self, key: str) -> StorageResult:
        try:
            db = self._session_factory()
            try:
                item = db.get(StoredItem, key)
                if item is not None:
                    db.delete(item)
                    db.commit()
                return StorageResult(ok=True)
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()
        except Exception as e:
            logger.debug("Storage remove failed for %s: %s", key, e)
            return StorageResult(ok=False, error=str(e))


class SessionStorage:
    """Process-lifetime slots; nothing is written to disk."""

    def __init__(self):
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> StorageResult:
        return StorageResult(ok=True, value=self._items.get(key))

    def set_item(self, key: str, value: str) -> StorageResult:
        self._items[key] = value
        return StorageResult(ok=True, value=value)

    def remove_item(self, key: str) -> StorageResult:
        self._items.pop(key, None)
        return StorageResult(ok=True)


def safe_get(storage, key: str) -> StorageResult:
    """get_item that tolerates storage objects which raise instead of returning a result."""
    try:
        return storage.get_item(key)
    except Exception as e:
        logger.debug("Storage read failed for %s: %s", key, e)
        return StorageResult(ok=False, error=str(e))


def safe_set(storage, key: str, value: str) -> StorageResult:
    try:
        return storage.set_item(key, value)
    except Exception as e:
        logger.debug("Storage write failed for %s: %s", key, e)
        return StorageResult(ok=False, error=str(e))


def safe_remove(storage, key: str) -> StorageResult:
    try:
        return storage.remove_item(key)
    except Exception as e:
        logger.debug("Storage remove failed for %s: %s", key, e)
        return StorageResult(ok=False, error=str(e))


def read_json(storage, key: str) -> Any | None:
    """Parsed JSON value of a slot, or None if missing, unreadable or malformed."""
    result = safe_get(storage, key)
    if not result.ok or result.value is None:
        return None
    try:
        return json.loads(result.value)
    except ValueError:
        logger.warning("Discarding malformed stored value for %s", key)
        return None


def write_json(storage, key: str, value: Any) -> StorageResult:
    try:
        raw = json.dumps(value)
    except (TypeError, ValueError) as e:
        return StorageResult(ok=False, error=str(e))
    return safe_set(storage, key, raw)
