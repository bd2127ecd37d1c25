import copy
import logging

from sqlalchemy.exc import SQLAlchemyError

from .. import models
from ..database import SessionLocal, engine
from ..errors import StorageError

logger = logging.getLogger(__name__)


class InMemoryKeyValueStore:
    def __init__(self, initial=None):
        self.data = dict(initial or {})
        self.saves = 0

    def load(self, key):
        value = self.data.get(key)
        return copy.deepcopy(value) if value is not None else None

    def save(self, key, value):
        self.data[key] = copy.deepcopy(value)
        self.saves += 1


class SqlKeyValueStore:
    """Key-value blobs in a single SQL table, one JSON document per key."""

    def __init__(self, session_factory=SessionLocal, bind=engine):
        self.session_factory = session_factory
        models.Base.metadata.create_all(bind=bind)

    def load(self, key):
        db = self.session_factory()
        try:
            entry = db.get(models.KeyValueEntry, key)
            return entry.value if entry else None
        except SQLAlchemyError as e:
            raise StorageError(f"Lettura di {key!r} fallita: {e}") from e
        finally:
            db.close()

    def save(self, key, value):
        db = self.session_factory()
        try:
            entry = db.get(models.KeyValueEntry, key)
            if entry is None:
                db.add(models.KeyValueEntry(key=key, value=value))
            else:
                entry.value = value
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Saving %r failed: %s", key, e)
            raise StorageError(f"Salvataggio di {key!r} fallito: {e}") from e
        finally:
            db.close()
