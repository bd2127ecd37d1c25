from sqlalchemy import Column, String, DateTime, JSON
from datetime import datetime, timezone
from ..database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class KeyValueEntry(Base):
    __tablename__ = "kv_store"

    key = Column(String, primary_key=True, index=True)
    value = Column(JSON, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)
