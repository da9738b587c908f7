"""CacheEntry ORM model — backing table for SqlCacheStore."""

from sqlalchemy import JSON, TIMESTAMP, Column, String, func

from rivue.database import Base


class CacheEntry(Base):
    """
    One key/value pair owned by the cache store.
    Rows past expires_at are treated as absent and removed lazily on read
    or by the periodic sweep.
    """

    __tablename__ = "cache_entries"

    key = Column(String(255), primary_key=True)
    value = Column(JSON, nullable=False)
    expires_at = Column(TIMESTAMP(timezone=True), nullable=False, index=True)
    updated_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
