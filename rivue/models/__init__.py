"""SQLAlchemy ORM models package."""

from rivue.database import Base
from rivue.models.cache_entry import CacheEntry

__all__ = ["Base", "CacheEntry"]
