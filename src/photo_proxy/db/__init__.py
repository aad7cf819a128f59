"""Database models and bootstrap helpers."""

from .db_init import init_db
from .db_models import Base, JobModel

__all__ = ["Base", "JobModel", "init_db"]
