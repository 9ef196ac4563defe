"""
Create all tables directly from model metadata.

Used for local development and first boot; production schemas are managed by
Alembic (see konnectsphere.db.migrate).
"""
import logging

from konnectsphere.db.session import engine
from konnectsphere.db.base import Base
from konnectsphere.db import models  # noqa: F401  (registers every model)

logger = logging.getLogger(__name__)


def init_db(bind=None) -> None:
    Base.metadata.create_all(bind=bind or engine)
    logger.info(f"Database tables ensured: {len(Base.metadata.tables)} tables")
