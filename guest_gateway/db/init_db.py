"""
Schema bootstrap shared by app startup, create_tables.py and tests.
"""
import logging

from sqlalchemy.orm import Session

from guest_gateway.core.role_limits import BUILTIN_ROLES
from guest_gateway.db.base import Base
from guest_gateway.models import Role  # noqa: F401 (registers every model with Base)

logger = logging.getLogger(__name__)


def create_tables(engine) -> None:
    Base.metadata.create_all(bind=engine)


def ensure_builtin_roles(db: Session) -> int:
    """
    Insert banned/guest/admin if missing. Existing rows are left alone so an
    operator's edits to limits survive restarts. Returns the number inserted.
    """
    existing = {name for (name,) in db.query(Role.name).all()}
    added = 0
    for name, role_def in BUILTIN_ROLES.items():
        if name in existing:
            continue
        db.add(Role(
            id=role_def["id"],
            name=name,
            daily_limit=role_def["daily_limit"],
            velocity_limit=role_def["velocity_limit"],
            description=role_def["description"],
        ))
        added += 1
    if added:
        db.commit()
        logger.info("Seeded %s built-in role(s)", added)
    return added
