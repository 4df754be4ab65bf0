# healthcomm/bootstrap.py - initializes the admin user on startup
import logging

from .config import get_settings
from .database import SessionLocal

logger = logging.getLogger(__name__)


def create_or_update_admin():
    """
    Creates the default admin from ADMIN_DEFAULT_USERNAME / ADMIN_DEFAULT_PASSWORD,
    or re-syncs its role and password if it already exists.
    Imports are done locally to keep this module free of import cycles.
    """
    from . import models
    from .security import get_password_hash, verify_password

    settings = get_settings()
    username = settings.admin_default_username
    password = settings.admin_default_password
    if not password:
        logger.warning("ADMIN_DEFAULT_PASSWORD not set; skipping default admin bootstrap.")
        return None

    db = SessionLocal()
    try:
        admin = db.query(models.User).filter(models.User.username == username).first()
        if admin:
            changed = False
            if admin.role != models.UserRole.admin:
                admin.role = models.UserRole.admin
                changed = True
            if not verify_password(password, admin.password_hash):
                admin.password_hash = get_password_hash(password)
                changed = True
            if changed:
                db.commit()
                logger.info(f"Default admin '{username}' updated.")
            else:
                logger.info(f"Default admin '{username}' verified.")
        else:
            admin = models.User(
                username=username,
                password_hash=get_password_hash(password),
                role=models.UserRole.admin,
            )
            db.add(admin)
            db.commit()
            logger.info(f"Default admin '{username}' created.")
        return admin.id
    except Exception as e:
        db.rollback()
        logger.error(f"CRITICAL: Error during admin bootstrap: {e}", exc_info=True)
        raise
    finally:
        db.close()
