# healthcomm/services/settings_toggle.py
import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import set_key
from sqlalchemy.orm import Session

from ..config import MESSAGING_MODES, get_settings, reload_settings
from ..exceptions import AuthError, ForbiddenError, ValidationError
from ..security import ADMIN_REQUIRED, resolve_admin

logger = logging.getLogger(__name__)

INVALID_MODE = 'Invalid messaging mode. Must be "demo" or "live"'


def get_mode() -> str:
    return get_settings().messaging_mode


def set_mode(db: Session, mode: Optional[str], credential: Optional[str]) -> str:
    """
    Switch the dispatcher between the simulated and the real transport.

    Only admins may change the mode. The new value goes into the process
    environment (and the .env file when there is one) and the cached settings
    are rebuilt, so the next dispatcher constructed sees it.
    """
    admin, error = resolve_admin(db, credential)
    if error == ADMIN_REQUIRED:
        raise ForbiddenError(error)
    if error:
        raise AuthError(error)

    if mode not in MESSAGING_MODES:
        raise ValidationError(INVALID_MODE)

    previous = get_mode()
    os.environ["MESSAGING_MODE"] = mode
    env_file = Path(get_settings().env_file)
    if env_file.is_file():
        set_key(str(env_file), "MESSAGING_MODE", mode, quote_mode="never")
    reload_settings()

    logger.info(f"Messaging mode changed from '{previous}' to '{mode}' by '{admin.username}'")
    return mode
