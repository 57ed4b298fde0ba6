"""Shared API dependencies."""
import hmac
import logging
from typing import Optional

from fastapi import Header

from catalog_import.config import get_settings
from catalog_import.exceptions import UnauthorizedError

logger = logging.getLogger(__name__)


def require_admin(x_admin_token: Optional[str] = Header(None)) -> None:
    """
    Admin gate for the import endpoints.

    An empty ADMIN_TOKEN disables the check in development only; any other
    environment rejects every request until a token is configured.
    """
    settings = get_settings()
    expected = settings.admin_token
    if not expected:
        if settings.app_env == "development":
            return
        logger.warning(f"⚠️ ADMIN_TOKEN is not set in {settings.app_env}, rejecting request")
        raise UnauthorizedError()
    # Header values may hold non-ASCII text; compare bytes.
    if not x_admin_token or not hmac.compare_digest(
        x_admin_token.encode("utf-8"), expected.encode("utf-8")
    ):
        raise UnauthorizedError()
