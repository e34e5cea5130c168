"""Shared-secret check for dashboard endpoints."""

from __future__ import annotations

import secrets

from fastapi import Depends, Query

from dropsync.api.dependencies import ServiceContainer, get_container
from dropsync.api.exceptions import AuthenticationError
from dropsync.core.logging_utils import get_logger

logger = get_logger(__name__)


def require_password(
    password: str = Query(default="", description="Dashboard password"),
    container: ServiceContainer = Depends(get_container),
) -> None:
    """Reject the request unless ``password`` matches ``ADMIN_PASSWORD``.

    With no password configured every request is rejected.
    """
    expected = container.config.runtime.admin_password
    if not expected:
        logger.warning("dashboard_password_not_configured")
        raise AuthenticationError("Dashboard password is not configured")
    if not secrets.compare_digest(password.encode("utf-8"), expected.encode("utf-8")):
        logger.info("dashboard_password_rejected")
        raise AuthenticationError("Invalid password")
