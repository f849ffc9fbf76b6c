"""
Model package initializer.

This module exists to make sure SQLAlchemy's registry is populated in any runtime
that uses the ORM outside of `hostpanel/main.py` (scripts, the billing scheduler).
"""

# Import side-effects: register ORM mappings.
from hostpanel.models import (  # noqa: F401
    account,
    notification_template,
    server,
)
from hostpanel.models.account import User
from hostpanel.models.notification_template import NotificationTemplate
from hostpanel.models.server import Server

__all__ = ["User", "Server", "NotificationTemplate"]
