"""API routers for ClaimFlow."""

from . import admin
from . import approvals
from . import chat
from . import directory
from . import drafts
from . import health
from . import mail_actions

__all__ = [
    "admin",
    "approvals",
    "chat",
    "directory",
    "drafts",
    "health",
    "mail_actions",
]
