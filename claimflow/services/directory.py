"""Directory lookup: maps display names and emails to canonical emails."""

import logging
import re
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from claimflow.core.identity import is_email, normalize_email
from claimflow.db.models import DirectoryEntry

logger = logging.getLogger(__name__)

_SEPARATORS_RE = re.compile(r"[._-]+")


def fallback_display_name(email: str) -> str:
    """Readable name derived from an email's local part (``jane.doe`` -> ``Jane Doe``)."""
    local = normalize_email(email).split("@", 1)[0]
    return _SEPARATORS_RE.sub(" ", local).strip().title()


class DirectoryLookup:
    """Read-only view over the staff directory."""

    def __init__(self, db: Session):
        self.db = db

    def resolve(self, identifier_or_email: Optional[str]) -> Optional[str]:
        """
        Resolve a person to their canonical (lowercased) email.

        Emails are returned lowercased as-is. Anything else is matched
        case-insensitively against directory display names.

        Returns:
            The email, or None when the identifier cannot be resolved
        """
        raw = str(identifier_or_email or "").strip()
        if not raw:
            return None
        if is_email(raw):
            return normalize_email(raw)

        entry = self.db.query(DirectoryEntry).filter(
            func.lower(DirectoryEntry.name) == raw.lower()
        ).first()
        if entry and entry.email:
            return normalize_email(entry.email)

        logger.info("Directory lookup could not resolve %r", raw)
        return None

    def display_name(self, email: str) -> Optional[str]:
        """Directory display name for an email, if the person is listed."""
        entry = self._by_email(email)
        return entry.name if entry and entry.name else None

    def list_approvers(self) -> List[Dict[str, str]]:
        """Everyone in the directory as label/value pairs, ordered by name."""
        entries = self.db.query(DirectoryEntry).order_by(DirectoryEntry.name.asc()).all()
        return [{"label": e.name or e.email, "value": e.email} for e in entries]

    def profile(self, email: str) -> Dict[str, Any]:
        """Directory profile for an email, with a usable fallback when unlisted."""
        email = normalize_email(email)
        fallback_name = fallback_display_name(email)
        entry = self._by_email(email)
        if not entry:
            return {"name": fallback_name, "email": email}

        return {
            "emp_code": entry.emp_code or "",
            "name": entry.name or fallback_name,
            "email": entry.email or email,
            "designation": entry.designation or "",
            "department": entry.department or "",
            "manager_name": entry.manager_name or "",
            "manager_email": entry.manager_email or "",
            "company": entry.company or "",
            "phone": entry.phone or "",
        }

    def _by_email(self, email: str) -> Optional[DirectoryEntry]:
        return self.db.query(DirectoryEntry).filter(
            DirectoryEntry.email == normalize_email(email)
        ).first()
