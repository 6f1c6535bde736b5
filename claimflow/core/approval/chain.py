"""Construction of the fixed approval chain.

Every submitted claim goes manager -> HR -> Accounts. The client may propose
any approver list; only its first entry is used, as the manager, and the rest
is discarded.
"""

from typing import Any, Dict, List, Optional, Protocol, Sequence

from claimflow.core.config import Settings
from claimflow.core.identity import normalize_email
from .errors import ValidationError
from .states import StepStatus


class Resolver(Protocol):
    def resolve(self, identifier_or_email: Optional[str]) -> Optional[str]: ...


def pending_step(name: str) -> Dict[str, Any]:
    return {
        "name": normalize_email(name),
        "status": StepStatus.PENDING.value,
        "comment": "",
        "updated_at": None,
    }


def build_fixed_chain(manager_email: str, hr_email: str, accounts_email: str) -> List[Dict[str, Any]]:
    """
    The manager -> HR -> Accounts chain for a resolved manager.

    A manager who is also the HR or Accounts address appears once, in the
    manager slot, so each approver owns exactly one step.
    """
    steps: List[Dict[str, Any]] = []
    for email in (manager_email, hr_email, accounts_email):
        step = pending_step(email)
        if all(s["name"] != step["name"] for s in steps):
            steps.append(step)
    return steps


def proposed_name(entry: Any) -> str:
    """Approver identity from a client entry (plain string or ``{"name": ...}``)."""
    if isinstance(entry, dict):
        return str(entry.get("name") or "")
    return str(getattr(entry, "name", entry) or "")


class ChainBuilder:
    """Builds the authoritative chain from a client-proposed approver list."""

    def __init__(self, directory: Resolver, settings: Settings):
        self.directory = directory
        self.settings = settings

    def resolve_manager(self, proposed: Sequence[Any]) -> str:
        if not proposed:
            raise ValidationError("Missing manager email")
        manager = self.directory.resolve(proposed_name(proposed[0]))
        if not manager:
            raise ValidationError(f"Could not resolve manager {proposed_name(proposed[0])!r} to an email")
        return manager

    def build(self, proposed: Sequence[Any]) -> List[Dict[str, Any]]:
        """
        Build the fixed chain.

        Raises:
            ValidationError: No manager entry, or it cannot be resolved
        """
        manager = self.resolve_manager(proposed)
        return build_fixed_chain(manager, self.settings.hr_email, self.settings.accounts_email)
