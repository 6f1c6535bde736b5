"""Identity canonicalization.

Approver identities reach the system in several shapes: full emails from the
claim form, bare local parts from older records, display names typed into chat
or imported from the staff directory. Every comparison between a stored chain
step and an acting identity goes through :func:`identity_matches` so that the
tolerance rules live in exactly one place.

Matching rules (step name vs. acting identity):

1. exact lowercase equality;
2. the step holds only the identity's local part (``jane.doe`` vs
   ``jane.doe@example.com``);
3. the simplified step name equals the identity's simplified local part, where
   simplification lowercases and drops whitespace, dots, underscores and
   hyphens (``Jane Doe`` vs ``jane_doe@example.com``).
"""

import re
from typing import NamedTuple, Optional

_SIMPLIFY_RE = re.compile(r"[\s._-]+")


class IdentityKey(NamedTuple):
    """Canonical forms of one identity."""
    exact: str
    local: str
    simple: str


def simplify(value: Optional[str]) -> str:
    """Lowercase and strip whitespace, dots, underscores and hyphens."""
    return _SIMPLIFY_RE.sub("", str(value or "").lower())


def canonicalize(identity: Optional[str]) -> IdentityKey:
    """Build the canonical key for an email, local part or display name."""
    exact = str(identity or "").strip().lower()
    local = exact.split("@", 1)[0] if exact else ""
    return IdentityKey(exact=exact, local=local, simple=simplify(local))


def normalize_email(identity: Optional[str]) -> str:
    """Lowercased, stripped identity as stored on chain steps."""
    return canonicalize(identity).exact


def is_email(identity: Optional[str]) -> bool:
    return "@" in str(identity or "")


def identity_matches(step_name: Optional[str], identity: Optional[str]) -> bool:
    """Check whether a stored step name refers to the given identity."""
    step = canonicalize(step_name)
    me = canonicalize(identity)
    if not step.exact or not me.exact:
        return False
    if step.exact == me.exact:
        return True
    if step.exact == me.local:
        return True
    return simplify(step.exact) == me.simple
