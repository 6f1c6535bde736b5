"""One-click approval links.

Approvers receive signed, single-use links by email so they can accept or
reject a claim without an authenticated browser session. A link is a JWT
scoped to one claim, one approver and one action; redeeming it records the
token's ``jti`` in the used-token registry inside the same transaction as the
decision, so a link can succeed at most once.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from claimflow.core.approval.errors import (
    ApprovalNotFoundError,
    TurnViolation,
    TurnViolationReason,
    ValidationError,
)
from claimflow.core.approval.service import ApprovalService, DecisionOutcome
from claimflow.core.approval.states import DecisionAction, exact_step_index, parse_action
from claimflow.core.config import Settings, get_settings
from claimflow.core.identity import normalize_email
from claimflow.db.models import Approval, UsedToken

logger = logging.getLogger(__name__)

TOKEN_KIND = "mail-oneclick"


class TokenErrorKind(str, Enum):
    INVALID_TOKEN = "invalid_token"
    ALREADY_USED = "already_used"
    NOT_FOUND = "not_found"
    NOT_AN_APPROVER = "not_an_approver"
    NOT_YOUR_TURN = "not_your_turn"
    INVALID_ACTION = "invalid_action"


TOKEN_ERROR_MESSAGES = {
    TokenErrorKind.INVALID_TOKEN: "Invalid or expired link.",
    TokenErrorKind.ALREADY_USED: "This link was already used.",
    TokenErrorKind.NOT_FOUND: "Request not found.",
    TokenErrorKind.NOT_AN_APPROVER: "Not an approver for this request.",
    TokenErrorKind.NOT_YOUR_TURN: "Not your turn (or already acted).",
    TokenErrorKind.INVALID_ACTION: "Invalid action.",
}


class TokenError(Exception):
    """Raised when a one-click link cannot be used."""

    def __init__(self, kind: TokenErrorKind):
        super().__init__(TOKEN_ERROR_MESSAGES[kind])
        self.kind = kind


@dataclass
class RedeemResult:
    """Outcome of a redemption attempt."""
    success: bool
    approval: Optional[Approval] = None
    error: Optional[TokenError] = None
    outcome: Optional[DecisionOutcome] = None


def issue_token(
    unique_number: str,
    approver: str,
    action: Any,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> str:
    """Sign a one-click token for one approver's decision on one claim."""
    settings = settings or get_settings()
    decision = parse_action(action)
    if decision is None:
        raise ValidationError(f"Invalid action: {action!r}")

    expire = (now or datetime.utcnow()) + timedelta(days=settings.one_click_token_expire_days)
    to_encode = {
        "kind": TOKEN_KIND,
        "jti": secrets.token_hex(12),
        "unique_number": unique_number,
        "approver": normalize_email(approver),
        "action": decision.value,
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_token(token: str, settings: Optional[Settings] = None) -> Dict[str, Any]:
    """
    Verify signature, expiry and kind of a one-click token.

    Raises:
        TokenError: INVALID_TOKEN when anything does not check out
    """
    settings = settings or get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        raise TokenError(TokenErrorKind.INVALID_TOKEN)

    if payload.get("kind") != TOKEN_KIND:
        raise TokenError(TokenErrorKind.INVALID_TOKEN)
    for claim in ("jti", "unique_number", "approver", "action", "exp"):
        if not payload.get(claim):
            raise TokenError(TokenErrorKind.INVALID_TOKEN)
    if parse_action(payload["action"]) is None:
        raise TokenError(TokenErrorKind.INVALID_TOKEN)

    return payload


class OneClickTokenService:
    """Issues and redeems one-click approval tokens."""

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()
        self.approvals = ApprovalService(db, self.settings)

    def issue(self, unique_number: str, approver: str, action: Any) -> str:
        return issue_token(unique_number, approver, action, self.settings)

    def preview(self, token: str) -> tuple[Dict[str, Any], Approval]:
        """
        Check a token for the comment page without changing anything.

        Raises:
            TokenError: Same kinds as redemption, minus the turn check
        """
        payload = decode_token(token, self.settings)
        self._ensure_unused(payload["jti"])
        approval = self._load_for_approver(payload)
        return payload, approval

    def redeem(self, token: str) -> RedeemResult:
        """Apply the token's own action with no comment."""
        return self._redeem(token, action=None, comment=None)

    def redeem_with_comment(self, token: str, action: Any, comment: Optional[str]) -> RedeemResult:
        """Apply an action chosen on the comment page, with a comment.

        A missing action is refused rather than falling back to the token's own.
        """
        return self._redeem(token, action=action if action is not None else "", comment=comment)

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete registry entries past their own expiry.

        Returns:
            Number of entries deleted
        """
        count = self.db.query(UsedToken).filter(
            UsedToken.expires_at < (now or datetime.utcnow())
        ).delete()
        self.db.flush()
        return count

    def _redeem(self, token: str, action: Any, comment: Optional[str]) -> RedeemResult:
        try:
            outcome = self._apply(token, action, comment)
        except TokenError as e:
            self.db.rollback()
            logger.info("One-click redemption refused: %s", e.kind.value)
            return RedeemResult(success=False, error=e)

        self.db.commit()
        logger.info(
            "One-click %s by %s on %s",
            outcome.action.value, outcome.approver, outcome.approval.unique_number,
        )
        return RedeemResult(success=True, approval=outcome.approval, outcome=outcome)

    def _apply(self, token: str, action: Any, comment: Optional[str]) -> DecisionOutcome:
        payload = decode_token(token, self.settings)
        jti = payload["jti"]
        self._ensure_unused(jti)
        approval = self._load_for_approver(payload)

        decision = parse_action(action if action is not None else payload["action"])
        if decision is None:
            raise TokenError(TokenErrorKind.INVALID_ACTION)

        try:
            outcome = self.approvals.apply_decision(
                approval.unique_number, payload["approver"], decision, comment,
            )
        except TurnViolation as e:
            if e.reason == TurnViolationReason.NOT_AN_APPROVER:
                raise TokenError(TokenErrorKind.NOT_AN_APPROVER)
            raise TokenError(TokenErrorKind.NOT_YOUR_TURN)
        except ValidationError:
            # drafts have no turn to take
            raise TokenError(TokenErrorKind.NOT_YOUR_TURN)

        self._mark_used(payload, decision)
        return outcome

    def _ensure_unused(self, jti: str) -> None:
        if self.db.query(UsedToken.id).filter(UsedToken.jti == jti).first():
            raise TokenError(TokenErrorKind.ALREADY_USED)

    def _load_for_approver(self, payload: Dict[str, Any]) -> Approval:
        try:
            approval = self.approvals.get(payload["unique_number"])
        except ApprovalNotFoundError:
            raise TokenError(TokenErrorKind.NOT_FOUND)
        if exact_step_index(approval.approvers, payload["approver"]) == -1:
            raise TokenError(TokenErrorKind.NOT_AN_APPROVER)
        return approval

    def _mark_used(self, payload: Dict[str, Any], decision: DecisionAction) -> None:
        expires_at = datetime.utcfromtimestamp(int(payload["exp"])) + timedelta(
            days=self.settings.used_token_retention_days
        )
        try:
            with self.db.begin_nested():
                self.db.add(UsedToken(
                    jti=payload["jti"],
                    unique_number=payload["unique_number"],
                    approver=payload["approver"],
                    action=decision.value,
                    expires_at=expires_at,
                ))
        except IntegrityError:
            raise TokenError(TokenErrorKind.ALREADY_USED)
