"""Per-claim chat with @mentions."""

import logging
import re
from typing import List, Tuple

from sqlalchemy.orm import Session

from claimflow.core.approval.errors import ApprovalNotFoundError, ValidationError
from claimflow.core.identity import normalize_email
from claimflow.db.models import Approval, ChatMention, ChatMessage

logger = logging.getLogger(__name__)

MENTION_RE = re.compile(r"@(\S+)")
TRAILING_PUNCTUATION = "),.;:!?"
MAX_MESSAGES = 500


def parse_mentions(text: str) -> List[str]:
    """
    Identities addressed with ``@`` in a message.

    ``"thanks @Jane.Doe@corp.com, and @bob!"`` -> ``["jane.doe@corp.com", "bob"]``
    """
    mentions = []
    for match in MENTION_RE.finditer(text or ""):
        identity = match.group(1).rstrip(TRAILING_PUNCTUATION).lower()
        if identity and identity not in mentions:
            mentions.append(identity)
    return mentions


class ChatService:
    """Posts and lists chat messages on a claim."""

    def __init__(self, db: Session):
        self.db = db

    def post(self, unique_number: str, author: str, text: str) -> Tuple[ChatMessage, List[str]]:
        """
        Store a message and work out who must be told about it.

        Returns:
            The message and the mentioned identities other than the author

        Raises:
            ValidationError: Blank message
            ApprovalNotFoundError: Unknown claim
        """
        text = (text or "").strip()
        if not text:
            raise ValidationError("Message text is required")

        exists = self.db.query(Approval.id).filter(Approval.unique_number == unique_number).first()
        if not exists:
            raise ApprovalNotFoundError(unique_number)

        author = normalize_email(author)
        mentions = parse_mentions(text)

        message = ChatMessage(unique_number=unique_number, author=author, text=text)
        message.mention_rows = [
            ChatMention(unique_number=unique_number, identity=identity, position=i)
            for i, identity in enumerate(mentions)
        ]
        self.db.add(message)
        self.db.flush()

        recipients = [m for m in mentions if m != author]
        logger.info("Chat message on %s by %s, %d mention(s)", unique_number, author, len(recipients))
        return message, recipients

    def list(self, unique_number: str) -> List[ChatMessage]:
        return self.db.query(ChatMessage).filter(
            ChatMessage.unique_number == unique_number
        ).order_by(ChatMessage.created_at.asc()).limit(MAX_MESSAGES).all()
