"""Database models for ClaimFlow."""

from claimflow.db.models.approval import Approval, ApproverStep, ApprovalEvent
from claimflow.db.models.chat import ChatMessage, ChatMention
from claimflow.db.models.directory import DirectoryEntry
from claimflow.db.models.used_token import UsedToken

__all__ = [
    "Approval",
    "ApproverStep",
    "ApprovalEvent",
    "ChatMessage",
    "ChatMention",
    "DirectoryEntry",
    "UsedToken",
]
