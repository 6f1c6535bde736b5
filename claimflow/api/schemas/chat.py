from datetime import datetime
from typing import List
from uuid import UUID

from pydantic import BaseModel, Field


class ChatMessageCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=4000)


class ChatMessageRead(BaseModel):
    id: UUID
    unique_number: str
    author: str
    text: str
    mentions: List[str] = []
    created_at: datetime

    class Config:
        from_attributes = True
