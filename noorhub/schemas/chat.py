from typing import Optional

from pydantic import BaseModel, field_validator


class MessageCreate(BaseModel):
    type: str = "text"  # text|image|audio|document
    content: Optional[str] = None
    media_url: Optional[str] = None

    @field_validator('content', 'media_url', mode='before')
    @classmethod
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None
