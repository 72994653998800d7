from typing import Optional

from pydantic import BaseModel, field_validator


class ProgressSubmit(BaseModel):
    # Range is checked by the workflow so out-of-range values surface as invalid_progress
    progress: int
    note: Optional[str] = None
    image_url: Optional[str] = None
    audio_url: Optional[str] = None

    @field_validator('note', 'image_url', 'audio_url', mode='before')
    @classmethod
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class WorkflowResult(BaseModel):
    status: str
    status_label: str
    progress: int
