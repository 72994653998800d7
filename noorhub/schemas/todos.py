from typing import Optional

from pydantic import BaseModel


class TodoCreate(BaseModel):
    content: Optional[str] = None
