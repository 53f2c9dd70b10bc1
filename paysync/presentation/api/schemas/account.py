from typing import Optional

from pydantic import BaseModel, Field


class DeleteAccountRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)
