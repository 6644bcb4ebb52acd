# lesson_ledger/schemas/notification.py
from typing import Dict

from pydantic import BaseModel, Field, field_validator


class ChannelSubscription(BaseModel):
    """Web push subscription as sent by the browser."""
    endpoint: str
    keys: Dict[str, str] = Field(default_factory=dict)

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("endpoint is required")
        return v.strip()
