# lesson_ledger/schemas/consumption.py
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class SessionTypeEnum(str, Enum):
    regular = "regular"
    bonus = "bonus"


class ConsumptionCreate(BaseModel):
    attendance_id: str
    sessions_consumed: int = Field(1, ge=1)
    session_type: SessionTypeEnum = SessionTypeEnum.regular
    description: Optional[str] = Field(None, max_length=200)


class SessionConsumption(BaseModel):
    id: str
    course_id: str
    attendance_id: Optional[str] = None
    sessions_consumed: int
    session_type: SessionTypeEnum
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class SessionSummary(BaseModel):
    """Derived balance of a course; never stored."""
    total: int
    consumed: int
    remaining: int
    attendance_rate: int = 0
