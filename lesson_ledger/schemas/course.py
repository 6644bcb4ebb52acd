# lesson_ledger/schemas/course.py
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from lesson_ledger.utils.time_utils import parse_hhmm


class CourseScheduleBase(BaseModel):
    weekday: int = Field(..., json_schema_extra={"example": 3})
    start_time: str = Field(..., json_schema_extra={"example": "10:00"})
    end_time: str = Field(..., json_schema_extra={"example": "11:30"})
    location: Optional[str] = Field(None, max_length=100)
    instructor: Optional[str] = Field(None, max_length=50)
    is_active: bool = True


class CourseScheduleCreate(CourseScheduleBase):
    """
    Validated weekly slot. Building this object is the only way a schedule
    reaches the database, so bad input is rejected before any write.
    """

    @field_validator("weekday")
    @classmethod
    def validate_weekday(cls, v: int) -> int:
        if v < 1 or v > 7:
            raise ValueError("weekday must be between 1 (Monday) and 7 (Sunday)")
        return v

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_hhmm(cls, v: str) -> str:
        parse_hhmm(v)
        return v

    @model_validator(mode="after")
    def check_time_range(self):
        if parse_hhmm(self.start_time) >= parse_hhmm(self.end_time):
            raise ValueError("start_time must be earlier than end_time")
        return self


class CourseSchedule(CourseScheduleBase):
    id: str
    course_id: str

    model_config = {"from_attributes": True}


class CourseBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    total_amount: Decimal = Field(Decimal("0"), ge=0, max_digits=10, decimal_places=2)
    regular_sessions: int = Field(0, ge=0)
    bonus_sessions: int = Field(0, ge=0)
    contract_images: List[str] = []
    category: str = "general"
    description: Optional[str] = None


class CourseCreate(CourseBase):
    schedules: List[CourseScheduleCreate] = []

    @field_validator("name")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name cannot be empty")
        return v.strip()


class CourseUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    total_amount: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    regular_sessions: Optional[int] = Field(None, ge=0)
    bonus_sessions: Optional[int] = Field(None, ge=0)
    contract_images: Optional[List[str]] = None
    category: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None
    # None leaves the schedule set untouched; a list (even empty) replaces it
    schedules: Optional[List[CourseScheduleCreate]] = None


class Course(CourseBase):
    id: str
    user_id: str
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    schedules: List[CourseSchedule] = []

    model_config = {"from_attributes": True}


class CourseWithStats(Course):
    total_sessions: int
    consumed_sessions: int
    remaining_sessions: int
