from pydantic import BaseModel, Field, field_validator
from typing import Optional

from timeutil import parse_date, parse_time

class CustomPattern(BaseModel):
    type: str  # weekdays | weekends | business_days | nth_weekday | last_weekday
    day_of_week: Optional[int] = None  # 0-6, Sunday = 0
    nth_week: Optional[int] = None  # 1-5

class RecurrenceRule(BaseModel):
    frequency: str = "none"  # none | daily | weekly | monthly | yearly | custom
    interval: Optional[int] = None
    start_date: Optional[str] = None  # YYYY-MM-DD, inclusive
    end_date: Optional[str] = None  # YYYY-MM-DD, inclusive
    end_after_occurrences: Optional[int] = None  # accepted but not enforced
    days_of_week: Optional[list[int]] = None
    day_of_month: Optional[int] = None  # 1-31, or -1 for last day of month
    month: Optional[int] = None  # 1-12
    custom_pattern: Optional[CustomPattern] = None

class Settings(BaseModel):
    desired_sleep_duration: float = 7.5  # hours, informational
    default_wake_time: str = "06:30"
    default_sleep_time: str = "23:00"

    @field_validator("default_wake_time", "default_sleep_time")
    @classmethod
    def _check_time(cls, v: str) -> str:
        parse_time(v)
        return v

class TaskTemplate(BaseModel):
    id: str
    task_name: str
    description: Optional[str] = None
    is_mandatory: bool = False
    priority: int = 3  # 1-5, higher is placed first
    is_active: bool = True
    scheduling_type: str = "flexible"  # fixed | flexible
    default_time: Optional[str] = None  # HH:MM, required when fixed
    time_window: Optional[str] = None  # morning | afternoon | evening | anytime
    duration_minutes: int = 0
    min_duration_minutes: Optional[int] = None
    depends_on: Optional[str] = None
    recurrence_rule: Optional[RecurrenceRule] = None

class TaskInstance(BaseModel):
    id: str
    template_id: str
    date: str  # YYYY-MM-DD
    status: str = "pending"  # pending | completed | skipped | postponed
    modified_start_time: Optional[str] = None  # HH:MM manual anchor
    completed_at: Optional[str] = None  # ISO format datetime string
    skipped_reason: Optional[str] = None
    note: Optional[str] = None

class DailyOverride(BaseModel):
    wake_time: Optional[str] = None
    sleep_time: Optional[str] = None

class ScheduleBlock(BaseModel):
    template_id: str
    start_time: str
    end_time: str

class SleepSchedule(BaseModel):
    wake_time: str
    sleep_time: str
    duration: float

class ScheduleResult(BaseModel):
    success: bool
    schedule: list[ScheduleBlock] = Field(default_factory=list)
    sleep_schedule: SleepSchedule
    total_tasks: int
    scheduled_tasks: int
    message: Optional[str] = None
    error: Optional[str] = None
    advisories: Optional[list[str]] = None

class DaySummary(BaseModel):
    completed: int = 0
    skipped: int = 0
    overdue: int = 0  # scheduled before current time and not done

# API payloads

class TemplateCreate(BaseModel):
    task_name: str
    description: Optional[str] = None
    is_mandatory: bool = False
    priority: int = Field(default=3, ge=1, le=5)
    is_active: bool = True
    scheduling_type: str = "flexible"
    default_time: Optional[str] = None
    time_window: Optional[str] = None
    duration_minutes: int = Field(default=30, ge=0)
    min_duration_minutes: Optional[int] = Field(default=None, ge=0)
    depends_on: Optional[str] = None
    recurrence_rule: Optional[RecurrenceRule] = None

    @field_validator("default_time")
    @classmethod
    def _check_default_time(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            parse_time(v)
        return v

class TemplateUpdate(BaseModel):
    task_name: Optional[str] = None
    description: Optional[str] = None
    is_mandatory: Optional[bool] = None
    priority: Optional[int] = Field(default=None, ge=1, le=5)
    is_active: Optional[bool] = None
    scheduling_type: Optional[str] = None
    default_time: Optional[str] = None
    time_window: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, ge=0)
    min_duration_minutes: Optional[int] = Field(default=None, ge=0)
    depends_on: Optional[str] = None
    recurrence_rule: Optional[RecurrenceRule] = None

    @field_validator("default_time")
    @classmethod
    def _check_default_time(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            parse_time(v)
        return v

class SplitRequest(BaseModel):
    split_date: str  # first date the updated series applies to
    updates: TemplateUpdate = Field(default_factory=TemplateUpdate)

    @field_validator("split_date")
    @classmethod
    def _check_split_date(cls, v: str) -> str:
        parse_date(v)
        return v

class InstanceAction(BaseModel):
    reason: Optional[str] = None  # skip reason or postpone note

class StartTimeUpdate(BaseModel):
    start_time: str
    reopen: bool = False  # move a completed/skipped/postponed instance back to pending

    @field_validator("start_time")
    @classmethod
    def _check_start_time(cls, v: str) -> str:
        parse_time(v)
        return v

class OccurrencesRequest(BaseModel):
    rule: RecurrenceRule
    start: str
    end: str
    reference: Optional[str] = None

class ValidationResult(BaseModel):
    is_valid: bool
    errors: list[str]
