import datetime as dt
from typing import Optional
from pydantic import BaseModel, model_validator


class ClassSessionCreate(BaseModel):
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    teacher_id: Optional[str] = None
    student_id: Optional[str] = None
    subject_id: Optional[str] = None
    booth_id: Optional[str] = None
    class_type_id: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _end_after_start(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class ClassSessionUpdate(BaseModel):
    """Partial update; the time order is checked against the merged row."""

    date: Optional[dt.date] = None
    start_time: Optional[dt.time] = None
    end_time: Optional[dt.time] = None
    teacher_id: Optional[str] = None
    student_id: Optional[str] = None
    subject_id: Optional[str] = None
    booth_id: Optional[str] = None
    class_type_id: Optional[str] = None
    notes: Optional[str] = None
