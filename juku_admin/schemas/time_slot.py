from datetime import time
from typing import Optional
from pydantic import BaseModel, Field, model_validator


def _check_order(start: Optional[time], end: Optional[time]):
    if start is not None and end is not None and end <= start:
        raise ValueError("end_time must be after start_time")


class TimeSlotCreate(BaseModel):
    time_slot_id: Optional[str] = Field(None, max_length=50)
    start_time: time
    end_time: time
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _end_after_start(self):
        _check_order(self.start_time, self.end_time)
        return self


class TimeSlotUpdate(BaseModel):
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _end_after_start(self):
        _check_order(self.start_time, self.end_time)
        return self
