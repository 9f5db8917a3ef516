from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    role: str
    email: Optional[str] = None
    is_active: bool
    branch_ids: list[str] = []
    created_at: Optional[datetime] = None


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class StaffCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6, max_length=72)
    email: Optional[str] = Field(None, max_length=100)
    branch_ids: list[str] = []


class StaffUpdate(BaseModel):
    username: Optional[str] = Field(None, min_length=3, max_length=50)
    password: Optional[str] = Field(None, min_length=6, max_length=72)
    email: Optional[str] = Field(None, max_length=100)
    is_active: Optional[bool] = None
    branch_ids: Optional[list[str]] = None
