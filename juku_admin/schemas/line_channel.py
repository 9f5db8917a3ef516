from typing import Optional, Literal
from pydantic import BaseModel, Field

ChannelType = Literal["TEACHER", "STUDENT", "UNSPECIFIED"]


class LineChannelCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    channel_access_token: str = Field(..., min_length=1)
    channel_secret: str = Field(..., min_length=1)
    is_active: bool = True
    is_default: bool = False
    branch_ids: list[str] = []


class LineChannelUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    # 空文字は「変更なし」
    channel_access_token: Optional[str] = None
    channel_secret: Optional[str] = None
    is_active: Optional[bool] = None
    is_default: Optional[bool] = None
    branch_ids: Optional[list[str]] = None


class BranchAssignment(BaseModel):
    branch_id: str
    channel_type: ChannelType = "UNSPECIFIED"


class BranchAssignmentIn(BaseModel):
    branches: list[BranchAssignment]


class ReencryptIn(BaseModel):
    """New credentials, for rows that can no longer be decrypted. Omit both to encrypt legacy plaintext."""

    channel_access_token: Optional[str] = Field(None, min_length=1)
    channel_secret: Optional[str] = Field(None, min_length=1)
