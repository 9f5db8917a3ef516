from sqlalchemy import Column, String, Text, Boolean, Integer, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from juku_admin.database import Base, new_id

CHANNEL_TYPES = ("TEACHER", "STUDENT", "UNSPECIFIED")


class LineChannel(Base):
    __tablename__ = "line_channels"

    channel_id = Column(String(50), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    description = Column(Text)

    # 暗号化して保存
    channel_access_token = Column(Text, nullable=False)
    channel_secret = Column(Text, nullable=False)

    webhook_url = Column(String(255))
    is_active = Column(Boolean, nullable=False, default=True)
    is_default = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    branches = relationship(
        "BranchLineChannel",
        back_populates="channel",
        cascade="all, delete-orphan",
    )


class BranchLineChannel(Base):
    __tablename__ = "branch_line_channels"
    __table_args__ = (
        UniqueConstraint("branch_id", "channel_id", name="uq_branch_line_channels_branch_channel"),
    )

    id = Column(Integer, primary_key=True)
    branch_id = Column(String(50), ForeignKey("branches.branch_id", ondelete="CASCADE"), nullable=False)
    channel_id = Column(String(50), ForeignKey("line_channels.channel_id", ondelete="CASCADE"), nullable=False)
    channel_type = Column(String(20), nullable=False, default="UNSPECIFIED")

    channel = relationship("LineChannel", back_populates="branches")
