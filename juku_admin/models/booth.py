from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from juku_admin.database import Base, new_id


class Booth(Base):
    __tablename__ = "booths"
    __table_args__ = (
        UniqueConstraint("branch_id", "name", name="uq_booths_branch_name"),
    )

    booth_id = Column(String(50), primary_key=True, default=new_id)
    branch_id = Column(String(50), ForeignKey("branches.branch_id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    status = Column(Boolean, nullable=False, default=True)
    notes = Column(Text)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    branch = relationship("Branch")
