from datetime import datetime

from sqlalchemy import Column, Integer, String, Boolean, TIMESTAMP, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from juku_admin.database import Base

ROLES = ("ADMIN", "STAFF", "TEACHER", "STUDENT")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String(20), nullable=False)
    email = Column(String(100), unique=True, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP, default=datetime.utcnow)

    branches = relationship("UserBranch", back_populates="user", cascade="all, delete-orphan")

    @property
    def branch_ids(self) -> list[str]:
        return [ub.branch_id for ub in self.branches]


class UserBranch(Base):
    __tablename__ = "user_branches"
    __table_args__ = (
        UniqueConstraint("user_id", "branch_id", name="uq_user_branches_user_branch"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    branch_id = Column(String(50), ForeignKey("branches.branch_id"), nullable=False, index=True)

    user = relationship("User", back_populates="branches")
