from sqlalchemy import Column, String, Integer, Text, ForeignKey
from sqlalchemy.orm import relationship

from juku_admin.database import Base, new_id


class ClassType(Base):
    __tablename__ = "class_types"

    class_type_id = Column(String(50), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    # 通常授業 > 追加授業 のような親子
    parent_id = Column(String(50), ForeignKey("class_types.class_type_id"), nullable=True)
    order = Column(Integer)
    notes = Column(Text)

    parent = relationship("ClassType", remote_side=[class_type_id])
