"""
Initial data: python -m juku_admin.seed

Idempotent: rows that already exist (by name / username) are left alone.
ADMIN credentials come from SEED_ADMIN_USERNAME / SEED_ADMIN_PASSWORD.
"""
import logging
import os

from sqlalchemy.orm import Session

from juku_admin.database import Base, SessionLocal, engine
from juku_admin.logging_config import setup_logging
from juku_admin.models import (  # noqa: F401  (テーブル登録)
    class_session, course, line_channel, notification, student, teacher, time_slot,
)
from juku_admin.models.booth import Booth
from juku_admin.models.branch import Branch
from juku_admin.models.class_type import ClassType
from juku_admin.models.evaluation import Evaluation
from juku_admin.models.grade import Grade
from juku_admin.models.subject import Subject
from juku_admin.models.user import User
from juku_admin.utils.users import create_user, set_user_branches

logger = logging.getLogger("juku_admin.seed")

DEFAULT_BRANCH = "本校"

GRADES = [
    ("小学1年生", "小学生", "1"), ("小学2年生", "小学生", "2"), ("小学3年生", "小学生", "3"),
    ("小学4年生", "小学生", "4"), ("小学5年生", "小学生", "5"), ("小学6年生", "小学生", "6"),
    ("中学1年生", "中学生", "1"), ("中学2年生", "中学生", "2"), ("中学3年生", "中学生", "3"),
    ("高校1年生", "高校生", "1"), ("高校2年生", "高校生", "2"), ("高校3年生", "高校生", "3"),
    ("浪人生", "浪人生", None), ("大人", "大人", None),
]

EVALUATIONS = [("S", 5), ("A", 4), ("B", 3), ("C", 2)]

SUBJECTS = ["英語", "数学", "国語", "理科", "社会"]

# 親 -> 子
CLASS_TYPES = {"通常授業": [], "特別授業": ["追加授業", "振替授業"]}

BOOTHS = [f"Booth-{i}" for i in range(1, 6)]


def _get_or_create(db: Session, model, defaults=None, **key):
    obj = db.query(model).filter_by(**key).first()
    if obj:
        return obj, False
    obj = model(**key, **(defaults or {}))
    db.add(obj)
    db.flush()
    return obj, True


def seed(db: Session) -> dict:
    created = {}

    branch, new = _get_or_create(db, Branch, defaults={"order": 1}, name=DEFAULT_BRANCH)
    created["branches"] = int(new)

    username = os.getenv("SEED_ADMIN_USERNAME", "admin")
    password = os.getenv("SEED_ADMIN_PASSWORD", "admin123")
    admin = db.query(User).filter(User.username == username).first()
    if admin is None:
        admin = create_user(db, username=username, password=password, role="ADMIN", branch_ids=[branch.branch_id])
        created["users"] = 1
    else:
        if branch.branch_id not in admin.branch_ids:
            set_user_branches(db, admin, admin.branch_ids + [branch.branch_id])
        created["users"] = 0

    n = 0
    for name, grade_type, number in GRADES:
        _, new = _get_or_create(db, Grade, defaults={"grade_type": grade_type, "grade_number": number}, name=name)
        n += new
    created["grades"] = n

    n = 0
    for name, score in EVALUATIONS:
        _, new = _get_or_create(db, Evaluation, defaults={"score": score}, name=name)
        n += new
    created["evaluations"] = n

    n = 0
    for name in SUBJECTS:
        _, new = _get_or_create(db, Subject, name=name)
        n += new
    created["subjects"] = n

    n = 0
    for order, (parent_name, children) in enumerate(CLASS_TYPES.items(), start=1):
        parent, new = _get_or_create(db, ClassType, defaults={"order": order}, name=parent_name)
        n += new
        for child_order, child in enumerate(children, start=1):
            _, new = _get_or_create(
                db, ClassType, defaults={"parent_id": parent.class_type_id, "order": child_order}, name=child
            )
            n += new
    created["class_types"] = n

    n = 0
    for name in BOOTHS:
        _, new = _get_or_create(db, Booth, branch_id=branch.branch_id, name=name)
        n += new
    created["booths"] = n

    db.commit()
    return created


def main():
    setup_logging()
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        created = seed(db)
    finally:
        db.close()
    logger.info("seed done: %s", ", ".join(f"{k}={v}" for k, v in created.items()))


if __name__ == "__main__":
    main()
