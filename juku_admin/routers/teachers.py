import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from juku_admin.database import get_db
from juku_admin.models.class_session import ClassSession
from juku_admin.models.teacher import Teacher
from juku_admin.models.user import User, UserBranch
from juku_admin.schemas.teacher import TeacherCreate, TeacherUpdate
from juku_admin.utils.auth import get_selected_branch, require_roles
from juku_admin.utils.crud_factory import envelope, pagination
from juku_admin.utils.db_errors import describe_db_error
from juku_admin.utils.errors import ConflictError, NotFoundError
from juku_admin.utils.users import apply_user_changes, create_user, ensure_user_available

logger = logging.getLogger("juku_admin.teachers")

router = APIRouter(prefix="/api/teachers", tags=["Teachers"])

staff_only = require_roles("ADMIN", "STAFF")

TEACHER_FIELDS = (
    "teacher_id", "name", "kana_name", "email", "evaluation_id", "birth_date",
    "mobile_number", "university", "line_id", "notes", "created_at", "updated_at",
)


def teacher_out(t: Teacher) -> dict:
    data = {f: getattr(t, f) for f in TEACHER_FIELDS}
    data["user_id"] = t.user_id
    data["username"] = t.user.username
    data["branch_ids"] = t.user.branch_ids
    return data


def _get(db: Session, teacher_id: str, branch_id: str) -> Teacher:
    t = (
        db.query(Teacher)
        .join(User, User.id == Teacher.user_id)
        .join(UserBranch, UserBranch.user_id == User.id)
        .filter(Teacher.teacher_id == teacher_id, UserBranch.branch_id == branch_id)
        .first()
    )
    if not t:
        raise NotFoundError("Teacher not found")
    return t


def _commit(db: Session):
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise describe_db_error(e, "teacher")


@router.get("")
def list_teachers(
    db: Session = Depends(get_db),
    user=Depends(staff_only),
    branch_id: str = Depends(get_selected_branch),
    page: Optional[int] = Query(None, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    name: Optional[str] = Query(None),
):
    q = (
        db.query(Teacher)
        .join(User, User.id == Teacher.user_id)
        .join(UserBranch, UserBranch.user_id == User.id)
        .filter(UserBranch.branch_id == branch_id)
    )
    if name:
        kw = f"%{name.strip()}%"
        q = q.filter(Teacher.name.ilike(kw) | Teacher.kana_name.ilike(kw))

    total = q.count()
    q = q.order_by(Teacher.kana_name.asc(), Teacher.name.asc())
    if limit:
        q = q.offset(((page or 1) - 1) * limit).limit(limit)

    return envelope([teacher_out(t) for t in q.all()], pagination=pagination(total, page, limit))


@router.get("/{teacher_id}")
def get_teacher(
    teacher_id: str,
    db: Session = Depends(get_db),
    user=Depends(staff_only),
    branch_id: str = Depends(get_selected_branch),
):
    return envelope(teacher_out(_get(db, teacher_id, branch_id)))


@router.post("")
def create_teacher(
    body: TeacherCreate,
    db: Session = Depends(get_db),
    user=Depends(staff_only),
    branch_id: str = Depends(get_selected_branch),
):
    ensure_user_available(db, body.username, body.email)
    if body.teacher_id and db.get(Teacher, body.teacher_id):
        raise ConflictError("Teacher with this ID already exists")

    values = body.model_dump(exclude={"username", "password", "branch_ids"})
    if not values.get("teacher_id"):
        values.pop("teacher_id")

    account = create_user(
        db,
        username=body.username,
        password=body.password,
        role="TEACHER",
        email=body.email,
        branch_ids=body.branch_ids or [branch_id],
    )
    teacher = Teacher(user_id=account.id, **values)
    db.add(teacher)
    _commit(db)
    db.refresh(teacher)
    logger.info("created teacher %s (%s)", teacher.teacher_id, body.username)
    return envelope(teacher_out(teacher), status_code=201)


@router.put("/{teacher_id}")
def update_teacher(
    teacher_id: str,
    body: TeacherUpdate,
    db: Session = Depends(get_db),
    user=Depends(staff_only),
    branch_id: str = Depends(get_selected_branch),
):
    teacher = _get(db, teacher_id, branch_id)
    changes = body.model_dump(exclude_unset=True)
    ensure_user_available(db, changes.get("username"), changes.get("email"), exclude_user_id=teacher.user_id)

    apply_user_changes(db, teacher.user, changes)
    for k, v in changes.items():
        if hasattr(Teacher, k):
            setattr(teacher, k, v)

    _commit(db)
    db.refresh(teacher)
    return envelope(teacher_out(teacher))


@router.delete("/{teacher_id}")
def delete_teacher(
    teacher_id: str,
    db: Session = Depends(get_db),
    user=Depends(staff_only),
    branch_id: str = Depends(get_selected_branch),
):
    teacher = _get(db, teacher_id, branch_id)
    sessions = (
        db.query(func.count()).select_from(ClassSession)
        .filter(ClassSession.teacher_id == teacher_id)
        .scalar()
    )
    if sessions:
        raise ConflictError(
            "Cannot delete Teacher with associated records",
            details={ClassSession.__tablename__: sessions},
        )

    account = teacher.user
    db.delete(teacher)
    db.delete(account)
    _commit(db)
    logger.info("deleted teacher %s", teacher_id)
    return envelope({"success": True})
