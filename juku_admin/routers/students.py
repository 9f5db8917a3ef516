import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from juku_admin.database import get_db
from juku_admin.models.class_session import ClassSession
from juku_admin.models.course import Course, CourseEnrollment
from juku_admin.models.student import Student
from juku_admin.models.user import User, UserBranch
from juku_admin.schemas.student import StudentCreate, StudentUpdate
from juku_admin.utils.auth import get_selected_branch, require_roles
from juku_admin.utils.crud_factory import envelope, pagination
from juku_admin.utils.db_errors import describe_db_error
from juku_admin.utils.errors import ConflictError, NotFoundError
from juku_admin.utils.users import apply_user_changes, create_user, ensure_user_available

logger = logging.getLogger("juku_admin.students")

router = APIRouter(prefix="/api/students", tags=["Students"])

staff_only = require_roles("ADMIN", "STAFF")

STUDENT_FIELDS = (
    "student_id", "name", "kana_name", "grade_id", "grade_year", "school_name", "school_type",
    "birth_date", "parent_email", "status", "line_id", "notes", "created_at", "updated_at",
)


def student_out(s: Student) -> dict:
    data = {f: getattr(s, f) for f in STUDENT_FIELDS}
    data["user_id"] = s.user_id
    data["username"] = s.user.username
    data["email"] = s.user.email
    data["branch_ids"] = s.user.branch_ids
    return data


def _get(db: Session, student_id: str, branch_id: str) -> Student:
    s = (
        db.query(Student)
        .join(User, User.id == Student.user_id)
        .join(UserBranch, UserBranch.user_id == User.id)
        .filter(Student.student_id == student_id, UserBranch.branch_id == branch_id)
        .first()
    )
    if not s:
        raise NotFoundError("Student not found")
    return s


def _commit(db: Session):
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise describe_db_error(e, "student")


@router.get("")
def list_students(
    db: Session = Depends(get_db),
    user=Depends(staff_only),
    branch_id: str = Depends(get_selected_branch),
    page: Optional[int] = Query(None, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    name: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
):
    q = (
        db.query(Student)
        .join(User, User.id == Student.user_id)
        .join(UserBranch, UserBranch.user_id == User.id)
        .filter(UserBranch.branch_id == branch_id)
    )
    if name:
        kw = f"%{name.strip()}%"
        q = q.filter(Student.name.ilike(kw) | Student.kana_name.ilike(kw))
    if status:
        q = q.filter(Student.status == status)

    total = q.count()
    q = q.order_by(Student.kana_name.asc(), Student.name.asc())
    if limit:
        q = q.offset(((page or 1) - 1) * limit).limit(limit)

    return envelope([student_out(s) for s in q.all()], pagination=pagination(total, page, limit))


@router.get("/{student_id}")
def get_student(
    student_id: str,
    db: Session = Depends(get_db),
    user=Depends(staff_only),
    branch_id: str = Depends(get_selected_branch),
):
    return envelope(student_out(_get(db, student_id, branch_id)))


@router.post("")
def create_student(
    body: StudentCreate,
    db: Session = Depends(get_db),
    user=Depends(staff_only),
    branch_id: str = Depends(get_selected_branch),
):
    ensure_user_available(db, body.username, body.email)
    if body.student_id and db.get(Student, body.student_id):
        raise ConflictError("Student with this ID already exists")

    values = body.model_dump(exclude={"username", "password", "email", "branch_ids"})
    if not values.get("student_id"):
        values.pop("student_id")

    account = create_user(
        db,
        username=body.username,
        password=body.password,
        role="STUDENT",
        email=body.email,
        branch_ids=body.branch_ids or [branch_id],
    )
    student = Student(user_id=account.id, **values)
    db.add(student)
    _commit(db)
    db.refresh(student)
    logger.info("created student %s (%s)", student.student_id, body.username)
    return envelope(student_out(student), status_code=201)


@router.put("/{student_id}")
def update_student(
    student_id: str,
    body: StudentUpdate,
    db: Session = Depends(get_db),
    user=Depends(staff_only),
    branch_id: str = Depends(get_selected_branch),
):
    student = _get(db, student_id, branch_id)
    changes = body.model_dump(exclude_unset=True)
    ensure_user_available(db, changes.get("username"), changes.get("email"), exclude_user_id=student.user_id)

    apply_user_changes(db, student.user, changes)
    for k, v in changes.items():
        if hasattr(Student, k):
            setattr(student, k, v)

    _commit(db)
    db.refresh(student)
    return envelope(student_out(student))


@router.delete("/{student_id}")
def delete_student(
    student_id: str,
    db: Session = Depends(get_db),
    user=Depends(staff_only),
    branch_id: str = Depends(get_selected_branch),
):
    student = _get(db, student_id, branch_id)
    sessions = (
        db.query(func.count()).select_from(ClassSession)
        .filter(ClassSession.student_id == student_id)
        .scalar()
    )
    if sessions:
        raise ConflictError(
            "Cannot delete Student with associated records",
            details={ClassSession.__tablename__: sessions},
        )

    db.query(CourseEnrollment).filter(CourseEnrollment.student_id == student_id).delete(synchronize_session=False)
    account = student.user
    db.delete(student)
    db.delete(account)
    _commit(db)
    logger.info("deleted student %s", student_id)
    return envelope({"success": True})


@router.get("/{student_id}/enrollments")
def list_enrollments(
    student_id: str,
    db: Session = Depends(get_db),
    user=Depends(staff_only),
    branch_id: str = Depends(get_selected_branch),
):
    _get(db, student_id, branch_id)
    rows = (
        db.query(CourseEnrollment, Course)
        .join(Course, Course.course_id == CourseEnrollment.course_id)
        .filter(CourseEnrollment.student_id == student_id)
        .order_by(CourseEnrollment.enrollment_date.desc())
        .all()
    )
    return envelope([
        {
            "enrollment_id": e.enrollment_id,
            "course_id": c.course_id,
            "course_name": c.name,
            "enrollment_date": e.enrollment_date,
            "status": e.status,
            "notes": e.notes,
        }
        for e, c in rows
    ])
