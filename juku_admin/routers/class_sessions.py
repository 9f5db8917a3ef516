import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from juku_admin.database import get_db
from juku_admin.models.booth import Booth
from juku_admin.models.class_session import ClassSession
from juku_admin.schemas.class_session import ClassSessionCreate, ClassSessionUpdate
from juku_admin.utils.auth import get_selected_branch, require_roles
from juku_admin.utils.conflict import find_session_conflicts
from juku_admin.utils.crud_factory import CrudActions, envelope, pagination
from juku_admin.utils.db_errors import describe_db_error
from juku_admin.utils.errors import BadRequestError, ConflictError, NotFoundError

logger = logging.getLogger("juku_admin.class_sessions")

router = APIRouter(prefix="/api/class-sessions", tags=["Class sessions"])

staff_only = require_roles("ADMIN", "STAFF")

# 一覧・取得・シリアライズは CRUD と同じ
actions = CrudActions(
    ClassSession,
    "class_id",
    ClassSessionCreate,
    update_schema=ClassSessionUpdate,
    order_by=[("date", "asc"), ("start_time", "asc")],
    branch_scoped=True,
    entity_label="Class session",
)


def _commit(db: Session):
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise describe_db_error(e, "class session")


def _check_booth(db: Session, booth_id: Optional[str], branch_id: str):
    if not booth_id:
        return
    ok = db.query(Booth.booth_id).filter(Booth.booth_id == booth_id, Booth.branch_id == branch_id).first()
    if not ok:
        raise BadRequestError("Booth does not belong to the selected branch")


def _check_conflicts(db: Session, s: ClassSession):
    conflicts = find_session_conflicts(
        db,
        s.date,
        s.start_time,
        s.end_time,
        teacher_id=s.teacher_id,
        student_id=s.student_id,
        booth_id=s.booth_id,
        exclude_id=s.class_id,
    )
    if conflicts:
        raise ConflictError(
            "Class session overlaps an existing session",
            details={"conflicts": conflicts},
        )


@router.get("")
def list_sessions(
    db: Session = Depends(get_db),
    user=Depends(staff_only),
    branch_id: str = Depends(get_selected_branch),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    teacher_id: Optional[str] = Query(None),
    student_id: Optional[str] = Query(None),
    booth_id: Optional[str] = Query(None),
    include_cancelled: bool = Query(True),
    page: Optional[int] = Query(None, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
):
    q = db.query(ClassSession).filter(ClassSession.branch_id == branch_id)
    if start_date:
        q = q.filter(ClassSession.date >= start_date)
    if end_date:
        q = q.filter(ClassSession.date <= end_date)
    if teacher_id:
        q = q.filter(ClassSession.teacher_id == teacher_id)
    if student_id:
        q = q.filter(ClassSession.student_id == student_id)
    if booth_id:
        q = q.filter(ClassSession.booth_id == booth_id)
    if not include_cancelled:
        q = q.filter(ClassSession.is_cancelled.is_(False))

    total = q.count()
    q = q.order_by(ClassSession.date.asc(), ClassSession.start_time.asc())
    if limit:
        q = q.offset(((page or 1) - 1) * limit).limit(limit)
    return envelope([actions.serialize(s) for s in q.all()], pagination=pagination(total, page, limit))


@router.get("/{class_id}")
def get_session(
    class_id: str,
    db: Session = Depends(get_db),
    user=Depends(staff_only),
    branch_id: str = Depends(get_selected_branch),
):
    return envelope(actions.serialize(actions.get_one(db, class_id, branch_id)))


@router.post("")
def create_session(
    body: ClassSessionCreate,
    db: Session = Depends(get_db),
    user=Depends(staff_only),
    branch_id: str = Depends(get_selected_branch),
):
    _check_booth(db, body.booth_id, branch_id)
    s = ClassSession(branch_id=branch_id, **body.model_dump())
    _check_conflicts(db, s)

    db.add(s)
    _commit(db)
    db.refresh(s)
    logger.info("created class session %s on %s", s.class_id, s.date)
    return envelope(actions.serialize(s), status_code=201)


@router.put("/{class_id}")
def update_session(
    class_id: str,
    body: ClassSessionUpdate,
    db: Session = Depends(get_db),
    user=Depends(staff_only),
    branch_id: str = Depends(get_selected_branch),
):
    s = actions.get_one(db, class_id, branch_id)
    changes = body.model_dump(exclude_unset=True)
    if "booth_id" in changes:
        _check_booth(db, changes["booth_id"], branch_id)

    for k, v in changes.items():
        if k in ("date", "start_time", "end_time") and v is None:
            raise BadRequestError(f"{k} cannot be empty")
        setattr(s, k, v)

    if s.end_time <= s.start_time:
        db.rollback()
        raise BadRequestError("end_time must be after start_time")
    if not s.is_cancelled:
        try:
            _check_conflicts(db, s)
        except ConflictError:
            db.rollback()
            raise

    _commit(db)
    db.refresh(s)
    return envelope(actions.serialize(s))


@router.patch("/{class_id}/cancel")
def cancel_session(
    class_id: str,
    db: Session = Depends(get_db),
    user=Depends(staff_only),
    branch_id: str = Depends(get_selected_branch),
):
    s = actions.get_one(db, class_id, branch_id)
    if s.is_cancelled:
        raise ConflictError("Class session is already cancelled")
    s.is_cancelled = True
    _commit(db)
    db.refresh(s)
    logger.info("cancelled class session %s", class_id)
    return envelope(actions.serialize(s))


@router.delete("/{class_id}")
def delete_session(
    class_id: str,
    db: Session = Depends(get_db),
    user=Depends(staff_only),
    branch_id: str = Depends(get_selected_branch),
):
    return envelope(actions.remove(db, class_id, branch_id))
