import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from juku_admin.database import get_db
from juku_admin.models.user import User
from juku_admin.schemas.user import StaffCreate, StaffUpdate, UserOut
from juku_admin.utils.auth import require_admin
from juku_admin.utils.crud_factory import envelope, pagination
from juku_admin.utils.db_errors import describe_db_error
from juku_admin.utils.errors import NotFoundError
from juku_admin.utils.users import apply_user_changes, create_user, ensure_user_available

logger = logging.getLogger("juku_admin.staffs")

router = APIRouter(prefix="/api/staffs", tags=["Staff"])


def staff_out(u: User) -> dict:
    return UserOut.model_validate(u).model_dump()


def _get(db: Session, user_id: int) -> User:
    u = db.query(User).filter(User.id == user_id, User.role == "STAFF").first()
    if not u:
        raise NotFoundError("Staff not found")
    return u


def _commit(db: Session):
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise describe_db_error(e, "staff")


@router.get("")
def list_staffs(
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
    page: Optional[int] = Query(None, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    name: Optional[str] = Query(None),
):
    q = db.query(User).filter(User.role == "STAFF")
    if name:
        q = q.filter(User.username.ilike(f"%{name.strip()}%"))
    total = q.count()
    q = q.order_by(User.username.asc())
    if limit:
        q = q.offset(((page or 1) - 1) * limit).limit(limit)
    return envelope([staff_out(u) for u in q.all()], pagination=pagination(total, page, limit))


@router.get("/{user_id}")
def get_staff(user_id: int, db: Session = Depends(get_db), admin=Depends(require_admin)):
    return envelope(staff_out(_get(db, user_id)))


@router.post("")
def create_staff(body: StaffCreate, db: Session = Depends(get_db), admin=Depends(require_admin)):
    ensure_user_available(db, body.username, body.email)
    u = create_user(
        db,
        username=body.username,
        password=body.password,
        role="STAFF",
        email=body.email,
        branch_ids=body.branch_ids,
    )
    _commit(db)
    db.refresh(u)
    logger.info("created staff %s", u.username)
    return envelope(staff_out(u), status_code=201)


@router.put("/{user_id}")
def update_staff(user_id: int, body: StaffUpdate, db: Session = Depends(get_db), admin=Depends(require_admin)):
    u = _get(db, user_id)
    changes = body.model_dump(exclude_unset=True)
    ensure_user_available(db, changes.get("username"), changes.get("email"), exclude_user_id=u.id)

    apply_user_changes(db, u, changes)
    if "is_active" in changes and changes["is_active"] is not None:
        u.is_active = changes["is_active"]

    _commit(db)
    db.refresh(u)
    return envelope(staff_out(u))


@router.delete("/{user_id}")
def delete_staff(user_id: int, db: Session = Depends(get_db), admin=Depends(require_admin)):
    u = _get(db, user_id)
    db.delete(u)
    _commit(db)
    logger.info("deleted staff %s", user_id)
    return envelope({"success": True})
