import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from juku_admin.database import get_db
from juku_admin.models.notification import Notification
from juku_admin.schemas.notification import (
    NotificationCleanupIn,
    NotificationCreate,
    NotificationStatusIn,
)
from juku_admin.utils.auth import require_roles
from juku_admin.utils.crud_factory import CrudActions, envelope, pagination
from juku_admin.utils.db_errors import describe_db_error
from juku_admin.utils.errors import BadRequestError

logger = logging.getLogger("juku_admin.notifications")

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])

staff_only = require_roles("ADMIN", "STAFF")

actions = CrudActions(
    Notification,
    "notification_id",
    NotificationCreate,
    order_by=[("created_at", "desc")],
)

# SENT / FAILED は終端
ALLOWED = {
    "PENDING": {"PROCESSING", "SENT", "FAILED"},
    "PROCESSING": {"PENDING", "SENT", "FAILED"},
    "FAILED": {"PENDING"},
    "SENT": set(),
}


def _commit(db: Session):
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise describe_db_error(e, "notification")


@router.get("")
def list_notifications(
    db: Session = Depends(get_db),
    user=Depends(staff_only),
    status: Optional[str] = Query(None),
    recipient_type: Optional[str] = Query(None),
    page: Optional[int] = Query(1, ge=1),
    limit: Optional[int] = Query(20, ge=1, le=100),
):
    q = db.query(Notification)
    if status:
        q = q.filter(Notification.status == status)
    if recipient_type:
        q = q.filter(Notification.recipient_type == recipient_type)
    total = q.count()
    items = (
        q.order_by(Notification.created_at.desc(), Notification.notification_id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return envelope([actions.serialize(n) for n in items], pagination=pagination(total, page, limit))


@router.post("")
def create_notification(body: NotificationCreate, db: Session = Depends(get_db), user=Depends(staff_only)):
    n = actions.create(db, body)
    return envelope(actions.serialize(n), status_code=201)


@router.post("/cleanup")
def cleanup_notifications(
    body: Optional[NotificationCleanupIn] = None,
    db: Session = Depends(get_db),
    user=Depends(staff_only),
):
    days = (body or NotificationCleanupIn()).days
    cutoff = datetime.now(timezone.utc) - timedelta(days=days)
    deleted = (
        db.query(Notification)
        .filter(
            Notification.status.in_(("SENT", "FAILED")),
            Notification.created_at < cutoff,
        )
        .delete(synchronize_session=False)
    )
    _commit(db)
    logger.info("notification cleanup: %d deleted (older than %d days)", deleted, days)
    return envelope({"deleted": deleted, "older_than_days": days})


@router.get("/{notification_id}")
def get_notification(notification_id: str, db: Session = Depends(get_db), user=Depends(staff_only)):
    return envelope(actions.serialize(actions.get_one(db, notification_id)))


@router.patch("/{notification_id}/status")
def update_status(
    notification_id: str,
    body: NotificationStatusIn,
    db: Session = Depends(get_db),
    user=Depends(staff_only),
):
    n = actions.get_one(db, notification_id)
    if body.status != n.status and body.status not in ALLOWED[n.status]:
        raise BadRequestError(f"Cannot change status from {n.status} to {body.status}")

    n.status = body.status
    if body.status == "PROCESSING":
        n.processing_attempts = (n.processing_attempts or 0) + 1
    if body.status == "SENT":
        n.sent_at = datetime.now(timezone.utc)

    _commit(db)
    db.refresh(n)
    return envelope(actions.serialize(n))


@router.delete("/{notification_id}")
def delete_notification(notification_id: str, db: Session = Depends(get_db), user=Depends(staff_only)):
    return envelope(actions.remove(db, notification_id))
