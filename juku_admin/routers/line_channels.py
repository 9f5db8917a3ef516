import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from juku_admin.config import settings
from juku_admin.database import get_db
from juku_admin.models.branch import Branch
from juku_admin.models.line_channel import BranchLineChannel, LineChannel
from juku_admin.schemas.line_channel import (
    BranchAssignmentIn,
    LineChannelCreate,
    LineChannelUpdate,
    ReencryptIn,
)
from juku_admin.utils.auth import require_admin
from juku_admin.utils.crud_factory import envelope
from juku_admin.utils.db_errors import describe_db_error
from juku_admin.utils.encryption import (
    DecryptionError,
    can_decrypt,
    credential_preview,
    encrypt,
    is_encrypted,
    reveal,
)
from juku_admin.utils.errors import BadRequestError, ConflictError, NotFoundError

logger = logging.getLogger("juku_admin.line_channels")

router = APIRouter(prefix="/api/admin/line-channels", tags=["LINE channels"])


def webhook_url(channel_id: str) -> str:
    return f"{settings.BASE_URL.rstrip('/')}/api/line/webhook/{channel_id}"


def _preview(stored: str, show: int) -> str:
    try:
        return credential_preview(reveal(stored), show, show)
    except DecryptionError:
        return "****"


def channel_out(c: LineChannel) -> dict:
    """Credentials never leave the server; only previews."""
    return {
        "channel_id": c.channel_id,
        "name": c.name,
        "description": c.description,
        "channel_access_token_preview": _preview(c.channel_access_token, 10),
        "channel_secret_preview": _preview(c.channel_secret, 4),
        "webhook_url": webhook_url(c.channel_id),
        "is_active": c.is_active,
        "is_default": c.is_default,
        "branches": [
            {"branch_id": b.branch_id, "channel_type": b.channel_type}
            for b in c.branches
        ],
        "created_at": c.created_at,
        "updated_at": c.updated_at,
    }


def _get(db: Session, channel_id: str) -> LineChannel:
    c = db.get(LineChannel, channel_id)
    if not c:
        raise NotFoundError("LINE channel not found")
    return c


def _check_branches(db: Session, branch_ids):
    ids = list(dict.fromkeys(branch_ids))
    if not ids:
        return ids
    found = {b for (b,) in db.query(Branch.branch_id).filter(Branch.branch_id.in_(ids)).all()}
    unknown = [b for b in ids if b not in found]
    if unknown:
        raise BadRequestError(f"Unknown branch: {', '.join(unknown)}")
    return ids


def _unset_other_defaults(db: Session, keep_id=None):
    q = db.query(LineChannel).filter(LineChannel.is_default.is_(True))
    if keep_id:
        q = q.filter(LineChannel.channel_id != keep_id)
    q.update({LineChannel.is_default: False}, synchronize_session=False)


def _commit(db: Session):
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise describe_db_error(e, "LINE channel")


@router.get("")
def list_channels(db: Session = Depends(get_db), admin=Depends(require_admin)):
    channels = db.query(LineChannel).order_by(LineChannel.is_default.desc(), LineChannel.name.asc()).all()
    return envelope([channel_out(c) for c in channels])


@router.get("/check-encryption")
def check_encryption(db: Session = Depends(get_db), admin=Depends(require_admin)):
    channels = db.query(LineChannel).all()
    problems = []
    for c in channels:
        token_ok = can_decrypt(c.channel_access_token)
        secret_ok = can_decrypt(c.channel_secret)
        if token_ok and secret_ok:
            continue
        problems.append({
            "channel_id": c.channel_id,
            "name": c.name,
            "is_active": c.is_active,
            "token_encrypted": is_encrypted(c.channel_access_token),
            "secret_encrypted": is_encrypted(c.channel_secret),
            "token_decryptable": token_ok,
            "secret_decryptable": secret_ok,
        })
    return envelope({
        "total_channels": len(channels),
        "healthy_channels": len(channels) - len(problems),
        "problem_channels": len(problems),
        "channels": problems,
    })


@router.get("/{channel_id}")
def get_channel(channel_id: str, db: Session = Depends(get_db), admin=Depends(require_admin)):
    return envelope(channel_out(_get(db, channel_id)))


@router.post("")
def create_channel(body: LineChannelCreate, db: Session = Depends(get_db), admin=Depends(require_admin)):
    branch_ids = _check_branches(db, body.branch_ids)
    if body.is_default:
        _unset_other_defaults(db)

    c = LineChannel(
        name=body.name,
        description=body.description,
        channel_access_token=encrypt(body.channel_access_token),
        channel_secret=encrypt(body.channel_secret),
        is_active=body.is_active,
        is_default=body.is_default,
    )
    # 役割は後から PUT /{id}/branches で明示する
    c.branches = [BranchLineChannel(branch_id=b, channel_type="UNSPECIFIED") for b in branch_ids]
    db.add(c)
    db.flush()
    c.webhook_url = webhook_url(c.channel_id)

    _commit(db)
    db.refresh(c)
    logger.info("created LINE channel %s", c.channel_id)
    return envelope(channel_out(c), status_code=201)


@router.put("/{channel_id}")
def update_channel(
    channel_id: str,
    body: LineChannelUpdate,
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    c = _get(db, channel_id)
    changes = body.model_dump(exclude_unset=True)

    token = (changes.pop("channel_access_token", None) or "").strip()
    secret = (changes.pop("channel_secret", None) or "").strip()
    if token:
        c.channel_access_token = encrypt(token)
    if secret:
        c.channel_secret = encrypt(secret)

    branch_ids = changes.pop("branch_ids", None)
    if branch_ids is not None:
        wanted = _check_branches(db, branch_ids)
        keep = [b for b in c.branches if b.branch_id in wanted]
        have = {b.branch_id for b in keep}
        c.branches = keep + [
            BranchLineChannel(branch_id=b, channel_type="UNSPECIFIED") for b in wanted if b not in have
        ]

    if changes.get("is_default"):
        _unset_other_defaults(db, keep_id=channel_id)
    for k, v in changes.items():
        if v is None and k in ("name", "is_active", "is_default"):
            continue
        setattr(c, k, v)

    _commit(db)
    db.refresh(c)
    return envelope(channel_out(c))


@router.delete("/{channel_id}")
def delete_channel(channel_id: str, db: Session = Depends(get_db), admin=Depends(require_admin)):
    c = _get(db, channel_id)
    db.delete(c)
    _commit(db)
    logger.info("deleted LINE channel %s", channel_id)
    return envelope({"success": True})


@router.put("/{channel_id}/branches")
def assign_branches(
    channel_id: str,
    body: BranchAssignmentIn,
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    c = _get(db, channel_id)
    wanted = {a.branch_id: a.channel_type for a in body.branches}
    _check_branches(db, list(wanted))

    # 校舎ごとに TEACHER / STUDENT 用チャネルは 1 つまで
    for branch_id, channel_type in wanted.items():
        if channel_type == "UNSPECIFIED":
            continue
        taken = (
            db.query(BranchLineChannel)
            .filter(
                BranchLineChannel.branch_id == branch_id,
                BranchLineChannel.channel_type == channel_type,
                BranchLineChannel.channel_id != channel_id,
            )
            .first()
        )
        if taken:
            raise ConflictError(
                f"Branch {branch_id} already has a {channel_type} channel",
                details={"branch_id": branch_id, "channel_id": taken.channel_id},
            )

    keep = []
    for b in c.branches:
        if b.branch_id in wanted:
            b.channel_type = wanted.pop(b.branch_id)
            keep.append(b)
    c.branches = keep + [BranchLineChannel(branch_id=b, channel_type=t) for b, t in wanted.items()]

    _commit(db)
    db.refresh(c)
    return envelope(channel_out(c))


@router.post("/{channel_id}/reencrypt")
def reencrypt_channel(
    channel_id: str,
    body: Optional[ReencryptIn] = None,
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    """
    - body with credentials: replace both (rows encrypted with a lost key)
    - empty body: encrypt legacy plaintext values in place
    """
    c = _get(db, channel_id)
    body = body or ReencryptIn()
    if bool(body.channel_access_token) != bool(body.channel_secret):
        raise BadRequestError("Provide both channel_access_token and channel_secret, or neither")

    changed = []
    if body.channel_access_token:
        c.channel_access_token = encrypt(body.channel_access_token)
        c.channel_secret = encrypt(body.channel_secret)
        changed = ["channel_access_token", "channel_secret"]
    else:
        for field in ("channel_access_token", "channel_secret"):
            value = getattr(c, field)
            if is_encrypted(value):
                if not can_decrypt(value):
                    raise BadRequestError(
                        f"{field} cannot be decrypted with the current key; supply new credentials"
                    )
                continue
            setattr(c, field, encrypt(value))
            changed.append(field)

    _commit(db)
    db.refresh(c)
    logger.info("re-encrypted LINE channel %s (%s)", channel_id, ", ".join(changed) or "no change")
    return envelope({"channel": channel_out(c), "reencrypted": changed})
