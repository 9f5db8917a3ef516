from typing import Iterable, Optional

from sqlalchemy.orm import Session

from juku_admin.models.branch import Branch
from juku_admin.models.user import User, UserBranch
from juku_admin.utils.errors import BadRequestError, ConflictError
from juku_admin.utils.hashing import hash_password


def user_conflicts(db: Session, username: Optional[str], email: Optional[str], exclude_user_id: Optional[int] = None) -> list[str]:
    """Messages for username / email already taken by another user."""
    problems = []
    if username:
        q = db.query(User.id).filter(User.username == username)
        if exclude_user_id is not None:
            q = q.filter(User.id != exclude_user_id)
        if q.first():
            problems.append(f"Username '{username}' is already taken")
    if email:
        q = db.query(User.id).filter(User.email == email)
        if exclude_user_id is not None:
            q = q.filter(User.id != exclude_user_id)
        if q.first():
            problems.append(f"Email '{email}' is already in use")
    return problems


def ensure_user_available(db: Session, username: Optional[str], email: Optional[str], exclude_user_id: Optional[int] = None):
    problems = user_conflicts(db, username, email, exclude_user_id)
    if problems:
        raise ConflictError(problems[0], details=problems)


def set_user_branches(db: Session, user: User, branch_ids: Iterable[str]):
    wanted = list(dict.fromkeys(b for b in branch_ids if b))
    if wanted:
        found = {b for (b,) in db.query(Branch.branch_id).filter(Branch.branch_id.in_(wanted)).all()}
        unknown = [b for b in wanted if b not in found]
        if unknown:
            raise BadRequestError(f"Unknown branch: {', '.join(unknown)}")
    # (user, branch) is unique: keep rows that stay
    keep = [ub for ub in user.branches if ub.branch_id in wanted]
    have = {ub.branch_id for ub in keep}
    user.branches = keep + [UserBranch(branch_id=b) for b in wanted if b not in have]


def create_user(
    db: Session,
    username: str,
    password: str,
    role: str,
    email: Optional[str] = None,
    branch_ids: Iterable[str] = (),
) -> User:
    user = User(
        username=username,
        password_hash=hash_password(password),
        role=role,
        email=email or None,
        is_active=True,
    )
    set_user_branches(db, user, branch_ids)
    db.add(user)
    db.flush()
    return user


def apply_user_changes(db: Session, user: User, changes: dict):
    """Pops username / password / email / branch_ids out of `changes` onto the user."""
    if changes.get("username"):
        user.username = changes.pop("username")
    else:
        changes.pop("username", None)
    password = changes.pop("password", None)
    if password:
        user.password_hash = hash_password(password)
    if "email" in changes:
        user.email = changes["email"] or None
    branch_ids = changes.pop("branch_ids", None)
    if branch_ids is not None:
        set_user_branches(db, user, branch_ids)
