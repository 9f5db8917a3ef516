from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, Header, HTTPException
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from sqlalchemy.orm import Session

from juku_admin.config import settings
from juku_admin.database import get_db
from juku_admin.models.branch import Branch
from juku_admin.models.user import User

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def create_access_token(data: dict, expires_minutes: Optional[int] = None):
    to_encode = data.copy()
    minutes = expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    expire = datetime.utcnow() + timedelta(minutes=minutes)
    to_encode.update({"exp": expire})
    token = jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return token


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)):
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid authentication token")

    username: str = payload.get("sub")
    if username is None:
        raise HTTPException(status_code=401, detail="Invalid token")

    user = db.query(User).filter(User.username == username).first()
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found")

    return user


def require_roles(*roles: str):
    """Dependency factory: only the given roles may call the route."""

    def checker(user: User = Depends(get_current_user)):
        if getattr(user, "role", None) not in roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return user

    return checker


require_admin = require_roles("ADMIN")


def get_selected_branch(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    x_selected_branch: Optional[str] = Header(None),
) -> str:
    """
    X-Selected-Branch ヘッダー > ユーザーの最初の所属校舎
    ADMIN はどの校舎でも可、それ以外は所属校舎のみ
    """
    member_of = user.branch_ids
    branch_id = x_selected_branch or (member_of[0] if member_of else None)
    if not branch_id:
        raise HTTPException(status_code=400, detail="No branch selected. Select a branch first.")

    if user.role == "ADMIN":
        if not db.query(Branch.branch_id).filter(Branch.branch_id == branch_id).first():
            raise HTTPException(status_code=404, detail="Branch not found")
        return branch_id

    if branch_id not in member_of:
        raise HTTPException(status_code=403, detail="You don't have access to this branch")
    return branch_id
