import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from juku_admin.database import get_db
from juku_admin.models.user import User
from juku_admin.schemas.user import Token, UserOut
from juku_admin.utils.auth import create_access_token, get_current_user
from juku_admin.utils.hashing import verify_password

logger = logging.getLogger("juku_admin.auth")

router = APIRouter(prefix="/auth", tags=["Auth"])


# ログイン
@router.post("/login", response_model=Token)
def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    user = db.query(User).filter(User.username == form_data.username).first()
    if not user or not verify_password(form_data.password, user.password_hash):
        logger.info("login failed for %s", form_data.username)
        raise HTTPException(status_code=403, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is disabled")

    token = create_access_token({"sub": user.username, "role": user.role})
    return {"access_token": token, "token_type": "bearer"}


@router.get("/me", response_model=UserOut)
def get_me(current_user: User = Depends(get_current_user)):
    return current_user
