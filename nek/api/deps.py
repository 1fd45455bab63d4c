from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from nek.core.security import JWTError, decode_token
from nek.db.models import User
from nek.db.session import get_db

oauth2 = OAuth2PasswordBearer(tokenUrl="/api/auth/token")
optional_oauth2 = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


def _user_from_token(token: str, db: Session) -> User:
    try:
        payload = decode_token(token)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    uid = payload.get("sub")
    user = db.query(User).filter(User.id == uid).first() if uid else None
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def get_current_user(token: str = Depends(oauth2), db: Session = Depends(get_db)) -> User:
    return _user_from_token(token, db)


def get_optional_user(token: Optional[str] = Depends(optional_oauth2), db: Session = Depends(get_db)) -> Optional[User]:
    if not token:
        return None
    return _user_from_token(token, db)


def get_admin_user(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return user
