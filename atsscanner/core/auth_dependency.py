from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from sqlalchemy.orm import Session

from atsscanner.core.config import Settings, get_settings
from atsscanner.db.session import get_db
from atsscanner.db.models.user import User

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def _email_from_token(token: str, settings: Settings) -> str:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")

    email = payload.get("sub")
    if email is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return email


def get_current_user(
    token: str = Depends(oauth2_scheme),
    settings: Settings = Depends(get_settings)
) -> str:
    """Get current user email from JWT token."""
    return _email_from_token(token, settings)


def get_current_user_obj(
    email: str = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> User:
    """Get current User object from JWT token."""
    user = db.query(User).filter(User.email == email).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def get_optional_user(
    token: Optional[str] = Depends(optional_oauth2_scheme),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db)
) -> Optional[User]:
    """
    User for an optional bearer token.

    No token means an anonymous caller. A token that is present but invalid
    is still rejected with 401.
    """
    if not token:
        return None
    email = _email_from_token(token, settings)
    return db.query(User).filter(User.email == email).first()
