"""Bearer-token authentication against the external auth provider's JWTs.

Tokens are HS256-signed with ``SECRET_KEY`` and carry the user's email in
``sub``. Login and registration live with the auth provider.
"""

from datetime import datetime, timedelta
import logging
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..core.config import settings
from ..database import get_db
from ..models.user import User

logger = logging.getLogger(__name__)

# Load environment variables from .env
load_dotenv()

SECRET_KEY = settings.SECRET_KEY
ALGORITHM = settings.ALGORITHM
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def email_from_token(token: Optional[str]) -> Optional[str]:
    """Return the ``sub`` email of a valid token, or ``None``."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    email = payload.get("sub")
    return str(email) if email else None


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    email = email.strip().lower()
    return db.query(User).filter(func.lower(User.email) == email).first()


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
    request: Request = None,
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    # Prefer Authorization header; fall back to access_token cookie if missing
    jwt_token = token
    if (not jwt_token) and request is not None:
        jwt_token = request.cookies.get("access_token")
    email = email_from_token(jwt_token)
    if email is None:
        raise credentials_exception
    user = get_user_by_email(db, email)
    if user is None or not user.is_active:
        logger.info("Rejected token for unknown or inactive user %s", email)
        raise credentials_exception
    return user
