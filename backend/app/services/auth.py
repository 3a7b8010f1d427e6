import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.config import settings
from app.models.schemas import Identity, Role

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign a JWT carrying the given claims.

    Callers pass {"sub": username, "role": role}; the username is mirrored into
    a "username" claim for clients that read it directly.
    """
    to_encode = data.copy()
    if "sub" in to_encode:
        to_encode.setdefault("username", to_encode["sub"])
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[Identity]:
    """
    Verify signature and expiry and return the token's identity.

    Returns None for any token that fails verification or lacks a username.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as exc:
        logger.debug("Rejected access token: %s", exc)
        return None

    username = payload.get("sub") or payload.get("username")
    if not username:
        return None

    try:
        role = Role(payload.get("role", Role.EMPLOYEE.value))
    except ValueError:
        logger.warning("Access token for %s carries unknown role %r", username, payload.get("role"))
        return None

    return Identity(username=username, role=role)
