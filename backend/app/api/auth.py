from fastapi import APIRouter, Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from datetime import timedelta
from typing import Optional
from sqlalchemy.orm import Session
import logging
from app.models.schemas import User, UserCreate, UserLogin, Token, Identity, Role
from app.services.auth import verify_password, get_password_hash, create_access_token, decode_access_token
from app.database.postgres_db import get_db as get_session
from app.database.db_service import get_db_service
from app.config import settings
from slowapi import Limiter
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])
bearer_scheme = HTTPBearer(auto_error=False)

# Security: Initialize rate limiter to prevent brute force attacks
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Identity:
    """Every protected route resolves its caller here: signature and expiry are always verified."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None or credentials.scheme.lower() != "bearer":
        raise credentials_exception

    identity = decode_access_token(credentials.credentials)
    if identity is None:
        raise credentials_exception

    return identity


async def get_optional_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[Identity]:
    """Anonymous callers resolve to None; a presented token must still verify."""
    if credentials is None:
        return None
    return await get_current_identity(credentials)


def _may_grant_role(role: Role, username: str, caller: Optional[Identity]) -> bool:
    if role == Role.EMPLOYEE:
        return True
    if caller is not None and caller.role == Role.ADMIN:
        return True
    bootstrap = settings.BOOTSTRAP_ADMIN_USERNAME
    return role == Role.ADMIN and bool(bootstrap) and username == bootstrap


def require_roles(*roles: Role):
    allowed = set(roles)

    async def _check(identity: Identity = Depends(get_current_identity)) -> Identity:
        if identity.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role for this operation"
            )
        return identity

    return _check


@router.post("/register", response_model=User, status_code=status.HTTP_201_CREATED)
@limiter.limit("3/hour")
async def register(
    request: Request,
    user: UserCreate,
    session: Session = Depends(get_session),
    caller: Optional[Identity] = Depends(get_optional_identity),
):
    if not _may_grant_role(user.role, user.username, caller):
        logger.warning("Refused %s registration for %s", user.role.value, user.username)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only an admin can create manager or admin accounts"
        )

    db = get_db_service(session)

    existing_user = db.find_one("users", {"username": user.username})
    if existing_user and existing_user.get("hashed_password"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Username already registered"
        )

    user_doc = {
        "hashed_password": get_password_hash(user.password),
        "role": user.role.value,
    }

    # A budget-only record may already exist from an earlier submission
    created_user = db.upsert("users", {"username": user.username}, user_doc)
    db.commit()
    logger.info("Registered user %s with role %s", user.username, user.role.value)

    return User(**created_user)


@router.post("/login", response_model=Token)
@limiter.limit("5/15minutes")
async def login(request: Request, credentials: UserLogin, session: Session = Depends(get_session)):
    db = get_db_service(session)

    user_doc = db.find_one("users", {"username": credentials.username})

    if not user_doc or not verify_password(credentials.password, user_doc.get("hashed_password")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token_expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = create_access_token(
        data={"sub": user_doc["username"], "role": user_doc["role"]},
        expires_delta=access_token_expires
    )

    return {
        "access_token": access_token,
        "token": access_token,
        "token_type": "bearer",
        "role": user_doc["role"],
    }


@router.get("/me", response_model=Identity)
async def read_identity(identity: Identity = Depends(get_current_identity)):
    return identity
