from collections.abc import Callable, Generator, Iterable
from dataclasses import dataclass
import logging

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import SignatureVerificationError
from app.core.security import decode_token
from app.db.session import SessionLocal
from app.models.user import User, UserRole
from app.services.rate_limit import enforce_rate_limit
from app.services.request_signing import verify_signed_request
from app.services.sis_client import SisClient

logger = logging.getLogger(__name__)

security = HTTPBearer()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    token = credentials.credentials
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(token)
        user_id = payload.get("sub")
        if user_id is None:
            raise credentials_exception
    except JWTError as exc:
        raise credentials_exception from exc

    user = db.get(User, user_id)
    if user is None:
        raise credentials_exception
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive")
    return user


def require_roles(*roles: UserRole) -> Callable[[User], User]:
    allowed_roles: Iterable[UserRole] = set(roles)

    def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed_roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return current_user

    return role_checker


@dataclass(frozen=True)
class SignedCaller:
    name: str
    raw_body: str


async def require_signed_request(
    request: Request,
    authorization: str | None = Header(default=None),
    x_timestamp: str | None = Header(default=None),
    x_signature: str | None = Header(default=None),
) -> SignedCaller:
    """Authenticate a system-to-system call before anything reads its payload."""
    settings = get_settings()
    enforce_rate_limit(
        request=request,
        scope="xr",
        limit=settings.xr_rate_limit_max_requests,
        window_seconds=settings.xr_rate_limit_window_seconds,
    )
    raw_body = (await request.body()).decode("utf-8")
    try:
        caller = verify_signed_request(
            secret=settings.sis_shared_secret,
            allowed_keys=settings.inbound_api_keys(),
            authorization=authorization,
            timestamp=x_timestamp,
            signature=x_signature,
            raw_body=raw_body,
            max_skew_seconds=settings.signature_max_skew_seconds,
        )
    except SignatureVerificationError as exc:
        logger.warning(
            "Rejected signed request to %s from %s: %s",
            request.url.path,
            request.client.host if request.client else "unknown",
            type(exc).__name__,
        )
        raise
    logger.info("Verified %s request to %s", caller, request.url.path)
    return SignedCaller(name=caller, raw_body=raw_body)


def get_sis_client() -> SisClient:
    return SisClient()
