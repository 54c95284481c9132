from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Any
import uuid
import logging

from jose import JWTError, jwt

from storefront.config import Settings
from storefront.core.permissions import Role, PermissionChecker


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthUser:
    """Identity carried by a verified access token."""
    id: int
    username: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_employee(self) -> bool:
        return self.role == Role.EMPLOYEE

    @property
    def is_customer(self) -> bool:
        return self.role == Role.CUSTOMER

    @property
    def permissions(self) -> PermissionChecker:
        return PermissionChecker(self.role)


def create_access_token(
    settings: Settings,
    subject: int,
    username: str,
    role: Role,
    expires_delta: Optional[timedelta] = None,
    additional_claims: Optional[dict[str, Any]] = None
) -> str:
    """
    Create a JWT access token.

    Args:
        settings: Application settings (secret and algorithm)
        subject: The user id
        username: Display name stored in the token
        role: The user's role
        expires_delta: Optional custom expiration time
        additional_claims: Optional additional claims to include

    Returns:
        Encoded JWT token string
    """
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {
        "sub": str(subject),
        "username": username,
        "role": Role(role).value,
        "exp": expire,
        "iat": datetime.now(timezone.utc),
        "jti": str(uuid.uuid4()),
        "type": "access"
    }

    if additional_claims:
        to_encode.update(additional_claims)

    return jwt.encode(
        to_encode,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )


def decode_token(settings: Settings, token: str) -> Optional[dict[str, Any]]:
    """
    Decode and validate a JWT token.

    Returns:
        Decoded token payload or None if invalid
    """
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )
    except JWTError:
        return None


def verify_access_token(settings: Settings, token: str) -> Optional[AuthUser]:
    """
    Verify an access token and return the identity it carries.

    Returns:
        AuthUser if the token is valid, None otherwise
    """
    payload = decode_token(settings, token)
    if payload is None:
        return None

    if payload.get("type") != "access":
        return None

    try:
        return AuthUser(
            id=int(payload["sub"]),
            username=str(payload.get("username") or payload["sub"]),
            role=Role(payload.get("role")),
        )
    except (KeyError, TypeError, ValueError):
        logger.warning(f"Malformed access token claims: {sorted(payload.keys())}")
        return None
