from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from escala.config import settings


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS_TOKEN_TYPE = "access"
ALGORITHM = "HS256"


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    return pwd_context.verify(plain_password, password_hash)


def create_access_token(canonical_name: str) -> str:
    """Issue a bearer token whose subject is the officer's canonical name."""
    issued = datetime.now(timezone.utc)
    claims = {
        "type": ACCESS_TOKEN_TYPE,
        "sub": canonical_name,
        "iat": int(issued.timestamp()),
        "exp": int((issued + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)).timestamp()),
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=ALGORITHM)


def read_access_token(token: str) -> str:
    """Return the canonical name carried by a valid access token, else raise ValueError."""
    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
    if claims.get("type") != ACCESS_TOKEN_TYPE:
        raise ValueError("Invalid token type")
    subject = claims.get("sub")
    if not isinstance(subject, str) or not subject:
        raise ValueError("Token has no subject")
    return subject
